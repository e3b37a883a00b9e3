from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

import pygame
import pytest

from spice_theory.result_card import (
    CARD_WIDTH,
    IMG_H,
    IMG_BORDER,
    NEUTRAL_BORDER,
    PAD,
    CardFonts,
    encode_png,
    load_card_image,
    measure_card,
    parse_colour,
    render_card,
    save_card,
    verify_layout,
    wrap_lines,
)
from spice_theory.results import ResultSummary


class FakeMeasurer:
    """Monospace stand-in: every character is 10px wide."""

    def size(self, text: str) -> tuple[int, int]:
        return (len(text) * 10, 20)

    def get_linesize(self) -> int:
        return 20

    def get_height(self) -> int:
        return 18


def _summary(
    *,
    pure: bool = False,
    blurb: str = "Short blurb.",
    body: str = "Body text.",
    title: str | None = None,
    primary_name: str = "Posh",
) -> ResultSummary:
    return ResultSummary(
        primary_key="posh",
        secondary_key="posh" if pure else "baby",
        primary_name=primary_name,
        secondary_name="Posh" if pure else "Baby",
        primary_percent=100 if pure else 63,
        secondary_percent=0 if pure else 37,
        is_pure=pure,
        title=title or ("True Posh" if pure else "Baby Posh"),
        blurb=blurb,
        primary_description=body,
        secondary_description="" if pure else body,
        accent="#ff0000",
        primary_image="",
        secondary_image="",
    )


@pytest.fixture(scope="module")
def fonts() -> CardFonts:
    pygame.init()
    return CardFonts.default()


def test_wrap_lines_greedy() -> None:
    m = FakeMeasurer()

    assert wrap_lines(m, "aa bb cc dd", 50) == ["aa bb", "cc dd"]
    assert wrap_lines(m, "", 50) == []
    assert wrap_lines(m, "   ", 50) == []
    # Overlong words stand alone rather than vanish.
    assert wrap_lines(m, "a supercalifragilistic b", 50) == ["a", "supercalifragilistic", "b"]


def test_height_follows_content(fonts: CardFonts) -> None:
    short = measure_card(_summary(), fonts)
    long = measure_card(_summary(blurb="word " * 400, body="longer " * 300), fonts)

    assert short.width == CARD_WIDTH
    assert short.height == short.content_bottom + PAD
    assert long.height == long.content_bottom + PAD
    assert long.height > short.height
    assert verify_layout(short, fonts)
    assert verify_layout(long, fonts)


def test_every_block_ends_inside_card(fonts: CardFonts) -> None:
    layout = measure_card(_summary(blurb="lorem ipsum " * 80), fonts)

    for block in layout.blocks:
        assert block.bottom <= layout.height - PAD
    assert layout.watermark_y < layout.height


def test_truncated_layout_fails_verification(fonts: CardFonts) -> None:
    layout = measure_card(_summary(blurb="lorem ipsum " * 80), fonts)

    assert not verify_layout(replace(layout, height=layout.height - 200), fonts)


def test_pure_layout_has_single_full_width_box(fonts: CardFonts) -> None:
    layout = measure_card(_summary(pure=True), fonts)

    assert [b.role for b in layout.image_boxes] == ["primary"]
    x, _, w, h = layout.image_boxes[0].rect
    assert (x, w, h) == (PAD, CARD_WIDTH - 2 * PAD, IMG_H)
    assert [b.role for b in layout.blocks] == ["blurb", "primary_heading", "primary_body"]


def test_mixed_layout_puts_primary_on_the_right(fonts: CardFonts) -> None:
    layout = measure_card(_summary(), fonts)

    by_role = {b.role: b for b in layout.image_boxes}
    half = (CARD_WIDTH - 3 * PAD) // 2
    assert by_role["secondary"].rect[0] == PAD
    assert by_role["primary"].rect[0] == 2 * PAD + half
    assert by_role["primary"].accent_border and not by_role["secondary"].accent_border
    assert [b.role for b in layout.blocks][-2:] == ["secondary_heading", "secondary_body"]
    assert layout.blocks[2].text == "Body text."


def test_primary_image_lands_in_primary_box(fonts: CardFonts) -> None:
    summary = _summary()
    red = pygame.Surface((40, 40))
    red.fill((255, 0, 0))

    surface = render_card(summary, fonts=fonts, images={"primary": red, "secondary": None})
    layout = measure_card(summary, fonts)

    assert surface.get_size() == (layout.width, layout.height)
    boxes = {b.role: pygame.Rect(b.rect) for b in layout.image_boxes}
    assert tuple(surface.get_at(boxes["primary"].center))[:3] == (255, 0, 0)
    assert tuple(surface.get_at(boxes["secondary"].center))[:3] != (255, 0, 0)


def test_missing_image_keeps_box_border(fonts: CardFonts) -> None:
    summary = _summary()

    surface = render_card(summary, fonts=fonts, images={"primary": None, "secondary": None})
    layout = measure_card(summary, fonts)

    boxes = {b.role: pygame.Rect(b.rect) for b in layout.image_boxes}
    inset = IMG_BORDER // 2
    sec, pri = boxes["secondary"], boxes["primary"]
    assert tuple(surface.get_at((sec.x + inset, sec.centery)))[:3] == NEUTRAL_BORDER
    assert tuple(surface.get_at((sec.centerx, sec.bottom - 1 - inset)))[:3] == NEUTRAL_BORDER
    assert tuple(surface.get_at((pri.right - 1 - inset, pri.centery)))[:3] == (255, 0, 0)
    assert tuple(surface.get_at((pri.centerx, pri.y + inset)))[:3] == (255, 0, 0)


def test_oversized_image_stays_inside_its_box(fonts: CardFonts) -> None:
    summary = _summary()
    blue = (0, 0, 255)
    wide = pygame.Surface((6000, 900))
    wide.fill(blue)

    surface = render_card(summary, fonts=fonts, images={"primary": None, "secondary": wide})
    layout = measure_card(summary, fonts)

    boxes = {b.role: pygame.Rect(b.rect) for b in layout.image_boxes}
    sec, pri = boxes["secondary"], boxes["primary"]
    assert tuple(surface.get_at(sec.center))[:3] == blue
    gap_x = (sec.right + pri.x) // 2
    for point in ((gap_x, sec.centery), pri.center, (pri.x + IMG_BORDER + 2, pri.centery)):
        assert tuple(surface.get_at(point))[:3] != blue


def test_long_title_wraps_and_pushes_badges_down(fonts: CardFonts) -> None:
    short = measure_card(_summary(), fonts)
    long = measure_card(_summary(title="Extraordinarily Sophisticated " * 6), fonts)

    text_w = CARD_WIDTH - 2 * PAD
    assert len(short.title.lines) == 1
    assert len(long.title.lines) > 1
    assert all(fonts.title.size(line)[0] <= text_w for line in long.title.lines)
    assert long.badge_y == short.badge_y + (len(long.title.lines) - 1) * long.title.line_height
    assert long.height > short.height
    assert verify_layout(long, fonts)


def test_long_heading_wraps_inside_card(fonts: CardFonts) -> None:
    layout = measure_card(_summary(primary_name="Victoria Caroline Adams " * 8), fonts)

    heading = next(b for b in layout.blocks if b.role == "primary_heading")
    assert len(heading.lines) > 1
    assert all(fonts.heading.size(line)[0] <= CARD_WIDTH - 2 * PAD for line in heading.lines)
    assert verify_layout(layout, fonts)
    surface = render_card(_summary(primary_name="Victoria Caroline Adams " * 8), fonts=fonts, images={})
    assert surface.get_height() == layout.height


def test_load_card_image_failures_return_none(tmp_path: Path) -> None:
    garbage = tmp_path / "garbage.png"
    garbage.write_bytes(b"not an image")

    assert load_card_image("") is None
    assert load_card_image(str(tmp_path / "missing.png")) is None
    assert load_card_image(str(garbage)) is None


def test_load_card_image_resolves_relative_to_base_dir(tmp_path: Path) -> None:
    img = pygame.Surface((8, 6))
    img.fill((0, 255, 0))
    pygame.image.save(img, str(tmp_path / "posh.png"))

    loaded = load_card_image("posh.png", base_dir=tmp_path)

    assert loaded is not None
    assert loaded.get_size() == (8, 6)


def test_parse_colour_falls_back() -> None:
    assert tuple(parse_colour("#ff0000"))[:3] == (255, 0, 0)
    assert tuple(parse_colour("definitely-not-a-colour", "#00ff00"))[:3] == (0, 255, 0)


def test_save_card_writes_named_png(tmp_path: Path, fonts: CardFonts) -> None:
    summary = _summary()

    path = save_card(summary, tmp_path / "out", fonts=fonts, images={})

    assert path == tmp_path / "out" / "spice-posh-baby.png"
    assert path.read_bytes()[:4] == b"\x89PNG"


def test_encode_png_magic(fonts: CardFonts) -> None:
    surface = render_card(_summary(pure=True), fonts=fonts, images={})

    assert encode_png(surface)[:8] == b"\x89PNG\r\n\x1a\n"

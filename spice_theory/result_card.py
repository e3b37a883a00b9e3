"""Shareable result card: measured layout, pygame painting and PNG export.

The card is a fixed 1080px wide and as tall as its text needs. The height is
computed analytically from wrapped line counts before any surface is created,
so nothing painted can fall off the bottom.
"""

from __future__ import annotations

import io
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

import pygame
import requests

from .quiz_data import DEFAULT_ACCENT, is_remote
from .results import BRAND, WATERMARK, ResultSummary

logger = logging.getLogger(__name__)

CARD_WIDTH = 1080
PAD = 56
TITLE_GAP = 78  # brand top -> title top
TITLE_TO_BADGES = 100
TITLE_LINE_H = 88
BADGE_H = 48
BADGE_PAD_X = 18
BADGE_GAP = 12
AFTER_BADGES_GAP = 32
IMG_H = 520
IMG_INNER_PAD = 18
IMG_BORDER = 6
TEXT_GAP = 36
SECTION_GAP = 22
HEADING_H = 46
BLURB_LINE_H = 44
BODY_LINE_H = 40
WATERMARK_OFFSET = 8

BG_TOP = (17, 18, 23)
BG_BOTTOM = (27, 29, 39)
NEUTRAL_BORDER = (15, 17, 22)
TEXT_WHITE = (255, 255, 255)
TEXT_BLURB = (207, 210, 220)
TEXT_BODY = (232, 233, 239)
WATERMARK_COLOUR = (255, 255, 255, 178)


class TextMeasurer(Protocol):
    def size(self, text: str) -> tuple[int, int]: ...
    def get_linesize(self) -> int: ...
    def get_height(self) -> int: ...


@dataclass(frozen=True, slots=True)
class CardFonts:
    brand: pygame.font.Font
    title: pygame.font.Font
    badge: pygame.font.Font
    badge_bold: pygame.font.Font
    heading: pygame.font.Font
    blurb: pygame.font.Font
    body: pygame.font.Font
    watermark: pygame.font.Font

    @classmethod
    def default(cls) -> "CardFonts":
        if not pygame.font.get_init():
            pygame.font.init()

        def make(size: int, *, bold: bool = False) -> pygame.font.Font:
            font = pygame.font.Font(None, size)
            font.set_bold(bold)
            return font

        return cls(
            brand=make(64, bold=True),
            title=make(84, bold=True),
            badge=make(36),
            badge_bold=make(36, bold=True),
            heading=make(36, bold=True),
            blurb=make(34),
            body=make(30),
            watermark=make(26),
        )

    def for_role(self, role: str) -> pygame.font.Font:
        if role == "title":
            return self.title
        if role == "blurb":
            return self.blurb
        if role.endswith("_heading"):
            return self.heading
        return self.body


@dataclass(frozen=True, slots=True)
class TextBlock:
    role: str  # title | blurb | primary_heading | primary_body | secondary_heading | secondary_body
    text: str
    x: int
    y: int
    lines: tuple[str, ...]
    line_height: int

    @property
    def bottom(self) -> int:
        return self.y + len(self.lines) * self.line_height


@dataclass(frozen=True, slots=True)
class ImageBox:
    role: str  # primary | secondary
    rect: tuple[int, int, int, int]
    accent_border: bool


@dataclass(frozen=True, slots=True)
class CardLayout:
    width: int
    height: int
    brand_y: int
    title: TextBlock
    badge_y: int
    image_boxes: tuple[ImageBox, ...]
    blocks: tuple[TextBlock, ...]
    content_bottom: int
    watermark_y: int


def wrap_lines(font: TextMeasurer, text: str, max_width: int) -> list[str]:
    """Greedy word wrap measured with ``font``. A word wider than the line stands alone."""

    lines: list[str] = []
    cur = ""
    for word in str(text or "").split():
        trial = word if cur == "" else f"{cur} {word}"
        if font.size(trial)[0] <= max_width or cur == "":
            cur = trial
            continue
        lines.append(cur)
        cur = word
    if cur:
        lines.append(cur)
    return lines


def _line_height(font: TextMeasurer, nominal: int) -> int:
    return max(int(nominal), int(font.get_linesize()))


def measure_card(summary: ResultSummary, fonts: CardFonts, *, width: int = CARD_WIDTH) -> CardLayout:
    """Compute every block position and the total card height."""

    text_w = width - PAD * 2
    brand_y = PAD
    title_font = fonts.for_role("title")
    title = TextBlock(
        "title",
        summary.title,
        PAD,
        brand_y + TITLE_GAP,
        tuple(wrap_lines(title_font, summary.title, text_w) or [""]),
        _line_height(title_font, TITLE_LINE_H),
    )
    # Extra title lines push everything below them down.
    badge_y = title.y + TITLE_TO_BADGES + (len(title.lines) - 1) * title.line_height
    image_y = badge_y + BADGE_H + AFTER_BADGES_GAP

    if summary.is_pure:
        boxes: tuple[ImageBox, ...] = (ImageBox("primary", (PAD, image_y, text_w, IMG_H), True),)
    else:
        half = (width - PAD * 3) // 2
        boxes = (
            ImageBox("secondary", (PAD, image_y, half, IMG_H), False),
            ImageBox("primary", (PAD * 2 + half, image_y, half, IMG_H), True),
        )

    blocks: list[TextBlock] = []
    y = image_y + IMG_H + TEXT_GAP

    def add(role: str, text: str, nominal_lh: int) -> None:
        nonlocal y
        font = fonts.for_role(role)
        lines = wrap_lines(font, text, text_w)
        block = TextBlock(role, text, PAD, y, tuple(lines), _line_height(font, nominal_lh))
        blocks.append(block)
        y = block.bottom

    add("blurb", summary.blurb, BLURB_LINE_H)
    y += SECTION_GAP
    add("primary_heading", f"Primary, {summary.primary_name}", HEADING_H)
    add("primary_body", summary.primary_description, BODY_LINE_H)
    if not summary.is_pure:
        y += SECTION_GAP
        add("secondary_heading", f"Secondary, {summary.secondary_name}", HEADING_H)
        add("secondary_body", summary.secondary_description, BODY_LINE_H)

    height = int(math.ceil(y + PAD))
    return CardLayout(
        width=width,
        height=height,
        brand_y=brand_y,
        title=title,
        badge_y=badge_y,
        image_boxes=boxes,
        blocks=tuple(blocks),
        content_bottom=y,
        watermark_y=height - PAD + WATERMARK_OFFSET,
    )


def verify_layout(layout: CardLayout, fonts: CardFonts) -> bool:
    """Re-run the measurement against the final height: no text line may end below ``height - PAD``."""

    limit = layout.height - PAD
    text_w = layout.width - PAD * 2
    title = layout.title
    if len(wrap_lines(fonts.title, title.text, text_w) or [""]) != len(title.lines):
        return False
    if title.y + (len(title.lines) - 1) * title.line_height + fonts.title.get_height() > layout.badge_y:
        return False
    for block in layout.blocks:
        font = fonts.for_role(block.role)
        if len(wrap_lines(font, block.text, text_w)) != len(block.lines):
            return False
        for i in range(len(block.lines)):
            if block.y + i * block.line_height + font.get_height() > limit:
                return False
    return layout.watermark_y + fonts.watermark.get_height() <= layout.height


def parse_colour(value: str, fallback: str = DEFAULT_ACCENT) -> pygame.Color:
    try:
        return pygame.Color(value)
    except (ValueError, TypeError):
        return pygame.Color(fallback)


def load_card_image(
    reference: str,
    *,
    base_dir: Path | None = None,
    timeout_s: float = 10.0,
) -> pygame.Surface | None:
    """Load a spice image from a path or URL; None on any failure."""

    if not reference:
        return None
    try:
        if is_remote(reference):
            response = requests.get(reference, timeout=timeout_s)
            response.raise_for_status()
            hint = Path(urlparse(reference).path).name or "image.png"
            return pygame.image.load(io.BytesIO(response.content), hint)
        path = Path(reference).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        return pygame.image.load(str(path))
    except (requests.RequestException, pygame.error, OSError, ValueError) as exc:
        logger.warning("Could not load card image", extra={"image": reference, "error": str(exc)})
        return None


def _paint_gradient(surface: pygame.Surface) -> None:
    w, h = surface.get_size()
    span = max(1, h - 1)
    for y in range(h):
        t = y / span
        colour = tuple(int(round(a + (b - a) * t)) for a, b in zip(BG_TOP, BG_BOTTOM))
        pygame.draw.line(surface, colour, (0, y), (w - 1, y))


def _blit_translucent_rect(
    surface: pygame.Surface,
    rect: pygame.Rect,
    rgba: tuple[int, int, int, int],
    *,
    radius: int = 0,
    border_rgba: tuple[int, int, int, int] | None = None,
) -> None:
    overlay = pygame.Surface(rect.size, pygame.SRCALPHA)
    pygame.draw.rect(overlay, rgba, overlay.get_rect(), border_radius=radius)
    if border_rgba is not None:
        pygame.draw.rect(overlay, border_rgba, overlay.get_rect(), 2, border_radius=radius)
    surface.blit(overlay, rect.topleft)


def _paint_badges(surface: pygame.Surface, summary: ResultSummary, fonts: CardFonts, y: int) -> None:
    x = PAD
    for text, emphasised in summary.badges:
        font = fonts.badge_bold if emphasised else fonts.badge
        text_w, text_h = font.size(text)
        pill = pygame.Rect(x, y, text_w + BADGE_PAD_X * 2, BADGE_H)
        _blit_translucent_rect(
            surface,
            pill,
            (255, 255, 255, 31),
            radius=BADGE_H // 2,
            border_rgba=(255, 255, 255, 51),
        )
        label = font.render(text, True, TEXT_WHITE)
        surface.blit(label, (pill.x + BADGE_PAD_X, pill.y + (BADGE_H - text_h) // 2))
        x = pill.right + BADGE_GAP


def _fit_contain(image_size: tuple[int, int], box: pygame.Rect) -> pygame.Rect:
    iw, ih = image_size
    scale = min(box.w / iw, box.h / ih)
    dw = max(1, int(iw * scale))
    dh = max(1, int(ih * scale))
    return pygame.Rect(box.x + (box.w - dw) // 2, box.y + (box.h - dh) // 2, dw, dh)


def _paint_image_box(
    surface: pygame.Surface,
    rect: pygame.Rect,
    image: pygame.Surface | None,
    border: pygame.Color | tuple[int, int, int],
) -> None:
    _blit_translucent_rect(surface, rect, (255, 255, 255, 15))

    inner = rect.inflate(-IMG_INNER_PAD * 2, -IMG_INNER_PAD * 2)
    if image is not None and image.get_width() > 0 and image.get_height() > 0 and inner.w > 0 and inner.h > 0:
        # smoothscale needs 24/32-bit input; loaded images may be paletted.
        rgba = pygame.Surface(image.get_size(), pygame.SRCALPHA)
        rgba.blit(image, (0, 0))
        target = _fit_contain(rgba.get_size(), inner)
        scaled = pygame.transform.smoothscale(rgba, target.size)
        previous_clip = surface.get_clip()
        surface.set_clip(inner)
        surface.blit(scaled, target.topleft)
        surface.set_clip(previous_clip)

    pygame.draw.rect(surface, border, rect, IMG_BORDER)


def paint_card(
    surface: pygame.Surface,
    summary: ResultSummary,
    layout: CardLayout,
    fonts: CardFonts,
    images: Mapping[str, pygame.Surface | None],
) -> None:
    """Paint ``summary`` onto ``surface`` (which must be layout.width x layout.height)."""

    accent = parse_colour(summary.accent)

    _paint_gradient(surface)
    surface.blit(fonts.brand.render(BRAND, True, TEXT_WHITE), (PAD, layout.brand_y))
    title = layout.title
    for i, line in enumerate(title.lines):
        if line:
            surface.blit(fonts.title.render(line, True, accent), (title.x, title.y + i * title.line_height))
    _paint_badges(surface, summary, fonts, layout.badge_y)

    for box in layout.image_boxes:
        border = accent if box.accent_border else NEUTRAL_BORDER
        _paint_image_box(surface, pygame.Rect(box.rect), images.get(box.role), border)

    for block in layout.blocks:
        font = fonts.for_role(block.role)
        if block.role == "blurb":
            colour = TEXT_BLURB
        elif block.role.endswith("_heading"):
            colour = TEXT_WHITE
        else:
            colour = TEXT_BODY
        for i, line in enumerate(block.lines):
            if line:
                surface.blit(font.render(line, True, colour), (block.x, block.y + i * block.line_height))

    mark = fonts.watermark.render(WATERMARK, True, WATERMARK_COLOUR[:3])
    mark.set_alpha(WATERMARK_COLOUR[3])
    surface.blit(mark, (PAD, layout.watermark_y))


def load_summary_images(
    summary: ResultSummary,
    *,
    base_dir: Path | None = None,
    timeout_s: float = 10.0,
) -> dict[str, pygame.Surface | None]:
    images = {"primary": load_card_image(summary.primary_image, base_dir=base_dir, timeout_s=timeout_s)}
    if not summary.is_pure:
        images["secondary"] = load_card_image(summary.secondary_image, base_dir=base_dir, timeout_s=timeout_s)
    return images


def render_card(
    summary: ResultSummary,
    *,
    fonts: CardFonts | None = None,
    images: Mapping[str, pygame.Surface | None] | None = None,
    base_dir: Path | None = None,
    timeout_s: float = 10.0,
) -> pygame.Surface:
    """Measure, allocate and paint the card. Missing images leave their boxes empty."""

    card_fonts = fonts or CardFonts.default()
    layout = measure_card(summary, card_fonts)
    if images is None:
        images = load_summary_images(summary, base_dir=base_dir, timeout_s=timeout_s)
    surface = pygame.Surface((layout.width, layout.height))
    paint_card(surface, summary, layout, card_fonts, images)
    return surface


def encode_png(surface: pygame.Surface) -> bytes:
    buf = io.BytesIO()
    pygame.image.save(surface, buf, "card.png")
    return buf.getvalue()


def save_card(
    summary: ResultSummary,
    out_dir: Path,
    *,
    fonts: CardFonts | None = None,
    images: Mapping[str, pygame.Surface | None] | None = None,
    base_dir: Path | None = None,
    timeout_s: float = 10.0,
) -> Path:
    """Render the card and write it as ``spice-{primary}-{secondary}.png`` in ``out_dir``."""

    surface = render_card(summary, fonts=fonts, images=images, base_dir=base_dir, timeout_s=timeout_s)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / summary.filename
    path.write_bytes(encode_png(surface))
    logger.info(
        "Saved result card",
        extra={"path": str(path), "width": surface.get_width(), "height": surface.get_height()},
    )
    return path

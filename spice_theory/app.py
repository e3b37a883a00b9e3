"""Pygame UI shell for Spice Theory.

Screens: main menu, quiz (main + bonus rounds), result, load error.
Session state, scoring and the card layout live in the core modules; this
shell only reads snapshots and forwards input.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame

from .log import configure_logger
from .progress import ProgressStore
from .quiz_data import QuizData, SpiceTheoryError, load_quiz_data
from .result_card import parse_colour, save_card, wrap_lines
from .results import BRAND, ResultSummary, build_result_summary
from .scoring_core import Phase, QuizSession, QuizSnapshot
from .settings import Settings

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 640)
TARGET_FPS = 60

BG = (17, 18, 23)
PANEL_BG = (27, 29, 39)
HEADER_BG = (36, 38, 52)
BORDER = (226, 228, 240)
TEXT_MAIN = (240, 241, 247)
TEXT_MUTED = (170, 174, 190)
ROW_BG = (32, 34, 46)
ROW_BORDER = (70, 74, 96)
ACTIVE_BG = (244, 245, 252)
ACTIVE_TEXT = (20, 22, 30)
BAR_FILL = (106, 92, 255)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


@dataclass(frozen=True, slots=True)
class QuizContext:
    data: QuizData
    store: ProgressStore
    settings: Settings


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    @property
    def top(self) -> Screen | None:
        return self._screens[-1] if self._screens else None

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def replace(self, screen: Screen) -> None:
        if self._screens:
            self._screens[-1] = screen
        else:
            self._screens.append(screen)

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


def _draw_wrapped_text(
    surface: pygame.Surface,
    text: str,
    rect: pygame.Rect,
    *,
    color: tuple[int, int, int],
    font: pygame.font.Font,
    max_lines: int,
) -> int:
    """Draw word-wrapped text inside ``rect``; returns the y below the last line."""

    y = rect.y
    line_h = font.get_linesize() + 2
    for line in wrap_lines(font, text, rect.w)[: max(0, max_lines)]:
        to_draw = line
        if font.size(to_draw)[0] > rect.w:
            while to_draw and font.size(f"{to_draw}...")[0] > rect.w:
                to_draw = to_draw[:-1]
            to_draw = f"{to_draw}..." if to_draw else "..."
        surface.blit(font.render(to_draw, True, color), (rect.x, y))
        y += line_h
    return y


def _frame(surface: pygame.Surface, tag: str, title: str, tag_font: pygame.font.Font, title_font: pygame.font.Font) -> tuple[pygame.Rect, pygame.Rect]:
    w, h = surface.get_size()
    surface.fill(BG)

    margin = max(10, min(26, w // 34))
    frame = pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))
    pygame.draw.rect(surface, PANEL_BG, frame)
    pygame.draw.rect(surface, BORDER, frame, 2)

    header_h = max(34, min(52, h // 8))
    header = pygame.Rect(frame.x + 2, frame.y + 2, frame.w - 4, header_h)
    pygame.draw.rect(surface, HEADER_BG, header)
    pygame.draw.line(surface, BORDER, (header.x, header.bottom), (header.right, header.bottom), 1)

    tag_img = tag_font.render(tag, True, TEXT_MUTED)
    surface.blit(tag_img, (header.x + 12, header.y + (header.h - tag_img.get_height()) // 2))
    title_img = title_font.render(title, True, TEXT_MAIN)
    surface.blit(title_img, title_img.get_rect(center=(frame.centerx, header.centery)))
    return frame, header


def _copy_to_clipboard(text: str) -> bool:
    try:
        if not pygame.scrap.get_init():
            pygame.scrap.init()
        pygame.scrap.put_text(text)
    except (pygame.error, AttributeError, NotImplementedError) as exc:
        logger.info("Clipboard unavailable", extra={"error": str(exc)})
        return False
    return True


class MenuScreen:
    def __init__(
        self,
        app: App,
        title: str,
        items: Callable[[], list[MenuItem]],
        *,
        is_root: bool = False,
    ) -> None:
        self._app = app
        self._title = title
        self._items_fn = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def _items(self) -> list[MenuItem]:
        items = self._items_fn()
        if items:
            self._selected = min(self._selected, len(items) - 1)
        return items

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def _move(self, delta: int) -> None:
        items = self._items()
        if not items:
            return
        self._selected = (self._selected + delta) % len(items)

    def _activate(self) -> None:
        items = self._items()
        if not items:
            return
        items[self._selected].action()

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        frame, header = _frame(surface, "MENU", self._title, self._hint_font, self._title_font)
        items = self._items()

        row_h = 44
        gap = 10
        total_h = row_h * len(items) + gap * max(0, len(items) - 1)
        y = header.bottom + max(24, (frame.bottom - header.bottom - total_h) // 2)
        for idx, item in enumerate(items):
            row = pygame.Rect(frame.x + 60, y, frame.w - 120, row_h)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACTIVE_BG if selected else ROW_BG, row, border_radius=8)
            pygame.draw.rect(surface, ROW_BORDER, row, 1, border_radius=8)
            text = self._item_font.render(item.label, True, ACTIVE_TEXT if selected else TEXT_MAIN)
            surface.blit(text, (row.x + 14, row.y + (row.h - text.get_height()) // 2))
            y += row_h + gap

        foot = self._hint_font.render("Enter/Space: Select  |  Esc: Back", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class ErrorScreen:
    """Visible, non-crashing load failure; the quiz never starts."""

    def __init__(self, app: App, message: str) -> None:
        self._app = app
        self._message = message
        self._title_font = pygame.font.Font(None, 42)
        self._body_font = pygame.font.Font(None, 28)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN and event.key in (pygame.K_ESCAPE, pygame.K_RETURN, pygame.K_q):
            self._app.quit()

    def render(self, surface: pygame.Surface) -> None:
        frame, header = _frame(surface, "ERROR", BRAND, self._hint_font, self._title_font)
        body = pygame.Rect(frame.x + 30, header.bottom + 30, frame.w - 60, frame.h - header.h - 90)
        y = _draw_wrapped_text(
            surface,
            "Error loading quiz data.",
            body,
            color=(255, 150, 150),
            font=self._title_font,
            max_lines=1,
        )
        _draw_wrapped_text(
            surface,
            self._message,
            pygame.Rect(body.x, y + 12, body.w, body.h),
            color=TEXT_MUTED,
            font=self._body_font,
            max_lines=8,
        )
        foot = self._hint_font.render("Esc/Enter: Quit", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class QuizScreen:
    def __init__(self, app: App, *, session: QuizSession, context: QuizContext) -> None:
        self._app = app
        self._session = session
        self._context = context
        self._cursor = 0
        self._cursor_key: tuple[str, int, int] | None = None
        self._option_hitboxes: list[tuple[pygame.Rect, str]] = []

        self._title_font = pygame.font.Font(None, 42)
        self._prompt_font = pygame.font.Font(None, 40)
        self._option_font = pygame.font.Font(None, 30)
        self._small_font = pygame.font.Font(None, 24)
        self._hint_font = pygame.font.Font(None, 22)

    def _sync_cursor(self, snap: QuizSnapshot) -> None:
        key = (snap.phase.value, snap.index, snap.generation)
        if key == self._cursor_key:
            return
        self._cursor_key = key
        self._cursor = 0
        for i, opt in enumerate(snap.options):
            if opt.category == snap.selected:
                self._cursor = i
                break

    def _choose(self, snap: QuizSnapshot, option_index: int) -> None:
        if not (0 <= option_index < len(snap.options)):
            return
        self._cursor = option_index
        self._session.select_current(snap.options[option_index].category)
        self._after_action()

    def _after_action(self) -> None:
        self._context.store.save_session(self._session)
        if self._session.phase is Phase.RESULT:
            self._app.replace(ResultScreen(self._app, session=self._session, context=self._context))

    def handle_event(self, event: pygame.event.Event) -> None:
        snap = self._session.snapshot()
        self._sync_cursor(snap)

        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            for rect, category in self._option_hitboxes:
                if rect.collidepoint(event.pos):
                    idx = next((i for i, o in enumerate(snap.options) if o.category == category), -1)
                    self._choose(snap, idx)
                    return
            return

        if event.type != pygame.KEYDOWN:
            return
        key = event.key

        if key == pygame.K_ESCAPE:
            self._context.store.save_session(self._session)
            self._app.pop()
            return
        if key in (pygame.K_UP, pygame.K_w) and snap.options:
            self._choose(snap, (self._cursor - 1) % len(snap.options))
            return
        if key in (pygame.K_DOWN, pygame.K_s) and snap.options:
            self._choose(snap, (self._cursor + 1) % len(snap.options))
            return
        if pygame.K_1 <= key <= pygame.K_9:
            self._choose(snap, key - pygame.K_1)
            return
        if key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_RIGHT):
            self._session.advance()
            self._after_action()
            return
        if key in (pygame.K_LEFT, pygame.K_BACKSPACE):
            self._session.retreat()
            self._after_action()
            return
        if key == pygame.K_TAB:
            self._session.skip()
            self._after_action()
            return

    def render(self, surface: pygame.Surface) -> None:
        snap = self._session.snapshot()
        self._sync_cursor(snap)
        tag = "BONUS" if snap.phase is Phase.BONUS else "QUIZ"
        frame, header = _frame(surface, tag, BRAND, self._hint_font, self._title_font)

        bar_bg = pygame.Rect(frame.x + 30, header.bottom + 18, frame.w - 60, 10)
        pygame.draw.rect(surface, ROW_BG, bar_bg, border_radius=5)
        fill = pygame.Rect(bar_bg.x, bar_bg.y, int(bar_bg.w * snap.progress), bar_bg.h)
        if fill.w > 0:
            pygame.draw.rect(surface, BAR_FILL, fill, border_radius=5)
        progress = self._small_font.render(snap.progress_text, True, TEXT_MUTED)
        surface.blit(progress, (bar_bg.x, bar_bg.bottom + 8))

        y = bar_bg.bottom + 40
        if snap.phase is Phase.BONUS:
            names = [self._display_name(k) for k in (snap.tie or ())]
            sub = self._small_font.render(f"Tie-breaker: {' vs '.join(names)}", True, BAR_FILL)
            surface.blit(sub, (bar_bg.x, y))
            y += sub.get_height() + 8

        y = _draw_wrapped_text(
            surface,
            snap.prompt,
            pygame.Rect(bar_bg.x, y, bar_bg.w, 120),
            color=TEXT_MAIN,
            font=self._prompt_font,
            max_lines=3,
        )

        self._option_hitboxes = []
        row_h = 40
        y += 14
        for idx, opt in enumerate(snap.options):
            row = pygame.Rect(bar_bg.x, y, bar_bg.w, row_h)
            chosen = opt.category == snap.selected
            focused = idx == self._cursor
            pygame.draw.rect(surface, ACTIVE_BG if chosen else ROW_BG, row, border_radius=8)
            pygame.draw.rect(surface, BAR_FILL if focused else ROW_BORDER, row, 2 if focused else 1, border_radius=8)
            marker = "(*)" if chosen else "( )"
            label = self._option_font.render(f"{idx + 1}. {marker} {opt.label}", True, ACTIVE_TEXT if chosen else TEXT_MAIN)
            surface.blit(label, (row.x + 12, row.y + (row.h - label.get_height()) // 2))
            self._option_hitboxes.append((row, opt.category))
            y += row_h + 8

        parts = ["Up/Down or 1-9: Choose"]
        if snap.can_advance:
            parts.append("Enter: Next")
        if snap.can_retreat:
            parts.append("Left: Back")
        if snap.can_skip:
            parts.append("Tab: Skip")
        parts.append("Esc: Menu")
        foot = self._hint_font.render("  |  ".join(parts), True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))

    def _display_name(self, key: str) -> str:
        meta = self._context.data.category(key)
        return meta.name if meta is not None else key.capitalize()


class ResultScreen:
    def __init__(self, app: App, *, session: QuizSession, context: QuizContext) -> None:
        self._app = app
        self._session = session
        self._context = context
        result = session.result
        assert result is not None
        self._summary: ResultSummary = build_result_summary(result, context.data)
        self._status = ""
        self._share_fallback: str | None = None

        self._title_font = pygame.font.Font(None, 42)
        self._result_font = pygame.font.Font(None, 64)
        self._heading_font = pygame.font.Font(None, 30)
        self._body_font = pygame.font.Font(None, 24)
        self._hint_font = pygame.font.Font(None, 22)

    @property
    def summary(self) -> ResultSummary:
        return self._summary

    @property
    def status(self) -> str:
        return self._status

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key == pygame.K_p:
            self._save_png()
        elif key == pygame.K_c:
            self._share()
        elif key == pygame.K_r:
            self._retake()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()

    def _save_png(self) -> None:
        settings = self._context.settings
        try:
            path = save_card(
                self._summary,
                settings.export_dir,
                base_dir=self._context.data.base_dir,
                timeout_s=settings.http_timeout_s,
            )
        except (pygame.error, OSError) as exc:
            logger.error("Could not save result card", extra={"error": str(exc)})
            self._status = "Could not save the PNG. Please try again."
            return
        self._status = f"Saved PNG: {path}"

    def _share(self) -> None:
        text = self._summary.share_text
        if _copy_to_clipboard(text):
            self._share_fallback = None
            self._status = "Copied result to clipboard"
        else:
            self._share_fallback = text
            self._status = "Copy this:"

    def _retake(self) -> None:
        self._context.store.clear()
        self._session.start()
        self._app.replace(QuizScreen(self._app, session=self._session, context=self._context))

    def render(self, surface: pygame.Surface) -> None:
        s = self._summary
        frame, header = _frame(surface, "RESULT", BRAND, self._hint_font, self._title_font)
        x = frame.x + 30
        w = frame.w - 60
        y = header.bottom + 18

        title = self._result_font.render(s.title, True, TEXT_MAIN)
        surface.blit(title, (x, y))
        accent = parse_colour(s.accent)
        pygame.draw.rect(surface, accent, pygame.Rect(x, y + title.get_height() + 4, title.get_width(), 5))
        y += title.get_height() + 20

        bx = x
        for text, emphasised in s.badges:
            self._heading_font.set_bold(emphasised)
            label = self._heading_font.render(text, True, TEXT_MAIN)
            self._heading_font.set_bold(False)
            pill = pygame.Rect(bx, y, label.get_width() + 28, label.get_height() + 12)
            pygame.draw.rect(surface, ROW_BG, pill, border_radius=pill.h // 2)
            pygame.draw.rect(surface, accent if emphasised else ROW_BORDER, pill, 2, border_radius=pill.h // 2)
            surface.blit(label, (pill.x + 14, pill.y + 6))
            bx = pill.right + 10
        y += 48

        y = _draw_wrapped_text(surface, s.blurb, pygame.Rect(x, y, w, 80), color=TEXT_MUTED, font=self._body_font, max_lines=3)
        y += 10

        # Secondary first, then the emphasised primary.
        sections: list[tuple[str, str]] = []
        if s.is_pure:
            sections.append(("Your type (100%)", s.primary_description))
        else:
            sections.append((f"Secondary subtype, {s.secondary_name} ({s.secondary_percent}%)", s.secondary_description))
            sections.append((f"Primary type, {s.primary_name} ({s.primary_percent}%)", s.primary_description))
        for heading, body in sections:
            surface.blit(self._heading_font.render(heading, True, TEXT_MAIN), (x, y))
            y += self._heading_font.get_linesize() + 4
            y = _draw_wrapped_text(surface, body, pygame.Rect(x, y, w, 100), color=TEXT_MUTED, font=self._body_font, max_lines=4)
            y += 8

        if self._status:
            status = self._body_font.render(self._status, True, BAR_FILL)
            surface.blit(status, (x, frame.bottom - 64))
            if self._share_fallback:
                _draw_wrapped_text(
                    surface,
                    self._share_fallback,
                    pygame.Rect(x + status.get_width() + 8, frame.bottom - 64, w - status.get_width() - 8, 40),
                    color=TEXT_MAIN,
                    font=self._body_font,
                    max_lines=2,
                )

        foot = self._hint_font.render("P: Save PNG  |  C: Copy share text  |  R: Retake  |  Esc: Menu", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    settings: Settings | None = None,
) -> int:
    cfg = settings or Settings.from_env()
    configure_logger(log_dir=cfg.log_dir, level=cfg.log_level)

    pygame.init()
    pygame.display.set_caption(BRAND)
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    store = ProgressStore(cfg.progress_path)

    try:
        data = load_quiz_data(cfg.data_source, timeout_s=cfg.http_timeout_s)
    except SpiceTheoryError as exc:
        app.push(ErrorScreen(app, str(exc)))
    else:
        context = QuizContext(data=data, store=store, settings=cfg)

        def open_quiz(resume: bool) -> None:
            session = QuizSession(data=data, seed=_new_seed(), policy=cfg.scoring_policy)
            if resume:
                store.restore_into(session)
            else:
                store.clear()
            app.push(QuizScreen(app, session=session, context=context))

        def main_items() -> list[MenuItem]:
            items = [MenuItem("Start quiz", lambda: open_quiz(False))]
            if store.has_progress():
                items.append(MenuItem("Resume quiz", lambda: open_quiz(True)))
            items.append(MenuItem("Quit", app.quit))
            return items

        app.push(MenuScreen(app, "Main Menu", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0

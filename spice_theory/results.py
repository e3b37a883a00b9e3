from __future__ import annotations

from dataclasses import dataclass

from .quiz_data import DEFAULT_ACCENT, QuizData
from .scoring_core import QuizResult

BRAND = "Spice Theory"
WATERMARK = "tinyurl.com/Spice-Theory"


@dataclass(frozen=True, slots=True)
class ResultSummary:
    """Display-ready summary of a resolved quiz.

    Shared by the on-screen result view and the PNG card so both always agree.
    """

    primary_key: str
    secondary_key: str
    primary_name: str
    secondary_name: str
    primary_percent: int
    secondary_percent: int
    is_pure: bool

    title: str
    blurb: str
    primary_description: str
    secondary_description: str
    accent: str
    primary_image: str
    secondary_image: str

    @property
    def badges(self) -> tuple[tuple[str, bool], ...]:
        """(text, emphasised) pills: secondary first, then the bold primary."""

        if self.is_pure:
            return ((f"{self.primary_name} 100%", True),)
        return (
            (f"{self.secondary_name} {self.secondary_percent}%", False),
            (f"{self.primary_name} {self.primary_percent}%", True),
        )

    @property
    def filename(self) -> str:
        return f"spice-{self.primary_key}-{self.secondary_key}.png"

    @property
    def share_text(self) -> str:
        if self.is_pure:
            mix = f"{self.primary_name} 100%"
        else:
            mix = (
                f"{self.secondary_name} {self.secondary_percent}% / "
                f"{self.primary_name} {self.primary_percent}%"
            )
        return f"I'm {self.title}! ({mix}) Take the {BRAND} quiz: {WATERMARK}"


def result_title(data: QuizData, primary: str, secondary: str) -> str:
    if primary == secondary:
        meta = data.category(primary)
        return meta.pure_title if meta is not None and meta.pure_title else primary.capitalize()
    return f"{secondary.capitalize()} {primary.capitalize()}"


def build_result_summary(result: QuizResult, data: QuizData) -> ResultSummary:
    """Build a ResultSummary from a resolved QuizResult."""

    p_meta = data.category(result.primary)
    s_meta = data.category(result.secondary)
    p_name = p_meta.name if p_meta is not None else result.primary.capitalize()
    s_name = s_meta.name if s_meta is not None else result.secondary.capitalize()

    return ResultSummary(
        primary_key=result.primary,
        secondary_key=result.secondary,
        primary_name=p_name,
        secondary_name=s_name,
        primary_percent=int(result.primary_percent),
        secondary_percent=int(result.secondary_percent),
        is_pure=bool(result.is_pure),
        title=result_title(data, result.primary, result.secondary),
        blurb=data.blurbs.get(f"{result.primary}:{result.secondary}", ""),
        primary_description=data.descriptions.get(result.primary, ""),
        secondary_description="" if result.is_pure else data.descriptions.get(result.secondary, ""),
        accent=p_meta.colour if p_meta is not None and p_meta.colour else DEFAULT_ACCENT,
        primary_image="" if p_meta is None else p_meta.image,
        secondary_image="" if s_meta is None or result.is_pure else s_meta.image,
    )

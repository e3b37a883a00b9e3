"""Static quiz configuration: spices, question pools, blurbs and descriptions.

The document is the ``archetypes.json`` shape used by the web widget. It is
validated up front so a session can never start from a half-usable bank.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_ACCENT = "#6a5cff"
BUNDLED_DATA_PATH = Path(__file__).resolve().parent / "data" / "archetypes.json"


class SpiceTheoryError(Exception):
    """Base class for all Spice Theory errors."""


class ConfigurationError(SpiceTheoryError):
    """Quiz data is structurally unusable (empty pool, unknown spice, ...)."""


class QuizDataLoadError(SpiceTheoryError):
    """Quiz data could not be fetched or decoded."""


@dataclass(frozen=True, slots=True)
class Category:
    key: str
    name: str
    image: str = ""
    colour: str = DEFAULT_ACCENT
    color_class: str = ""
    pure_title: str = ""


@dataclass(frozen=True, slots=True)
class Option:
    label: str
    category: str


@dataclass(frozen=True, slots=True)
class Question:
    qid: int  # position within its pool
    text: str
    options: tuple[Option, ...]

    def categories(self) -> tuple[str, ...]:
        return tuple(o.category for o in self.options)

    def offers(self, category: str) -> bool:
        return any(o.category == category for o in self.options)


@dataclass(frozen=True, slots=True)
class QuizData:
    categories: tuple[Category, ...]
    questions: tuple[Question, ...]
    bonus: tuple[Question, ...]
    blurbs: dict[str, str] = field(default_factory=dict)
    descriptions: dict[str, str] = field(default_factory=dict)
    base_dir: Path | None = None

    def category_keys(self) -> tuple[str, ...]:
        return tuple(c.key for c in self.categories)

    def category(self, key: str) -> Category | None:
        for c in self.categories:
            if c.key == key:
                return c
        return None


def validate_quiz_data(data: QuizData) -> None:
    """Raise ConfigurationError unless a session can be started from ``data``."""

    if not data.categories:
        raise ConfigurationError("quiz data defines no spices")
    keys = data.category_keys()
    if len(set(keys)) != len(keys):
        raise ConfigurationError("duplicate spice keys in quiz data")
    if not data.questions:
        raise ConfigurationError("main question pool is empty")

    known = set(keys)
    for pool_name, pool in (("questions", data.questions), ("bonus", data.bonus)):
        for q in pool:
            where = f"{pool_name}[{q.qid}]"
            if pool_name == "questions" and len(q.options) < 2:
                raise ConfigurationError(f"{where} has fewer than 2 options")
            for opt in q.options:
                if opt.category not in known:
                    raise ConfigurationError(f"{where} references unknown spice {opt.category!r}")


def parse_quiz_data(payload: object, *, base_dir: Path | None = None) -> QuizData:
    """Build validated QuizData from a decoded JSON document."""

    if not isinstance(payload, dict):
        raise ConfigurationError("quiz data must be a JSON object")

    raw_spices = payload.get("spices")
    if not isinstance(raw_spices, list):
        raise ConfigurationError("'spices' must be a list")
    categories: list[Category] = []
    for item in raw_spices:
        if not isinstance(item, dict):
            raise ConfigurationError("each spice must be an object")
        key = str(item.get("key", "")).strip()
        if key == "":
            raise ConfigurationError("spice is missing a key")
        name = str(item.get("name", "")).strip() or key.capitalize()
        categories.append(
            Category(
                key=key,
                name=name,
                image=str(item.get("image") or ""),
                colour=str(item.get("colour") or item.get("color") or DEFAULT_ACCENT),
                color_class=str(item.get("colorClass") or key),
                pure_title=str(item.get("pureTitle") or name),
            )
        )

    data = QuizData(
        categories=tuple(categories),
        questions=_parse_pool(payload.get("questions"), "questions"),
        bonus=_parse_pool(payload.get("bonus", []), "bonus"),
        blurbs=_parse_text_map(payload.get("resultBlurbs", {}), "resultBlurbs"),
        descriptions=_parse_text_map(payload.get("descriptions", {}), "descriptions"),
        base_dir=base_dir,
    )
    validate_quiz_data(data)
    return data


def _parse_pool(raw: Any, name: str) -> tuple[Question, ...]:
    if not isinstance(raw, list):
        raise ConfigurationError(f"'{name}' must be a list")
    pool: list[Question] = []
    for qid, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigurationError(f"{name}[{qid}] must be an object")
        raw_opts = item.get("options")
        if not isinstance(raw_opts, list):
            raise ConfigurationError(f"{name}[{qid}] has no options list")
        options: list[Option] = []
        for opt in raw_opts:
            if not isinstance(opt, dict):
                raise ConfigurationError(f"{name}[{qid}] option must be an object")
            options.append(Option(label=str(opt.get("label", "")), category=str(opt.get("spice", ""))))
        pool.append(Question(qid=qid, text=str(item.get("text", "")), options=tuple(options)))
    return tuple(pool)


def _parse_text_map(raw: Any, name: str) -> dict[str, str]:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"'{name}' must be an object")
    return {str(k): str(v) for k, v in raw.items()}


def is_remote(source: str | Path) -> bool:
    return str(source).lower().startswith(("http://", "https://"))


def load_quiz_data(source: str | Path | None = None, *, timeout_s: float = 10.0) -> QuizData:
    """Load quiz data from a file path or an http(s) URL.

    Fetch and decode problems raise QuizDataLoadError; shape problems raise
    ConfigurationError.
    """

    src = BUNDLED_DATA_PATH if source is None or str(source).strip() == "" else source
    if is_remote(src):
        try:
            response = requests.get(str(src), timeout=timeout_s)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to load quiz data", extra={"source": str(src), "error": str(exc)})
            raise QuizDataLoadError(f"Failed to load quiz data from {src}: {exc}") from exc
        base_dir = None
    else:
        path = Path(src).expanduser()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load quiz data", extra={"source": str(path), "error": str(exc)})
            raise QuizDataLoadError(f"Failed to load quiz data from {path}: {exc}") from exc
        base_dir = path.parent

    data = parse_quiz_data(payload, base_dir=base_dir)
    logger.info(
        "Loaded quiz data",
        extra={
            "source": str(src),
            "spices": len(data.categories),
            "questions": len(data.questions),
            "bonus": len(data.bonus),
        },
    )
    return data

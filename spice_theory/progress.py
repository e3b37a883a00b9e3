from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .scoring_core import Phase, QuizSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SavedProgress:
    order: tuple[int, ...]  # main-pool qids in presented order
    answers: tuple[str | None, ...]
    index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": list(self.order),
            "answers": list(self.answers),
            "index": int(self.index),
        }

    @classmethod
    def from_dict(cls, data: object) -> "SavedProgress | None":
        if not isinstance(data, dict):
            return None
        raw_order = data.get("order")
        raw_answers = data.get("answers")
        if not isinstance(raw_order, list) or not isinstance(raw_answers, list):
            return None
        try:
            order = tuple(int(q) for q in raw_order)
            index = int(data.get("index", 0))
        except (TypeError, ValueError):
            return None
        answers = tuple(None if a is None else str(a) for a in raw_answers)
        return cls(order=order, answers=answers, index=index)

    @classmethod
    def from_session(cls, session: QuizSession) -> "SavedProgress":
        state = session.state
        return cls(
            order=tuple(q.qid for q in state.questions),
            answers=state.answers,
            index=state.index,
        )


class ProgressStore:
    """Best-effort, non-authoritative main-round progress file.

    IO failures are logged and ignored; a missing or corrupt file reads as no progress.
    """

    _version = 1

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SavedProgress | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable progress file", extra={"path": str(self._path), "error": str(exc)})
            return None
        if not isinstance(payload, dict) or payload.get("version") != self._version:
            return None
        return SavedProgress.from_dict(payload.get("progress"))

    def has_progress(self) -> bool:
        return self._path.exists()

    def save(self, progress: SavedProgress) -> None:
        payload = {"version": self._version, "progress": progress.to_dict()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Could not save progress", extra={"path": str(self._path), "error": str(exc)})

    def save_session(self, session: QuizSession) -> None:
        # Only the main round is resumable; a finished quiz leaves nothing to resume.
        if session.phase is Phase.RESULT:
            self.clear()
            return
        if session.phase is Phase.MAIN:
            self.save(SavedProgress.from_session(session))

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not clear progress", extra={"path": str(self._path), "error": str(exc)})

    def restore_into(self, session: QuizSession) -> bool:
        progress = self.load()
        if progress is None:
            return False
        if session.restore(order=progress.order, answers=progress.answers, index=progress.index):
            return True
        self.clear()
        return False

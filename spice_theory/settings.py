from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .scoring_core import ScoringPolicy, TiePolicy

DATA_ENV = "SPICE_THEORY_DATA"
PROGRESS_PATH_ENV = "SPICE_THEORY_PROGRESS_PATH"
EXPORT_DIR_ENV = "SPICE_THEORY_EXPORT_DIR"
LOG_DIR_ENV = "SPICE_THEORY_LOG_DIR"
LOG_LEVEL_ENV = "SPICE_THEORY_LOG_LEVEL"
TIE_POLICY_ENV = "SPICE_THEORY_TIE_POLICY"
COLLAPSE_PURE_ENV = "SPICE_THEORY_COLLAPSE_PURE"
HTTP_TIMEOUT_ENV = "SPICE_THEORY_HTTP_TIMEOUT"


@dataclass(frozen=True, slots=True)
class Settings:
    data_source: str | None
    progress_path: Path
    export_dir: Path
    log_dir: Path
    log_level: str = "INFO"
    tie_policy: TiePolicy = TiePolicy.SHARED_MAX
    collapse_pure: bool = True
    http_timeout_s: float = 10.0

    @property
    def scoring_policy(self) -> ScoringPolicy:
        return ScoringPolicy(tie=self.tie_policy, collapse_pure=self.collapse_pure)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        home = Path.home()

        data_source = env.get(DATA_ENV, "").strip() or None

        progress_raw = env.get(PROGRESS_PATH_ENV, "").strip()
        progress_path = Path(progress_raw).expanduser() if progress_raw else home / ".spice_theory_progress.json"

        export_raw = env.get(EXPORT_DIR_ENV, "").strip()
        if export_raw:
            export_dir = Path(export_raw).expanduser()
        else:
            pictures = home / "Pictures"
            export_dir = pictures if pictures.is_dir() else home

        log_raw = env.get(LOG_DIR_ENV, "").strip()
        log_dir = Path(log_raw).expanduser() if log_raw else home / ".spice_theory" / "logs"

        try:
            tie_policy = TiePolicy(env.get(TIE_POLICY_ENV, TiePolicy.SHARED_MAX.value).strip().lower())
        except ValueError:
            tie_policy = TiePolicy.SHARED_MAX

        try:
            timeout = float(env.get(HTTP_TIMEOUT_ENV, "10"))
        except ValueError:
            timeout = 10.0
        if timeout <= 0:
            timeout = 10.0

        return cls(
            data_source=data_source,
            progress_path=progress_path,
            export_dir=export_dir,
            log_dir=log_dir,
            log_level=env.get(LOG_LEVEL_ENV, "INFO").strip() or "INFO",
            tie_policy=tie_policy,
            collapse_pure=env.get(COLLAPSE_PURE_ENV, "1").strip() != "0",
            http_timeout_s=timeout,
        )

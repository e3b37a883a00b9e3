"""Smoke tests for the pygame UI.

These tests verify that the application's main loop can initialise and
execute a handful of frames without crashing when the SDL dummy video
driver is used, including when the quiz data cannot be loaded.
"""

from __future__ import annotations

import os
from pathlib import Path

# Use the dummy drivers before importing pygame or the application
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def _settings(tmp_path: Path, data_source: str | None = None):
    from spice_theory.settings import Settings

    return Settings(
        data_source=data_source,
        progress_path=tmp_path / "progress.json",
        export_dir=tmp_path / "cards",
        log_dir=tmp_path / "logs",
    )


def test_app_runs_headless(tmp_path: Path) -> None:
    """Ensure the application can start and run a few frames headlessly."""
    # Import inside the test so that environment variables take effect
    from spice_theory.app import run

    exit_code = run(max_frames=3, settings=_settings(tmp_path))
    assert exit_code == 0
    assert (tmp_path / "logs" / "spice_theory.log").exists()


def test_app_survives_unloadable_data(tmp_path: Path) -> None:
    from spice_theory.app import run

    settings = _settings(tmp_path, data_source=str(tmp_path / "missing.json"))

    assert run(max_frames=3, settings=settings) == 0
    log_text = (tmp_path / "logs" / "spice_theory.log").read_text(encoding="utf-8")
    assert "Failed to load quiz data" in log_text


def test_app_survives_undecodable_data(tmp_path: Path) -> None:
    from spice_theory.app import run

    bad = tmp_path / "bad.json"
    bad.write_bytes(b"\xff\xfe")

    assert run(max_frames=2, settings=_settings(tmp_path, data_source=str(bad))) == 0

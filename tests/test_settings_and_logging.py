from __future__ import annotations

import json
import logging
from pathlib import Path

from spice_theory.log import JsonLogFormatter, configure_logger
from spice_theory.scoring_core import TiePolicy
from spice_theory.settings import Settings


def test_settings_defaults_from_empty_env() -> None:
    settings = Settings.from_env({})

    assert settings.data_source is None
    assert settings.progress_path.name == ".spice_theory_progress.json"
    assert settings.log_level == "INFO"
    assert settings.tie_policy is TiePolicy.SHARED_MAX
    assert settings.collapse_pure is True
    assert settings.http_timeout_s == 10.0
    assert settings.scoring_policy.tie is TiePolicy.SHARED_MAX


def test_settings_overrides(tmp_path: Path) -> None:
    env = {
        "SPICE_THEORY_DATA": "https://example.com/archetypes.json",
        "SPICE_THEORY_PROGRESS_PATH": str(tmp_path / "p.json"),
        "SPICE_THEORY_EXPORT_DIR": str(tmp_path / "cards"),
        "SPICE_THEORY_LOG_DIR": str(tmp_path / "logs"),
        "SPICE_THEORY_LOG_LEVEL": "debug",
        "SPICE_THEORY_TIE_POLICY": "TOP_TWO",
        "SPICE_THEORY_COLLAPSE_PURE": "0",
        "SPICE_THEORY_HTTP_TIMEOUT": "3.5",
    }

    settings = Settings.from_env(env)

    assert settings.data_source == "https://example.com/archetypes.json"
    assert settings.progress_path == tmp_path / "p.json"
    assert settings.export_dir == tmp_path / "cards"
    assert settings.log_dir == tmp_path / "logs"
    assert settings.tie_policy is TiePolicy.TOP_TWO
    assert settings.collapse_pure is False
    assert settings.scoring_policy.collapse_pure is False
    assert settings.http_timeout_s == 3.5


def test_settings_bad_values_fall_back() -> None:
    settings = Settings.from_env(
        {"SPICE_THEORY_TIE_POLICY": "coin_flip", "SPICE_THEORY_HTTP_TIMEOUT": "-1"}
    )

    assert settings.tie_policy is TiePolicy.SHARED_MAX
    assert settings.http_timeout_s == 10.0


def test_json_formatter_includes_extras() -> None:
    record = logging.makeLogRecord(
        {"name": "spice_theory.test", "levelname": "INFO", "msg": "hello %s", "args": ("there",)}
    )
    record.path = Path("/tmp/card.png")
    record.counts = {"posh": 3}

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["message"] == "hello there"
    assert payload["logger"] == "spice_theory.test"
    assert payload["extra"] == {"path": "/tmp/card.png", "counts": {"posh": 3}}


def test_configure_logger_writes_json_lines(tmp_path: Path) -> None:
    logger, path = configure_logger(log_dir=tmp_path / "logs", level="INFO", name="spice_theory_test_logger")
    try:
        logger.info("Quiz started", extra={"generation": 2})
        logger.debug("filtered out")
        for handler in logger.handlers:
            handler.flush()

        lines = path.read_text(encoding="utf-8").strip().splitlines()
        assert path.parent == tmp_path / "logs"
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["message"] == "Quiz started"
        assert entry["extra"] == {"generation": 2}

        # Reconfiguring replaces the file handler instead of stacking another.
        configure_logger(log_dir=tmp_path / "logs", name="spice_theory_test_logger")
        assert len(logger.handlers) == 1
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

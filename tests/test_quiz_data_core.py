from __future__ import annotations

import json
from pathlib import Path

import pytest
import requests

from spice_theory import quiz_data
from spice_theory.quiz_data import (
    BUNDLED_DATA_PATH,
    ConfigurationError,
    QuizDataLoadError,
    SpiceTheoryError,
    is_remote,
    load_quiz_data,
    parse_quiz_data,
)


def _payload(**overrides: object) -> dict:
    payload: dict = {
        "spices": [
            {"key": "posh", "name": "Posh", "colour": "#000000", "pureTitle": "True Posh"},
            {"key": "baby", "name": "Baby"},
        ],
        "questions": [
            {
                "text": "Pick one",
                "options": [
                    {"label": "Heels", "spice": "posh"},
                    {"label": "Pigtails", "spice": "baby"},
                ],
            }
        ],
        "bonus": [
            {"text": "Tie?", "options": [{"label": "a", "spice": "posh"}, {"label": "b", "spice": "baby"}]}
        ],
        "resultBlurbs": {"posh:baby": "Blurb."},
        "descriptions": {"posh": "Polished."},
    }
    payload.update(overrides)
    return payload


def test_parse_fills_defaults() -> None:
    data = parse_quiz_data(_payload())

    assert data.category_keys() == ("posh", "baby")
    baby = data.category("baby")
    assert baby is not None
    assert baby.pure_title == "Baby"
    assert baby.colour == quiz_data.DEFAULT_ACCENT
    assert baby.color_class == "baby"
    assert data.category("ginger") is None

    q = data.questions[0]
    assert q.qid == 0
    assert q.categories() == ("posh", "baby")
    assert q.offers("posh") and not q.offers("scary")
    assert data.blurbs == {"posh:baby": "Blurb."}
    assert data.base_dir is None


def test_bonus_pool_is_optional() -> None:
    payload = _payload()
    del payload["bonus"]

    assert parse_quiz_data(payload).bonus == ()


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"spices": []}, "no spices"),
        ({"spices": [{"key": "posh"}, {"key": "posh"}]}, "duplicate"),
        ({"questions": []}, "empty"),
        ({"questions": [{"text": "x", "options": [{"label": "a", "spice": "posh"}]}]}, "fewer than 2"),
        (
            {"questions": [{"text": "x", "options": [{"label": "a", "spice": "posh"}, {"label": "b", "spice": "ginger"}]}]},
            "unknown spice",
        ),
        ({"bonus": [{"text": "x", "options": [{"label": "a", "spice": "scary"}]}]}, "unknown spice"),
        ({"spices": "posh"}, "'spices'"),
        ({"questions": {"text": "x"}}, "'questions'"),
    ],
)
def test_validation_rejects_unusable_data(overrides: dict, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        parse_quiz_data(_payload(**overrides))


def test_non_object_document_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        parse_quiz_data(["not", "an", "object"])


def test_load_from_file_sets_base_dir(tmp_path: Path) -> None:
    path = tmp_path / "quiz.json"
    path.write_text(json.dumps(_payload()), encoding="utf-8")

    data = load_quiz_data(path)

    assert data.base_dir == tmp_path
    assert len(data.questions) == 1


def test_missing_file_raises_load_error(tmp_path: Path) -> None:
    with pytest.raises(QuizDataLoadError):
        load_quiz_data(tmp_path / "nope.json")


def test_malformed_json_raises_load_error(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(QuizDataLoadError) as excinfo:
        load_quiz_data(path)
    assert isinstance(excinfo.value, SpiceTheoryError)


def test_non_utf8_file_raises_load_error(tmp_path: Path) -> None:
    path = tmp_path / "latin.json"
    path.write_bytes(b'{"spices": "\xff\xfe"}')

    with pytest.raises(QuizDataLoadError):
        load_quiz_data(path)


def test_bundled_data_loads_by_default() -> None:
    data = load_quiz_data()

    assert BUNDLED_DATA_PATH.exists()
    assert data.category_keys() == ("posh", "baby", "sporty", "ginger", "scary")
    assert len(data.questions) >= 10
    assert len(data.bonus) >= 5
    assert all(len(q.options) >= 2 for q in data.questions)
    assert set(data.descriptions) == set(data.category_keys())


def test_is_remote() -> None:
    assert is_remote("https://example.com/archetypes.json")
    assert is_remote("HTTP://example.com/a.json")
    assert not is_remote("/tmp/archetypes.json")
    assert not is_remote(Path("data/archetypes.json"))


class _FakeResponse:
    def __init__(self, payload: object, status: int = 200) -> None:
        self._payload = payload
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> object:
        return self._payload


def test_load_from_url_uses_requests(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, float]] = []

    def fake_get(url: str, timeout: float) -> _FakeResponse:
        calls.append((url, timeout))
        return _FakeResponse(_payload())

    monkeypatch.setattr(quiz_data.requests, "get", fake_get)

    data = load_quiz_data("https://example.com/archetypes.json", timeout_s=2.5)

    assert calls == [("https://example.com/archetypes.json", 2.5)]
    assert data.base_dir is None
    assert data.category_keys() == ("posh", "baby")


def test_http_error_raises_load_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(quiz_data.requests, "get", lambda url, timeout: _FakeResponse({}, status=404))

    with pytest.raises(QuizDataLoadError):
        load_quiz_data("https://example.com/missing.json")


def test_connection_error_raises_load_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(url: str, timeout: float) -> _FakeResponse:
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(quiz_data.requests, "get", boom)

    with pytest.raises(QuizDataLoadError, match="offline"):
        load_quiz_data("https://example.com/archetypes.json")

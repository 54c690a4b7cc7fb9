import json

from core import config
from core.logger import log


def test_log_emits_json_line(capsys, monkeypatch):
    monkeypatch.setattr(config, "LOG_LEVEL", "INFO")
    log("INFO", "render_enqueued", "Render request queued", job_id="abc", queue_position=1)

    entry = json.loads(capsys.readouterr().out.strip())
    assert entry["level"] == "INFO"
    assert entry["event"] == "render_enqueued"
    assert entry["message"] == "Render request queued"
    assert entry["payload"] == {"job_id": "abc", "queue_position": 1}
    assert "ts" in entry


def test_log_respects_level(capsys, monkeypatch):
    monkeypatch.setattr(config, "LOG_LEVEL", "WARN")
    log("DEBUG", "noise", "hidden")
    log("INFO", "noise", "hidden")
    log("ERROR", "render_job_failed", "shown")

    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["event"] == "render_job_failed"


def test_log_stringifies_unserialisable_payload(capsys, monkeypatch):
    monkeypatch.setattr(config, "LOG_LEVEL", "DEBUG")
    log("DEBUG", "render_staged", "Staged", files=["a"], path=object())

    entry = json.loads(capsys.readouterr().out.strip())
    assert entry["payload"]["files"] == ["a"]
    assert entry["payload"]["path"].startswith("<object object")

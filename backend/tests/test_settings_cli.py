from __future__ import annotations

import asyncio
import json
import logging

import pytest

from helpers import doubler_graph
from wireboard.cli import main, parse_inputs
from wireboard.run_logging import RunIdFilter, configure_logging, log_run
from wireboard.settings import get_settings


def test_settings_defaults() -> None:
    settings = get_settings()

    assert settings.run.max_steps == 0
    assert settings.remote.proxy_path == "/proxy"
    assert settings.remote.http_timeout_seconds == 30.0
    assert settings.remote.exchange_idle_seconds == 300.0
    assert settings.logging.level == "INFO"


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("WIREBOARD_MAX_STEPS", "50")
    monkeypatch.setenv("WIREBOARD_PROXY_PATH", "bridge")
    monkeypatch.setenv("WIREBOARD_HTTP_TIMEOUT_SECONDS", "oops")
    monkeypatch.setenv("WIREBOARD_LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.run.max_steps == 50
    assert settings.remote.proxy_path == "/bridge"
    assert settings.remote.http_timeout_seconds == 30.0
    assert settings.logging.level == "DEBUG"
    assert get_settings() is settings


def test_parse_inputs_decodes_json_values() -> None:
    assert parse_inputs(["n=3", "s=abc", 'obj={"a": [1]}', "empty="]) == {
        "n": 3,
        "s": "abc",
        "obj": {"a": [1]},
        "empty": "",
    }
    with pytest.raises(ValueError):
        parse_inputs(["novalue"])


def test_run_command_prints_outputs_as_json_lines(tmp_path, capsys) -> None:
    path = tmp_path / "doubler.json"
    path.write_text(doubler_graph().to_json(), encoding="utf-8")

    code = asyncio.run(main(["run", str(path), "--input", "x=4", "--kit", "sample_kit:make_kit"]))

    assert code == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert lines == [{"node": "out", "outputs": {"y": 8}}]


def test_run_command_reports_failures(tmp_path, capsys) -> None:
    code = asyncio.run(main(["run", str(tmp_path / "missing.json")]))

    assert code == 1
    assert "Run failed" in capsys.readouterr().err


def test_log_records_always_carry_run_id(caplog) -> None:
    configure_logging("INFO")
    record = logging.LogRecord("wireboard", logging.INFO, __file__, 1, "hello", None, None)

    assert RunIdFilter().filter(record)
    assert record.run_id == "system"

    with caplog.at_level(logging.INFO, logger="wireboard.run_logging"):
        log_run("run-1", "visited %s", "node")
    assert caplog.records[-1].run_id == "run-1"
    assert caplog.records[-1].getMessage() == "visited node"

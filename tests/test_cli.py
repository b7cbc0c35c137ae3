"""CLI entrypoint: argument handling and exit codes (no network)."""

from __future__ import annotations

import pytest

import main


def test_invalid_identity_exits_2(capsys, monkeypatch):
    monkeypatch.setenv("ZAPLYTICS_DISCOVER_RELAY_LIMIT", "false")
    code = main.main(["report", "--identity", "not-a-key", "--range", "7d", "--relay", "ws://127.0.0.1:9"])
    assert code == 2
    assert "error:" in capsys.readouterr().err


def test_unknown_range_exits_2(monkeypatch):
    monkeypatch.setenv("ZAPLYTICS_DISCOVER_RELAY_LIMIT", "false")
    assert main.main(["report", "--identity", "ab" * 32, "--range", "2w", "--relay", "ws://127.0.0.1:9"]) == 2


def test_custom_with_only_from_prints_awaiting_input(capsys, monkeypatch):
    import json

    monkeypatch.setenv("ZAPLYTICS_DISCOVER_RELAY_LIMIT", "false")
    code = main.main([
        "report", "--identity", "ab" * 32, "--range", "custom", "--from", "2024-01-01",
        "--relay", "ws://127.0.0.1:9",
    ])
    assert code == 0
    assert json.loads(capsys.readouterr().out)["status"] == "awaiting_input"


def test_command_is_required():
    with pytest.raises(SystemExit):
        main.main([])

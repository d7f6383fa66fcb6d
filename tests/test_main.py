"""Tests for the entry point wiring."""

from __future__ import annotations

import argparse

import yaml

from pointboard.config_loader import parse_config
from pointboard.main import Tracker, async_main, show_leaderboard


async def test_tracker_wires_config(db):
    config = parse_config({
        "database": {"path": ":memory:"},
        "points": {"per_story_point": 4},
        "retry": {"max_attempts": 5, "initial_delay_ms": 20},
    })
    tracker = Tracker(db, config)
    assert tracker.ledger.points_per_story_point == 4
    assert tracker.executor.max_attempts == 5
    assert tracker.task_completion.award_attempts == 5
    assert tracker.task_completion.award_initial_delay == 0.02
    assert tracker.auth.enabled is False


async def test_show_leaderboard_prints_ranks(db, seeded, capsys):
    tracker = Tracker(db, parse_config({"database": {"path": ":memory:"}}))
    await tracker.ledger.grant_manual(seeded["bob"]["id"], 30, seeded["manager"]["id"])

    entries = await show_leaderboard(tracker, limit=2)

    out = capsys.readouterr().out
    assert "Leaderboard" in out
    assert "Bob" in out
    assert entries[0]["user_id"] == seeded["bob"]["id"]


async def test_init_db_command_creates_file(tmp_path, capsys):
    db_path = tmp_path / "board.db"
    config_path = tmp_path / "pointboard.yaml"
    config_path.write_text(yaml.safe_dump({"database": {"path": str(db_path)}}))

    await async_main(argparse.Namespace(command="init-db", config=str(config_path)))

    assert db_path.exists()
    assert "Database initialized" in capsys.readouterr().out

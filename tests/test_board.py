"""Tests for BoardStore CRUD."""

from __future__ import annotations

import pytest

from pointboard.errors import AppError, ErrorKind


async def test_create_user_starts_with_zero_points(board, seeded):
    user = await board.get_user(seeded["alice"]["id"])
    assert user["total_points"] == 0
    assert user["role"] == "member"
    assert user["team_id"] == seeded["team"]["id"]


async def test_create_user_rejects_unknown_role(board):
    with pytest.raises(AppError) as exc_info:
        await board.create_user("x@example.com", "X", role="owner")
    assert exc_info.value.kind is ErrorKind.VALIDATION


async def test_ids_use_prefixes(seeded):
    assert seeded["team"]["id"].startswith("TEAM-")
    assert seeded["alice"]["id"].startswith("USR-")
    assert seeded["b1"]["id"].startswith("BRD-")
    assert seeded["l1"]["id"].startswith("LST-")
    assert seeded["t1"]["id"].startswith("TSK-")


async def test_lists_are_ordered_by_position(board, seeded):
    b1 = seeded["b1"]
    lists = await board.get_lists_by_board(b1["id"])
    assert [lst["name"] for lst in lists] == ["Todo", "Doing", "Done"]


async def test_create_list_rejects_negative_position(board, seeded):
    with pytest.raises(AppError) as exc_info:
        await board.create_list(seeded["b1"]["id"], "Bad", -1)
    assert exc_info.value.kind is ErrorKind.VALIDATION


async def test_find_board_list_ids(board, seeded):
    b1 = seeded["b1"]
    found = await board.find_board_list_ids(
        b1["id"], [seeded["l1"]["id"], seeded["x"]["id"], "LST-999"]
    )
    assert found == {seeded["l1"]["id"]}
    assert await board.find_board_list_ids(b1["id"], []) == set()


async def test_create_task_defaults(board, seeded):
    task = await board.get_task(seeded["t1"]["id"])
    assert task["story_points"] == 5
    assert task["assigned_to"] == seeded["alice"]["id"]
    assert task["completed_at"] is None


@pytest.mark.parametrize("story_points", [0, -1, True])
async def test_create_task_rejects_bad_story_points(board, seeded, story_points):
    with pytest.raises(AppError) as exc_info:
        await board.create_task(seeded["l1"]["id"], "Bad", story_points=story_points)
    assert exc_info.value.kind is ErrorKind.VALIDATION


async def test_get_tasks_by_list(board, seeded):
    extra = await board.create_task(seeded["l1"]["id"], "Second", position=1)
    tasks = await board.get_tasks_by_list(seeded["l1"]["id"])
    assert [t["id"] for t in tasks] == [seeded["t1"]["id"], extra["id"]]


async def test_assign_task(board, seeded):
    task = await board.assign_task(seeded["t1"]["id"], seeded["bob"]["id"])
    assert task["assigned_to"] == seeded["bob"]["id"]
    task = await board.assign_task(seeded["t1"]["id"], None)
    assert task["assigned_to"] is None


async def test_assign_task_unknown_assignee(board, seeded):
    with pytest.raises(AppError) as exc_info:
        await board.assign_task(seeded["t1"]["id"], "USR-999")
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


async def test_assign_unknown_task(board, seeded):
    with pytest.raises(AppError) as exc_info:
        await board.assign_task("TSK-999", seeded["bob"]["id"])
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


async def test_move_task(board, seeded):
    task = await board.move_task(seeded["t1"]["id"], seeded["l3"]["id"], 2)
    assert task["list_id"] == seeded["l3"]["id"]
    assert task["position"] == 2
    with pytest.raises(AppError):
        await board.move_task("TSK-999", seeded["l3"]["id"], 0)

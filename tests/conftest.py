# tests/conftest.py
import pytest

from pointboard.board import BoardStore
from pointboard.points_ledger import PointsLedger
from pointboard.store.database import Database


@pytest.fixture
async def db():
    """Create and initialise an in-memory database."""
    database = Database(":memory:")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
async def board(db: Database) -> BoardStore:
    return BoardStore(db)


@pytest.fixture
async def ledger(db: Database) -> PointsLedger:
    return PointsLedger(db, points_per_story_point=10)


class ShortCountStore:
    """Delegate to a real store but report one row fewer from ``reorder_lists``."""

    def __init__(self, db) -> None:
        self._db = db

    def __getattr__(self, name):
        return getattr(self._db, name)

    async def call(self, procedure, **params):
        result = await self._db.call(procedure, **params)
        return result - 1 if procedure == "reorder_lists" else result


@pytest.fixture
def short_count_store(db) -> ShortCountStore:
    return ShortCountStore(db)


@pytest.fixture
async def seeded(board: BoardStore) -> dict:
    """A team with one board of three lists and a 5-point task.

    Board ``B1`` has lists ``L1@0, L2@1, L3@2``; task ``T1`` sits in ``L1``
    and is assigned to the member ``alice``.
    """
    team = await board.create_team("Platform")
    other_team = await board.create_team("Growth")
    alice = await board.create_user("alice@example.com", "Alice", "member", team["id"])
    bob = await board.create_user("bob@example.com", "Bob", "member", team["id"])
    manager = await board.create_user("mia@example.com", "Mia", "manager", team["id"])
    admin = await board.create_user("root@example.com", "Root", "admin", None)
    outsider = await board.create_user("olga@example.com", "Olga", "manager", other_team["id"])

    b1 = await board.create_board("Sprint 12", team["id"], created_by=manager["id"])
    b2 = await board.create_board("Growth board", other_team["id"])
    l1 = await board.create_list(b1["id"], "Todo", 0)
    l2 = await board.create_list(b1["id"], "Doing", 1)
    l3 = await board.create_list(b1["id"], "Done", 2)
    x = await board.create_list(b2["id"], "Backlog", 0)

    t1 = await board.create_task(l1["id"], "Ship login", story_points=5, assigned_to=alice["id"])

    return {
        "team": team,
        "alice": alice,
        "bob": bob,
        "manager": manager,
        "admin": admin,
        "outsider": outsider,
        "b1": b1,
        "b2": b2,
        "l1": l1,
        "l2": l2,
        "l3": l3,
        "x": x,
        "t1": t1,
    }

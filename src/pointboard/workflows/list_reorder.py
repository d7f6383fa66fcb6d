"""Apply a whole-board list position permutation in one atomic step."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Mapping

from pointboard.board import BoardStore
from pointboard.errors import fatal, validation
from pointboard.store.protocol import RemoteStore

logger = logging.getLogger(__name__)


def _normalise(list_positions: Iterable[Mapping | object]) -> list[dict]:
    """Accept dicts or objects with ``id``/``position`` attributes."""
    pairs: list[dict] = []
    for item in list_positions:
        if isinstance(item, Mapping):
            list_id, position = item.get("id"), item.get("position")
        else:
            list_id, position = getattr(item, "id", None), getattr(item, "position", None)
        if not isinstance(list_id, str) or not list_id:
            raise validation("Each list position needs a list id", item=repr(item))
        if not isinstance(position, int) or isinstance(position, bool) or position < 0:
            raise validation(
                f"Position for list {list_id} must be a non-negative integer",
                list_id=list_id, position=position,
            )
        pairs.append({"id": list_id, "position": position})
    return pairs


class ListReorderWorkflow:
    """Validate a reorder request against the board, then apply it atomically."""

    def __init__(self, db: RemoteStore, board: BoardStore) -> None:
        self._db = db
        self._board = board

    async def reorder(
        self,
        board_id: str,
        list_positions: Iterable[Mapping | object],
        acting_user_id: str | None = None,
    ) -> None:
        pairs = _normalise(list_positions)
        if not pairs:
            raise validation("At least one list position is required")

        input_ids = [p["id"] for p in pairs]
        found_ids = await self._board.find_board_list_ids(board_id, input_ids)

        missing = [list_id for list_id in dict.fromkeys(input_ids) if list_id not in found_ids]
        if missing:
            raise validation(
                f"Invalid or missing list IDs that do not belong to board {board_id}: "
                f"{', '.join(missing)}",
                board_id=board_id, list_ids=missing,
            )

        if len(found_ids) != len(input_ids):
            duplicates = sorted(i for i, n in Counter(input_ids).items() if n > 1)
            if duplicates:
                raise validation(
                    f"Duplicate list IDs found in input: {', '.join(duplicates)}",
                    board_id=board_id, list_ids=duplicates,
                )
            raise validation(
                f"Expected {len(input_ids)} lists but found {len(found_ids)} "
                f"matching the board",
                board_id=board_id,
            )

        updated = await self._db.call(
            "reorder_lists",
            board_id=board_id,
            list_positions=pairs,
            user_id=acting_user_id,
        )
        if updated != len(pairs):
            logger.error(
                "Reorder of board %s updated %s rows, expected %d",
                board_id, updated, len(pairs),
            )
            raise fatal(
                f"Expected to update {len(pairs)} lists, "
                f"but the store reported {updated} updated rows",
                board_id=board_id, expected=len(pairs), updated=updated,
            )
        logger.info("Reordered %d lists on board %s", len(pairs), board_id)

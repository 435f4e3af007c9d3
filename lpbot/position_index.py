"""
Position Index

Maps the 1-based ordinals shown in a positions listing back to the
on-chain position handles. A listing replaces whatever the user had before;
ordinals never outlive the listing that produced them.
"""

import logging
from typing import Dict, Iterable, Tuple

from .errors import OrdinalOutOfRangeError, PositionsNotListedError
from .models import Position

logger = logging.getLogger(__name__)


class IndexedPositionList:
    """Positions in the order they were listed to the user."""

    def __init__(self, positions: Iterable[Position]):
        self.positions: Tuple[Position, ...] = tuple(positions)

    def __len__(self) -> int:
        return len(self.positions)

    def __iter__(self):
        return iter(self.positions)

    def resolve(self, ordinal: int) -> Position:
        if ordinal < 1 or ordinal > len(self.positions):
            raise OrdinalOutOfRangeError(ordinal, len(self.positions))
        return self.positions[ordinal - 1]


class PositionIndex:
    """Per-user IndexedPositionList, keyed by user id."""

    def __init__(self):
        self._lists: Dict[str, IndexedPositionList] = {}

    def populate(self, user_id: str, positions: Iterable[Position]) -> IndexedPositionList:
        indexed = IndexedPositionList(positions)
        self._lists[user_id] = indexed
        logger.debug(f"Indexed {len(indexed)} positions for user {user_id}")
        return indexed

    def resolve(self, user_id: str, ordinal: int) -> Position:
        indexed = self._lists.get(user_id)
        if indexed is None:
            raise PositionsNotListedError()
        return indexed.resolve(ordinal)

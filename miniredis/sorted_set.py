"""A simple sorted set: a mapping of member to score, sorted on demand."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass

_MISSING = object()


class Direction(enum.Enum):
    """Sort order for a sorted set."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortedElement:
    """A member together with its score."""

    score: float
    member: str


class SortedSet:
    """Members with float scores, ordered by score and then by member."""

    def __init__(self) -> None:
        self._scores: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._scores)

    def __contains__(self, member: object) -> bool:
        return member in self._scores

    def __iter__(self) -> Iterator[str]:
        return iter(self._scores)

    def __delitem__(self, member: str) -> None:
        removed = self._scores.pop(member, _MISSING)
        if removed is _MISSING:
            raise KeyError(member)

    def set(self, score: float, member: str) -> None:
        """Add member, or replace its score."""
        self._scores[member] = score

    def get(self, member: str) -> float | None:
        """The score of member, or None if it is not in the set."""
        return self._scores.get(member)

    def by_score(self, direction: Direction = Direction.ASC) -> list[SortedElement]:
        """All elements, ordered by score, ties broken by member."""
        elems = sorted(
            (SortedElement(score, member) for member, score in self._scores.items()),
            key=lambda e: (e.score, e.member),
        )
        if direction is Direction.DESC:
            elems.reverse()
        return elems

    def rank_by_score(
        self, member: str, direction: Direction = Direction.ASC
    ) -> int | None:
        """The 0-based rank of member, or None if it is not in the set."""
        if member not in self._scores:
            return None
        return next(
            rank
            for rank, elem in enumerate(self.by_score(direction))
            if elem.member == member
        )
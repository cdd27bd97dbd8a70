"""Sparse, coordinate-keyed differences between two grids.

A :class:`Delta` only carries the coordinates whose cell changed. Each entry keeps both
sides of the change so the same delta can move a grid forward or walk it back:

    apply_reverse(apply_forward(g, diff(g, h)), diff(g, h)) == g
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from gridledger.services.grid import (
    Cell,
    Coordinate,
    Grid,
    cell_course_codes,
    cell_to_payload,
    coordinate_sort_key,
    parse_cell,
)


@dataclass(frozen=True)
class CellChange:
    old: Cell
    new: Cell

    def inverted(self) -> "CellChange":
        return CellChange(old=self.new, new=self.old)

    def to_payload(self) -> dict[str, dict]:
        # An absent side is encoded by leaving its key out.
        payload: dict[str, dict] = {}
        if self.old is not None:
            payload["old"] = cell_to_payload(self.old)
        if self.new is not None:
            payload["new"] = cell_to_payload(self.new)
        return payload


class Delta(Mapping[Coordinate, CellChange]):
    __slots__ = ("_changes",)

    def __init__(self, changes: Mapping[Coordinate, CellChange] | None = None) -> None:
        self._changes: Mapping[Coordinate, CellChange] = MappingProxyType(
            {coordinate: change for coordinate, change in (changes or {}).items() if change.old != change.new}
        )

    def __getitem__(self, coordinate: Coordinate) -> CellChange:
        return self._changes[coordinate]

    def __iter__(self) -> Iterator[Coordinate]:
        return iter(sorted(self._changes, key=coordinate_sort_key))

    def __len__(self) -> int:
        return len(self._changes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Delta):
            return NotImplemented
        return dict(self._changes) == dict(other._changes)

    def __hash__(self) -> int:
        return hash(frozenset(self._changes.items()))

    def __repr__(self) -> str:
        return f"Delta(changed={len(self._changes)})"

    @property
    def is_empty(self) -> bool:
        return not self._changes

    def inverted(self) -> "Delta":
        return Delta({coordinate: change.inverted() for coordinate, change in self._changes.items()})

    def to_payload(self) -> dict[str, dict[str, dict]]:
        payload: dict[str, dict[str, dict]] = {}
        for coordinate in self:
            day, slot = coordinate
            payload.setdefault(day, {})[slot] = self._changes[coordinate].to_payload()
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "Delta":
        changes: dict[Coordinate, CellChange] = {}
        for day, slots in (payload or {}).items():
            if not isinstance(slots, Mapping):
                raise ValueError(f"Delta day {day!r} must map slots to changes")
            for slot, change in slots.items():
                if not isinstance(change, Mapping):
                    raise ValueError(f"Delta entry {day} {slot} must be an object")
                changes[(str(day), str(slot))] = CellChange(
                    old=parse_cell(change.get("old")),
                    new=parse_cell(change.get("new")),
                )
        return cls(changes)


def diff(before: Grid, after: Grid) -> Delta:
    """Every coordinate whose cell differs, as (old=before, new=after)."""
    changes: dict[Coordinate, CellChange] = {}
    coordinates = dict.fromkeys(before.coordinates())
    coordinates.update(dict.fromkeys(after.coordinates()))
    for day, slot in coordinates:
        old = before.get(day, slot)
        new = after.get(day, slot)
        if old != new:
            changes[(day, slot)] = CellChange(old=old, new=new)
    return Delta(changes)


def _apply(grid: Grid, delta: Delta, *, forward: bool) -> Grid:
    if delta.is_empty:
        return grid
    return grid.update(
        {coordinate: (delta[coordinate].new if forward else delta[coordinate].old) for coordinate in delta}
    )


def apply_forward(grid: Grid, delta: Delta) -> Grid:
    return _apply(grid, delta, forward=True)


def apply_reverse(grid: Grid, delta: Delta) -> Grid:
    return _apply(grid, delta, forward=False)


def touched_courses(delta: Delta) -> set[str]:
    codes: set[str] = set()
    for coordinate in delta:
        change = delta[coordinate]
        codes.update(cell_course_codes(change.old))
        codes.update(cell_course_codes(change.new))
    return codes

"""Weekly grid value type.

A grid maps (day, slot) coordinates to cells. A cell is ``None`` (empty), a single
:class:`CourseAssignment`, or a :class:`ConflictCell` listing competing assignments.
Grids are immutable: :meth:`Grid.set` returns a new grid and leaves the receiver untouched.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import re
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Union

WEEKDAYS: tuple[str, ...] = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday")
TIME_SLOTS: tuple[str, ...] = (
    "8:00-8:50",
    "9:00-9:50",
    "10:00-10:50",
    "11:00-11:50",
    "12:00-12:50",
    "1:00-1:50",
    "2:00-2:50",
    "3:00-3:50",
)

DAY_ORDER = {day: index for index, day in enumerate(WEEKDAYS)}
SLOT_ORDER = {slot: index for index, slot in enumerate(TIME_SLOTS)}
CANONICAL_COORDINATES: tuple[tuple[str, str], ...] = tuple((day, slot) for day in WEEKDAYS for slot in TIME_SLOTS)
CANONICAL_COORDINATE_SET = frozenset(CANONICAL_COORDINATES)

COURSE_CODE_PATTERN = re.compile(r"^([A-Z]{2,4}\d{3})")

Coordinate = tuple[str, str]


def extract_course_code(label: str) -> str:
    text = label.strip()
    match = COURSE_CODE_PATTERN.match(text)
    if match:
        return match.group(1)
    return text.split()[0] if text else text


def coordinate_sort_key(coordinate: Coordinate) -> tuple[int, str, int, str]:
    day, slot = coordinate
    return (DAY_ORDER.get(day, len(WEEKDAYS)), day, SLOT_ORDER.get(slot, len(TIME_SLOTS)), slot)


@dataclass(frozen=True)
class CourseAssignment:
    course_code: str
    display_name: str
    location: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload = {"courseCode": self.course_code, "displayName": self.display_name}
        if self.location:
            payload["location"] = self.location
        return payload


@dataclass(frozen=True)
class ConflictCell:
    assignments: tuple[CourseAssignment, ...]

    def __post_init__(self) -> None:
        if len(self.assignments) < 2:
            raise ValueError("A conflict marker needs at least two competing assignments")

    @property
    def course_codes(self) -> tuple[str, ...]:
        return tuple(item.course_code for item in self.assignments)

    def to_payload(self) -> dict[str, list[dict[str, str]]]:
        return {"conflicts": [item.to_payload() for item in self.assignments]}


Cell = Union[CourseAssignment, ConflictCell, None]


def cell_course_codes(cell: Cell) -> tuple[str, ...]:
    if cell is None:
        return ()
    if isinstance(cell, ConflictCell):
        return cell.course_codes
    return (cell.course_code,)


def cell_to_payload(cell: Cell) -> dict | None:
    if cell is None:
        return None
    return cell.to_payload()


def _parse_assignment(raw: Any) -> CourseAssignment | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        label = raw.strip()
        if not label:
            return None
        return CourseAssignment(course_code=extract_course_code(label), display_name=label)
    if isinstance(raw, Mapping):
        location = raw.get("location")
        if location is not None:
            location = str(location).strip() or None
        if raw.get("courseCode"):
            code = str(raw["courseCode"]).strip()
            display = str(raw.get("displayName") or code).strip()
            return CourseAssignment(course_code=code, display_name=display, location=location)
        if raw.get("course"):
            label = str(raw["course"]).strip()
            return CourseAssignment(course_code=extract_course_code(label), display_name=label, location=location)
        if not any(value for value in raw.values()):
            return None
    raise ValueError(f"Unrecognised cell value: {raw!r}")


def parse_cell(raw: Any) -> Cell:
    """Accepts the canonical cell shapes plus the generator's plain-string labels."""
    if isinstance(raw, Mapping) and "conflicts" in raw:
        entries = raw.get("conflicts") or []
        if not isinstance(entries, list):
            raise ValueError("'conflicts' must be a list of assignments")
        assignments = tuple(item for item in (_parse_assignment(entry) for entry in entries) if item is not None)
        if not assignments:
            return None
        if len(assignments) == 1:
            return assignments[0]
        return ConflictCell(assignments=assignments)
    return _parse_assignment(raw)


class Grid:
    __slots__ = ("_cells", "_declared_days")

    def __init__(
        self,
        cells: Mapping[Coordinate, Cell] | None = None,
        declared_days: frozenset[str] | None = None,
    ) -> None:
        self._cells: Mapping[Coordinate, Cell] = MappingProxyType(
            {coordinate: cell for coordinate, cell in (cells or {}).items() if cell is not None}
        )
        self._declared_days = frozenset(WEEKDAYS) if declared_days is None else frozenset(declared_days)

    @classmethod
    def empty(cls) -> "Grid":
        return cls()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "Grid":
        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise ValueError("A grid must be an object keyed by day")
        cells: dict[Coordinate, Cell] = {}
        for day, slots in payload.items():
            if slots is None:
                continue
            if not isinstance(slots, Mapping):
                raise ValueError(f"Day {day!r} must map time slots to cells")
            for slot, raw in slots.items():
                cell = parse_cell(raw)
                if cell is not None:
                    cells[(str(day), str(slot))] = cell
        return cls(cells, declared_days=frozenset(str(day) for day in payload.keys()))

    def to_payload(self) -> dict[str, dict[str, dict | None]]:
        """Full grid: every canonical coordinate is emitted, extra coordinates are kept."""
        payload: dict[str, dict[str, dict | None]] = {day: {slot: None for slot in TIME_SLOTS} for day in WEEKDAYS}
        for (day, slot), cell in sorted(self._cells.items(), key=lambda item: coordinate_sort_key(item[0])):
            payload.setdefault(day, {})[slot] = cell_to_payload(cell)
        return payload

    @property
    def declared_days(self) -> frozenset[str]:
        return self._declared_days

    def get(self, day: str, slot: str) -> Cell:
        return self._cells.get((day, slot))

    def set(self, day: str, slot: str, cell: Cell) -> "Grid":
        return self.update({(day, slot): cell})

    def update(self, changes: Mapping[Coordinate, Cell]) -> "Grid":
        cells = dict(self._cells)
        for coordinate, cell in changes.items():
            if cell is None:
                cells.pop(coordinate, None)
            else:
                cells[coordinate] = cell
        return Grid(cells, declared_days=self._declared_days | {day for day, _ in changes})

    def coordinates(self) -> list[Coordinate]:
        extras = sorted(
            (coordinate for coordinate in self._cells if coordinate not in CANONICAL_COORDINATE_SET),
            key=coordinate_sort_key,
        )
        return list(CANONICAL_COORDINATES) + extras

    def occupied(self) -> Iterator[tuple[Coordinate, CourseAssignment | ConflictCell]]:
        for coordinate in sorted(self._cells, key=coordinate_sort_key):
            yield coordinate, self._cells[coordinate]

    def course_occurrences(self) -> Counter:
        counts: Counter = Counter()
        for _, cell in self.occupied():
            for code in cell_course_codes(cell):
                counts[code] += 1
        return counts

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return dict(self._cells) == dict(other._cells)

    def __hash__(self) -> int:
        return hash(frozenset(self._cells.items()))

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:
        return f"Grid(occupied={len(self._cells)})"

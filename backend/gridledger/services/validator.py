from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, Sequence

from gridledger.core.exceptions import ValidationFailed
from gridledger.services.grid import WEEKDAYS, Coordinate, Grid, cell_course_codes, coordinate_sort_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequiredCourse:
    code: str
    duration: int


@dataclass(frozen=True)
class FixedReservation:
    """A course section scheduled outside this system, pinned to exact coordinates."""

    course_code: str
    coordinates: tuple[Coordinate, ...]

    @classmethod
    def from_time_slots(cls, course_code: str, time_slots: Iterable[str]) -> "FixedReservation":
        coordinates: list[Coordinate] = []
        for raw in time_slots:
            day, _, slot = raw.strip().partition(" ")
            if not day or not slot.strip():
                raise ValueError(f"Reserved time slot {raw!r} must look like 'Sunday 8:00-8:50'")
            coordinates.append((day, slot.strip()))
        return cls(course_code=course_code, coordinates=tuple(coordinates))


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if not self.is_valid or self.errors:
            raise ValidationFailed(self.errors)


class ConstraintValidator:
    """Checks a candidate grid against occurrence requirements and fixed reservations.

    Every check runs and every error is collected; nothing stops at the first failure.
    Collisions between non-reserved courses are not this validator's concern.
    """

    def __init__(
        self,
        required_courses: Sequence[RequiredCourse],
        fixed_reservations: Sequence[FixedReservation],
    ) -> None:
        self.required_courses = list(required_courses)
        self.fixed_reservations = list(fixed_reservations)

    def validate(self, grid: Grid) -> ValidationResult:
        errors: list[str] = []
        errors.extend(self._structural_errors(grid))
        errors.extend(self._occurrence_errors(grid))
        errors.extend(self._reservation_errors(grid))
        if errors:
            logger.debug("Candidate grid rejected with %d error(s)", len(errors))
        return ValidationResult(is_valid=not errors, errors=errors)

    def _structural_errors(self, grid: Grid) -> list[str]:
        return [
            f'The schedule grid is incomplete, the day "{day}" is missing.'
            for day in WEEKDAYS
            if day not in grid.declared_days
        ]

    def _occurrence_errors(self, grid: Grid) -> list[str]:
        counts = grid.course_occurrences()
        errors: list[str] = []
        for course in self.required_courses:
            scheduled = counts.get(course.code, 0)
            if scheduled != course.duration:
                errors.append(
                    f'Course "{course.code}" was scheduled {scheduled} times instead of the required {course.duration}.'
                )
        return errors

    def _reserved_slots(self) -> tuple[dict[Coordinate, str], list[str]]:
        reserved: dict[Coordinate, str] = {}
        errors: list[str] = []
        for reservation in self.fixed_reservations:
            for coordinate in reservation.coordinates:
                holder = reserved.get(coordinate)
                if holder is not None and holder != reservation.course_code:
                    day, slot = coordinate
                    errors.append(
                        f'Fixed courses "{holder}" and "{reservation.course_code}" are both reserved at [{day} {slot}].'
                    )
                    continue
                reserved[coordinate] = reservation.course_code
        return reserved, errors

    def _reservation_errors(self, grid: Grid) -> list[str]:
        reserved, errors = self._reserved_slots()
        for coordinate in sorted(reserved, key=coordinate_sort_key):
            course_code = reserved[coordinate]
            day, slot = coordinate
            placed = cell_course_codes(grid.get(day, slot))
            if not placed:
                errors.append(f'The fixed course "{course_code}" is missing from its reserved slot [{day} {slot}].')
                continue
            intruders = [code for code in placed if code != course_code]
            if intruders:
                errors.append(
                    f'Schedule conflict: "{", ".join(intruders)}" was placed in the slot reserved for '
                    f'the fixed course "{course_code}" at [{day} {slot}].'
                )
        return errors


def validate(
    grid: Grid,
    required_courses: Sequence[RequiredCourse],
    fixed_reservations: Sequence[FixedReservation],
) -> ValidationResult:
    return ConstraintValidator(required_courses, fixed_reservations).validate(grid)

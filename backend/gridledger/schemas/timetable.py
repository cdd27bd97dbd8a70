from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from gridledger.models.timetable import TimetableStatus
from gridledger.services.grid import Grid
from gridledger.services.validator import FixedReservation, RequiredCourse

Audience = Literal["committee", "general"]


class RequiredCourseIn(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    duration: int = Field(ge=0, le=40)

    @field_validator("code")
    @classmethod
    def strip_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Course code cannot be blank")
        return value

    def to_domain(self) -> RequiredCourse:
        return RequiredCourse(code=self.code, duration=self.duration)


class FixedReservationIn(BaseModel):
    course: str = Field(min_length=1, max_length=50)
    time_slots: list[str] = Field(min_length=1, max_length=40)

    @field_validator("time_slots")
    @classmethod
    def validate_time_slots(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item.strip()]
        invalid = [item for item in cleaned if " " not in item]
        if invalid:
            raise ValueError(f"Time slots must look like 'Sunday 8:00-8:50': {', '.join(invalid)}")
        return cleaned

    def to_domain(self) -> FixedReservation:
        return FixedReservation.from_time_slots(self.course.strip(), self.time_slots)


class ConstraintSet(BaseModel):
    required_courses: list[RequiredCourseIn] = Field(default_factory=list)
    fixed_reservations: list[FixedReservationIn] = Field(default_factory=list)

    def required(self) -> list[RequiredCourse]:
        return [item.to_domain() for item in self.required_courses]

    def reservations(self) -> list[FixedReservation]:
        return [item.to_domain() for item in self.fixed_reservations]


class GridPayloadIn(BaseModel):
    grid: dict[str, dict[str, Any]]

    @field_validator("grid")
    @classmethod
    def validate_grid(cls, value: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        # Raises ValueError on unreadable cells, which pydantic reports as a 422.
        Grid.from_payload(value)
        return value

    def to_grid(self) -> Grid:
        return Grid.from_payload(self.grid)


class ValidateTimetableRequest(GridPayloadIn, ConstraintSet):
    pass


class TimetableCreate(GridPayloadIn, ConstraintSet):
    level: int
    section: str = Field(min_length=1, max_length=100)

    @field_validator("section")
    @classmethod
    def strip_section(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Section cannot be blank")
        return value


class TimetableGridUpdate(GridPayloadIn):
    summary: str = Field(default="Manual Grid Edit", min_length=1, max_length=255)
    # Manual edits are trusted; send constraints to have the new grid re-validated first.
    constraints: ConstraintSet | None = None


class GeneratedTimetableSubmit(ConstraintSet):
    output: str = Field(min_length=1)


class ValidationResultOut(BaseModel):
    is_valid: bool
    errors: list[str]


class TimetableOut(BaseModel):
    id: str
    level: int
    section: str
    grid: dict
    edit_counter: int
    publish_counter: int
    status: TimetableStatus
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class HistoryEntryOut(BaseModel):
    id: str
    timetable_id: str
    history_version: int
    delta: dict
    author_id: str
    summary: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TimetableEditResult(BaseModel):
    changed: bool
    message: str
    timetable: TimetableOut
    entry: HistoryEntryOut | None = None


class GeneratedTimetableResult(BaseModel):
    created: bool
    timetable: TimetableOut
    entry: HistoryEntryOut | None = None


class TimetableVersionGrid(BaseModel):
    timetable_id: str
    history_version: int
    grid: dict


class TimetableVersionCompare(BaseModel):
    timetable_id: str
    from_version: int
    to_version: int
    changed_cells: int
    delta: dict


class TimetableRestoreResult(BaseModel):
    message: str
    new_history_version: int
    entry: HistoryEntryOut
    timetable: TimetableOut


class LedgerIntegrityOut(BaseModel):
    timetable_id: str
    edit_counter: int
    verified_versions: int

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gridledger.core.config import Settings, get_settings
from gridledger.core.exceptions import (
    DuplicateTimetable,
    InvalidTransition,
    NoOpEdit,
    StorageConflict,
    ValidationFailed,
)
from gridledger.models.notification import Notification
from gridledger.models.timetable import Timetable, TimetableStatus
from gridledger.models.timetable_history import TimetableHistoryEntry
from gridledger.services.audit import log_activity
from gridledger.services.delta import diff, touched_courses
from gridledger.services.generation import (
    GENERATOR_AUTHOR_ID,
    GeneratedTimetable,
    GenerationOracle,
    parse_generated_output,
    request_generated_timetable,
)
from gridledger.services.grid import Grid
from gridledger.services.ledger import VersionLedger, commit_or_conflict
from gridledger.services.notifications import publish_notification_sink
from gridledger.services.validator import (
    ConstraintValidator,
    FixedReservation,
    RequiredCourse,
    ValidationResult,
)

logger = logging.getLogger(__name__)

NotificationSink = Callable[[Session, Timetable], list[Notification]]

INITIAL_SUMMARY = "Initial Draft (v1)"
MANUAL_EDIT_SUMMARY = "Manual Grid Edit"
GENERATED_EDIT_SUMMARY = "Generated draft"

AUDIENCE_COMMITTEE = "committee"
AUDIENCE_GENERAL = "general"


class TimetableLifecycle:
    """Owns the current timetable record: creation, edits, publishing and archiving."""

    def __init__(
        self,
        db: Session,
        *,
        settings: Settings | None = None,
        notification_sink: NotificationSink | None = publish_notification_sink,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.ledger = VersionLedger(db)
        self.notification_sink = notification_sink

    def validate(
        self,
        grid: Grid,
        required_courses: Sequence[RequiredCourse],
        fixed_reservations: Sequence[FixedReservation],
    ) -> ValidationResult:
        return ConstraintValidator(required_courses, fixed_reservations).validate(grid)

    def get(self, timetable_id: str) -> Timetable:
        return self.ledger.load_timetable(timetable_id)

    def find(self, level: int, section: str) -> Timetable | None:
        return self.db.execute(
            select(Timetable).where(Timetable.level == level, Timetable.section == section)
        ).scalar_one_or_none()

    def create(
        self,
        level: int,
        section: str,
        grid: Grid,
        required_courses: Sequence[RequiredCourse] = (),
        fixed_reservations: Sequence[FixedReservation] = (),
        *,
        author_id: str = "SYSTEM",
        summary: str = INITIAL_SUMMARY,
    ) -> Timetable:
        section = section.strip()
        errors = self._level_errors(level)
        if not section:
            errors.append("Section cannot be blank.")
        errors.extend(self.validate(grid, required_courses, fixed_reservations).errors)
        if errors:
            raise ValidationFailed(errors)

        if self.find(level, section) is not None:
            raise DuplicateTimetable(level, section)

        timetable = Timetable(
            level=level,
            section=section,
            grid=grid.to_payload(),
            edit_counter=1,
            publish_counter=0,
            status=TimetableStatus.draft,
        )
        self.db.add(timetable)
        try:
            # A concurrent create for the same level and section trips the unique key here.
            self.db.flush()
            self.ledger.record_initial(timetable, grid, author_id=author_id, summary=summary)
            log_activity(
                self.db,
                actor_id=author_id,
                action="timetable.create",
                timetable_id=timetable.id,
                details={"level": level, "section": section, "occupied_cells": len(grid)},
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateTimetable(level, section) from exc
        self.db.refresh(timetable)
        logger.info(
            "Created timetable | timetable_id=%s | level=%d | section=%s | author=%s",
            timetable.id,
            level,
            section,
            author_id,
        )
        return timetable

    def edit(
        self,
        timetable_id: str,
        new_grid: Grid,
        author_id: str,
        summary: str = MANUAL_EDIT_SUMMARY,
        *,
        validate_against: tuple[Sequence[RequiredCourse], Sequence[FixedReservation]] | None = None,
    ) -> TimetableHistoryEntry:
        timetable = self.get(timetable_id)
        self._ensure_mutable(timetable, "edit")

        # Manual edits are trusted unless the caller opts into re-validation.
        if validate_against is not None:
            required_courses, fixed_reservations = validate_against
            self.validate(new_grid, required_courses, fixed_reservations).raise_for_errors()

        delta = diff(Grid.from_payload(timetable.grid), new_grid)
        if delta.is_empty:
            logger.debug("No-op edit ignored | timetable_id=%s | author=%s", timetable_id, author_id)
            raise NoOpEdit(timetable_id)

        entry = self.ledger.record(timetable_id, delta, author_id, summary, commit=False)
        log_activity(
            self.db,
            actor_id=author_id,
            action="timetable.edit",
            timetable_id=timetable_id,
            details={
                "history_version": entry.history_version,
                "changed_cells": len(delta),
                "courses": sorted(touched_courses(delta)),
            },
        )
        commit_or_conflict(self.db, timetable_id)
        return entry

    def publish(self, timetable_id: str, actor_id: str = "SYSTEM") -> Timetable:
        timetable = self.get(timetable_id)
        self._ensure_mutable(timetable, "publish")

        base_count = timetable.publish_counter
        result = self.db.execute(
            update(Timetable)
            .where(
                Timetable.id == timetable_id,
                Timetable.publish_counter == base_count,
                Timetable.status != TimetableStatus.archived,
            )
            .values(
                publish_counter=base_count + 1,
                status=TimetableStatus.published,
                published_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise StorageConflict(timetable_id)
        log_activity(
            self.db,
            actor_id=actor_id,
            action="timetable.publish",
            timetable_id=timetable_id,
            details={"publish_counter": base_count + 1, "edit_counter": timetable.edit_counter},
        )
        commit_or_conflict(self.db, timetable_id)

        timetable = self.get(timetable_id)
        logger.info(
            "Published timetable | timetable_id=%s | publish_counter=%d | edit_counter=%d",
            timetable_id,
            timetable.publish_counter,
            timetable.edit_counter,
        )
        self._notify_published(timetable)
        return timetable

    def archive(self, timetable_id: str, actor_id: str = "SYSTEM") -> Timetable:
        timetable = self.get(timetable_id)
        self._ensure_mutable(timetable, "archive")
        timetable.status = TimetableStatus.archived
        log_activity(self.db, actor_id=actor_id, action="timetable.archive", timetable_id=timetable_id)
        commit_or_conflict(self.db, timetable_id)
        self.db.refresh(timetable)
        logger.info("Archived timetable | timetable_id=%s", timetable_id)
        return timetable

    def submit_generated(
        self,
        text: str,
        required_courses: Sequence[RequiredCourse] = (),
        fixed_reservations: Sequence[FixedReservation] = (),
        *,
        author_id: str = GENERATOR_AUTHOR_ID,
    ) -> tuple[Timetable, TimetableHistoryEntry | None]:
        generated = parse_generated_output(text)
        return self._accept_generated(generated, required_courses, fixed_reservations, author_id=author_id)

    def generate(
        self,
        oracle: GenerationOracle,
        prompt: str,
        required_courses: Sequence[RequiredCourse] = (),
        fixed_reservations: Sequence[FixedReservation] = (),
    ) -> tuple[Timetable, TimetableHistoryEntry | None]:
        generated = request_generated_timetable(oracle, prompt)
        return self._accept_generated(generated, required_courses, fixed_reservations, author_id=GENERATOR_AUTHOR_ID)

    def visible_timetables(self, level: int, audience: str = AUDIENCE_GENERAL) -> list[Timetable]:
        if audience == AUDIENCE_COMMITTEE:
            threshold = self.settings.committee_min_publish_count
        elif audience == AUDIENCE_GENERAL:
            threshold = self.settings.general_min_publish_count
        else:
            raise ValueError(f"Unknown audience {audience!r}")
        query = (
            select(Timetable)
            .where(
                Timetable.level == level,
                Timetable.publish_counter >= threshold,
                Timetable.status != TimetableStatus.archived,
            )
            .order_by(Timetable.published_at.desc(), Timetable.section.asc())
        )
        return list(self.db.execute(query).scalars())

    def drafts(self, level: int) -> list[Timetable]:
        return list(
            self.db.execute(
                select(Timetable)
                .where(Timetable.level == level, Timetable.status != TimetableStatus.archived)
                .order_by(Timetable.section.asc())
            ).scalars()
        )

    def _accept_generated(
        self,
        generated: GeneratedTimetable,
        required_courses: Sequence[RequiredCourse],
        fixed_reservations: Sequence[FixedReservation],
        *,
        author_id: str,
    ) -> tuple[Timetable, TimetableHistoryEntry | None]:
        existing = self.find(generated.level, generated.section)
        if existing is None:
            timetable = self.create(
                generated.level,
                generated.section,
                generated.grid,
                required_courses,
                fixed_reservations,
                author_id=author_id,
            )
            return timetable, self.ledger.get_entry(timetable.id, 1)

        # Drafts and published timetables are edited in place; edit refuses archived ones.
        # Generator output is always validated.
        try:
            entry = self.edit(
                existing.id,
                generated.grid,
                author_id,
                GENERATED_EDIT_SUMMARY,
                validate_against=(required_courses, fixed_reservations),
            )
        except NoOpEdit:
            entry = None
        return self.get(existing.id), entry

    def _level_errors(self, level: int) -> list[str]:
        if self.settings.min_level <= level <= self.settings.max_level:
            return []
        return [f"Level {level} is outside the supported range {self.settings.min_level}-{self.settings.max_level}."]

    def _ensure_mutable(self, timetable: Timetable, operation: str) -> None:
        if timetable.status == TimetableStatus.archived:
            raise InvalidTransition(f"Cannot {operation} timetable {timetable.id}: it is archived")

    def _notify_published(self, timetable: Timetable) -> None:
        if self.notification_sink is None:
            return
        try:
            self.notification_sink(self.db, timetable)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(
                "TIMETABLE PUBLISH NOTIFICATION FAILED | timetable_id=%s | level=%s | publish_counter=%s",
                timetable.id,
                timetable.level,
                timetable.publish_counter,
            )

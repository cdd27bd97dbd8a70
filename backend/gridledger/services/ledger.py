"""Append-only edit history for timetables.

Every accepted edit is stored as a sparse delta in ``timetable_history`` with
``history_version`` equal to the timetable's ``edit_counter`` after the edit. The counter bump
and the history insert share one transaction: the timetable row is updated conditionally on
the counter value that was read, and ``(timetable_id, history_version)`` is unique, so a
concurrent writer makes this transaction fail as a whole instead of leaving a gap or a
duplicate behind.
"""
from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gridledger.core.exceptions import (
    LedgerIntegrityError,
    NoOpEdit,
    StorageConflict,
    TimetableNotFound,
    VersionNotFound,
)
from gridledger.models.timetable import Timetable, TimetableStatus
from gridledger.models.timetable_history import TimetableHistoryEntry
from gridledger.services.delta import Delta, apply_forward, apply_reverse, diff
from gridledger.services.grid import Grid

logger = logging.getLogger(__name__)

T = TypeVar("T")


def commit_or_conflict(db: Session, timetable_id: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("History insert lost a race | timetable_id=%s", timetable_id)
        raise StorageConflict(timetable_id) from exc


def retry_on_conflict(db: Session, operation: Callable[[], T], *, attempts: int) -> T:
    """Re-run ``operation`` against a fresh read whenever it loses an optimistic-concurrency race."""
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except StorageConflict:
            db.rollback()
            db.expire_all()
            if attempt == attempts:
                raise
            logger.warning("Retrying after storage conflict | attempt=%d/%d", attempt, attempts)
    raise AssertionError("unreachable")


class VersionLedger:
    def __init__(self, db: Session) -> None:
        self.db = db

    def load_timetable(self, timetable_id: str) -> Timetable:
        timetable = self.db.get(Timetable, timetable_id, populate_existing=True)
        if timetable is None:
            raise TimetableNotFound(timetable_id)
        return timetable

    def record_initial(
        self,
        timetable: Timetable,
        grid: Grid,
        *,
        author_id: str,
        summary: str,
    ) -> TimetableHistoryEntry:
        """History entry 1: the whole initial grid as a diff against the all-empty grid."""
        entry = TimetableHistoryEntry(
            timetable_id=timetable.id,
            history_version=1,
            delta=diff(Grid.empty(), grid).to_payload(),
            author_id=author_id,
            summary=summary,
        )
        self.db.add(entry)
        return entry

    def record(
        self,
        timetable_id: str,
        delta: Delta,
        author_id: str,
        summary: str,
        *,
        commit: bool = True,
    ) -> TimetableHistoryEntry:
        if delta.is_empty:
            raise NoOpEdit(timetable_id)

        timetable = self.load_timetable(timetable_id)
        base_version = timetable.edit_counter
        base_grid = Grid.from_payload(timetable.grid)
        target_grid = apply_forward(base_grid, delta)

        # Store what actually changed relative to the persisted grid, so every stored
        # delta reverses exactly onto its predecessor even if the caller diffed a stale copy.
        effective = diff(base_grid, target_grid)
        if effective.is_empty:
            raise NoOpEdit(timetable_id)

        next_version = base_version + 1
        result = self.db.execute(
            update(Timetable)
            .where(
                Timetable.id == timetable_id,
                Timetable.edit_counter == base_version,
                Timetable.status != TimetableStatus.archived,
            )
            .values(
                grid=target_grid.to_payload(),
                edit_counter=next_version,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            logger.warning(
                "Timetable changed under us | timetable_id=%s | expected=%d", timetable_id, base_version
            )
            raise StorageConflict(timetable_id)

        entry = TimetableHistoryEntry(
            timetable_id=timetable_id,
            history_version=next_version,
            delta=effective.to_payload(),
            author_id=author_id,
            summary=summary,
        )
        self.db.add(entry)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise StorageConflict(timetable_id) from exc

        if commit:
            commit_or_conflict(self.db, timetable_id)
        logger.info(
            "Recorded history version | timetable_id=%s | version=%d | cells=%d | author=%s",
            timetable_id,
            next_version,
            len(effective),
            author_id,
        )
        return entry

    def history(self, timetable_id: str) -> list[TimetableHistoryEntry]:
        self.load_timetable(timetable_id)
        return list(
            self.db.execute(
                select(TimetableHistoryEntry)
                .where(TimetableHistoryEntry.timetable_id == timetable_id)
                .order_by(TimetableHistoryEntry.history_version.desc())
            ).scalars()
        )

    def get_entry(self, timetable_id: str, version: int) -> TimetableHistoryEntry:
        entry = self.db.execute(
            select(TimetableHistoryEntry).where(
                TimetableHistoryEntry.timetable_id == timetable_id,
                TimetableHistoryEntry.history_version == version,
            )
        ).scalar_one_or_none()
        if entry is None:
            raise VersionNotFound(timetable_id, version)
        return entry

    def reconstruct(self, timetable_id: str, target_version: int) -> Grid:
        """Walk back from the current grid by reverse-applying every newer delta, newest first."""
        timetable = self.load_timetable(timetable_id)
        current_version = timetable.edit_counter
        if target_version < 1 or target_version > current_version:
            raise VersionNotFound(timetable_id, target_version)

        entries = list(
            self.db.execute(
                select(TimetableHistoryEntry)
                .where(
                    TimetableHistoryEntry.timetable_id == timetable_id,
                    TimetableHistoryEntry.history_version >= target_version,
                    TimetableHistoryEntry.history_version <= current_version,
                )
                .order_by(TimetableHistoryEntry.history_version.desc())
            ).scalars()
        )
        if not entries or entries[-1].history_version != target_version:
            raise VersionNotFound(timetable_id, target_version)
        self._assert_contiguous(
            timetable_id,
            [entry.history_version for entry in entries],
            expected=list(range(current_version, target_version - 1, -1)),
        )

        grid = Grid.from_payload(timetable.grid)
        for entry in entries[:-1]:
            grid = apply_reverse(grid, Delta.from_payload(entry.delta))
        return grid

    def replay(self, timetable_id: str, target_version: int) -> Grid:
        """Rebuild a version from the empty grid by applying deltas 1..target in order."""
        timetable = self.load_timetable(timetable_id)
        if target_version < 1 or target_version > timetable.edit_counter:
            raise VersionNotFound(timetable_id, target_version)

        entries = list(
            self.db.execute(
                select(TimetableHistoryEntry)
                .where(
                    TimetableHistoryEntry.timetable_id == timetable_id,
                    TimetableHistoryEntry.history_version <= target_version,
                )
                .order_by(TimetableHistoryEntry.history_version.asc())
            ).scalars()
        )
        self._assert_contiguous(
            timetable_id,
            [entry.history_version for entry in entries],
            expected=list(range(1, target_version + 1)),
        )
        grid = Grid.empty()
        for entry in entries:
            grid = apply_forward(grid, Delta.from_payload(entry.delta))
        return grid

    def compare(self, timetable_id: str, from_version: int, to_version: int) -> Delta:
        return diff(self.reconstruct(timetable_id, from_version), self.reconstruct(timetable_id, to_version))

    def verify_integrity(self, timetable_id: str) -> int:
        timetable = self.load_timetable(timetable_id)
        versions = list(
            self.db.execute(
                select(TimetableHistoryEntry.history_version)
                .where(TimetableHistoryEntry.timetable_id == timetable_id)
                .order_by(TimetableHistoryEntry.history_version.asc())
            ).scalars()
        )
        self._assert_contiguous(timetable_id, versions, expected=list(range(1, timetable.edit_counter + 1)))

        replayed = self.replay(timetable_id, timetable.edit_counter)
        if replayed != Grid.from_payload(timetable.grid):
            logger.error("Replayed history disagrees with stored grid | timetable_id=%s", timetable_id)
            raise LedgerIntegrityError(
                f"History of timetable {timetable_id} does not reproduce its current grid",
                details={"timetable_id": timetable_id, "edit_counter": timetable.edit_counter},
            )
        return len(versions)

    def _assert_contiguous(self, timetable_id: str, versions: list[int], *, expected: list[int]) -> None:
        if versions == expected:
            return
        logger.error(
            "History versions are not contiguous | timetable_id=%s | found=%s | expected=%s",
            timetable_id,
            versions,
            expected,
        )
        raise LedgerIntegrityError(
            f"History of timetable {timetable_id} has a gap or duplicate version",
            details={"timetable_id": timetable_id, "found": versions, "expected": expected},
        )

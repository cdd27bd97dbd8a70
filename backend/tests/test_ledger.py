import pytest
from sqlalchemy import delete, select, update

from gridledger.core.exceptions import (
    InvalidTransition,
    LedgerIntegrityError,
    NoOpEdit,
    StorageConflict,
    VersionNotFound,
)
from gridledger.models.timetable import Timetable, TimetableStatus
from gridledger.models.timetable_history import TimetableHistoryEntry
from gridledger.services.delta import Delta, diff
from gridledger.services.grid import CourseAssignment, Grid
from gridledger.services.ledger import VersionLedger, retry_on_conflict
from gridledger.services.lifecycle import TimetableLifecycle

CSC111 = CourseAssignment("CSC111", "CSC111")
MTH102 = CourseAssignment("MTH102", "MTH102")
ENG105 = CourseAssignment("ENG105", "ENG105")


@pytest.fixture
def initial_grid(grid_payload):
    return Grid.from_payload(grid_payload({("Sunday", "8:00-8:50"): "CSC111"}))


@pytest.fixture
def timetable(db_session, initial_grid):
    return TimetableLifecycle(db_session, notification_sink=None).create(4, "A", initial_grid)


@pytest.fixture
def ledger(db_session):
    return VersionLedger(db_session)


def _record(ledger, timetable_id, before, after, summary="Manual Grid Edit"):
    return ledger.record(timetable_id, diff(before, after), "tester", summary)


def test_initial_entry_is_diff_from_empty_grid(ledger, timetable, initial_grid):
    entries = ledger.history(timetable.id)

    assert timetable.edit_counter == 1
    assert [entry.history_version for entry in entries] == [1]
    assert Delta.from_payload(entries[0].delta) == diff(Grid.empty(), initial_grid)
    assert ledger.reconstruct(timetable.id, 1) == initial_grid


def test_record_bumps_counter_and_lists_newest_first(ledger, timetable, initial_grid):
    v2 = initial_grid.set("Monday", "9:00-9:50", MTH102)
    v3 = v2.set("Sunday", "8:00-8:50", None)

    second = _record(ledger, timetable.id, initial_grid, v2)
    third = _record(ledger, timetable.id, v2, v3, summary="Dropped Sunday lecture")

    assert (second.history_version, third.history_version) == (2, 3)
    assert ledger.load_timetable(timetable.id).edit_counter == 3
    assert [entry.history_version for entry in ledger.history(timetable.id)] == [3, 2, 1]
    assert ledger.get_entry(timetable.id, 3).summary == "Dropped Sunday lecture"
    assert ledger.get_entry(timetable.id, 3).author_id == "tester"


def test_reconstruct_and_replay_agree_for_every_version(ledger, timetable, initial_grid):
    grids = [initial_grid]
    grids.append(grids[-1].set("Monday", "9:00-9:50", MTH102))
    grids.append(grids[-1].set("Sunday", "8:00-8:50", ENG105))
    grids.append(grids[-1].set("Monday", "9:00-9:50", None).set("Thursday", "3:00-3:50", CSC111))
    for before, after in zip(grids, grids[1:]):
        _record(ledger, timetable.id, before, after)

    for version, expected in enumerate(grids, start=1):
        assert ledger.reconstruct(timetable.id, version) == expected
        assert ledger.replay(timetable.id, version) == expected
    assert ledger.verify_integrity(timetable.id) == 4


@pytest.mark.parametrize("version", [0, -1, 2])
def test_reconstruct_outside_history_raises(ledger, timetable, version):
    with pytest.raises(VersionNotFound) as exc_info:
        ledger.reconstruct(timetable.id, version)
    assert exc_info.value.message == f"Version {version} not found in history."


def test_record_rejects_empty_delta(ledger, timetable, initial_grid):
    with pytest.raises(NoOpEdit):
        _record(ledger, timetable.id, initial_grid, initial_grid)
    assert ledger.load_timetable(timetable.id).edit_counter == 1


def test_record_against_stale_base_stores_effective_change(ledger, timetable, initial_grid):
    v2 = initial_grid.set("Sunday", "8:00-8:50", ENG105)
    _record(ledger, timetable.id, initial_grid, v2)

    # Diffed against version 1, but version 2 already replaced CSC111 with ENG105.
    stale = diff(initial_grid, initial_grid.set("Sunday", "8:00-8:50", None))
    entry = ledger.record(timetable.id, stale, "late-editor", "Cleared Sunday")

    stored = Delta.from_payload(entry.delta)
    assert stored[("Sunday", "8:00-8:50")].old == ENG105
    assert stored[("Sunday", "8:00-8:50")].new is None
    assert ledger.reconstruct(timetable.id, 2) == v2
    assert ledger.verify_integrity(timetable.id) == 3


def test_record_loses_race_when_counter_moves(monkeypatch, ledger, timetable, initial_grid):
    original_load = VersionLedger.load_timetable

    def racing_load(self, timetable_id):
        loaded = original_load(self, timetable_id)
        # Another writer commits between our read and our conditional update.
        self.db.execute(
            update(Timetable)
            .where(Timetable.id == timetable_id)
            .values(edit_counter=Timetable.edit_counter + 1)
            .execution_options(synchronize_session=False)
        )
        return loaded

    monkeypatch.setattr(VersionLedger, "load_timetable", racing_load)
    with pytest.raises(StorageConflict) as exc_info:
        _record(ledger, timetable.id, initial_grid, initial_grid.set("Monday", "9:00-9:50", MTH102))
    monkeypatch.undo()

    assert exc_info.value.details["retryable"] is True
    assert ledger.load_timetable(timetable.id).edit_counter == 1
    assert [entry.history_version for entry in ledger.history(timetable.id)] == [1]


def test_record_refuses_timetable_archived_after_it_was_read(monkeypatch, db_session, ledger, timetable, initial_grid):
    original_load = VersionLedger.load_timetable

    def archiving_load(self, timetable_id):
        loaded = original_load(self, timetable_id)
        self.db.execute(
            update(Timetable)
            .where(Timetable.id == timetable_id)
            .values(status=TimetableStatus.archived)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return loaded

    edited = initial_grid.set("Monday", "9:00-9:50", MTH102)
    monkeypatch.setattr(VersionLedger, "load_timetable", archiving_load)
    with pytest.raises(StorageConflict):
        _record(ledger, timetable.id, initial_grid, edited)
    monkeypatch.undo()

    stored = ledger.load_timetable(timetable.id)
    assert stored.status == TimetableStatus.archived
    assert stored.edit_counter == 1
    assert [entry.history_version for entry in ledger.history(timetable.id)] == [1]

    lifecycle = TimetableLifecycle(db_session, notification_sink=None)
    with pytest.raises(InvalidTransition):
        retry_on_conflict(db_session, lambda: lifecycle.edit(timetable.id, edited, "editor"), attempts=3)


def test_record_duplicate_version_is_a_conflict(db_session, ledger, timetable, initial_grid):
    db_session.add(
        TimetableHistoryEntry(timetable_id=timetable.id, history_version=2, delta={}, summary="orphan")
    )
    db_session.commit()

    with pytest.raises(StorageConflict):
        _record(ledger, timetable.id, initial_grid, initial_grid.set("Monday", "9:00-9:50", MTH102))
    assert ledger.load_timetable(timetable.id).edit_counter == 1


def test_retry_on_conflict_reruns_until_success(db_session):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise StorageConflict("t-1")
        return "done"

    assert retry_on_conflict(db_session, flaky, attempts=3) == "done"
    assert len(calls) == 3


def test_retry_on_conflict_gives_up_after_attempts(db_session):
    calls = []

    def always_conflicts():
        calls.append(1)
        raise StorageConflict("t-1")

    with pytest.raises(StorageConflict):
        retry_on_conflict(db_session, always_conflicts, attempts=2)
    assert len(calls) == 2


def test_verify_integrity_detects_gap(db_session, ledger, timetable, initial_grid):
    v2 = initial_grid.set("Monday", "9:00-9:50", MTH102)
    _record(ledger, timetable.id, initial_grid, v2)
    _record(ledger, timetable.id, v2, v2.set("Tuesday", "9:00-9:50", ENG105))

    db_session.execute(
        delete(TimetableHistoryEntry).where(
            TimetableHistoryEntry.timetable_id == timetable.id,
            TimetableHistoryEntry.history_version == 2,
        )
    )
    db_session.commit()

    with pytest.raises(LedgerIntegrityError) as exc_info:
        ledger.verify_integrity(timetable.id)
    assert exc_info.value.details["found"] == [1, 3]
    with pytest.raises(LedgerIntegrityError):
        ledger.reconstruct(timetable.id, 1)


def test_verify_integrity_detects_tampered_grid(db_session, ledger, timetable, initial_grid):
    db_session.execute(
        update(Timetable)
        .where(Timetable.id == timetable.id)
        .values(grid=initial_grid.set("Monday", "9:00-9:50", MTH102).to_payload())
    )
    db_session.commit()

    with pytest.raises(LedgerIntegrityError):
        ledger.verify_integrity(timetable.id)


def test_compare_returns_delta_between_versions(ledger, timetable, initial_grid):
    v2 = initial_grid.set("Monday", "9:00-9:50", MTH102)
    v3 = v2.set("Sunday", "8:00-8:50", None)
    _record(ledger, timetable.id, initial_grid, v2)
    _record(ledger, timetable.id, v2, v3)

    delta = ledger.compare(timetable.id, 1, 3)
    assert set(delta) == {("Sunday", "8:00-8:50"), ("Monday", "9:00-9:50")}
    assert ledger.compare(timetable.id, 3, 1) == delta.inverted()
    assert ledger.compare(timetable.id, 2, 2).is_empty


def test_history_rows_are_scoped_to_their_timetable(db_session, ledger, timetable, initial_grid):
    other = TimetableLifecycle(db_session, notification_sink=None).create(4, "B", initial_grid)
    _record(ledger, other.id, initial_grid, initial_grid.set("Monday", "9:00-9:50", MTH102))

    versions = db_session.execute(
        select(TimetableHistoryEntry.history_version).where(TimetableHistoryEntry.timetable_id == timetable.id)
    ).scalars().all()
    assert versions == [1]

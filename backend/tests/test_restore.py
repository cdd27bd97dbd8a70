import pytest

from gridledger.core.exceptions import InvalidTransition, RestoreNoOp, VersionNotFound
from gridledger.services.delta import Delta, diff
from gridledger.services.grid import CourseAssignment, Grid
from gridledger.services.lifecycle import TimetableLifecycle
from gridledger.services.restore import RestoreOrchestrator
from gridledger.services.validator import RequiredCourse

CSC111 = CourseAssignment("CSC111", "CSC111")


@pytest.fixture
def g0(grid_payload):
    return Grid.from_payload(
        grid_payload(
            {
                ("Sunday", "8:00-8:50"): "CSC111",
                ("Tuesday", "8:00-8:50"): "CSC111",
                ("Thursday", "8:00-8:50"): "CSC111",
                ("Monday", "11:00-11:50"): "MTH102",
                ("Wednesday", "1:00-1:50"): "ENG105",
            }
        )
    )


@pytest.fixture
def edited(db_session, g0):
    """Level 4 timetable with two edits on top of its initial grid."""
    lifecycle = TimetableLifecycle(db_session, notification_sink=None)
    timetable = lifecycle.create(4, "A", g0, [RequiredCourse("CSC111", 3)])

    g1 = g0.set("Sunday", "8:00-8:50", None).set("Monday", "9:00-9:50", CSC111)
    lifecycle.edit(timetable.id, g1, "editor-1")

    g2 = g1.set("Monday", "11:00-11:50", g1.get("Wednesday", "1:00-1:50")).set(
        "Wednesday", "1:00-1:50", g1.get("Monday", "11:00-11:50")
    )
    lifecycle.edit(timetable.id, g2, "editor-2")
    return timetable.id, [g0, g1, g2]


def test_restore_appends_forward_entry(db_session, edited):
    timetable_id, (g0, g1, g2) = edited
    orchestrator = RestoreOrchestrator(db_session)

    entry = orchestrator.restore(timetable_id, 1, "chair")

    assert entry.history_version == 4
    assert entry.summary == "Restored to version 1"
    assert entry.author_id == "chair"
    assert Delta.from_payload(entry.delta) == diff(g2, g0)
    timetable = orchestrator.ledger.load_timetable(timetable_id)
    assert timetable.edit_counter == 4
    assert Grid.from_payload(timetable.grid) == g0


def test_restore_leaves_earlier_versions_intact(db_session, edited):
    timetable_id, (g0, g1, g2) = edited
    orchestrator = RestoreOrchestrator(db_session)
    orchestrator.restore(timetable_id, 1, "chair")

    ledger = orchestrator.ledger
    assert ledger.reconstruct(timetable_id, 1) == g0
    assert ledger.reconstruct(timetable_id, 2) == g1
    assert ledger.reconstruct(timetable_id, 3) == g2
    assert ledger.reconstruct(timetable_id, 4) == g0
    assert [entry.history_version for entry in ledger.history(timetable_id)] == [4, 3, 2, 1]
    assert ledger.verify_integrity(timetable_id) == 4


def test_restore_can_be_undone_by_another_restore(db_session, edited):
    timetable_id, (g0, g1, g2) = edited
    orchestrator = RestoreOrchestrator(db_session)
    orchestrator.restore(timetable_id, 1, "chair")

    entry = orchestrator.restore(timetable_id, 3, "chair")

    assert entry.history_version == 5
    assert entry.summary == "Restored to version 3"
    assert Grid.from_payload(orchestrator.ledger.load_timetable(timetable_id).grid) == g2


def test_restore_to_current_grid_is_rejected(db_session, edited):
    timetable_id, _ = edited
    orchestrator = RestoreOrchestrator(db_session)

    with pytest.raises(RestoreNoOp) as exc_info:
        orchestrator.restore(timetable_id, 3, "chair")

    assert exc_info.value.status_code == 409
    assert orchestrator.ledger.load_timetable(timetable_id).edit_counter == 3


def test_restore_to_equal_older_grid_is_rejected(db_session, edited):
    timetable_id, (g0, _, _) = edited
    orchestrator = RestoreOrchestrator(db_session)
    orchestrator.restore(timetable_id, 1, "chair")

    # Version 1 and version 4 now hold the same grid.
    with pytest.raises(RestoreNoOp):
        orchestrator.restore(timetable_id, 1, "chair")
    assert orchestrator.ledger.load_timetable(timetable_id).edit_counter == 4


@pytest.mark.parametrize("version", [0, 4, 99])
def test_restore_unknown_version(db_session, edited, version):
    timetable_id, _ = edited
    with pytest.raises(VersionNotFound) as exc_info:
        RestoreOrchestrator(db_session).restore(timetable_id, version, "chair")
    assert exc_info.value.message == f"Version {version} not found in history."


def test_restore_archived_timetable_is_rejected(db_session, edited):
    timetable_id, _ = edited
    TimetableLifecycle(db_session, notification_sink=None).archive(timetable_id)

    with pytest.raises(InvalidTransition):
        RestoreOrchestrator(db_session).restore(timetable_id, 1, "chair")

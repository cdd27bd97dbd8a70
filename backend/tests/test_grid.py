import pytest

from gridledger.services.grid import (
    TIME_SLOTS,
    WEEKDAYS,
    ConflictCell,
    CourseAssignment,
    Grid,
    extract_course_code,
    parse_cell,
)


def test_extract_course_code_reads_leading_code():
    assert extract_course_code("CSC111 - Intro to Programming") == "CSC111"
    assert extract_course_code("MATH201") == "MATH201"
    assert extract_course_code("Seminar Hall Session") == "Seminar"


def test_parse_cell_accepts_supported_shapes():
    assert parse_cell(None) is None
    assert parse_cell("") is None
    assert parse_cell("CSC111 Lecture") == CourseAssignment("CSC111", "CSC111 Lecture")
    assert parse_cell({"course": "CSC111 Lecture", "location": "B12"}) == CourseAssignment(
        "CSC111", "CSC111 Lecture", "B12"
    )
    assert parse_cell({"courseCode": "CSC111", "displayName": "Intro"}) == CourseAssignment("CSC111", "Intro")

    conflict = parse_cell({"conflicts": ["CSC111", "MTH102"]})
    assert isinstance(conflict, ConflictCell)
    assert conflict.course_codes == ("CSC111", "MTH102")


def test_parse_cell_collapses_single_entry_conflict():
    assert parse_cell({"conflicts": ["CSC111"]}) == CourseAssignment("CSC111", "CSC111")


def test_parse_cell_rejects_unknown_values():
    with pytest.raises(ValueError):
        parse_cell(42)
    with pytest.raises(ValueError):
        parse_cell({"conflicts": "CSC111"})


def test_conflict_cell_needs_two_assignments():
    with pytest.raises(ValueError):
        ConflictCell(assignments=(CourseAssignment("CSC111", "CSC111"),))


def test_set_returns_new_grid_and_leaves_original_untouched():
    original = Grid.empty()
    updated = original.set("Sunday", "8:00-8:50", CourseAssignment("CSC111", "CSC111"))

    assert original.get("Sunday", "8:00-8:50") is None
    assert updated.get("Sunday", "8:00-8:50") == CourseAssignment("CSC111", "CSC111")
    assert len(original) == 0
    assert len(updated) == 1


def test_to_payload_emits_every_canonical_slot(grid_payload):
    grid = Grid.from_payload(grid_payload({("Monday", "9:00-9:50"): "CSC111"}))
    payload = grid.to_payload()

    assert list(payload) == list(WEEKDAYS)
    assert all(list(payload[day]) == list(TIME_SLOTS) for day in WEEKDAYS)
    assert payload["Monday"]["9:00-9:50"] == {"courseCode": "CSC111", "displayName": "CSC111"}
    assert payload["Sunday"]["8:00-8:50"] is None


def test_payload_round_trip_preserves_cells(grid_payload):
    grid = Grid.from_payload(
        grid_payload(
            {
                ("Sunday", "8:00-8:50"): {"course": "CSC111 Lecture", "location": "B12"},
                ("Tuesday", "1:00-1:50"): {"conflicts": ["CSC111", "MTH102"]},
            }
        )
    )
    assert Grid.from_payload(grid.to_payload()) == grid


def test_declared_days_tracks_missing_days(grid_payload):
    grid = Grid.from_payload(grid_payload(days=("Sunday", "Monday")))
    assert grid.declared_days == frozenset({"Sunday", "Monday"})
    assert Grid.empty().declared_days == frozenset(WEEKDAYS)


def test_course_occurrences_counts_each_conflicting_assignment(grid_payload):
    grid = Grid.from_payload(
        grid_payload(
            {
                ("Sunday", "8:00-8:50"): "CSC111",
                ("Monday", "8:00-8:50"): "CSC111",
                ("Tuesday", "8:00-8:50"): {"conflicts": ["CSC111", "MTH102"]},
            }
        )
    )
    counts = grid.course_occurrences()
    assert counts["CSC111"] == 3
    assert counts["MTH102"] == 1


def test_equality_ignores_empty_cells_and_key_order():
    left = Grid.from_payload({"Sunday": {"8:00-8:50": "CSC111", "9:00-9:50": None}})
    right = Grid.from_payload({"Sunday": {"8:00-8:50": {"courseCode": "CSC111", "displayName": "CSC111"}}})
    assert left == right
    assert hash(left) == hash(right)


def test_from_payload_rejects_non_object_day():
    with pytest.raises(ValueError):
        Grid.from_payload({"Sunday": ["CSC111"]})

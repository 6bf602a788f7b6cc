import pytest

from rollflow.services.errors import RollClosed, StageAlreadyRecorded, StageOrderViolation
from rollflow.services.stage_machine import (
    Stage,
    check_stage_entry,
    derive_roll_stage,
    last_populated_quantity,
    missing_prerequisite,
)
from tests.factories import make_roll


def test_no_extrusion_is_none():
    assert derive_roll_stage(make_roll(), requires_printing=False) == Stage.NONE


def test_extruded_only():
    r = make_roll(extrude_qty=500.0)
    assert derive_roll_stage(r, requires_printing=True) == Stage.EXTRUDING
    assert derive_roll_stage(r, requires_printing=False) == Stage.EXTRUDING


def test_printed_roll_is_printing_when_required():
    r = make_roll(extrude_qty=500.0, print_qty=480.0)
    assert derive_roll_stage(r, requires_printing=True) == Stage.PRINTING


def test_optional_print_does_not_advance_unprinted_item():
    r = make_roll(extrude_qty=500.0, print_qty=480.0)
    assert derive_roll_stage(r, requires_printing=False) == Stage.EXTRUDING


def test_cut_roll_waits_for_receiving():
    r = make_roll(extrude_qty=500.0, print_qty=480.0, cut_qty=450.0)
    assert derive_roll_stage(r, requires_printing=True) == Stage.CUTTING
    assert derive_roll_stage(r, requires_printing=True, received=449.0) == Stage.CUTTING
    assert derive_roll_stage(r, requires_printing=True, received=450.0) == Stage.COMPLETED


def test_damaged_roll_is_completed():
    r = make_roll(extrude_qty=500.0, terminal_status="damaged")
    assert derive_roll_stage(r, requires_printing=True) == Stage.COMPLETED


def test_stored_status_is_not_consulted():
    # The same quantities always yield the same stage, whatever the roll has seen before.
    a = make_roll(extrude_qty=500.0, cut_qty=450.0, note="was completed")
    b = make_roll(extrude_qty=500.0, cut_qty=450.0)
    assert derive_roll_stage(a, False) == derive_roll_stage(b, False) == Stage.CUTTING


def test_last_populated_quantity():
    assert last_populated_quantity(make_roll()) is None
    assert last_populated_quantity(make_roll(extrude_qty=500.0)) == 500.0
    assert last_populated_quantity(make_roll(extrude_qty=500.0, print_qty=480.0)) == 480.0
    assert last_populated_quantity(make_roll(extrude_qty=500.0, cut_qty=470.0)) == 470.0


def test_cutting_needs_printing_when_required():
    r = make_roll(extrude_qty=500.0)
    assert missing_prerequisite(r, True, Stage.CUTTING) == Stage.PRINTING
    assert missing_prerequisite(r, False, Stage.CUTTING) is None

    with pytest.raises(StageOrderViolation) as ei:
        check_stage_entry(r, True, Stage.CUTTING)
    assert ei.value.missing_stage == "printing"
    assert ei.value.detail["stage"] == "cutting"
    assert r.cut_qty is None


def test_nothing_before_extrusion():
    r = make_roll()
    for stage in (Stage.PRINTING, Stage.CUTTING):
        with pytest.raises(StageOrderViolation) as ei:
            check_stage_entry(r, False, stage)
        assert ei.value.missing_stage == "extruding"


def test_stage_recorded_twice():
    r = make_roll(extrude_qty=500.0, print_qty=480.0)
    with pytest.raises(StageAlreadyRecorded):
        check_stage_entry(r, True, Stage.PRINTING)


def test_printing_after_cut_is_rejected():
    r = make_roll(extrude_qty=500.0, cut_qty=470.0)
    with pytest.raises(StageAlreadyRecorded) as ei:
        check_stage_entry(r, False, Stage.PRINTING)
    assert ei.value.stage == "cutting"


def test_damaged_roll_is_closed():
    r = make_roll(extrude_qty=500.0, terminal_status="damaged")
    with pytest.raises(RollClosed):
        check_stage_entry(r, False, Stage.CUTTING)


def test_completed_is_not_recordable():
    with pytest.raises(ValueError):
        check_stage_entry(make_roll(extrude_qty=1.0), False, Stage.COMPLETED)


def test_valid_entries_pass():
    check_stage_entry(make_roll(extrude_qty=500.0), True, Stage.PRINTING)
    check_stage_entry(make_roll(extrude_qty=500.0, print_qty=480.0), True, Stage.CUTTING)
    check_stage_entry(make_roll(extrude_qty=500.0), False, Stage.CUTTING)

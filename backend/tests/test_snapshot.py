import uuid
from datetime import datetime, timezone

import pytest

from rollflow.db.models.machine import Machine
from rollflow.services.snapshot_service import build_snapshot, load_snapshot
from tests.factories import make_job_order, make_receipt, make_roll, persist


def _machine(code, section):
    return Machine(id=uuid.uuid4(), code=code, section=section, is_active=True)


def test_snapshot_derives_everything():
    ext = _machine("EX-01", "extrusion")
    cut = _machine("CT-01", "cutting")
    j = make_job_order(target_quantity=1000.0, requires_printing=True)
    r1 = make_roll(j, 1, extrude_qty=500.0, print_qty=480.0, cut_qty=450.0, cutting_machine_id=cut.id)
    r2 = make_roll(j, 2, extrude_qty=300.0, extrusion_machine_id=ext.id)
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)

    snap = build_snapshot([ext, cut], [j], [r1, r2], [make_receipt(j, 100.0)], now=now)

    assert snap["last_updated"] == now.isoformat()
    assert [m["code"] for m in snap["machines"]] == ["CT-01", "EX-01"]
    assert {m["code"]: m["active_roll_count"] for m in snap["machines"]} == {"CT-01": 1, "EX-01": 1}

    rolls = {r["roll_number"]: r for r in snap["rolls"]}
    assert rolls[1]["stage"] == "cutting"
    assert rolls[1]["received_quantity"] == pytest.approx(100.0)
    assert rolls[1]["total_waste"] == pytest.approx(50.0)
    assert rolls[2]["stage"] == "extruding"
    assert rolls[2]["total_waste"] == 0

    [job] = snap["job_orders"]
    assert job["status"] == "in_progress"
    assert job["available_for_receiving"] == pytest.approx(350.0)
    assert job["stage_breakdown"]["cutting"] == 1


def test_snapshot_is_a_pure_function_of_its_inputs():
    j = make_job_order()
    rolls = [make_roll(j, 1, extrude_qty=500.0, cut_qty=450.0)]
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert build_snapshot([], [j], rolls, [], now=now) == build_snapshot([], [j], rolls, [], now=now)


def test_empty_snapshot():
    snap = build_snapshot([], [], [], [])
    assert snap["machines"] == snap["rolls"] == snap["job_orders"] == []
    assert snap["last_updated"]


async def test_load_snapshot_reads_database(session_factory, session, job_order):
    r = make_roll(job_order, 1, extrude_qty=500.0, cut_qty=450.0)
    await persist(session_factory, r)
    await persist(session_factory, make_receipt(job_order, 450.0, roll=r))

    snap = await load_snapshot(session)
    [row] = snap["rolls"]
    assert row["stage"] == "completed"
    [job] = snap["job_orders"]
    assert job["id"] == str(job_order.id)
    assert job["received_quantity"] == pytest.approx(450.0)
    assert job["available_for_receiving"] == 0

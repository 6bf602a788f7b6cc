import asyncio
import uuid
from datetime import datetime, timezone

import pytest

from rollflow.services import receiving_service
from rollflow.services.errors import JobOrderClosed, NotFound, QuantityExceedsAvailable, StageOrderViolation
from rollflow.services.receiving_service import (
    allocate_receipts_to_rolls,
    compute_availability,
    is_receivable,
)
from tests.factories import make_job_order, make_receipt, make_roll, persist


def test_availability_is_cut_minus_received():
    j = make_job_order()
    rolls = [make_roll(j, 1, extrude_qty=520.0, cut_qty=500.0), make_roll(j, 2, extrude_qty=520.0, cut_qty=500.0)]
    assert compute_availability(rolls, [make_receipt(j, 400.0)]) == pytest.approx(600.0)


def test_uncut_and_damaged_rolls_are_not_receivable():
    j = make_job_order()
    assert not is_receivable(make_roll(j, 1, extrude_qty=500.0))
    assert not is_receivable(make_roll(j, 2, extrude_qty=500.0, cut_qty=450.0, terminal_status="damaged"))
    assert is_receivable(make_roll(j, 3, extrude_qty=500.0, cut_qty=450.0))


def test_availability_never_negative():
    j = make_job_order()
    r = make_roll(j, 1, extrude_qty=500.0, cut_qty=450.0, terminal_status="damaged")
    assert compute_availability([r], [make_receipt(j, 100.0)]) == 0


def test_allocation_linked_first_then_roll_order():
    j = make_job_order()
    r1 = make_roll(j, 1, extrude_qty=500.0, cut_qty=400.0)
    r2 = make_roll(j, 2, extrude_qty=500.0, cut_qty=300.0)
    r3 = make_roll(j, 3, extrude_qty=500.0)
    receipts = [make_receipt(j, 350.0, roll=r2), make_receipt(j, 100.0)]

    allocated = allocate_receipts_to_rolls([r3, r2, r1], receipts)
    assert set(allocated) == {str(r1.id), str(r2.id)}
    # 50 overflow from the linked receipt plus 100 unlinked go to roll 1
    assert allocated[str(r2.id)] == pytest.approx(300.0)
    assert allocated[str(r1.id)] == pytest.approx(150.0)


async def _seed(session_factory, job_order, *cuts):
    rolls = [
        make_roll(job_order, n, extrude_qty=float(cut) + 20.0, cut_qty=float(cut))
        for n, cut in enumerate(cuts, start=1)
    ]
    return list(await persist(session_factory, *rolls))


async def test_over_receiving_is_rejected_with_available(session_factory, session, job_order):
    await _seed(session_factory, job_order, 500.0, 500.0)
    await receiving_service.submit_receiving(session, job_order.id, 400.0, received_by="wh-1")

    with pytest.raises(QuantityExceedsAvailable) as ei:
        await receiving_service.submit_receiving(session, job_order.id, 700.0, received_by="wh-1")
    assert ei.value.available == pytest.approx(600.0)
    assert ei.value.detail["available"] == pytest.approx(600.0)

    receipts = await receiving_service.list_receipts(session, job_order.id)
    assert [t.quantity for t in receipts] == [400.0]


async def test_receiving_up_to_available(session_factory, session, job_order):
    await _seed(session_factory, job_order, 1000.0)
    await receiving_service.submit_receiving(session, job_order.id, 400.0, received_by="wh-1")
    tx = await receiving_service.submit_receiving(session, job_order.id, 600.0, received_by="wh-2", note="pallet 2")
    assert tx.id is not None
    assert tx.note == "pallet 2"
    assert await receiving_service.available_for_receiving(session, job_order.id) == 0


async def test_availability_read_is_idempotent(session_factory, session, job_order):
    await _seed(session_factory, job_order, 450.0, 300.0)
    reads = [await receiving_service.available_for_receiving(session, job_order.id) for _ in range(3)]
    assert reads == [750.0, 750.0, 750.0]
    assert await receiving_service.list_receipts(session, job_order.id) == []


async def test_concurrent_submissions_cannot_both_pass(session_factory, session, job_order):
    await _seed(session_factory, job_order, 100.0)

    async def submit(who):
        async with session_factory() as s:
            return await receiving_service.submit_receiving(s, job_order.id, 60.0, received_by=who)

    results = await asyncio.gather(submit("wh-1"), submit("wh-2"), return_exceptions=True)
    accepted = [r for r in results if not isinstance(r, BaseException)]
    rejected = [r for r in results if isinstance(r, QuantityExceedsAvailable)]
    assert len(accepted) == 1
    assert len(rejected) == 1
    assert rejected[0].available == pytest.approx(40.0)

    async with session_factory() as s:
        receipts = await receiving_service.list_receipts(s, job_order.id)
        assert sum(t.quantity for t in receipts) == pytest.approx(60.0)
        assert await receiving_service.available_for_receiving(s, job_order.id) == pytest.approx(40.0)


async def test_received_never_exceeds_cut(session_factory, session, job_order):
    await _seed(session_factory, job_order, 120.0)
    for qty in (50.0, 50.0, 50.0, 20.0):
        try:
            await receiving_service.submit_receiving(session, job_order.id, qty, received_by="wh-1")
        except QuantityExceedsAvailable:
            pass
        receipts = await receiving_service.list_receipts(session, job_order.id)
        assert sum(t.quantity for t in receipts) <= 120.0
    assert await receiving_service.available_for_receiving(session, job_order.id) == 0


async def test_linked_roll_must_be_cut(session_factory, session, job_order):
    [cut] = await _seed(session_factory, job_order, 400.0)
    [uncut] = await persist(session_factory, make_roll(job_order, 2, extrude_qty=300.0))

    with pytest.raises(StageOrderViolation) as ei:
        await receiving_service.submit_receiving(session, job_order.id, 10.0, received_by="wh-1", roll_id=uncut.id)
    assert ei.value.missing_stage == "cutting"

    tx = await receiving_service.submit_receiving(session, job_order.id, 10.0, received_by="wh-1", roll_id=cut.id)
    assert tx.roll_id == cut.id


async def test_unknown_job_order_or_roll(session_factory, session, job_order):
    with pytest.raises(NotFound):
        await receiving_service.submit_receiving(session, uuid.uuid4(), 1.0, received_by="wh-1")
    with pytest.raises(NotFound):
        await receiving_service.available_for_receiving(session, uuid.uuid4())
    await _seed(session_factory, job_order, 10.0)
    with pytest.raises(NotFound):
        await receiving_service.submit_receiving(session, job_order.id, 1.0, received_by="wh-1", roll_id=uuid.uuid4())


async def test_non_positive_quantity(session_factory, session, job_order):
    with pytest.raises(ValueError):
        await receiving_service.submit_receiving(session, job_order.id, 0, received_by="wh-1")


async def test_closed_job_order_accepts_no_receipts(session_factory, session):
    [j] = await persist(session_factory, make_job_order(closed_at=datetime.now(timezone.utc)))
    await _seed(session_factory, j, 300.0)

    with pytest.raises(JobOrderClosed):
        await receiving_service.submit_receiving(session, j.id, 100.0, received_by="wh-1")
    assert await receiving_service.list_receipts(session, j.id) == []

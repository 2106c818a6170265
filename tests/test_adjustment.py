from datetime import datetime, timedelta

import pytest

from inventory_pro.exceptions import InsufficientStock, InvalidTransition, ValidationError
from inventory_pro.models import Adjustment
from inventory_pro.schemas import AdjustmentLineRequest, AdjustmentRequest
from inventory_pro.services.adjustment_service import AdjustmentService
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.extensions import db


def adjust(ctx, location, *lines, adjustment_type='CORRECTION', reason=None):
    return AdjustmentService.create_adjustment(ctx, AdjustmentRequest(
        location_id=location.id,
        adjustment_type=adjustment_type,
        reason=reason,
        lines=[AdjustmentLineRequest(item_id=item.id, quantity_delta=delta) for item, delta in lines],
    ))


def test_delta_is_applied_exactly(ctx, item, locations, stock, row):
    a = locations['A']
    stock(item, a, 10)

    ok, adjustment = adjust(ctx, a, (item, -3), adjustment_type='DAMAGE', reason='Broken in transit')
    assert ok, adjustment
    assert adjustment.adjustment_number.startswith('ADJ-')
    assert adjustment.status == Adjustment.STATUS_COMPLETED
    line = adjustment.lines[0]
    assert (line.before_quantity, line.after_quantity, line.adjusted_quantity) == (10, 7, -3)
    assert row(item, a).quantity == 7


def test_adjustment_cannot_go_negative(ctx, item, gadget, locations, stock, row):
    a = locations['A']
    stock(item, a, 2)

    ok, error = adjust(ctx, a, (gadget, 4), (item, -3))
    assert not ok
    assert isinstance(error, InsufficientStock)
    assert Adjustment.query.count() == 0
    assert row(gadget, a).quantity == 0
    assert row(item, a).quantity == 2


def test_adjustment_cannot_drop_below_reserved(ctx, item, locations, stock, row):
    a = locations['A']
    stock(item, a, 10)
    LedgerService.reserve(ctx, item.id, a.id, 8)
    db.session.commit()

    ok, error = adjust(ctx, a, (item, -3))
    assert not ok
    assert isinstance(error, InsufficientStock)
    assert row(item, a).quantity == 10


def test_unknown_type_is_rejected(ctx, item, locations):
    ok, error = adjust(ctx, locations['A'], (item, 1), adjustment_type='MAGIC')
    assert not ok
    assert isinstance(error, ValidationError)


def test_stock_count_converts_to_delta(ctx, item, gadget, locations, stock, row):
    a = locations['A']
    stock(item, a, 10)
    stock(gadget, a, 4)

    ok, adjustment = AdjustmentService.set_counted_quantity(ctx, a.id, {item.id: 7, gadget.id: 4})
    assert ok, adjustment
    assert adjustment.adjustment_type == Adjustment.TYPE_STOCK_COUNT
    assert [(l.item_id, l.adjusted_quantity) for l in adjustment.lines] == [(item.id, -3)]
    assert row(item, a).quantity == 7


def test_stock_count_matching_ledger_is_rejected(ctx, item, locations, stock):
    stock(item, locations['A'], 5)
    ok, error = AdjustmentService.set_counted_quantity(ctx, locations['A'].id, {item.id: 5})
    assert not ok
    assert isinstance(error, ValidationError)

    ok, error = AdjustmentService.set_counted_quantity(ctx, locations['A'].id, {item.id: -1})
    assert not ok


def test_cancel_reverses_deltas(ctx, item, locations, stock, row):
    a = locations['A']
    stock(item, a, 10)
    _, adjustment = adjust(ctx, a, (item, 5))

    ok, adjustment = AdjustmentService.cancel(ctx, adjustment.id)
    assert ok
    assert adjustment.status == Adjustment.STATUS_CANCELLED
    assert row(item, a).quantity == 10

    ok, error = AdjustmentService.cancel(ctx, adjustment.id)
    assert not ok and isinstance(error, InvalidTransition)
    ok, error = AdjustmentService.approve(ctx, adjustment.id)
    assert not ok and isinstance(error, InvalidTransition)


def test_approve_records_approver(ctx, item, locations):
    _, adjustment = adjust(ctx, locations['A'], (item, 2))
    ok, adjustment = AdjustmentService.approve(ctx, adjustment.id)
    assert ok
    assert adjustment.approved_by_id == ctx.user_id


def test_list_pagination_and_search(ctx, item, locations):
    a = locations['A']
    for i in range(3):
        adjust(ctx, a, (item, 1), reason=f'Found on shelf {i}')
    adjust(ctx, a, (item, 1), adjustment_type='OTHER', reason='Supplier bonus')

    page = AdjustmentService.list_adjustments(ctx, page=1, per_page=2)
    assert page.total == 4
    assert len(page.items) == 2
    assert page.pages == 2

    assert AdjustmentService.list_adjustments(ctx, search='bonus').total == 1
    assert AdjustmentService.list_adjustments(ctx, adjustment_type='CORRECTION').total == 3
    tomorrow = datetime.utcnow() + timedelta(days=1)
    assert AdjustmentService.list_adjustments(ctx, start_date=tomorrow).total == 0


def test_net_adjustment(ctx, item, locations, stock):
    a = locations['A']
    stock(item, a, 10)
    adjust(ctx, a, (item, 5))
    adjust(ctx, a, (item, -3))
    _, cancelled = adjust(ctx, a, (item, 4))
    AdjustmentService.cancel(ctx, cancelled.id)

    assert AdjustmentService.net_adjustment(ctx) == 2
    assert AdjustmentService.net_adjustment(ctx, location_id=locations['B'].id) == 0

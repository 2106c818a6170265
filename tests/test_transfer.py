import pytest

from inventory_pro.exceptions import InsufficientStock, InvalidTransition, SameLocation, ValidationError
from inventory_pro.models import Transfer
from inventory_pro.schemas import TransferRequest
from inventory_pro.services.transfer_service import TransferService


@pytest.fixture
def stocked(item, locations, stock):
    stock(item, locations['A'], 10)
    return item


def request_for(item, source, target, quantity):
    return TransferRequest(item_id=item.id, from_location_id=source.id,
                           to_location_id=target.id, quantity=quantity)


def test_create_reserves_at_source(ctx, stocked, locations, row):
    a, b = locations['A'], locations['B']
    ok, transfer = TransferService.create_transfer(ctx, request_for(stocked, a, b, 4))
    assert ok, transfer
    assert transfer.status == Transfer.STATUS_DRAFT
    assert transfer.transfer_number.startswith('TR-')
    assert transfer.total_quantity == 4

    source = row(stocked, a)
    assert (source.quantity, source.reserved_quantity, source.available) == (10, 4, 6)
    assert row(stocked, b).quantity == 0


def test_same_location_is_rejected(ctx, stocked, locations):
    ok, error = TransferService.create_transfer(ctx, request_for(stocked, locations['A'], locations['A'], 1))
    assert not ok
    assert isinstance(error, SameLocation)
    assert Transfer.query.count() == 0


def test_insufficient_stock_creates_nothing(ctx, stocked, locations, row):
    ok, error = TransferService.create_transfer(ctx, request_for(stocked, locations['A'], locations['B'], 11))
    assert not ok
    assert isinstance(error, InsufficientStock)
    assert Transfer.query.count() == 0
    assert row(stocked, locations['A']).reserved_quantity == 0


def test_zero_quantity_is_rejected(ctx, stocked, locations):
    ok, error = TransferService.create_transfer(ctx, request_for(stocked, locations['A'], locations['B'], 0))
    assert not ok
    assert isinstance(error, ValidationError)


def test_approve_dispatch_complete_moves_stock(ctx, stocked, locations, row):
    a, b = locations['A'], locations['B']
    _, transfer = TransferService.create_transfer(ctx, request_for(stocked, a, b, 4))

    ok, error = TransferService.complete(ctx, transfer.id)
    assert not ok and isinstance(error, InvalidTransition)

    ok, transfer = TransferService.approve(ctx, transfer.id)
    assert ok and transfer.approved_by_id == ctx.user_id
    ok, transfer = TransferService.dispatch(ctx, transfer.id)
    assert ok and transfer.status == Transfer.STATUS_IN_TRANSIT
    ok, transfer = TransferService.complete(ctx, transfer.id)
    assert ok, transfer
    assert transfer.status == Transfer.STATUS_COMPLETED
    assert transfer.completed_at is not None

    source, target = row(stocked, a), row(stocked, b)
    assert (source.quantity, source.reserved_quantity) == (6, 0)
    assert target.quantity == 4

    ok, error = TransferService.cancel(ctx, transfer.id)
    assert not ok and isinstance(error, InvalidTransition)


def test_cancel_releases_reservation(ctx, stocked, locations, row):
    a, b = locations['A'], locations['B']
    _, transfer = TransferService.create_transfer(ctx, request_for(stocked, a, b, 4))
    TransferService.approve(ctx, transfer.id)

    ok, transfer = TransferService.cancel(ctx, transfer.id)
    assert ok
    assert transfer.status == Transfer.STATUS_CANCELLED
    source = row(stocked, a)
    assert (source.quantity, source.reserved_quantity) == (10, 0)


def test_quick_transfer_conserves_total(ctx, stocked, locations, row):
    a, b = locations['A'], locations['B']
    ok, transfer = TransferService.transfer_stock(ctx, request_for(stocked, a, b, 7))
    assert ok, transfer
    assert transfer.status == Transfer.STATUS_COMPLETED

    source, target = row(stocked, a), row(stocked, b)
    assert (source.quantity, target.quantity) == (3, 7)
    assert source.quantity + target.quantity == 10
    assert source.reserved_quantity == 0


def test_reserved_stock_is_not_available_for_another_transfer(ctx, stocked, locations):
    a, b = locations['A'], locations['B']
    TransferService.create_transfer(ctx, request_for(stocked, a, b, 8))
    ok, error = TransferService.transfer_stock(ctx, request_for(stocked, a, b, 3))
    assert not ok
    assert isinstance(error, InsufficientStock)


def test_batch_groups_by_route(ctx, stocked, gadget, locations, stock):
    a, b = locations['A'], locations['B']
    stock(gadget, b, 5)

    ok, transfers = TransferService.create_batch_transfer(ctx, [
        request_for(stocked, a, b, 2),
        request_for(gadget, b, a, 1),
        request_for(stocked, a, b, 3),
    ], notes='weekly rebalance')
    assert ok, transfers
    assert len(transfers) == 2
    assert [len(t.lines) for t in transfers] == [2, 1]
    assert transfers[0].transfer_number != transfers[1].transfer_number
    assert all(t.notes == 'weekly rebalance' for t in transfers)


def test_failed_batch_is_atomic(ctx, stocked, gadget, locations, row):
    a, b = locations['A'], locations['B']
    ok, error = TransferService.create_batch_transfer(ctx, [
        request_for(stocked, a, b, 2),
        request_for(gadget, a, b, 1),
    ])
    assert not ok
    assert isinstance(error, InsufficientStock)
    assert Transfer.query.count() == 0
    assert row(stocked, a).reserved_quantity == 0


def test_list_transfers_filters(ctx, stocked, locations):
    a, b = locations['A'], locations['B']
    _, first = TransferService.create_transfer(ctx, request_for(stocked, a, b, 1))
    TransferService.transfer_stock(ctx, request_for(stocked, a, b, 1))

    assert len(TransferService.list_transfers(ctx, location_id=b.id)) == 2
    assert [t.id for t in TransferService.list_transfers(ctx, status='DRAFT')] == [first.id]


def test_transfers_are_scoped_to_organisation(ctx, stocked, locations, other_org):
    ok, transfer = TransferService.create_transfer(ctx, request_for(stocked, locations['A'], locations['B'], 1))
    ok, error = TransferService.cancel(other_org['ctx'], transfer.id)
    assert not ok
    assert error.code == 404

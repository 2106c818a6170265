import pytest

from inventory_pro.exceptions import InsufficientStock, NotFound, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import InventoryLog
from inventory_pro.services.ledger_service import LedgerService


def test_available_is_quantity_minus_reserved(ctx, item, locations, stock, row):
    stock(item, locations['A'], 10)
    LedgerService.reserve(ctx, item.id, locations['A'].id, 3)
    db.session.commit()

    inv = row(item, locations['A'])
    assert (inv.quantity, inv.reserved_quantity, inv.available) == (10, 3, 7)
    assert LedgerService.get_available(ctx, item.id, locations['A'].id) == 7
    assert LedgerService.get_available(ctx, item.id, locations['B'].id) == 0


def test_negative_adjustment_beyond_stock_leaves_row_unchanged(ctx, item, locations, stock, row):
    stock(item, locations['A'], 5)

    with pytest.raises(InsufficientStock) as exc:
        LedgerService.apply_adjustment(ctx, item.id, locations['A'].id, -6)
    db.session.rollback()

    assert exc.value.payload['quantity'] == 5
    assert row(item, locations['A']).quantity == 5


def test_reserve_cannot_exceed_available(ctx, item, locations, stock, row):
    stock(item, locations['A'], 5)
    LedgerService.reserve(ctx, item.id, locations['A'].id, 4)
    db.session.commit()

    with pytest.raises(InsufficientStock):
        LedgerService.reserve(ctx, item.id, locations['A'].id, 2)
    db.session.rollback()

    inv = row(item, locations['A'])
    assert inv.reserved_quantity == 4


def test_quantity_cannot_drop_below_reserved(ctx, item, locations, stock, row):
    stock(item, locations['A'], 10)
    LedgerService.reserve(ctx, item.id, locations['A'].id, 8)
    db.session.commit()

    with pytest.raises(InsufficientStock):
        LedgerService.issue(ctx, item.id, locations['A'].id, 3)
    db.session.rollback()

    inv = row(item, locations['A'])
    assert (inv.quantity, inv.reserved_quantity) == (10, 8)


def test_fulfil_and_release_keep_reserved_within_quantity(ctx, item, locations, stock, row):
    a = locations['A']
    stock(item, a, 10)
    LedgerService.reserve(ctx, item.id, a.id, 6)
    LedgerService.fulfil(ctx, item.id, a.id, 4)
    LedgerService.release(ctx, item.id, a.id, 2)
    db.session.commit()

    inv = row(item, a)
    assert (inv.quantity, inv.reserved_quantity) == (6, 0)
    assert 0 <= inv.reserved_quantity <= inv.quantity

    with pytest.raises(InsufficientStock):
        LedgerService.release(ctx, item.id, a.id, 1)
    db.session.rollback()


@pytest.mark.parametrize('quantity', [0, -1, 1.5, True])
def test_mutations_require_positive_integer(ctx, item, locations, quantity):
    with pytest.raises(ValidationError):
        LedgerService.apply_receipt(ctx, item.id, locations['A'].id, quantity)


def test_zero_adjustment_is_rejected(ctx, item, locations):
    with pytest.raises(ValidationError):
        LedgerService.apply_adjustment(ctx, item.id, locations['A'].id, 0)


def test_every_mutation_is_logged(ctx, item, locations, stock):
    a = locations['A']
    stock(item, a, 10)
    LedgerService.reserve(ctx, item.id, a.id, 2, reference='SO-TEST')
    db.session.commit()

    logs = LedgerService.movements(ctx, item_id=item.id, location_id=a.id)
    assert [log.move_type for log in logs] == [InventoryLog.TYPE_RESERVE, InventoryLog.TYPE_ADJUSTMENT]
    assert logs[0].reserved_change == 2
    assert logs[0].balance_after == 10
    assert logs[0].reference == 'SO-TEST'


def test_rows_of_other_organisations_are_not_reachable(ctx, item, other_org):
    with pytest.raises(NotFound):
        LedgerService.get_or_create_row(ctx, item.id, other_org['location'].id)
    with pytest.raises(NotFound):
        LedgerService.get_or_create_row(ctx, other_org['item'].id, other_org['location'].id)

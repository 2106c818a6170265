from datetime import datetime
from decimal import Decimal

import pytest

from inventory_pro.exceptions import InsufficientStock, InvalidTransition, NotFound, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import SalesOrder
from inventory_pro.pricing import recalculate_totals
from inventory_pro.schemas import OrderLineRequest, PosSaleRequest, SalesOrderRequest
from inventory_pro.services.sales_service import SalesService


def order_request(location, item, quantity=2, status='DRAFT', customer=None, **kwargs):
    return SalesOrderRequest(
        location_id=location.id,
        customer_id=customer.id if customer else None,
        status=status,
        lines=[OrderLineRequest(item_id=item.id, quantity=quantity,
                                unit_price=Decimal('10.00'), tax_rate=Decimal('13'))],
        **kwargs
    )


@pytest.fixture
def shop(locations, item, stock):
    stock(item, locations['B'], 10)
    return locations['B']


def test_draft_has_no_ledger_effect(ctx, shop, item, customer, row):
    ok, order = SalesService.create_sales_order(ctx, order_request(
        shop, item, customer=customer, shipping_cost=Decimal('5'), discount=Decimal('1')))
    assert ok, order
    assert order.order_number.startswith('SO-')
    assert order.source == SalesOrder.SOURCE_SALES_ORDER
    assert order.status == SalesOrder.STATUS_DRAFT
    assert order.subtotal == Decimal('20.00')
    assert order.tax_amount == Decimal('2.60')
    assert order.total == Decimal('26.60')

    inv = row(item, shop)
    assert (inv.quantity, inv.reserved_quantity) == (10, 0)


def test_confirmed_order_reserves(ctx, shop, item, row):
    ok, order = SalesService.create_sales_order(ctx, order_request(shop, item, quantity=3, status='CONFIRMED'))
    assert ok, order
    assert order.status == SalesOrder.STATUS_CONFIRMED
    inv = row(item, shop)
    assert (inv.quantity, inv.reserved_quantity) == (10, 3)


def test_confirmed_order_without_stock_is_not_created(ctx, shop, item, row):
    ok, error = SalesService.create_sales_order(ctx, order_request(shop, item, quantity=11, status='CONFIRMED'))
    assert not ok
    assert isinstance(error, InsufficientStock)
    assert SalesOrder.query.count() == 0
    assert row(item, shop).reserved_quantity == 0


def test_order_cannot_start_shipped(ctx, shop, item):
    ok, error = SalesService.create_sales_order(ctx, order_request(shop, item, status='SHIPPED'))
    assert not ok
    assert isinstance(error, ValidationError)


def test_status_chain_and_return(ctx, shop, item, row):
    _, order = SalesService.create_sales_order(ctx, order_request(shop, item, quantity=4, status='CONFIRMED'))
    SalesService.update_payment_status(ctx, order.id, SalesOrder.PAYMENT_PAID, 'CARD')

    ok, order = SalesService.update_status(ctx, order.id, SalesOrder.STATUS_PROCESSING)
    assert ok
    ok, order = SalesService.update_status(ctx, order.id, SalesOrder.STATUS_SHIPPED)
    assert ok
    inv = row(item, shop)
    assert (inv.quantity, inv.reserved_quantity) == (6, 0)

    ok, order = SalesService.update_status(ctx, order.id, SalesOrder.STATUS_RETURNED)
    assert ok
    assert order.payment_status == SalesOrder.PAYMENT_REFUNDED
    assert order.payment_method == 'CARD'
    assert row(item, shop).quantity == 10


def test_status_cannot_skip_steps(ctx, shop, item):
    _, order = SalesService.create_sales_order(ctx, order_request(shop, item))
    ok, error = SalesService.update_status(ctx, order.id, SalesOrder.STATUS_SHIPPED)
    assert not ok
    assert isinstance(error, InvalidTransition)
    assert error.code == 409


def test_cancel_confirmed_releases(ctx, shop, item, row):
    _, order = SalesService.create_sales_order(ctx, order_request(shop, item, quantity=3, status='CONFIRMED'))
    ok, order = SalesService.update_status(ctx, order.id, SalesOrder.STATUS_CANCELLED)
    assert ok
    inv = row(item, shop)
    assert (inv.quantity, inv.reserved_quantity) == (10, 0)


def test_draft_confirmation_can_fail_on_stock(ctx, shop, item, row):
    _, order = SalesService.create_sales_order(ctx, order_request(shop, item, quantity=12))
    ok, error = SalesService.update_status(ctx, order.id, SalesOrder.STATUS_CONFIRMED)
    assert not ok
    assert isinstance(error, InsufficientStock)
    db.session.expire_all()
    assert order.status == SalesOrder.STATUS_DRAFT


def test_update_only_drafts(ctx, shop, item, gadget):
    _, order = SalesService.create_sales_order(ctx, order_request(shop, item))
    ok, order = SalesService.update_sales_order(ctx, order.id, SalesOrderRequest(
        location_id=shop.id,
        lines=[OrderLineRequest(item_id=gadget.id, quantity=1, unit_price=Decimal('4.99'))],
        shipping_cost=Decimal('2'),
    ))
    assert ok, order
    assert [line.item_id for line in order.lines] == [gadget.id]
    assert order.total == Decimal('6.99')

    SalesService.update_status(ctx, order.id, SalesOrder.STATUS_CANCELLED)
    ok, error = SalesService.update_sales_order(ctx, order.id, order_request(shop, item))
    assert not ok
    assert isinstance(error, InvalidTransition)


def test_invalid_payment_status(ctx, shop, item):
    _, order = SalesService.create_sales_order(ctx, order_request(shop, item))
    ok, error = SalesService.update_payment_status(ctx, order.id, 'MAYBE')
    assert not ok
    assert isinstance(error, ValidationError)


def test_pos_sale_decrements_immediately(ctx, shop, item, row):
    ok, order = SalesService.create_pos_sale(ctx, PosSaleRequest(
        location_id=shop.id,
        payment_method='CASH',
        lines=[OrderLineRequest(item_id=item.id, quantity=3, unit_price=Decimal('10.00'),
                                tax_rate=Decimal('13'))],
    ))
    assert ok, order
    assert order.order_number.startswith('POS-')
    assert order.source == SalesOrder.SOURCE_POS
    assert (order.status, order.payment_status) == (SalesOrder.STATUS_COMPLETED, SalesOrder.PAYMENT_PAID)
    assert order.total == Decimal('33.90')
    assert row(item, shop).quantity == 7

    db.session.refresh(item)
    assert item.sales_count == 3
    assert Decimal(item.sales_total) == Decimal('33.90')


def test_pos_sale_without_stock_changes_nothing(ctx, shop, item, gadget, row):
    ok, error = SalesService.create_pos_sale(ctx, PosSaleRequest(
        location_id=shop.id,
        lines=[
            OrderLineRequest(item_id=item.id, quantity=2, unit_price=Decimal('10.00')),
            OrderLineRequest(item_id=gadget.id, quantity=1, unit_price=Decimal('4.99')),
        ],
    ))
    assert not ok
    assert isinstance(error, InsufficientStock)
    assert SalesOrder.query.count() == 0
    assert row(item, shop).quantity == 10
    db.session.refresh(item)
    assert not item.sales_count


def test_pos_sale_cannot_use_reserved_stock(ctx, shop, item):
    SalesService.create_sales_order(ctx, order_request(shop, item, quantity=8, status='CONFIRMED'))
    ok, error = SalesService.create_pos_sale(ctx, PosSaleRequest(
        location_id=shop.id,
        lines=[OrderLineRequest(item_id=item.id, quantity=3, unit_price=Decimal('10.00'))],
    ))
    assert not ok
    assert isinstance(error, InsufficientStock)


def test_list_sales_orders_filters(ctx, shop, item, customer):
    SalesService.create_sales_order(ctx, order_request(shop, item, customer=customer))
    SalesService.create_pos_sale(ctx, PosSaleRequest(
        location_id=shop.id,
        lines=[OrderLineRequest(item_id=item.id, quantity=1, unit_price=Decimal('10.00'))]))

    assert len(SalesService.list_sales_orders(ctx)) == 2
    assert len(SalesService.list_sales_orders(ctx, source=SalesOrder.SOURCE_POS)) == 1
    assert len(SalesService.list_sales_orders(ctx, customer_id=customer.id)) == 1


@pytest.mark.parametrize('quantity, unit_price, tax_rate, discount, shipping_cost', [
    (1000, '1.00', '8.875', '0', '0'),
    (100, '0.125', '0', '0', '0'),
    (7, '3.333', '13', '0.505', '4.999'),
    (3, '19.99', '13', '0', '0'),
])
def test_stored_totals_survive_recalculation(ctx, shop, item, quantity, unit_price, tax_rate,
                                             discount, shipping_cost):
    ok, order = SalesService.create_sales_order(ctx, SalesOrderRequest(
        location_id=shop.id,
        shipping_cost=Decimal(shipping_cost),
        lines=[OrderLineRequest(item_id=item.id, quantity=quantity, unit_price=Decimal(unit_price),
                                tax_rate=Decimal(tax_rate), discount=Decimal(discount))],
    ))
    assert ok, order

    db.session.expire_all()
    stored = db.session.get(SalesOrder, order.id)
    expected = (stored.subtotal, stored.tax_amount, stored.total)
    totals = recalculate_totals(stored)
    assert (totals['subtotal'], totals['tax_amount'], totals['total']) == expected


def test_sub_cent_prices_are_rounded_before_totalling(ctx, shop, item):
    ok, order = SalesService.create_sales_order(ctx, SalesOrderRequest(
        location_id=shop.id,
        lines=[OrderLineRequest(item_id=item.id, quantity=1000, unit_price=Decimal('1.00'),
                                tax_rate=Decimal('8.875'))],
    ))
    assert ok, order
    assert order.lines[0].tax_rate == Decimal('8.88')
    assert order.total == Decimal('1088.80')


@pytest.mark.parametrize('line_kwargs, order_kwargs', [
    ({'discount': Decimal('50')}, {}),
    ({'discount': Decimal('-1')}, {}),
    ({'tax_rate': Decimal('-13')}, {}),
    ({'unit_price': Decimal('NaN')}, {}),
    ({}, {'shipping_cost': Decimal('-5')}),
    ({}, {'discount': Decimal('-5')}),
    ({}, {'discount': Decimal('100')}),
])
def test_order_amounts_are_validated(ctx, shop, item, line_kwargs, order_kwargs):
    line = dict(item_id=item.id, quantity=1, unit_price=Decimal('10.00'), tax_rate=Decimal('13'))
    line.update(line_kwargs)
    ok, error = SalesService.create_sales_order(ctx, SalesOrderRequest(
        location_id=shop.id, lines=[OrderLineRequest(**line)], **order_kwargs))
    assert not ok
    assert isinstance(error, ValidationError)
    assert SalesOrder.query.count() == 0


def test_pos_discount_cannot_exceed_sale(ctx, shop, item, row):
    ok, error = SalesService.create_pos_sale(ctx, PosSaleRequest(
        location_id=shop.id,
        discount=Decimal('20'),
        lines=[OrderLineRequest(item_id=item.id, quantity=1, unit_price=Decimal('10.00'))],
    ))
    assert not ok
    assert isinstance(error, ValidationError)
    assert row(item, shop).quantity == 10


@pytest.fixture
def customer_orders(ctx, shop, item, customer):
    """草稿 22.60，已取消 11.30，POS 已完成已付款 11.30"""
    ok, draft = SalesService.create_sales_order(ctx, order_request(
        shop, item, customer=customer, date=datetime(2026, 3, 1, 9, 0)))
    assert ok, draft
    ok, cancelled = SalesService.create_sales_order(ctx, order_request(
        shop, item, quantity=1, customer=customer, date=datetime(2026, 3, 2, 9, 0)))
    assert ok, cancelled
    ok, _ = SalesService.update_status(ctx, cancelled.id, SalesOrder.STATUS_CANCELLED)
    assert ok
    ok, pos = SalesService.create_pos_sale(ctx, PosSaleRequest(
        location_id=shop.id, customer_id=customer.id,
        lines=[OrderLineRequest(item_id=item.id, quantity=1, unit_price=Decimal('10.00'),
                                tax_rate=Decimal('13'))]))
    assert ok, pos
    return {'draft': draft, 'cancelled': cancelled, 'pos': pos}


def test_customer_order_history(ctx, customer, customer_orders, shop, item):
    # 散客订单不计入
    ok, _ = SalesService.create_sales_order(ctx, order_request(shop, item))
    assert ok

    history = SalesService.customer_order_history(ctx, customer.id)
    assert history['customer'].id == customer.id
    assert len(history['orders']) == 3
    assert history['stats'] == {
        'total_orders': 3,
        'total_spent': Decimal('33.90'),
        'completed_orders': 1,
        'cancelled_orders': 1,
        'pending_payment': Decimal('22.60'),
    }


def test_order_status_counts(ctx, customer, customer_orders):
    counts = SalesService.order_status_counts(ctx, customer.id)
    assert counts['status_counts'] == {'DRAFT': 1, 'CANCELLED': 1, 'COMPLETED': 1}
    assert counts['payment_status_counts'] == {'PENDING': 2, 'PAID': 1}


def test_recent_orders(ctx, customer, customer_orders):
    recent = SalesService.recent_orders(ctx, customer.id, limit=2)
    assert [o.id for o in recent] == [customer_orders['pos'].id, customer_orders['cancelled'].id]


def test_customer_history_is_scoped(customer, other_org):
    with pytest.raises(NotFound):
        SalesService.customer_order_history(other_org['ctx'], customer.id)

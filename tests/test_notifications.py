from decimal import Decimal

import pytest

from inventory_pro.exceptions import InvalidTransition
from inventory_pro.models import PurchaseOrder, SalesOrder
from inventory_pro.schemas import OrderLineRequest, PurchaseOrderRequest, SalesOrderRequest
from inventory_pro.services.notification_service import NotificationService
from inventory_pro.services.purchase_service import PurchaseService
from inventory_pro.services.sales_service import SalesService


@pytest.fixture
def po(ctx, supplier, locations, item):
    ok, po = PurchaseService.create_purchase_order(ctx, PurchaseOrderRequest(
        supplier_id=supplier.id, delivery_location_id=locations['A'].id,
        lines=[OrderLineRequest(item_id=item.id, quantity=5, unit_price=Decimal('6.00'))]))
    assert ok, po
    return po


def test_purchase_order_email_payload(ctx, po):
    ok, notification = NotificationService.send_purchase_order_email(ctx, po.id)
    assert ok, notification
    assert notification.email_sent is False
    assert notification.recipient == 'sales@globalparts.com'

    payload = notification.payload
    assert payload['order']['po_number'] == po.po_number
    assert payload['order']['total'] == '30.00'
    assert payload['order']['delivery_location'] == 'Warehouse A'
    assert payload['supplier']['contact_person'] == 'Li Lei'
    assert payload['lines'][0]['sku'] == 'WIDGET-1'
    assert payload['company']['name']


def test_emailing_draft_submits_it(ctx, po):
    NotificationService.send_purchase_order_email(ctx, po.id)
    assert po.status == PurchaseOrder.STATUS_SUBMITTED


def test_cancelled_purchase_order_cannot_be_emailed(ctx, po):
    PurchaseService.cancel(ctx, po.id)
    ok, error = NotificationService.send_purchase_order_email(ctx, po.id)
    assert not ok
    assert isinstance(error, InvalidTransition)


def test_sales_confirmation_confirms_draft(ctx, item, customer, locations, stock, row):
    shop = locations['B']
    stock(item, shop, 5)
    _, order = SalesService.create_sales_order(ctx, SalesOrderRequest(
        location_id=shop.id, customer_id=customer.id,
        lines=[OrderLineRequest(item_id=item.id, quantity=2, unit_price=Decimal('10.00'))]))

    ok, notification = SalesService.send_confirmation(ctx, order.id)
    assert ok, notification
    assert order.status == SalesOrder.STATUS_CONFIRMED
    assert row(item, shop).reserved_quantity == 2
    assert notification.recipient == 'han@customer.com'
    assert notification.payload['order']['order_number'] == order.order_number


def test_sales_confirmation_for_walk_in_customer(ctx, item, locations, stock):
    stock(item, locations['B'], 5)
    _, order = SalesService.create_sales_order(ctx, SalesOrderRequest(
        location_id=locations['B'].id, status='CONFIRMED',
        lines=[OrderLineRequest(item_id=item.id, quantity=1, unit_price=Decimal('10.00'))]))

    ok, notification = SalesService.send_confirmation(ctx, order.id)
    assert ok
    assert notification.payload['customer']['name'] == 'Walk-in Customer'
    assert notification.recipient is None


def test_pending_emails_and_listing(ctx, po, other_org):
    PurchaseService.submit(ctx, po.id)
    NotificationService.send_purchase_order_email(ctx, po.id)

    pending = NotificationService.pending_emails(ctx)
    assert len(pending) == 2
    assert all(n.related_id == po.id for n in pending)
    assert len(NotificationService.list_notifications(ctx, unread_only=True)) == 2
    assert NotificationService.pending_emails(other_org['ctx']) == []

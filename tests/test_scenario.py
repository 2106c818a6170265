"""端到端：采购收货后调拨，库存数量守恒"""
from decimal import Decimal

from inventory_pro.exceptions import InsufficientStock
from inventory_pro.models import PurchaseOrder
from inventory_pro.schemas import (GoodsReceiptRequest, OrderLineRequest, PurchaseOrderRequest,
                                   ReceiveLineRequest, TransferRequest)
from inventory_pro.services.purchase_service import PurchaseService
from inventory_pro.services.receipt_service import ReceiptService
from inventory_pro.services.transfer_service import TransferService


def test_receive_then_transfer(ctx, supplier, locations, item, row):
    a, b = locations['A'], locations['B']

    ok, po = PurchaseService.create_purchase_order(ctx, PurchaseOrderRequest(
        supplier_id=supplier.id, delivery_location_id=a.id,
        lines=[OrderLineRequest(item_id=item.id, quantity=10, unit_price=Decimal('6.00'))]))
    assert ok, po
    assert PurchaseService.submit(ctx, po.id)[0]

    ok, receipt = ReceiptService.create_goods_receipt(ctx, GoodsReceiptRequest(
        purchase_order_id=po.id, location_id=a.id,
        lines=[ReceiveLineRequest(purchase_order_line_id=po.lines[0].id, item_id=item.id,
                                  received_quantity=10)]))
    assert ok, receipt
    assert po.status == PurchaseOrder.STATUS_RECEIVED
    assert row(item, a).quantity == 10

    ok, transfer = TransferService.transfer_stock(ctx, TransferRequest(
        item_id=item.id, from_location_id=a.id, to_location_id=b.id, quantity=4))
    assert ok, transfer
    assert (row(item, a).quantity, row(item, b).quantity) == (6, 4)

    ok, error = TransferService.transfer_stock(ctx, TransferRequest(
        item_id=item.id, from_location_id=a.id, to_location_id=b.id, quantity=10))
    assert not ok
    assert isinstance(error, InsufficientStock)
    assert (row(item, a).quantity, row(item, b).quantity) == (6, 4)

    ok, po = PurchaseService.close(ctx, po.id)
    assert ok and po.status == PurchaseOrder.STATUS_CLOSED

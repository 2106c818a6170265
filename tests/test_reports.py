from datetime import datetime
from decimal import Decimal

from inventory_pro.schemas import (AdjustmentLineRequest, AdjustmentRequest, OrderLineRequest,
                                   PosSaleRequest, SalesOrderRequest, TransferRequest)
from inventory_pro.services.adjustment_service import AdjustmentService
from inventory_pro.services.report_service import ReportService
from inventory_pro.services.sales_service import SalesService
from inventory_pro.services.transfer_service import TransferService


def test_period_keys():
    moment = datetime(2024, 1, 31, 15, 30)
    assert ReportService.period_key(moment, 'daily') == '2024-01-31'
    # 2024-01-31 是周三，所在周从 2024-01-28 (周日) 开始
    assert ReportService.period_key(moment, 'weekly') == '2024-01-28'
    assert ReportService.period_key(datetime(2024, 1, 28), 'weekly') == '2024-01-28'
    assert ReportService.period_key(moment, 'monthly') == '2024-01'


def test_transfer_stats(ctx, item, locations, stock):
    a, b = locations['A'], locations['B']
    stock(item, a, 10)
    request = TransferRequest(item_id=item.id, from_location_id=a.id, to_location_id=b.id, quantity=3)
    TransferService.transfer_stock(ctx, request)
    TransferService.create_transfer(ctx, request)

    stats = ReportService.stock_transfer_stats(ctx, 'daily')
    assert stats['total_transfers'] == 2
    assert stats['total_quantity_moved'] == 3
    assert stats['counts_by_status'] == {'COMPLETED': 1, 'DRAFT': 1}
    assert stats['transfers_by_location'] == [
        {'from_location_id': a.id, 'to_location_id': b.id, 'count': 1}]
    assert stats['trend'][0]['count'] == 2


def test_adjustment_stats(ctx, item, gadget, locations, stock):
    a = locations['A']
    stock(item, a, 10)
    AdjustmentService.create_adjustment(ctx, AdjustmentRequest(
        location_id=a.id, adjustment_type='CORRECTION',
        lines=[AdjustmentLineRequest(item_id=item.id, quantity_delta=5)]))
    AdjustmentService.create_adjustment(ctx, AdjustmentRequest(
        location_id=a.id, adjustment_type='DAMAGE',
        lines=[AdjustmentLineRequest(item_id=item.id, quantity_delta=-3)]))

    stats = ReportService.stock_adjustment_stats(ctx)
    assert stats['positive_adjustments'] == 5
    assert stats['negative_adjustments'] == 3
    assert stats['net_adjustment'] == 2
    assert stats['total_quantity_adjusted'] == 8
    assert stats['counts_by_type'] == {'CORRECTION': 1, 'DAMAGE': 1}
    assert stats['top_adjusted_items'][0]['sku'] == 'WIDGET-1'


def test_adjustment_stats_agree_with_net_adjustment(ctx, item, locations, stock):
    a = locations['A']
    stock(item, a, 10)
    for delta in (5, -3, 4):
        ok, adjustment = AdjustmentService.create_adjustment(ctx, AdjustmentRequest(
            location_id=a.id, adjustment_type='CORRECTION',
            lines=[AdjustmentLineRequest(item_id=item.id, quantity_delta=delta)]))
    AdjustmentService.cancel(ctx, adjustment.id)

    stats = ReportService.stock_adjustment_stats(ctx)
    assert stats['net_adjustment'] == AdjustmentService.net_adjustment(ctx) == 2
    assert stats['counts_by_type'] == {'CORRECTION': 2}


def test_stock_movement_report_includes_location_names(ctx, locations):
    report = ReportService.stock_movement_report(ctx)
    assert report['location_names'] == {locations['A'].id: 'Warehouse A', locations['B'].id: 'Shop B'}
    assert report['recent_transfers'] == []
    assert report['recent_adjustments'] == []


def test_sales_summary_excludes_cancelled(ctx, item, customer, locations, stock):
    shop = locations['B']
    stock(item, shop, 10)
    line = OrderLineRequest(item_id=item.id, quantity=2, unit_price=Decimal('10.00'), tax_rate=Decimal('13'))
    SalesService.create_sales_order(ctx, SalesOrderRequest(location_id=shop.id, customer_id=customer.id,
                                                           lines=[line]))
    _, cancelled = SalesService.create_sales_order(ctx, SalesOrderRequest(location_id=shop.id, lines=[line]))
    SalesService.update_status(ctx, cancelled.id, 'CANCELLED')
    SalesService.create_pos_sale(ctx, PosSaleRequest(location_id=shop.id, lines=[line]))

    summary = ReportService.sales_summary(ctx, 'daily')
    assert summary['total_revenue'] == Decimal('45.20')
    assert summary['total_orders'] == 3
    assert summary['total_items_sold'] == 4
    assert summary['order_counts']['CANCELLED'] == 1
    assert summary['payment_status_distribution'] == {'PENDING': 1, 'PAID': 1}
    assert summary['trend'][0]['amount'] == Decimal('45.20')

    by_customer = ReportService.sales_by_customer(ctx)
    assert len(by_customer['customers']) == 1
    assert by_customer['customers'][0]['total_spent'] == Decimal('22.60')

    by_item = ReportService.sales_by_item(ctx)
    assert by_item[0]['quantity'] == 4
    assert by_item[0]['revenue'] == Decimal('45.20')
    assert by_item[0]['average_price'] == Decimal('11.30')


def test_date_range_filters_out_old_orders(ctx, item, locations):
    line = OrderLineRequest(item_id=item.id, quantity=1, unit_price=Decimal('10.00'))
    SalesService.create_sales_order(ctx, SalesOrderRequest(
        location_id=locations['A'].id, lines=[line], date=datetime(2020, 5, 1)))

    assert ReportService.sales_summary(ctx)['total_orders'] == 0
    summary = ReportService.sales_summary(ctx, from_date=datetime(2020, 1, 1), to_date=datetime(2020, 12, 31))
    assert summary['total_orders'] == 1

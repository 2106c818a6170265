from flask import render_template, jsonify
from flask_login import login_required

from . import main_bp
from inventory_pro.services.catalog_service import CatalogService
from inventory_pro.services.purchase_service import PurchaseService
from inventory_pro.services.report_service import ReportService
from inventory_pro.services.notification_service import NotificationService
from inventory_pro.utils.permissions import current_tenant


@main_bp.route('/')
@login_required
def index():
    """仪表盘：库存概况、低库存预警、最近调拨与调整"""
    ctx = current_tenant()
    inventory = CatalogService.inventory_items(ctx)
    summary = {
        'item_count': len(inventory),
        'total_quantity': sum(e['quantity'] for e in inventory),
        'total_available': sum(e['available'] for e in inventory),
        'location_count': len(CatalogService.list_locations(ctx)),
    }
    return render_template(
        'main/index.html',
        summary=summary,
        low_stock=CatalogService.low_stock_items(ctx),
        po_status_counts=PurchaseService.status_counts(ctx),
        recent_transfers=ReportService.recent_transfers(ctx, limit=5),
        recent_adjustments=ReportService.recent_adjustments(ctx, limit=5),
        notifications=NotificationService.list_notifications(ctx, unread_only=True, limit=5),
    )


@main_bp.route('/api/sales-trend')
@login_required
def sales_trend():
    """首页图表数据：最近的销售趋势"""
    ctx = current_tenant()
    summary = ReportService.sales_summary(ctx, period=ReportService.PERIOD_DAILY)
    return jsonify({
        'dates': [b['period'] for b in summary['trend']],
        'values': [str(b['amount']) for b in summary['trend']],
        'total_revenue': str(summary['total_revenue']),
    })

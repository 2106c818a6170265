from datetime import datetime, timedelta

from flask import render_template, jsonify, request
from flask_login import login_required

from . import reports_bp
from inventory_pro.services.adjustment_service import AdjustmentService
from inventory_pro.services.report_service import ReportService
from inventory_pro.utils.decorators import permission_required
from inventory_pro.utils.permissions import current_tenant


def _report_args():
    """解析 ?period=&from=&to= (日期格式 YYYY-MM-DD)"""
    period = request.args.get('period', ReportService.PERIOD_MONTHLY)
    if period not in ReportService.PERIODS:
        period = ReportService.PERIOD_MONTHLY

    def parse(name):
        value = request.args.get(name)
        if not value:
            return None
        try:
            return datetime.strptime(value, '%Y-%m-%d')
        except ValueError:
            return None

    to_date = parse('to')
    if to_date:
        # 截止日期包含当天
        to_date = to_date + timedelta(days=1) - timedelta(microseconds=1)
    return period, parse('from'), to_date


@reports_bp.route('/')
@login_required
@permission_required('reports.view')
def index():
    """报表中心首页"""
    ctx = current_tenant()
    period, from_date, to_date = _report_args()
    return render_template(
        'reports/index.html',
        sales=ReportService.sales_summary(ctx, period, from_date, to_date),
        transfers=ReportService.stock_transfer_stats(ctx, period, from_date, to_date),
        adjustments=ReportService.stock_adjustment_stats(ctx, period, from_date, to_date),
        period=period,
    )


@reports_bp.route('/stock-movement')
@login_required
@permission_required('reports.view')
def stock_movement():
    """库存变动报表：调拨与调整统计"""
    ctx = current_tenant()
    period, from_date, to_date = _report_args()
    report = ReportService.stock_movement_report(ctx, period, from_date, to_date)
    report['net_adjustment'] = AdjustmentService.net_adjustment(ctx, from_date, to_date)
    return render_template('reports/stock_movement.html', report=report, period=period,
                           periods=ReportService.PERIODS)


@reports_bp.route('/sales')
@login_required
@permission_required('reports.view')
def sales():
    """销售报表：汇总、客户排行、商品排行"""
    ctx = current_tenant()
    period, from_date, to_date = _report_args()
    return render_template(
        'reports/sales.html',
        summary=ReportService.sales_summary(ctx, period, from_date, to_date),
        by_customer=ReportService.sales_by_customer(ctx, from_date, to_date),
        by_item=ReportService.sales_by_item(ctx, from_date, to_date),
        period=period,
        periods=ReportService.PERIODS,
    )


@reports_bp.route('/api/stock-movement')
@login_required
@permission_required('reports.view')
def api_stock_movement():
    """图表数据接口"""
    ctx = current_tenant()
    period, from_date, to_date = _report_args()
    transfers = ReportService.stock_transfer_stats(ctx, period, from_date, to_date)
    adjustments = ReportService.stock_adjustment_stats(ctx, period, from_date, to_date)
    return jsonify({
        'period': period,
        'transfers': {
            'total': transfers['total_transfers'],
            'quantity_moved': transfers['total_quantity_moved'],
            'by_status': transfers['counts_by_status'],
            'trend': transfers['trend'],
        },
        'adjustments': {
            'total': adjustments['total_adjustments'],
            'positive': adjustments['positive_adjustments'],
            'negative': adjustments['negative_adjustments'],
            'net': adjustments['net_adjustment'],
            'by_type': adjustments['counts_by_type'],
            'trend': adjustments['trend'],
        },
    })


@reports_bp.route('/api/sales')
@login_required
@permission_required('reports.view')
def api_sales():
    ctx = current_tenant()
    period, from_date, to_date = _report_args()
    summary = ReportService.sales_summary(ctx, period, from_date, to_date)
    return jsonify({
        'period': period,
        'total_revenue': str(summary['total_revenue']),
        'total_orders': summary['total_orders'],
        'total_items_sold': summary['total_items_sold'],
        'order_counts': summary['order_counts'],
        'payment_status_distribution': summary['payment_status_distribution'],
        'trend': [{'period': b['period'], 'count': b['count'], 'amount': str(b.get('amount', 0))}
                  for b in summary['trend']],
    })

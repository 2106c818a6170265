"""报表服务 - 库存变动与销售统计"""
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app, has_app_context
from sqlalchemy import func

from inventory_pro.extensions import cache, db
from inventory_pro.models import (Adjustment, AdjustmentLine, Customer, Item, Location, SalesOrder,
                                  SalesOrderLine, Transfer, TransferLine)
from inventory_pro.pricing import money

logger = logging.getLogger(__name__)


@cache.memoize(timeout=300)
def location_names_for_org(org_id):
    return {loc.id: loc.name for loc in Location.for_org(org_id).order_by(Location.name).all()}


class ReportService:
    """报表服务"""

    PERIOD_DAILY = 'daily'
    PERIOD_WEEKLY = 'weekly'
    PERIOD_MONTHLY = 'monthly'
    PERIODS = (PERIOD_DAILY, PERIOD_WEEKLY, PERIOD_MONTHLY)

    @staticmethod
    def date_range(from_date=None, to_date=None):
        """默认统计最近 REPORT_DEFAULT_DAYS 天"""
        days = current_app.config.get('REPORT_DEFAULT_DAYS', 30) if has_app_context() else 30
        end = to_date or datetime.utcnow()
        start = from_date or (end - timedelta(days=days))
        return start, end

    @staticmethod
    def period_key(moment, period):
        """
        趋势分组键
        daily: 2024-01-31   weekly: 周日所在日期   monthly: 2024-01
        """
        if period == ReportService.PERIOD_DAILY:
            return moment.strftime('%Y-%m-%d')
        if period == ReportService.PERIOD_WEEKLY:
            # weekday(): 周一为 0，周日为 6
            days_since_sunday = (moment.weekday() + 1) % 7
            return (moment - timedelta(days=days_since_sunday)).strftime('%Y-%m-%d')
        return moment.strftime('%Y-%m')

    @staticmethod
    def time_trend(rows, period, amount_of=None):
        """
        :param rows: 带 date 属性的对象
        :return: [{'period': key, 'count': n, ('amount': Decimal)}] 按时间升序
        """
        buckets = OrderedDict()
        for row in sorted(rows, key=lambda r: r.date):
            key = ReportService.period_key(row.date, period)
            bucket = buckets.setdefault(key, {'period': key, 'count': 0})
            bucket['count'] += 1
            if amount_of is not None:
                bucket['amount'] = bucket.get('amount', Decimal('0')) + money(amount_of(row))
        return sorted(buckets.values(), key=lambda b: b['period'])

    # --- 库存变动 ---

    @staticmethod
    def stock_transfer_stats(ctx, period=PERIOD_MONTHLY, from_date=None, to_date=None):
        start, end = ReportService.date_range(from_date, to_date)
        in_range = (Transfer.org_id == ctx.org_id, Transfer.is_deleted.is_(False),
                    Transfer.date >= start, Transfer.date <= end)

        by_status = dict(db.session.query(Transfer.status, func.count(Transfer.id))
                         .filter(*in_range).group_by(Transfer.status).all())

        # 只统计已完成调拨的数量
        quantity_moved = db.session.query(func.coalesce(func.sum(TransferLine.quantity), 0)) \
            .join(Transfer, Transfer.id == TransferLine.transfer_id) \
            .filter(*in_range, Transfer.status == Transfer.STATUS_COMPLETED).scalar()

        by_route = [
            {'from_location_id': from_id, 'to_location_id': to_id, 'count': count}
            for from_id, to_id, count in db.session.query(
                Transfer.from_location_id, Transfer.to_location_id, func.count(Transfer.id))
            .filter(*in_range, Transfer.status == Transfer.STATUS_COMPLETED)
            .group_by(Transfer.from_location_id, Transfer.to_location_id).all()
        ]

        transfers = Transfer.query.filter(*in_range).all()
        return {
            'total_transfers': len(transfers),
            'total_quantity_moved': int(quantity_moved or 0),
            'counts_by_status': by_status,
            'transfers_by_location': by_route,
            'trend': ReportService.time_trend(transfers, period),
        }

    @staticmethod
    def stock_adjustment_stats(ctx, period=PERIOD_MONTHLY, from_date=None, to_date=None):
        start, end = ReportService.date_range(from_date, to_date)
        in_range = (Adjustment.org_id == ctx.org_id, Adjustment.is_deleted.is_(False),
                    Adjustment.date >= start, Adjustment.date <= end)
        completed = in_range + (Adjustment.status == Adjustment.STATUS_COMPLETED,)

        deltas = [d for (d,) in db.session.query(AdjustmentLine.adjusted_quantity)
                  .join(Adjustment, Adjustment.id == AdjustmentLine.adjustment_id)
                  .filter(*completed).all()]
        positive = sum(d for d in deltas if d > 0)
        negative = sum(-d for d in deltas if d < 0)

        by_type = dict(db.session.query(Adjustment.adjustment_type, func.count(Adjustment.id))
                       .filter(*completed).group_by(Adjustment.adjustment_type).all())

        top_items = [
            {'id': item_id, 'sku': sku, 'name': name, 'count': count}
            for item_id, sku, name, count in db.session.query(
                Item.id, Item.sku, Item.name, func.count(AdjustmentLine.id))
            .join(AdjustmentLine, AdjustmentLine.item_id == Item.id)
            .join(Adjustment, Adjustment.id == AdjustmentLine.adjustment_id)
            .filter(*completed)
            .group_by(Item.id, Item.sku, Item.name)
            .order_by(func.count(AdjustmentLine.id).desc(), Item.name)
            .limit(5).all()
        ]

        adjustments = Adjustment.query.filter(*in_range).all()
        return {
            'total_adjustments': len(adjustments),
            'total_quantity_adjusted': positive + negative,
            'positive_adjustments': positive,
            'negative_adjustments': negative,
            'net_adjustment': positive - negative,
            'counts_by_type': by_type,
            'trend': ReportService.time_trend(adjustments, period),
            'top_adjusted_items': top_items,
        }

    @staticmethod
    def recent_transfers(ctx, limit=10):
        transfers = Transfer.for_org(ctx.org_id) \
            .order_by(Transfer.date.desc(), Transfer.id.desc()).limit(limit).all()
        return [{
            'id': t.id,
            'transfer_number': t.transfer_number,
            'date': t.date,
            'status': t.status,
            'from_location': t.from_location.name,
            'to_location': t.to_location.name,
            'total_quantity': t.total_quantity,
        } for t in transfers]

    @staticmethod
    def recent_adjustments(ctx, limit=10):
        adjustments = Adjustment.for_org(ctx.org_id) \
            .order_by(Adjustment.date.desc(), Adjustment.id.desc()).limit(limit).all()
        return [{
            'id': a.id,
            'adjustment_number': a.adjustment_number,
            'date': a.date,
            'status': a.status,
            'adjustment_type': a.adjustment_type,
            'location': a.location.name,
            'net_adjustment': a.net_adjustment,
        } for a in adjustments]

    @staticmethod
    def location_names(ctx):
        """{location_id: name}，按组织缓存"""
        return location_names_for_org(ctx.org_id)

    @staticmethod
    def stock_movement_report(ctx, period=PERIOD_MONTHLY, from_date=None, to_date=None):
        return {
            'transfer_stats': ReportService.stock_transfer_stats(ctx, period, from_date, to_date),
            'adjustment_stats': ReportService.stock_adjustment_stats(ctx, period, from_date, to_date),
            'recent_transfers': ReportService.recent_transfers(ctx),
            'recent_adjustments': ReportService.recent_adjustments(ctx),
            'location_names': ReportService.location_names(ctx),
        }

    # --- 销售 ---

    @staticmethod
    def _sales_filter(ctx, start, end):
        return (SalesOrder.org_id == ctx.org_id, SalesOrder.is_deleted.is_(False),
                SalesOrder.date >= start, SalesOrder.date <= end)

    @staticmethod
    def sales_summary(ctx, period=PERIOD_MONTHLY, from_date=None, to_date=None):
        start, end = ReportService.date_range(from_date, to_date)
        in_range = ReportService._sales_filter(ctx, start, end)
        effective = in_range + (SalesOrder.status != SalesOrder.STATUS_CANCELLED,)

        revenue = db.session.query(func.coalesce(func.sum(SalesOrder.total), 0)) \
            .filter(*effective).scalar()
        order_counts = dict(db.session.query(SalesOrder.status, func.count(SalesOrder.id))
                            .filter(*in_range).group_by(SalesOrder.status).all())
        payment = dict(db.session.query(SalesOrder.payment_status, func.count(SalesOrder.id))
                       .filter(*effective).group_by(SalesOrder.payment_status).all())
        items_sold = db.session.query(func.coalesce(func.sum(SalesOrderLine.quantity), 0)) \
            .join(SalesOrder, SalesOrder.id == SalesOrderLine.sales_order_id) \
            .filter(*effective).scalar()

        orders = SalesOrder.query.filter(*effective).all()
        return {
            'total_revenue': money(revenue),
            'total_orders': sum(order_counts.values()),
            'total_items_sold': int(items_sold or 0),
            'order_counts': order_counts,
            'payment_status_distribution': payment,
            'trend': ReportService.time_trend(orders, period, amount_of=lambda o: o.total),
        }

    @staticmethod
    def sales_by_customer(ctx, from_date=None, to_date=None, limit=10):
        start, end = ReportService.date_range(from_date, to_date)
        effective = ReportService._sales_filter(ctx, start, end) + (
            SalesOrder.status != SalesOrder.STATUS_CANCELLED, SalesOrder.customer_id.isnot(None))

        total_spent = func.coalesce(func.sum(SalesOrder.total), 0)
        rows = db.session.query(Customer, func.count(SalesOrder.id), total_spent) \
            .join(SalesOrder, SalesOrder.customer_id == Customer.id) \
            .filter(*effective) \
            .group_by(Customer.id) \
            .order_by(total_spent.desc()) \
            .limit(limit).all()

        customers = [{'customer': customer, 'order_count': count, 'total_spent': money(spent)}
                     for customer, count, spent in rows]
        top_ids = [c['customer'].id for c in customers]
        recent_orders = []
        if top_ids:
            recent_orders = SalesOrder.query.filter(
                *ReportService._sales_filter(ctx, start, end), SalesOrder.customer_id.in_(top_ids)
            ).order_by(SalesOrder.date.desc()).limit(20).all()
        return {'customers': customers, 'recent_orders': recent_orders}

    @staticmethod
    def sales_by_item(ctx, from_date=None, to_date=None, limit=10):
        """按商品统计：销量、销售额、平均单价"""
        start, end = ReportService.date_range(from_date, to_date)
        effective = ReportService._sales_filter(ctx, start, end) + (
            SalesOrder.status != SalesOrder.STATUS_CANCELLED,)

        quantity = func.coalesce(func.sum(SalesOrderLine.quantity), 0)
        revenue = func.coalesce(func.sum(SalesOrderLine.total), 0)
        rows = db.session.query(Item, quantity, revenue) \
            .join(SalesOrderLine, SalesOrderLine.item_id == Item.id) \
            .join(SalesOrder, SalesOrder.id == SalesOrderLine.sales_order_id) \
            .filter(*effective) \
            .group_by(Item.id) \
            .order_by(revenue.desc()) \
            .limit(limit).all()

        result = []
        for item, qty, amount in rows:
            amount = money(amount)
            result.append({
                'item': item,
                'quantity': int(qty),
                'revenue': amount,
                'average_price': money(amount / qty) if qty else Decimal('0.00'),
            })
        return result

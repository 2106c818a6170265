"""
通知服务
只负责准备邮件载荷并记录为站内通知，实际投递由外部程序完成
"""
import logging
from datetime import datetime

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from inventory_pro.exceptions import InvalidTransition
from inventory_pro.extensions import db
from inventory_pro.models import Notification, PurchaseOrder, SalesOrder
from inventory_pro.services.catalog_service import get_scoped
from inventory_pro.utils.decorators import retry_on_transient, transactional

logger = logging.getLogger(__name__)


def _company_info():
    if has_app_context():
        return {
            'name': current_app.config.get('COMPANY_NAME'),
            'email': current_app.config.get('MAIL_SENDER'),
        }
    return {'name': None, 'email': None}


def _money(value):
    return str(value) if value is not None else '0.00'


class NotificationService:
    """站内通知 / 邮件载荷"""

    @staticmethod
    def purchase_order_payload(po):
        supplier = po.supplier
        return {
            'company': _company_info(),
            'supplier': {
                'name': po.supplier_name or (supplier.name if supplier else None),
                'email': supplier.email if supplier else None,
                'contact_person': supplier.contact_person if supplier else None,
            },
            'order': {
                'po_number': po.po_number,
                'status': po.status,
                'date': po.date.isoformat() if po.date else None,
                'expected_delivery_date': po.expected_delivery_date.isoformat()
                if po.expected_delivery_date else None,
                'delivery_location': po.delivery_location.name if po.delivery_location else None,
                'payment_terms': po.payment_terms,
                'subtotal': _money(po.subtotal),
                'tax_amount': _money(po.tax_amount),
                'total': _money(po.total),
            },
            'lines': [{
                'sku': line.item.sku,
                'name': line.item.name,
                'quantity': line.quantity,
                'unit_price': _money(line.unit_price),
                'tax_amount': _money(line.tax_amount),
                'total': _money(line.total),
            } for line in po.lines],
        }

    @staticmethod
    def sales_order_payload(order):
        customer = order.customer
        return {
            'company': _company_info(),
            'customer': {
                'name': customer.name if customer else 'Walk-in Customer',
                'email': customer.email if customer else None,
            },
            'order': {
                'order_number': order.order_number,
                'status': order.status,
                'date': order.date.isoformat() if order.date else None,
                'payment_status': order.payment_status,
                'subtotal': _money(order.subtotal),
                'tax_amount': _money(order.tax_amount),
                'shipping_cost': _money(order.shipping_cost),
                'discount': _money(order.discount),
                'total': _money(order.total),
            },
            'lines': [{
                'sku': line.item.sku,
                'name': line.item.name,
                'quantity': line.quantity,
                'unit_price': _money(line.unit_price),
                'total': _money(line.total),
            } for line in order.lines],
        }

    @staticmethod
    def purchase_order_notification(ctx, po):
        payload = NotificationService.purchase_order_payload(po)
        notification = Notification(
            org_id=ctx.org_id,
            user_id=ctx.user_id,
            title=f"Purchase Order {po.po_number} from {payload['company']['name'] or ''}".strip(),
            content=f"采购单 {po.po_number} 已发送给供应商 {payload['supplier']['name']}，合计 {po.total}",
            recipient=payload['supplier']['email'],
            type=Notification.TYPE_INFO,
            category=Notification.CATEGORY_ORDER,
            related_type='purchase_order',
            related_id=po.id,
            payload=payload,
            email_sent=False,
        )
        db.session.add(notification)
        return notification

    @staticmethod
    def sales_order_notification(ctx, order):
        payload = NotificationService.sales_order_payload(order)
        notification = Notification(
            org_id=ctx.org_id,
            user_id=ctx.user_id,
            title=f"Order Confirmation: {order.order_number}",
            content=f"销售单 {order.order_number} 已确认，合计 {order.total}",
            recipient=payload['customer']['email'],
            type=Notification.TYPE_SUCCESS,
            category=Notification.CATEGORY_ORDER,
            related_type='sales_order',
            related_id=order.id,
            payload=payload,
            email_sent=False,
        )
        db.session.add(notification)
        return notification

    @staticmethod
    def record_safely(ctx, builder, obj):
        """
        在保存点中记录通知
        记录失败只写日志，不影响外层业务事务
        """
        try:
            with db.session.begin_nested():
                return builder(ctx, obj)
        except SQLAlchemyError as e:
            logger.error("通知记录失败 (%s %s): %s", builder.__name__, getattr(obj, 'id', None), e)
            return None

    # --- 发送邮件 (记录载荷) ---

    @staticmethod
    @retry_on_transient()
    @transactional
    def send_purchase_order_email(ctx, po_id):
        """草稿采购单会先转为 SUBMITTED"""
        po = get_scoped(ctx, PurchaseOrder, po_id, 'Purchase order')
        if po.status in (PurchaseOrder.STATUS_CANCELLED, PurchaseOrder.STATUS_CLOSED):
            raise InvalidTransition(f"Cannot email a {po.status.lower()} purchase order")
        if po.status == PurchaseOrder.STATUS_DRAFT:
            from inventory_pro.services.purchase_service import PurchaseService
            PurchaseService._transition(po, PurchaseOrder.STATUS_SUBMITTED)
            po.submitted_at = datetime.utcnow()
        return NotificationService.purchase_order_notification(ctx, po)

    @staticmethod
    @retry_on_transient()
    @transactional
    def send_sales_order_email(ctx, order_id):
        """草稿销售单会先确认 (并预留库存)"""
        from inventory_pro.services.sales_service import SalesService
        order = get_scoped(ctx, SalesOrder, order_id, 'Sales order')
        if order.status == SalesOrder.STATUS_DRAFT:
            SalesService._transition(ctx, order, SalesOrder.STATUS_CONFIRMED)
        return NotificationService.sales_order_notification(ctx, order)

    # --- 站内通知 ---

    @staticmethod
    def list_notifications(ctx, unread_only=False, limit=50):
        query = Notification.for_org(ctx.org_id).filter(
            db.or_(Notification.user_id == ctx.user_id, Notification.user_id.is_(None)))
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.id.desc()).limit(limit).all()

    @staticmethod
    def pending_emails(ctx):
        """尚未投递的邮件载荷"""
        return Notification.for_org(ctx.org_id).filter(
            Notification.email_sent.is_(False), Notification.payload.isnot(None)
        ).order_by(Notification.id).all()

"""
销售服务 (销售订单 + POS 收银)

库存策略:
  DRAFT        不影响台账
  -> CONFIRMED 在订单地点预留
  -> SHIPPED   发货出库 (在库与预留同时扣减)
  -> CANCELLED 从 CONFIRMED / PROCESSING 取消时释放预留
  -> RETURNED  退货入库
  POS 销售直接出库，状态为 COMPLETED / PAID
"""
import logging
from datetime import datetime

from sqlalchemy import func, update

from inventory_pro.exceptions import InvalidTransition, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import Customer, Item, Location, SalesOrder, SalesOrderLine
from inventory_pro.pricing import line_amounts, money, normalize_charges, normalize_line, recalculate_totals
from inventory_pro.services.catalog_service import get_scoped
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.services.notification_service import NotificationService
from inventory_pro.utils.decorators import retry_on_transient, transactional
from inventory_pro.utils.numbering import next_dated_number

logger = logging.getLogger(__name__)


class SalesService:
    """销售服务"""

    # 状态只能逐级前进
    TRANSITIONS = {
        SalesOrder.STATUS_DRAFT: (SalesOrder.STATUS_CONFIRMED, SalesOrder.STATUS_CANCELLED),
        SalesOrder.STATUS_CONFIRMED: (SalesOrder.STATUS_PROCESSING, SalesOrder.STATUS_CANCELLED),
        SalesOrder.STATUS_PROCESSING: (SalesOrder.STATUS_SHIPPED, SalesOrder.STATUS_CANCELLED),
        SalesOrder.STATUS_SHIPPED: (SalesOrder.STATUS_DELIVERED, SalesOrder.STATUS_RETURNED),
        SalesOrder.STATUS_DELIVERED: (SalesOrder.STATUS_COMPLETED, SalesOrder.STATUS_RETURNED),
        SalesOrder.STATUS_COMPLETED: (SalesOrder.STATUS_RETURNED,),
        SalesOrder.STATUS_CANCELLED: (),
        SalesOrder.STATUS_RETURNED: (),
    }

    INITIAL_STATUSES = (SalesOrder.STATUS_DRAFT, SalesOrder.STATUS_CONFIRMED)

    @staticmethod
    def _build_lines(ctx, order, lines):
        if not lines:
            raise ValidationError("Order needs at least one line")
        for line in lines:
            get_scoped(ctx, Item, line.item_id, 'Item')
            if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity <= 0:
                raise ValidationError(f"Line quantity must be positive, got {line.quantity!r}")
            unit_price, tax_rate, discount = normalize_line(
                line.quantity, line.unit_price, line.tax_rate, line.discount)
            _, tax_amount, total = line_amounts(line.quantity, unit_price, tax_rate, discount)
            order.lines.append(SalesOrderLine(
                item_id=line.item_id,
                quantity=line.quantity,
                unit_price=unit_price,
                tax_rate=tax_rate,
                discount=discount,
                tax_amount=tax_amount,
                total=total,
            ))
        recalculate_totals(order)

    @staticmethod
    def _ledger_effect(ctx, order, source_status, target):
        ref = order.order_number
        for line in order.lines:
            if target == SalesOrder.STATUS_CONFIRMED:
                LedgerService.reserve(ctx, line.item_id, order.location_id, line.quantity, ref, "销售预留")
            elif target == SalesOrder.STATUS_SHIPPED:
                LedgerService.fulfil(ctx, line.item_id, order.location_id, line.quantity, ref, "销售发货")
            elif target == SalesOrder.STATUS_CANCELLED and source_status in (
                    SalesOrder.STATUS_CONFIRMED, SalesOrder.STATUS_PROCESSING):
                LedgerService.release(ctx, line.item_id, order.location_id, line.quantity, ref, "销售取消")
            elif target == SalesOrder.STATUS_RETURNED:
                LedgerService.restock(ctx, line.item_id, order.location_id, line.quantity, ref, "销售退货")

    @staticmethod
    def _transition(ctx, order, target):
        source = order.status
        if target not in SalesService.TRANSITIONS.get(source, ()):
            raise InvalidTransition(f"Sales order {order.order_number} cannot move from {source} to {target}")
        SalesService._ledger_effect(ctx, order, source, target)
        order.status = target
        if target == SalesOrder.STATUS_RETURNED and order.payment_status == SalesOrder.PAYMENT_PAID:
            order.payment_status = SalesOrder.PAYMENT_REFUNDED
        logger.info("销售单 %s: %s -> %s", order.order_number, source, target)
        return order

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_sales_order(ctx, request):
        """
        创建销售订单，初始状态可为 DRAFT 或 CONFIRMED (确认时立即预留)
        :param request: SalesOrderRequest
        """
        if request.status not in SalesService.INITIAL_STATUSES:
            raise ValidationError(f"Sales order cannot start in status {request.status}")
        if request.payment_status not in SalesOrder.PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status {request.payment_status}")
        location = get_scoped(ctx, Location, request.location_id, 'Location')
        if request.customer_id:
            get_scoped(ctx, Customer, request.customer_id, 'Customer')

        shipping_cost, discount = normalize_charges(request.shipping_cost, request.discount)
        order_date = request.date or datetime.utcnow()
        order = SalesOrder(
            org_id=ctx.org_id,
            order_number=next_dated_number(SalesOrder, SalesOrder.order_number, ctx.org_id, 'SO', order_date),
            date=order_date,
            source=SalesOrder.SOURCE_SALES_ORDER,
            customer_id=request.customer_id,
            location_id=location.id,
            status=SalesOrder.STATUS_DRAFT,
            payment_status=request.payment_status,
            payment_method=request.payment_method,
            shipping_cost=shipping_cost,
            discount=discount,
            notes=request.notes,
            created_by_id=ctx.user_id,
        )
        SalesService._build_lines(ctx, order, request.lines)
        db.session.add(order)
        db.session.flush()

        if request.status == SalesOrder.STATUS_CONFIRMED:
            SalesService._transition(ctx, order, SalesOrder.STATUS_CONFIRMED)
        logger.info("新建销售单 %s，合计 %s", order.order_number, order.total)
        return order

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_sales_order(ctx, order_id, request):
        """只有草稿可以修改明细"""
        order = get_scoped(ctx, SalesOrder, order_id, 'Sales order')
        if order.status != SalesOrder.STATUS_DRAFT:
            raise InvalidTransition("Only draft sales orders can be edited")
        get_scoped(ctx, Location, request.location_id, 'Location')
        if request.customer_id:
            get_scoped(ctx, Customer, request.customer_id, 'Customer')
        order.location_id = request.location_id
        order.customer_id = request.customer_id
        order.shipping_cost, order.discount = normalize_charges(request.shipping_cost, request.discount)
        order.payment_method = request.payment_method
        order.notes = request.notes
        order.lines.clear()
        db.session.flush()
        SalesService._build_lines(ctx, order, request.lines)
        return order

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_status(ctx, order_id, status):
        order = get_scoped(ctx, SalesOrder, order_id, 'Sales order')
        return SalesService._transition(ctx, order, status)

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_payment_status(ctx, order_id, payment_status, payment_method=None):
        if payment_status not in SalesOrder.PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status {payment_status}")
        order = get_scoped(ctx, SalesOrder, order_id, 'Sales order')
        order.payment_status = payment_status
        if payment_method:
            order.payment_method = payment_method
        return order

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_pos_sale(ctx, request):
        """
        POS 收银：立即出库 (需可用数量充足)，订单直接完成并已付款
        同时累加商品的销售件数与销售额
        """
        location = get_scoped(ctx, Location, request.location_id, 'Location')
        if request.customer_id:
            get_scoped(ctx, Customer, request.customer_id, 'Customer')

        _, discount = normalize_charges(0, request.discount)
        now = datetime.utcnow()
        order = SalesOrder(
            org_id=ctx.org_id,
            order_number=next_dated_number(SalesOrder, SalesOrder.order_number, ctx.org_id, 'POS', now),
            date=now,
            source=SalesOrder.SOURCE_POS,
            customer_id=request.customer_id,
            location_id=location.id,
            status=SalesOrder.STATUS_COMPLETED,
            payment_status=SalesOrder.PAYMENT_PAID,
            payment_method=request.payment_method,
            shipping_cost=0,
            discount=discount,
            notes=request.notes,
            created_by_id=ctx.user_id,
        )
        SalesService._build_lines(ctx, order, request.lines)
        db.session.add(order)
        db.session.flush()

        for line in order.lines:
            LedgerService.issue(ctx, line.item_id, location.id, line.quantity, order.order_number, "POS 销售")
            db.session.execute(
                update(Item)
                .where(Item.id == line.item_id)
                .values(sales_count=func.coalesce(Item.sales_count, 0) + line.quantity,
                        sales_total=func.coalesce(Item.sales_total, 0) + line.total)
                .execution_options(synchronize_session=False)
            )
        for line in order.lines:
            db.session.refresh(line.item)
        logger.info("POS 销售 %s 完成，合计 %s", order.order_number, order.total)
        return order

    @staticmethod
    def send_confirmation(ctx, order_id):
        return NotificationService.send_sales_order_email(ctx, order_id)

    # --- 查询 ---

    @staticmethod
    def get_sales_order(ctx, order_id):
        return get_scoped(ctx, SalesOrder, order_id, 'Sales order')

    @staticmethod
    def list_sales_orders(ctx, source=None, status=None, customer_id=None):
        query = SalesOrder.for_org(ctx.org_id)
        if source:
            query = query.filter(SalesOrder.source == source)
        if status:
            query = query.filter(SalesOrder.status == status)
        if customer_id:
            query = query.filter(SalesOrder.customer_id == customer_id)
        return query.order_by(SalesOrder.date.desc(), SalesOrder.id.desc()).all()

    # --- 客户订单历史 ---

    @staticmethod
    def customer_order_history(ctx, customer_id):
        """
        客户订单历史与统计
        已消费与待收款均不计已取消的订单
        :return: {'customer', 'orders', 'stats'}
        """
        customer = get_scoped(ctx, Customer, customer_id, 'Customer')
        orders = SalesService.list_sales_orders(ctx, customer_id=customer.id)
        live = [o for o in orders if o.status != SalesOrder.STATUS_CANCELLED]
        stats = {
            'total_orders': len(orders),
            'total_spent': money(sum((o.total or 0) for o in live)),
            'completed_orders': sum(1 for o in orders if o.status in (
                SalesOrder.STATUS_COMPLETED, SalesOrder.STATUS_DELIVERED)),
            'cancelled_orders': len(orders) - len(live),
            'pending_payment': money(sum((o.total or 0) for o in live
                                         if o.payment_status != SalesOrder.PAYMENT_PAID)),
        }
        return {'customer': customer, 'orders': orders, 'stats': stats}

    @staticmethod
    def order_status_counts(ctx, customer_id):
        """客户订单按状态与付款状态计数"""
        customer = get_scoped(ctx, Customer, customer_id, 'Customer')
        base = db.session.query(SalesOrder).filter(
            SalesOrder.org_id == ctx.org_id,
            SalesOrder.is_deleted.is_(False),
            SalesOrder.customer_id == customer.id)
        statuses = base.with_entities(SalesOrder.status, func.count(SalesOrder.id)) \
            .group_by(SalesOrder.status).all()
        payments = base.with_entities(SalesOrder.payment_status, func.count(SalesOrder.id)) \
            .group_by(SalesOrder.payment_status).all()
        return {'status_counts': dict(statuses), 'payment_status_counts': dict(payments)}

    @staticmethod
    def recent_orders(ctx, customer_id, limit=5):
        customer = get_scoped(ctx, Customer, customer_id, 'Customer')
        return SalesOrder.for_org(ctx.org_id).filter(SalesOrder.customer_id == customer.id) \
            .order_by(SalesOrder.date.desc(), SalesOrder.id.desc()).limit(limit).all()

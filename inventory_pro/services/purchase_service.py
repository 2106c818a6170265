"""采购管理服务"""
import logging
from datetime import datetime

from sqlalchemy import func

from inventory_pro.exceptions import InvalidTransition, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import Item, Location, PurchaseOrder, PurchaseOrderLine, Supplier
from inventory_pro.pricing import line_amounts, normalize_line, recalculate_totals
from inventory_pro.services.catalog_service import get_scoped
from inventory_pro.services.notification_service import NotificationService
from inventory_pro.utils.decorators import retry_on_transient, transactional
from inventory_pro.utils.numbering import next_sequence_number

logger = logging.getLogger(__name__)


class PurchaseService:
    """采购服务"""

    # 状态机：当前状态 -> 允许的目标状态
    TRANSITIONS = {
        PurchaseOrder.STATUS_DRAFT: (PurchaseOrder.STATUS_SUBMITTED, PurchaseOrder.STATUS_CANCELLED),
        PurchaseOrder.STATUS_SUBMITTED: (PurchaseOrder.STATUS_APPROVED, PurchaseOrder.STATUS_PARTIALLY_RECEIVED,
                                         PurchaseOrder.STATUS_RECEIVED, PurchaseOrder.STATUS_CANCELLED),
        PurchaseOrder.STATUS_APPROVED: (PurchaseOrder.STATUS_PARTIALLY_RECEIVED, PurchaseOrder.STATUS_RECEIVED,
                                        PurchaseOrder.STATUS_CANCELLED),
        PurchaseOrder.STATUS_PARTIALLY_RECEIVED: (PurchaseOrder.STATUS_RECEIVED, PurchaseOrder.STATUS_CANCELLED),
        PurchaseOrder.STATUS_RECEIVED: (PurchaseOrder.STATUS_CLOSED,),
        PurchaseOrder.STATUS_CANCELLED: (),
        PurchaseOrder.STATUS_CLOSED: (),
    }

    @staticmethod
    def generate_po_number(ctx):
        """生成采购单号 PO-00001 (组织内顺序号)"""
        return next_sequence_number(PurchaseOrder, PurchaseOrder.po_number, ctx.org_id, 'PO')

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_purchase_order(ctx, request):
        """
        创建采购订单 (草稿)
        行税额按 quantity * unit_price - discount 计算
        """
        if not request.lines:
            raise ValidationError("Purchase order needs at least one line")
        supplier = get_scoped(ctx, Supplier, request.supplier_id, 'Supplier')
        get_scoped(ctx, Location, request.delivery_location_id, 'Location')

        po = PurchaseOrder(
            org_id=ctx.org_id,
            po_number=PurchaseService.generate_po_number(ctx),
            date=request.date or datetime.utcnow(),
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            delivery_location_id=request.delivery_location_id,
            expected_delivery_date=request.expected_delivery_date,
            payment_terms=request.payment_terms or supplier.payment_terms,
            notes=request.notes,
            status=PurchaseOrder.STATUS_DRAFT,
            created_by_id=ctx.user_id,
        )
        for line in request.lines:
            get_scoped(ctx, Item, line.item_id, 'Item')
            if not isinstance(line.quantity, int) or line.quantity <= 0:
                raise ValidationError(f"Line quantity must be positive, got {line.quantity!r}")
            unit_price, tax_rate, discount = normalize_line(
                line.quantity, line.unit_price, line.tax_rate, line.discount)
            _, tax_amount, total = line_amounts(line.quantity, unit_price, tax_rate, discount)
            po.lines.append(PurchaseOrderLine(
                item_id=line.item_id,
                quantity=line.quantity,
                unit_price=unit_price,
                tax_rate=tax_rate,
                discount=discount,
                tax_amount=tax_amount,
                total=total,
                received_quantity=0,
                notes=line.notes,
            ))
        recalculate_totals(po)
        db.session.add(po)
        db.session.flush()
        logger.info("新建采购单 %s，共 %d 行，合计 %s", po.po_number, len(po.lines), po.total)
        return po

    @staticmethod
    def _transition(po, target):
        if target not in PurchaseService.TRANSITIONS.get(po.status, ()):
            raise InvalidTransition(f"Purchase order {po.po_number} cannot move from {po.status} to {target}")
        po.status = target

    @staticmethod
    @retry_on_transient()
    @transactional
    def submit(ctx, po_id):
        """提交给供应商 (DRAFT -> SUBMITTED)，同时生成供应商邮件载荷"""
        po = get_scoped(ctx, PurchaseOrder, po_id, 'Purchase order')
        PurchaseService._transition(po, PurchaseOrder.STATUS_SUBMITTED)
        po.submitted_at = datetime.utcnow()
        NotificationService.record_safely(ctx, NotificationService.purchase_order_notification, po)
        return po

    @staticmethod
    @retry_on_transient()
    @transactional
    def approve(ctx, po_id):
        po = get_scoped(ctx, PurchaseOrder, po_id, 'Purchase order')
        if po.status != PurchaseOrder.STATUS_SUBMITTED:
            raise InvalidTransition(f"Only submitted purchase orders can be approved ({po.status})")
        po.status = PurchaseOrder.STATUS_APPROVED
        po.approved_by_id = ctx.user_id
        po.approved_at = datetime.utcnow()
        return po

    @staticmethod
    @retry_on_transient()
    @transactional
    def cancel(ctx, po_id):
        po = get_scoped(ctx, PurchaseOrder, po_id, 'Purchase order')
        PurchaseService._transition(po, PurchaseOrder.STATUS_CANCELLED)
        return po

    @staticmethod
    @retry_on_transient()
    @transactional
    def close(ctx, po_id):
        po = get_scoped(ctx, PurchaseOrder, po_id, 'Purchase order')
        PurchaseService._transition(po, PurchaseOrder.STATUS_CLOSED)
        return po

    @staticmethod
    def can_receive(po):
        return po.status in PurchaseOrder.RECEIVABLE_STATUSES

    @staticmethod
    def recompute_status(po):
        """
        根据明细收货情况重算状态
        全部收齐 -> RECEIVED；部分收货 -> PARTIALLY_RECEIVED；否则不变
        """
        lines = list(po.lines)
        ordered = sum(line.quantity for line in lines)
        received = sum(line.received_quantity or 0 for line in lines)
        if lines and all(line.received_quantity == line.quantity for line in lines):
            target = PurchaseOrder.STATUS_RECEIVED
        elif 0 < received < ordered:
            target = PurchaseOrder.STATUS_PARTIALLY_RECEIVED
        else:
            return po.status
        if target != po.status:
            PurchaseService._transition(po, target)
        return po.status

    # --- 查询 ---

    @staticmethod
    def get_purchase_order(ctx, po_id):
        return get_scoped(ctx, PurchaseOrder, po_id, 'Purchase order')

    @staticmethod
    def list_purchase_orders(ctx, status=None, supplier_id=None):
        query = PurchaseOrder.for_org(ctx.org_id)
        if status:
            query = query.filter(PurchaseOrder.status == status)
        if supplier_id:
            query = query.filter(PurchaseOrder.supplier_id == supplier_id)
        return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()

    @staticmethod
    def receivable_purchase_orders(ctx):
        return PurchaseOrder.for_org(ctx.org_id) \
            .filter(PurchaseOrder.status.in_(PurchaseOrder.RECEIVABLE_STATUSES)) \
            .order_by(PurchaseOrder.id.desc()).all()

    @staticmethod
    def status_counts(ctx):
        rows = db.session.query(PurchaseOrder.status, func.count(PurchaseOrder.id)) \
            .filter(PurchaseOrder.org_id == ctx.org_id, PurchaseOrder.is_deleted.is_(False)) \
            .group_by(PurchaseOrder.status).all()
        return dict(rows)

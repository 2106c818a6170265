"""库存调整服务"""
import logging
from datetime import datetime

from flask import current_app, has_app_context

from inventory_pro.exceptions import InvalidTransition, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import Adjustment, AdjustmentLine, Item, Location
from inventory_pro.schemas import AdjustmentLineRequest, AdjustmentRequest
from inventory_pro.services.catalog_service import get_scoped
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.utils.decorators import retry_on_transient, transactional
from inventory_pro.utils.numbering import next_dated_number

logger = logging.getLogger(__name__)


class AdjustmentService:
    """库存调整 (盘点差异、报损、更正等)"""

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_adjustment(ctx, request):
        """
        创建并执行调整单
        每行按带符号的变动量更新台账，任一行导致库存为负 (或低于预留) 时整单回滚
        """
        if request.adjustment_type not in Adjustment.TYPES:
            raise ValidationError(f"Unknown adjustment type {request.adjustment_type}")
        if not request.lines:
            raise ValidationError("No items to adjust")
        location = get_scoped(ctx, Location, request.location_id, 'Location')

        adj_date = request.date or datetime.utcnow()
        adjustment = Adjustment(
            org_id=ctx.org_id,
            adjustment_number=next_dated_number(Adjustment, Adjustment.adjustment_number,
                                                ctx.org_id, 'ADJ', adj_date),
            date=adj_date,
            location_id=location.id,
            adjustment_type=request.adjustment_type,
            reason=request.reason,
            notes=request.notes,
            status=Adjustment.STATUS_COMPLETED,
            created_by_id=ctx.user_id,
        )
        db.session.add(adjustment)

        for line in request.lines:
            get_scoped(ctx, Item, line.item_id, 'Item')
            row = LedgerService.apply_adjustment(
                ctx, line.item_id, location.id, line.quantity_delta,
                reference=adjustment.adjustment_number,
                remark=request.reason or request.adjustment_type)
            adjustment.lines.append(AdjustmentLine(
                item_id=line.item_id,
                before_quantity=row.quantity - line.quantity_delta,
                after_quantity=row.quantity,
                adjusted_quantity=line.quantity_delta,
                notes=line.notes,
            ))

        db.session.flush()
        logger.info("调整单 %s (%s) 完成，净变动 %+d",
                    adjustment.adjustment_number, adjustment.adjustment_type, adjustment.net_adjustment)
        return adjustment

    @staticmethod
    def set_counted_quantity(ctx, location_id, counts, reason=None, notes=None):
        """
        盘点：把实盘数量换算成变动量后生成 STOCK_COUNT 调整单
        :param counts: {item_id: counted_quantity}
        """
        lines = []
        for item_id, counted in counts.items():
            if counted is None or counted < 0:
                return False, ValidationError(f"Counted quantity for item {item_id} must be >= 0")
            row = LedgerService.get_row(ctx, item_id, location_id)
            delta = counted - (row.quantity if row else 0)
            if delta:
                lines.append(AdjustmentLineRequest(item_id=item_id, quantity_delta=delta))
        if not lines:
            return False, ValidationError("Counted quantities match the ledger, nothing to adjust")
        return AdjustmentService.create_adjustment(ctx, AdjustmentRequest(
            location_id=location_id,
            adjustment_type=Adjustment.TYPE_STOCK_COUNT,
            reason=reason or "Stock count",
            notes=notes,
            lines=lines,
        ))

    @staticmethod
    @retry_on_transient()
    @transactional
    def approve(ctx, adjustment_id):
        """记录审批人"""
        adjustment = get_scoped(ctx, Adjustment, adjustment_id, 'Adjustment')
        if adjustment.status == Adjustment.STATUS_CANCELLED:
            raise InvalidTransition("Cancelled adjustments cannot be approved")
        adjustment.approved_by_id = ctx.user_id
        return adjustment

    @staticmethod
    @retry_on_transient()
    @transactional
    def cancel(ctx, adjustment_id):
        """取消调整单并冲回台账变动"""
        adjustment = get_scoped(ctx, Adjustment, adjustment_id, 'Adjustment')
        if adjustment.status == Adjustment.STATUS_CANCELLED:
            raise InvalidTransition("Adjustment is already cancelled")
        for line in adjustment.lines:
            LedgerService.apply_adjustment(ctx, line.item_id, adjustment.location_id,
                                           -line.adjusted_quantity,
                                           reference=adjustment.adjustment_number, remark="调整取消")
        adjustment.status = Adjustment.STATUS_CANCELLED
        return adjustment

    # --- 查询 ---

    @staticmethod
    def list_adjustments(ctx, page=1, per_page=None, search=None, status=None,
                         adjustment_type=None, start_date=None, end_date=None):
        """分页查询，最新在前"""
        if per_page is None:
            per_page = current_app.config.get('ITEMS_PER_PAGE', 15) if has_app_context() else 15
        query = Adjustment.for_org(ctx.org_id)
        if search:
            like = f'%{search}%'
            query = query.filter(db.or_(Adjustment.adjustment_number.ilike(like),
                                        Adjustment.reason.ilike(like),
                                        Adjustment.notes.ilike(like)))
        if status:
            query = query.filter(Adjustment.status == status)
        if adjustment_type:
            query = query.filter(Adjustment.adjustment_type == adjustment_type)
        if start_date:
            query = query.filter(Adjustment.date >= start_date)
        if end_date:
            query = query.filter(Adjustment.date <= end_date)
        return query.order_by(Adjustment.date.desc(), Adjustment.id.desc()) \
            .paginate(page=page, per_page=per_page, error_out=False)

    @staticmethod
    def get_adjustment(ctx, adjustment_id):
        return get_scoped(ctx, Adjustment, adjustment_id, 'Adjustment')

    @staticmethod
    def net_adjustment(ctx, start_date=None, end_date=None, location_id=None):
        """期间净调整 = 正向合计 - 负向绝对值合计 (仅统计已完成)"""
        query = db.session.query(db.func.coalesce(db.func.sum(AdjustmentLine.adjusted_quantity), 0)) \
            .join(Adjustment, Adjustment.id == AdjustmentLine.adjustment_id) \
            .filter(Adjustment.org_id == ctx.org_id,
                    Adjustment.is_deleted.is_(False),
                    Adjustment.status == Adjustment.STATUS_COMPLETED)
        if location_id:
            query = query.filter(Adjustment.location_id == location_id)
        if start_date:
            query = query.filter(Adjustment.date >= start_date)
        if end_date:
            query = query.filter(Adjustment.date <= end_date)
        return int(query.scalar() or 0)

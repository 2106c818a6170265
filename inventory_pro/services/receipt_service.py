"""
收货服务
先校验全部行，再在同一事务中逐行更新采购明细、入账台账、生成收货单并重算采购单状态。
任何一步失败整体回滚。
"""
import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import update

from inventory_pro.exceptions import InvalidTransition, OverReceipt, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import GoodsReceipt, GoodsReceiptLine, Location, PurchaseOrder, PurchaseOrderLine
from inventory_pro.services.catalog_service import get_scoped
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.services.purchase_service import PurchaseService
from inventory_pro.utils.decorators import retry_on_transient, transactional
from inventory_pro.utils.numbering import next_dated_number

logger = logging.getLogger(__name__)


class ReceiptService:
    """采购收货"""

    @staticmethod
    def _validated_lines(po, request):
        """
        校验收货行，返回 [(po_line, ReceiveLineRequest)]
        数量为 0 的行跳过；同一采购明细在一次提交中出现多次时累计校验
        """
        po_lines = {line.id: line for line in po.lines}
        pending = defaultdict(int)
        accepted = []

        for line in request.lines:
            qty = line.received_quantity
            if not isinstance(qty, int) or isinstance(qty, bool):
                raise ValidationError(f"Received quantity must be an integer, got {qty!r}")
            if qty < 0:
                raise ValidationError("Received quantity cannot be negative")
            if qty == 0:
                continue

            po_line = po_lines.get(line.purchase_order_line_id)
            if po_line is None:
                raise ValidationError(
                    f"Line {line.purchase_order_line_id} does not belong to purchase order {po.po_number}")
            if po_line.item_id != line.item_id:
                raise ValidationError(
                    f"Item {line.item_id} does not match purchase order line {po_line.id}")

            pending[po_line.id] += qty
            if (po_line.received_quantity or 0) + pending[po_line.id] > po_line.quantity:
                raise OverReceipt(
                    f"Cannot receive {pending[po_line.id]} of {po_line.item.name}: "
                    f"ordered {po_line.quantity}, already received {po_line.received_quantity}",
                    payload={'purchase_order_line_id': po_line.id,
                             'ordered': po_line.quantity,
                             'received': po_line.received_quantity},
                )
            accepted.append((po_line, line))

        if not accepted:
            raise ValidationError("No items to receive")
        return accepted

    @staticmethod
    def _receive_po_line(po_line, quantity):
        """条件更新：received_quantity + q <= quantity"""
        stmt = (
            update(PurchaseOrderLine)
            .where(
                PurchaseOrderLine.id == po_line.id,
                PurchaseOrderLine.received_quantity + quantity <= PurchaseOrderLine.quantity,
            )
            .values(received_quantity=PurchaseOrderLine.received_quantity + quantity,
                    updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.refresh(po_line)
        if result.rowcount == 0:
            raise OverReceipt(
                f"Purchase order line {po_line.id} would exceed ordered quantity {po_line.quantity}",
                payload={'purchase_order_line_id': po_line.id})
        return po_line

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_goods_receipt(ctx, request):
        """
        创建收货单
        :param request: GoodsReceiptRequest
        :return: GoodsReceipt
        """
        po = get_scoped(ctx, PurchaseOrder, request.purchase_order_id, 'Purchase order')
        location = get_scoped(ctx, Location, request.location_id, 'Location')
        if not PurchaseService.can_receive(po):
            raise InvalidTransition(f"Purchase order {po.po_number} cannot be received in status {po.status}")

        accepted = ReceiptService._validated_lines(po, request)

        receipt_date = request.date or datetime.utcnow()
        receipt = GoodsReceipt(
            org_id=ctx.org_id,
            receipt_number=next_dated_number(GoodsReceipt, GoodsReceipt.receipt_number,
                                             ctx.org_id, 'GR', receipt_date),
            date=receipt_date,
            purchase_order_id=po.id,
            location_id=location.id,
            status=GoodsReceipt.STATUS_COMPLETED,
            notes=request.notes,
            received_by_id=request.received_by_id or ctx.user_id,
        )
        db.session.add(receipt)

        for po_line, line in accepted:
            ReceiptService._receive_po_line(po_line, line.received_quantity)
            LedgerService.apply_receipt(ctx, po_line.item_id, location.id, line.received_quantity,
                                        reference=receipt.receipt_number,
                                        remark=f"采购收货 {po.po_number}")
            receipt.lines.append(GoodsReceiptLine(
                purchase_order_line_id=po_line.id,
                item_id=po_line.item_id,
                received_quantity=line.received_quantity,
                notes=line.notes,
            ))

        PurchaseService.recompute_status(po)
        db.session.flush()
        logger.info("收货单 %s 完成：采购单 %s 收货 %d 件，状态 %s",
                    receipt.receipt_number, po.po_number, receipt.total_quantity, po.status)
        return receipt

    # --- 查询 ---

    @staticmethod
    def list_receipts(ctx, purchase_order_id=None):
        """最新的在前"""
        query = GoodsReceipt.for_org(ctx.org_id)
        if purchase_order_id:
            query = query.filter(GoodsReceipt.purchase_order_id == purchase_order_id)
        return query.order_by(GoodsReceipt.date.desc(), GoodsReceipt.id.desc()).all()

    @staticmethod
    def get_receipt(ctx, receipt_id):
        return get_scoped(ctx, GoodsReceipt, receipt_id, 'Goods receipt')

    @staticmethod
    def receipt_lines(ctx, receipt_id):
        return list(ReceiptService.get_receipt(ctx, receipt_id).lines)

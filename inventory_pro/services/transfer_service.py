"""
调拨服务
创建调拨单时在源地点预留数量，完成时源地点出库、目标地点入库。
取消调拨释放预留。
"""
import logging
from collections import OrderedDict
from datetime import datetime

from inventory_pro.exceptions import InvalidTransition, SameLocation, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import Item, Location, Transfer, TransferLine
from inventory_pro.services.catalog_service import get_scoped
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.utils.decorators import retry_on_transient, transactional
from inventory_pro.utils.numbering import next_dated_number

logger = logging.getLogger(__name__)


class TransferService:
    """库存调拨"""

    @staticmethod
    def _check_route(ctx, from_location_id, to_location_id):
        if from_location_id == to_location_id:
            raise SameLocation("Source and destination locations must be different")
        get_scoped(ctx, Location, from_location_id, 'Location')
        get_scoped(ctx, Location, to_location_id, 'Location')

    @staticmethod
    def _create(ctx, from_location_id, to_location_id, lines, notes=None):
        """
        创建草稿调拨单并在源地点预留
        :param lines: [(item_id, quantity, notes)]
        """
        TransferService._check_route(ctx, from_location_id, to_location_id)
        if not lines:
            raise ValidationError("Transfer needs at least one line")

        now = datetime.utcnow()
        transfer = Transfer(
            org_id=ctx.org_id,
            transfer_number=next_dated_number(Transfer, Transfer.transfer_number, ctx.org_id, 'TR', now),
            date=now,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            status=Transfer.STATUS_DRAFT,
            notes=notes,
            created_by_id=ctx.user_id,
        )
        db.session.add(transfer)

        for item_id, quantity, line_notes in lines:
            get_scoped(ctx, Item, item_id, 'Item')
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise ValidationError(f"Transfer quantity must be greater than 0, got {quantity!r}")
            LedgerService.reserve(ctx, item_id, from_location_id, quantity,
                                  reference=transfer.transfer_number, remark="调拨预留")
            transfer.lines.append(TransferLine(item_id=item_id, quantity=quantity, notes=line_notes))

        db.session.flush()
        logger.info("新建调拨单 %s: %s -> %s, %d 件",
                    transfer.transfer_number, from_location_id, to_location_id, transfer.total_quantity)
        return transfer

    @staticmethod
    def _approve(ctx, transfer):
        if transfer.status != Transfer.STATUS_DRAFT:
            raise InvalidTransition(f"Only draft transfers can be approved ({transfer.status})")
        transfer.status = Transfer.STATUS_APPROVED
        transfer.approved_by_id = ctx.user_id
        return transfer

    @staticmethod
    def _complete(ctx, transfer):
        """源地点出库 (同时释放预留)，目标地点入库"""
        if transfer.status not in (Transfer.STATUS_APPROVED, Transfer.STATUS_IN_TRANSIT):
            raise InvalidTransition(f"Transfer {transfer.transfer_number} cannot be completed in status {transfer.status}")
        for line in transfer.lines:
            LedgerService.apply_transfer_out(ctx, line.item_id, transfer.from_location_id, line.quantity,
                                             reference=transfer.transfer_number, remark="调拨出库")
            LedgerService.apply_transfer_in(ctx, line.item_id, transfer.to_location_id, line.quantity,
                                            reference=transfer.transfer_number, remark="调拨入库")
        transfer.status = Transfer.STATUS_COMPLETED
        transfer.completed_at = datetime.utcnow()
        logger.info("调拨单 %s 完成", transfer.transfer_number)
        return transfer

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_transfer(ctx, request):
        """
        创建调拨单
        :param request: TransferRequest
        """
        return TransferService._create(
            ctx, request.from_location_id, request.to_location_id,
            [(request.item_id, request.quantity, None)], request.notes)

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_batch_transfer(ctx, requests, notes=None):
        """
        批量调拨：按 (源, 目标) 分组，每组一张调拨单，全部在同一事务中
        :return: [Transfer]
        """
        if not requests:
            raise ValidationError("No transfer lines given")
        groups = OrderedDict()
        for req in requests:
            groups.setdefault((req.from_location_id, req.to_location_id), []).append(
                (req.item_id, req.quantity, req.notes))
        return [TransferService._create(ctx, from_id, to_id, lines, notes)
                for (from_id, to_id), lines in groups.items()]

    @staticmethod
    @retry_on_transient()
    @transactional
    def transfer_stock(ctx, request):
        """
        快速调拨：创建、审批并完成，整体一个事务
        成功后源地点 -Q，目标地点 +Q
        """
        transfer = TransferService._create(
            ctx, request.from_location_id, request.to_location_id,
            [(request.item_id, request.quantity, None)], request.notes)
        TransferService._approve(ctx, transfer)
        return TransferService._complete(ctx, transfer)

    @staticmethod
    @retry_on_transient()
    @transactional
    def approve(ctx, transfer_id):
        transfer = get_scoped(ctx, Transfer, transfer_id, 'Transfer')
        return TransferService._approve(ctx, transfer)

    @staticmethod
    @retry_on_transient()
    @transactional
    def dispatch(ctx, transfer_id):
        """发运：APPROVED -> IN_TRANSIT"""
        transfer = get_scoped(ctx, Transfer, transfer_id, 'Transfer')
        if transfer.status != Transfer.STATUS_APPROVED:
            raise InvalidTransition(f"Only approved transfers can be dispatched ({transfer.status})")
        transfer.status = Transfer.STATUS_IN_TRANSIT
        return transfer

    @staticmethod
    @retry_on_transient()
    @transactional
    def complete(ctx, transfer_id):
        transfer = get_scoped(ctx, Transfer, transfer_id, 'Transfer')
        return TransferService._complete(ctx, transfer)

    @staticmethod
    @retry_on_transient()
    @transactional
    def cancel(ctx, transfer_id):
        """取消并释放源地点预留"""
        transfer = get_scoped(ctx, Transfer, transfer_id, 'Transfer')
        if transfer.status not in Transfer.RESERVED_STATUSES:
            raise InvalidTransition(f"Transfer {transfer.transfer_number} cannot be cancelled in status {transfer.status}")
        for line in transfer.lines:
            LedgerService.release(ctx, line.item_id, transfer.from_location_id, line.quantity,
                                  reference=transfer.transfer_number, remark="调拨取消")
        transfer.status = Transfer.STATUS_CANCELLED
        return transfer

    # --- 查询 ---

    @staticmethod
    def list_transfers(ctx, status=None, location_id=None):
        query = Transfer.for_org(ctx.org_id)
        if status:
            query = query.filter(Transfer.status == status)
        if location_id:
            query = query.filter(db.or_(Transfer.from_location_id == location_id,
                                        Transfer.to_location_id == location_id))
        return query.order_by(Transfer.date.desc(), Transfer.id.desc()).all()

    @staticmethod
    def get_transfer(ctx, transfer_id):
        return get_scoped(ctx, Transfer, transfer_id, 'Transfer')


"""
库存台账服务
每一次数量变动都是一条带条件的 UPDATE 语句，条件不满足时影响行数为 0，
此时抛出 InsufficientStock 且台账保持不变。
本服务只写入会话，不提交事务，事务由调用的业务流程负责。
"""
import logging
from datetime import datetime

from sqlalchemy import update

from inventory_pro.exceptions import InsufficientStock, NotFound, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import Inventory, InventoryLog, Item, Location

logger = logging.getLogger(__name__)


class LedgerService:
    """库存台账 (Item x Location)"""

    @staticmethod
    def get_row(ctx, item_id, location_id):
        return Inventory.query.filter_by(
            org_id=ctx.org_id, item_id=item_id, location_id=location_id).first()

    @staticmethod
    def get_available(ctx, item_id, location_id):
        """可用数量 = 在库 - 预留，没有台账行时为 0"""
        row = LedgerService.get_row(ctx, item_id, location_id)
        return row.available if row else 0

    @staticmethod
    def get_or_create_row(ctx, item_id, location_id):
        """
        获取台账行，不存在则以数量 0 创建
        商品与地点都必须属于当前组织
        """
        row = LedgerService.get_row(ctx, item_id, location_id)
        if row:
            return row

        item = db.session.get(Item, item_id)
        if not item or item.org_id != ctx.org_id or item.is_deleted:
            raise NotFound(f"Item {item_id} not found")
        location = db.session.get(Location, location_id)
        if not location or location.org_id != ctx.org_id or location.is_deleted:
            raise NotFound(f"Location {location_id} not found")

        row = Inventory(org_id=ctx.org_id, item_id=item_id, location_id=location_id,
                        quantity=0, reserved_quantity=0)
        db.session.add(row)
        db.session.flush()
        return row

    @staticmethod
    def _apply(ctx, item_id, location_id, qty_change, reserved_change, move_type,
               reference=None, remark=None):
        """
        原子化台账变动
        保证变动后 0 <= reserved_quantity <= quantity
        """
        row = LedgerService.get_or_create_row(ctx, item_id, location_id)

        new_qty = Inventory.quantity + qty_change
        new_reserved = Inventory.reserved_quantity + reserved_change
        stmt = (
            update(Inventory)
            .where(
                Inventory.id == row.id,
                new_qty >= 0,
                new_reserved >= 0,
                new_qty >= new_reserved,
            )
            .values(quantity=new_qty, reserved_quantity=new_reserved,
                    updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)

        # 读取最新值 (条件更新绕过了会话中的对象状态)
        row = db.session.get(Inventory, row.id, populate_existing=True)

        if result.rowcount == 0:
            raise InsufficientStock(
                f"Insufficient stock for item {item_id} at location {location_id}: "
                f"quantity {row.quantity}, reserved {row.reserved_quantity}, "
                f"requested change {qty_change:+d}/{reserved_change:+d}",
                payload={'item_id': item_id, 'location_id': location_id,
                         'quantity': row.quantity, 'reserved_quantity': row.reserved_quantity},
            )

        db.session.add(InventoryLog(
            org_id=ctx.org_id,
            reference=reference,
            move_type=move_type,
            item_id=item_id,
            location_id=location_id,
            qty_change=qty_change,
            reserved_change=reserved_change,
            balance_after=row.quantity,
            operator_id=ctx.user_id,
            remark=remark,
        ))
        logger.info("台账变动 %s item=%s location=%s qty%+d reserved%+d -> %d/%d (%s)",
                    move_type, item_id, location_id, qty_change, reserved_change,
                    row.quantity, row.reserved_quantity, reference or '-')
        return row

    @staticmethod
    def _positive(quantity):
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}")
        return quantity

    # --- 入库 / 出库 ---

    @staticmethod
    def apply_receipt(ctx, item_id, location_id, quantity, reference=None, remark=None):
        """采购收货 +q"""
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, q, 0,
                                    InventoryLog.TYPE_RECEIPT, reference, remark)

    @staticmethod
    def apply_transfer_out(ctx, item_id, location_id, quantity, reference=None, remark=None):
        """调拨出库：扣减在库数量并释放创建调拨时的预留"""
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, -q, -q,
                                    InventoryLog.TYPE_TRANSFER_OUT, reference, remark)

    @staticmethod
    def apply_transfer_in(ctx, item_id, location_id, quantity, reference=None, remark=None):
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, q, 0,
                                    InventoryLog.TYPE_TRANSFER_IN, reference, remark)

    @staticmethod
    def apply_adjustment(ctx, item_id, location_id, delta, reference=None, remark=None):
        """带符号调整，结果不得低于 0 或低于已预留数量"""
        if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
            raise ValidationError(f"Adjustment delta must be a non-zero integer, got {delta!r}")
        return LedgerService._apply(ctx, item_id, location_id, delta, 0,
                                    InventoryLog.TYPE_ADJUSTMENT, reference, remark)

    # --- 预留 ---

    @staticmethod
    def reserve(ctx, item_id, location_id, quantity, reference=None, remark=None):
        """预留：要求可用数量 >= q"""
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, 0, q,
                                    InventoryLog.TYPE_RESERVE, reference, remark)

    @staticmethod
    def release(ctx, item_id, location_id, quantity, reference=None, remark=None):
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, 0, -q,
                                    InventoryLog.TYPE_RELEASE, reference, remark)

    # --- 销售 ---

    @staticmethod
    def fulfil(ctx, item_id, location_id, quantity, reference=None, remark=None):
        """发货：在库与预留同时扣减"""
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, -q, -q,
                                    InventoryLog.TYPE_SALE, reference, remark)

    @staticmethod
    def issue(ctx, item_id, location_id, quantity, reference=None, remark=None):
        """直接出库 (POS)：要求可用数量 >= q"""
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, -q, 0,
                                    InventoryLog.TYPE_SALE, reference, remark)

    @staticmethod
    def restock(ctx, item_id, location_id, quantity, reference=None, remark=None):
        """退货入库"""
        q = LedgerService._positive(quantity)
        return LedgerService._apply(ctx, item_id, location_id, q, 0,
                                    InventoryLog.TYPE_RETURN, reference, remark)

    # --- 查询 ---

    @staticmethod
    def movements(ctx, item_id=None, location_id=None, limit=50):
        """库存流水，最新在前"""
        query = InventoryLog.for_org(ctx.org_id)
        if item_id:
            query = query.filter(InventoryLog.item_id == item_id)
        if location_id:
            query = query.filter(InventoryLog.location_id == location_id)
        return query.order_by(InventoryLog.id.desc()).limit(limit).all()

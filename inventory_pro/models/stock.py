from inventory_pro.extensions import db
from .base import BaseModel, OrgScopedMixin


class Inventory(OrgScopedMixin, BaseModel):
    """
    库存台账行 (Item <-> Location)
    记录某商品在某地点的在库数量与预留数量
    """
    __tablename__ = 'stock_inventories'
    __table_args__ = (
        db.UniqueConstraint('item_id', 'location_id', name='uq_inventory_item_location'),
        db.CheckConstraint('quantity >= 0', name='ck_inventory_quantity'),
        db.CheckConstraint('reserved_quantity >= 0', name='ck_inventory_reserved'),
        db.CheckConstraint('reserved_quantity <= quantity', name='ck_inventory_reserved_le_quantity'),
    )

    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'), nullable=False)
    quantity = db.Column(db.Integer, default=0, nullable=False)
    reserved_quantity = db.Column(db.Integer, default=0, nullable=False)

    # 货架位置
    shelf_location = db.Column(db.String(32))

    location = db.relationship('Location', backref='inventories')

    @property
    def available(self):
        """可用数量 = 在库 - 预留"""
        return (self.quantity or 0) - (self.reserved_quantity or 0)


class InventoryLog(OrgScopedMixin, BaseModel):
    """
    库存变动流水
    台账每一次变动都追加一条，用于审计
    """
    __tablename__ = 'stock_logs'

    TYPE_RECEIPT = 'receipt'          # 采购收货
    TYPE_TRANSFER_OUT = 'transfer_out'
    TYPE_TRANSFER_IN = 'transfer_in'
    TYPE_ADJUSTMENT = 'adjustment'
    TYPE_RESERVE = 'reserve'
    TYPE_RELEASE = 'release'
    TYPE_SALE = 'sale'
    TYPE_RETURN = 'return'

    reference = db.Column(db.String(32), index=True)  # 关联的单据号
    move_type = db.Column(db.String(20))

    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'))
    location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'))

    qty_change = db.Column(db.Integer)       # 在库变动 (+10, -5)
    reserved_change = db.Column(db.Integer, default=0)
    balance_after = db.Column(db.Integer)    # 变动后结余 (快照)

    operator_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    remark = db.Column(db.String(255))

    operator = db.relationship('User')
    item = db.relationship('Item')
    location = db.relationship('Location')

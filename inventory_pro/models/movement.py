"""调拨与库存调整模型"""
from inventory_pro.extensions import db
from .base import BaseModel, OrgScopedMixin


class Transfer(OrgScopedMixin, BaseModel):
    """调拨单"""
    __tablename__ = 'stock_transfers'
    __table_args__ = (
        db.CheckConstraint('from_location_id <> to_location_id', name='ck_transfer_distinct_locations'),
    )

    STATUS_DRAFT = 'DRAFT'
    STATUS_APPROVED = 'APPROVED'
    STATUS_IN_TRANSIT = 'IN_TRANSIT'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'

    # 源库位仍持有预留的状态
    RESERVED_STATUSES = (STATUS_DRAFT, STATUS_APPROVED, STATUS_IN_TRANSIT)

    transfer_number = db.Column(db.String(40), index=True)
    date = db.Column(db.DateTime)
    from_location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'), nullable=False)
    to_location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'), nullable=False)
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)
    notes = db.Column(db.Text)

    created_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    completed_at = db.Column(db.DateTime)

    from_location = db.relationship('Location', foreign_keys=[from_location_id])
    to_location = db.relationship('Location', foreign_keys=[to_location_id])
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    approved_by = db.relationship('User', foreign_keys=[approved_by_id])
    lines = db.relationship('TransferLine', backref='transfer',
                            cascade='all, delete-orphan', order_by='TransferLine.id')

    @property
    def total_quantity(self):
        return sum(line.quantity for line in self.lines)


class TransferLine(BaseModel):
    """调拨明细"""
    __tablename__ = 'stock_transfer_lines'
    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_transfer_line_quantity'),
    )

    transfer_id = db.Column(db.Integer, db.ForeignKey('stock_transfers.id'), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text)

    item = db.relationship('Item')


class Adjustment(OrgScopedMixin, BaseModel):
    """库存调整单"""
    __tablename__ = 'stock_adjustments'

    TYPE_STOCK_COUNT = 'STOCK_COUNT'
    TYPE_DAMAGE = 'DAMAGE'
    TYPE_THEFT = 'THEFT'
    TYPE_EXPIRED = 'EXPIRED'
    TYPE_WRITE_OFF = 'WRITE_OFF'
    TYPE_CORRECTION = 'CORRECTION'
    TYPE_OTHER = 'OTHER'
    TYPES = (TYPE_STOCK_COUNT, TYPE_DAMAGE, TYPE_THEFT, TYPE_EXPIRED,
             TYPE_WRITE_OFF, TYPE_CORRECTION, TYPE_OTHER)

    # 调整单创建即执行，取消时冲回
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    adjustment_number = db.Column(db.String(32), index=True)
    date = db.Column(db.DateTime)
    location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'), nullable=False)
    adjustment_type = db.Column(db.String(20), nullable=False)
    reason = db.Column(db.String(255))
    notes = db.Column(db.Text)
    status = db.Column(db.String(20), default=STATUS_COMPLETED, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))

    location = db.relationship('Location')
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    approved_by = db.relationship('User', foreign_keys=[approved_by_id])
    lines = db.relationship('AdjustmentLine', backref='adjustment',
                            cascade='all, delete-orphan', order_by='AdjustmentLine.id')

    @property
    def net_adjustment(self):
        return sum(line.adjusted_quantity for line in self.lines)


class AdjustmentLine(BaseModel):
    """调整明细"""
    __tablename__ = 'stock_adjustment_lines'

    adjustment_id = db.Column(db.Integer, db.ForeignKey('stock_adjustments.id'), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'), nullable=False)
    before_quantity = db.Column(db.Integer)
    after_quantity = db.Column(db.Integer)
    adjusted_quantity = db.Column(db.Integer, nullable=False)  # 带符号的变动量
    notes = db.Column(db.Text)

    item = db.relationship('Item')

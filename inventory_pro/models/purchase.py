"""采购与收货模型"""
from inventory_pro.extensions import db
from .base import BaseModel, OrgScopedMixin


class PurchaseOrder(OrgScopedMixin, BaseModel):
    """采购订单"""
    __tablename__ = 'purchase_orders'
    __table_args__ = (
        db.UniqueConstraint('org_id', 'po_number', name='uq_po_org_number'),
    )

    STATUS_DRAFT = 'DRAFT'                            # 草稿
    STATUS_SUBMITTED = 'SUBMITTED'                    # 已提交供应商
    STATUS_APPROVED = 'APPROVED'                      # 已审批
    STATUS_PARTIALLY_RECEIVED = 'PARTIALLY_RECEIVED'  # 部分到货
    STATUS_RECEIVED = 'RECEIVED'                      # 已收货
    STATUS_CANCELLED = 'CANCELLED'                    # 已取消
    STATUS_CLOSED = 'CLOSED'                          # 已关闭

    # 可取消的状态
    OPEN_STATUSES = (STATUS_DRAFT, STATUS_SUBMITTED, STATUS_APPROVED, STATUS_PARTIALLY_RECEIVED)
    # 可创建收货单的状态
    RECEIVABLE_STATUSES = (STATUS_SUBMITTED, STATUS_PARTIALLY_RECEIVED)

    po_number = db.Column(db.String(32), index=True)
    date = db.Column(db.DateTime)
    supplier_id = db.Column(db.Integer, db.ForeignKey('catalog_suppliers.id'))
    supplier_name = db.Column(db.String(128))
    delivery_location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'))

    status = db.Column(db.String(24), default=STATUS_DRAFT, index=True)
    subtotal = db.Column(db.Numeric(14, 2), default=0)
    tax_amount = db.Column(db.Numeric(14, 2), default=0)
    total = db.Column(db.Numeric(14, 2), default=0)

    payment_terms = db.Column(db.String(64))
    expected_delivery_date = db.Column(db.Date)
    notes = db.Column(db.Text)

    created_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    submitted_at = db.Column(db.DateTime)
    approved_at = db.Column(db.DateTime)

    # 关系
    supplier = db.relationship('Supplier')
    delivery_location = db.relationship('Location')
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    approved_by = db.relationship('User', foreign_keys=[approved_by_id])
    lines = db.relationship('PurchaseOrderLine', backref='purchase_order',
                            cascade='all, delete-orphan', order_by='PurchaseOrderLine.id')
    goods_receipts = db.relationship('GoodsReceipt', backref='purchase_order', lazy='dynamic')

    @property
    def can_receive(self):
        return self.status in self.RECEIVABLE_STATUSES

    @property
    def receive_progress(self):
        """收货进度百分比"""
        total_qty = sum(line.quantity for line in self.lines)
        received_qty = sum(line.received_quantity for line in self.lines)
        if total_qty == 0:
            return 0
        return round(received_qty / total_qty * 100, 1)


class PurchaseOrderLine(BaseModel):
    """采购订单明细"""
    __tablename__ = 'purchase_order_lines'
    __table_args__ = (
        db.CheckConstraint('received_quantity >= 0', name='ck_po_line_received_non_negative'),
        db.CheckConstraint('received_quantity <= quantity', name='ck_po_line_received_le_quantity'),
    )

    purchase_order_id = db.Column(db.Integer, db.ForeignKey('purchase_orders.id'), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), default=0)
    tax_rate = db.Column(db.Numeric(5, 2), default=0)
    tax_amount = db.Column(db.Numeric(12, 2), default=0)
    discount = db.Column(db.Numeric(12, 2), default=0)
    total = db.Column(db.Numeric(14, 2), default=0)
    notes = db.Column(db.Text)

    received_quantity = db.Column(db.Integer, default=0, nullable=False)

    item = db.relationship('Item')

    @property
    def pending_quantity(self):
        """待收货数量"""
        return self.quantity - self.received_quantity


class GoodsReceipt(OrgScopedMixin, BaseModel):
    """收货单"""
    __tablename__ = 'purchase_goods_receipts'

    STATUS_PENDING = 'PENDING'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'

    receipt_number = db.Column(db.String(32), index=True)
    date = db.Column(db.DateTime)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey('purchase_orders.id'), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'), nullable=False)
    status = db.Column(db.String(20), default=STATUS_COMPLETED)
    notes = db.Column(db.Text)
    received_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))

    location = db.relationship('Location')
    received_by = db.relationship('User')
    lines = db.relationship('GoodsReceiptLine', backref='goods_receipt',
                            cascade='all, delete-orphan', order_by='GoodsReceiptLine.id')

    @property
    def total_quantity(self):
        return sum(line.received_quantity for line in self.lines)


class GoodsReceiptLine(BaseModel):
    """收货明细"""
    __tablename__ = 'purchase_goods_receipt_lines'

    goods_receipt_id = db.Column(db.Integer, db.ForeignKey('purchase_goods_receipts.id'), nullable=False)
    purchase_order_line_id = db.Column(db.Integer, db.ForeignKey('purchase_order_lines.id'), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'), nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text)

    item = db.relationship('Item')
    purchase_order_line = db.relationship('PurchaseOrderLine')

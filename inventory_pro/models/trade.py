from inventory_pro.extensions import db
from .base import BaseModel, OrgScopedMixin


class SalesOrder(OrgScopedMixin, BaseModel):
    """销售订单头 (含 POS 销售)"""
    __tablename__ = 'trade_sales_orders'

    STATUS_DRAFT = 'DRAFT'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_PROCESSING = 'PROCESSING'
    STATUS_SHIPPED = 'SHIPPED'
    STATUS_DELIVERED = 'DELIVERED'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_RETURNED = 'RETURNED'

    PAYMENT_PENDING = 'PENDING'
    PAYMENT_PARTIAL = 'PARTIAL'
    PAYMENT_UNPAID = 'UNPAID'
    PAYMENT_PAID = 'PAID'
    PAYMENT_REFUNDED = 'REFUNDED'
    PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL, PAYMENT_UNPAID, PAYMENT_PAID, PAYMENT_REFUNDED)

    SOURCE_POS = 'POS'
    SOURCE_SALES_ORDER = 'SALES_ORDER'

    order_number = db.Column(db.String(32), index=True)
    date = db.Column(db.DateTime)
    source = db.Column(db.String(20), default=SOURCE_SALES_ORDER, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey('catalog_customers.id'), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey('catalog_locations.id'), nullable=False)

    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)
    payment_status = db.Column(db.String(20), default=PAYMENT_PENDING)
    payment_method = db.Column(db.String(32))

    subtotal = db.Column(db.Numeric(14, 2), default=0)
    tax_amount = db.Column(db.Numeric(14, 2), default=0)
    shipping_cost = db.Column(db.Numeric(12, 2), default=0)
    discount = db.Column(db.Numeric(12, 2), default=0)
    total = db.Column(db.Numeric(14, 2), default=0)
    notes = db.Column(db.Text)

    created_by_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'))

    # 关系
    customer = db.relationship('Customer')
    location = db.relationship('Location')
    created_by = db.relationship('User')
    lines = db.relationship('SalesOrderLine', backref='sales_order',
                            cascade='all, delete-orphan', order_by='SalesOrderLine.id')

    @property
    def items_count(self):
        return sum(line.quantity for line in self.lines)


class SalesOrderLine(BaseModel):
    """订单明细行"""
    __tablename__ = 'trade_sales_order_lines'

    sales_order_id = db.Column(db.Integer, db.ForeignKey('trade_sales_orders.id'), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)  # 下单时的单价快照
    tax_rate = db.Column(db.Numeric(5, 2), default=0)
    tax_amount = db.Column(db.Numeric(12, 2), default=0)
    discount = db.Column(db.Numeric(12, 2), default=0)
    total = db.Column(db.Numeric(14, 2), default=0)

    item = db.relationship('Item')

    @property
    def subtotal(self):
        return self.quantity * self.unit_price - (self.discount or 0)

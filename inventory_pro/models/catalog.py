"""商品目录与往来单位模型"""
from inventory_pro.extensions import db
from .base import BaseModel, OrgScopedMixin


class Category(OrgScopedMixin, BaseModel):
    """商品分类"""
    __tablename__ = 'catalog_categories'
    __table_args__ = (
        db.UniqueConstraint('org_id', 'slug', name='uq_category_org_slug'),
    )

    name = db.Column(db.String(64), nullable=False)
    slug = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.String(255))

    items = db.relationship('Item', backref='category', lazy='dynamic')


class Brand(OrgScopedMixin, BaseModel):
    """品牌"""
    __tablename__ = 'catalog_brands'
    __table_args__ = (
        db.UniqueConstraint('org_id', 'slug', name='uq_brand_org_slug'),
    )

    name = db.Column(db.String(64), nullable=False)
    slug = db.Column(db.String(64), nullable=False, index=True)

    items = db.relationship('Item', backref='brand', lazy='dynamic')


class Unit(OrgScopedMixin, BaseModel):
    """计量单位 (件、箱、千克...)"""
    __tablename__ = 'catalog_units'

    name = db.Column(db.String(32), nullable=False)
    symbol = db.Column(db.String(16), nullable=False)

    items = db.relationship('Item', backref='unit', lazy='dynamic')


class TaxRate(OrgScopedMixin, BaseModel):
    """税率模板，选中后商品税率取其 rate"""
    __tablename__ = 'catalog_tax_rates'

    name = db.Column(db.String(64), nullable=False)
    rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    items = db.relationship('Item', backref='tax_rate_template', lazy='dynamic')


class Location(OrgScopedMixin, BaseModel):
    """库存地点 (仓库 / 门店 / 虚拟库位)"""
    __tablename__ = 'catalog_locations'

    TYPE_WAREHOUSE = 'WAREHOUSE'
    TYPE_SHOP = 'SHOP'
    TYPE_VIRTUAL = 'VIRTUAL'
    TYPES = (TYPE_WAREHOUSE, TYPE_SHOP, TYPE_VIRTUAL)

    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(20), default=TYPE_WAREHOUSE)
    address = db.Column(db.String(256))
    is_active = db.Column(db.Boolean, default=True)


class Item(OrgScopedMixin, BaseModel):
    """商品主表"""
    __tablename__ = 'catalog_items'
    __table_args__ = (
        db.UniqueConstraint('org_id', 'sku', name='uq_item_org_sku'),
    )

    sku = db.Column(db.String(64), nullable=False, index=True)  # 组织内唯一
    name = db.Column(db.String(128), nullable=False, index=True)
    barcode = db.Column(db.String(64))
    description = db.Column(db.Text)

    cost_price = db.Column(db.Numeric(12, 2), default=0)
    selling_price = db.Column(db.Numeric(12, 2), default=0)
    tax_rate = db.Column(db.Numeric(5, 2), default=0)

    # 分类信息
    category_id = db.Column(db.Integer, db.ForeignKey('catalog_categories.id'), index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey('catalog_brands.id'))
    unit_id = db.Column(db.Integer, db.ForeignKey('catalog_units.id'))
    tax_rate_id = db.Column(db.Integer, db.ForeignKey('catalog_tax_rates.id'))

    # 库存设置
    min_stock_level = db.Column(db.Integer, default=0)
    max_stock_level = db.Column(db.Integer)
    is_serial_tracked = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)

    # 销售统计 (POS 销售时累加)
    sales_count = db.Column(db.Integer, default=0)
    sales_total = db.Column(db.Numeric(14, 2), default=0)

    inventories = db.relationship('Inventory', backref='item', lazy='select')

    @property
    def total_stock(self):
        return sum(i.quantity for i in self.inventories)

    @property
    def total_available(self):
        return sum(i.available for i in self.inventories)

    @property
    def is_low_stock(self):
        return self.total_stock < (self.min_stock_level or 0)


class Supplier(OrgScopedMixin, BaseModel):
    """供应商"""
    __tablename__ = 'catalog_suppliers'
    name = db.Column(db.String(128), nullable=False, index=True)
    contact_person = db.Column(db.String(64))
    email = db.Column(db.String(128))
    phone = db.Column(db.String(32))
    address = db.Column(db.String(256))
    payment_terms = db.Column(db.String(64))


class Customer(OrgScopedMixin, BaseModel):
    """客户"""
    __tablename__ = 'catalog_customers'
    name = db.Column(db.String(128), nullable=False, index=True)
    contact_person = db.Column(db.String(64))
    email = db.Column(db.String(128))
    phone = db.Column(db.String(32))
    address = db.Column(db.String(256))


class ItemSupplier(BaseModel):
    """商品的可选供应商 (每个商品至多一个首选)"""
    __tablename__ = 'catalog_item_suppliers'
    __table_args__ = (
        db.UniqueConstraint('item_id', 'supplier_id', name='uq_item_supplier'),
    )

    item_id = db.Column(db.Integer, db.ForeignKey('catalog_items.id'), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey('catalog_suppliers.id'), nullable=False, index=True)
    is_preferred = db.Column(db.Boolean, default=False)
    supplier_sku = db.Column(db.String(64))
    lead_time = db.Column(db.Integer)  # 天
    min_order_qty = db.Column(db.Integer)
    unit_cost = db.Column(db.Numeric(12, 2))
    last_purchase_date = db.Column(db.DateTime)
    notes = db.Column(db.Text)

    item = db.relationship('Item', backref=db.backref('supplier_links', lazy='select'))
    supplier = db.relationship('Supplier', backref=db.backref('item_links', lazy='dynamic'))

"""商品目录、地点与往来单位服务"""
import logging

from sqlalchemy import update

from inventory_pro.exceptions import NotFound, ValidationError
from inventory_pro.extensions import db, cache
from inventory_pro.models import (Brand, Category, Customer, Inventory, Item, ItemSupplier, Location,
                                  PurchaseOrder, SalesOrder, Supplier, TaxRate, Unit)
from inventory_pro.pricing import MAX_TAX_RATE, money
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.services.report_service import location_names_for_org
from inventory_pro.utils.decorators import retry_on_transient, transactional

logger = logging.getLogger(__name__)


def get_scoped(ctx, model, obj_id, label=None):
    """按组织获取实体，不属于当前组织视为不存在"""
    obj = db.session.get(model, obj_id) if obj_id is not None else None
    if not obj or obj.org_id != ctx.org_id or obj.is_deleted:
        raise NotFound(f"{label or model.__name__} {obj_id} not found")
    return obj


class CatalogService:
    """商品目录服务"""

    ITEM_FIELDS = ('name', 'barcode', 'description', 'cost_price', 'selling_price', 'tax_rate',
                   'min_stock_level', 'max_stock_level', 'is_serial_tracked', 'is_active',
                   'category_id', 'brand_id', 'unit_id', 'tax_rate_id')

    # 商品外键字段 -> (模型, 名称)
    CLASSIFICATION_FIELDS = {
        'category_id': (Category, 'Category'),
        'brand_id': (Brand, 'Brand'),
        'unit_id': (Unit, 'Unit'),
        'tax_rate_id': (TaxRate, 'Tax rate'),
    }

    @staticmethod
    def _check_prices(cost_price, selling_price, tax_rate):
        for label, value in (('cost_price', cost_price), ('selling_price', selling_price),
                             ('tax_rate', tax_rate)):
            if money(value, label) < 0:
                raise ValidationError(f"{label} must not be negative")
        if money(tax_rate, 'tax_rate') > MAX_TAX_RATE:
            raise ValidationError(f"tax_rate must not exceed {MAX_TAX_RATE}")

    @staticmethod
    def _check_classification(ctx, values):
        """校验分类外键属于本组织，返回选中的税率模板 (可能为 None)"""
        template = None
        for key, (model, label) in CatalogService.CLASSIFICATION_FIELDS.items():
            obj_id = values.get(key)
            if obj_id:
                obj = get_scoped(ctx, model, obj_id, label)
                if model is TaxRate:
                    template = obj
        return template

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_item(ctx, request):
        """
        新建商品
        在组织的每个地点创建台账行，并按 opening_stock 记入期初库存
        """
        sku = (request.sku or '').strip().upper()
        if not sku or not (request.name or '').strip():
            raise ValidationError("SKU and name are required")
        template = CatalogService._check_classification(ctx, {
            key: getattr(request, key) for key in CatalogService.CLASSIFICATION_FIELDS})
        tax_rate = template.rate if template else request.tax_rate
        CatalogService._check_prices(request.cost_price, request.selling_price, tax_rate)
        if Item.query.filter_by(org_id=ctx.org_id, sku=sku).first():
            raise ValidationError(f"SKU {sku} already exists")

        item = Item(
            org_id=ctx.org_id,
            sku=sku,
            name=request.name.strip(),
            barcode=request.barcode,
            description=request.description,
            cost_price=money(request.cost_price),
            selling_price=money(request.selling_price),
            tax_rate=money(tax_rate),
            category_id=request.category_id,
            brand_id=request.brand_id,
            unit_id=request.unit_id,
            tax_rate_id=request.tax_rate_id,
            min_stock_level=request.min_stock_level or 0,
            max_stock_level=request.max_stock_level,
            is_serial_tracked=request.is_serial_tracked,
            is_active=request.is_active,
            sales_count=0,
            sales_total=0,
        )
        db.session.add(item)
        db.session.flush()

        for location in Location.for_org(ctx.org_id).all():
            db.session.add(Inventory(org_id=ctx.org_id, item_id=item.id, location_id=location.id,
                                     quantity=0, reserved_quantity=0))
        db.session.flush()

        for location_id, quantity in (request.opening_stock or {}).items():
            if quantity:
                LedgerService.apply_adjustment(ctx, item.id, int(location_id), int(quantity),
                                               reference=f"OPEN-{sku}", remark="期初库存")
        logger.info("新建商品 %s (%s)", item.sku, item.name)
        return item

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_item(ctx, item_id, **changes):
        item = get_scoped(ctx, Item, item_id, 'Item')
        unknown = set(changes) - set(CatalogService.ITEM_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown item fields: {', '.join(sorted(unknown))}")
        template = CatalogService._check_classification(ctx, changes)
        if template:
            changes['tax_rate'] = template.rate
        CatalogService._check_prices(changes.get('cost_price', item.cost_price),
                                     changes.get('selling_price', item.selling_price),
                                     changes.get('tax_rate', item.tax_rate))
        for key, value in changes.items():
            if key in ('cost_price', 'selling_price', 'tax_rate'):
                value = money(value, key)
            setattr(item, key, value)
        return item

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_location(ctx, name, type=Location.TYPE_WAREHOUSE, address=None):
        """新建地点，并为现有每个商品创建台账行"""
        if not (name or '').strip():
            raise ValidationError("Location name is required")
        if type not in Location.TYPES:
            raise ValidationError(f"Unknown location type {type}")

        location = Location(org_id=ctx.org_id, name=name.strip(), type=type, address=address)
        db.session.add(location)
        db.session.flush()

        for item in Item.for_org(ctx.org_id).all():
            db.session.add(Inventory(org_id=ctx.org_id, item_id=item.id, location_id=location.id,
                                     quantity=0, reserved_quantity=0))
        cache.delete_memoized(location_names_for_org, ctx.org_id)
        return location

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_supplier(ctx, name, **fields):
        if not (name or '').strip():
            raise ValidationError("Supplier name is required")
        supplier = Supplier(org_id=ctx.org_id, name=name.strip(), **fields)
        db.session.add(supplier)
        return supplier

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_customer(ctx, name, **fields):
        if not (name or '').strip():
            raise ValidationError("Customer name is required")
        customer = Customer(org_id=ctx.org_id, name=name.strip(), **fields)
        db.session.add(customer)
        return customer

    # --- 维护与软删除 ---

    LOCATION_FIELDS = ('name', 'type', 'address', 'is_active')
    PARTNER_FIELDS = ('name', 'contact_person', 'email', 'phone', 'address')
    SUPPLIER_FIELDS = PARTNER_FIELDS + ('payment_terms',)

    OPEN_PO_STATUSES = (PurchaseOrder.STATUS_DRAFT, PurchaseOrder.STATUS_SUBMITTED,
                        PurchaseOrder.STATUS_APPROVED, PurchaseOrder.STATUS_PARTIALLY_RECEIVED)

    @staticmethod
    def _apply_changes(obj, changes, allowed, label):
        unknown = set(changes) - set(allowed)
        if unknown:
            raise ValidationError(f"Unknown {label} fields: {', '.join(sorted(unknown))}")
        if 'name' in changes:
            changes['name'] = (changes['name'] or '').strip()
            if not changes['name']:
                raise ValidationError(f"{label} name is required")
        for key, value in changes.items():
            setattr(obj, key, value)
        return obj

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_location(ctx, location_id, **changes):
        location = get_scoped(ctx, Location, location_id, 'Location')
        if 'type' in changes and changes['type'] not in Location.TYPES:
            raise ValidationError(f"Unknown location type {changes['type']}")
        CatalogService._apply_changes(location, changes, CatalogService.LOCATION_FIELDS, 'Location')
        cache.delete_memoized(location_names_for_org, ctx.org_id)
        return location

    @staticmethod
    @retry_on_transient()
    @transactional
    def delete_location(ctx, location_id):
        """软删除地点，仍有在库或预留库存时不能删除"""
        location = get_scoped(ctx, Location, location_id, 'Location')
        stocked = Inventory.query.filter(
            Inventory.location_id == location.id,
            db.or_(Inventory.quantity != 0, Inventory.reserved_quantity != 0)).count()
        if stocked:
            raise ValidationError(f"Location {location.name} still holds stock for {stocked} item(s)")
        location.is_deleted = True
        cache.delete_memoized(location_names_for_org, ctx.org_id)
        logger.info("删除地点 %s", location.name)
        return location

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_supplier(ctx, supplier_id, **changes):
        supplier = get_scoped(ctx, Supplier, supplier_id, 'Supplier')
        return CatalogService._apply_changes(supplier, changes, CatalogService.SUPPLIER_FIELDS, 'Supplier')

    @staticmethod
    @retry_on_transient()
    @transactional
    def delete_supplier(ctx, supplier_id):
        """软删除供应商，关联了商品或有未完结采购单时不能删除"""
        supplier = get_scoped(ctx, Supplier, supplier_id, 'Supplier')
        if supplier.item_links.count():
            raise ValidationError(f"Supplier {supplier.name} is linked to items and cannot be deleted")
        open_orders = PurchaseOrder.for_org(ctx.org_id).filter(
            PurchaseOrder.supplier_id == supplier.id,
            PurchaseOrder.status.in_(CatalogService.OPEN_PO_STATUSES)).count()
        if open_orders:
            raise ValidationError(f"Supplier {supplier.name} has {open_orders} open purchase order(s)")
        supplier.is_deleted = True
        logger.info("删除供应商 %s", supplier.name)
        return supplier

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_customer(ctx, customer_id, **changes):
        customer = get_scoped(ctx, Customer, customer_id, 'Customer')
        return CatalogService._apply_changes(customer, changes, CatalogService.PARTNER_FIELDS, 'Customer')

    @staticmethod
    @retry_on_transient()
    @transactional
    def delete_customer(ctx, customer_id):
        """软删除客户，已有销售单的客户不能删除"""
        customer = get_scoped(ctx, Customer, customer_id, 'Customer')
        if SalesOrder.for_org(ctx.org_id).filter(SalesOrder.customer_id == customer.id).count():
            raise ValidationError(f"Customer {customer.name} has sales orders and cannot be deleted")
        customer.is_deleted = True
        logger.info("删除客户 %s", customer.name)
        return customer

    # --- 商品供应商 ---

    LINK_FIELDS = ('is_preferred', 'supplier_sku', 'lead_time', 'min_order_qty', 'unit_cost',
                   'last_purchase_date', 'notes')

    @staticmethod
    def _scoped_link(ctx, link_id):
        link = db.session.get(ItemSupplier, link_id)
        if not link or link.is_deleted:
            raise NotFound(f"Item supplier {link_id} not found")
        get_scoped(ctx, Item, link.item_id, 'Item')
        return link

    @staticmethod
    @retry_on_transient()
    @transactional
    def add_item_suppliers(ctx, item_id, supplier_ids):
        """为商品添加供应商，已关联的跳过"""
        item = get_scoped(ctx, Item, item_id, 'Item')
        existing = {link.supplier_id for link in ItemSupplier.query.filter_by(item_id=item.id)}
        added = []
        for supplier_id in dict.fromkeys(supplier_ids):
            supplier = get_scoped(ctx, Supplier, supplier_id, 'Supplier')
            if supplier.id in existing:
                continue
            link = ItemSupplier(item_id=item.id, supplier_id=supplier.id, is_preferred=False)
            db.session.add(link)
            added.append(link)
        return added

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_item_supplier(ctx, link_id, **changes):
        """更新采购信息，设为首选时取消该商品的其他首选供应商"""
        link = CatalogService._scoped_link(ctx, link_id)
        unknown = set(changes) - set(CatalogService.LINK_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown item supplier fields: {', '.join(sorted(unknown))}")
        for key in ('lead_time', 'min_order_qty'):
            if changes.get(key) is not None and changes[key] < 0:
                raise ValidationError(f"{key} must not be negative")
        if changes.get('unit_cost') is not None:
            changes['unit_cost'] = money(changes['unit_cost'], 'unit_cost')
            if changes['unit_cost'] < 0:
                raise ValidationError("unit_cost must not be negative")
        if changes.get('is_preferred'):
            db.session.execute(
                update(ItemSupplier)
                .where(ItemSupplier.item_id == link.item_id, ItemSupplier.id != link.id)
                .values(is_preferred=False)
                .execution_options(synchronize_session=False)
            )
        for key, value in changes.items():
            setattr(link, key, value)
        return link

    @staticmethod
    @retry_on_transient()
    @transactional
    def remove_item_supplier(ctx, link_id):
        """移除关联，返回所属商品"""
        link = CatalogService._scoped_link(ctx, link_id)
        item = link.item
        db.session.delete(link)
        return item

    @staticmethod
    def item_suppliers(ctx, item_id):
        """商品的供应商，首选在前"""
        item = get_scoped(ctx, Item, item_id, 'Item')
        return ItemSupplier.query.join(Supplier, Supplier.id == ItemSupplier.supplier_id) \
            .filter(ItemSupplier.item_id == item.id, Supplier.is_deleted.is_(False)) \
            .order_by(ItemSupplier.is_preferred.desc(), Supplier.name).all()

    # --- 查询 ---

    @staticmethod
    def list_items(ctx, search=None, active_only=False):
        query = Item.for_org(ctx.org_id)
        if search:
            query = query.filter(db.or_(Item.name.ilike(f'%{search}%'), Item.sku.ilike(f'%{search}%')))
        if active_only:
            query = query.filter(Item.is_active.is_(True))
        return query.order_by(Item.name).all()

    @staticmethod
    def list_locations(ctx):
        return Location.for_org(ctx.org_id).order_by(Location.name).all()

    @staticmethod
    def list_suppliers(ctx):
        return Supplier.for_org(ctx.org_id).order_by(Supplier.name).all()

    @staticmethod
    def list_customers(ctx):
        return Customer.for_org(ctx.org_id).order_by(Customer.name).all()

    @staticmethod
    def inventory_items(ctx, location_id=None):
        """
        库存列表：每个商品及其各地点的台账行
        :return: [{'item': Item, 'rows': [Inventory], 'quantity': int, 'available': int}]
        """
        result = []
        for item in Item.for_org(ctx.org_id).order_by(Item.name).all():
            rows = [r for r in item.inventories if not r.location.is_deleted
                    and (location_id is None or r.location_id == location_id)]
            result.append({
                'item': item,
                'rows': sorted(rows, key=lambda r: r.location.name),
                'quantity': sum(r.quantity for r in rows),
                'available': sum(r.available for r in rows),
            })
        return result

    @staticmethod
    def low_stock_items(ctx):
        return [i for i in Item.for_org(ctx.org_id).filter(Item.is_active.is_(True)).all()
                if i.is_low_stock]

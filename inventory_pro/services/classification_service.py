"""
商品分类信息服务
分类、品牌、计量单位、税率模板均按组织隔离，删除为软删除
仍被有效商品引用的分类信息不能删除
"""
import logging

from inventory_pro.exceptions import ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import Brand, Category, Item, TaxRate, Unit
from inventory_pro.pricing import MAX_TAX_RATE, money
from inventory_pro.services.catalog_service import get_scoped
from inventory_pro.utils.decorators import retry_on_transient, transactional
from inventory_pro.utils.validators import slugify

logger = logging.getLogger(__name__)


def _required(value, label):
    value = (value or '').strip()
    if not value:
        raise ValidationError(f"{label} is required")
    return value


def _unique_slug(ctx, model, slug, exclude_id=None):
    if not slug:
        raise ValidationError("Slug must contain letters or digits")
    query = model.for_org(ctx.org_id).filter(model.slug == slug)
    if exclude_id:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ValidationError(f"{model.__name__} {slug} already exists")
    return slug


def _soft_delete(ctx, model, obj_id, fk_column):
    obj = get_scoped(ctx, model, obj_id, model.__name__)
    in_use = Item.for_org(ctx.org_id).filter(fk_column == obj.id).count()
    if in_use:
        raise ValidationError(f"{model.__name__} is used by {in_use} item(s) and cannot be deleted")
    obj.is_deleted = True
    logger.info("删除%s %s", model.__name__, obj.id)
    return obj


class ClassificationService:
    """分类 / 品牌 / 单位 / 税率"""

    # --- 分类 ---

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_category(ctx, name, slug=None, description=None):
        name = _required(name, 'Category name')
        category = Category(org_id=ctx.org_id, name=name, description=description,
                            slug=_unique_slug(ctx, Category, slugify(slug or name)))
        db.session.add(category)
        return category

    @staticmethod
    @retry_on_transient()
    @transactional
    def update_category(ctx, category_id, name=None, slug=None, description=None):
        category = get_scoped(ctx, Category, category_id, 'Category')
        if name is not None:
            category.name = _required(name, 'Category name')
        if slug is not None:
            category.slug = _unique_slug(ctx, Category, slugify(slug), exclude_id=category.id)
        if description is not None:
            category.description = description
        return category

    @staticmethod
    @retry_on_transient()
    @transactional
    def delete_category(ctx, category_id):
        return _soft_delete(ctx, Category, category_id, Item.category_id)

    @staticmethod
    def list_categories(ctx):
        return Category.for_org(ctx.org_id).order_by(Category.name).all()

    @staticmethod
    def categories_with_items(ctx):
        """
        POS / 目录页按分类分组的有效商品，首组为全部商品
        :return: [{'id', 'name', 'slug', 'items'}]
        """
        active = Item.for_org(ctx.org_id).filter(Item.is_active.is_(True))
        groups = [{'id': None, 'name': '全部商品', 'slug': 'all-products',
                   'items': active.order_by(Item.name).all()}]
        for category in ClassificationService.list_categories(ctx):
            groups.append({
                'id': category.id,
                'name': category.name,
                'slug': category.slug,
                'items': active.filter(Item.category_id == category.id).order_by(Item.name).all(),
            })
        return groups

    # --- 品牌 ---

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_brand(ctx, name, slug=None):
        name = _required(name, 'Brand name')
        brand = Brand(org_id=ctx.org_id, name=name,
                      slug=_unique_slug(ctx, Brand, slugify(slug or name)))
        db.session.add(brand)
        return brand

    @staticmethod
    @retry_on_transient()
    @transactional
    def delete_brand(ctx, brand_id):
        return _soft_delete(ctx, Brand, brand_id, Item.brand_id)

    @staticmethod
    def list_brands(ctx):
        return Brand.for_org(ctx.org_id).order_by(Brand.name).all()

    # --- 计量单位 ---

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_unit(ctx, name, symbol):
        unit = Unit(org_id=ctx.org_id, name=_required(name, 'Unit name'),
                    symbol=_required(symbol, 'Unit symbol'))
        db.session.add(unit)
        return unit

    @staticmethod
    @retry_on_transient()
    @transactional
    def delete_unit(ctx, unit_id):
        return _soft_delete(ctx, Unit, unit_id, Item.unit_id)

    @staticmethod
    def list_units(ctx):
        return Unit.for_org(ctx.org_id).order_by(Unit.name).all()

    # --- 税率模板 ---

    @staticmethod
    @retry_on_transient()
    @transactional
    def create_tax_rate(ctx, name, rate):
        rate = money(rate, 'rate')
        if rate < 0 or rate > MAX_TAX_RATE:
            raise ValidationError(f"Tax rate must be between 0 and {MAX_TAX_RATE}, got {rate}")
        tax_rate = TaxRate(org_id=ctx.org_id, name=_required(name, 'Tax rate name'), rate=rate)
        db.session.add(tax_rate)
        return tax_rate

    @staticmethod
    @retry_on_transient()
    @transactional
    def delete_tax_rate(ctx, tax_rate_id):
        return _soft_delete(ctx, TaxRate, tax_rate_id, Item.tax_rate_id)

    @staticmethod
    def list_tax_rates(ctx):
        return TaxRate.for_org(ctx.org_id).order_by(TaxRate.rate).all()

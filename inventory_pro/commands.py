import random
from decimal import Decimal

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from inventory_pro.extensions import db
from inventory_pro.models import (Inventory, InventoryLog, Item, Location, Organisation,
                                  PurchaseOrder, Role, SalesOrder, User)
from inventory_pro.schemas import ItemRequest
from inventory_pro.services.catalog_service import CatalogService
from inventory_pro.services.classification_service import ClassificationService
from inventory_pro.tenancy import TenantContext
from inventory_pro.utils.fake_gen import InventoryProvider, fake
from inventory_pro.utils.permissions import ROLE_PERMISSIONS, ensure_permissions


@click.command('status')
@with_appcontext
def status():
    """
    [验证指令] 查看当前数据库中的数据统计。
    """
    click.echo(click.style('📊 Inventory Pro 数据库状态:', fg='cyan', bold=True))

    try:
        counts = [
            ('组织 (Organisations)', Organisation.query.count()),
            ('用户 (Users)', User.query.count()),
            ('商品 (Items)', Item.query.count()),
            ('地点 (Locations)', Location.query.count()),
            ('台账行 (Inventory)', Inventory.query.count()),
            ('采购单 (Purchase orders)', PurchaseOrder.query.count()),
            ('销售单 (Sales orders)', SalesOrder.query.count()),
            ('库存流水 (Logs)', InventoryLog.query.count()),
        ]
        for label, count in counts:
            click.echo(f" - {label}: \t{count}")

        if counts[1][1] > 0:
            click.echo(click.style('✔ 数据库连接正常，数据已存在。', fg='green'))
        else:
            click.echo(click.style('⚠ 数据库为空，请运行 flask forge 生成数据。', fg='yellow'))

    except SQLAlchemyError as e:
        click.echo(click.style(f'✘ 数据库读取失败: {e}', fg='red'))
        click.echo("请检查是否执行了 'flask db upgrade'")


@click.command('forge')
@click.option('--items', default=30, help='商品数量 (默认30)')
@click.option('--drop/--no-drop', default=True, help='是否清空现有数据')
@with_appcontext
def forge(items, drop):
    """
    [演示数据] 初始化组织、用户、地点、往来单位与商品。
    警告：默认会清除数据库中的现有数据！
    """
    click.echo(click.style('⚡ 正在生成 Inventory Pro 演示数据...', fg='cyan', bold=True))

    if drop:
        db.drop_all()
    db.create_all()

    click.echo('正在构建组织与权限...')
    org, admin = init_auth()
    ctx = TenantContext.from_user(admin)

    click.echo('正在创建地点与往来单位...')
    locations = init_locations(ctx)
    suppliers = init_partners(ctx)

    click.echo('正在创建分类、品牌、单位与税率模板...')
    classification = init_classification(ctx)

    click.echo(f'正在创建 {items} 个商品并写入期初库存...')
    init_items(ctx, locations, items, classification, suppliers)

    click.echo(click.style('✔ 演示数据构建完成！', fg='green', bold=True))
    click.echo("管理员账号: admin@inventorypro.com / 密码: admin")


def init_auth():
    """组织、角色、管理员与普通员工"""
    org = Organisation(name=fake.company(), country='CN', currency='CNY')
    db.session.add(org)
    db.session.flush()

    perms = ensure_permissions()
    roles = {'Admin': Role(org_id=org.id, name='Admin', is_admin=True)}
    for name, perm_names in ROLE_PERMISSIONS.items():
        roles[name] = Role(org_id=org.id, name=name, permissions=[perms[p] for p in perm_names])
    db.session.add_all(roles.values())

    admin = User(org_id=org.id, email='admin@inventorypro.com', name='Administrator',
                 password='admin', role=roles['Admin'], is_admin=True)
    db.session.add(admin)
    for i in range(5):
        db.session.add(User(
            org_id=org.id,
            email=f"staff{i}@inventorypro.com",
            name=fake.name(),
            password='password',
            role=roles['Manager'] if i == 0 else roles['Clerk'],
        ))
    db.session.commit()
    return org, admin


def init_locations(ctx):
    locations = []
    for name, type_ in InventoryProvider.location_names:
        ok, location = CatalogService.create_location(ctx, name, type_, address=fake.address())
        if not ok:
            raise click.ClickException(location.message)
        locations.append(location)
    return locations


def init_partners(ctx, count=8):
    """返回创建的供应商"""
    suppliers = []
    for _ in range(count):
        ok, supplier = CatalogService.create_supplier(
            ctx, fake.supplier_company(),
            contact_person=fake.name(),
            email=fake.company_email(),
            phone=fake.phone_number(),
            address=fake.address(),
            payment_terms=random.choice(['Net 30', 'Net 60', '货到付款']),
        )
        if ok:
            suppliers.append(supplier)
        CatalogService.create_customer(
            ctx, fake.name(),
            contact_person=fake.name(),
            email=fake.email(),
            phone=fake.phone_number(),
            address=fake.address(),
        )
    return suppliers


def init_classification(ctx):
    """分类、品牌、单位与税率模板"""
    created = {'categories': [], 'brands': [], 'units': [], 'tax_rates': []}
    for name in InventoryProvider.category_names:
        ok, category = ClassificationService.create_category(ctx, name)
        if ok:
            created['categories'].append(category)
    for name in InventoryProvider.brand_names:
        ok, brand = ClassificationService.create_brand(ctx, name)
        if ok:
            created['brands'].append(brand)
    for name, symbol in InventoryProvider.units:
        ok, unit = ClassificationService.create_unit(ctx, name, symbol)
        if ok:
            created['units'].append(unit)
    for name, rate in InventoryProvider.tax_templates:
        ok, tax_rate = ClassificationService.create_tax_rate(ctx, name, rate)
        if ok:
            created['tax_rates'].append(tax_rate)
    return created


def init_items(ctx, locations, count, classification, suppliers):
    stocked = [loc for loc in locations if loc.type != Location.TYPE_VIRTUAL]
    for i in range(1, count + 1):
        cost = Decimal(random.randint(500, 50000)) / 100
        request = ItemRequest(
            sku=fake.sku_code(i),
            name=fake.product_name(),
            cost_price=cost,
            selling_price=(cost * Decimal('1.35')).quantize(Decimal('0.01')),
            category_id=random.choice(classification['categories']).id,
            brand_id=random.choice(classification['brands']).id,
            unit_id=random.choice(classification['units']).id,
            tax_rate_id=random.choice(classification['tax_rates']).id,
            min_stock_level=random.randint(5, 20),
            max_stock_level=random.randint(200, 500),
            description=fake.sentence(nb_words=12),
            opening_stock={loc.id: random.randint(0, 120) for loc in stocked},
        )
        ok, result = CatalogService.create_item(ctx, request)
        if not ok:
            click.echo(click.style(f'  ✘ {request.sku}: {result.message}', fg='yellow'))
            continue
        linked = random.sample(suppliers, k=min(2, len(suppliers)))
        ok, links = CatalogService.add_item_suppliers(ctx, result.id, [s.id for s in linked])
        if ok and links:
            CatalogService.update_item_supplier(
                ctx, links[0].id, is_preferred=True, lead_time=random.randint(2, 14),
                unit_cost=cost, supplier_sku=f'{request.sku}-S')

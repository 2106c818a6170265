from decimal import Decimal

import pytest

from inventory_pro import create_app
from inventory_pro.extensions import db
from inventory_pro.models import Organisation, Role, User
from inventory_pro.schemas import ItemRequest
from inventory_pro.services.catalog_service import CatalogService
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.tenancy import TenantContext
from inventory_pro.utils.permissions import ROLE_PERMISSIONS, ensure_permissions


@pytest.fixture
def app():
    app = create_app('testing')
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


def _make_org(name, email):
    org = Organisation(name=name, country='CN', currency='CNY')
    db.session.add(org)
    db.session.flush()

    user = User(org_id=org.id, email=email, name=name + ' Admin',
                password='secret', is_admin=True)
    db.session.add(user)
    db.session.commit()
    return org, user


@pytest.fixture
def org_user(app):
    return _make_org('Acme', 'admin@acme.com')


@pytest.fixture
def user(org_user):
    return org_user[1]


@pytest.fixture
def ctx(user):
    return TenantContext.from_user(user)


@pytest.fixture
def locations(ctx):
    """两个地点：A 仓库，B 门店"""
    ok_a, a = CatalogService.create_location(ctx, 'Warehouse A')
    ok_b, b = CatalogService.create_location(ctx, 'Shop B', type='SHOP')
    assert ok_a and ok_b
    return {'A': a, 'B': b}


@pytest.fixture
def supplier(ctx):
    ok, supplier = CatalogService.create_supplier(
        ctx, 'Global Parts', email='sales@globalparts.com', contact_person='Li Lei', payment_terms='Net 30')
    assert ok
    return supplier


@pytest.fixture
def customer(ctx):
    ok, customer = CatalogService.create_customer(ctx, 'Han Meimei', email='han@customer.com')
    assert ok
    return customer


@pytest.fixture
def item(ctx, locations):
    ok, item = CatalogService.create_item(ctx, ItemRequest(
        sku='WIDGET-1', name='Widget', cost_price=Decimal('6.00'),
        selling_price=Decimal('10.00'), tax_rate=Decimal('13'), min_stock_level=5))
    assert ok, item
    return item


@pytest.fixture
def gadget(ctx, locations):
    ok, item = CatalogService.create_item(ctx, ItemRequest(
        sku='GADGET-1', name='Gadget', cost_price=Decimal('2.50'), selling_price=Decimal('4.99')))
    assert ok, item
    return item


@pytest.fixture
def stock(ctx):
    """直接在台账上放入库存"""
    def put(item, location, quantity):
        LedgerService.apply_adjustment(ctx, item.id, location.id, quantity, reference='TEST')
        db.session.commit()
    return put


@pytest.fixture
def row(ctx):
    """读取最新的台账行"""
    def get(item, location):
        db.session.expire_all()
        return LedgerService.get_row(ctx, item.id, location.id)
    return get


@pytest.fixture
def other_org(app):
    """另一个租户：用于验证数据隔离"""
    org, user = _make_org('Other Corp', 'admin@othercorp.com')
    other_ctx = TenantContext.from_user(user)
    ok, location = CatalogService.create_location(other_ctx, 'Other Warehouse')
    assert ok
    ok, item = CatalogService.create_item(other_ctx, ItemRequest(sku='WIDGET-1', name='Other Widget'))
    assert ok
    return {'ctx': other_ctx, 'location': location, 'item': item}


@pytest.fixture
def client(app, user):
    client = app.test_client()
    resp = client.post('/auth/login', data={'email': 'admin@acme.com', 'password': 'secret'})
    assert resp.status_code == 302
    return client


@pytest.fixture
def clerk_client(app, org_user):
    """普通店员：没有审批与报表权限"""
    org, _ = org_user
    perms = ensure_permissions()
    role = Role(org_id=org.id, name='Clerk', permissions=[perms[p] for p in ROLE_PERMISSIONS['Clerk']])
    clerk = User(org_id=org.id, email='clerk@acme.com', name='Clerk', password='secret', role=role)
    db.session.add_all([role, clerk])
    db.session.commit()

    client = app.test_client()
    client.post('/auth/login', data={'email': 'clerk@acme.com', 'password': 'secret'})
    return client

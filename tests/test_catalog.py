from decimal import Decimal

import pytest

from inventory_pro.exceptions import NotFound, ValidationError
from inventory_pro.extensions import db
from inventory_pro.models import Inventory, ItemSupplier
from inventory_pro.schemas import ItemRequest, OrderLineRequest, PurchaseOrderRequest, SalesOrderRequest
from inventory_pro.services.catalog_service import CatalogService
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.services.purchase_service import PurchaseService
from inventory_pro.services.sales_service import SalesService


def test_item_gets_a_row_per_location_with_opening_stock(ctx, locations, row):
    a, b = locations['A'], locations['B']
    ok, item = CatalogService.create_item(ctx, ItemRequest(
        sku='bolt-8', name='Bolt 8mm', selling_price=Decimal('0.50'), opening_stock={a.id: 25}))
    assert ok, item
    assert item.sku == 'BOLT-8'
    assert Inventory.query.filter_by(item_id=item.id).count() == 2
    assert row(item, a).quantity == 25
    assert row(item, b).quantity == 0
    assert LedgerService.movements(ctx, item_id=item.id)[0].reference == 'OPEN-BOLT-8'


def test_duplicate_sku_is_rejected_case_insensitively(ctx, item):
    ok, error = CatalogService.create_item(ctx, ItemRequest(sku='widget-1', name='Another widget'))
    assert not ok
    assert isinstance(error, ValidationError)


def test_same_sku_allowed_in_another_organisation(item, other_org):
    assert other_org['item'].sku == item.sku
    assert other_org['item'].org_id != item.org_id


def test_negative_price_is_rejected(ctx, locations):
    ok, error = CatalogService.create_item(ctx, ItemRequest(sku='X-1', name='X', selling_price=Decimal('-1')))
    assert not ok
    assert isinstance(error, ValidationError)


def test_missing_name_is_rejected(ctx):
    ok, error = CatalogService.create_item(ctx, ItemRequest(sku='X-2', name='  '))
    assert not ok
    assert isinstance(error, ValidationError)


def test_new_location_gets_rows_for_existing_items(ctx, item, gadget):
    ok, location = CatalogService.create_location(ctx, 'Outlet C', type='SHOP', address='1 Main St')
    assert ok, location
    assert Inventory.query.filter_by(location_id=location.id).count() == 2
    assert LedgerService.get_available(ctx, item.id, location.id) == 0


def test_location_type_must_be_known(ctx):
    ok, error = CatalogService.create_location(ctx, 'Moon Base', type='ORBIT')
    assert not ok
    assert isinstance(error, ValidationError)


def test_update_item(ctx, item):
    ok, updated = CatalogService.update_item(ctx, item.id, selling_price=Decimal('12.50'), is_active=False)
    assert ok
    assert updated.selling_price == Decimal('12.50')
    assert CatalogService.list_items(ctx, active_only=True) == []

    ok, error = CatalogService.update_item(ctx, item.id, sku='NEW')
    assert not ok
    assert isinstance(error, ValidationError)

    ok, error = CatalogService.update_item(ctx, item.id, cost_price=Decimal('-2'))
    assert not ok


def test_lists_are_scoped_to_organisation(ctx, item, supplier, customer, locations, other_org):
    assert [i.id for i in CatalogService.list_items(ctx)] == [item.id]
    assert [loc.name for loc in CatalogService.list_locations(ctx)] == ['Shop B', 'Warehouse A']
    assert [s.name for s in CatalogService.list_suppliers(ctx)] == ['Global Parts']
    assert CatalogService.list_customers(other_org['ctx']) == []

    ok, error = CatalogService.update_item(other_org['ctx'], item.id, name='Stolen')
    assert not ok
    assert error.code == 404


def test_search_items(ctx, item, gadget):
    assert [i.sku for i in CatalogService.list_items(ctx, search='gadg')] == ['GADGET-1']
    assert [i.sku for i in CatalogService.list_items(ctx, search='WIDGET')] == ['WIDGET-1']


def test_inventory_items_and_low_stock(ctx, item, gadget, locations, stock):
    stock(item, locations['A'], 3)
    stock(item, locations['B'], 1)
    stock(gadget, locations['A'], 2)

    summary = {entry['item'].sku: entry for entry in CatalogService.inventory_items(ctx)}
    assert summary['WIDGET-1']['quantity'] == 4
    assert [r.location.name for r in summary['WIDGET-1']['rows']] == ['Shop B', 'Warehouse A']

    only_b = {entry['item'].sku: entry for entry in CatalogService.inventory_items(ctx, locations['B'].id)}
    assert only_b['WIDGET-1']['quantity'] == 1

    # WIDGET 最低库存 5，GADGET 未设置
    assert [i.sku for i in CatalogService.low_stock_items(ctx)] == ['WIDGET-1']


def test_update_location(ctx, locations):
    ok, location = CatalogService.update_location(
        ctx, locations['B'].id, name='Shop B (Mall)', type='VIRTUAL', address='2 Mall Rd')
    assert ok, location
    assert (location.name, location.type, location.address) == ('Shop B (Mall)', 'VIRTUAL', '2 Mall Rd')

    ok, error = CatalogService.update_location(ctx, locations['B'].id, type='ORBIT')
    assert not ok
    assert isinstance(error, ValidationError)
    ok, error = CatalogService.update_location(ctx, locations['B'].id, org_id=99)
    assert not ok
    ok, error = CatalogService.update_location(ctx, locations['B'].id, name=' ')
    assert not ok


def test_location_with_stock_cannot_be_deleted(ctx, item, locations, stock):
    a = locations['A']
    stock(item, a, 3)
    ok, error = CatalogService.delete_location(ctx, a.id)
    assert not ok
    assert isinstance(error, ValidationError)

    LedgerService.apply_adjustment(ctx, item.id, a.id, -3, reference='EMPTY')
    db.session.commit()
    ok, _ = CatalogService.delete_location(ctx, a.id)
    assert ok
    assert [loc.name for loc in CatalogService.list_locations(ctx)] == ['Shop B']
    entry = CatalogService.inventory_items(ctx)[0]
    assert [r.location.name for r in entry['rows']] == ['Shop B']

    ok, error = CatalogService.update_location(ctx, a.id, name='Back again')
    assert not ok
    assert isinstance(error, NotFound)


def test_update_supplier_and_customer(ctx, supplier, customer):
    ok, updated = CatalogService.update_supplier(ctx, supplier.id, phone='021-5555', payment_terms='Net 60')
    assert ok, updated
    assert (updated.phone, updated.payment_terms) == ('021-5555', 'Net 60')

    ok, updated = CatalogService.update_customer(ctx, customer.id, address='8 Garden St')
    assert ok, updated
    assert updated.address == '8 Garden St'

    # 客户没有付款条件字段
    ok, error = CatalogService.update_customer(ctx, customer.id, payment_terms='Net 30')
    assert not ok
    assert isinstance(error, ValidationError)


def test_supplier_with_links_or_open_orders_cannot_be_deleted(ctx, supplier, item, locations):
    ok, links = CatalogService.add_item_suppliers(ctx, item.id, [supplier.id])
    assert ok and len(links) == 1
    ok, error = CatalogService.delete_supplier(ctx, supplier.id)
    assert not ok
    assert isinstance(error, ValidationError)

    ok, _ = CatalogService.remove_item_supplier(ctx, links[0].id)
    assert ok
    ok, po = PurchaseService.create_purchase_order(ctx, PurchaseOrderRequest(
        supplier_id=supplier.id, delivery_location_id=locations['A'].id,
        lines=[OrderLineRequest(item_id=item.id, quantity=1, unit_price=Decimal('6.00'))]))
    assert ok, po
    ok, error = CatalogService.delete_supplier(ctx, supplier.id)
    assert not ok

    ok, _ = PurchaseService.cancel(ctx, po.id)
    assert ok
    ok, _ = CatalogService.delete_supplier(ctx, supplier.id)
    assert ok
    assert CatalogService.list_suppliers(ctx) == []


def test_customer_with_orders_cannot_be_deleted(ctx, customer, item, locations):
    ok, order = SalesService.create_sales_order(ctx, SalesOrderRequest(
        location_id=locations['A'].id, customer_id=customer.id,
        lines=[OrderLineRequest(item_id=item.id, quantity=1, unit_price=Decimal('10.00'))]))
    assert ok, order
    ok, error = CatalogService.delete_customer(ctx, customer.id)
    assert not ok
    assert isinstance(error, ValidationError)

    ok, walk_in = CatalogService.create_customer(ctx, 'Walk In')
    assert ok
    ok, _ = CatalogService.delete_customer(ctx, walk_in.id)
    assert ok
    assert [c.name for c in CatalogService.list_customers(ctx)] == ['Han Meimei']


def test_add_item_suppliers_skips_existing_links(ctx, item, supplier):
    ok, backup = CatalogService.create_supplier(ctx, 'Backup Supply')
    assert ok
    ok, added = CatalogService.add_item_suppliers(ctx, item.id, [supplier.id])
    assert ok and len(added) == 1

    ok, added = CatalogService.add_item_suppliers(ctx, item.id, [supplier.id, backup.id, backup.id])
    assert ok
    assert [link.supplier_id for link in added] == [backup.id]
    assert ItemSupplier.query.filter_by(item_id=item.id).count() == 2


def test_only_one_preferred_supplier_per_item(ctx, item, supplier):
    ok, backup = CatalogService.create_supplier(ctx, 'Backup Supply')
    assert ok
    ok, (main_link, backup_link) = CatalogService.add_item_suppliers(ctx, item.id, [supplier.id, backup.id])
    assert ok

    ok, link = CatalogService.update_item_supplier(
        ctx, main_link.id, is_preferred=True, lead_time=7, unit_cost=Decimal('5.555'))
    assert ok, link
    assert link.unit_cost == Decimal('5.56')
    ok, _ = CatalogService.update_item_supplier(ctx, backup_link.id, is_preferred=True)
    assert ok

    db.session.expire_all()
    links = CatalogService.item_suppliers(ctx, item.id)
    assert [(link.supplier.name, link.is_preferred) for link in links] == [
        ('Backup Supply', True), ('Global Parts', False)]


@pytest.mark.parametrize('changes', [
    {'lead_time': -1},
    {'min_order_qty': -5},
    {'unit_cost': Decimal('-0.01')},
    {'item_id': 2},
])
def test_item_supplier_changes_are_validated(ctx, item, supplier, changes):
    ok, (link,) = CatalogService.add_item_suppliers(ctx, item.id, [supplier.id])
    assert ok
    ok, error = CatalogService.update_item_supplier(ctx, link.id, **changes)
    assert not ok
    assert isinstance(error, ValidationError)


def test_item_supplier_links_are_scoped(ctx, item, supplier, other_org):
    ok, (link,) = CatalogService.add_item_suppliers(ctx, item.id, [supplier.id])
    assert ok
    ok, error = CatalogService.remove_item_supplier(other_org['ctx'], link.id)
    assert not ok
    assert isinstance(error, NotFound)

    ok, error = CatalogService.add_item_suppliers(other_org['ctx'], other_org['item'].id, [supplier.id])
    assert not ok
    assert isinstance(error, NotFound)

    ok, parent = CatalogService.remove_item_supplier(ctx, link.id)
    assert ok and parent.id == item.id
    assert CatalogService.item_suppliers(ctx, item.id) == []

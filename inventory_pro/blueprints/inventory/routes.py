import logging
from datetime import datetime

from flask import render_template, request, flash, redirect, url_for, send_file, jsonify
from flask_login import login_required
from wtforms.validators import ValidationError as FormValidationError

from inventory_pro.blueprints.inventory import inventory_bp
from inventory_pro.blueprints.inventory.forms import (AdjustmentForm, BrandForm, CategoryForm, ItemForm,
                                                      ItemSupplierAddForm, ItemSupplierForm, LocationForm,
                                                      QuickTransferForm, SearchForm, StockCountForm,
                                                      TaxRateForm, TransferForm, UnitForm)
from inventory_pro.models import Adjustment, Item, Location, Transfer
from inventory_pro.schemas import AdjustmentLineRequest, AdjustmentRequest, ItemRequest, TransferRequest
from inventory_pro.services.adjustment_service import AdjustmentService
from inventory_pro.services.catalog_service import CatalogService, get_scoped
from inventory_pro.services.classification_service import ClassificationService
from inventory_pro.services.export_service import ExportService
from inventory_pro.services.ledger_service import LedgerService
from inventory_pro.services.transfer_service import TransferService
from inventory_pro.utils.decorators import permission_required
from inventory_pro.utils.permissions import current_tenant
from inventory_pro.utils.validators import parse_line_rows, to_int

logger = logging.getLogger(__name__)


def _location_choices(ctx, blank=None):
    choices = [(loc.id, loc.name) for loc in CatalogService.list_locations(ctx)]
    if blank:
        choices.insert(0, (0, blank))
    return choices


def _item_choices(ctx):
    return [(i.id, f'{i.sku} - {i.name}') for i in CatalogService.list_items(ctx, active_only=True)]


@inventory_bp.route('/')
@login_required
@permission_required('items.view')
def index():
    """
    库存列表页
    按商品展示各地点的在库、预留与可用数量
    """
    ctx = current_tenant()
    search_form = SearchForm(request.args)
    search_form.location_id.choices = _location_choices(ctx, blank='全部地点')

    search_keyword = request.args.get('q', '').strip()
    location_id = request.args.get('location_id', 0, type=int) or None

    entries = CatalogService.inventory_items(ctx, location_id)
    if search_keyword:
        keyword = search_keyword.lower()
        entries = [e for e in entries
                   if keyword in e['item'].name.lower() or keyword in e['item'].sku.lower()]

    return render_template(
        'inventory/index.html',
        entries=entries,
        search_form=search_form,
        search_keyword=search_keyword,
        location_id=location_id,
    )


def _optional_choices(objects, label=lambda o: o.name):
    return [(0, '-')] + [(o.id, label(o)) for o in objects]


def _classification_choices(ctx, form):
    form.category_id.choices = _optional_choices(ClassificationService.list_categories(ctx))
    form.brand_id.choices = _optional_choices(ClassificationService.list_brands(ctx))
    form.unit_id.choices = _optional_choices(ClassificationService.list_units(ctx),
                                             lambda u: f'{u.name} ({u.symbol})')
    form.tax_rate_id.choices = _optional_choices(ClassificationService.list_tax_rates(ctx),
                                                 lambda t: f'{t.name} ({t.rate}%)')


@inventory_bp.route('/items/new', methods=['GET', 'POST'])
@login_required
@permission_required('items.create')
def create_item():
    ctx = current_tenant()
    form = ItemForm()
    _classification_choices(ctx, form)
    locations = CatalogService.list_locations(ctx)

    if form.validate_on_submit():
        # 期初库存：每个地点一个输入框 opening_<location_id>
        opening_stock = {}
        for loc in locations:
            qty = request.form.get(f'opening_{loc.id}', type=int)
            if qty:
                opening_stock[loc.id] = qty

        success, result = CatalogService.create_item(ctx, ItemRequest(
            sku=form.sku.data,
            name=form.name.data,
            barcode=form.barcode.data or None,
            cost_price=form.cost_price.data or 0,
            selling_price=form.selling_price.data or 0,
            tax_rate=form.tax_rate.data or 0,
            min_stock_level=form.min_stock_level.data or 0,
            max_stock_level=form.max_stock_level.data,
            is_serial_tracked=form.is_serial_tracked.data,
            category_id=form.category_id.data or None,
            brand_id=form.brand_id.data or None,
            unit_id=form.unit_id.data or None,
            tax_rate_id=form.tax_rate_id.data or None,
            description=form.description.data,
            opening_stock=opening_stock,
        ))
        if success:
            flash(f'商品 {result.sku} 创建成功！', 'success')
            return redirect(url_for('inventory.index'))
        flash(f'创建失败: {result.message}', 'danger')

    return render_template('inventory/item_form.html', form=form, locations=locations)


@inventory_bp.route('/locations', methods=['GET', 'POST'])
@login_required
@permission_required('items.update')
def locations():
    ctx = current_tenant()
    form = LocationForm()
    if form.validate_on_submit():
        success, result = CatalogService.create_location(
            ctx, form.name.data, form.type.data, address=form.address.data or None)
        if success:
            flash(f'地点 {result.name} 已创建', 'success')
            return redirect(url_for('inventory.locations'))
        flash(result.message, 'danger')
    return render_template('inventory/locations.html', form=form,
                           locations=CatalogService.list_locations(ctx))


@inventory_bp.route('/locations/<int:location_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required('items.update')
def edit_location(location_id):
    ctx = current_tenant()
    location = get_scoped(ctx, Location, location_id, 'Location')
    form = LocationForm(obj=location)
    form.submit.label.text = '保存地点'
    if form.validate_on_submit():
        success, result = CatalogService.update_location(
            ctx, location.id, name=form.name.data, type=form.type.data, address=form.address.data or None)
        if success:
            flash(f'地点 {result.name} 已更新', 'success')
            return redirect(url_for('inventory.locations'))
        flash(result.message, 'danger')
    return render_template('inventory/location_form.html', form=form, location=location)


@inventory_bp.route('/locations/<int:location_id>/delete', methods=['POST'])
@login_required
@permission_required('items.update')
def delete_location(location_id):
    success, result = CatalogService.delete_location(current_tenant(), location_id)
    if success:
        flash(f'地点 {result.name} 已删除', 'success')
    else:
        flash(f'删除失败: {result.message}', 'danger')
    return redirect(url_for('inventory.locations'))


# --- 分类信息 ---

CLASSIFICATION_KINDS = {
    'category': ClassificationService.delete_category,
    'brand': ClassificationService.delete_brand,
    'unit': ClassificationService.delete_unit,
    'tax': ClassificationService.delete_tax_rate,
}


@inventory_bp.route('/classification', methods=['GET', 'POST'])
@login_required
@permission_required('items.update')
def classification():
    """分类、品牌、单位与税率模板维护 (一页四个表单)"""
    ctx = current_tenant()
    forms = {
        'category': CategoryForm(prefix='category'),
        'brand': BrandForm(prefix='brand'),
        'unit': UnitForm(prefix='unit'),
        'tax': TaxRateForm(prefix='tax'),
    }
    creators = {
        'category': lambda f: ClassificationService.create_category(
            ctx, f.name.data, slug=f.slug.data or None, description=f.description.data or None),
        'brand': lambda f: ClassificationService.create_brand(ctx, f.name.data, slug=f.slug.data or None),
        'unit': lambda f: ClassificationService.create_unit(ctx, f.name.data, f.symbol.data),
        'tax': lambda f: ClassificationService.create_tax_rate(ctx, f.name.data, f.rate.data),
    }

    if request.method == 'POST':
        for kind, form in forms.items():
            if not form.submit.data:
                continue
            if form.validate():
                success, result = creators[kind](form)
                if success:
                    flash(f'{result.name} 已创建', 'success')
                    return redirect(url_for('inventory.classification'))
                flash(f'创建失败: {result.message}', 'danger')

    return render_template(
        'inventory/classification.html',
        forms=forms,
        categories=ClassificationService.list_categories(ctx),
        brands=ClassificationService.list_brands(ctx),
        units=ClassificationService.list_units(ctx),
        tax_rates=ClassificationService.list_tax_rates(ctx),
    )


@inventory_bp.route('/classification/<kind>/<int:obj_id>/delete', methods=['POST'])
@login_required
@permission_required('items.update')
def delete_classification(kind, obj_id):
    if kind not in CLASSIFICATION_KINDS:
        flash('未知类型', 'danger')
        return redirect(url_for('inventory.classification'))
    success, result = CLASSIFICATION_KINDS[kind](current_tenant(), obj_id)
    if success:
        flash(f'{result.name} 已删除', 'success')
    else:
        flash(f'删除失败: {result.message}', 'danger')
    return redirect(url_for('inventory.classification'))


# --- 商品供应商 ---

@inventory_bp.route('/items/<int:item_id>/suppliers', methods=['GET', 'POST'])
@login_required
@permission_required('items.update')
def item_suppliers(item_id):
    ctx = current_tenant()
    item = get_scoped(ctx, Item, item_id, 'Item')
    links = CatalogService.item_suppliers(ctx, item.id)
    linked = {link.supplier_id for link in links}

    form = ItemSupplierAddForm()
    form.supplier_ids.choices = [(s.id, s.name) for s in CatalogService.list_suppliers(ctx)
                                 if s.id not in linked]
    if form.validate_on_submit():
        success, result = CatalogService.add_item_suppliers(ctx, item.id, form.supplier_ids.data)
        if success:
            flash(f'已添加 {len(result)} 个供应商', 'success')
            return redirect(url_for('inventory.item_suppliers', item_id=item.id))
        flash(f'添加失败: {result.message}', 'danger')

    return render_template('inventory/item_suppliers.html', item=item, form=form,
                           links=[(link, ItemSupplierForm(obj=link, prefix=f'link{link.id}'))
                                  for link in links])


@inventory_bp.route('/items/suppliers/<int:link_id>', methods=['POST'])
@login_required
@permission_required('items.update')
def update_item_supplier(link_id):
    ctx = current_tenant()
    form = ItemSupplierForm(prefix=f'link{link_id}')
    if not form.validate():
        flash('采购信息格式不正确', 'danger')
        return redirect(request.referrer or url_for('inventory.index'))
    success, result = CatalogService.update_item_supplier(
        ctx, link_id,
        is_preferred=form.is_preferred.data,
        supplier_sku=form.supplier_sku.data or None,
        lead_time=form.lead_time.data,
        min_order_qty=form.min_order_qty.data,
        unit_cost=form.unit_cost.data,
        notes=form.notes.data or None,
    )
    if not success:
        flash(f'保存失败: {result.message}', 'danger')
        return redirect(request.referrer or url_for('inventory.index'))
    flash(f'{result.supplier.name} 采购信息已保存', 'success')
    return redirect(url_for('inventory.item_suppliers', item_id=result.item_id))


@inventory_bp.route('/items/suppliers/<int:link_id>/remove', methods=['POST'])
@login_required
@permission_required('items.update')
def remove_item_supplier(link_id):
    success, result = CatalogService.remove_item_supplier(current_tenant(), link_id)
    if not success:
        flash(f'移除失败: {result.message}', 'danger')
        return redirect(request.referrer or url_for('inventory.index'))
    flash('供应商已移除', 'success')
    return redirect(url_for('inventory.item_suppliers', item_id=result.id))


@inventory_bp.route('/movements')
@login_required
@permission_required('items.view')
def movements():
    """库存流水"""
    ctx = current_tenant()
    logs = LedgerService.movements(
        ctx,
        item_id=request.args.get('item_id', type=int),
        location_id=request.args.get('location_id', type=int),
        limit=request.args.get('limit', 100, type=int),
    )
    return render_template('inventory/movements.html', logs=logs)


@inventory_bp.route('/api/available')
@login_required
def api_available():
    """可用数量查询 (调拨 / 销售表单实时校验)"""
    ctx = current_tenant()
    item_id = request.args.get('item_id', type=int)
    location_id = request.args.get('location_id', type=int)
    if not item_id or not location_id:
        return jsonify({'error': 'item_id and location_id are required'}), 400
    row = LedgerService.get_row(ctx, item_id, location_id)
    return jsonify({
        'item_id': item_id,
        'location_id': location_id,
        'quantity': row.quantity if row else 0,
        'reserved_quantity': row.reserved_quantity if row else 0,
        'available': row.available if row else 0,
    })


@inventory_bp.route('/export/<fmt>')
@login_required
@permission_required('items.view')
def export_inventory(fmt):
    """导出库存数据到 Excel 或 CSV"""
    ctx = current_tenant()
    fmt = 'csv' if fmt == 'csv' else 'xlsx'
    location_id = request.args.get('location_id', type=int)
    output = ExportService.export_stock(ctx, fmt, location_id)

    filename = f'inventory_{datetime.now().strftime("%Y%m%d_%H%M%S")}.{fmt}'
    mimetype = 'text/csv' if fmt == 'csv' else \
        'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    logger.info('导出库存 %s (%s)', filename, fmt)
    return send_file(output, mimetype=mimetype, as_attachment=True, download_name=filename)


# --- 调拨 ---

@inventory_bp.route('/transfers')
@login_required
@permission_required('transfers.view')
def transfers():
    ctx = current_tenant()
    status = request.args.get('status') or None
    return render_template(
        'inventory/transfers.html',
        transfers=TransferService.list_transfers(ctx, status=status,
                                                 location_id=request.args.get('location_id', type=int)),
        status=status,
        statuses=[Transfer.STATUS_DRAFT, Transfer.STATUS_APPROVED, Transfer.STATUS_IN_TRANSIT,
                  Transfer.STATUS_COMPLETED, Transfer.STATUS_CANCELLED],
    )


@inventory_bp.route('/transfers/new', methods=['GET', 'POST'])
@login_required
@permission_required('transfers.create')
def create_transfer():
    """创建调拨单：表头 + 动态明细行，明细在源地点预留"""
    ctx = current_tenant()
    form = TransferForm()
    form.from_location_id.choices = _location_choices(ctx)
    form.to_location_id.choices = _location_choices(ctx)

    if form.validate_on_submit():
        rows = parse_line_rows(request.form, 'item_id', 'quantity')
        try:
            requests = [TransferRequest(
                item_id=to_int(row['item_id'], '商品'),
                from_location_id=form.from_location_id.data,
                to_location_id=form.to_location_id.data,
                quantity=to_int(row['quantity'], '数量'),
            ) for row in rows]
        except FormValidationError as e:
            flash(str(e), 'danger')
        else:
            if not requests:
                flash('请至少添加一个商品', 'danger')
            else:
                success, result = TransferService.create_batch_transfer(ctx, requests, notes=form.notes.data)
                if success:
                    flash(f'调拨单 {result[0].transfer_number} 创建成功，库存已预留', 'success')
                    return redirect(url_for('inventory.transfer_detail', transfer_id=result[0].id))
                flash(f'创建失败: {result.message}', 'danger')

    return render_template('inventory/transfer_form.html', form=form, items=CatalogService.list_items(ctx))


@inventory_bp.route('/transfers/quick', methods=['GET', 'POST'])
@login_required
@permission_required('transfers.approve')
def quick_transfer():
    ctx = current_tenant()
    form = QuickTransferForm()
    form.item_id.choices = _item_choices(ctx)
    form.from_location_id.choices = _location_choices(ctx)
    form.to_location_id.choices = _location_choices(ctx)

    if form.validate_on_submit():
        success, result = TransferService.transfer_stock(ctx, TransferRequest(
            item_id=form.item_id.data,
            from_location_id=form.from_location_id.data,
            to_location_id=form.to_location_id.data,
            quantity=form.quantity.data,
            notes=form.notes.data or None,
        ))
        if success:
            flash(f'调拨完成：{result.transfer_number}', 'success')
            return redirect(url_for('inventory.transfers'))
        flash(f'调拨失败: {result.message}', 'danger')

    return render_template('inventory/quick_transfer.html', form=form)


@inventory_bp.route('/transfers/<int:transfer_id>')
@login_required
@permission_required('transfers.view')
def transfer_detail(transfer_id):
    transfer = TransferService.get_transfer(current_tenant(), transfer_id)
    return render_template('inventory/transfer_detail.html', transfer=transfer)


TRANSFER_ACTIONS = {
    'approve': (TransferService.approve, '调拨单已审批'),
    'dispatch': (TransferService.dispatch, '调拨单已发运'),
    'complete': (TransferService.complete, '调拨已完成，库存已移动'),
    'cancel': (TransferService.cancel, '调拨单已取消，预留已释放'),
}


@inventory_bp.route('/transfers/<int:transfer_id>/<action>', methods=['POST'])
@login_required
@permission_required('transfers.approve')
def transfer_action(transfer_id, action):
    if action not in TRANSFER_ACTIONS:
        flash('未知操作', 'danger')
        return redirect(url_for('inventory.transfer_detail', transfer_id=transfer_id))

    handler, message = TRANSFER_ACTIONS[action]
    success, result = handler(current_tenant(), transfer_id)
    if success:
        flash(message, 'success')
    else:
        flash(f'操作失败: {result.message}', 'danger')
    return redirect(url_for('inventory.transfer_detail', transfer_id=transfer_id))


# --- 调整 ---

@inventory_bp.route('/adjustments')
@login_required
@permission_required('adjustments.view')
def adjustments():
    ctx = current_tenant()
    search = request.args.get('q', '').strip() or None
    status = request.args.get('status') or None
    adjustment_type = request.args.get('type') or None

    pagination = AdjustmentService.list_adjustments(
        ctx,
        page=request.args.get('page', 1, type=int),
        search=search,
        status=status,
        adjustment_type=adjustment_type,
    )
    return render_template(
        'inventory/adjustments.html',
        adjustments=pagination.items,
        pagination=pagination,
        search=search,
        status=status,
        adjustment_type=adjustment_type,
        types=Adjustment.TYPES,
    )


@inventory_bp.route('/adjustments/new', methods=['GET', 'POST'])
@login_required
@permission_required('adjustments.create')
def create_adjustment():
    ctx = current_tenant()
    form = AdjustmentForm()
    form.location_id.choices = _location_choices(ctx)

    if form.validate_on_submit():
        rows = parse_line_rows(request.form, 'item_id', 'quantity_delta', 'line_notes')
        try:
            lines = [AdjustmentLineRequest(
                item_id=to_int(row['item_id'], '商品'),
                quantity_delta=to_int(row['quantity_delta'], '变动数量'),
                notes=row['line_notes'] or None,
            ) for row in rows]
        except FormValidationError as e:
            flash(str(e), 'danger')
        else:
            success, result = AdjustmentService.create_adjustment(ctx, AdjustmentRequest(
                location_id=form.location_id.data,
                adjustment_type=form.adjustment_type.data,
                reason=form.reason.data or None,
                notes=form.notes.data or None,
                lines=lines,
            ))
            if success:
                flash(f'调整单 {result.adjustment_number} 已执行，净变动 {result.net_adjustment:+d}', 'success')
                return redirect(url_for('inventory.adjustment_detail', adjustment_id=result.id))
            flash(f'调整失败: {result.message}', 'danger')

    return render_template('inventory/adjustment_form.html', form=form, items=CatalogService.list_items(ctx))


@inventory_bp.route('/adjustments/count', methods=['GET', 'POST'])
@login_required
@permission_required('adjustments.create')
def stock_count():
    """盘点录入：提交实盘数量，系统生成盘点差异调整单"""
    ctx = current_tenant()
    form = StockCountForm()
    form.location_id.choices = _location_choices(ctx)
    location_id = form.location_id.data or request.args.get('location_id', type=int)
    form.location_id.data = location_id

    if form.validate_on_submit():
        rows = parse_line_rows(request.form, 'item_id', 'counted')
        try:
            counts = {to_int(row['item_id'], '商品'): to_int(row['counted'], '实盘数量') for row in rows}
        except FormValidationError as e:
            flash(str(e), 'danger')
        else:
            success, result = AdjustmentService.set_counted_quantity(
                ctx, form.location_id.data, counts, reason=form.reason.data or None)
            if success:
                flash(f'盘点完成，生成调整单 {result.adjustment_number}', 'success')
                return redirect(url_for('inventory.adjustment_detail', adjustment_id=result.id))
            flash(result.message, 'warning')

    entries = CatalogService.inventory_items(ctx, location_id) if location_id else []
    return render_template('inventory/stock_count.html', form=form, entries=entries)


@inventory_bp.route('/adjustments/<int:adjustment_id>')
@login_required
@permission_required('adjustments.view')
def adjustment_detail(adjustment_id):
    adjustment = AdjustmentService.get_adjustment(current_tenant(), adjustment_id)
    return render_template('inventory/adjustment_detail.html', adjustment=adjustment)


@inventory_bp.route('/adjustments/<int:adjustment_id>/<action>', methods=['POST'])
@login_required
@permission_required('adjustments.create')
def adjustment_action(adjustment_id, action):
    handlers = {'approve': AdjustmentService.approve, 'cancel': AdjustmentService.cancel}
    if action not in handlers:
        flash('未知操作', 'danger')
    else:
        success, result = handlers[action](current_tenant(), adjustment_id)
        if success:
            flash('调整单已取消，库存已冲回' if action == 'cancel' else '调整单已审批', 'success')
        else:
            flash(f'操作失败: {result.message}', 'danger')
    return redirect(url_for('inventory.adjustment_detail', adjustment_id=adjustment_id))

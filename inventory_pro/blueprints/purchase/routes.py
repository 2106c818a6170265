"""采购管理路由"""
from flask import render_template, request, flash, redirect, url_for
from flask_login import login_required
from wtforms.validators import ValidationError as FormValidationError

from inventory_pro.blueprints.purchase import purchase_bp
from inventory_pro.blueprints.purchase.forms import GoodsReceiptForm, PurchaseOrderForm, SupplierForm
from inventory_pro.models import PurchaseOrder, Supplier
from inventory_pro.schemas import (GoodsReceiptRequest, OrderLineRequest, PurchaseOrderRequest,
                                   ReceiveLineRequest)
from inventory_pro.services.catalog_service import CatalogService, get_scoped
from inventory_pro.services.notification_service import NotificationService
from inventory_pro.services.purchase_service import PurchaseService
from inventory_pro.services.receipt_service import ReceiptService
from inventory_pro.utils.decorators import permission_required
from inventory_pro.utils.permissions import current_tenant
from inventory_pro.utils.validators import parse_line_rows, to_amount, to_int


@purchase_bp.route('/')
@login_required
@permission_required('purchaseorders.view')
def index():
    """采购订单列表"""
    ctx = current_tenant()
    status = request.args.get('status') or None
    orders = PurchaseService.list_purchase_orders(
        ctx, status=status, supplier_id=request.args.get('supplier_id', type=int))
    return render_template(
        'purchase/index.html',
        orders=orders,
        status=status,
        status_counts=PurchaseService.status_counts(ctx),
        suppliers=CatalogService.list_suppliers(ctx),
    )


@purchase_bp.route('/create', methods=['GET', 'POST'])
@login_required
@permission_required('purchaseorders.create')
def create():
    """创建采购订单"""
    ctx = current_tenant()
    form = PurchaseOrderForm()
    form.supplier_id.choices = [(s.id, s.name) for s in CatalogService.list_suppliers(ctx)]
    form.delivery_location_id.choices = [(loc.id, loc.name) for loc in CatalogService.list_locations(ctx)]

    if form.validate_on_submit():
        rows = parse_line_rows(request.form, 'item_id', 'quantity', 'unit_price', 'tax_rate', 'discount')
        try:
            lines = [OrderLineRequest(
                item_id=to_int(row['item_id'], '商品'),
                quantity=to_int(row['quantity'], '数量'),
                unit_price=to_amount(row['unit_price'], '单价'),
                tax_rate=to_amount(row['tax_rate'], '税率'),
                discount=to_amount(row['discount'], '折扣'),
            ) for row in rows]
        except FormValidationError as e:
            flash(str(e), 'danger')
        else:
            if not lines:
                flash('请至少添加一个采购商品', 'danger')
            else:
                success, result = PurchaseService.create_purchase_order(ctx, PurchaseOrderRequest(
                    supplier_id=form.supplier_id.data,
                    delivery_location_id=form.delivery_location_id.data,
                    expected_delivery_date=form.expected_delivery_date.data,
                    payment_terms=form.payment_terms.data or None,
                    notes=form.notes.data or None,
                    lines=lines,
                ))
                if success:
                    flash(f'采购订单 {result.po_number} 创建成功', 'success')
                    return redirect(url_for('purchase.detail', po_id=result.id))
                flash(f'创建失败: {result.message}', 'danger')

    return render_template('purchase/create.html', form=form, items=CatalogService.list_items(ctx))


@purchase_bp.route('/<int:po_id>')
@login_required
@permission_required('purchaseorders.view')
def detail(po_id):
    """采购订单详情 (含收货记录)"""
    ctx = current_tenant()
    po = PurchaseService.get_purchase_order(ctx, po_id)
    return render_template(
        'purchase/detail.html',
        po=po,
        receipts=ReceiptService.list_receipts(ctx, purchase_order_id=po.id),
        can_receive=PurchaseService.can_receive(po),
    )


PO_ACTIONS = {
    'submit': (PurchaseService.submit, 'purchaseorders.create', '采购订单已提交'),
    'approve': (PurchaseService.approve, 'purchaseorders.approve', '采购订单已审批'),
    'cancel': (PurchaseService.cancel, 'purchaseorders.approve', '采购订单已取消'),
    'close': (PurchaseService.close, 'purchaseorders.approve', '采购订单已关闭'),
    'email': (NotificationService.send_purchase_order_email, 'purchaseorders.create', '采购订单邮件已生成'),
}


@purchase_bp.route('/<int:po_id>/<action>', methods=['POST'])
@login_required
def change_status(po_id, action):
    """采购单状态操作"""
    if action not in PO_ACTIONS:
        flash('未知操作', 'danger')
        return redirect(url_for('purchase.detail', po_id=po_id))

    ctx = current_tenant()
    handler, permission, message = PO_ACTIONS[action]
    ctx.require(permission)
    success, result = handler(ctx, po_id)
    if success:
        flash(message, 'success')
    else:
        flash(f'操作失败: {result.message}', 'danger')
    return redirect(url_for('purchase.detail', po_id=po_id))


@purchase_bp.route('/<int:po_id>/receive', methods=['GET', 'POST'])
@login_required
@permission_required('goodsreceipts.create')
def receive(po_id):
    """
    采购收货
    每个明细行提交本次收货数量，留空或 0 表示本次不收
    """
    ctx = current_tenant()
    po = PurchaseService.get_purchase_order(ctx, po_id)

    if not PurchaseService.can_receive(po):
        flash(f'采购订单 {po.po_number} 当前状态 ({po.status}) 不能收货', 'warning')
        return redirect(url_for('purchase.detail', po_id=po.id))

    form = GoodsReceiptForm()
    form.location_id.choices = [(loc.id, loc.name) for loc in CatalogService.list_locations(ctx)]
    if request.method == 'GET':
        form.location_id.data = po.delivery_location_id

    if form.validate_on_submit():
        try:
            lines = [ReceiveLineRequest(
                purchase_order_line_id=line.id,
                item_id=line.item_id,
                received_quantity=to_int(request.form.get(f'received_{line.id}') or 0, '收货数量'),
            ) for line in po.lines]
        except FormValidationError as e:
            flash(str(e), 'danger')
        else:
            success, result = ReceiptService.create_goods_receipt(ctx, GoodsReceiptRequest(
                purchase_order_id=po.id,
                location_id=form.location_id.data,
                received_by_id=ctx.user_id,
                notes=form.notes.data or None,
                lines=lines,
            ))
            if success:
                flash(f'收货单 {result.receipt_number} 已入库，采购单状态: {po.status}', 'success')
                return redirect(url_for('purchase.detail', po_id=po.id))
            flash(f'收货失败: {result.message}', 'danger')

    return render_template('purchase/receive.html', po=po, form=form)


@purchase_bp.route('/receipts')
@login_required
@permission_required('purchaseorders.view')
def receipts():
    """收货单列表"""
    ctx = current_tenant()
    return render_template(
        'purchase/receipts.html',
        receipts=ReceiptService.list_receipts(ctx),
        receivable=PurchaseService.receivable_purchase_orders(ctx),
        statuses=PurchaseOrder.RECEIVABLE_STATUSES,
    )


@purchase_bp.route('/receipts/<int:receipt_id>')
@login_required
@permission_required('purchaseorders.view')
def receipt_detail(receipt_id):
    ctx = current_tenant()
    receipt = ReceiptService.get_receipt(ctx, receipt_id)
    return render_template('purchase/receipt_detail.html', receipt=receipt,
                           lines=ReceiptService.receipt_lines(ctx, receipt_id))


# --- 供应商 ---

def _supplier_fields(form):
    return {
        'contact_person': form.contact_person.data or None,
        'email': form.email.data or None,
        'phone': form.phone.data or None,
        'address': form.address.data or None,
        'payment_terms': form.payment_terms.data or None,
    }


@purchase_bp.route('/suppliers')
@login_required
@permission_required('purchaseorders.view')
def suppliers():
    return render_template('purchase/suppliers.html', form=SupplierForm(),
                           suppliers=CatalogService.list_suppliers(current_tenant()))


@purchase_bp.route('/suppliers/new', methods=['POST'])
@login_required
@permission_required('partners.manage')
def create_supplier():
    ctx = current_tenant()
    form = SupplierForm()
    if form.validate_on_submit():
        success, result = CatalogService.create_supplier(ctx, form.name.data, **_supplier_fields(form))
        if success:
            flash(f'供应商 {result.name} 已创建', 'success')
            return redirect(url_for('purchase.suppliers'))
        flash(f'创建失败: {result.message}', 'danger')
    return render_template('purchase/suppliers.html', form=form,
                           suppliers=CatalogService.list_suppliers(ctx))


@purchase_bp.route('/suppliers/<int:supplier_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required('partners.manage')
def edit_supplier(supplier_id):
    ctx = current_tenant()
    supplier = get_scoped(ctx, Supplier, supplier_id, 'Supplier')
    form = SupplierForm(obj=supplier)
    if form.validate_on_submit():
        success, result = CatalogService.update_supplier(
            ctx, supplier.id, name=form.name.data, **_supplier_fields(form))
        if success:
            flash(f'供应商 {result.name} 已更新', 'success')
            return redirect(url_for('purchase.suppliers'))
        flash(f'保存失败: {result.message}', 'danger')
    return render_template('purchase/supplier_form.html', form=form, supplier=supplier)


@purchase_bp.route('/suppliers/<int:supplier_id>/delete', methods=['POST'])
@login_required
@permission_required('partners.manage')
def delete_supplier(supplier_id):
    success, result = CatalogService.delete_supplier(current_tenant(), supplier_id)
    if success:
        flash(f'供应商 {result.name} 已删除', 'success')
    else:
        flash(f'删除失败: {result.message}', 'danger')
    return redirect(url_for('purchase.suppliers'))

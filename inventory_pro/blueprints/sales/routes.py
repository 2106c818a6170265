from datetime import datetime

from flask import render_template, request, flash, redirect, url_for, send_file, jsonify
from flask_login import login_required
from wtforms.validators import ValidationError as FormValidationError

from inventory_pro.blueprints.sales import sales_bp
from inventory_pro.blueprints.sales.forms import CustomerForm, OrderCreateForm, OrderStatusForm, PaymentStatusForm
from inventory_pro.exceptions import ValidationError
from inventory_pro.models import Customer, Item, SalesOrder
from inventory_pro.schemas import OrderLineRequest, PosSaleRequest, SalesOrderRequest
from inventory_pro.services.catalog_service import CatalogService, get_scoped
from inventory_pro.services.export_service import ExportService
from inventory_pro.services.sales_service import SalesService
from inventory_pro.utils.decorators import permission_required
from inventory_pro.utils.permissions import current_tenant
from inventory_pro.utils.validators import parse_line_rows, to_amount, to_int


@sales_bp.route('/')
@login_required
@permission_required('sales.view')
def index():
    """销售订单列表 (可按来源 / 状态过滤)"""
    ctx = current_tenant()
    source = request.args.get('source') or None
    status = request.args.get('status') or None
    orders = SalesService.list_sales_orders(
        ctx, source=source, status=status, customer_id=request.args.get('customer_id', type=int))
    return render_template('sales/index.html', orders=orders, source=source, status=status,
                           statuses=list(SalesService.TRANSITIONS))


@sales_bp.route('/create', methods=['GET', 'POST'])
@login_required
@permission_required('sales.create')
def create():
    """创建订单页面"""
    ctx = current_tenant()
    form = OrderCreateForm()
    form.customer_id.choices = [(0, '散客')] + [(c.id, c.name) for c in CatalogService.list_customers(ctx)]
    form.location_id.choices = [(loc.id, loc.name) for loc in CatalogService.list_locations(ctx)]

    if form.validate_on_submit():
        # 动态表单：平行数组 item_id[] / quantity[] / unit_price[] / discount[]
        rows = parse_line_rows(request.form, 'item_id', 'quantity', 'unit_price', 'discount')
        try:
            lines = []
            for row in rows:
                item = get_scoped(ctx, Item, to_int(row['item_id'], '商品'), 'Item')
                lines.append(OrderLineRequest(
                    item_id=item.id,
                    quantity=to_int(row['quantity'], '数量'),
                    unit_price=to_amount(row['unit_price'], '单价', default=str(item.selling_price or 0)),
                    tax_rate=item.tax_rate or 0,
                    discount=to_amount(row['discount'], '折扣'),
                ))
        except FormValidationError as e:
            flash(str(e), 'danger')
        else:
            if not lines:
                flash('请至少添加一个商品', 'danger')
            else:
                success, result = SalesService.create_sales_order(ctx, SalesOrderRequest(
                    location_id=form.location_id.data,
                    customer_id=form.customer_id.data or None,
                    status=form.status.data,
                    payment_status=form.payment_status.data,
                    payment_method=form.payment_method.data or None,
                    shipping_cost=form.shipping_cost.data or 0,
                    discount=form.discount.data or 0,
                    notes=form.notes.data or None,
                    lines=lines,
                ))
                if success:
                    flash(f'订单 {result.order_number} 创建成功！', 'success')
                    return redirect(url_for('sales.detail', order_id=result.id))
                flash(f'创建失败: {result.message}', 'danger')

    return render_template('sales/create.html', form=form, items=CatalogService.list_items(ctx, active_only=True))


@sales_bp.route('/<int:order_id>')
@login_required
@permission_required('sales.view')
def detail(order_id):
    order = SalesService.get_sales_order(current_tenant(), order_id)
    status_form = OrderStatusForm()
    status_form.status.choices = [c for c in status_form.status.choices
                                  if c[0] in SalesService.TRANSITIONS.get(order.status, ())]
    payment_form = PaymentStatusForm(payment_status=order.payment_status,
                                     payment_method=order.payment_method or '')
    return render_template('sales/detail.html', order=order,
                           status_form=status_form, payment_form=payment_form)


@sales_bp.route('/<int:order_id>/status', methods=['POST'])
@login_required
@permission_required('sales.update')
def update_status(order_id):
    form = OrderStatusForm()
    success, result = SalesService.update_status(current_tenant(), order_id, form.status.data)
    if success:
        flash(f'订单状态已更新为 {result.status}', 'success')
    else:
        flash(f'更新失败: {result.message}', 'danger')
    return redirect(url_for('sales.detail', order_id=order_id))


@sales_bp.route('/<int:order_id>/payment', methods=['POST'])
@login_required
@permission_required('sales.update')
def update_payment(order_id):
    form = PaymentStatusForm()
    success, result = SalesService.update_payment_status(
        current_tenant(), order_id, form.payment_status.data, form.payment_method.data or None)
    if success:
        flash('付款状态已更新', 'success')
    else:
        flash(f'更新失败: {result.message}', 'danger')
    return redirect(url_for('sales.detail', order_id=order_id))


@sales_bp.route('/<int:order_id>/email', methods=['POST'])
@login_required
@permission_required('sales.update')
def send_email(order_id):
    """生成客户确认邮件 (草稿会先确认)"""
    success, result = SalesService.send_confirmation(current_tenant(), order_id)
    if success:
        flash(f'确认邮件已生成: {result.title}', 'success')
    else:
        flash(f'发送失败: {result.message}', 'danger')
    return redirect(url_for('sales.detail', order_id=order_id))


@sales_bp.route('/invoice/<int:order_id>')
@login_required
@permission_required('sales.view')
def invoice(order_id):
    """打印发票视图"""
    order = SalesService.get_sales_order(current_tenant(), order_id)
    return render_template('sales/invoice.html', order=order)


# --- POS ---

@sales_bp.route('/pos')
@login_required
@permission_required('sales.create')
def pos():
    """POS 收银页面"""
    ctx = current_tenant()
    return render_template(
        'sales/pos.html',
        items=CatalogService.list_items(ctx, active_only=True),
        locations=CatalogService.list_locations(ctx),
        customers=CatalogService.list_customers(ctx),
    )


@sales_bp.route('/api/pos', methods=['POST'])
@login_required
@permission_required('sales.create')
def pos_checkout():
    """
    POS 结账接口
    请求体: {"location_id": 1, "payment_method": "CASH",
             "lines": [{"item_id": 1, "quantity": 2, "unit_price": "9.90"}]}
    未给出单价时使用商品售价
    """
    ctx = current_tenant()
    data = request.get_json(silent=True) or {}
    try:
        location_id = int(data['location_id'])
        lines = []
        for entry in data.get('lines') or []:
            item = get_scoped(ctx, Item, int(entry['item_id']), 'Item')
            lines.append(OrderLineRequest(
                item_id=item.id,
                quantity=int(entry['quantity']),
                unit_price=to_amount(entry.get('unit_price'), '单价', default=str(item.selling_price or 0)),
                tax_rate=item.tax_rate or 0,
                discount=to_amount(entry.get('discount'), '折扣'),
            ))
        discount = to_amount(data.get('discount'), '折扣')
    except (KeyError, TypeError, ValueError, FormValidationError) as e:
        raise ValidationError(f'Invalid POS request: {e}')

    success, result = SalesService.create_pos_sale(ctx, PosSaleRequest(
        location_id=location_id,
        lines=lines,
        payment_method=data.get('payment_method') or 'CASH',
        customer_id=data.get('customer_id') or None,
        discount=discount,
        notes=data.get('notes'),
    ))
    if not success:
        return jsonify(result.to_dict()), result.code

    return jsonify({
        'id': result.id,
        'order_number': result.order_number,
        'status': result.status,
        'payment_status': result.payment_status,
        'subtotal': str(result.subtotal),
        'tax_amount': str(result.tax_amount),
        'total': str(result.total),
        'redirect': url_for('sales.invoice', order_id=result.id),
    }), 201


@sales_bp.route('/export/<fmt>')
@login_required
@permission_required('sales.view')
def export_orders(fmt):
    """导出销售订单"""
    fmt = 'csv' if fmt == 'csv' else 'xlsx'
    source = request.args.get('source') if request.args.get('source') in (
        SalesOrder.SOURCE_POS, SalesOrder.SOURCE_SALES_ORDER) else None
    output = ExportService.export_sales_orders(current_tenant(), fmt, source)
    filename = f'sales_orders_{datetime.now().strftime("%Y%m%d_%H%M%S")}.{fmt}'
    mimetype = 'text/csv' if fmt == 'csv' else \
        'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    return send_file(output, mimetype=mimetype, as_attachment=True, download_name=filename)


# --- 客户 ---

def _customer_fields(form):
    return {
        'contact_person': form.contact_person.data or None,
        'email': form.email.data or None,
        'phone': form.phone.data or None,
        'address': form.address.data or None,
    }


@sales_bp.route('/customers')
@login_required
@permission_required('sales.view')
def customers():
    return render_template('sales/customers.html', form=CustomerForm(),
                           customers=CatalogService.list_customers(current_tenant()))


@sales_bp.route('/customers/new', methods=['POST'])
@login_required
@permission_required('partners.manage')
def create_customer():
    ctx = current_tenant()
    form = CustomerForm()
    if form.validate_on_submit():
        success, result = CatalogService.create_customer(ctx, form.name.data, **_customer_fields(form))
        if success:
            flash(f'客户 {result.name} 已创建', 'success')
            return redirect(url_for('sales.customer_detail', customer_id=result.id))
        flash(f'创建失败: {result.message}', 'danger')
    return render_template('sales/customers.html', form=form,
                           customers=CatalogService.list_customers(ctx))


@sales_bp.route('/customers/<int:customer_id>')
@login_required
@permission_required('sales.view')
def customer_detail(customer_id):
    """客户详情：订单历史与状态统计"""
    ctx = current_tenant()
    history = SalesService.customer_order_history(ctx, customer_id)
    counts = SalesService.order_status_counts(ctx, customer_id)
    return render_template('sales/customer_detail.html',
                           customer=history['customer'],
                           orders=history['orders'],
                           stats=history['stats'],
                           recent=SalesService.recent_orders(ctx, customer_id),
                           **counts)


@sales_bp.route('/customers/<int:customer_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required('partners.manage')
def edit_customer(customer_id):
    ctx = current_tenant()
    customer = get_scoped(ctx, Customer, customer_id, 'Customer')
    form = CustomerForm(obj=customer)
    if form.validate_on_submit():
        success, result = CatalogService.update_customer(
            ctx, customer.id, name=form.name.data, **_customer_fields(form))
        if success:
            flash(f'客户 {result.name} 已更新', 'success')
            return redirect(url_for('sales.customer_detail', customer_id=result.id))
        flash(f'保存失败: {result.message}', 'danger')
    return render_template('sales/customer_form.html', form=form, customer=customer)


@sales_bp.route('/customers/<int:customer_id>/delete', methods=['POST'])
@login_required
@permission_required('partners.manage')
def delete_customer(customer_id):
    success, result = CatalogService.delete_customer(current_tenant(), customer_id)
    if not success:
        flash(f'删除失败: {result.message}', 'danger')
        return redirect(url_for('sales.customer_detail', customer_id=customer_id))
    flash(f'客户 {result.name} 已删除', 'success')
    return redirect(url_for('sales.customers'))

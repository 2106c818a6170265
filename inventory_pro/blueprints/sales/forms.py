from flask_wtf import FlaskForm
from wtforms import DecimalField, SelectField, StringField, SubmitField
from wtforms.validators import DataRequired, Email, Length, Optional

from inventory_pro.models import SalesOrder
from inventory_pro.utils.validators import validate_non_negative

PAYMENT_STATUS_CHOICES = [
    (SalesOrder.PAYMENT_PENDING, '待付款'),
    (SalesOrder.PAYMENT_PARTIAL, '部分付款'),
    (SalesOrder.PAYMENT_UNPAID, '未付款'),
    (SalesOrder.PAYMENT_PAID, '已付款'),
    (SalesOrder.PAYMENT_REFUNDED, '已退款'),
]

PAYMENT_METHOD_CHOICES = [
    ('CASH', '现金'),
    ('CARD', '银行卡'),
    ('WECHAT', '微信支付'),
    ('ALIPAY', '支付宝'),
    ('TRANSFER', '银行转账'),
]


class OrderCreateForm(FlaskForm):
    """创建订单表单 (商品明细由 JS 动态处理)"""
    customer_id = SelectField('客户', coerce=int, default=0)
    location_id = SelectField('发货地点', coerce=int, validators=[DataRequired()])
    status = SelectField('初始状态', choices=[
        (SalesOrder.STATUS_DRAFT, '草稿 (Draft)'),
        (SalesOrder.STATUS_CONFIRMED, '已确认 (Confirmed，立即预留库存)'),
    ], default=SalesOrder.STATUS_DRAFT)
    payment_status = SelectField('付款状态', choices=PAYMENT_STATUS_CHOICES, default=SalesOrder.PAYMENT_PENDING)
    payment_method = SelectField('付款方式', choices=[('', '-')] + PAYMENT_METHOD_CHOICES, default='')
    shipping_cost = DecimalField('运费', places=2, default=0, validators=[Optional(), validate_non_negative])
    discount = DecimalField('整单折扣', places=2, default=0, validators=[Optional(), validate_non_negative])
    notes = StringField('订单备注')
    submit = SubmitField('创建订单')


class OrderStatusForm(FlaskForm):
    """快速更新状态表单"""
    status = SelectField('更新状态', choices=[
        (SalesOrder.STATUS_CONFIRMED, '已确认'),
        (SalesOrder.STATUS_PROCESSING, '处理中'),
        (SalesOrder.STATUS_SHIPPED, '已发货'),
        (SalesOrder.STATUS_DELIVERED, '已送达'),
        (SalesOrder.STATUS_COMPLETED, '已完成'),
        (SalesOrder.STATUS_CANCELLED, '已取消'),
        (SalesOrder.STATUS_RETURNED, '已退货'),
    ])
    submit = SubmitField('更新')


class PaymentStatusForm(FlaskForm):
    payment_status = SelectField('付款状态', choices=PAYMENT_STATUS_CHOICES)
    payment_method = SelectField('付款方式', choices=[('', '-')] + PAYMENT_METHOD_CHOICES, default='')
    submit = SubmitField('更新付款')


class CustomerForm(FlaskForm):
    """客户资料"""
    name = StringField('客户名称', validators=[DataRequired(), Length(max=128)])
    contact_person = StringField('联系人', validators=[Optional(), Length(max=64)])
    email = StringField('电子邮箱', validators=[Optional(), Email(message='邮箱格式不正确'), Length(max=128)])
    phone = StringField('电话', validators=[Optional(), Length(max=32)])
    address = StringField('地址', validators=[Optional(), Length(max=256)])
    submit = SubmitField('保存客户')

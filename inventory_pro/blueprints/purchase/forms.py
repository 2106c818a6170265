"""采购管理表单"""
from flask_wtf import FlaskForm
from wtforms import DateField, SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional


class PurchaseOrderForm(FlaskForm):
    """采购订单表头 (明细行由 JS 动态添加，以 item_id[] / quantity[] / unit_price[] 提交)"""
    supplier_id = SelectField('供应商', coerce=int, validators=[DataRequired()])
    delivery_location_id = SelectField('收货地点', coerce=int, validators=[DataRequired()])
    expected_delivery_date = DateField('预计到货日期', validators=[Optional()])
    payment_terms = StringField('付款条件', validators=[Optional(), Length(max=100)])
    notes = TextAreaField('备注', validators=[Optional()])
    submit = SubmitField('创建采购单')


class GoodsReceiptForm(FlaskForm):
    """收货表单 (每个采购明细一个 received_<line_id> 输入框)"""
    location_id = SelectField('收货地点', coerce=int, validators=[DataRequired()])
    notes = TextAreaField('备注', validators=[Optional()])
    submit = SubmitField('确认收货')


class SupplierForm(FlaskForm):
    """供应商资料"""
    name = StringField('供应商名称', validators=[DataRequired(), Length(max=128)])
    contact_person = StringField('联系人', validators=[Optional(), Length(max=64)])
    email = StringField('电子邮箱', validators=[Optional(), Email(message='邮箱格式不正确'), Length(max=128)])
    phone = StringField('电话', validators=[Optional(), Length(max=32)])
    address = StringField('地址', validators=[Optional(), Length(max=256)])
    payment_terms = StringField('付款条件', validators=[Optional(), Length(max=64)])
    submit = SubmitField('保存供应商')

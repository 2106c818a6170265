from flask_wtf import FlaskForm
from wtforms import (BooleanField, DecimalField, IntegerField, SelectField, SelectMultipleField,
                     StringField, SubmitField, TextAreaField)
from wtforms.validators import DataRequired, InputRequired, Length, NumberRange, Optional

from inventory_pro.models import Adjustment, Location
from inventory_pro.utils.validators import validate_non_negative, validate_sku


class ItemForm(FlaskForm):
    """新建商品表单 (期初库存由页面上的各地点输入框提交)"""
    sku = StringField('SKU', validators=[DataRequired(), Length(max=50), validate_sku])
    name = StringField('商品名称', validators=[DataRequired(), Length(max=128)])
    barcode = StringField('条码', validators=[Optional(), Length(max=64)])
    cost_price = DecimalField('成本价', places=2, default=0, validators=[Optional(), validate_non_negative])
    selling_price = DecimalField('售价', places=2, default=0, validators=[Optional(), validate_non_negative])
    tax_rate = DecimalField('税率 (%)', places=2, default=0, validators=[Optional(), validate_non_negative])
    min_stock_level = IntegerField('最低库存', default=0, validators=[Optional(), validate_non_negative])
    max_stock_level = IntegerField('最高库存', validators=[Optional(), validate_non_negative])
    category_id = SelectField('分类', coerce=int, default=0)
    brand_id = SelectField('品牌', coerce=int, default=0)
    unit_id = SelectField('单位', coerce=int, default=0)
    tax_rate_id = SelectField('税率模板', coerce=int, default=0)
    is_serial_tracked = BooleanField('序列号管理')
    description = TextAreaField('描述')
    submit = SubmitField('保存商品')


class LocationForm(FlaskForm):
    name = StringField('地点名称', validators=[DataRequired(), Length(max=128)])
    type = SelectField('类型', choices=[
        (Location.TYPE_WAREHOUSE, '仓库'),
        (Location.TYPE_SHOP, '门店'),
        (Location.TYPE_VIRTUAL, '虚拟库位'),
    ], default=Location.TYPE_WAREHOUSE)
    address = StringField('地址', validators=[Optional(), Length(max=255)])
    submit = SubmitField('新建地点')


class QuickTransferForm(FlaskForm):
    """快速调拨：创建后立即完成"""
    item_id = SelectField('商品', coerce=int, validators=[DataRequired()])
    from_location_id = SelectField('调出地点', coerce=int, validators=[DataRequired()])
    to_location_id = SelectField('调入地点', coerce=int, validators=[DataRequired()])
    quantity = IntegerField('数量', validators=[
        DataRequired(),
        NumberRange(min=1, message="数量必须大于 0")
    ])
    notes = StringField('备注', validators=[Optional(), Length(max=255)])
    submit = SubmitField('立即调拨')


class TransferForm(FlaskForm):
    """调拨单表头 (明细由 JS 动态添加)"""
    from_location_id = SelectField('调出地点', coerce=int, validators=[DataRequired()])
    to_location_id = SelectField('调入地点', coerce=int, validators=[DataRequired()])
    notes = TextAreaField('备注')
    submit = SubmitField('创建调拨单')


class AdjustmentForm(FlaskForm):
    """调整单表头 (明细行提交带符号的变动量)"""
    location_id = SelectField('地点', coerce=int, validators=[DataRequired()])
    adjustment_type = SelectField('调整类型', choices=[
        (Adjustment.TYPE_STOCK_COUNT, '盘点差异'),
        (Adjustment.TYPE_DAMAGE, '损坏'),
        (Adjustment.TYPE_THEFT, '丢失'),
        (Adjustment.TYPE_EXPIRED, '过期'),
        (Adjustment.TYPE_WRITE_OFF, '报废'),
        (Adjustment.TYPE_CORRECTION, '更正'),
        (Adjustment.TYPE_OTHER, '其他'),
    ], default=Adjustment.TYPE_CORRECTION)
    reason = StringField('原因', validators=[Optional(), Length(max=255)])
    notes = TextAreaField('备注')
    submit = SubmitField('执行调整')


class StockCountForm(FlaskForm):
    """盘点录入 (实盘数量按商品提交)"""
    location_id = SelectField('地点', coerce=int, validators=[DataRequired()])
    reason = StringField('说明', validators=[Optional(), Length(max=255)])
    submit = SubmitField('提交盘点')


class SearchForm(FlaskForm):
    """库存搜索表单"""
    class Meta:
        csrf = False

    q = StringField('Search', validators=[Length(max=50)], render_kw={"placeholder": "输入 SKU 或名称搜索..."})
    location_id = SelectField('地点', coerce=int, default=0)


# --- 分类信息 (同一页面多个表单，以 prefix 区分) ---

class CategoryForm(FlaskForm):
    name = StringField('分类名称', validators=[DataRequired(), Length(max=64)])
    slug = StringField('Slug', validators=[Optional(), Length(max=64)])
    description = StringField('说明', validators=[Optional(), Length(max=255)])
    submit = SubmitField('新建分类')


class BrandForm(FlaskForm):
    name = StringField('品牌名称', validators=[DataRequired(), Length(max=64)])
    slug = StringField('Slug', validators=[Optional(), Length(max=64)])
    submit = SubmitField('新建品牌')


class UnitForm(FlaskForm):
    name = StringField('单位名称', validators=[DataRequired(), Length(max=32)])
    symbol = StringField('符号', validators=[DataRequired(), Length(max=16)])
    submit = SubmitField('新建单位')


class TaxRateForm(FlaskForm):
    name = StringField('税率名称', validators=[DataRequired(), Length(max=64)])
    rate = DecimalField('税率 (%)', places=2, validators=[
        InputRequired(), validate_non_negative, NumberRange(max=100, message='税率不能超过 100%')])
    submit = SubmitField('新建税率')


class ItemSupplierAddForm(FlaskForm):
    supplier_ids = SelectMultipleField('供应商', coerce=int, validators=[DataRequired()])
    submit = SubmitField('添加供应商')


class ItemSupplierForm(FlaskForm):
    """商品供应商采购信息"""
    is_preferred = BooleanField('首选供应商')
    supplier_sku = StringField('供应商货号', validators=[Optional(), Length(max=64)])
    lead_time = IntegerField('交货周期 (天)', validators=[Optional(), validate_non_negative])
    min_order_qty = IntegerField('最小起订量', validators=[Optional(), validate_non_negative])
    unit_cost = DecimalField('采购单价', places=2, validators=[Optional(), validate_non_negative])
    notes = StringField('备注', validators=[Optional(), Length(max=255)])
    submit = SubmitField('保存')

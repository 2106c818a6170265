"""
表单验证器与动态行解析
"""
import re
from decimal import Decimal, InvalidOperation

from wtforms.validators import ValidationError


def validate_sku(form, field):
    """验证SKU格式"""
    if field.data:
        # SKU应为字母数字组合，保存时统一转为大写
        if not re.match(r'^[A-Za-z0-9-]+$', field.data.strip()):
            raise ValidationError('SKU只能包含字母、数字和连字符')


def validate_non_negative(form, field):
    """验证非负数"""
    if field.data is None:
        return
    if isinstance(field.data, Decimal) and not field.data.is_finite():
        raise ValidationError('必须是有效数字')
    if field.data < 0:
        raise ValidationError('数值不能为负')


def parse_line_rows(form, *names):
    """
    解析前端动态表格提交的平行数组 (name[])
    跳过首列为空的行

    :return: [{name: str}]
    """
    columns = [form.getlist(f'{name}[]') for name in names]
    rows = []
    for values in zip(*columns):
        if not values[0].strip():
            continue
        rows.append({name: value.strip() for name, value in zip(names, values)})
    return rows


def to_int(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label}必须是整数')


def to_amount(value, label, default='0'):
    try:
        amount = Decimal(str(value or default))
    except InvalidOperation:
        raise ValidationError(f'{label}格式不正确')
    if not amount.is_finite():
        raise ValidationError(f'{label}必须是有效数字')
    return amount


def slugify(value):
    """名称转 slug：小写，非字母数字 (含中文) 的连续字符替换为连字符"""
    return re.sub(r'[^\w]+', '-', (value or '').strip().lower()).strip('-_')

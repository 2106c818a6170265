"""
金额计算
所有金额均为 Decimal，按 ROUND_HALF_UP 保留两位小数
单价、折扣、税率按数据库列精度 (两位小数) 取整后再参与计算，保证重新计算与已保存金额一致
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from inventory_pro.exceptions import ValidationError

CENT = Decimal('0.01')
MAX_TAX_RATE = Decimal('100')


def to_decimal(value, label='amount'):
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        result = value
    else:
        # float 先转 str，避免二进制误差
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"{label} is not a number: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    return result


def money(value, label='amount'):
    """四舍五入到分"""
    return to_decimal(value, label).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_line(quantity, unit_price, tax_rate=0, discount=0):
    """
    校验单行金额输入并按列精度取整
    :return: (unit_price, tax_rate, discount)
    """
    unit_price = money(unit_price, 'unit_price')
    tax_rate = money(tax_rate, 'tax_rate')
    discount = money(discount, 'discount')
    if unit_price < 0:
        raise ValidationError("Unit price must not be negative")
    if tax_rate < 0 or tax_rate > MAX_TAX_RATE:
        raise ValidationError(f"Tax rate must be between 0 and {MAX_TAX_RATE}, got {tax_rate}")
    if discount < 0:
        raise ValidationError("Line discount must not be negative")
    if discount > quantity * unit_price:
        raise ValidationError(f"Line discount {discount} exceeds line amount {quantity * unit_price}")
    return unit_price, tax_rate, discount


def normalize_charges(shipping_cost=0, discount=0):
    """
    校验订单级运费与折扣
    :return: (shipping_cost, discount)
    """
    shipping_cost = money(shipping_cost, 'shipping_cost')
    discount = money(discount, 'discount')
    if shipping_cost < 0:
        raise ValidationError("Shipping cost must not be negative")
    if discount < 0:
        raise ValidationError("Order discount must not be negative")
    return shipping_cost, discount


def line_amounts(quantity, unit_price, tax_rate=0, discount=0):
    """
    计算单行金额
    :return: (subtotal, tax_amount, total)
    """
    subtotal = money(to_decimal(quantity) * to_decimal(unit_price) - to_decimal(discount))
    tax_amount = money(subtotal * to_decimal(tax_rate) / Decimal('100'))
    return subtotal, tax_amount, subtotal + tax_amount


def order_totals(lines, shipping_cost=0, discount=0):
    """
    汇总订单金额
    :param lines: 可迭代对象，元素为 (quantity, unit_price, tax_rate, discount)
    :return: dict(subtotal, tax_amount, shipping_cost, discount, total)
    """
    subtotal = Decimal('0')
    tax_amount = Decimal('0')
    for quantity, unit_price, tax_rate, line_discount in lines:
        line_subtotal, line_tax, _ = line_amounts(quantity, unit_price, tax_rate, line_discount)
        subtotal += line_subtotal
        tax_amount += line_tax

    shipping_cost = money(shipping_cost)
    discount = money(discount)
    return {
        'subtotal': money(subtotal),
        'tax_amount': money(tax_amount),
        'shipping_cost': shipping_cost,
        'discount': discount,
        'total': money(subtotal + tax_amount + shipping_cost - discount),
    }


def recalculate_totals(order):
    """根据已保存的明细行重新计算订单头金额 (销售单/采购单通用)"""
    for line in order.lines:
        _, line.tax_amount, line.total = line_amounts(
            line.quantity, line.unit_price, line.tax_rate, line.discount)

    totals = order_totals(
        ((l.quantity, l.unit_price, l.tax_rate, l.discount) for l in order.lines),
        shipping_cost=getattr(order, 'shipping_cost', 0),
        discount=getattr(order, 'discount', 0),
    )
    if totals['total'] < 0:
        raise ValidationError(f"Order discount {totals['discount']} exceeds the order amount")
    order.subtotal = totals['subtotal']
    order.tax_amount = totals['tax_amount']
    order.total = totals['total']
    return totals

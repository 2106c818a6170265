"""
请求数据结构
表单与接口提交的行数据在进入服务层之前先转换为这些 dataclass
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


@dataclass
class OrderLineRequest:
    """采购/销售通用的订单行"""
    item_id: int
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal = Decimal('0')
    discount: Decimal = Decimal('0')
    notes: Optional[str] = None


@dataclass
class PurchaseOrderRequest:
    supplier_id: int
    delivery_location_id: int
    lines: List[OrderLineRequest]
    date: Optional[datetime] = None
    expected_delivery_date: Optional[date] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ReceiveLineRequest:
    purchase_order_line_id: int
    item_id: int
    received_quantity: int
    notes: Optional[str] = None


@dataclass
class GoodsReceiptRequest:
    purchase_order_id: int
    location_id: int
    lines: List[ReceiveLineRequest]
    received_by_id: Optional[int] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass
class TransferRequest:
    item_id: int
    from_location_id: int
    to_location_id: int
    quantity: int
    notes: Optional[str] = None


@dataclass
class AdjustmentLineRequest:
    item_id: int
    quantity_delta: int
    notes: Optional[str] = None


@dataclass
class AdjustmentRequest:
    location_id: int
    adjustment_type: str
    lines: List[AdjustmentLineRequest]
    reason: Optional[str] = None
    notes: Optional[str] = None
    date: Optional[datetime] = None


@dataclass
class SalesOrderRequest:
    location_id: int
    lines: List[OrderLineRequest]
    customer_id: Optional[int] = None
    status: str = 'DRAFT'
    payment_status: str = 'PENDING'
    payment_method: Optional[str] = None
    shipping_cost: Decimal = Decimal('0')
    discount: Decimal = Decimal('0')
    date: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass
class PosSaleRequest:
    """POS 收银：即时出库、即时收款"""
    location_id: int
    lines: List[OrderLineRequest]
    payment_method: str = 'CASH'
    customer_id: Optional[int] = None
    discount: Decimal = Decimal('0')
    notes: Optional[str] = None


@dataclass
class ItemRequest:
    sku: str
    name: str
    cost_price: Decimal = Decimal('0')
    selling_price: Decimal = Decimal('0')
    tax_rate: Decimal = Decimal('0')
    min_stock_level: int = 0
    max_stock_level: Optional[int] = None
    barcode: Optional[str] = None
    description: Optional[str] = None
    is_serial_tracked: bool = False
    is_active: bool = True
    category_id: Optional[int] = None
    brand_id: Optional[int] = None
    unit_id: Optional[int] = None
    # 选择税率模板时商品税率取模板税率
    tax_rate_id: Optional[int] = None
    # 初始库存 {location_id: quantity}
    opening_stock: dict = field(default_factory=dict)

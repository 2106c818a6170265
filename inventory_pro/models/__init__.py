# 按照依赖顺序导入
from .base import BaseModel, OrgScopedMixin
from .auth import Organisation, User, Role, Permission
from .catalog import (Brand, Category, Customer, Item, ItemSupplier, Location, Supplier,
                      TaxRate, Unit)
from .stock import Inventory, InventoryLog

# 采购与收货
from .purchase import PurchaseOrder, PurchaseOrderLine, GoodsReceipt, GoodsReceiptLine

# 调拨与调整
from .movement import Transfer, TransferLine, Adjustment, AdjustmentLine

# 销售
from .trade import SalesOrder, SalesOrderLine

# 通知
from .notification import Notification

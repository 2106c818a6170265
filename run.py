import os
from inventory_pro import create_app
from inventory_pro.extensions import db
from inventory_pro.models import (
    Organisation, User, Role, Permission,
    Location, Item, Supplier, Customer,
    Inventory, InventoryLog,
    PurchaseOrder, GoodsReceipt,
    Transfer, Adjustment,
    SalesOrder, Notification
)

# 从环境变量获取配置模式
# 支持 FLASK_ENV 或 FLASK_CONFIG
config_name = os.getenv('FLASK_ENV') or os.getenv('FLASK_CONFIG') or 'default'
if config_name in ('development', 'dev'):
    config_name = 'development'

app = create_app(config_name)


@app.shell_context_processor
def make_shell_context():
    """
    配置 Flask Shell 上下文。
    允许在命令行中使用 'flask shell' 时自动导入 db 和常用模型。
    """
    return dict(
        db=db,
        app=app,
        Organisation=Organisation,
        User=User,
        Role=Role,
        Permission=Permission,
        Location=Location,
        Item=Item,
        Supplier=Supplier,
        Customer=Customer,
        Inventory=Inventory,
        InventoryLog=InventoryLog,
        PurchaseOrder=PurchaseOrder,
        GoodsReceipt=GoodsReceipt,
        Transfer=Transfer,
        Adjustment=Adjustment,
        SalesOrder=SalesOrder,
        Notification=Notification,
    )


if __name__ == '__main__':
    print("-------------------------------------------------------")
    print("   INVENTORY PRO STARTUP                               ")
    print("   Target: Localhost:5000                              ")
    print("-------------------------------------------------------")
    app.run(host='0.0.0.0', port=5000)

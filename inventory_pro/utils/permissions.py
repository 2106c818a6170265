"""
权限定义与当前租户上下文
权限名采用 module.action 形式
"""
from flask_login import current_user

from inventory_pro.extensions import db
from inventory_pro.models import Permission
from inventory_pro.tenancy import TenantContext

PERMISSIONS = {
    'items.view': '查看商品与库存',
    'items.create': '新建商品',
    'items.update': '编辑商品',
    'transfers.view': '查看调拨单',
    'transfers.create': '新建调拨单',
    'transfers.approve': '审批 / 完成调拨',
    'adjustments.view': '查看调整单',
    'adjustments.create': '新建调整单',
    'purchaseorders.view': '查看采购单',
    'purchaseorders.create': '新建采购单',
    'purchaseorders.approve': '审批采购单',
    'goodsreceipts.create': '采购收货',
    'sales.view': '查看销售单',
    'sales.create': '新建销售单 / POS 收银',
    'sales.update': '更新销售单状态',
    'reports.view': '查看报表',
    'partners.manage': '维护供应商与客户',
}

# 角色模板
ROLE_PERMISSIONS = {
    'Manager': list(PERMISSIONS),
    'Clerk': ['items.view', 'transfers.view', 'transfers.create', 'adjustments.view',
              'purchaseorders.view', 'goodsreceipts.create', 'sales.view', 'sales.create'],
}


def current_tenant():
    """当前登录用户的租户上下文"""
    return TenantContext.from_user(current_user)


def ensure_permissions():
    """补齐权限表，返回 {name: Permission}"""
    existing = {p.name: p for p in Permission.query.all()}
    for name, description in PERMISSIONS.items():
        if name not in existing:
            perm = Permission(name=name, description=description)
            db.session.add(perm)
            existing[name] = perm
    db.session.flush()
    return existing

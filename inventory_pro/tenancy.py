"""
租户上下文
每个服务调用都显式接收 TenantContext，所有查询都以 org_id 过滤
"""
from dataclasses import dataclass, field

from inventory_pro.exceptions import Unauthorized


@dataclass(frozen=True)
class TenantContext:
    org_id: int
    user_id: int = None
    permissions: frozenset = field(default_factory=frozenset)
    is_admin: bool = False

    def can(self, permission):
        """管理员拥有所有权限"""
        return self.is_admin or permission in self.permissions

    def require(self, permission):
        if not self.can(permission):
            raise Unauthorized(f"Missing permission: {permission}")

    @classmethod
    def from_user(cls, user):
        """由已登录用户构造上下文"""
        is_admin = bool(user.is_admin or (user.role and user.role.is_admin))
        return cls(
            org_id=user.org_id,
            user_id=user.id,
            permissions=user.permission_names,
            is_admin=is_admin,
        )

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from inventory_pro.extensions import db
from .base import BaseModel, OrgScopedMixin

# 多对多关系表：角色 <-> 权限
roles_permissions = db.Table('roles_permissions',
    db.Column('role_id', db.Integer, db.ForeignKey('auth_roles.id')),
    db.Column('permission_id', db.Integer, db.ForeignKey('auth_permissions.id'))
)


class Organisation(BaseModel):
    """组织 (租户)"""
    __tablename__ = 'auth_organisations'
    name = db.Column(db.String(128), nullable=False)
    country = db.Column(db.String(64))
    currency = db.Column(db.String(8), default='USD')

    def __repr__(self):
        return f'<Organisation {self.name}>'


class Permission(BaseModel):
    """权限点"""
    __tablename__ = 'auth_permissions'
    name = db.Column(db.String(64), unique=True)  # 例如: 'transfers.create'
    description = db.Column(db.String(128))

    def __repr__(self):
        return f'<Permission {self.name}>'


class Role(OrgScopedMixin, BaseModel):
    """角色"""
    __tablename__ = 'auth_roles'
    name = db.Column(db.String(64))
    is_admin = db.Column(db.Boolean, default=False)

    # 关系
    permissions = db.relationship('Permission', secondary=roles_permissions, backref='roles')
    users = db.relationship('User', backref='role', lazy='dynamic')

    def __repr__(self):
        return f'<Role {self.name}>'


class User(UserMixin, OrgScopedMixin, BaseModel):
    """用户"""
    __tablename__ = 'auth_users'
    email = db.Column(db.String(128), unique=True, index=True)
    name = db.Column(db.String(128))
    password_hash = db.Column(db.String(256))

    is_active_user = db.Column(db.Boolean, default=True)  # 封号开关
    is_admin = db.Column(db.Boolean, default=False)
    last_login = db.Column(db.DateTime)

    role_id = db.Column(db.Integer, db.ForeignKey('auth_roles.id'))
    organisation = db.relationship('Organisation')

    @property
    def password(self):
        raise AttributeError('密码不可读')

    @password.setter
    def password(self, password):
        self.password_hash = generate_password_hash(password)

    def verify_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def permission_names(self):
        """当前用户拥有的权限名集合"""
        if not self.role:
            return frozenset()
        return frozenset(p.name for p in self.role.permissions)

    def can(self, permission):
        """
        检查用户是否具有指定权限
        管理员拥有所有权限
        """
        if self.is_admin:
            return True
        if self.role and self.role.is_admin:
            return True
        return permission in self.permission_names

    # Flask-Login 必须属性覆盖
    @property
    def is_active(self):
        return self.is_active_user and not self.is_deleted

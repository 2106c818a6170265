from datetime import datetime
from sqlalchemy.orm import declared_attr
from inventory_pro.extensions import db


class BaseModel(db.Model):
    """
    模型基类
    包含：ID主键, 创建时间, 更新时间, 软删除标记
    """
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 软删除标记，业务查询统一经 for_org / get_scoped 过滤
    is_deleted = db.Column(db.Boolean, default=False, index=True)


class OrgScopedMixin:
    """租户隔离字段：每条业务数据都归属唯一的组织"""

    @declared_attr
    def org_id(cls):
        return db.Column(db.Integer, db.ForeignKey('auth_organisations.id'), nullable=False, index=True)

    @classmethod
    def for_org(cls, org_id):
        """按组织过滤的查询入口"""
        return cls.query.filter(cls.org_id == org_id, cls.is_deleted.is_(False))

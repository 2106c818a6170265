"""通知模型"""
from inventory_pro.extensions import db
from .base import BaseModel, OrgScopedMixin


class Notification(OrgScopedMixin, BaseModel):
    """系统通知 (含待发送的邮件载荷)"""
    __tablename__ = 'sys_notifications'

    TYPE_INFO = 'info'
    TYPE_WARNING = 'warning'
    TYPE_SUCCESS = 'success'

    CATEGORY_STOCK = 'stock'        # 库存
    CATEGORY_ORDER = 'order'        # 订单通知
    CATEGORY_SYSTEM = 'system'      # 系统通知

    user_id = db.Column(db.Integer, db.ForeignKey('auth_users.id'), index=True)

    title = db.Column(db.String(255))
    content = db.Column(db.Text)
    recipient = db.Column(db.String(128))  # 邮件收件人

    type = db.Column(db.String(20), default=TYPE_INFO)
    category = db.Column(db.String(20), default=CATEGORY_SYSTEM)

    # 关联对象
    related_type = db.Column(db.String(32))  # purchase_order, sales_order 等
    related_id = db.Column(db.Integer)

    # 邮件模板渲染所需的数据
    payload = db.Column(db.JSON)

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)

    # 是否已发送邮件 (由外部投递程序回写)
    email_sent = db.Column(db.Boolean, default=False)
    email_sent_at = db.Column(db.DateTime)

    user = db.relationship('User')

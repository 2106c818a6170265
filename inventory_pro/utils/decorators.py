import logging
import time
from functools import wraps

from flask import abort, current_app, has_app_context
from flask_login import current_user
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError, SQLAlchemyError

from inventory_pro.exceptions import InventoryException, ValidationError
from inventory_pro.extensions import db

logger = logging.getLogger(__name__)

# 只有连接类的瞬时故障才值得重试，业务规则错误绝不重试
TRANSIENT_ERRORS = (OperationalError, DisconnectionError)


def permission_required(permission):
    """
    检查用户是否具有特定权限
    (需配合 Role 模型中的 permissions 关联使用)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated or not current_user.can(permission):
                abort(403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def retry_on_transient(attempts=None, backoff=None):
    """
    数据库瞬时故障重试
    次数与退避时间默认读取配置 DB_RETRY_ATTEMPTS / DB_RETRY_BACKOFF
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            max_attempts = attempts
            delay = backoff
            if has_app_context():
                if max_attempts is None:
                    max_attempts = current_app.config.get('DB_RETRY_ATTEMPTS', 3)
                if delay is None:
                    delay = current_app.config.get('DB_RETRY_BACKOFF', 0.2)
            max_attempts = max(1, max_attempts or 1)
            delay = delay or 0

            for attempt in range(1, max_attempts + 1):
                try:
                    return f(*args, **kwargs)
                except TRANSIENT_ERRORS as e:
                    db.session.rollback()
                    if attempt == max_attempts:
                        logger.error("%s 连续 %d 次数据库错误，放弃: %s", f.__name__, attempt, e)
                        raise
                    logger.warning("%s 遇到数据库瞬时错误 (第 %d 次)，重试中: %s", f.__name__, attempt, e)
                    if delay:
                        time.sleep(delay * (2 ** (attempt - 1)))
        return wrapper
    return decorator


def transactional(f):
    """
    服务层事务边界
    成功提交并返回 (True, result)，业务异常回滚并返回 (False, error)
    瞬时数据库错误继续向外抛出，交给 retry_on_transient 处理
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            result = f(*args, **kwargs)
            db.session.commit()
            return True, result
        except InventoryException as e:
            db.session.rollback()
            logger.warning("%s 失败: [%s] %s", f.__name__, e.kind, e.message)
            return False, e
        except TRANSIENT_ERRORS:
            db.session.rollback()
            raise
        except IntegrityError as e:
            db.session.rollback()
            logger.warning("%s 违反数据约束: %s", f.__name__, e.orig)
            return False, ValidationError(f"Data constraint violated: {e.orig}")
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("%s 数据库错误: %s", f.__name__, e)
            return False, InventoryException("Database error", code=500)
    return wrapper

class InventoryException(Exception):
    """系统业务异常基类"""
    kind = 'Error'

    def __init__(self, message, code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['error'] = self.kind
        rv['success'] = False
        return rv


class ValidationError(InventoryException):
    """输入缺失或格式错误"""
    kind = 'ValidationError'

    def __init__(self, message="Invalid data", payload=None, code=400):
        super().__init__(message, code=code, payload=payload)


class InvalidTransition(ValidationError):
    """单据当前状态不允许该操作"""
    kind = 'InvalidTransition'

    def __init__(self, message="Invalid status transition", payload=None):
        super().__init__(message, payload=payload, code=409)


class InsufficientStock(InventoryException):
    """可用库存不足 (数量或预留数将变为负数)"""
    kind = 'InsufficientStock'

    def __init__(self, message="Insufficient stock", payload=None):
        super().__init__(message, code=409, payload=payload)


class OverReceipt(InventoryException):
    """累计收货数量超过采购数量"""
    kind = 'OverReceipt'

    def __init__(self, message="Received quantity exceeds ordered quantity", payload=None):
        super().__init__(message, code=409, payload=payload)


class SameLocation(InventoryException):
    """调拨源位置与目标位置相同"""
    kind = 'SameLocation'

    def __init__(self, message="Source and destination locations must differ", payload=None):
        super().__init__(message, code=400, payload=payload)


class NotFound(InventoryException):
    """实体不存在于当前组织"""
    kind = 'NotFound'

    def __init__(self, message="Not found", payload=None):
        super().__init__(message, code=404, payload=payload)


class Unauthorized(InventoryException):
    """权限不足"""
    kind = 'Unauthorized'

    def __init__(self, message="Access denied", payload=None):
        super().__init__(message, code=403, payload=payload)

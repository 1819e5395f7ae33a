"""
业务异常定义
服务层抛出，API层统一转换为HTTP响应
"""

from typing import Any, Dict, Optional


class BusinessException(Exception):
    """业务异常基类"""

    status_code: int = 400
    code: str = "business_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationException(BusinessException):
    """输入不合法（空购物车、数量非正等）"""
    status_code = 400
    code = "validation_error"


class EligibilityException(BusinessException):
    """用户明确选择的促销不满足使用条件"""
    status_code = 400
    code = "promotion_ineligible"


class NotFoundException(BusinessException):
    """资源不存在"""
    status_code = 404
    code = "not_found"


class ConflictException(BusinessException):
    """并发或唯一性冲突"""
    status_code = 409
    code = "conflict"


class InsufficientStockException(ConflictException):
    """提交时库存不足"""
    status_code = 400
    code = "insufficient_stock"


class InternalException(BusinessException):
    """存储层异常，事务已回滚"""
    status_code = 500
    code = "internal_error"

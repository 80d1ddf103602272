"""
统一异常定义

错误码与状态码随异常一起携带，宿主应用（HTTP层等）可直接映射为响应。
"""


class AppException(Exception):
    """应用基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: str = "APP_ERROR",
        status_code: int = 500,
        details: dict = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(AppException):
    """数据验证异常"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


class InvalidLineItemException(ValidationException):
    """报价项数据非法（数量、单价、成本等）"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message=message, details=details)
        self.error_code = "INVALID_LINE_ITEM"


class NotFoundException(AppException):
    """资源不存在异常"""

    def __init__(self, resource: str, resource_id: str = None):
        message = f"{resource}不存在"
        if resource_id:
            message = f"{resource} [{resource_id}] 不存在"
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "resource_id": resource_id}
        )


class BusinessException(AppException):
    """业务逻辑异常"""

    def __init__(self, message: str, error_code: str = "BUSINESS_ERROR", details: dict = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )


class IllegalTransitionException(BusinessException):
    """报价单状态流转非法"""

    def __init__(self, current_status: str, target_status: str, reason: str = None):
        message = f"报价单状态 {current_status} 不允许转换为 {target_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="ILLEGAL_TRANSITION",
            details={"current_status": current_status, "target_status": target_status}
        )


class QuoteNotEditableException(BusinessException):
    """非草稿状态的报价单不可修改"""

    def __init__(self, quote_id: str, status: str):
        super().__init__(
            message=f"只有草稿状态的报价单可以修改 (当前状态: {status})",
            error_code="QUOTE_NOT_EDITABLE",
            details={"quote_id": quote_id, "status": status}
        )


class ConflictException(BusinessException):
    """并发写入冲突或唯一键冲突"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message=message, error_code="CONFLICT", details=details)
        self.status_code = 409

"""订单 / 支付 / 库存领域异常

所有领域异常都继承自 HTTPException，服务层直接抛出，
由 main.py 中的异常处理器统一转换为 JSON 响应。
"""

from typing import Any, Optional

from fastapi import HTTPException


class MarketplaceError(HTTPException):
    """领域异常基类"""

    status_code = 400
    code = "bad_request"
    default_message = "请求无法处理"

    def __init__(self, message: Optional[str] = None, **context: Any):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)
        self.context = context

    @property
    def message(self) -> str:
        return self.detail

    def to_dict(self) -> dict:
        return {
            "success": False,
            "code": self.code,
            "message": self.detail,
            **self.context,
        }


class ValidationError(MarketplaceError):
    status_code = 422
    code = "validation_error"
    default_message = "请求参数不合法"


class NotAuthenticated(MarketplaceError):
    status_code = 401
    code = "not_authenticated"
    default_message = "缺少认证信息"


class Forbidden(MarketplaceError):
    status_code = 403
    code = "forbidden"
    default_message = "无权执行该操作"


class OrderNotFound(MarketplaceError):
    status_code = 404
    code = "order_not_found"
    default_message = "订单不存在"

    def __init__(self, order_id: str, message: Optional[str] = None):
        super().__init__(message, order_id=order_id)


class ProductNotFound(MarketplaceError):
    status_code = 404
    code = "product_not_found"
    default_message = "商品不存在"

    def __init__(self, product_id: int, message: Optional[str] = None):
        super().__init__(message, product_id=product_id)


class InsufficientStock(MarketplaceError):
    status_code = 409
    code = "insufficient_stock"
    default_message = "库存不足"

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"库存不足: product_id={product_id}, 需要 {requested}, 可用 {available}",
            product_id=product_id,
            requested=requested,
            available=available,
        )


class InvalidTransition(MarketplaceError):
    status_code = 409
    code = "invalid_transition"
    default_message = "订单状态不允许该操作"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"订单状态不允许从 {current} 变更为 {requested}",
            current=current,
            requested_status=requested,
        )


class InvalidSignature(MarketplaceError):
    status_code = 400
    code = "invalid_signature"
    default_message = "Webhook 签名校验失败"


class LockConflict(MarketplaceError):
    status_code = 429
    code = "lock_conflict"
    default_message = "库存操作冲突，请稍后重试"


class GatewayError(MarketplaceError):
    status_code = 502
    code = "gateway_error"
    default_message = "支付网关请求失败"

"""支付 API 路由：发起支付 + 网关 Webhook"""

from fastapi import APIRouter, HTTPException, Path, Body, Request
import logging

from marketplace.core.dependencies import ActorDep, OrderServiceDep, RawBodyDep
from marketplace.schemas.auth import Actor
from marketplace.schemas.payment import (
    InitializePaymentRequest,
    InitializePaymentResponse,
    WebhookAck,
)
from marketplace.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/payments",
    tags=["支付"],
    responses={
        400: {"description": "签名校验失败"},
        404: {"description": "订单不存在"},
        409: {"description": "订单状态不允许支付"},
        422: {"description": "请求验证失败"},
        500: {"description": "服务器内部错误"},
        502: {"description": "支付网关请求失败"}
    }
)

GATEWAY = Path(..., description="支付网关", examples=["paystack"])


@router.post(
    "/{gateway}/initialize",
    response_model=InitializePaymentResponse,
    summary="发起支付",
    description="""为订单生成支付 reference（ord_<订单ID>_<时间戳>），并在网关侧创建交易。

    - Paystack：需要付款人邮箱，返回 authorization_url / access_code
    - Stripe：创建 PaymentIntent，返回 client_secret
    - 网关请求失败返回 502
    """
)
def initialize_payment(
    gateway: str = GATEWAY,
    request: InitializePaymentRequest = Body(...),
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    try:
        data = service.initialize_payment(actor, request.order_id, gateway, email=request.email)
        return {"success": True, "message": "支付已创建", "data": data}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"发起支付失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/{gateway}/webhook",
    response_model=WebhookAck,
    summary="支付网关 Webhook",
    description="""接收网关支付通知（无需登录，使用网关签名校验）。

    **处理规则：**
    - 签名不匹配直接拒绝（400），不修改任何数据
    - 同一交易重复投递只生效一次
    - 失败通知不会覆盖已支付订单
    - 与支付无关的事件类型直接确认接收
    """
)
def payment_webhook(
    request: Request,
    gateway: str = GATEWAY,
    raw_body: bytes = RawBodyDep,
    service: OrderService = OrderServiceDep
):
    try:
        return service.handle_webhook(gateway, raw_body, request.headers)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"处理支付 Webhook 失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

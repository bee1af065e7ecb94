"""订单 API 路由"""

from fastapi import APIRouter, HTTPException, Path, Body
from typing import List
import logging

from marketplace.core.dependencies import ActorDep, OrderServiceDep
from marketplace.models.order import Order
from marketplace.schemas.auth import Actor
from marketplace.schemas.order import (
    PlaceOrderRequest,
    UpdateStatusRequest,
    PaymentResultRequest,
    OrderSchema,
    OrderResponse,
    OrderListResponse,
)
from marketplace.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/orders",
    tags=["订单"],
    responses={
        401: {"description": "缺少认证信息"},
        403: {"description": "无权操作"},
        404: {"description": "订单不存在"},
        409: {"description": "库存不足或订单状态不允许"},
        422: {"description": "请求验证失败"},
        500: {"description": "服务器内部错误"}
    }
)

ORDER_ID = Path(..., min_length=1, max_length=32, description="订单ID")


def _order_response(order: Order, message: str) -> dict:
    return {"success": True, "message": message, "data": OrderSchema.model_validate(order)}


def _list_response(orders: List[Order]) -> dict:
    return {"success": True, "data": [OrderSchema.model_validate(o) for o in orders]}


@router.post(
    "",
    status_code=201,
    response_model=OrderResponse,
    summary="创建订单",
    description="""创建订单并预占库存。

    **特点：**
    - 价格、税费、运费全部由服务端按当前商品价格计算
    - 所有商品一次性预占，任一商品库存不足则整体失败、不留任何预占
    - 成功后清空购物车，订单初始状态为 pending
    """,
    responses={
        409: {
            "description": "库存不足",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "code": "insufficient_stock",
                        "message": "库存不足: product_id=2, 需要 1, 可用 0",
                        "product_id": 2,
                        "requested": 1,
                        "available": 0
                    }
                }
            }
        }
    }
)
def place_order(
    request: PlaceOrderRequest = Body(...),
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    """创建订单"""
    try:
        order = service.place_order(
            actor, request.items, request.shipping_address, request.payment_method
        )
        return _order_response(order, "下单成功")
    except HTTPException:
        # 透传 HTTPException
        raise
    except Exception as e:
        logger.error(f"创建订单失败: {str(e)}")
        # 未知异常统一抛 500
        raise HTTPException(status_code=500, detail=str(e))


@router.get("", response_model=OrderListResponse, summary="我的订单")
def list_my_orders(
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    """当前用户的订单（按创建时间倒序）"""
    try:
        return _list_response(service.list_user_orders(actor))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询订单失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/seller", response_model=OrderListResponse, summary="店主订单")
def list_seller_orders(
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    """包含当前店主商品的订单"""
    try:
        return _list_response(service.list_seller_orders(actor))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询店主订单失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/all", response_model=OrderListResponse, summary="全部订单（管理员）")
def list_all_orders(
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    try:
        return _list_response(service.list_all_orders(actor))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询全部订单失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{order_id}", response_model=OrderResponse, summary="订单详情")
def get_order(
    order_id: str = ORDER_ID,
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    try:
        return _order_response(service.get_order(actor, order_id), "查询成功")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询订单失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put(
    "/{order_id}/pay",
    response_model=OrderResponse,
    summary="同步确认支付",
    description="""客户端支付完成后由下单用户确认，或由管理员手工对账确认。

    **注意：**
    - 与 Webhook 使用同一幂等路径，同一交易ID重复提交不会重复记账
    - 已取消或已送达的订单无法确认支付
    """
)
def confirm_payment(
    order_id: str = ORDER_ID,
    request: PaymentResultRequest = Body(...),
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    try:
        order = service.confirm_payment(actor, order_id, request)
        return _order_response(order, "支付已确认")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"确认支付失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="修改订单状态",
    description="""店主（订单中任一商品所属店铺）或管理员推进订单状态。

    **允许的流转：**
    - pending → processing
    - processing → delivered（记录送达时间）
    - 任意未终结状态 → cancelled（归还库存）
    """
)
def update_status(
    order_id: str = ORDER_ID,
    request: UpdateStatusRequest = Body(...),
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    try:
        order = service.update_status(actor, order_id, request.status)
        return _order_response(order, "状态已更新")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"修改订单状态失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete(
    "/{order_id}",
    response_model=OrderResponse,
    summary="取消订单",
    description="""取消订单并归还库存。

    - 下单用户只能取消 pending 订单
    - 管理员可取消任何未送达的订单
    - 重复取消为空操作，库存只归还一次
    """
)
def cancel_order(
    order_id: str = ORDER_ID,
    actor: Actor = ActorDep,
    service: OrderService = OrderServiceDep
):
    try:
        order = service.cancel_order(actor, order_id)
        return _order_response(order, "订单已取消")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"取消订单失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

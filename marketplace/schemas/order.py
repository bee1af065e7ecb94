# marketplace/schemas/order.py
from pydantic import BaseModel, Field
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from marketplace.models.order import OrderStatus
from marketplace.schemas.base import ORMSchema, TimestampedSchema, BaseResponse


# ==================== 请求模型 ====================

class OrderItemRequest(BaseModel):
    """下单商品项（只接收商品和数量，价格由服务端查询）"""
    product_id: int = Field(..., gt=0, description="商品ID", examples=[1])
    quantity: int = Field(..., gt=0, description="购买数量", examples=[2])


class ShippingAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = Field(..., min_length=1)


class PlaceOrderRequest(BaseModel):
    """创建订单请求

    客户端传入的 taxPrice / totalPrice 等金额字段会被忽略。
    """
    items: List[OrderItemRequest] = Field(..., min_length=1, max_length=100)
    shipping_address: ShippingAddress
    payment_method: str = Field(..., min_length=1, max_length=32, examples=["paystack"])


class UpdateStatusRequest(BaseModel):
    status: OrderStatus = Field(..., description="目标状态", examples=["delivered"])


class PaymentResultRequest(BaseModel):
    """同步支付确认（管理员手工对账）"""
    id: str = Field(..., min_length=1, max_length=128, description="网关交易ID")
    status: str = Field(..., min_length=1, max_length=32, examples=["completed"])
    update_time: Optional[datetime] = None
    email_address: Optional[str] = None


# ==================== 响应模型 ====================

class OrderItemSchema(ORMSchema):
    product_id: int
    name_snapshot: str
    quantity: int
    unit_price: Decimal


class PaymentResultSchema(BaseModel):
    gateway: Optional[str] = None
    id: str
    status: Optional[str] = None
    update_time: Optional[datetime] = None
    email_address: Optional[str] = None
    error: Optional[str] = None


class OrderSchema(TimestampedSchema):
    id: str
    user_id: str
    status: OrderStatus
    is_paid: bool
    shipping_address: dict
    payment_method: str
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal
    payment_result: Optional[PaymentResultSchema] = None
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemSchema] = []


class OrderResponse(BaseResponse):
    data: OrderSchema


class OrderListResponse(BaseResponse):
    data: List[OrderSchema] = []

"""支付相关的 Pydantic 模型：归一化网关事件 + API 请求/响应"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from marketplace.schemas.base import BaseResponse


class PaymentOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PaymentEvent(BaseModel):
    """网关适配器输出的归一化事件"""
    gateway_name: str
    reference: str
    external_transaction_id: str
    outcome: PaymentOutcome
    amount: Optional[Decimal] = Field(None, description="主币种金额（元），未知时为空")
    payer_email: Optional[str] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    @property
    def idempotency_key(self) -> str:
        # 同一交易的成功与失败分别去重，失败后重试成功的交易仍会被应用
        return f"{self.gateway_name}:{self.external_transaction_id}:{self.outcome.value}"


class InitializePaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=32)
    email: Optional[str] = Field(None, max_length=254, description="付款人邮箱，Paystack 必填")


class PaymentInitData(BaseModel):
    gateway: str
    order_id: str
    reference: str
    amount: int = Field(..., description="最小货币单位金额（分 / kobo）")
    currency: str
    # 网关返回的收银台信息：Paystack 为跳转链接，Stripe 为 PaymentIntent client_secret
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    client_secret: Optional[str] = None


class InitializePaymentResponse(BaseResponse):
    data: PaymentInitData


class WebhookAck(BaseModel):
    received: bool = True
    applied: bool = False
    order_id: Optional[str] = None

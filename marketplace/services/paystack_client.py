"""Paystack 交易 API 客户端（发起支付）"""

from dataclasses import dataclass
from typing import Optional
import logging

import httpx

from marketplace.core.config import settings
from marketplace.core.exceptions import GatewayError

logger = logging.getLogger(__name__)


@dataclass
class PaystackTransaction:
    """transaction/initialize 返回的收银台信息"""

    authorization_url: str
    access_code: str
    reference: str


class PaystackClient:
    """同步 Paystack 客户端，transport 仅供测试注入"""

    def __init__(self, secret_key: str, base_url: str = None, timeout: float = None,
                 transport: httpx.BaseTransport = None):
        self.secret_key = (secret_key or "").strip()
        self.base_url = (base_url or settings.PAYSTACK_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_TIMEOUT
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def initialize_transaction(self, email: str, amount: int, reference: str, currency: str,
                               metadata: dict = None,
                               callback_url: Optional[str] = None) -> PaystackTransaction:
        if not self.secret_key:
            raise GatewayError("Paystack 未配置密钥", gateway="paystack")

        payload = {
            "email": email,
            "amount": amount,
            "currency": currency,
            "reference": reference,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    f"{self.base_url}/transaction/initialize",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"Paystack 请求失败: reference={reference}, error={e}")
            raise GatewayError("Paystack 请求失败", gateway="paystack", reference=reference)

        if resp.status_code >= 400:
            logger.error(f"Paystack 发起支付失败 ({resp.status_code}): {resp.text}")
            raise GatewayError(
                f"Paystack 发起支付失败 ({resp.status_code})",
                gateway="paystack",
                reference=reference,
            )

        body = resp.json()
        data = body.get("data") or {}
        if not body.get("status") or not data.get("authorization_url"):
            raise GatewayError(
                f"Paystack 发起支付失败: {body.get('message')}",
                gateway="paystack",
                reference=reference,
            )

        logger.info(f"Paystack 交易已创建: reference={reference}")
        return PaystackTransaction(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code", ""),
            reference=data.get("reference") or reference,
        )

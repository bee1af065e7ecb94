"""支付网关适配器：签名校验 + 事件归一化

每个网关只负责把自己的 Webhook 报文转换为 PaymentEvent，
对账逻辑不感知任何网关特有的字段。
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional
import hashlib
import hmac
import json
import logging

import stripe

from marketplace.core.config import settings
from marketplace.core.exceptions import GatewayError, InvalidSignature, ValidationError
from marketplace.schemas.payment import PaymentEvent, PaymentOutcome
from marketplace.services.paystack_client import PaystackClient

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    """元 -> 分（kobo / cents）"""
    value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    return int(value * 100)


def from_minor_units(amount) -> Optional[Decimal]:
    if amount is None:
        return None
    return (Decimal(int(amount)) / 100).quantize(CENT)


def _lower_headers(headers: Mapping[str, str]) -> dict:
    return {key.lower(): value for key, value in headers.items()}


def _load_json(raw_body: bytes) -> dict:
    try:
        payload = json.loads(raw_body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Webhook 报文不是合法 JSON: {e}")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook 报文格式错误")
    return payload


def _parse_time(value) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"无法解析事件时间: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GatewayAdapter:
    """网关适配器基类"""

    name = None

    def __init__(self, secret: str):
        self.secret = secret or ""

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        raise NotImplementedError

    def parse(self, raw_body: bytes) -> Optional[PaymentEvent]:
        """返回归一化事件；与支付结果无关的事件类型返回 None"""
        raise NotImplementedError

    def initialize(self, reference: str, amount: int, currency: str,
                   email: Optional[str], metadata: dict) -> Dict[str, str]:
        """在网关侧创建交易，返回客户端跳转 / 确认所需的字段"""
        raise NotImplementedError


class PaystackAdapter(GatewayAdapter):
    """Paystack：x-paystack-signature = HMAC-SHA512(secret_key, raw_body) 十六进制"""

    name = "paystack"
    signature_header = "x-paystack-signature"
    outcomes = {
        "charge.success": PaymentOutcome.SUCCEEDED,
        "charge.failed": PaymentOutcome.FAILED,
    }

    def __init__(self, secret: str, client: PaystackClient = None):
        super().__init__(secret)
        self.client = client or PaystackClient(secret)

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self.secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()

    def verify(self, raw_body, headers):
        signature = _lower_headers(headers).get(self.signature_header)
        if not self.secret or not signature:
            raise InvalidSignature(gateway=self.name)
        if not hmac.compare_digest(self.sign(raw_body), signature):
            raise InvalidSignature(gateway=self.name)

    def parse(self, raw_body):
        payload = _load_json(raw_body)
        outcome = self.outcomes.get(payload.get("event"))
        if outcome is None:
            return None

        data = payload.get("data") or {}
        reference = data.get("reference")
        transaction_id = data.get("id")
        if not reference or transaction_id is None:
            raise ValidationError("Paystack 事件缺少 reference 或交易ID", gateway=self.name)

        customer = data.get("customer") or {}
        return PaymentEvent(
            gateway_name=self.name,
            reference=reference,
            external_transaction_id=str(transaction_id),
            outcome=outcome,
            amount=from_minor_units(data.get("amount")),
            payer_email=customer.get("email"),
            occurred_at=_parse_time(data.get("paid_at") or data.get("transaction_date")),
            error=data.get("gateway_response") if outcome == PaymentOutcome.FAILED else None,
        )

    def initialize(self, reference, amount, currency, email, metadata):
        if not email:
            raise ValidationError("Paystack 支付需要付款人邮箱", gateway=self.name)
        transaction = self.client.initialize_transaction(
            email=email,
            amount=amount,
            reference=reference,
            currency=currency,
            metadata=metadata,
            callback_url=settings.PAYSTACK_CALLBACK_URL or None,
        )
        return {
            "authorization_url": transaction.authorization_url,
            "access_code": transaction.access_code,
        }


class StripeAdapter(GatewayAdapter):
    """Stripe：Stripe-Signature 由 SDK 校验，订单 reference 放在 PaymentIntent.metadata"""

    name = "stripe"
    signature_header = "stripe-signature"
    outcomes = {
        "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
        "payment_intent.payment_failed": PaymentOutcome.FAILED,
    }

    def __init__(self, secret: str, tolerance: int = 300, api_key: str = None):
        super().__init__(secret)
        self.tolerance = tolerance
        self.api_key = api_key or ""

    def verify(self, raw_body, headers):
        header = _lower_headers(headers).get(self.signature_header)
        if not self.secret or not header:
            raise InvalidSignature(gateway=self.name)
        try:
            stripe.Webhook.construct_event(raw_body, header, self.secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(f"Webhook 签名校验失败: {e}", gateway=self.name)
        except ValueError as e:
            raise ValidationError(f"Webhook 报文不是合法 JSON: {e}", gateway=self.name)

    def parse(self, raw_body):
        payload = _load_json(raw_body)
        outcome = self.outcomes.get(payload.get("type"))
        if outcome is None:
            return None

        intent = (payload.get("data") or {}).get("object") or {}
        metadata = intent.get("metadata") or {}
        reference = metadata.get("reference")
        if not reference or not intent.get("id"):
            raise ValidationError("Stripe 事件缺少 metadata.reference 或交易ID", gateway=self.name)

        error = (intent.get("last_payment_error") or {}).get("message")
        amount = intent.get("amount_received") or intent.get("amount")
        return PaymentEvent(
            gateway_name=self.name,
            reference=reference,
            external_transaction_id=intent["id"],
            outcome=outcome,
            amount=from_minor_units(amount) if outcome == PaymentOutcome.SUCCEEDED else None,
            payer_email=intent.get("receipt_email"),
            occurred_at=_parse_time(payload.get("created")),
            error=error,
        )

    def initialize(self, reference, amount, currency, email, metadata):
        if not self.api_key:
            raise GatewayError("Stripe 未配置密钥", gateway=self.name)
        params = {
            "amount": amount,
            "currency": currency.lower(),
            "metadata": {**metadata, "reference": reference},
            "api_key": self.api_key,
        }
        if email:
            params["receipt_email"] = email
        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe 创建 PaymentIntent 失败: reference={reference}, error={e}")
            raise GatewayError("Stripe 创建支付失败", gateway=self.name, reference=reference)
        logger.info(f"Stripe PaymentIntent 已创建: reference={reference}, intent={intent['id']}")
        return {"client_secret": intent["client_secret"]}


def get_gateway(name: str) -> GatewayAdapter:
    """按名称创建网关适配器（密钥取自配置）"""
    if name == PaystackAdapter.name:
        return PaystackAdapter(settings.PAYSTACK_SECRET_KEY)
    if name == StripeAdapter.name:
        return StripeAdapter(
            settings.STRIPE_WEBHOOK_SECRET,
            settings.STRIPE_SIGNATURE_TOLERANCE,
            api_key=settings.STRIPE_SECRET_KEY,
        )
    raise ValidationError(f"不支持的支付网关: {name}", gateway=name)


def build_gateways() -> Dict[str, GatewayAdapter]:
    return {name: get_gateway(name) for name in (PaystackAdapter.name, StripeAdapter.name)}

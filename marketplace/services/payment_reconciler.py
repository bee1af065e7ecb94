"""支付对账：校验网关通知并幂等地应用到订单

- 签名校验失败的事件不会触碰任何状态
- 同一 (网关, 交易ID, 结果) 只应用一次，幂等键与订单变更在同一事务中写入
- 失败事件永远不会把已支付订单降级，也不会归还库存
"""

from decimal import Decimal
from typing import Dict, Mapping, Optional, Tuple
import logging
import re
import time

from redlock import Redlock
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.exceptions import (
    InvalidSignature,
    InvalidTransition,
    MarketplaceError,
    OrderNotFound,
    ValidationError,
)
from marketplace.models.idempotency_keys import IdempotencyKey, IdempotencyStatus
from marketplace.models.order import Order
from marketplace.schemas.payment import PaymentEvent, PaymentInitData, PaymentOutcome, WebhookAck
from marketplace.services.gateways import GatewayAdapter, get_gateway, to_minor_units
from marketplace.services.locking import order_lock_key, redlock_guard
from marketplace.services.order_state import PAYABLE_STATES, OrderStateMachine, PaymentResult

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"^ord_([0-9a-f]{32})_([0-9A-Za-z]+)$")


def build_reference(order_id: str) -> str:
    """支付 reference：ord_<订单ID>_<毫秒时间戳>"""
    return f"ord_{order_id}_{int(time.time() * 1000)}"


def parse_reference(reference: str) -> str:
    match = REFERENCE_PATTERN.match(reference or "")
    if not match:
        raise ValidationError(f"无法识别的支付 reference: {reference}", reference=reference)
    return match.group(1)


class PaymentReconciler:
    """支付对账器"""

    def __init__(self, db: Session, state_machine: OrderStateMachine, rlock: Redlock = None,
                 gateways: Optional[Dict[str, GatewayAdapter]] = None):
        self.db = db
        self.state = state_machine
        self.rlock = rlock
        self.gateways = gateways or {}

    def gateway(self, name: str) -> GatewayAdapter:
        return self.gateways.get(name) or get_gateway(name)

    def initialize(self, order: Order, gateway_name: str, email: str = None) -> PaymentInitData:
        """生成新的支付 reference，并在网关侧创建交易"""
        adapter = self.gateway(gateway_name)
        if order.is_paid or order.status not in PAYABLE_STATES:
            raise InvalidTransition("paid" if order.is_paid else order.status.value, "paid")

        reference = build_reference(order.id)
        amount = to_minor_units(order.total_price)
        checkout = adapter.initialize(
            reference=reference,
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            email=email,
            metadata={"order_id": order.id, "user_id": order.user_id},
        )
        logger.info(f"发起支付: order_id={order.id}, gateway={gateway_name}, reference={reference}")
        return PaymentInitData(
            gateway=gateway_name,
            order_id=order.id,
            reference=reference,
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            **checkout,
        )

    def handle_webhook(self, gateway_name: str, raw_body: bytes,
                       headers: Mapping[str, str]) -> WebhookAck:
        """处理网关 Webhook：先验签，再归一化，最后应用"""
        adapter = self.gateway(gateway_name)
        try:
            adapter.verify(raw_body, headers)
        except InvalidSignature:
            logger.warning(f"Webhook 签名校验失败，拒绝处理: gateway={gateway_name}")
            raise

        event = adapter.parse(raw_body)
        if event is None:
            logger.info(f"忽略与支付结果无关的 Webhook 事件: gateway={gateway_name}")
            return WebhookAck(received=True, applied=False)

        try:
            order, applied = self.apply(event)
        except MarketplaceError as e:
            logger.warning(
                f"支付事件被拒绝: gateway={gateway_name}, reference={event.reference}, "
                f"txn={event.external_transaction_id}, error={e.detail}"
            )
            raise
        return WebhookAck(received=True, applied=applied, order_id=order.id)

    def apply(self, event: PaymentEvent, order_id: str = None) -> Tuple[Order, bool]:
        """应用归一化事件，返回 (订单, 是否发生变化)"""
        order_id = order_id or parse_reference(event.reference)

        with redlock_guard(self.rlock, [order_lock_key(order_id)]):
            try:
                order, applied = self._apply_locked(order_id, event)
                self.db.commit()
            except IntegrityError:
                # 并发重复投递：另一请求已写入同一幂等键
                self.db.rollback()
                logger.info(f"并发重复的支付事件，按重放处理: key={event.idempotency_key}")
                return self._load(order_id), False
            except Exception as e:
                self.db.rollback()
                logger.error(f"应用支付事件失败: order_id={order_id}, error={str(e)}")
                raise

        return order, applied

    def _load(self, order_id: str, for_update: bool = False) -> Order:
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        order = self.db.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _apply_locked(self, order_id: str, event: PaymentEvent) -> Tuple[Order, bool]:
        order = self._load(order_id, for_update=True)

        key = event.idempotency_key
        if self.db.get(IdempotencyKey, key) is not None:
            logger.info(f"支付事件已处理过，忽略: key={key}, order_id={order_id}")
            return order, False

        succeeded = event.outcome == PaymentOutcome.SUCCEEDED
        result = PaymentResult(
            gateway=event.gateway_name,
            transaction_id=event.external_transaction_id,
            status="completed" if succeeded else "failed",
            update_time=event.occurred_at,
            email_address=event.payer_email,
            error=event.error,
        )

        if succeeded:
            self._check_amount(order, event)
            applied = self.state.mark_paid(order, result)
        else:
            applied = self.state.record_failure(order, result)

        self.db.add(IdempotencyKey(
            key=key,
            gateway=event.gateway_name,
            order_id=order.id,
            status=IdempotencyStatus.SUCCESS if succeeded else IdempotencyStatus.FAILED,
            response_snapshot=event.model_dump(mode="json"),
        ))
        self.db.flush()
        return order, applied

    @staticmethod
    def _check_amount(order: Order, event: PaymentEvent) -> None:
        if event.amount is None:
            return
        if Decimal(event.amount) != Decimal(order.total_price):
            raise ValidationError(
                "支付金额与订单金额不一致",
                order_id=order.id,
                expected=str(order.total_price),
                received=str(event.amount),
            )

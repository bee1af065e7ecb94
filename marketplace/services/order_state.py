"""订单状态机

状态流转：

    pending ──> processing ──> delivered
       │             │
       └──> cancelled <┘

delivered / cancelled 为终态。is_paid 是独立标记，只能在 pending / processing 时置位。
状态机只修改内存中的订单对象（以及通过账本归还库存），事务由调用方提交。
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
import logging

from marketplace.core.exceptions import Forbidden, InvalidTransition
from marketplace.models.order import Order, OrderStatus
from marketplace.schemas.auth import Actor
from marketplace.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

PAYABLE_STATES = {OrderStatus.PENDING, OrderStatus.PROCESSING}
TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite 读回的时间不带时区，按 UTC 处理
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class PaymentResult:
    gateway: str
    transaction_id: str
    status: str
    update_time: datetime
    email_address: Optional[str] = None
    error: Optional[str] = None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


class OrderStateMachine:
    """订单生命周期与支付标记"""

    def __init__(self, ledger: InventoryLedger, clock: Callable[[], datetime] = utcnow):
        self.ledger = ledger
        self.clock = clock

    # ==================== 支付 ====================

    def mark_paid(self, order: Order, result: PaymentResult) -> bool:
        """应用一次成功支付，返回订单是否发生变化

        同一网关交易ID重复投递时为空操作（即使订单已进入后续状态）。
        """
        if order.is_paid and order.payment_txn_id == result.transaction_id:
            logger.info(f"重复的支付事件，忽略: order_id={order.id}, txn={result.transaction_id}")
            return False

        if order.status not in PAYABLE_STATES:
            raise InvalidTransition(order.status.value, "paid")

        if order.is_paid:
            # 同一订单的另一笔成功支付，只接受时间更晚的结果
            if not self._is_later(result.update_time, order.payment_update_time):
                logger.info(f"较旧的支付结果，忽略: order_id={order.id}, txn={result.transaction_id}")
                return False
            self._apply_result(order, result)
            return True

        self._apply_result(order, result)
        order.is_paid = True
        if order.paid_at is None:
            order.paid_at = self.clock()
        if order.status == OrderStatus.PENDING:
            order.status = OrderStatus.PROCESSING
        logger.info(f"订单已支付: order_id={order.id}, txn={result.transaction_id}")
        return True

    def record_failure(self, order: Order, result: PaymentResult) -> bool:
        """记录失败的支付结果，不改变状态、库存和 is_paid"""
        if order.is_paid:
            logger.warning(
                f"订单已支付，忽略失败事件: order_id={order.id}, txn={result.transaction_id}"
            )
            return False
        if order.payment_update_time is not None and not self._is_later(
            result.update_time, order.payment_update_time
        ):
            return False
        self._apply_result(order, result)
        logger.info(f"记录支付失败: order_id={order.id}, txn={result.transaction_id}")
        return True

    # ==================== 状态变更 ====================

    def set_status(self, order: Order, actor: Actor, new_status: OrderStatus,
                   store_owner_ids: Iterable[str] = ()) -> bool:
        """店主（订单中任一商品所属店铺）或管理员推进订单状态"""
        if not actor.is_admin and actor.user_id not in set(store_owner_ids):
            raise Forbidden("只有管理员或相关店铺店主可以修改订单状态", order_id=order.id)

        if new_status == OrderStatus.CANCELLED:
            return self._cancel(order)

        if not can_transition(order.status, new_status):
            raise InvalidTransition(order.status.value, new_status.value)

        order.status = new_status
        if new_status == OrderStatus.DELIVERED:
            if order.delivered_at is None:
                order.delivered_at = self.clock()
            self.ledger.confirm_order(order.id)
        logger.info(f"订单状态变更: order_id={order.id}, status={new_status.value}, by={actor.user_id}")
        return True

    def cancel(self, order: Order, actor: Actor) -> bool:
        """取消订单：管理员可取消任何未终结订单，下单用户只能取消 pending 订单"""
        if not actor.is_admin:
            if actor.user_id != order.user_id:
                raise Forbidden("无权取消该订单", order_id=order.id)
            if order.status not in (OrderStatus.PENDING, OrderStatus.CANCELLED):
                raise Forbidden(
                    "订单已进入处理流程，只能由管理员取消",
                    order_id=order.id,
                    status=order.status.value,
                )
        return self._cancel(order)

    def _cancel(self, order: Order) -> bool:
        if order.status == OrderStatus.CANCELLED:
            logger.info(f"订单已取消，忽略重复取消: order_id={order.id}")
            return False
        if order.status in TERMINAL_STATES:
            raise InvalidTransition(order.status.value, OrderStatus.CANCELLED.value)

        released = self.ledger.release_order(order.id)
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = self.clock()
        logger.info(f"订单已取消: order_id={order.id}, 释放预占 {released} 项")
        return True

    # ==================== 内部 ====================

    @staticmethod
    def _is_later(candidate: datetime, current: Optional[datetime]) -> bool:
        if current is None:
            return True
        return as_utc(candidate) > as_utc(current)

    @staticmethod
    def _apply_result(order: Order, result: PaymentResult) -> None:
        order.payment_gateway = result.gateway
        order.payment_txn_id = result.transaction_id
        order.payment_status = result.status
        order.payment_update_time = result.update_time
        order.payer_email = result.email_address
        order.payment_error = result.error

"""订单服务（编排层）

组合库存账本、订单状态机和支付对账器，对外提供下单、取消、
状态变更、支付确认等用例。每个用例一个事务：成功则提交并失效库存缓存，
任何异常都回滚，不留下部分预占。
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Mapping, Sequence
import logging

from pydantic import BaseModel
from redlock import Redlock
from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.core.config import Settings, settings as default_settings
from marketplace.core.exceptions import Forbidden, InsufficientStock, OrderNotFound, ValidationError
from marketplace.models.order import Order, OrderItem, OrderStatus, new_order_id
from marketplace.schemas.auth import Actor
from marketplace.schemas.order import PaymentResultRequest
from marketplace.schemas.payment import PaymentEvent, PaymentInitData, PaymentOutcome, WebhookAck
from marketplace.services.cart_service import CartService
from marketplace.services.catalog_service import CatalogService, ProductSnapshot
from marketplace.services.inventory_ledger import InventoryLedger
from marketplace.services.locking import order_lock_key, redlock_guard
from marketplace.services.order_state import OrderStateMachine
from marketplace.services.payment_reconciler import PaymentReconciler, build_reference

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
SUCCESS_STATUSES = {"completed", "success", "succeeded", "paid"}


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderService:
    """订单核心服务类"""

    def __init__(self, db: Session, ledger: InventoryLedger, catalog: CatalogService,
                 carts: CartService, state_machine: OrderStateMachine = None,
                 reconciler: PaymentReconciler = None, settings: Settings = None):
        self.db = db
        self.ledger = ledger
        self.catalog = catalog
        self.carts = carts
        self.settings = settings or default_settings
        self.state = state_machine or OrderStateMachine(ledger)
        self.reconciler = reconciler or PaymentReconciler(db, self.state, rlock=ledger.rlock)

    @property
    def rlock(self) -> Redlock:
        return self.ledger.rlock

    # ==================== 下单 ====================

    def calculate_prices(self, lines: Sequence[tuple]) -> Dict[str, Decimal]:
        """按商品当前价格计算订单金额，lines 为 (ProductSnapshot, 数量)"""
        items_price = _money(sum((product.price * quantity for product, quantity in lines), Decimal("0")))
        tax_price = _money(items_price * self.settings.TAX_RATE)
        if items_price > self.settings.FREE_SHIPPING_THRESHOLD:
            shipping_price = _money(Decimal("0"))
        else:
            shipping_price = _money(self.settings.SHIPPING_FLAT_RATE)
        return {
            "items_price": items_price,
            "tax_price": tax_price,
            "shipping_price": shipping_price,
            "total_price": _money(items_price + tax_price + shipping_price),
        }

    @staticmethod
    def _normalize_items(items) -> List[tuple]:
        if not items:
            raise ValidationError("订单至少包含一个商品")
        merged = {}
        for item in items:
            product_id = item["product_id"] if isinstance(item, Mapping) else item.product_id
            quantity = item["quantity"] if isinstance(item, Mapping) else item.quantity
            # bool 是 int 的子类，True 不能当作数量 1
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError("购买数量必须为正整数", product_id=product_id, quantity=quantity)
            merged[product_id] = merged.get(product_id, 0) + quantity
        return list(merged.items())

    def place_order(self, actor: Actor, items, shipping_address, payment_method: str) -> Order:
        """创建订单：服务端计价 -> 批量预占 -> 持久化 pending 订单 -> 清空购物车"""
        requested = self._normalize_items(items)

        lines = []
        for product_id, quantity in requested:
            product: ProductSnapshot = self.catalog.get_product(product_id)
            if product.stock < quantity:
                raise InsufficientStock(product_id, quantity, product.stock)
            lines.append((product, quantity))

        if isinstance(shipping_address, BaseModel):
            shipping_address = shipping_address.model_dump()

        order = Order(
            id=new_order_id(),
            user_id=actor.user_id,
            status=OrderStatus.PENDING,
            is_paid=False,
            shipping_address=dict(shipping_address),
            payment_method=payment_method,
            items=[
                OrderItem(
                    product_id=product.id,
                    name_snapshot=product.name,
                    quantity=quantity,
                    unit_price=_money(product.price),
                )
                for product, quantity in lines
            ],
            **self.calculate_prices(lines),
        )

        try:
            with self.ledger.product_locks([product_id for product_id, _ in requested]):
                self.ledger.reserve_batch(order.id, requested)
                self.db.add(order)
                self.carts.clear_cart(actor.user_id)
                self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"创建订单失败: user_id={actor.user_id}, error={str(e)}")
            raise

        self.ledger.invalidate_cache()
        logger.info(f"创建订单成功: order_id={order.id}, user_id={actor.user_id}, total={order.total_price}")
        return order

    # ==================== 查询 ====================

    def _load_order(self, order_id: str, for_update: bool = False) -> Order:
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        order = self.db.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_order(self, actor: Actor, order_id: str) -> Order:
        """下单用户、管理员或订单商品所属店铺的店主可查看"""
        order = self._load_order(order_id)
        if actor.is_admin or order.user_id == actor.user_id:
            return order
        if actor.user_id in self.catalog.store_owner_ids(order.product_ids):
            return order
        raise Forbidden("无权查看该订单", order_id=order_id)

    def list_user_orders(self, actor: Actor) -> List[Order]:
        return list(self.db.execute(
            select(Order)
            .where(Order.user_id == actor.user_id)
            .order_by(Order.created_at.desc())
        ).scalars().all())

    def list_seller_orders(self, actor: Actor) -> List[Order]:
        """包含当前店主商品的订单"""
        if not (actor.is_seller or actor.is_admin):
            raise Forbidden("仅限店主访问")
        product_ids = self.catalog.product_ids_for_owner(actor.user_id)
        if not product_ids:
            return []
        order_ids = select(OrderItem.order_id).where(OrderItem.product_id.in_(product_ids))
        return list(self.db.execute(
            select(Order)
            .where(Order.id.in_(order_ids))
            .order_by(Order.created_at.desc())
        ).scalars().all())

    def list_all_orders(self, actor: Actor) -> List[Order]:
        if not actor.is_admin:
            raise Forbidden("仅限管理员访问")
        return list(self.db.execute(
            select(Order).order_by(Order.created_at.desc())
        ).scalars().all())

    # ==================== 状态变更 ====================

    def _mutate(self, order_id: str, action) -> Order:
        """在订单锁内加载订单、执行变更并提交"""
        with redlock_guard(self.rlock, [order_lock_key(order_id)]):
            try:
                order = self._load_order(order_id, for_update=True)
                action(order)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"订单变更失败: order_id={order_id}, error={str(e)}")
                raise
        self.ledger.invalidate_cache()
        return order

    def cancel_order(self, actor: Actor, order_id: str) -> Order:
        return self._mutate(order_id, lambda order: self.state.cancel(order, actor))

    def update_status(self, actor: Actor, order_id: str, new_status: OrderStatus) -> Order:
        def action(order):
            owners = self.catalog.store_owner_ids(order.product_ids)
            self.state.set_status(order, actor, new_status, owners)
        return self._mutate(order_id, action)

    # ==================== 支付 ====================

    def record_payment(self, event: PaymentEvent) -> Order:
        order, _ = self.reconciler.apply(event)
        return order

    def handle_webhook(self, gateway: str, raw_body: bytes, headers: Mapping[str, str]) -> WebhookAck:
        return self.reconciler.handle_webhook(gateway, raw_body, headers)

    def confirm_payment(self, actor: Actor, order_id: str, result: PaymentResultRequest) -> Order:
        """同步支付确认（下单用户或管理员），与 Webhook 走同一幂等路径

        客户端确认与网关 Webhook 携带同一交易ID时，只有先到的一方生效。
        """
        order = self._load_order(order_id)
        if not actor.is_admin and order.user_id != actor.user_id:
            raise Forbidden("无权确认该订单的支付", order_id=order_id)
        succeeded = result.status.lower() in SUCCESS_STATUSES
        event = PaymentEvent(
            gateway_name="manual",
            reference=build_reference(order_id),
            external_transaction_id=result.id,
            outcome=PaymentOutcome.SUCCEEDED if succeeded else PaymentOutcome.FAILED,
            payer_email=result.email_address,
            occurred_at=result.update_time or datetime.now(timezone.utc),
        )
        order, _ = self.reconciler.apply(event, order_id=order_id)
        return order

    def initialize_payment(self, actor: Actor, order_id: str, gateway: str,
                           email: str = None) -> PaymentInitData:
        order = self._load_order(order_id)
        if not actor.is_admin and order.user_id != actor.user_id:
            raise Forbidden("无权支付该订单", order_id=order_id)
        return self.reconciler.initialize(order, gateway, email=email)

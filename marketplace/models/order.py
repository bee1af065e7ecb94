import enum
import uuid

from sqlalchemy import (
    Column,
    BigInteger,
    String,
    Integer,
    Boolean,
    Numeric,
    ForeignKey,
    CheckConstraint,
    TIMESTAMP,
    func,
    Enum,
    Index,
)
from sqlalchemy.orm import relationship
from marketplace.db.base import Base, BigIntPK, JSONType


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


def new_order_id() -> str:
    """订单ID：32位十六进制，不含下划线，可安全嵌入支付 reference"""
    return uuid.uuid4().hex


class Order(Base):
    __tablename__ = "orders"

    id = Column(
        String(32),
        primary_key=True,
        default=new_order_id,
    )

    user_id = Column(
        String(64),
        nullable=False,
        index=True,
        comment="下单用户ID",
    )

    status = Column(
        Enum(
            OrderStatus,
            name="order_status_type",
            create_type=True,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        comment="订单状态",
    )

    is_paid = Column(Boolean, nullable=False, default=False)

    shipping_address = Column(JSONType, nullable=False, comment="收货地址快照")
    payment_method = Column(String(32), nullable=False)

    # 金额均在下单时由服务端计算，之后不可变
    items_price = Column(Numeric(12, 2), nullable=False)
    tax_price = Column(Numeric(12, 2), nullable=False)
    shipping_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)

    # 最近一次支付结果
    payment_gateway = Column(String(32), nullable=True)
    payment_txn_id = Column(String(128), nullable=True, comment="网关交易ID")
    payment_status = Column(String(32), nullable=True)
    payment_update_time = Column(TIMESTAMP(timezone=True), nullable=True)
    payer_email = Column(String(255), nullable=True)
    payment_error = Column(String(255), nullable=True)

    paid_at = Column(TIMESTAMP(timezone=True), nullable=True)
    delivered_at = Column(TIMESTAMP(timezone=True), nullable=True)
    cancelled_at = Column(TIMESTAMP(timezone=True), nullable=True)

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )

    @property
    def product_ids(self):
        return [item.product_id for item in self.items]

    @property
    def payment_result(self):
        if self.payment_txn_id is None:
            return None
        return {
            "gateway": self.payment_gateway,
            "id": self.payment_txn_id,
            "status": self.payment_status,
            "update_time": self.payment_update_time,
            "email_address": self.payer_email,
            "error": self.payment_error,
        }


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(
        BigIntPK,
        primary_key=True,
        autoincrement=True,
    )

    order_id = Column(
        String(32),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id = Column(
        BigInteger,
        nullable=False,
        index=True,
        comment="商品ID（引用，不设外键）",
    )

    name_snapshot = Column(String(255), nullable=False, comment="下单时商品名称")

    quantity = Column(Integer, nullable=False)

    unit_price = Column(Numeric(12, 2), nullable=False, comment="下单时单价快照")

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_quantity_positive"),
    )


Index(
    "idx_orders_user_created_desc",
    Order.user_id,
    Order.created_at.desc(),
)

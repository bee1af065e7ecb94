import enum

from sqlalchemy import (
    Column,
    BigInteger,
    String,
    Integer,
    TIMESTAMP,
    Enum,
    UniqueConstraint,
    CheckConstraint,
    Index,
    func,
)
from marketplace.db.base import Base, BigIntPK


class ReservationStatus(str, enum.Enum):
    RESERVED = "RESERVED"     # 订单未终结，库存被占用
    CONFIRMED = "CONFIRMED"   # 订单已送达
    RELEASED = "RELEASED"     # 订单已取消，库存已归还


class InventoryReservation(Base):
    """订单对单个商品的预占记录

    订单取消时只归还 RESERVED 的记录并改为 RELEASED，保证库存只归还一次。
    product_id 不设外键：商品删除后记录仍保留，归还时按空操作处理。
    """
    __tablename__ = "inventory_reservations"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, index=True)
    product_id = Column(BigInteger, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)

    status = Column(
        Enum(ReservationStatus, name="reservation_status_type", create_type=True),
        nullable=False,
        default=ReservationStatus.RESERVED,
        server_default=ReservationStatus.RESERVED.value,
    )

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(),
                        onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_product"),
        CheckConstraint("quantity > 0", name="ck_reservation_quantity_positive"),
    )


Index("idx_reservation_order_status", InventoryReservation.order_id, InventoryReservation.status)

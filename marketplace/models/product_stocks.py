from sqlalchemy import (
    Column,
    BigInteger,
    Integer,
    ForeignKey,
    CheckConstraint,
    TIMESTAMP,
    func,
)
from sqlalchemy.orm import relationship
from marketplace.db.base import Base


class ProductStock(Base):
    """商品库存账户：只允许通过库存账本的条件更新修改"""
    __tablename__ = "product_stocks"

    product_id = Column(BigInteger, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)

    # 可售库存，下单预占时扣减、取消时归还
    available_stock = Column(Integer, nullable=False, server_default="0")
    # 未完成订单占用量，送达确认或取消后清零
    reserved_stock = Column(Integer, nullable=False, server_default="0")
    version = Column(Integer, nullable=False, server_default="0", comment="每次变更 +1")

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(),
                        onupdate=func.now())

    product = relationship("Product", back_populates="stock")

    __table_args__ = (
        CheckConstraint("available_stock >= 0", name="ck_available_stock_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_reserved_stock_non_negative"),
    )

from sqlalchemy import (
    Column,
    BigInteger,
    String,
    Numeric,
    ForeignKey,
    CheckConstraint,
    TIMESTAMP,
    Index,
    func,
)
from sqlalchemy.orm import relationship
from marketplace.db.base import Base, BigIntPK


class Product(Base):
    """目录商品（只读）；下单时价格和名称会被快照到订单明细"""
    __tablename__ = "products"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    store_id = Column(BigInteger, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, comment="当前售价")

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(),
                        onupdate=func.now())

    store = relationship("Store", back_populates="products")
    stock = relationship("ProductStock", uselist=False, back_populates="product")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_product_price_non_negative"),
    )


Index("idx_products_name", Product.name)

from sqlalchemy import (
    Column,
    String,
    TIMESTAMP,
    func,
)
from sqlalchemy.orm import relationship
from marketplace.db.base import Base, BigIntPK


class Store(Base):
    __tablename__ = "stores"

    id = Column(
        BigIntPK,
        primary_key=True,
        autoincrement=True,
    )

    owner_id = Column(
        String(64),
        nullable=False,
        index=True,
        comment="店主用户ID",
    )

    name = Column(
        String(255),
        nullable=False,
        comment="店铺名称",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    products = relationship("Product", back_populates="store")

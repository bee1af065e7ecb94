import enum

from sqlalchemy import Column, BigInteger, String, Integer, TIMESTAMP, Enum, Index, func
from marketplace.db.base import Base, BigIntPK


class ChangeType(str, enum.Enum):
    RESERVE = "RESERVE"   # 下单预占
    CONFIRM = "CONFIRM"   # 送达确认
    RELEASE = "RELEASE"   # 取消归还 / 批量预占失败回滚
    ADJUST = "ADJUST"     # 人工调整


class InventoryLog(Base):
    """库存流水：每次可用库存变化追加一行，用于对账"""
    __tablename__ = "inventory_logs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, nullable=False, index=True)
    order_id = Column(String(64), nullable=True, index=True, comment="人工调整时为空")

    change_type = Column(Enum(ChangeType, name="inventory_change_type", create_type=True), nullable=False)
    quantity = Column(Integer, nullable=False, comment="可用库存变化量，扣减为负")
    before_available = Column(Integer, nullable=False)
    after_available = Column(Integer, nullable=False)

    operator = Column(String(64), nullable=True)
    source = Column(String(50), nullable=True, comment="order_service / rollback / cancel / delivery")

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())


Index("idx_inventory_logs_product_created_desc", InventoryLog.product_id, InventoryLog.created_at.desc())

import enum

from sqlalchemy import Column, String, TIMESTAMP, Enum, Index, func
from marketplace.db.base import Base, JSONType


class IdempotencyStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"   # 成功支付事件
    FAILED = "FAILED"     # 失败支付事件


class IdempotencyKey(Base):
    """已应用的支付网关事件，主键冲突即视为重复投递"""
    __tablename__ = "idempotency_keys"

    # <网关>:<网关交易ID>:<结果>
    key = Column(String(128), primary_key=True)
    gateway = Column(String(32), nullable=False)
    order_id = Column(String(64), nullable=False)
    status = Column(
        Enum(IdempotencyStatus, name="idempotency_status_type", create_type=True),
        nullable=False,
        default=IdempotencyStatus.SUCCESS,
    )
    response_snapshot = Column(JSONType, nullable=True, comment="归一化事件快照")

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())


Index("idx_idempotency_keys_order_id", IdempotencyKey.order_id)

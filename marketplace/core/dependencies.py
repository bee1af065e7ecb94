"""依赖注入配置模块"""

import logging
from typing import Optional

from fastapi import Depends, Header, Request

# 数据库会话依赖
from marketplace.db.session import SessionLocal
from sqlalchemy.orm import Session

# Redis 依赖
from marketplace.core.redis import redis_client, redlock

from marketplace.core.exceptions import NotAuthenticated, ValidationError
from marketplace.schemas.auth import Actor, Role
from marketplace.services.cart_service import CartService
from marketplace.services.catalog_service import CatalogService
from marketplace.services.gateways import build_gateways
from marketplace.services.inventory_ledger import InventoryLedger
from marketplace.services.order_service import OrderService
from marketplace.services.order_state import OrderStateMachine
from marketplace.services.payment_reconciler import PaymentReconciler

logger = logging.getLogger(__name__)


def get_db() -> Session:
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis():
    """获取 Redis 客户端，不可用时返回 None（跳过缓存）"""
    try:
        redis_client.ping()
        return redis_client
    except Exception as e:
        logger.warning(f"⚠️  Redis 不可用，跳过缓存: {e}")
        return None


def get_redlock(redis = Depends(get_redis)):
    """获取 Redlock 分布式锁实例，Redis 不可用时返回 None（由数据库原子更新兜底）"""
    if redis is None or not getattr(redlock, "servers", None):
        return None
    return redlock


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """认证上下文：由上游认证网关写入 X-User-Id / X-User-Role"""
    if not x_user_id:
        raise NotAuthenticated()
    try:
        role = Role(x_user_role or Role.CUSTOMER.value)
    except ValueError:
        raise ValidationError(f"未知的用户角色: {x_user_role}")
    return Actor(user_id=x_user_id, role=role)


def get_inventory_ledger(
    db: Session = Depends(get_db),
    redis = Depends(get_redis),
    rlock = Depends(get_redlock)
) -> InventoryLedger:
    """获取库存账本实例（依赖注入）"""
    return InventoryLedger(db=db, redis=redis, rlock=rlock)


def get_gateways():
    """支付网关适配器（密钥取自配置）"""
    return build_gateways()


async def get_raw_body(request: Request) -> bytes:
    """Webhook 原始报文，验签必须基于未经解析的字节"""
    return await request.body()


def get_order_service(
    db: Session = Depends(get_db),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
    gateways = Depends(get_gateways),
) -> OrderService:
    """获取订单服务实例（依赖注入）"""
    state = OrderStateMachine(ledger)
    return OrderService(
        db=db,
        ledger=ledger,
        catalog=CatalogService(db),
        carts=CartService(db),
        state_machine=state,
        reconciler=PaymentReconciler(db, state, rlock=ledger.rlock, gateways=gateways),
    )


# 常用的依赖注入别名
DatabaseDep = Depends(get_db)
ActorDep = Depends(get_current_actor)
InventoryLedgerDep = Depends(get_inventory_ledger)
OrderServiceDep = Depends(get_order_service)
RawBodyDep = Depends(get_raw_body)

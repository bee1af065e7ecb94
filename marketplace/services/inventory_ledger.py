"""库存账本实现

所有库存变更都通过单条带条件的 UPDATE 完成（available_stock >= 数量），
数据库保证同一商品的并发预占不会出现丢失更新或负库存。
账本方法只 flush 不提交，事务由调用方（订单服务）统一提交。
"""

from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from redis import Redis
from redlock import Redlock
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.exceptions import InsufficientStock, ProductNotFound, ValidationError
from marketplace.models.product_stocks import ProductStock
from marketplace.models.inventory_reservations import InventoryReservation, ReservationStatus
from marketplace.models.inventory_logs import InventoryLog, ChangeType
from marketplace.services.locking import inventory_lock_key, redlock_guard

logger = logging.getLogger(__name__)


def stock_cache_key(product_id: int) -> str:
    return f"stock:available:{product_id}"


class InventoryLedger:
    """库存账本：按商品原子预占 / 释放"""

    def __init__(self, db: Session, redis: Redis = None, rlock: Redlock = None):
        self.db = db
        self.redis = redis
        self.rlock = rlock
        self._touched = set()

    @contextmanager
    def product_locks(self, product_ids: Iterable[int]):
        """获取涉及商品的分布式锁，覆盖到调用方提交事务为止"""
        with redlock_guard(self.rlock, [inventory_lock_key(pid) for pid in product_ids]):
            yield

    # ==================== 查询 ====================

    def _available(self, product_id: int) -> Optional[int]:
        return self.db.execute(
            select(ProductStock.available_stock).where(ProductStock.product_id == product_id)
        ).scalar_one_or_none()

    def get_available(self, product_id: int) -> int:
        """查询商品可用库存（带缓存，仅用于展示）

        缓存可能短暂过期：读请求在另一事务提交之后、invalidate_cache 之前
        回填旧值时，旧值最多保留 STOCK_CACHE_TTL 秒。预占从不读缓存，
        始终以数据库条件更新为准。
        """
        cache_key = stock_cache_key(product_id)

        # 先查缓存
        if self.redis:
            cached = self.redis.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for product {product_id}")
                return int(cached)

        # 缓存未命中，查询数据库
        available = self._available(product_id)
        if available is None:
            raise ProductNotFound(product_id)

        if self.redis:
            self.redis.setex(cache_key, settings.STOCK_CACHE_TTL, available)
            logger.debug(f"Cache set for product {product_id}: {available}")

        return available

    def batch_get_available(self, product_ids: Sequence[int]) -> Dict[int, int]:
        """批量获取可用库存（带缓存），不存在的商品记为 0"""
        if not product_ids:
            return {}

        results = {}
        uncached_ids = []

        if self.redis:
            cached_values = self.redis.mget([stock_cache_key(pid) for pid in product_ids])
            for pid, cached in zip(product_ids, cached_values):
                if cached is not None:
                    results[pid] = int(cached)
                else:
                    uncached_ids.append(pid)
        else:
            uncached_ids = list(product_ids)

        if uncached_ids:
            rows = self.db.execute(
                select(ProductStock.product_id, ProductStock.available_stock)
                .where(ProductStock.product_id.in_(uncached_ids))
            ).all()
            stock_map = {row.product_id: row.available_stock for row in rows}

            pipe = self.redis.pipeline() if self.redis else None
            for pid in uncached_ids:
                available = stock_map.get(pid, 0)
                results[pid] = available
                if pipe is not None and pid in stock_map:
                    pipe.setex(stock_cache_key(pid), settings.STOCK_CACHE_TTL, available)
            if pipe is not None:
                pipe.execute()

        return results

    # ==================== 变更 ====================

    def reserve(self, product_id: int, quantity: int, order_id: str = None,
                source: str = "order_service") -> int:
        """原子扣减可用库存，返回扣减后的可用库存"""
        if quantity <= 0:
            raise ValidationError("预占数量必须大于0", product_id=product_id, quantity=quantity)

        result = self.db.execute(
            update(ProductStock)
            .where(
                ProductStock.product_id == product_id,
                ProductStock.available_stock >= quantity,
            )
            .values(
                available_stock=ProductStock.available_stock - quantity,
                reserved_stock=ProductStock.reserved_stock + quantity,
                version=ProductStock.version + 1,
            )
        )

        if result.rowcount != 1:
            available = self._available(product_id)
            if available is None:
                raise ProductNotFound(product_id)
            logger.warning(
                f"库存不足: product_id={product_id}, 需要 {quantity}, 可用 {available}"
            )
            raise InsufficientStock(product_id, quantity, available)

        after = self._available(product_id)
        self._log(ChangeType.RESERVE, product_id, -quantity, after + quantity, after, order_id, source)
        self._touched.add(product_id)
        logger.info(f"预占库存成功: order_id={order_id}, product_id={product_id}, quantity={quantity}")
        return after

    def release(self, product_id: int, quantity: int, order_id: str = None,
                source: str = "cancel") -> bool:
        """原子归还库存；商品已被删除时记录警告并跳过"""
        result = self.db.execute(
            update(ProductStock)
            .where(ProductStock.product_id == product_id)
            .values(
                available_stock=ProductStock.available_stock + quantity,
                reserved_stock=ProductStock.reserved_stock - quantity,
                version=ProductStock.version + 1,
            )
        )

        if result.rowcount != 1:
            logger.warning(
                f"释放库存跳过，商品不存在: order_id={order_id}, product_id={product_id}, quantity={quantity}"
            )
            return False

        after = self._available(product_id)
        self._log(ChangeType.RELEASE, product_id, quantity, after - quantity, after, order_id, source)
        self._touched.add(product_id)
        logger.info(f"释放库存成功: order_id={order_id}, product_id={product_id}, quantity={quantity}")
        return True

    def reserve_batch(self, order_id: str, items: Iterable[Tuple[int, int]]) -> List[InventoryReservation]:
        """批量预占：任一商品失败时回滚本批次已成功的预占，再抛出异常"""
        # 同一商品合并为一条预占
        merged = {}
        for product_id, quantity in items:
            if quantity <= 0:
                raise ValidationError("预占数量必须大于0", product_id=product_id, quantity=quantity)
            merged[product_id] = merged.get(product_id, 0) + quantity
        lines = list(merged.items())

        done = []
        try:
            for product_id, quantity in lines:
                self.reserve(product_id, quantity, order_id=order_id)
                done.append((product_id, quantity))
        except (InsufficientStock, ProductNotFound) as e:
            for product_id, quantity in reversed(done):
                self.release(product_id, quantity, order_id=order_id, source="rollback")
            logger.error(f"批量预占失败，已回滚 {len(done)} 项: order_id={order_id}, error={e.detail}")
            raise

        reservations = [
            InventoryReservation(
                order_id=order_id,
                product_id=product_id,
                quantity=quantity,
                status=ReservationStatus.RESERVED,
            )
            for product_id, quantity in lines
        ]
        self.db.add_all(reservations)
        self.db.flush()
        return reservations

    def _reserved_for(self, order_id: str) -> List[InventoryReservation]:
        return self.db.execute(
            select(InventoryReservation)
            .where(
                InventoryReservation.order_id == order_id,
                InventoryReservation.status == ReservationStatus.RESERVED,
            )
            .order_by(InventoryReservation.id)
            .with_for_update()
        ).scalars().all()

    def release_order(self, order_id: str, source: str = "cancel") -> int:
        """归还订单全部仍处于 RESERVED 的预占；重复调用不会重复归还"""
        reservations = self._reserved_for(order_id)
        for reservation in reservations:
            self.release(reservation.product_id, reservation.quantity, order_id=order_id, source=source)
            reservation.status = ReservationStatus.RELEASED
        self.db.flush()
        logger.info(f"订单预占已释放: order_id={order_id}, count={len(reservations)}")
        return len(reservations)

    def confirm_order(self, order_id: str) -> int:
        """订单送达：预占转为正式消耗，可用库存不变"""
        reservations = self._reserved_for(order_id)
        for reservation in reservations:
            result = self.db.execute(
                update(ProductStock)
                .where(ProductStock.product_id == reservation.product_id)
                .values(
                    reserved_stock=ProductStock.reserved_stock - reservation.quantity,
                    version=ProductStock.version + 1,
                )
            )
            if result.rowcount == 1:
                available = self._available(reservation.product_id)
                self._log(ChangeType.CONFIRM, reservation.product_id, 0, available, available,
                          order_id, "delivery")
            else:
                logger.warning(f"确认库存跳过，商品不存在: product_id={reservation.product_id}")
            reservation.status = ReservationStatus.CONFIRMED
        self.db.flush()
        logger.info(f"确认库存成功: order_id={order_id}, count={len(reservations)}")
        return len(reservations)

    def invalidate_cache(self) -> None:
        """事务提交后失效涉及商品的库存缓存"""
        if self.redis:
            for product_id in self._touched:
                self.redis.delete(stock_cache_key(product_id))
                logger.debug(f"Cache invalidated for product {product_id}")
        self._touched.clear()

    def _log(self, change_type: ChangeType, product_id: int, quantity: int,
             before: int, after: int, order_id: Optional[str], source: str) -> None:
        self.db.add(InventoryLog(
            product_id=product_id,
            order_id=order_id,
            change_type=change_type,
            quantity=quantity,
            before_available=before,
            after_available=after,
            operator=f"order_service_{order_id}" if order_id else "system",
            source=source,
        ))

"""购物车协作接口：下单成功后清空购物车"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.models.cart import Cart

logger = logging.getLogger(__name__)


class CartService:

    def __init__(self, db: Session):
        self.db = db

    def clear_cart(self, user_id: str) -> int:
        """清空用户购物车，返回移除的商品项数量；不提交事务"""
        cart = self.db.execute(
            select(Cart).where(Cart.user_id == user_id)
        ).scalar_one_or_none()
        if cart is None:
            return 0
        removed = len(cart.items)
        cart.items.clear()
        logger.debug(f"购物车已清空: user_id={user_id}, removed={removed}")
        return removed

"""商品目录查询（只读），订单服务通过它获取价格和店铺归属"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.core.exceptions import ProductNotFound
from marketplace.models.product import Product
from marketplace.models.product_stocks import ProductStock
from marketplace.models.store import Store


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    price: Decimal
    stock: int
    store_id: int


class CatalogService:

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductSnapshot:
        row = self.db.execute(
            select(
                Product.id,
                Product.name,
                Product.price,
                Product.store_id,
                ProductStock.available_stock,
            )
            .outerjoin(ProductStock, ProductStock.product_id == Product.id)
            .where(Product.id == product_id)
        ).one_or_none()
        if row is None:
            raise ProductNotFound(product_id)
        return ProductSnapshot(
            id=row.id,
            name=row.name,
            price=Decimal(row.price),
            stock=row.available_stock or 0,
            store_id=row.store_id,
        )

    def store_owner_ids(self, product_ids: Iterable[int]) -> Set[str]:
        """订单商品所属店铺的店主ID集合"""
        ids = list(product_ids)
        if not ids:
            return set()
        rows = self.db.execute(
            select(Store.owner_id)
            .join(Product, Product.store_id == Store.id)
            .where(Product.id.in_(ids))
        ).scalars().all()
        return set(rows)

    def product_ids_for_owner(self, owner_id: str) -> List[int]:
        return list(self.db.execute(
            select(Product.id)
            .join(Store, Product.store_id == Store.id)
            .where(Store.owner_id == owner_id)
        ).scalars().all())

"""模型单元测试（SQLite）"""
import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from marketplace.models.store import Store
from marketplace.models.product import Product
from marketplace.models.product_stocks import ProductStock
from marketplace.models.inventory_reservations import InventoryReservation, ReservationStatus
from marketplace.models.inventory_logs import InventoryLog, ChangeType
from marketplace.models.idempotency_keys import IdempotencyKey, IdempotencyStatus
from marketplace.models.order import Order, OrderItem, OrderStatus, new_order_id


def make_order(**kwargs):
    values = dict(
        id=new_order_id(),
        user_id="user-1",
        shipping_address={"city": "Lagos"},
        payment_method="paystack",
        items_price=Decimal("40.00"),
        tax_price=Decimal("6.00"),
        shipping_price=Decimal("10.00"),
        total_price=Decimal("56.00"),
    )
    values.update(kwargs)
    return Order(**values)


class TestModels:
    """数据模型测试类"""

    def test_product_model(self, db_session, store):
        """测试商品模型"""
        product = Product(store_id=store.id, sku="PROD001", name="测试商品", price=Decimal("9.99"))
        db_session.add(product)
        db_session.commit()

        saved_product = db_session.query(Product).first()
        assert saved_product.id is not None
        assert saved_product.sku == "PROD001"
        assert saved_product.price == Decimal("9.99")
        assert saved_product.created_at is not None
        assert saved_product.store.owner_id == "seller-1"

    def test_product_stock_model(self, db_session, store):
        """测试商品库存模型"""
        product = Product(store_id=store.id, sku="PROD001", name="测试商品", price=Decimal("1.00"))
        db_session.add(product)
        db_session.flush()

        db_session.add(ProductStock(product_id=product.id, available_stock=100, reserved_stock=10))
        db_session.commit()

        saved_stock = db_session.query(ProductStock).first()
        assert saved_stock.available_stock == 100
        assert saved_stock.reserved_stock == 10
        assert saved_stock.version == 0
        assert saved_stock.product.sku == "PROD001"
        assert product.stock is saved_stock

    def test_negative_stock_rejected(self, db_session, store):
        """测试检查约束：可用库存不能为负"""
        product = Product(store_id=store.id, sku="PROD001", name="测试商品", price=Decimal("1.00"))
        db_session.add(product)
        db_session.flush()

        db_session.add(ProductStock(product_id=product.id, available_stock=-5, reserved_stock=0))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_reservation_unique_per_order_product(self, db_session):
        """测试同一订单同一商品只能有一条预占"""
        db_session.add(InventoryReservation(order_id="ORDER001", product_id=1, quantity=2))
        db_session.commit()

        db_session.add(InventoryReservation(order_id="ORDER001", product_id=1, quantity=3))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_reservation_defaults(self, db_session):
        db_session.add(InventoryReservation(order_id="ORDER001", product_id=1, quantity=2))
        db_session.commit()

        saved = db_session.query(InventoryReservation).first()
        assert saved.status == ReservationStatus.RESERVED
        assert saved.created_at is not None

    def test_inventory_log_model(self, db_session):
        """测试库存日志模型"""
        db_session.add(InventoryLog(
            product_id=1,
            order_id="ORDER001",
            change_type=ChangeType.RELEASE,
            quantity=2,
            before_available=8,
            after_available=10,
            operator="order_service_ORDER001",
            source="cancel",
        ))
        db_session.commit()

        saved_log = db_session.query(InventoryLog).first()
        assert saved_log.change_type == ChangeType.RELEASE
        assert saved_log.after_available == 10
        assert saved_log.source == "cancel"
        assert saved_log.created_at is not None

    def test_idempotency_key_unique(self, db_session):
        """测试幂等键主键唯一"""
        db_session.add(IdempotencyKey(key="paystack:1:succeeded", gateway="paystack", order_id="a" * 32,
                                      response_snapshot={"amount": "56.00"}))
        db_session.commit()
        assert db_session.get(IdempotencyKey, "paystack:1:succeeded").status == IdempotencyStatus.SUCCESS

        db_session.expunge_all()
        db_session.add(IdempotencyKey(key="paystack:1:succeeded", gateway="paystack", order_id="a" * 32))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_order_with_items(self, db_session):
        """测试订单及明细"""
        order = make_order(items=[
            OrderItem(product_id=1, name_snapshot="商品A", quantity=2, unit_price=Decimal("20.00")),
            OrderItem(product_id=2, name_snapshot="商品B", quantity=1, unit_price=Decimal("5.00")),
        ])
        db_session.add(order)
        db_session.commit()
        db_session.expunge_all()

        saved = db_session.get(Order, order.id)
        assert saved.status == OrderStatus.PENDING
        assert saved.is_paid is False
        assert saved.product_ids == [1, 2]
        assert saved.shipping_address == {"city": "Lagos"}
        assert saved.payment_result is None
        assert saved.total_price == Decimal("56.00")

    def test_order_payment_result(self):
        order = make_order(payment_gateway="paystack", payment_txn_id="T1", payment_status="completed",
                           payer_email="buyer@example.com")
        assert order.payment_result["id"] == "T1"
        assert order.payment_result["gateway"] == "paystack"
        assert order.payment_result["email_address"] == "buyer@example.com"

    def test_order_item_quantity_positive(self, db_session):
        db_session.add(make_order(items=[
            OrderItem(product_id=1, name_snapshot="商品A", quantity=0, unit_price=Decimal("1.00")),
        ]))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_new_order_id(self):
        order_id = new_order_id()
        assert len(order_id) == 32
        assert "_" not in order_id
        assert new_order_id() != order_id

    def test_store_products(self, db_session, store, product_a, product_c):
        db_session.expire(store)
        assert sorted(p.sku for p in store.products) == ["SKU-A", "SKU-C"]

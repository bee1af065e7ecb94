"""测试配置和 fixtures"""
from decimal import Decimal
from datetime import datetime, timezone

import json

import httpx
import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from redis import Redis
from redlock import Redlock

from marketplace.core.dependencies import get_db, get_gateways, get_redis, get_redlock
from marketplace.db.base import Base
import marketplace.models  # noqa: F401  注册所有模型
from marketplace.models.store import Store
from marketplace.models.product import Product
from marketplace.models.product_stocks import ProductStock
from marketplace.models.cart import Cart, CartItem
from marketplace.schemas.auth import Actor, Role
from marketplace.schemas.payment import PaymentEvent, PaymentOutcome
from marketplace.services.cart_service import CartService
from marketplace.services.catalog_service import CatalogService
from marketplace.services.gateways import PaystackAdapter, StripeAdapter
from marketplace.services.paystack_client import PaystackClient
from marketplace.services.inventory_ledger import InventoryLedger
from marketplace.services.order_service import OrderService
from marketplace.services.order_state import OrderStateMachine
from marketplace.services.payment_reconciler import PaymentReconciler, build_reference
from marketplace.main import app

PAYSTACK_SECRET = "sk_test_paystack"
STRIPE_SECRET = "whsec_test_stripe"


@pytest.fixture
def engine():
    """内存 SQLite，所有连接共享同一个数据库"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db_session(engine):
    """创建测试数据库会话"""
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def mock_redis():
    """创建模拟 Redis 客户端"""
    redis_mock = Mock(spec=Redis)
    redis_mock.get.return_value = None
    redis_mock.setex.return_value = True
    redis_mock.delete.return_value = 1
    redis_mock.mget.return_value = [None, None]
    redis_mock.pipeline.return_value = Mock()
    return redis_mock


@pytest.fixture
def mock_redlock():
    """创建模拟 Redlock 分布式锁"""
    redlock_mock = Mock(spec=Redlock)
    lock_mock = Mock()
    redlock_mock.lock.return_value = lock_mock
    redlock_mock.unlock.return_value = True
    return redlock_mock


# ==================== 示例数据 ====================

@pytest.fixture
def store(db_session):
    store = Store(owner_id="seller-1", name="测试店铺")
    db_session.add(store)
    db_session.commit()
    return store


def add_product(db_session, store, sku, name, price, stock):
    product = Product(store_id=store.id, sku=sku, name=name, price=Decimal(price))
    db_session.add(product)
    db_session.flush()
    db_session.add(ProductStock(product_id=product.id, available_stock=stock,
                                reserved_stock=0, version=0))
    db_session.commit()
    return product


@pytest.fixture
def product_a(db_session, store):
    """商品A：单价 20.00，库存 5"""
    return add_product(db_session, store, "SKU-A", "商品A", "20.00", 5)


@pytest.fixture
def product_b(db_session, store):
    """商品B：单价 50.00，库存 0"""
    return add_product(db_session, store, "SKU-B", "商品B", "50.00", 0)


@pytest.fixture
def product_c(db_session, store):
    """商品C：单价 35.00，库存 10"""
    return add_product(db_session, store, "SKU-C", "商品C", "35.00", 10)


@pytest.fixture
def cart(db_session, product_a):
    cart = Cart(user_id="user-1", items=[CartItem(product_id=product_a.id, quantity=2)])
    db_session.add(cart)
    db_session.commit()
    return cart


def available_of(db_session, product_id):
    stock = db_session.get(ProductStock, product_id, populate_existing=True)
    return stock.available_stock


def reserved_of(db_session, product_id):
    stock = db_session.get(ProductStock, product_id, populate_existing=True)
    return stock.reserved_stock


@pytest.fixture
def customer():
    return Actor(user_id="user-1", role=Role.CUSTOMER)


@pytest.fixture
def other_customer():
    return Actor(user_id="user-2", role=Role.CUSTOMER)


@pytest.fixture
def seller():
    return Actor(user_id="seller-1", role=Role.SELLER)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=Role.ADMIN)


# ==================== 服务 ====================

@pytest.fixture
def ledger(db_session):
    return InventoryLedger(db_session)


@pytest.fixture
def state_machine(ledger):
    return OrderStateMachine(ledger)


@pytest.fixture
def paystack_requests():
    """发往 Paystack API 的请求记录"""
    return []


@pytest.fixture
def paystack_transport(paystack_requests):
    """模拟 Paystack transaction/initialize 接口"""
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        paystack_requests.append((request, payload))
        return httpx.Response(200, json={
            "status": True,
            "message": "Authorization URL created",
            "data": {
                "authorization_url": f"https://checkout.paystack.com/{payload['reference'][-8:]}",
                "access_code": "ac_test_123",
                "reference": payload["reference"],
            },
        })

    return httpx.MockTransport(handler)


@pytest.fixture
def gateways(paystack_transport):
    return {
        "paystack": PaystackAdapter(
            PAYSTACK_SECRET,
            client=PaystackClient(PAYSTACK_SECRET, base_url="https://api.paystack.test", transport=paystack_transport),
        ),
        "stripe": StripeAdapter(STRIPE_SECRET, tolerance=300, api_key="sk_test_stripe"),
    }


@pytest.fixture
def reconciler(db_session, state_machine, gateways):
    return PaymentReconciler(db_session, state_machine, gateways=gateways)


@pytest.fixture
def order_service(db_session, ledger, state_machine, reconciler):
    return OrderService(
        db=db_session,
        ledger=ledger,
        catalog=CatalogService(db_session),
        carts=CartService(db_session),
        state_machine=state_machine,
        reconciler=reconciler,
    )


@pytest.fixture
def shipping_address():
    return {"street": "1 Main St", "city": "Lagos", "state": "LA", "zip_code": "100001", "country": "NG"}


@pytest.fixture
def pending_order(order_service, customer, product_a, shipping_address):
    """下单：商品A x2（库存 5 -> 3），金额 40 + 6 + 10 = 56.00"""
    return order_service.place_order(
        customer,
        [{"product_id": product_a.id, "quantity": 2}],
        shipping_address,
        "paystack",
    )


def make_event(order, txn="txn_1", outcome=PaymentOutcome.SUCCEEDED, amount=None,
               gateway="paystack", occurred_at=None):
    return PaymentEvent(
        gateway_name=gateway,
        reference=build_reference(order.id),
        external_transaction_id=txn,
        outcome=outcome,
        amount=amount,
        payer_email="buyer@example.com",
        occurred_at=occurred_at or datetime.now(timezone.utc),
    )


# ==================== HTTP ====================

@pytest.fixture
def client(db_session, gateways):
    """创建测试客户端：数据库替换为测试会话，关闭 Redis 缓存和分布式锁，网关使用测试密钥"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: None
    app.dependency_overrides[get_redlock] = lambda: None
    app.dependency_overrides[get_gateways] = lambda: gateways
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(actor):
    return {"X-User-Id": actor.user_id, "X-User-Role": actor.role.value}

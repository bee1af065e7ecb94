"""依赖注入单元测试"""
import pytest
from unittest.mock import Mock, patch
from sqlalchemy.orm import Session
from redis import Redis
from redlock import Redlock

from marketplace.core.dependencies import (
    get_db,
    get_redis,
    get_redlock,
    get_current_actor,
    get_inventory_ledger,
    get_gateways,
    get_order_service,
)
from marketplace.core.exceptions import NotAuthenticated, ValidationError
from marketplace.schemas.auth import Role
from marketplace.services.cart_service import CartService
from marketplace.services.catalog_service import CatalogService
from marketplace.services.inventory_ledger import InventoryLedger
from marketplace.services.order_service import OrderService


class TestDependencies:
    """依赖注入测试类"""

    def test_get_db(self):
        """测试数据库会话依赖"""
        with patch('marketplace.core.dependencies.SessionLocal') as mock_session_local:
            db_mock = Mock(spec=Session)
            mock_session_local.return_value = db_mock

            # 获取生成器
            gen = get_db()
            db = next(gen)

            assert db == db_mock
            mock_session_local.assert_called_once()

            # 测试清理
            gen.close()
            db_mock.close.assert_called_once()

    def test_get_redis_success(self):
        """测试 Redis 连接成功"""
        with patch('marketplace.core.dependencies.redis_client') as mock_redis_client:
            mock_redis_client.ping.return_value = True

            assert get_redis() == mock_redis_client
            mock_redis_client.ping.assert_called_once()

    def test_get_redis_failure(self):
        """测试 Redis 连接失败"""
        with patch('marketplace.core.dependencies.redis_client') as mock_redis_client:
            mock_redis_client.ping.side_effect = Exception("连接失败")

            # 连接失败应该返回 None
            assert get_redis() is None

    def test_get_redlock_success(self):
        """测试 Redlock 可用"""
        with patch('marketplace.core.dependencies.redlock') as mock_redlock:
            mock_redlock.servers = [Mock()]  # 模拟有服务器配置

            assert get_redlock(Mock(spec=Redis)) == mock_redlock

    def test_get_redlock_without_servers(self):
        """测试 Redlock 无服务器配置"""
        with patch('marketplace.core.dependencies.redlock') as mock_redlock:
            mock_redlock.servers = []

            assert get_redlock(Mock(spec=Redis)) is None

    def test_get_redlock_without_redis(self):
        """测试 Redis 不可用时不使用分布式锁"""
        with patch('marketplace.core.dependencies.redlock') as mock_redlock:
            mock_redlock.servers = [Mock()]

            assert get_redlock(None) is None

    def test_get_current_actor(self):
        actor = get_current_actor(x_user_id="seller-1", x_user_role="seller")
        assert actor.user_id == "seller-1"
        assert actor.role == Role.SELLER
        assert actor.is_seller

    def test_get_current_actor_default_role(self):
        actor = get_current_actor(x_user_id="user-1", x_user_role=None)
        assert actor.role == Role.CUSTOMER
        assert not actor.is_admin

    def test_get_current_actor_missing_user(self):
        with pytest.raises(NotAuthenticated) as exc_info:
            get_current_actor(x_user_id=None, x_user_role="admin")
        assert exc_info.value.status_code == 401

    def test_get_current_actor_unknown_role(self):
        with pytest.raises(ValidationError):
            get_current_actor(x_user_id="user-1", x_user_role="root")

    def test_get_inventory_ledger(self):
        """测试库存账本依赖注入"""
        db_mock = Mock(spec=Session)
        redis_mock = Mock(spec=Redis)
        redlock_mock = Mock(spec=Redlock)

        ledger = get_inventory_ledger(db=db_mock, redis=redis_mock, rlock=redlock_mock)

        assert isinstance(ledger, InventoryLedger)
        assert ledger.db == db_mock
        assert ledger.redis == redis_mock
        assert ledger.rlock == redlock_mock

    def test_get_inventory_ledger_partial_deps(self):
        """测试 Redis 不可用时的账本创建"""
        db_mock = Mock(spec=Session)

        ledger = get_inventory_ledger(db=db_mock, redis=None, rlock=None)

        assert isinstance(ledger, InventoryLedger)
        assert ledger.redis is None
        assert ledger.rlock is None

    def test_get_order_service(self):
        """测试订单服务依赖注入：协作者共享同一个会话"""
        db_mock = Mock(spec=Session)
        redlock_mock = Mock(spec=Redlock)
        ledger = InventoryLedger(db_mock, rlock=redlock_mock)

        gateways = {}

        service = get_order_service(db=db_mock, ledger=ledger, gateways=gateways)

        assert isinstance(service, OrderService)
        assert service.ledger is ledger
        assert isinstance(service.catalog, CatalogService)
        assert isinstance(service.carts, CartService)
        assert service.catalog.db is db_mock
        assert service.state.ledger is ledger
        assert service.reconciler.db is db_mock
        assert service.reconciler.rlock is redlock_mock
        assert service.rlock is redlock_mock
        assert service.reconciler.gateways == {}

    def test_get_gateways(self):
        gateways = get_gateways()
        assert set(gateways) == {"paystack", "stripe"}


class TestRedlockServers:
    """Redlock 节点解析测试"""

    @pytest.fixture(autouse=True)
    def timeouts(self, monkeypatch):
        from marketplace.core import redis as redis_module
        monkeypatch.setattr(redis_module.settings, "REDIS_CONNECT_TIMEOUT", 0.5)
        monkeypatch.setattr(redis_module.settings, "REDIS_SOCKET_TIMEOUT", 2.0)

    def test_single_host_defaults(self, monkeypatch):
        from marketplace.core import redis as redis_module
        monkeypatch.setattr(redis_module.settings, "REDIS_HOST", "cache")
        monkeypatch.setattr(redis_module.settings, "REDIS_PORT", 6380)
        monkeypatch.setattr(redis_module.settings, "REDIS_DB", 2)

        assert redis_module.redlock_servers("") == [{
            "host": "cache", "port": 6380, "db": 2,
            "socket_connect_timeout": 0.5, "socket_timeout": 2.0,
        }]

    def test_multiple_hosts_with_ports(self, monkeypatch):
        from marketplace.core import redis as redis_module
        monkeypatch.setattr(redis_module.settings, "REDIS_PORT", 6379)
        monkeypatch.setattr(redis_module.settings, "REDIS_DB", 0)

        servers = redis_module.redlock_servers("r1:7000, r2 ,")

        assert servers == [
            {"host": "r1", "port": 7000, "db": 0, "socket_connect_timeout": 0.5, "socket_timeout": 2.0},
            {"host": "r2", "port": 6379, "db": 0, "socket_connect_timeout": 0.5, "socket_timeout": 2.0},
        ]


class TestRedisClient:
    """Redis 客户端配置测试"""

    def test_redis_client_timeouts(self):
        """Redis 不可达时命令在超时后失败，不会无限阻塞工作线程"""
        from marketplace.core.config import settings
        from marketplace.core.redis import redis_client

        kwargs = redis_client.connection_pool.connection_kwargs
        assert kwargs["socket_connect_timeout"] == settings.REDIS_CONNECT_TIMEOUT
        assert kwargs["socket_timeout"] == settings.REDIS_SOCKET_TIMEOUT

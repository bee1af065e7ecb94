import os
from decimal import Decimal
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # 数据库配置
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "123456")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "marketplace")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "20"))

    # Redis 配置
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    # Redlock 节点，逗号分隔的 host[:port]，为空时只用 REDIS_HOST
    REDIS_HOSTS: str = os.getenv("REDIS_HOSTS", "")
    # 连接 / 读写超时（秒），Redis 不可达时请求不会无限等待
    REDIS_CONNECT_TIMEOUT: float = float(os.getenv("REDIS_CONNECT_TIMEOUT", "1.0"))
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "1.0"))

    # 日志
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # 启动时建表（开发环境），生产环境走迁移
    AUTO_CREATE_TABLES: bool = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    # 分布式锁 / 库存缓存
    LOCK_TTL_MS: int = int(os.getenv("LOCK_TTL_MS", "10000"))
    STOCK_CACHE_TTL: int = int(os.getenv("STOCK_CACHE_TTL", "300"))

    # 订单计价（服务端重新计算，不信任客户端金额）
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.15"))
    FREE_SHIPPING_THRESHOLD: Decimal = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "100"))
    SHIPPING_FLAT_RATE: Decimal = Decimal(os.getenv("SHIPPING_FLAT_RATE", "10"))

    # 支付网关
    PAYMENT_CURRENCY: str = os.getenv("PAYMENT_CURRENCY", "USD")
    PAYSTACK_SECRET_KEY: str = os.getenv("PAYSTACK_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_SIGNATURE_TOLERANCE: int = int(os.getenv("STRIPE_SIGNATURE_TOLERANCE", "300"))
    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
    PAYSTACK_API_BASE_URL: str = os.getenv("PAYSTACK_API_BASE_URL", "https://api.paystack.co")
    PAYSTACK_CALLBACK_URL: str = os.getenv("PAYSTACK_CALLBACK_URL", "")
    GATEWAY_TIMEOUT: float = float(os.getenv("GATEWAY_TIMEOUT", "30"))

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg://"
            f"{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

settings = Settings()

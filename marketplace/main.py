from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.dependencies import DatabaseDep, get_redis
from marketplace.core.handlers import register_exception_handlers
from marketplace.core.redis import redis_client
from marketplace.db.session import engine, init_db
from marketplace.routers import order_router, payment_router, stock_router
from marketplace.schemas.base import HealthCheckResponse

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("订单对账服务启动中...")

    # 数据库不可用时直接启动失败
    try:
        if settings.AUTO_CREATE_TABLES:
            init_db()
            logger.info("✅ 数据表已就绪")
        else:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        logger.info("✅ 数据库连接成功")
    except Exception as e:
        logger.error("❌ 数据库连接失败: %s", e)
        raise

    # Redis 只承担缓存和分布式锁，不可用时降级运行
    try:
        redis_client.ping()
        logger.info("✅ Redis 连接成功")
    except Exception as e:
        logger.warning(f"⚠️  Redis 连接失败，将在无缓存、无分布式锁模式下运行: {e}")

    yield

    logger.info("订单对账服务已停止")


app = FastAPI(
    title="订单对账服务 API",
    description="多租户电商订单、支付与库存对账服务，保证不超卖、不重复记账",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (order_router, payment_router, stock_router):
    app.include_router(module.router, prefix="/api/v1")

register_exception_handlers(app)


@app.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = DatabaseDep, redis=Depends(get_redis)):
    """健康检查：数据库不可达时 status 为 degraded"""
    try:
        db.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.warning(f"健康检查数据库失败: {e}")
        database_ok = False

    return HealthCheckResponse(
        status="healthy" if database_ok else "degraded",
        database=database_ok,
        redis=redis is not None,
    )


@app.get("/")
async def read_root():
    return {
        "message": "欢迎使用订单对账服务",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run("marketplace.main:app", host="0.0.0.0", port=8000, reload=True)

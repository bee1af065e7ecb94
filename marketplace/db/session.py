from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from marketplace.core.config import settings

engine = create_engine(
    settings.database_url,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_recycle=1800,
)

# 提交后对象保持可读，路由在 commit 之后序列化订单
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db():
    """按模型建表，已存在的表跳过"""
    from marketplace.db.base import Base
    import marketplace.models  # noqa: F401

    Base.metadata.create_all(bind=engine)

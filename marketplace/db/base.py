from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite 只对 INTEGER PRIMARY KEY 自增，测试环境下退化为 Integer
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

# PostgreSQL 使用 JSONB，其它方言使用通用 JSON
JSONType = JSON().with_variant(JSONB(), "postgresql")

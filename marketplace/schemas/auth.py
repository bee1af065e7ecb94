"""认证上下文：由上游认证网关注入，本服务只消费 {user_id, role}"""

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"


class Actor(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_seller(self) -> bool:
        return self.role == Role.SELLER

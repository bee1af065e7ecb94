"""可售库存查询模型"""

from typing import Dict, List

from pydantic import BaseModel, Field

from marketplace.schemas.base import BaseResponse

# 与 Redis mget 单批上限保持一致
MAX_BATCH_PRODUCTS = 100


class BatchStockQueryRequest(BaseModel):
    product_ids: List[int] = Field(
        ...,
        min_length=1,
        max_length=MAX_BATCH_PRODUCTS,
        description="商品ID列表，未知商品按 0 返回",
        examples=[[1, 2, 3]],
    )


class StockResponse(BaseResponse):
    """单个商品可售库存（不含已预占部分）"""
    product_id: int
    available_stock: int = Field(..., ge=0)


class BatchStockResponse(BaseResponse):
    data: Dict[int, int] = Field(..., description="商品ID -> 可售库存")

"""可售库存查询路由

下单页和购物车页用它展示库存；读路径先走 Redis 缓存，
订单提交或取消后由订单服务失效对应商品的缓存。
"""

import logging

from fastapi import APIRouter, HTTPException, Path, Body

from marketplace.core.dependencies import InventoryLedgerDep
from marketplace.services.inventory_ledger import InventoryLedger
from marketplace.schemas.stock import BatchStockQueryRequest, StockResponse, BatchStockResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["库存查询"])


@router.get("/stock/{product_id}", response_model=StockResponse, summary="查询商品可售库存")
def get_stock(
    product_id: int = Path(..., gt=0, description="商品ID"),
    ledger: InventoryLedger = InventoryLedgerDep,
):
    try:
        return StockResponse(
            success=True,
            product_id=product_id,
            available_stock=ledger.get_available(product_id),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询商品 {product_id} 库存失败: {e}")
        raise HTTPException(status_code=500, detail="库存查询失败")


@router.post("/stock/batch", response_model=BatchStockResponse, summary="批量查询可售库存")
def batch_get_stocks(
    request: BatchStockQueryRequest = Body(...),
    ledger: InventoryLedger = InventoryLedgerDep,
):
    """单次最多 100 个商品，未知商品返回 0"""
    try:
        return BatchStockResponse(success=True, data=ledger.batch_get_available(request.product_ids))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"批量查询库存失败 product_ids={request.product_ids}: {e}")
        raise HTTPException(status_code=500, detail="库存查询失败")

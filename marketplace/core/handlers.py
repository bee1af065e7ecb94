"""全局异常处理：所有错误统一为 {"success": false, ...} 响应体"""

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from marketplace.core.exceptions import MarketplaceError

logger = logging.getLogger(__name__)


def _failure(status_code: int, message, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


async def handle_validation_error(request: Request, exc: RequestValidationError):
    logger.warning(f"请求参数验证失败 {request.method} {request.url.path}: {exc.errors()}")
    return _failure(422, "请求参数验证失败", code="validation_error", details=exc.errors())


async def handle_marketplace_error(request: Request, exc: MarketplaceError):
    # 业务错误按状态码分级记录，5xx 才算服务端问题
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"业务错误 {exc.code} {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_http_error(request: Request, exc: HTTPException):
    logger.error(f"HTTP 错误 {exc.status_code} {request.url.path}: {exc.detail}")
    return _failure(exc.status_code, exc.detail)


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"未处理异常 {request.method} {request.url.path}: {exc}", exc_info=True)
    return _failure(500, "服务器内部错误")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(MarketplaceError, handle_marketplace_error)
    app.add_exception_handler(HTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend import __version__
from backend.core.conf import settings
from backend.src.billing.shared.exceptions import BillingError

logger = logging.getLogger(__name__)


def register_logger() -> None:
    """配置日志"""
    logging.basicConfig(level=settings.LOG_STD_LEVEL, format=settings.LOG_FORMAT)


def register_middleware(app: FastAPI) -> None:
    """注册中间件"""
    if settings.MIDDLEWARE_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=['*'],
            allow_headers=['*'],
        )


def register_router(app: FastAPI) -> None:
    """注册路由"""
    from backend.app.router import router

    app.include_router(router)


def register_exception(app: FastAPI) -> None:
    """注册全局异常处理"""

    @app.exception_handler(BillingError)
    async def billing_exception_handler(request: Request, exc: BillingError):
        if exc.status_code >= 500:
            logger.error(f"[BILLING] {request.method} {request.url.path}: {exc.code} {exc.message}")
        else:
            logger.info(f"[BILLING] {request.method} {request.url.path}: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"[DATABASE] {request.method} {request.url.path} failed", exc_info=exc)
        return _internal_error()

    @app.exception_handler(Exception)
    async def all_unknown_exception_handler(request: Request, exc: Exception):
        logger.error(f"[APP] Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return _internal_error()


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={'error': 'INTERNAL_ERROR', 'message': 'Internal server error', 'details': {}},
    )


def register_app() -> FastAPI:
    """注册 FastAPI 应用"""
    register_logger()

    app = FastAPI(
        title=settings.FASTAPI_TITLE,
        version=__version__,
        description=settings.FASTAPI_DESCRIPTION,
        docs_url=settings.FASTAPI_DOCS_URL,
        redoc_url=settings.FASTAPI_REDOC_URL,
        openapi_url=settings.FASTAPI_OPENAPI_URL,
    )

    register_middleware(app)
    register_router(app)
    register_exception(app)

    return app

"""FastAPI应用主入口

配置应用实例、中间件、路由和生命周期事件
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.persistence import DocumentStore, get_document_store
from app.core.redis import redis_manager
from app.features.recordings import router as recordings_router
from app.features.storage import router as storage_router
from app.features.storage_config import router as storage_config_router
from app.shared.exceptions import BaseAPIException
from app.shared.schemas import APIResponse, HealthCheckResponse


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理

    启动时选定文档持久化目标（配置错误时直接终止启动），
    历史录像迁移在第一次浏览请求时执行，关闭时释放Redis连接
    """
    setup_logging()
    logger.info("正在启动FastAPI应用...")

    try:
        document_store = get_document_store()
        logger.info(f"文档持久化目标: {document_store.backend_name}")

        if settings.persistence_backend == "redis" and not await redis_manager.ping():
            logger.warning("Redis暂不可用，读取将回退到默认配置，写入会失败")

        logger.info("应用启动完成")

    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    yield

    logger.info("正在关闭FastAPI应用...")

    try:
        await redis_manager.close()
        logger.info("应用关闭完成")

    except Exception as e:
        logger.error(f"应用关闭时出错: {e}")


# 创建FastAPI应用实例
app = FastAPI(
    title=settings.app_name,
    description="开箱录像存证服务：保存录像到本地/远程/对象存储，并按订单号和SKU浏览检索",
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan
)


# 配置CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 全局异常处理器
@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
    """业务异常处理器

    保留异常自身的错误类型，便于前端区分配置、存储后端和元数据错误
    """
    logger.warning(f"业务异常: {exc.status_code} {exc.error_type} - {exc.detail}")

    data = None
    fields = getattr(exc, "fields", None)
    if fields:
        data = {"fields": fields}

    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse(
            success=False,
            data=data,
            message=exc.detail,
            code=exc.status_code,
            error_type=exc.error_type
        ).model_dump()
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTP异常处理器

    将HTTPException转换为统一的API响应格式
    """
    logger.warning(f"HTTP异常: {exc.status_code} - {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse(
            success=False,
            data=None,
            message=str(exc.detail),
            code=exc.status_code,
            error_type="HTTPException"
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """通用异常处理器

    处理未捕获的异常，避免暴露内部错误信息
    """
    logger.error(f"未处理的异常: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=500,
        content=APIResponse(
            success=False,
            data=None,
            message="服务器内部错误" if not settings.debug else str(exc),
            code=500,
            error_type=type(exc).__name__
        ).model_dump()
    )


# 健康检查端点
@app.get(
    "/health",
    response_model=APIResponse[HealthCheckResponse],
    summary="健康检查",
    description="检查文档持久化层是否可用"
)
async def health_check(
    document_store: DocumentStore = Depends(get_document_store)
) -> JSONResponse:
    """健康检查端点

    Returns:
        JSONResponse: 健康检查结果，持久化层不可用时返回503
    """
    persistence_healthy = False
    try:
        persistence_healthy = await document_store.healthy()
    except Exception as e:
        logger.error(f"持久化层健康检查失败: {e}")

    health_data = HealthCheckResponse(
        status="healthy" if persistence_healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
        persistence_backend=document_store.backend_name,
        persistence=persistence_healthy
    )

    code = 200 if persistence_healthy else 503
    return JSONResponse(
        status_code=code,
        content=APIResponse(
            success=persistence_healthy,
            data=health_data,
            message="健康检查完成",
            code=code
        ).model_dump()
    )


# 根路径端点
@app.get(
    "/",
    response_model=APIResponse[dict],
    summary="API信息",
    description="获取API基本信息"
)
async def root() -> APIResponse[dict]:
    """根路径端点

    返回API的基本信息
    """
    return APIResponse(
        success=True,
        data={
            "name": settings.app_name,
            "version": settings.app_version,
            "description": "开箱录像存证服务",
            "docs_url": "/docs",
            "health_url": "/health"
        },
        message="欢迎使用开箱录像存证API",
        code=200
    )


# 注册路由
app.include_router(storage_router, prefix="/api", tags=["录像保存"])
app.include_router(recordings_router, prefix="/api", tags=["录像浏览"])
app.include_router(storage_config_router, prefix="/api", tags=["存储配置"])


if __name__ == "__main__":
    import uvicorn

    logger.info(f"启动开发服务器: {settings.app_name} v{settings.app_version}")

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug"
    )

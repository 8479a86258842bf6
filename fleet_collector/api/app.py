"""
FastAPI 应用配置

配置 CORS、异常处理、静态文件托管、路由注册。
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..config import AppConfig, get_config
from ..errors import FleetError
from .routers import apps, errors, health, heartbeat, keys, pcs, settings

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    创建 FastAPI 应用实例

    配置：
    - CORS 中间件
    - 领域异常到 HTTP 状态码的转换
    - API 路由
    - 静态文件托管（仪表盘）
    """
    if config is None:
        config = get_config()

    app = FastAPI(
        title="Fleet Collector",
        description="机器心跳、错误和应用清单收集服务",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FleetError)
    async def fleet_error_handler(request: Request, exc: FleetError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # 注册路由
    app.include_router(health.router)
    app.include_router(pcs.router)
    app.include_router(heartbeat.router)
    app.include_router(errors.router)
    app.include_router(apps.router)
    app.include_router(settings.router)
    app.include_router(keys.router)

    # 静态文件托管（前端）
    if config.frontend.enabled:
        frontend_path = Path(config.frontend.path)
        if frontend_path.exists():
            app.mount("/", StaticFiles(directory=str(frontend_path), html=True), name="frontend")
            logger.info(f"Serving frontend from {frontend_path}")
        else:
            logger.warning(f"Frontend path not found: {frontend_path}")

    @app.on_event("startup")
    async def startup_event():
        logger.info("Fleet Collector starting up...")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Fleet Collector shutting down...")

    return app


# 默认应用实例
app = create_app()

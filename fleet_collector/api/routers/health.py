"""
健康检查 API

Agent 的重连探测使用 /api/health。
"""

from fastapi import APIRouter

from ... import __version__
from ...liveness import utc_now
from ...models import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])

ENDPOINTS = [
    "GET /api/health",
    "POST /api/pcs/register",
    "GET /api/pcs",
    "GET /api/pcs/{pc_id}",
    "POST /api/heartbeat",
    "POST /api/report-error",
    "GET /api/errors",
    "POST /api/errors/{error_id}/resolve",
    "POST /api/apps-status",
    "GET /api/apps-status",
    "GET /api/settings",
    "POST /api/settings",
    "GET /api/keys",
    "POST /api/keys/regenerate",
    "POST /api/keys/revoke",
    "GET /api/keys/audit",
    "GET /api/keys/export",
]


@router.get("")
async def service_info():
    """服务信息及端点列表"""
    return {
        "message": "Fleet Collector",
        "version": __version__,
        "status": "running",
        "endpoints": ENDPOINTS,
    }


@router.get("/health", response_model=HealthResponse)
async def get_health():
    """健康检查端点（不访问存储）"""
    return HealthResponse(status="healthy", timestamp=utc_now(), version=__version__)

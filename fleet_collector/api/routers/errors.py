"""
错误上报 API

提供错误上报、查询和标记已解决。
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...models import ErrorListResponse, ErrorRecord, ErrorReportRequest, ErrorReportResponse
from ...service import FleetService
from ..dependencies import get_api_key, get_service, verify_admin_token

router = APIRouter(prefix="/api", tags=["errors"])


@router.post("/report-error", response_model=ErrorReportResponse, status_code=status.HTTP_201_CREATED)
async def report_error(
    data: ErrorReportRequest,
    api_key: str = Depends(get_api_key),
    service: FleetService = Depends(get_service)
):
    """Agent 上报错误"""
    record = await service.report_error(api_key, data)
    return ErrorReportResponse(error_id=record.id, timestamp=record.timestamp)


@router.get("/errors", response_model=ErrorListResponse)
async def list_errors(
    pc_id: Optional[str] = Query(None, alias="pcId", description="按机器筛选"),
    limit: int = Query(50, ge=1, le=1000, description="返回数量限制"),
    service: FleetService = Depends(get_service)
):
    """
    获取错误列表

    按时间倒序排列，total 为筛选后的总数。
    """
    items, total = await service.list_errors(pc_id=pc_id, limit=limit)
    return ErrorListResponse(items=items, total=total)


@router.post(
    "/errors/{error_id}/resolve",
    response_model=ErrorRecord,
    dependencies=[Depends(verify_admin_token)],
)
async def resolve_error(error_id: str, service: FleetService = Depends(get_service)):
    """标记错误已解决"""
    return await service.resolve_error(error_id)

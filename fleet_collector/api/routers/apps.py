"""
应用清单 API
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...models import AppListResponse, AppsStatusRequest, AppsStatusResponse
from ...service import FleetService
from ..dependencies import get_api_key, get_service

router = APIRouter(prefix="/api/apps-status", tags=["apps"])


@router.post("", response_model=AppsStatusResponse)
async def update_apps_status(
    data: AppsStatusRequest,
    api_key: str = Depends(get_api_key),
    service: FleetService = Depends(get_service)
):
    """Agent 上报应用清单，整体替换该机器之前的清单"""
    pc, count, timestamp = await service.update_apps(api_key, data)
    return AppsStatusResponse(pc_name=pc.name, apps_updated=count, timestamp=timestamp)


@router.get("", response_model=AppListResponse)
async def list_apps_status(
    pc_id: Optional[str] = Query(None, alias="pcId", description="按机器筛选"),
    limit: int = Query(100, ge=1, le=1000, description="返回数量限制"),
    service: FleetService = Depends(get_service)
):
    """获取应用清单"""
    items, total = await service.list_apps(pc_id=pc_id, limit=limit)
    return AppListResponse(items=items, total=total, filtered_by_pc=pc_id)

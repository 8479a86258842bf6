"""
仪表盘设置 API
"""

from fastapi import APIRouter, Depends

from ...models import DashboardSettings, SettingsUpdate
from ...service import FleetService
from ..dependencies import get_service, verify_admin_token

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=DashboardSettings)
async def get_settings(service: FleetService = Depends(get_service)):
    """获取设置（未保存过时返回默认值）"""
    return await service.get_settings()


@router.post("", response_model=DashboardSettings, dependencies=[Depends(verify_admin_token)])
async def save_settings(data: SettingsUpdate, service: FleetService = Depends(get_service)):
    """保存设置"""
    return await service.save_settings(data)

"""
机器管理 API

提供注册握手和机器列表查询。列表读取时会顺带修正在线状态。
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from ...models import PCListResponse, PCView, RegisterRequest, RegisterResponse
from ...service import FleetService
from ..dependencies import get_optional_api_key, get_service

router = APIRouter(prefix="/api/pcs", tags=["pcs"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_pc(
    data: RegisterRequest,
    response: Response,
    api_key: Optional[str] = Depends(get_optional_api_key),
    service: FleetService = Depends(get_service)
):
    """
    注册机器

    新机器返回 201；携带已知 id 的重注册返回 200 和原有 id，
    此时需要在 Authorization 头中携带该机器当前的凭据。
    """
    record, created = await service.register(data, api_key=api_key)
    if not created:
        response.status_code = status.HTTP_200_OK

    return RegisterResponse(
        id=record.id,
        api_key=record.api_key,
        name=record.name,
        registration_date=record.registered_at,
        created=created
    )


@router.get("", response_model=PCListResponse)
async def list_pcs(service: FleetService = Depends(get_service)):
    """
    获取所有机器及最新状态

    按最后心跳时间倒序，状态按离线阈值重新计算。
    """
    records = await service.list_pcs()
    items = [PCView.from_record(r) for r in records]
    return PCListResponse(items=items, total=len(items))


@router.get("/{pc_id}", response_model=PCView)
async def get_pc(pc_id: str, service: FleetService = Depends(get_service)):
    """获取单台机器详情"""
    record = await service.get_pc(pc_id)
    return PCView.from_record(record)

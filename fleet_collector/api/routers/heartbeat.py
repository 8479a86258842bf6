"""
心跳 API
"""

from fastapi import APIRouter, Depends

from ...models import HeartbeatRequest, HeartbeatResponse
from ...service import FleetService
from ..dependencies import get_api_key, get_service

router = APIRouter(prefix="/api", tags=["heartbeat"])


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def receive_heartbeat(
    data: HeartbeatRequest,
    api_key: str = Depends(get_api_key),
    service: FleetService = Depends(get_service)
):
    """
    接收 Agent 心跳

    凭据未知或已吊销时返回 404。
    """
    record = await service.heartbeat(api_key, data)
    return HeartbeatResponse(status=record.status, timestamp=record.last_seen)

"""
凭据管理 API

所有端点都需要管理员 Token。重新生成和吊销会写入审计记录。
"""

import csv
import io

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ...models import (
    AuditListResponse,
    KeyActionRequest,
    KeyListResponse,
    KeyView,
    RegenerateResponse,
    RevokeResponse,
)
from ...service import FleetService
from ..dependencies import get_service, verify_admin_token

router = APIRouter(
    prefix="/api/keys",
    tags=["keys"],
    dependencies=[Depends(verify_admin_token)],
)


@router.get("", response_model=KeyListResponse)
async def list_keys(service: FleetService = Depends(get_service)):
    """获取所有机器及其凭据"""
    records = await service.list_pcs()
    keys = [
        KeyView(
            id=r.id,
            name=r.name,
            api_key=r.api_key,
            status=r.status,
            last_seen=r.last_seen,
            registration_date=r.registered_at,
        )
        for r in records
    ]
    return KeyListResponse(keys=keys, total=len(keys))


@router.post("/regenerate", response_model=RegenerateResponse)
async def regenerate_key(data: KeyActionRequest, service: FleetService = Depends(get_service)):
    """
    重新生成凭据

    旧凭据立即失效，Agent 需要使用新凭据或重新注册。
    """
    record = await service.regenerate_key(data.pc_id)
    return RegenerateResponse(
        pc_id=record.id,
        pc_name=record.name,
        new_api_key=record.api_key,
        timestamp=record.updated_at,
    )


@router.post("/revoke", response_model=RevokeResponse)
async def revoke_key(data: KeyActionRequest, service: FleetService = Depends(get_service)):
    """吊销凭据"""
    record = await service.revoke_key(data.pc_id)
    return RevokeResponse(pc_id=record.id, pc_name=record.name, timestamp=record.updated_at)


@router.get("/audit", response_model=AuditListResponse)
async def list_audit(
    limit: int = Query(100, ge=1, le=1000, description="返回数量限制"),
    service: FleetService = Depends(get_service)
):
    """获取凭据操作审计记录（按时间正序）"""
    items, total = await service.list_audit(limit=limit)
    return AuditListResponse(items=items, total=total)


@router.get("/export")
async def export_keys(service: FleetService = Depends(get_service)):
    """
    导出机器及凭据为 CSV

    已吊销的机器凭据列为空。
    """
    records = await service.list_pcs()

    # 生成 CSV
    output = io.StringIO()
    fieldnames = ["id", "name", "api_key", "status", "last_seen", "registration_date"]
    writer = csv.DictWriter(output, fieldnames=fieldnames)
    writer.writeheader()
    for r in records:
        writer.writerow({
            "id": r.id,
            "name": r.name,
            "api_key": r.api_key or "",
            "status": r.status.value,
            "last_seen": r.last_seen.isoformat() if r.last_seen else "",
            "registration_date": r.registered_at.isoformat(),
        })

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=fleet_keys_export.csv"}
    )

"""
Fee Audit Log API Endpoints.

Read access to the append-only audit trail. There is no write route.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from campus_fees.app.db.session import get_db
from campus_fees.app.core.guards import require_admin
from campus_fees.app.models.fee_enums import AuditEntityType, AuditStatus
from campus_fees.app.schemas.audit import AuditLogResponse, AuditLogListResponse, ActionSummaryItem
from campus_fees.app.schemas.common import Actor
from campus_fees.app.services.fee_audit import FeeAuditService

router = APIRouter(prefix="/fees/audit", tags=["Fees - Audit"])


def as_list_response(logs) -> AuditLogListResponse:
    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        count=len(logs),
    )


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    action: Optional[str] = Query(None),
    entity_type: Optional[AuditEntityType] = Query(None),
    status_filter: Optional[AuditStatus] = Query(None, alias="status"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    logs = await FeeAuditService(db).list_logs(
        action=action,
        entity_type=entity_type,
        status=status_filter,
        start=start,
        end=end,
        limit=limit,
        skip=skip,
    )
    return as_list_response(logs)


@router.get("/summary", response_model=List[ActionSummaryItem])
async def get_action_summary(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Per-action counts, busiest first."""
    return await FeeAuditService(db).get_action_summary(start, end)


@router.get("/entity/{entity_type}/{entity_id}", response_model=AuditLogListResponse)
async def get_entity_audit_trail(
    entity_type: AuditEntityType = Path(..., description="FeeStructure, StudentFeeLedger, FeeReceipt, ..."),
    entity_id: int = Path(..., description="Entity ID"),
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    logs = await FeeAuditService(db).get_entity_audit_trail(entity_type, entity_id, limit=limit, skip=skip)
    return as_list_response(logs)


@router.get("/user/{user_id}", response_model=AuditLogListResponse)
async def get_user_activity(
    user_id: int = Path(..., description="Actor user ID"),
    action: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    logs = await FeeAuditService(db).get_user_activity(
        user_id, action=action, start=start, end=end, limit=limit, skip=skip
    )
    return as_list_response(logs)

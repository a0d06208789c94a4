"""
Fee audit log repository. Insert and query only.
"""

from datetime import datetime
from typing import Optional, List

from sqlalchemy import select, func, case, desc
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.exceptions import ImmutableRecordError
from campus_fees.app.models.fee_audit_log import FeeAuditLog
from campus_fees.app.models.fee_enums import AuditEntityType, AuditStatus
from campus_fees.app.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[FeeAuditLog]):
    resource_name = "Audit log"

    def __init__(self, db: AsyncSession):
        super().__init__(FeeAuditLog, db)

    async def add(self, entry: FeeAuditLog) -> FeeAuditLog:
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def update(self, entry: FeeAuditLog, **changes) -> None:
        raise ImmutableRecordError("Audit logs cannot be modified", details={"id": entry.id})

    async def delete(self, entry: FeeAuditLog) -> None:
        raise ImmutableRecordError("Audit logs cannot be deleted", details={"id": entry.id})

    async def list_for_entity(
        self,
        entity_type: AuditEntityType,
        entity_id: int,
        limit: int = 100,
        skip: int = 0
    ) -> List[FeeAuditLog]:
        result = await self.db.execute(
            select(FeeAuditLog)
            .where(FeeAuditLog.entity_type == entity_type, FeeAuditLog.entity_id == entity_id)
            .order_by(desc(FeeAuditLog.created_at), desc(FeeAuditLog.id))
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list(
        self,
        performed_by_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[AuditEntityType] = None,
        status: Optional[AuditStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
        skip: int = 0
    ) -> List[FeeAuditLog]:
        query = select(FeeAuditLog)
        if performed_by_id is not None:
            query = query.where(FeeAuditLog.performed_by_id == performed_by_id)
        if action:
            query = query.where(FeeAuditLog.action == action)
        if entity_type:
            query = query.where(FeeAuditLog.entity_type == entity_type)
        if status:
            query = query.where(FeeAuditLog.status == status)
        if start:
            query = query.where(FeeAuditLog.created_at >= start)
        if end:
            query = query.where(FeeAuditLog.created_at <= end)

        query = query.order_by(desc(FeeAuditLog.created_at), desc(FeeAuditLog.id)).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def action_summary(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[dict]:
        """Per-action totals, busiest first."""
        total = func.count(FeeAuditLog.id).label("count")
        query = select(
            FeeAuditLog.action,
            total,
            func.sum(case((FeeAuditLog.status == AuditStatus.SUCCESS, 1), else_=0)).label("success_count"),
            func.sum(case((FeeAuditLog.status == AuditStatus.FAILED, 1), else_=0)).label("failed_count"),
        )
        if start:
            query = query.where(FeeAuditLog.created_at >= start)
        if end:
            query = query.where(FeeAuditLog.created_at <= end)
        query = query.group_by(FeeAuditLog.action).order_by(desc(total), FeeAuditLog.action)

        result = await self.db.execute(query)
        return [
            {
                "action": row.action,
                "count": row.count,
                "success_count": int(row.success_count or 0),
                "failed_count": int(row.failed_count or 0),
            }
            for row in result.all()
        ]

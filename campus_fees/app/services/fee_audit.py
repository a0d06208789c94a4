"""
Fee audit logging service.

Every financial action is recorded in fee_audit_logs. Entries are written
inside a SAVEPOINT of the caller's transaction:

- if the surrounding fee operation rolls back, its audit entry goes with it
- if only the audit insert fails, the savepoint is rolled back, the failure
  is logged, and the fee operation carries on
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.config import settings
from campus_fees.app.core.observability import get_correlation_id
from campus_fees.app.models.fee_audit_log import FeeAuditLog
from campus_fees.app.models.fee_enums import AuditEntityType, AuditStatus
from campus_fees.app.repositories.audit_repository import AuditLogRepository
from campus_fees.app.schemas.common import Actor, RequestContext

logger = logging.getLogger("campus_fees.audit")


# Audit event constants
class AuditAction:
    """Standardized fee audit action constants."""
    # Fee structure governance
    STRUCTURE_CREATED = "STRUCTURE_CREATED"
    STRUCTURE_UPDATED = "STRUCTURE_UPDATED"
    STRUCTURE_APPROVED = "STRUCTURE_APPROVED"
    STRUCTURE_ACTIVATED = "STRUCTURE_ACTIVATED"
    STRUCTURE_LOCKED = "STRUCTURE_LOCKED"
    STRUCTURE_ARCHIVED = "STRUCTURE_ARCHIVED"
    STRUCTURE_VERSION_CREATED = "STRUCTURE_VERSION_CREATED"

    # Student ledgers
    LEDGER_CREATED = "LEDGER_CREATED"
    LEDGER_BULK_ASSIGNED = "LEDGER_BULK_ASSIGNED"
    LEDGER_OVERDUE_MARKED = "LEDGER_OVERDUE_MARKED"
    LEDGER_CLOSED = "LEDGER_CLOSED"

    # Receipts
    RECEIPT_CREATED = "RECEIPT_CREATED"
    RECEIPT_REVERSED = "RECEIPT_REVERSED"
    RECEIPT_VERIFIED = "RECEIPT_VERIFIED"

    # Reports & batch jobs
    REPORT_GENERATED = "REPORT_GENERATED"
    OVERDUE_BATCH_PROCESSED = "OVERDUE_BATCH_PROCESSED"
    ERROR_OCCURRED = "ERROR_OCCURRED"


def to_jsonable(value: Any) -> Any:
    """Convert a snapshot value into something the JSON column accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def snapshot(entity: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Capture selected attributes of a model as a JSON-safe dict."""
    return {field: to_jsonable(getattr(entity, field)) for field in fields}


def diff(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not before or not after:
        return None
    changes = {}
    for key in sorted(set(before) | set(after)):
        if before.get(key) != after.get(key):
            changes[key] = {"from": before.get(key), "to": after.get(key)}
    return changes


class FeeAuditService:
    """Append-only writer and reader for the fee audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repository = AuditLogRepository(db)

    async def log(
        self,
        action: str,
        entity_type: AuditEntityType,
        actor: Actor,
        description: str,
        context: Optional[RequestContext] = None,
        entity_id: Optional[int] = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        changes_before: Optional[Dict[str, Any]] = None,
        changes_after: Optional[Dict[str, Any]] = None,
        **fields
    ) -> Optional[FeeAuditLog]:
        """
        Record one audit entry.

        Never raises: failures are logged and None is returned so that audit
        logging can never abort a financial transaction.

        Args:
            action: One of the AuditAction constants
            entity_type: Kind of record acted upon
            actor: Who performed the action
            description: Human readable summary
            context: Request metadata (ip, user agent, correlation id)
            fields: Extra FeeAuditLog columns (student_id, amount, receipt_number, ...)
        """
        context = context or RequestContext()
        try:
            entry = FeeAuditLog(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                performed_by_id=actor.id,
                performed_by_name=actor.name,
                performed_by_role=actor.role.value,
                description=description,
                changes_before=changes_before,
                changes_after=changes_after,
                changes_diff=diff(changes_before, changes_after),
                status=status,
                ip_address=context.ip_address or "",
                user_agent=context.user_agent or "",
                request_id=context.request_id or get_correlation_id(),
                **fields
            )
            async with self.db.begin_nested():
                await self.repository.add(entry)
        except Exception as exc:
            logger.error(
                "Audit log write failed",
                extra={"action": action, "entity_type": getattr(entity_type, "value", entity_type), "entity_id": entity_id, "error": str(exc)}
            )
            return None

        return entry

    async def log_success(self, action: str, entity_type: AuditEntityType, actor: Actor, description: str, **kwargs) -> Optional[FeeAuditLog]:
        return await self.log(action, entity_type, actor, description, status=AuditStatus.SUCCESS, **kwargs)

    async def log_failure(
        self,
        action: str,
        entity_type: AuditEntityType,
        actor: Actor,
        error: Exception,
        description: Optional[str] = None,
        **kwargs
    ) -> Optional[FeeAuditLog]:
        """
        Record a rejected operation after its transaction was rolled back.

        Commits on its own; best effort.
        """
        entry = await self.log(
            action,
            entity_type,
            actor,
            description or f"{action} failed",
            status=AuditStatus.FAILED,
            error_message=str(error),
            **kwargs
        )
        if entry is None:
            return None
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Audit failure entry could not be committed", extra={"action": action, "error": str(exc)})
            return None
        return entry

    # Queries

    async def get_entity_audit_trail(
        self,
        entity_type: AuditEntityType,
        entity_id: int,
        limit: Optional[int] = None,
        skip: int = 0
    ) -> List[FeeAuditLog]:
        return await self.repository.list_for_entity(
            entity_type, entity_id, limit=limit or settings.audit_query_limit, skip=skip
        )

    async def get_user_activity(
        self,
        user_id: int,
        action: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        skip: int = 0
    ) -> List[FeeAuditLog]:
        return await self.repository.list(
            performed_by_id=user_id,
            action=action,
            start=start,
            end=end,
            limit=limit or settings.audit_query_limit,
            skip=skip,
        )

    async def list_logs(
        self,
        action: Optional[str] = None,
        entity_type: Optional[AuditEntityType] = None,
        status: Optional[AuditStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        skip: int = 0
    ) -> List[FeeAuditLog]:
        return await self.repository.list(
            action=action,
            entity_type=entity_type,
            status=status,
            start=start,
            end=end,
            limit=limit or settings.audit_query_limit,
            skip=skip,
        )

    async def get_action_summary(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[dict]:
        return await self.repository.action_summary(start, end)

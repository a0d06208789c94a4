"""
Fee audit log schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Any
from campus_fees.app.models.fee_enums import AuditEntityType, AuditStatus


class AuditLogResponse(BaseModel):
    id: int
    action: str
    entity_type: AuditEntityType
    entity_id: Optional[int]
    entity_code: str
    performed_by_id: Optional[int]
    performed_by_name: str
    performed_by_role: str
    description: str
    reason: str
    changes_before: Optional[Any]
    changes_after: Optional[Any]
    changes_diff: Optional[Any]
    student_id: Optional[int]
    amount: Optional[int]
    receipt_number: str
    structure_code: str
    academic_year: str
    semester: Optional[int]
    report_type: str
    affected_count: Optional[int]
    ip_address: str
    request_id: str
    status: AuditStatus
    error_message: str
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    count: int


class ActionSummaryItem(BaseModel):
    action: str
    count: int
    success_count: int
    failed_count: int

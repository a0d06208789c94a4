"""
Student Fee Ledger API Endpoints.

Assignment of fee structures to students and ledger lifecycle.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from campus_fees.app.db.session import get_db
from campus_fees.app.core.dependencies import get_request_context
from campus_fees.app.core.guards import require_admin, require_staff
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket
from campus_fees.app.schemas.common import Actor, RequestContext
from campus_fees.app.schemas.ledger import (
    LedgerCreate,
    BulkAssignRequest,
    BulkAssignResult,
    LedgerResponse,
    LedgerListResponse,
    LedgerCloseRequest,
    LedgerBalanceResponse,
)

router = APIRouter(prefix="/fees/ledgers", tags=["Fees - Ledgers"])


@router.post("", response_model=LedgerResponse, status_code=status.HTTP_201_CREATED)
async def create_ledger(
    data: LedgerCreate,
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Assign a fee structure to one student.

    The structure is locked on its first assignment.
    """
    return await FeeAccountingService(db).create_ledger(
        data.student, data.fee_structure_id, data.options, actor, context
    )


@router.post("/bulk-assign", response_model=BulkAssignResult)
async def bulk_assign(
    data: BulkAssignRequest,
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """Assign a structure to many students; failures are reported per student."""
    return await FeeAccountingService(db).bulk_assign_structure(
        data.students, data.fee_structure_id, data.options, actor, context
    )


@router.get("", response_model=LedgerListResponse)
async def list_ledgers(
    student_id: Optional[int] = Query(None),
    academic_year: Optional[str] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    department: Optional[str] = Query(None),
    fee_status: Optional[FeeStatus] = Query(None),
    aging_bucket: Optional[AgingBucket] = Query(None),
    is_overdue: Optional[bool] = Query(None),
    is_closed: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    ledgers, total = await FeeAccountingService(db).list_ledgers(
        student_id=student_id,
        academic_year=academic_year,
        semester=semester,
        department=department,
        fee_status=fee_status,
        aging_bucket=aging_bucket,
        is_overdue=is_overdue,
        is_closed=is_closed,
        page=page,
        page_size=page_size,
    )
    return LedgerListResponse(
        ledgers=[LedgerResponse.model_validate(ledger) for ledger in ledgers],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/academic-years", response_model=List[str])
async def list_academic_years(
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).academic_years()


@router.get("/student/{student_id}", response_model=List[LedgerResponse])
async def list_student_ledgers(
    student_id: int = Path(..., description="Student ID"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).list_student_ledgers(student_id)


@router.get("/{ledger_id}", response_model=LedgerResponse)
async def get_ledger(
    ledger_id: int = Path(..., description="Ledger ID"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).get_ledger(ledger_id)


@router.get("/{ledger_id}/balance", response_model=LedgerBalanceResponse)
async def get_ledger_balance(
    ledger_id: int = Path(..., description="Ledger ID"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Balance recomputed from the receipt journal."""
    return await FeeAccountingService(db).compute_ledger_balance(ledger_id)


@router.post("/{ledger_id}/close", response_model=LedgerResponse)
async def close_ledger(
    body: LedgerCloseRequest,
    ledger_id: int = Path(..., description="Ledger ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """Close a fully paid ledger. Irreversible."""
    return await FeeAccountingService(db).close_ledger(ledger_id, body.reason, actor, context)

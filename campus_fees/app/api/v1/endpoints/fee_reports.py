"""
Fee Reports & Ops API Endpoints.

READ-ONLY aggregates, plus the overdue refresh job trigger.
"""

from datetime import date
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from campus_fees.app.db.session import get_db
from campus_fees.app.core.dependencies import get_request_context
from campus_fees.app.core.guards import require_admin, require_staff
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.domain.fees.reporting_service import FeeReportingService
from campus_fees.app.models.fee_enums import AgingBucket
from campus_fees.app.schemas.common import Actor, RequestContext
from campus_fees.app.schemas.ledger import OverdueRefreshResult
from campus_fees.app.schemas.reports import (
    DashboardResponse,
    AgingReport,
    CollectionSummary,
    DefaulterItem,
    DepartmentSummary,
    StudentLedgerReport,
    IntegrityReport,
)

router = APIRouter(prefix="/fees", tags=["Fees - Reports"])
ops_router = APIRouter(prefix="/fees/ops", tags=["Fees - Ops"])


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    academic_year: Optional[str] = Query(None),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeReportingService(db).get_dashboard(academic_year)


@router.get("/reports/aging", response_model=AgingReport)
async def get_aging_report(
    academic_year: Optional[str] = Query(None),
    actor: Actor = Depends(require_staff),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await FeeReportingService(db).get_aging_report(academic_year, actor, context)


@router.get("/reports/collection", response_model=CollectionSummary)
async def get_collection_summary(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    actor: Actor = Depends(require_staff),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """Collections per day and payment mode; defaults to today."""
    return await FeeReportingService(db).get_collection_summary(from_date, to_date, actor, context)


@router.get("/reports/defaulters", response_model=List[DefaulterItem])
async def get_defaulters(
    academic_year: Optional[str] = Query(None),
    aging_bucket: Optional[AgingBucket] = Query(None),
    min_amount: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(require_staff),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await FeeReportingService(db).get_defaulters(
        academic_year=academic_year,
        aging_bucket=aging_bucket,
        min_amount=min_amount,
        limit=limit,
        actor=actor,
        context=context,
    )


@router.get("/reports/departments", response_model=List[DepartmentSummary])
async def get_department_summary(
    academic_year: Optional[str] = Query(None),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeReportingService(db).get_department_summary(academic_year)


@router.get("/reports/student/{student_id}", response_model=StudentLedgerReport)
async def get_student_ledger_report(
    student_id: int = Path(..., description="Student ID"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeReportingService(db).get_student_ledger_report(student_id)


@router.get("/reports/integrity", response_model=IntegrityReport)
async def check_integrity(
    academic_year: Optional[str] = Query(None),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Compare ledger totals with the receipt journal. Nothing is modified."""
    return await FeeReportingService(db).check_ledger_integrity(academic_year)


@ops_router.post("/overdue-refresh", response_model=OverdueRefreshResult)
async def refresh_overdue(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Recompute overdue state and aging buckets for all open ledgers.

    Normally run daily by the scheduler; exposed for manual runs.
    """
    return await FeeAccountingService(db).update_overdue_status()

"""
Student self-service fee endpoints.

A student only ever sees the ledgers and receipts of the student_id in
their own token.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from campus_fees.app.db.session import get_db
from campus_fees.app.core.guards import require_student
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.schemas.ledger import LedgerResponse, StudentBalanceSummary
from campus_fees.app.schemas.receipt import ReceiptResponse

router = APIRouter(prefix="/fees/student", tags=["Fees - Student"])


@router.get("/ledgers", response_model=List[LedgerResponse])
async def my_ledgers(
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).list_student_ledgers(current_user["student_id"])


@router.get("/summary", response_model=StudentBalanceSummary)
async def my_summary(
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """Totals across the student's open ledgers."""
    return await FeeAccountingService(db).compute_student_total_balance(current_user["student_id"])


@router.get("/receipts", response_model=List[ReceiptResponse])
async def my_receipts(
    current_user: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).list_student_receipts(current_user["student_id"])

"""
Fee Receipt API Endpoints.

Payments, reversals and verification. Receipts are never edited or deleted.
"""

from datetime import date
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from campus_fees.app.db.session import get_db
from campus_fees.app.core.dependencies import get_request_context
from campus_fees.app.core.guards import require_admin, require_staff
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.models.fee_enums import PaymentMode, ReceiptType
from campus_fees.app.schemas.common import Actor, RequestContext
from campus_fees.app.schemas.ledger import LedgerResponse
from campus_fees.app.schemas.receipt import (
    ReceiptCreate,
    ReversalRequest,
    ReceiptResponse,
    ReceiptListResponse,
    PaymentResult,
    ReversalResult,
)

router = APIRouter(prefix="/fees/receipts", tags=["Fees - Receipts"])


@router.post("", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
async def create_receipt(
    data: ReceiptCreate,
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a payment against a ledger.

    Overpayment and payments on closed or settled ledgers are rejected.
    """
    receipt, ledger = await FeeAccountingService(db).process_receipt(data.ledger_id, data, actor, context)
    return PaymentResult(
        receipt=ReceiptResponse.model_validate(receipt),
        ledger=LedgerResponse.model_validate(ledger),
    )


@router.get("", response_model=ReceiptListResponse)
async def list_receipts(
    student_id: Optional[int] = Query(None),
    ledger_id: Optional[int] = Query(None),
    payment_mode: Optional[PaymentMode] = Query(None),
    receipt_type: Optional[ReceiptType] = Query(None),
    is_reversed: Optional[bool] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    receipts, total = await FeeAccountingService(db).list_receipts(
        student_id=student_id,
        ledger_id=ledger_id,
        payment_mode=payment_mode,
        receipt_type=receipt_type,
        is_reversed=is_reversed,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return ReceiptListResponse(
        receipts=[ReceiptResponse.model_validate(r) for r in receipts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/today", response_model=List[ReceiptResponse])
async def list_today_receipts(
    payment_mode: Optional[PaymentMode] = Query(None),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).list_today_receipts(payment_mode)


@router.get("/number/{receipt_number}", response_model=ReceiptResponse)
async def get_receipt_by_number(
    receipt_number: str = Path(..., description="Receipt number, e.g. RCP-20240115-0001"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).get_receipt_by_number(receipt_number)


@router.get("/ledger/{ledger_id}", response_model=List[ReceiptResponse])
async def list_ledger_receipts(
    ledger_id: int = Path(..., description="Ledger ID"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).list_ledger_receipts(ledger_id)


@router.get("/{receipt_id}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_id: int = Path(..., description="Receipt ID"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).get_receipt(receipt_id)


@router.post("/{receipt_id}/reverse", response_model=ReversalResult)
async def reverse_receipt(
    body: ReversalRequest,
    receipt_id: int = Path(..., description="Receipt ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """Issue a REVERSAL for a payment. A receipt can be reversed once."""
    reversal, original, ledger = await FeeAccountingService(db).reverse_receipt(
        receipt_id, body.reason, actor, context
    )
    return ReversalResult(
        reversal=ReceiptResponse.model_validate(reversal),
        original=ReceiptResponse.model_validate(original),
        ledger=LedgerResponse.model_validate(ledger),
    )


@router.post("/{receipt_id}/verify", response_model=ReceiptResponse)
async def verify_receipt(
    receipt_id: int = Path(..., description="Receipt ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await FeeAccountingService(db).verify_receipt(receipt_id, actor, context)

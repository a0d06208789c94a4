"""
Fee Accounting Service (Domain Logic).

The only component that mutates student ledgers. Every mutating operation
(ledger + receipt + audit writes) runs as one all-or-nothing transaction.
"""

import logging
from datetime import date, timedelta
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.config import settings
from campus_fees.app.core.exceptions import (
    AppException,
    FeeValidationError,
    FeeStateError,
    ResourceNotFoundError,
    SequenceConflictError,
    TransactionFailedError,
)
from campus_fees.app.db.session import atomic
from campus_fees.app.domain.fees.receipt_numbers import next_receipt_number, format_reversal_number
from campus_fees.app.domain.fees.status_engine import (
    utc_now,
    utc_today,
    refresh_ledger_state,
    compute_fee_status,
    compute_aging_bucket,
)
from campus_fees.app.domain.fees.structure_service import FeeStructureService
from campus_fees.app.models.fee_enums import (
    StructureStatus,
    FeeStatus,
    AgingBucket,
    ReceiptType,
    PaymentMode,
    AuditEntityType,
)
from campus_fees.app.models.fee_receipt import FeeReceipt
from campus_fees.app.models.student_fee_ledger import StudentFeeLedger
from campus_fees.app.repositories.fee_structure_repository import FeeStructureRepository
from campus_fees.app.repositories.ledger_repository import LedgerRepository
from campus_fees.app.repositories.receipt_repository import ReceiptRepository
from campus_fees.app.schemas.common import Actor, RequestContext, StudentRef
from campus_fees.app.schemas.ledger import LedgerCreateOptions
from campus_fees.app.schemas.receipt import PaymentCreate
from campus_fees.app.services.fee_audit import FeeAuditService, AuditAction, snapshot

logger = logging.getLogger("campus_fees.accounting")

LEDGER_AUDIT_FIELDS = ("total_paid", "outstanding_balance", "fee_status", "is_overdue", "aging_bucket")

DUPLICATE_LEDGER_MESSAGE = "A ledger already exists for this student for the specified academic period"


def is_duplicate_period_error(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_ledger_student_period" in message or "student_fee_ledgers.student_id" in message


class FeeAccountingService:
    """
    Ledger lifecycle, payments and reversals.

    Usage:
        service = FeeAccountingService(db)
        receipt, ledger = await service.process_receipt(ledger_id, payment, actor)
    """

    def __init__(self, db: AsyncSession, audit: Optional[FeeAuditService] = None):
        self.db = db
        self.audit = audit or FeeAuditService(db)
        self.structures = FeeStructureRepository(db)
        self.structure_service = FeeStructureService(db, audit=self.audit)
        self.ledgers = LedgerRepository(db)
        self.receipts = ReceiptRepository(db)

    # ==================== LEDGER LIFECYCLE ====================

    async def create_ledger(
        self,
        student: StudentRef,
        structure_id: int,
        options: Optional[LedgerCreateOptions],
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> StudentFeeLedger:
        """
        Assign a fee structure to a student for one academic period.

        Flow:
        1. Structure must exist and be approved or active
        2. Resolve semester, concession, installments and due date
        3. Snapshot the fee heads into a new ledger
        4. Lock the structure on first assignment
        5. Audit LEDGER_CREATED

        Raises:
            FeeStateError: structure not assignable, or a ledger already
                exists for (student, academic_year, semester)
            FeeValidationError: bad semester, concession or installments
        """
        options = options or LedgerCreateOptions()

        async with atomic(self.db):
            # 1. Structure
            structure = await self.structures.get_for_update(structure_id)
            if structure.status not in (StructureStatus.APPROVED, StructureStatus.ACTIVE):
                raise FeeStateError(
                    "Fee structure must be approved or active",
                    details={"structure_code": structure.code, "status": structure.status.value}
                )

            # 2. Period and amounts
            semester = options.semester or structure.semester
            if not semester:
                raise FeeValidationError("Semester is required when the fee structure does not define one")

            concession = options.concession_amount or 0
            if concession < 0 or concession > structure.approved_total:
                raise FeeValidationError(
                    "Concession must be between zero and the approved total",
                    details={"concession_amount": concession, "approved_total": structure.approved_total}
                )
            net_payable = structure.approved_total - concession

            installments = []
            for index, installment in enumerate(sorted(options.installments, key=lambda item: item.due_date), start=1):
                if installment.amount < 0:
                    raise FeeValidationError(
                        "Installment amounts cannot be negative",
                        details={"installment_no": index}
                    )
                installments.append({
                    "installment_no": index,
                    "amount": installment.amount,
                    "due_date": installment.due_date.isoformat(),
                    "description": installment.description or f"Installment {index}",
                })

            today = utc_today()
            if options.due_date:
                due_date = options.due_date
            elif options.installments:
                due_date = min(installment.due_date for installment in options.installments)
            else:
                due_date = today + timedelta(days=settings.default_due_days)

            if await self.ledgers.find_for_period(student.id, structure.academic_year, semester):
                raise FeeStateError(DUPLICATE_LEDGER_MESSAGE, details={"student_id": student.id})

            # 3. Ledger with fee head snapshot
            opted_in = {code.upper() for code in options.optional_heads}
            fee_heads = [
                {
                    "head_code": head["head_code"],
                    "head_name": head["head_name"],
                    "amount": head["amount"],
                    "is_applicable": not head["is_optional"] or head["head_code"] in opted_in,
                }
                for head in structure.fee_heads
            ]

            ledger = StudentFeeLedger(
                student_id=student.id,
                student_name=student.name,
                student_roll_no=student.roll_no,
                department=student.department,
                course=student.course,
                fee_structure_id=structure.id,
                fee_structure_version=structure.version,
                fee_structure_code=structure.code,
                academic_year=structure.academic_year,
                semester=semester,
                fee_heads=fee_heads,
                approved_total=structure.approved_total,
                concession_amount=concession,
                concession_reason=options.concession_reason or "",
                net_payable=net_payable,
                has_installments=bool(installments),
                installments=installments,
                due_date=due_date,
                total_paid=0,
                last_payment_amount=0,
                receipt_count=0,
                is_overdue=False,
                is_active=True,
                is_closed=False,
                created_by_id=actor.id,
                created_by_name=actor.name,
            )
            refresh_ledger_state(ledger, today)

            try:
                await self.ledgers.add(ledger)
            except IntegrityError as exc:
                if is_duplicate_period_error(exc):
                    raise FeeStateError(DUPLICATE_LEDGER_MESSAGE, details={"student_id": student.id}) from exc
                raise

            # 4. Lock structure
            if not structure.is_locked:
                await self.structure_service.lock_structure(structure, "Assigned to students", actor, context)

            # 5. Audit
            await self.audit.log(
                AuditAction.LEDGER_CREATED,
                AuditEntityType.STUDENT_FEE_LEDGER,
                actor,
                f"Fee ledger created for {student.name} ({student.roll_no})",
                context=context,
                entity_id=ledger.id,
                student_id=student.id,
                student_name=student.name,
                student_roll_no=student.roll_no,
                amount=net_payable,
                structure_code=structure.code,
                academic_year=structure.academic_year,
                semester=semester,
                changes_after={
                    "net_payable": net_payable,
                    "due_date": due_date.isoformat(),
                    "has_installments": bool(installments),
                },
            )

        logger.info(
            "Ledger created",
            extra={"ledger_id": ledger.id, "student_id": student.id, "structure_code": structure.code}
        )
        return ledger

    async def bulk_assign_structure(
        self,
        students: List[StudentRef],
        structure_id: int,
        options: Optional[LedgerCreateOptions],
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Create one ledger per student, each in its own transaction.

        A failure for one student does not affect the others.
        """
        results = {"success": [], "failed": []}

        for student in students:
            try:
                ledger = await self.create_ledger(student, structure_id, options, actor, context)
                results["success"].append({"student_id": student.id, "ledger_id": ledger.id})
            except AppException as exc:
                results["failed"].append({"student_id": student.id, "error": exc.message})

        ledger_ids = [item["ledger_id"] for item in results["success"]]
        async with atomic(self.db):
            await self.audit.log(
                AuditAction.LEDGER_BULK_ASSIGNED,
                AuditEntityType.STUDENT_FEE_LEDGER,
                actor,
                f"Bulk ledger assignment: {len(results['success'])} succeeded, {len(results['failed'])} failed",
                context=context,
                affected_count=len(ledger_ids),
                affected_ids=ledger_ids,
            )

        logger.info(
            "Bulk assignment finished",
            extra={"structure_id": structure_id, "succeeded": len(results["success"]), "failed": len(results["failed"])}
        )
        return results

    async def update_overdue_status(self, today: Optional[date] = None) -> Dict[str, int]:
        """
        Recompute overdue fields for every active, open, unpaid ledger.

        Returns:
            {"processed_count": ledgers examined, "newly_overdue": ledgers that crossed their due date}
        """
        today = today or utc_today()
        system = Actor.system()
        newly_overdue = 0

        async with atomic(self.db):
            ledgers = await self.ledgers.list_open_unpaid()
            for ledger in ledgers:
                became_overdue = refresh_ledger_state(ledger, today)
                await self.ledgers.save(ledger)

                if became_overdue:
                    newly_overdue += 1
                    await self.audit.log(
                        AuditAction.LEDGER_OVERDUE_MARKED,
                        AuditEntityType.STUDENT_FEE_LEDGER,
                        system,
                        f"Ledger marked as overdue - {ledger.overdue_days} days past due",
                        entity_id=ledger.id,
                        student_id=ledger.student_id,
                        student_name=ledger.student_name,
                        amount=ledger.outstanding_balance,
                        academic_year=ledger.academic_year,
                        semester=ledger.semester,
                    )

            await self.audit.log(
                AuditAction.OVERDUE_BATCH_PROCESSED,
                AuditEntityType.SYSTEM,
                system,
                f"Overdue batch processing completed. {newly_overdue} ledgers newly marked as overdue.",
                affected_count=newly_overdue,
            )

        logger.info("Overdue batch processed", extra={"processed": len(ledgers), "newly_overdue": newly_overdue})
        return {"processed_count": len(ledgers), "newly_overdue": newly_overdue}

    async def close_ledger(
        self,
        ledger_id: int,
        reason: str,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> StudentFeeLedger:
        """Close a settled ledger. Irreversible."""
        async with atomic(self.db):
            ledger = await self._get_ledger_for_update(ledger_id)
            if ledger.is_closed:
                raise FeeStateError("Ledger is already closed", details={"ledger_id": ledger_id})
            if ledger.outstanding_balance != 0:
                raise FeeStateError(
                    "Cannot close a ledger with an outstanding balance",
                    details={"ledger_id": ledger_id, "outstanding_balance": ledger.outstanding_balance}
                )

            ledger.is_closed = True
            ledger.closed_at = utc_now()
            ledger.closed_reason = reason or "Fully paid"
            refresh_ledger_state(ledger)
            await self.ledgers.save(ledger)

            await self.audit.log(
                AuditAction.LEDGER_CLOSED,
                AuditEntityType.STUDENT_FEE_LEDGER,
                actor,
                f"Ledger closed for {ledger.student_name} ({ledger.academic_year} S{ledger.semester})",
                context=context,
                entity_id=ledger.id,
                reason=ledger.closed_reason,
                student_id=ledger.student_id,
                student_name=ledger.student_name,
                student_roll_no=ledger.student_roll_no,
                academic_year=ledger.academic_year,
                semester=ledger.semester,
            )

        return ledger

    # ==================== RECEIPTS ====================

    async def process_receipt(
        self,
        ledger_id: int,
        payment: PaymentCreate,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> Tuple[FeeReceipt, StudentFeeLedger]:
        """
        Record a payment against a ledger.

        Retries the whole transaction when two writers open the same day's
        receipt counter at once. A rejected payment is recorded as a FAILED
        audit entry after its transaction has been rolled back.

        Returns:
            (receipt, updated ledger)
        """
        for attempt in range(1, settings.transaction_max_retries + 1):
            try:
                async with atomic(self.db):
                    return await self._apply_payment(ledger_id, payment, actor, context)
            except SequenceConflictError:
                logger.warning(
                    "Receipt sequence conflict, retrying",
                    extra={"ledger_id": ledger_id, "attempt": attempt}
                )
            except AppException as exc:
                await self.audit.log_failure(
                    AuditAction.RECEIPT_CREATED,
                    AuditEntityType.FEE_RECEIPT,
                    actor,
                    exc,
                    description=f"Payment of {payment.amount} on ledger {ledger_id} rejected",
                    context=context,
                    amount=payment.amount,
                )
                raise

        raise TransactionFailedError("Could not allocate a receipt number, please retry")

    async def _apply_payment(
        self,
        ledger_id: int,
        payment: PaymentCreate,
        actor: Actor,
        context: Optional[RequestContext]
    ) -> Tuple[FeeReceipt, StudentFeeLedger]:
        context = context or RequestContext()

        # 1. Ledger state
        ledger = await self._get_ledger_for_update(ledger_id)
        if ledger.is_closed:
            raise FeeStateError("Cannot record a payment on a closed ledger", details={"ledger_id": ledger_id})
        if ledger.total_paid >= ledger.net_payable:
            raise FeeStateError("Ledger is already fully paid", details={"ledger_id": ledger_id})

        # 2. Amount and allocations
        if payment.amount is None or payment.amount <= 0:
            raise FeeValidationError("Payment amount must be greater than zero")
        if payment.amount > ledger.outstanding_balance:
            raise FeeValidationError(
                "Payment amount exceeds outstanding balance",
                details={"amount": payment.amount, "outstanding_balance": ledger.outstanding_balance}
            )
        allocations = self._resolve_allocations(ledger, payment)

        # 3. Receipt number
        today = utc_today()
        now = utc_now()
        receipt_number = await next_receipt_number(self.db, settings.receipt_prefix, today)

        # 4. Snapshot balances before touching the ledger
        before = snapshot(ledger, LEDGER_AUDIT_FIELDS)
        total_paid_after = ledger.total_paid + payment.amount
        receipt = FeeReceipt(
            receipt_number=receipt_number,
            receipt_date=now,
            student_id=ledger.student_id,
            ledger_id=ledger.id,
            student_name=ledger.student_name,
            student_roll_no=ledger.student_roll_no,
            department=ledger.department,
            academic_year=ledger.academic_year,
            semester=ledger.semester,
            amount=payment.amount,
            payment_mode=payment.payment_mode,
            reference_number=payment.reference_number or "",
            voucher_number=payment.voucher_number or "",
            bank_details=payment.bank_details.model_dump(mode="json") if payment.bank_details else None,
            allocations=allocations,
            previous_balance=ledger.outstanding_balance,
            new_balance=ledger.net_payable - total_paid_after,
            total_paid_before=ledger.total_paid,
            total_paid_after=total_paid_after,
            receipt_type=ReceiptType.PAYMENT,
            remarks=payment.remarks or "",
            created_by_id=actor.id,
            created_by_name=actor.name,
            created_by_role=actor.role.value,
            created_by_ip=context.ip_address or "",
        )
        await self.receipts.add(receipt)

        # 5. Apply payment
        ledger.total_paid = total_paid_after
        ledger.last_payment_date = now
        ledger.last_payment_amount = payment.amount
        ledger.receipt_count = ledger.receipt_count + 1
        refresh_ledger_state(ledger, today)
        await self.ledgers.save(ledger)

        # 6. Audit
        await self.audit.log(
            AuditAction.RECEIPT_CREATED,
            AuditEntityType.FEE_RECEIPT,
            actor,
            f"Payment of {payment.amount} received from {ledger.student_name} ({ledger.student_roll_no})",
            context=context,
            entity_id=receipt.id,
            entity_code=receipt.receipt_number,
            student_id=ledger.student_id,
            student_name=ledger.student_name,
            student_roll_no=ledger.student_roll_no,
            amount=payment.amount,
            receipt_number=receipt.receipt_number,
            academic_year=ledger.academic_year,
            semester=ledger.semester,
            changes_before=before,
            changes_after=snapshot(ledger, LEDGER_AUDIT_FIELDS),
        )

        logger.info(
            "Receipt issued",
            extra={"receipt_number": receipt.receipt_number, "ledger_id": ledger.id, "amount": payment.amount}
        )
        return receipt, ledger

    @staticmethod
    def _resolve_allocations(ledger: StudentFeeLedger, payment: PaymentCreate) -> List[dict]:
        """Allocations must name ledger heads and may not exceed the payment."""
        if not payment.allocations:
            return []

        heads = {head["head_code"]: head for head in ledger.fee_heads}
        allocations = []
        for allocation in payment.allocations:
            code = allocation.head_code.upper()
            if code not in heads:
                raise FeeValidationError(
                    f"Fee head {code} is not part of this ledger",
                    details={"head_code": code}
                )
            allocations.append({
                "head_code": code,
                "head_name": allocation.head_name or heads[code]["head_name"],
                "allocated_amount": allocation.allocated_amount,
            })

        allocated = sum(item["allocated_amount"] for item in allocations)
        if allocated > payment.amount:
            raise FeeValidationError(
                "Allocated amounts exceed the payment amount",
                details={"allocated": allocated, "amount": payment.amount}
            )
        return allocations

    async def reverse_receipt(
        self,
        receipt_id: int,
        reason: str,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> Tuple[FeeReceipt, FeeReceipt, StudentFeeLedger]:
        """
        Undo a payment by issuing a REVERSAL receipt.

        Flow:
        1. Original must be an unreversed PAYMENT on an open ledger
        2. Number REV-YYYYMMDD-R{n}
        3. Insert the REVERSAL (unique reversal_of_id: one per payment)
        4. Flag the original as reversed
        5. Reduce the ledger's total paid and recompute its state
        6. Audit RECEIPT_REVERSED

        Returns:
            (reversal receipt, original receipt, updated ledger)
        """
        try:
            async with atomic(self.db):
                return await self._apply_reversal(receipt_id, reason, actor, context)
        except AppException as exc:
            await self.audit.log_failure(
                AuditAction.RECEIPT_REVERSED,
                AuditEntityType.FEE_RECEIPT,
                actor,
                exc,
                description=f"Reversal of receipt {receipt_id} rejected",
                context=context,
                entity_id=receipt_id,
                reason=reason or "",
            )
            raise

    async def _apply_reversal(
        self,
        receipt_id: int,
        reason: str,
        actor: Actor,
        context: Optional[RequestContext]
    ) -> Tuple[FeeReceipt, FeeReceipt, StudentFeeLedger]:
        context = context or RequestContext()

        # 1. Validate
        original = await self.receipts.get_for_update(receipt_id)
        if original is None:
            raise ResourceNotFoundError("Fee receipt", receipt_id)
        if original.receipt_type == ReceiptType.REVERSAL:
            raise FeeStateError("Reversal receipts cannot be reversed", details={"receipt_number": original.receipt_number})
        if original.is_reversed:
            raise FeeStateError("Receipt has already been reversed", details={"receipt_number": original.receipt_number})
        if not reason or not reason.strip():
            raise FeeValidationError("A reversal reason is required")

        ledger = await self._get_ledger_for_update(original.ledger_id)
        if ledger.is_closed:
            raise FeeStateError("Cannot reverse a receipt on a closed ledger", details={"ledger_id": ledger.id})

        # 2. Number
        today = utc_today()
        now = utc_now()
        reversal_count = await self.receipts.count_reversals_of(original.id) + 1
        reversal_number = format_reversal_number(settings.reversal_prefix, today, reversal_count)

        # 3. Reversal receipt
        before = snapshot(ledger, LEDGER_AUDIT_FIELDS)
        total_paid_after = max(ledger.total_paid - original.amount, 0)
        reversal = FeeReceipt(
            receipt_number=reversal_number,
            receipt_date=now,
            student_id=original.student_id,
            ledger_id=original.ledger_id,
            student_name=original.student_name,
            student_roll_no=original.student_roll_no,
            department=original.department,
            academic_year=original.academic_year,
            semester=original.semester,
            amount=original.amount,
            payment_mode=original.payment_mode,
            reference_number=original.reference_number,
            allocations=[dict(item) for item in original.allocations],
            previous_balance=ledger.outstanding_balance,
            new_balance=ledger.net_payable - total_paid_after,
            total_paid_before=ledger.total_paid,
            total_paid_after=total_paid_after,
            receipt_type=ReceiptType.REVERSAL,
            reversal_of_id=original.id,
            reversal_receipt_number=original.receipt_number,
            reversal_reason=reason,
            remarks=f"Reversal of {original.receipt_number}",
            created_by_id=actor.id,
            created_by_name=actor.name,
            created_by_role=actor.role.value,
            created_by_ip=context.ip_address or "",
        )
        try:
            await self.receipts.add(reversal)
        except IntegrityError as exc:
            raise FeeStateError(
                "Receipt has already been reversed",
                details={"receipt_number": original.receipt_number}
            ) from exc

        # 4. Flag original
        await self.receipts.mark_reversed(original, reversal, reason, now)

        # 5. Ledger
        ledger.total_paid = total_paid_after
        refresh_ledger_state(ledger, today)
        await self.ledgers.save(ledger)

        # 6. Audit
        await self.audit.log(
            AuditAction.RECEIPT_REVERSED,
            AuditEntityType.FEE_RECEIPT,
            actor,
            f"Receipt {original.receipt_number} reversed: {reason}",
            context=context,
            entity_id=original.id,
            entity_code=original.receipt_number,
            reason=reason,
            student_id=ledger.student_id,
            student_name=ledger.student_name,
            student_roll_no=ledger.student_roll_no,
            amount=original.amount,
            receipt_number=reversal.receipt_number,
            academic_year=ledger.academic_year,
            semester=ledger.semester,
            changes_before=before,
            changes_after=snapshot(ledger, LEDGER_AUDIT_FIELDS),
        )

        logger.info(
            "Receipt reversed",
            extra={"receipt_number": original.receipt_number, "reversal_number": reversal.receipt_number}
        )
        return reversal, original, ledger

    async def verify_receipt(
        self,
        receipt_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeReceipt:
        async with atomic(self.db):
            receipt = await self.receipts.get_for_update(receipt_id)
            if receipt is None:
                raise ResourceNotFoundError("Fee receipt", receipt_id)
            if receipt.is_verified:
                raise FeeStateError("Receipt is already verified", details={"receipt_number": receipt.receipt_number})
            if receipt.is_reversed:
                raise FeeStateError("Reversed receipts cannot be verified", details={"receipt_number": receipt.receipt_number})

            await self.receipts.mark_verified(receipt, actor.id, utc_now())

            await self.audit.log(
                AuditAction.RECEIPT_VERIFIED,
                AuditEntityType.FEE_RECEIPT,
                actor,
                f"Receipt {receipt.receipt_number} verified",
                context=context,
                entity_id=receipt.id,
                entity_code=receipt.receipt_number,
                receipt_number=receipt.receipt_number,
                student_id=receipt.student_id,
                amount=receipt.amount,
            )

        return receipt

    # ==================== BALANCES ====================

    async def compute_ledger_balance(self, ledger_id: int) -> Dict[str, Any]:
        """Recompute a ledger's balance from its receipt journal."""
        ledger = await self.ledgers.get_or_raise(ledger_id)
        receipts = await self.receipts.list_for_ledger(ledger_id)

        payments = [r for r in receipts if r.receipt_type == ReceiptType.PAYMENT and not r.is_reversed]
        total_paid = sum(r.amount for r in payments)
        today = utc_today()
        fee_status = compute_fee_status(total_paid, ledger.net_payable, ledger.due_date, today)
        settled = fee_status == FeeStatus.PAID or ledger.is_closed

        return {
            "ledger_id": ledger.id,
            "net_payable": ledger.net_payable,
            "total_paid": total_paid,
            "outstanding_balance": ledger.net_payable - total_paid,
            "payment_count": len(payments),
            "reversal_count": sum(1 for r in receipts if r.receipt_type == ReceiptType.REVERSAL),
            "fee_status": fee_status,
            "aging_bucket": AgingBucket.CURRENT if settled else compute_aging_bucket(ledger.due_date, today),
            "is_overdue": not settled and today > ledger.due_date,
        }

    async def compute_student_total_balance(self, student_id: int) -> Dict[str, Any]:
        """Totals across a student's active, open ledgers."""
        ledgers = await self.ledgers.list_for_student(student_id)
        open_ledgers = [ledger for ledger in ledgers if ledger.is_active and not ledger.is_closed]

        return {
            "student_id": student_id,
            "ledger_count": len(ledgers),
            "open_ledger_count": len(open_ledgers),
            "total_net_payable": sum(ledger.net_payable for ledger in open_ledgers),
            "total_paid": sum(ledger.total_paid for ledger in open_ledgers),
            "total_outstanding": sum(ledger.outstanding_balance for ledger in open_ledgers),
            "total_overdue": sum(ledger.outstanding_balance for ledger in open_ledgers if ledger.is_overdue),
        }

    # ==================== QUERIES ====================

    async def get_ledger(self, ledger_id: int) -> StudentFeeLedger:
        return await self.ledgers.get_or_raise(ledger_id)

    async def list_ledgers(self, **filters) -> Tuple[List[StudentFeeLedger], int]:
        return await self.ledgers.list(**filters)

    async def list_student_ledgers(self, student_id: int) -> List[StudentFeeLedger]:
        return await self.ledgers.list_for_student(student_id)

    async def academic_years(self) -> List[str]:
        return await self.ledgers.academic_years()

    async def get_receipt(self, receipt_id: int) -> FeeReceipt:
        return await self.receipts.get_or_raise(receipt_id)

    async def get_receipt_by_number(self, receipt_number: str) -> FeeReceipt:
        receipt = await self.receipts.get_by_number(receipt_number.upper())
        if receipt is None:
            raise ResourceNotFoundError("Fee receipt", receipt_number)
        return receipt

    async def list_receipts(self, **filters) -> Tuple[List[FeeReceipt], int]:
        return await self.receipts.list(**filters)

    async def list_ledger_receipts(self, ledger_id: int) -> List[FeeReceipt]:
        await self.ledgers.get_or_raise(ledger_id)
        return await self.receipts.list_for_ledger(ledger_id)

    async def list_student_receipts(self, student_id: int) -> List[FeeReceipt]:
        return await self.receipts.list_for_student(student_id)

    async def list_today_receipts(self, payment_mode: Optional[PaymentMode] = None) -> List[FeeReceipt]:
        today = utc_today()
        receipts = await self.receipts.list_between(today, today)
        if payment_mode:
            receipts = [r for r in receipts if r.payment_mode == payment_mode]
        return receipts

    async def _get_ledger_for_update(self, ledger_id: int) -> StudentFeeLedger:
        ledger = await self.ledgers.get_for_update(ledger_id)
        if ledger is None:
            raise ResourceNotFoundError("Fee ledger", ledger_id)
        return ledger

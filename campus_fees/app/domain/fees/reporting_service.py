"""
Fee Reporting Service.

Read-only aggregation over ledgers and receipts for dashboards and
collection reports. The only write is the REPORT_GENERATED audit entry.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Optional, List

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.config import settings
from campus_fees.app.core.exceptions import FeeValidationError
from campus_fees.app.db.session import atomic
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.domain.fees.status_engine import utc_today
from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket, ReceiptType, AuditEntityType
from campus_fees.app.models.fee_receipt import FeeReceipt
from campus_fees.app.models.student_fee_ledger import StudentFeeLedger
from campus_fees.app.repositories.receipt_repository import day_bounds
from campus_fees.app.schemas.common import Actor, RequestContext
from campus_fees.app.schemas.ledger import LedgerResponse, StudentBalanceSummary
from campus_fees.app.schemas.receipt import ReceiptResponse
from campus_fees.app.schemas.reports import (
    DashboardResponse,
    AgingBucketSummary,
    AgingReport,
    DepartmentSummary,
    DefaulterItem,
    DailyCollection,
    CollectionSummary,
    StudentLedgerReport,
    IntegrityIssue,
    IntegrityReport,
)
from campus_fees.app.services.fee_audit import FeeAuditService, AuditAction

logger = logging.getLogger("campus_fees.reports")


def collection_rate(collected: int, payable: int) -> float:
    if not payable:
        return 0.0
    return round(collected * 100 / payable, 2)


def active_ledgers(academic_year: Optional[str] = None) -> list:
    conditions = [StudentFeeLedger.is_active.is_(True)]
    if academic_year:
        conditions.append(StudentFeeLedger.academic_year == academic_year)
    return conditions


class FeeReportingService:

    def __init__(self, db: AsyncSession, audit: Optional[FeeAuditService] = None):
        self.db = db
        self.audit = audit or FeeAuditService(db)

    async def _record(self, report_type: str, actor: Optional[Actor], context: Optional[RequestContext], **fields):
        if actor is None:
            return
        async with atomic(self.db):
            await self.audit.log(
                AuditAction.REPORT_GENERATED,
                AuditEntityType.REPORT,
                actor,
                f"{report_type} report generated",
                context=context,
                report_type=report_type,
                **fields
            )

    async def get_dashboard(self, academic_year: Optional[str] = None) -> DashboardResponse:
        """Headline KPIs for the fee office."""
        conditions = active_ledgers(academic_year)

        # 1. Totals
        totals = (await self.db.execute(
            select(
                func.count(func.distinct(StudentFeeLedger.student_id)),
                func.count(StudentFeeLedger.id),
                func.coalesce(func.sum(StudentFeeLedger.net_payable), 0),
                func.coalesce(func.sum(StudentFeeLedger.total_paid), 0),
                func.coalesce(func.sum(StudentFeeLedger.outstanding_balance), 0),
            ).where(*conditions)
        )).one()
        total_students, ledger_count, net_payable, collected, outstanding = totals

        # 2. Status breakdown
        status_rows = (await self.db.execute(
            select(StudentFeeLedger.fee_status, func.count(StudentFeeLedger.id))
            .where(*conditions)
            .group_by(StudentFeeLedger.fee_status)
        )).all()
        status_counts = {fee_status.value: 0 for fee_status in FeeStatus}
        for fee_status, count in status_rows:
            status_counts[fee_status.value] = count

        # 3. Overdue
        overdue_count, overdue_amount = (await self.db.execute(
            select(
                func.count(StudentFeeLedger.id),
                func.coalesce(func.sum(StudentFeeLedger.outstanding_balance), 0),
            ).where(*conditions, StudentFeeLedger.is_overdue.is_(True), StudentFeeLedger.is_closed.is_(False))
        )).one()

        # 4. Today's collection (payments not since reversed)
        start, end = day_bounds(utc_today(), utc_today())
        today_count, today_total = (await self.db.execute(
            select(func.count(FeeReceipt.id), func.coalesce(func.sum(FeeReceipt.amount), 0)).where(
                FeeReceipt.receipt_type == ReceiptType.PAYMENT,
                FeeReceipt.is_reversed.is_(False),
                FeeReceipt.receipt_date >= start,
                FeeReceipt.receipt_date < end,
            )
        )).one()

        return DashboardResponse(
            academic_year=academic_year,
            currency=settings.currency_code,
            total_students=total_students,
            ledger_count=ledger_count,
            total_net_payable=net_payable,
            total_collected=collected,
            total_outstanding=outstanding,
            collection_rate=collection_rate(collected, net_payable),
            status_counts=status_counts,
            overdue_count=overdue_count,
            overdue_amount=overdue_amount,
            today_collection=today_total,
            today_receipt_count=today_count,
        )

    async def get_aging_report(
        self,
        academic_year: Optional[str] = None,
        actor: Optional[Actor] = None,
        context: Optional[RequestContext] = None
    ) -> AgingReport:
        """Outstanding debt of open ledgers, always listing all four buckets."""
        rows = (await self.db.execute(
            select(
                StudentFeeLedger.aging_bucket,
                func.count(StudentFeeLedger.id),
                func.coalesce(func.sum(StudentFeeLedger.outstanding_balance), 0),
            )
            .where(
                *active_ledgers(academic_year),
                StudentFeeLedger.is_closed.is_(False),
                StudentFeeLedger.outstanding_balance > 0,
            )
            .group_by(StudentFeeLedger.aging_bucket)
        )).all()

        found = {bucket: (count, amount) for bucket, count, amount in rows}
        buckets = [
            AgingBucketSummary(bucket=bucket, count=found.get(bucket, (0, 0))[0], outstanding=found.get(bucket, (0, 0))[1])
            for bucket in AgingBucket
        ]

        await self._record("AGING", actor, context, academic_year=academic_year or "")
        return AgingReport(
            academic_year=academic_year,
            buckets=buckets,
            total_outstanding=sum(item.outstanding for item in buckets),
        )

    async def get_department_summary(self, academic_year: Optional[str] = None) -> List[DepartmentSummary]:
        rows = (await self.db.execute(
            select(
                StudentFeeLedger.department,
                func.count(func.distinct(StudentFeeLedger.student_id)),
                func.coalesce(func.sum(StudentFeeLedger.net_payable), 0),
                func.coalesce(func.sum(StudentFeeLedger.total_paid), 0),
                func.coalesce(func.sum(StudentFeeLedger.outstanding_balance), 0),
            )
            .where(*active_ledgers(academic_year))
            .group_by(StudentFeeLedger.department)
            .order_by(StudentFeeLedger.department)
        )).all()

        return [
            DepartmentSummary(
                department=department or "UNASSIGNED",
                student_count=students,
                total_net_payable=payable,
                total_collected=collected,
                total_outstanding=outstanding,
                collection_rate=collection_rate(collected, payable),
            )
            for department, students, payable, collected, outstanding in rows
        ]

    async def get_defaulters(
        self,
        academic_year: Optional[str] = None,
        aging_bucket: Optional[AgingBucket] = None,
        min_amount: int = 0,
        limit: int = 100,
        actor: Optional[Actor] = None,
        context: Optional[RequestContext] = None
    ) -> List[DefaulterItem]:
        """Overdue open ledgers, largest outstanding first."""
        query = select(StudentFeeLedger).where(
            *active_ledgers(academic_year),
            StudentFeeLedger.is_overdue.is_(True),
            StudentFeeLedger.is_closed.is_(False),
            StudentFeeLedger.outstanding_balance > 0,
        )
        if aging_bucket:
            query = query.where(StudentFeeLedger.aging_bucket == aging_bucket)
        if min_amount:
            query = query.where(StudentFeeLedger.outstanding_balance >= min_amount)
        query = query.order_by(StudentFeeLedger.outstanding_balance.desc(), StudentFeeLedger.id).limit(limit)

        ledgers = (await self.db.execute(query)).scalars().all()
        defaulters = [
            DefaulterItem(
                ledger_id=ledger.id,
                student_id=ledger.student_id,
                student_name=ledger.student_name,
                student_roll_no=ledger.student_roll_no,
                department=ledger.department,
                academic_year=ledger.academic_year,
                semester=ledger.semester,
                due_date=ledger.due_date,
                outstanding_balance=ledger.outstanding_balance,
                overdue_days=ledger.overdue_days,
                aging_bucket=ledger.aging_bucket,
            )
            for ledger in ledgers
        ]

        await self._record("DEFAULTERS", actor, context, affected_count=len(defaulters))
        return defaulters

    async def get_student_ledger_report(self, student_id: int) -> StudentLedgerReport:
        accounting = FeeAccountingService(self.db, audit=self.audit)
        summary = await accounting.compute_student_total_balance(student_id)
        ledgers = await accounting.list_student_ledgers(student_id)
        receipts = await accounting.list_student_receipts(student_id)

        return StudentLedgerReport(
            student_id=student_id,
            summary=StudentBalanceSummary(**summary),
            ledgers=[LedgerResponse.model_validate(ledger) for ledger in ledgers],
            receipts=[ReceiptResponse.model_validate(receipt) for receipt in receipts],
        )

    async def get_collection_summary(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        actor: Optional[Actor] = None,
        context: Optional[RequestContext] = None
    ) -> CollectionSummary:
        """
        Receipts issued in [from_date, to_date], per day and payment mode.

        grand_total counts every PAYMENT issued in the range, reversal_total
        every REVERSAL issued in the range, so net_total matches the journal.
        """
        to_date = to_date or utc_today()
        from_date = from_date or to_date
        if from_date > to_date:
            raise FeeValidationError(
                "from_date must not be after to_date",
                details={"from_date": from_date.isoformat(), "to_date": to_date.isoformat()}
            )

        start, end = day_bounds(from_date, to_date)
        receipts = (await self.db.execute(
            select(FeeReceipt)
            .where(and_(FeeReceipt.receipt_date >= start, FeeReceipt.receipt_date < end))
            .order_by(FeeReceipt.receipt_date, FeeReceipt.id)
        )).scalars().all()

        daily = defaultdict(lambda: {"by_mode": defaultdict(int), "total": 0, "receipt_count": 0})
        by_mode = defaultdict(int)
        reversal_total = 0

        for receipt in receipts:
            if receipt.receipt_type == ReceiptType.REVERSAL:
                reversal_total += receipt.amount
                continue
            mode = receipt.payment_mode.value
            day = daily[receipt.receipt_date.date()]
            day["by_mode"][mode] += receipt.amount
            day["total"] += receipt.amount
            day["receipt_count"] += 1
            by_mode[mode] += receipt.amount

        grand_total = sum(by_mode.values())

        await self._record(
            "COLLECTION",
            actor,
            context,
            amount=grand_total,
            affected_count=len(receipts),
        )
        return CollectionSummary(
            from_date=from_date,
            to_date=to_date,
            daily=[
                DailyCollection(
                    collection_date=day,
                    by_mode=dict(values["by_mode"]),
                    total=values["total"],
                    receipt_count=values["receipt_count"],
                )
                for day, values in sorted(daily.items())
            ],
            by_mode=dict(by_mode),
            grand_total=grand_total,
            reversal_total=reversal_total,
            net_total=grand_total - reversal_total,
        )

    async def check_ledger_integrity(self, academic_year: Optional[str] = None) -> IntegrityReport:
        """
        Compare stored ledger totals with the receipt journal.

        Read-only: mismatches are reported, never repaired.
        """
        paid = (
            select(FeeReceipt.ledger_id, func.sum(FeeReceipt.amount).label("paid"))
            .where(FeeReceipt.receipt_type == ReceiptType.PAYMENT, FeeReceipt.is_reversed.is_(False))
            .group_by(FeeReceipt.ledger_id)
            .subquery()
        )
        query = (
            select(StudentFeeLedger, func.coalesce(paid.c.paid, 0))
            .outerjoin(paid, paid.c.ledger_id == StudentFeeLedger.id)
            .order_by(StudentFeeLedger.id)
        )
        if academic_year:
            query = query.where(StudentFeeLedger.academic_year == academic_year)

        rows = (await self.db.execute(query)).all()
        issues = []
        for ledger, journal_paid in rows:
            if ledger.total_paid != journal_paid:
                issues.append(IntegrityIssue(
                    ledger_id=ledger.id,
                    issue="total_paid does not match receipts",
                    expected=journal_paid,
                    actual=ledger.total_paid,
                ))
            expected_outstanding = ledger.net_payable - ledger.total_paid
            if ledger.outstanding_balance != expected_outstanding:
                issues.append(IntegrityIssue(
                    ledger_id=ledger.id,
                    issue="outstanding_balance does not reconcile",
                    expected=expected_outstanding,
                    actual=ledger.outstanding_balance,
                ))

        if issues:
            logger.warning("Ledger integrity mismatches found", extra={"issue_count": len(issues)})
        return IntegrityReport(checked_count=len(rows), is_consistent=not issues, issues=issues)

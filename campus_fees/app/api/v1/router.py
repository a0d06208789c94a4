"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from campus_fees.app.api.v1.endpoints import (
    fee_structures, fee_ledgers, fee_receipts,
    fee_reports, fee_audit, fee_student
)

router = APIRouter()

# Fee structure governance
router.include_router(fee_structures.router)

# Student ledgers and receipts
router.include_router(fee_ledgers.router)
router.include_router(fee_receipts.router)

# Reports and maintenance jobs
router.include_router(fee_reports.router)
router.include_router(fee_reports.ops_router)

# Audit trail
router.include_router(fee_audit.router)

# Student self-service
router.include_router(fee_student.router)

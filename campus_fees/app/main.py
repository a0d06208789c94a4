"""
FastAPI Application Entry Point.

This is the main application file for the Campus Fee Accounting backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from campus_fees.app.core.config import settings
from campus_fees.app.api.v1.router import router as api_v1_router
from campus_fees.app.core.observability import ObservabilityMiddleware
from campus_fees.app.db.session import engine, Base
from campus_fees.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from campus_fees.app.models.fee_structure import FeeStructure
from campus_fees.app.models.student_fee_ledger import StudentFeeLedger
from campus_fees.app.models.fee_receipt import FeeReceipt
from campus_fees.app.models.receipt_sequence import ReceiptSequence
from campus_fees.app.models.fee_audit_log import FeeAuditLog

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Ledger-based fee accounting for the campus platform",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "currency": settings.currency_code,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the Campus Fee Accounting API",
        "docs": "/docs",
        "health": "/health",
    }

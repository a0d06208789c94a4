"""
Fee Structure API Endpoints.

Governance of fee templates: draft, approve, activate, lock, version, archive.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from campus_fees.app.db.session import get_db
from campus_fees.app.core.dependencies import get_request_context
from campus_fees.app.core.guards import require_admin, require_staff
from campus_fees.app.domain.fees.structure_service import FeeStructureService
from campus_fees.app.models.fee_enums import StructureStatus
from campus_fees.app.schemas.common import Actor, RequestContext
from campus_fees.app.schemas.fee_structure import (
    FeeStructureCreate,
    FeeStructureUpdate,
    FeeStructureResponse,
    FeeStructureListResponse,
    FeeHeadMasterItem,
    StructureApproveRequest,
    StructureLockRequest,
)

router = APIRouter(prefix="/fees/structures", tags=["Fees - Structures"])


@router.post("", response_model=FeeStructureResponse, status_code=status.HTTP_201_CREATED)
async def create_structure(
    data: FeeStructureCreate,
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a draft fee structure.

    The code is generated as FS-{YEAR}-{COURSE}-{DEPT}-S{SEM} when not given.
    """
    return await FeeStructureService(db).create_structure(data, actor, context)


@router.get("", response_model=FeeStructureListResponse)
async def list_structures(
    academic_year: Optional[str] = Query(None),
    status_filter: Optional[StructureStatus] = Query(None, alias="status"),
    department_id: Optional[int] = Query(None),
    course_id: Optional[int] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    structures, total = await FeeStructureService(db).list_structures(
        academic_year=academic_year,
        status=status_filter,
        department_id=department_id,
        course_id=course_id,
        semester=semester,
        page=page,
        page_size=page_size,
    )
    return FeeStructureListResponse(
        structures=[FeeStructureResponse.model_validate(s) for s in structures],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/fee-heads", response_model=List[FeeHeadMasterItem])
async def list_fee_heads(actor: Actor = Depends(require_staff)):
    """Standard fee head catalogue."""
    return FeeStructureService.fee_heads_master()


@router.get("/{structure_id}", response_model=FeeStructureResponse)
async def get_structure(
    structure_id: int = Path(..., description="Fee structure ID"),
    actor: Actor = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await FeeStructureService(db).get_structure(structure_id)


@router.patch("/{structure_id}", response_model=FeeStructureResponse)
async def update_structure(
    changes: FeeStructureUpdate,
    structure_id: int = Path(..., description="Fee structure ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """Edit a draft. Locked structures answer 409."""
    return await FeeStructureService(db).update_structure(structure_id, changes, actor, context)


@router.post("/{structure_id}/approve", response_model=FeeStructureResponse)
async def approve_structure(
    body: StructureApproveRequest,
    structure_id: int = Path(..., description="Fee structure ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await FeeStructureService(db).approve(structure_id, body.remarks, actor, context)


@router.post("/{structure_id}/activate", response_model=FeeStructureResponse)
async def activate_structure(
    structure_id: int = Path(..., description="Fee structure ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await FeeStructureService(db).activate(structure_id, actor, context)


@router.post("/{structure_id}/archive", response_model=FeeStructureResponse)
async def archive_structure(
    structure_id: int = Path(..., description="Fee structure ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await FeeStructureService(db).archive(structure_id, actor, context)


@router.post("/{structure_id}/lock", response_model=FeeStructureResponse)
async def lock_structure(
    body: StructureLockRequest,
    structure_id: int = Path(..., description="Fee structure ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await FeeStructureService(db).lock(structure_id, body.reason, actor, context)


@router.post("/{structure_id}/version", response_model=FeeStructureResponse, status_code=status.HTTP_201_CREATED)
async def create_structure_version(
    structure_id: int = Path(..., description="Fee structure ID"),
    actor: Actor = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """Copy a structure into a new draft version; the original is untouched."""
    return await FeeStructureService(db).create_new_version(structure_id, actor, context)

"""
Fee Structure Service (Domain Logic).

Governs fee templates: draft -> approved -> active -> archived, locking on
first assignment, and versioning instead of editing once locked.
"""

import logging
import re
from typing import Optional, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.exceptions import FeeValidationError, FeeStateError, LockedStructureError
from campus_fees.app.db.session import atomic
from campus_fees.app.domain.fees.status_engine import utc_now
from campus_fees.app.models.fee_enums import StructureStatus, AuditEntityType
from campus_fees.app.models.fee_structure import FeeStructure
from campus_fees.app.repositories.fee_structure_repository import FeeStructureRepository
from campus_fees.app.schemas.common import Actor, RequestContext
from campus_fees.app.schemas.fee_structure import FeeStructureCreate, FeeStructureUpdate, FeeHeadItem
from campus_fees.app.services.fee_audit import FeeAuditService, AuditAction, snapshot

logger = logging.getLogger("campus_fees.structures")

STRUCTURE_AUDIT_FIELDS = (
    "code", "name", "description", "semester", "fee_heads", "total_mandatory",
    "total_optional", "approved_total", "status", "version", "is_locked",
)

VERSION_SUFFIX = re.compile(r"-V(\d+)$")

FEE_HEADS_MASTER = [
    {"head_code": "TUITION", "head_name": "Tuition Fee", "is_optional": False, "description": "Academic tuition charges"},
    {"head_code": "EXAMINATION", "head_name": "Examination Fee", "is_optional": False, "description": "Exam and evaluation charges"},
    {"head_code": "LIBRARY", "head_name": "Library Fee", "is_optional": False, "description": "Library access and resources"},
    {"head_code": "LABORATORY", "head_name": "Laboratory Fee", "is_optional": False, "description": "Lab equipment and consumables"},
    {"head_code": "HOSTEL", "head_name": "Hostel Fee", "is_optional": True, "description": "Accommodation charges"},
    {"head_code": "TRANSPORT", "head_name": "Transport Fee", "is_optional": True, "description": "Bus or shuttle service"},
    {"head_code": "SPORTS", "head_name": "Sports Fee", "is_optional": False, "description": "Sports facilities"},
    {"head_code": "CULTURAL", "head_name": "Cultural Fee", "is_optional": False, "description": "Cultural activities"},
    {"head_code": "DEVELOPMENT", "head_name": "Development Fee", "is_optional": False, "description": "Infrastructure development"},
    {"head_code": "PLACEMENT", "head_name": "Placement Fee", "is_optional": False, "description": "Placement cell activities"},
    {"head_code": "INSURANCE", "head_name": "Insurance Fee", "is_optional": False, "description": "Student insurance coverage"},
    {"head_code": "OTHER", "head_name": "Other Fee", "is_optional": False, "description": "Miscellaneous charges"},
]


def version_from_code(code: str) -> int:
    """Version implied by a -V{n} code suffix, 1 when there is none."""
    match = VERSION_SUFFIX.search(code)
    return int(match.group(1)) if match else 1


def normalize_heads(heads: List[FeeHeadItem]) -> List[dict]:
    """Validate fee heads and return them as JSON-ready dicts with upper-case codes."""
    if not heads:
        raise FeeValidationError("At least one fee head is required")

    normalized = []
    seen = set()
    for head in heads:
        code = head.head_code.strip().upper()
        if not code:
            raise FeeValidationError("Fee head code is required")
        if code in seen:
            raise FeeValidationError(f"Duplicate fee head {code}", details={"head_code": code})
        if head.amount < 0:
            raise FeeValidationError(f"Fee head {code} has a negative amount", details={"head_code": code})
        seen.add(code)
        normalized.append({
            "head_code": code,
            "head_name": head.head_name,
            "amount": head.amount,
            "is_optional": head.is_optional,
            "description": head.description,
        })
    return normalized


def compute_totals(heads: List[dict]) -> Tuple[int, int]:
    """(mandatory total, optional total) of a list of fee heads."""
    mandatory = sum(head["amount"] for head in heads if not head["is_optional"])
    optional = sum(head["amount"] for head in heads if head["is_optional"])
    return mandatory, optional


class FeeStructureService:
    """Fee structure governance. Every mutation is audited in the same transaction."""

    def __init__(self, db: AsyncSession, audit: Optional[FeeAuditService] = None):
        self.db = db
        self.structures = FeeStructureRepository(db)
        self.audit = audit or FeeAuditService(db)

    async def _audit(self, action: str, structure: FeeStructure, actor: Actor, description: str, context=None, **fields):
        await self.audit.log(
            action,
            AuditEntityType.FEE_STRUCTURE,
            actor,
            description,
            context=context,
            entity_id=structure.id,
            entity_code=structure.code,
            structure_code=structure.code,
            academic_year=structure.academic_year,
            semester=structure.semester,
            **fields
        )

    async def generate_code(self, academic_year: str, course_code: str, department_code: str, semester: int) -> str:
        """FS-{YEAR}-{COURSE}-{DEPT}-S{SEM}, suffixed -V{n+1} when n codes already share the prefix."""
        prefix = f"FS-{academic_year.replace('-', '')}-{course_code}-{department_code}-S{semester}".upper()
        existing = await self.structures.count_codes_with_prefix(prefix)
        return f"{prefix}-V{existing + 1}" if existing > 0 else prefix

    async def create_structure(
        self,
        data: FeeStructureCreate,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeStructure:
        """
        Create a draft fee structure.

        Flow:
        1. Validate heads and resolve the code (given or generated)
        2. Reject duplicate codes
        3. Compute totals; approved_total defaults to the mandatory total
        4. Persist + audit STRUCTURE_CREATED
        """
        if not data.name or not data.academic_year:
            raise FeeValidationError("Name and academic year are required")

        # 1. Heads and code
        heads = normalize_heads(data.fee_heads)
        if data.code:
            code = data.code.strip().upper()
        elif data.course_code and data.department_code and data.semester:
            code = await self.generate_code(data.academic_year, data.course_code, data.department_code, data.semester)
        else:
            raise FeeValidationError(
                "Structure code is required unless course code, department code and semester are given"
            )

        # 2. Duplicate check
        if await self.structures.get_by_code(code):
            raise FeeValidationError("A fee structure with this code already exists", details={"code": code})

        # 3. Totals
        total_mandatory, total_optional = compute_totals(heads)
        approved_total = data.approved_total if data.approved_total is not None else total_mandatory

        async with atomic(self.db):
            structure = FeeStructure(
                code=code,
                name=data.name,
                description=data.description or "",
                academic_year=data.academic_year,
                semester=data.semester,
                department_id=data.department_id,
                department_code=data.department_code,
                course_id=data.course_id,
                course_code=data.course_code,
                fee_heads=heads,
                total_mandatory=total_mandatory,
                total_optional=total_optional,
                approved_total=approved_total,
                version=version_from_code(code),
                status=StructureStatus.DRAFT,
                is_locked=False,
                effective_from=data.effective_from,
                effective_to=data.effective_to,
                created_by_id=actor.id,
            )
            await self.structures.add(structure)

            # 4. Audit
            await self._audit(
                AuditAction.STRUCTURE_CREATED,
                structure,
                actor,
                f'Fee structure "{structure.name}" ({structure.code}) created',
                context=context,
                amount=structure.approved_total,
                changes_after=snapshot(structure, STRUCTURE_AUDIT_FIELDS),
            )

        logger.info("Fee structure created", extra={"structure_code": structure.code, "actor_id": actor.id})
        return structure

    async def get_structure(self, structure_id: int) -> FeeStructure:
        return await self.structures.get_or_raise(structure_id)

    async def list_structures(
        self,
        academic_year: Optional[str] = None,
        status: Optional[StructureStatus] = None,
        department_id: Optional[int] = None,
        course_id: Optional[int] = None,
        semester: Optional[int] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[FeeStructure], int]:
        return await self.structures.list(
            academic_year=academic_year,
            status=status,
            department_id=department_id,
            course_id=course_id,
            semester=semester,
            page=page,
            page_size=page_size,
        )

    @staticmethod
    def fee_heads_master() -> List[dict]:
        return [dict(head) for head in FEE_HEADS_MASTER]

    async def update_structure(
        self,
        structure_id: int,
        changes: FeeStructureUpdate,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeStructure:
        """Edit a draft, unlocked structure. Totals follow the heads."""
        updates = changes.model_dump(exclude_unset=True)
        heads = normalize_heads(changes.fee_heads) if changes.fee_heads is not None else None

        async with atomic(self.db):
            structure = await self.structures.get_for_update(structure_id)
            if structure.is_locked:
                raise LockedStructureError(structure.code)
            if structure.status != StructureStatus.DRAFT:
                raise FeeStateError("Only draft structures can be modified", details={"status": structure.status.value})
            before = snapshot(structure, STRUCTURE_AUDIT_FIELDS)

            for field in ("name", "description", "semester", "effective_from", "effective_to"):
                if field in updates and updates[field] is not None:
                    setattr(structure, field, updates[field])

            if heads is not None:
                structure.fee_heads = heads
                structure.total_mandatory, structure.total_optional = compute_totals(heads)
                if changes.approved_total is None:
                    structure.approved_total = structure.total_mandatory
            if changes.approved_total is not None:
                structure.approved_total = changes.approved_total

            structure.updated_by_id = actor.id
            await self.structures.save(structure)

            await self._audit(
                AuditAction.STRUCTURE_UPDATED,
                structure,
                actor,
                f'Fee structure "{structure.name}" updated',
                context=context,
                changes_before=before,
                changes_after=snapshot(structure, STRUCTURE_AUDIT_FIELDS),
            )

        return structure

    async def approve(
        self,
        structure_id: int,
        remarks: str,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeStructure:
        async with atomic(self.db):
            structure = await self.structures.get_for_update(structure_id)
            if structure.is_locked:
                raise LockedStructureError(structure.code)
            if structure.status != StructureStatus.DRAFT:
                raise FeeStateError("Only draft structures can be approved", details={"status": structure.status.value})

            structure.status = StructureStatus.APPROVED
            structure.approved_by_id = actor.id
            structure.approved_at = utc_now()
            structure.approval_remarks = remarks or ""
            structure.updated_by_id = actor.id
            await self.structures.save(structure)

            await self._audit(
                AuditAction.STRUCTURE_APPROVED,
                structure,
                actor,
                f'Fee structure "{structure.name}" approved',
                context=context,
                reason=remarks or "",
                changes_before={"status": StructureStatus.DRAFT.value},
                changes_after={"status": StructureStatus.APPROVED.value},
            )

        return structure

    async def activate(
        self,
        structure_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeStructure:
        async with atomic(self.db):
            structure = await self.structures.get_for_update(structure_id)
            if structure.is_locked:
                raise LockedStructureError(structure.code)
            if structure.status != StructureStatus.APPROVED:
                raise FeeStateError("Only approved structures can be activated", details={"status": structure.status.value})

            structure.status = StructureStatus.ACTIVE
            structure.effective_from = utc_now()
            structure.updated_by_id = actor.id
            await self.structures.save(structure)

            await self._audit(
                AuditAction.STRUCTURE_ACTIVATED,
                structure,
                actor,
                f'Fee structure "{structure.name}" activated',
                context=context,
                changes_before={"status": StructureStatus.APPROVED.value},
                changes_after={"status": StructureStatus.ACTIVE.value},
            )

        return structure

    async def archive(
        self,
        structure_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeStructure:
        """Retire a structure. Allowed on locked structures."""
        async with atomic(self.db):
            structure = await self.structures.get_for_update(structure_id)
            if structure.status == StructureStatus.ARCHIVED:
                raise FeeStateError("Structure is already archived")

            previous_status = structure.status
            structure.status = StructureStatus.ARCHIVED
            structure.updated_by_id = actor.id
            await self.structures.save(structure)

            await self._audit(
                AuditAction.STRUCTURE_ARCHIVED,
                structure,
                actor,
                f'Fee structure "{structure.name}" archived',
                context=context,
                changes_before={"status": previous_status.value},
                changes_after={"status": StructureStatus.ARCHIVED.value},
            )

        return structure

    async def lock_structure(self, structure: FeeStructure, reason: Optional[str], actor: Actor, context: Optional[RequestContext] = None) -> FeeStructure:
        """
        Lock a loaded structure inside the caller's transaction.

        Used on first assignment to a student and by the explicit lock action.
        """
        if structure.is_locked:
            raise FeeStateError("Structure is already locked", details={"structure_code": structure.code})

        structure.is_locked = True
        structure.locked_at = utc_now()
        structure.locked_reason = reason or "Assigned to students"
        structure.updated_by_id = actor.id
        await self.structures.save(structure)

        await self._audit(
            AuditAction.STRUCTURE_LOCKED,
            structure,
            actor,
            f'Fee structure "{structure.name}" locked',
            context=context,
            reason=structure.locked_reason,
        )
        return structure

    async def lock(
        self,
        structure_id: int,
        reason: Optional[str],
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeStructure:
        async with atomic(self.db):
            structure = await self.structures.get_for_update(structure_id)
            await self.lock_structure(structure, reason, actor, context)

        return structure

    async def create_new_version(
        self,
        structure_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None
    ) -> FeeStructure:
        """
        Copy a structure into a new draft with version + 1.

        The parent is left untouched, so this works on locked structures.
        """
        async with atomic(self.db):
            original = await self.structures.get_for_update(structure_id)
            new_version = original.version + 1
            code = f"{VERSION_SUFFIX.sub('', original.code)}-V{new_version}"

            if await self.structures.get_by_code(code):
                raise FeeStateError(f"Version {new_version} of this structure already exists", details={"code": code})

            structure = FeeStructure(
                code=code,
                name=f"{original.name} (Version {new_version})",
                description=original.description,
                academic_year=original.academic_year,
                semester=original.semester,
                department_id=original.department_id,
                department_code=original.department_code,
                course_id=original.course_id,
                course_code=original.course_code,
                fee_heads=[dict(head) for head in original.fee_heads],
                total_mandatory=original.total_mandatory,
                total_optional=original.total_optional,
                approved_total=original.approved_total,
                version=new_version,
                parent_structure_id=original.id,
                status=StructureStatus.DRAFT,
                is_locked=False,
                created_by_id=actor.id,
            )
            await self.structures.add(structure)

            await self._audit(
                AuditAction.STRUCTURE_VERSION_CREATED,
                structure,
                actor,
                f"New version {new_version} created from {original.code}",
                context=context,
                changes_before={"parent_code": original.code, "parent_version": original.version},
                changes_after=snapshot(structure, STRUCTURE_AUDIT_FIELDS),
            )

        return structure

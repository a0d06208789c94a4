"""
Fee structure repository.
"""

from typing import Optional, List, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.exceptions import LockedStructureError, ResourceNotFoundError
from campus_fees.app.models.fee_enums import StructureStatus
from campus_fees.app.models.fee_structure import FeeStructure
from campus_fees.app.repositories.base import BaseRepository

# Fields that may still change once a structure is locked (archival only)
LOCKED_WRITABLE_FIELDS = {"status", "updated_by_id", "updated_at"}


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FeeStructureRepository(BaseRepository[FeeStructure]):
    resource_name = "Fee structure"

    def __init__(self, db: AsyncSession):
        super().__init__(FeeStructure, db)

    async def get_for_update(self, structure_id: int) -> FeeStructure:
        """Load a structure holding a row lock until the transaction ends."""
        result = await self.db.execute(
            select(FeeStructure)
            .where(FeeStructure.id == structure_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        structure = result.scalar_one_or_none()
        if structure is None:
            raise ResourceNotFoundError(self.resource_name, structure_id)
        return structure

    async def get_by_code(self, code: str) -> Optional[FeeStructure]:
        result = await self.db.execute(select(FeeStructure).where(FeeStructure.code == code))
        return result.scalar_one_or_none()

    async def count_codes_with_prefix(self, prefix: str) -> int:
        """Codes equal to prefix or versioned from it as {prefix}-V{n}."""
        result = await self.db.execute(
            select(func.count(FeeStructure.id)).where(or_(
                FeeStructure.code == prefix,
                FeeStructure.code.like(f"{escape_like(prefix)}-V%", escape="\\"),
            ))
        )
        return result.scalar_one()

    async def list(
        self,
        academic_year: Optional[str] = None,
        status: Optional[StructureStatus] = None,
        department_id: Optional[int] = None,
        course_id: Optional[int] = None,
        semester: Optional[int] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[FeeStructure], int]:
        query = select(FeeStructure)
        if academic_year:
            query = query.where(FeeStructure.academic_year == academic_year)
        if status:
            query = query.where(FeeStructure.status == status)
        if department_id is not None:
            query = query.where(FeeStructure.department_id == department_id)
        if course_id is not None:
            query = query.where(FeeStructure.course_id == course_id)
        if semester is not None:
            query = query.where(FeeStructure.semester == semester)

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        query = query.order_by(FeeStructure.created_at.desc(), FeeStructure.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def save(self, structure: FeeStructure) -> FeeStructure:
        """
        Flush pending changes to a structure.

        A structure that was already locked may only move to archived;
        any other change raises LockedStructureError.
        """
        if self.previous_value(structure, "is_locked"):
            changed = self.changed_fields(structure)
            illegal = changed - LOCKED_WRITABLE_FIELDS
            if illegal or ("status" in changed and structure.status != StructureStatus.ARCHIVED):
                raise LockedStructureError(structure.code)

        await self.db.flush()
        return structure

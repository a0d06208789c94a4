"""
Fee Structure schemas.

Defines request and response models for fee structure governance.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from campus_fees.app.models.fee_enums import StructureStatus


class FeeHeadItem(BaseModel):
    """One line item of a fee structure, amount in minor units."""
    head_code: str = Field(..., min_length=1, max_length=30)
    head_name: str = Field(..., min_length=1, max_length=100)
    amount: int = Field(..., ge=0)
    is_optional: bool = False
    description: str = ""


class FeeStructureCreate(BaseModel):
    """Schema for creating a fee structure. Code is generated when omitted."""
    code: Optional[str] = Field(None, min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    academic_year: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="e.g. 2024-25")
    semester: Optional[int] = Field(None, ge=1, le=8)
    department_id: Optional[int] = None
    department_code: Optional[str] = Field(None, max_length=50)
    course_id: Optional[int] = None
    course_code: Optional[str] = Field(None, max_length=50)
    fee_heads: List[FeeHeadItem] = Field(..., min_length=1)
    approved_total: Optional[int] = Field(None, ge=0, description="Defaults to the mandatory total")
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None


class FeeStructureUpdate(BaseModel):
    """Schema for editing a draft fee structure."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    semester: Optional[int] = Field(None, ge=1, le=8)
    fee_heads: Optional[List[FeeHeadItem]] = Field(None, min_length=1)
    approved_total: Optional[int] = Field(None, ge=0)
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None


class StructureApproveRequest(BaseModel):
    remarks: str = Field("", max_length=500)


class StructureLockRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class FeeStructureResponse(BaseModel):
    """Schema for fee structure response."""
    id: int
    code: str
    name: str
    description: str
    academic_year: str
    semester: Optional[int]
    department_id: Optional[int]
    department_code: Optional[str]
    course_id: Optional[int]
    course_code: Optional[str]
    fee_heads: List[FeeHeadItem]
    total_mandatory: int
    total_optional: int
    approved_total: int
    version: int
    parent_structure_id: Optional[int]
    status: StructureStatus
    is_locked: bool
    locked_at: Optional[datetime]
    locked_reason: str
    approved_by_id: Optional[int]
    approved_at: Optional[datetime]
    approval_remarks: str
    effective_from: Optional[datetime]
    effective_to: Optional[datetime]
    created_by_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FeeStructureListResponse(BaseModel):
    """Schema for paginated fee structure list."""
    structures: List[FeeStructureResponse]
    total: int
    page: int
    page_size: int


class FeeHeadMasterItem(BaseModel):
    head_code: str
    head_name: str
    is_optional: bool
    description: str

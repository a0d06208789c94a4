"""
Shared schemas: who is acting, from where, on which student.
"""

from pydantic import BaseModel, Field
from typing import Optional
from campus_fees.app.models.fee_enums import ActorRole


class Actor(BaseModel):
    """Identity recorded against every mutating fee operation."""
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    role: ActorRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=None, name="System", role=ActorRole.SYSTEM)


class RequestContext(BaseModel):
    """Request metadata captured for audit attribution only."""
    ip_address: str = ""
    user_agent: str = ""
    request_id: str = ""


class StudentRef(BaseModel):
    """Student master data snapshot supplied by the caller."""
    id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=200)
    roll_no: str = Field("", max_length=50)
    department: str = Field("", max_length=100)
    course: str = Field("", max_length=100)

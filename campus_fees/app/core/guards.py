"""
Security guards for role-based access control.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from campus_fees.app.models.fee_enums import ActorRole
from campus_fees.app.core.dependencies import get_current_user, actor_from_payload
from campus_fees.app.schemas.common import Actor


def require_role(allowed_roles: List[ActorRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/receipts")
        async def create_receipt(actor: Actor = Depends(require_role([ActorRole.ADMIN]))):
            ...

    Raises:
        HTTPException 403 if the token's role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> Actor:
        actor = actor_from_payload(current_user)

        if actor.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return actor

    return role_checker


require_admin = require_role([ActorRole.ADMIN])
require_staff = require_role([ActorRole.ADMIN, ActorRole.FACULTY])


async def require_student(current_user: dict = Depends(get_current_user)) -> dict:
    """
    Dependency for student self-service endpoints.

    Returns the token payload, which must carry the caller's student_id.
    """
    if current_user.get("role") != ActorRole.STUDENT.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student access required"
        )

    if not current_user.get("student_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not linked to a student record"
        )

    return current_user

"""
Request dependencies for FastAPI.

Turns the bearer token into an Actor and the incoming request into a
RequestContext for audit attribution.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from campus_fees.app.core.jwt import decode_access_token
from campus_fees.app.core.observability import get_correlation_id
from campus_fees.app.models.fee_enums import ActorRole
from campus_fees.app.schemas.common import Actor, RequestContext

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Validate the bearer token and return its payload.

    Raises:
        HTTPException: 401 if the token is invalid, expired or incomplete
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("user_id") or not payload.get("role"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


def actor_from_payload(payload: dict) -> Actor:
    try:
        role = ActorRole(payload.get("role"))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid role in token"
        )
    return Actor(
        id=payload.get("user_id"),
        name=payload.get("name") or payload.get("sub") or "unknown",
        role=role,
    )


async def get_current_actor(current_user: dict = Depends(get_current_user)) -> Actor:
    return actor_from_payload(current_user)


async def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else "",
        user_agent=request.headers.get("user-agent", "")[:500],
        request_id=get_correlation_id() or request.headers.get("X-Correlation-ID", ""),
    )

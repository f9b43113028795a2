"""
Authentication and supplier authorization for API endpoints.

Callers authenticate with either:
- X-API-Key header matching settings.api_key (acts as administrator)
- Authorization: Bearer <Supabase JWT>
"""

import secrets
from dataclasses import dataclass
from typing import Optional
import structlog

import jwt
from fastapi import Header, HTTPException, status

from config import settings
from exceptions import AuthorizationError

logger = structlog.get_logger(__name__)

ADMIN_ROLE = "admin"


@dataclass
class AuthContext:
    """
    Authenticated caller.

    Attributes:
        subject: User ID from the JWT, None for API key callers
        role: Caller role ("admin", "supplier", ...)
        supplier_id: Supplier the caller acts for (defaults to subject)
    """
    subject: Optional[str]
    role: str
    supplier_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def _decode_jwt(token: str) -> Optional[dict]:
    """Decode a Supabase JWT; None if it is invalid or no secret is set."""
    if not settings.supabase_jwt_secret:
        logger.warning("jwt_secret_not_configured")
        return None

    try:
        # Supabase signs with HS256
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience="authenticated",
        )
    except jwt.ExpiredSignatureError:
        logger.warning("jwt_expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("jwt_invalid", error_type=type(e).__name__)
        return None


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """
    FastAPI dependency that authenticates the request.

    Raises:
        HTTPException 401: If no valid credentials are given
    """
    if x_api_key:
        if settings.api_key and secrets.compare_digest(x_api_key, settings.api_key):
            return AuthContext(subject=None, role=ADMIN_ROLE)
        logger.warning("invalid_api_key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )

    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authorization header format",
                headers={"WWW-Authenticate": "Bearer"},
            )

        payload = _decode_jwt(authorization[7:])
        if not payload:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        app_metadata = payload.get("app_metadata") or {}
        subject = payload.get("sub")
        return AuthContext(
            subject=subject,
            role=app_metadata.get("role") or payload.get("role") or "authenticated",
            supplier_id=app_metadata.get("supplier_id") or subject,
        )

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer, API-Key"},
    )


def authorize_supplier(auth: AuthContext, supplier_id: str, action: str = "access") -> None:
    """
    Allow the owning supplier or an administrator.

    Raises:
        AuthorizationError: For anyone else
    """
    if auth.is_admin:
        return
    if auth.supplier_id and auth.supplier_id == supplier_id:
        return

    logger.warning(
        "supplier_access_denied",
        subject=auth.subject,
        supplier_id=supplier_id,
        action=action
    )
    raise AuthorizationError(supplier_id, action)

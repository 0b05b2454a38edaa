# campusgrub/core/auth.py
import uuid
from typing import Any, Literal

from fastapi import (
    Depends,
    HTTPException,
    Query,
    WebSocketException,
    status,
)
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel

from campusgrub.core.config import get_settings

settings = get_settings()

Role = Literal["student", "vendor", "admin"]
ROLES: tuple[str, ...] = ("student", "vendor", "admin")

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so we can support anonymous access (public community feed).
bearer_scheme = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    """
    Verified caller identity, threaded explicitly into every core call.

    - id   : Supabase auth.users.id (JWT "sub"); student id or vendor id
    - role : student | vendor | admin, from user_metadata / app_metadata
    """

    id: uuid.UUID
    email: str
    role: Role
    name: str


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def _default_name_from_email(email: str) -> str:
    """
    Derive a default display name from email if the profile
    has no name yet.
    """
    if "@" in email:
        return email.split("@", 1)[0]
    return email


def _role_from_claims(payload: dict[str, Any]) -> str:
    """
    Application role lives in app_metadata (set server-side, trusted first)
    or user_metadata (set at signup by the role-selection screen).
    Defaults to "student".
    """
    for key in ("app_metadata", "user_metadata"):
        meta = payload.get(key) or {}
        role = meta.get("role")
        if role in ROLES:
            return role
    return "student"


def identity_from_token(token: str) -> Identity:
    """
    Build an Identity from a raw JWT.

    Raises:
        HTTPException(401): if token is malformed or missing required claims.
    """
    payload = decode_access_token(token)
    sub = payload.get("sub")
    email = payload.get("email")

    if not sub or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub/email",
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )

    user_meta = payload.get("user_metadata") or {}
    name = (user_meta.get("name") or "").strip() or _default_name_from_email(email)

    return Identity(id=sub_uuid, email=email, role=_role_from_claims(payload), name=name)


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity | None:
    """
    Resolve the caller from a Supabase JWT.

    Returns:
        Identity if authenticated, else None for anonymous callers.
    """
    if credentials is None:
        return None  # anonymous
    return identity_from_token(credentials.credentials)


def require_auth(identity: Identity | None = Depends(get_current_identity)) -> Identity:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if identity is None.
    """
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return identity


def _require_role(identity: Identity, role: str, detail: str) -> Identity:
    if identity.role != role:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
    return identity


def require_student(identity: Identity = Depends(require_auth)) -> Identity:
    """
    Only students can place orders and list "my orders".
    """
    return _require_role(identity, "student", "Student access required")


def require_vendor(identity: Identity = Depends(require_auth)) -> Identity:
    """
    Only vendors can transition orders.
    """
    return _require_role(identity, "vendor", "Vendor access required")


def require_admin(identity: Identity = Depends(require_auth)) -> Identity:
    """
    Administrative endpoints (stale-order sweep, hard delete).
    """
    return _require_role(identity, "admin", "Admin access required")


async def websocket_identity(
    token: str | None = Query(default=None),
) -> Identity | None:
    """
    Browsers cannot set headers on a WebSocket handshake, so the JWT is
    passed as `?token=`. Returns None when no token is given.
    """
    if token is None:
        return None
    try:
        return identity_from_token(token)
    except HTTPException as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.detail)

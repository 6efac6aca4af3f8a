"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from hostelpal.core.security import decode_access_token, extract_bearer_token
from hostelpal.db.models import User
from hostelpal.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def authenticate_token(db: Session, token: str) -> User:
    """
    Resolve a bearer token to an active user.

    Validates:
    - JWT is valid and not expired
    - User exists and is active
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    try:
        payload = decode_access_token(token)
        user_id = UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    if user.token_version != payload.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")

    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Get the authenticated user from the ``Authorization: Bearer`` header."""
    token = extract_bearer_token(request.headers.get("authorization"))
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return authenticate_token(db, token)


def require_roles(allowed_roles):
    """
    Dependency factory for role-based authorization.

    Uses enum values (not strings) to prevent drift. The denial is generic.

    Usage:
        @router.get("/reports", dependencies=[Depends(require_roles(ROLES_CAN_VIEW_REPORTS))])
    """
    allowed = {getattr(role, "value", role) for role in allowed_roles}

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Access denied")
        return user

    return dependency

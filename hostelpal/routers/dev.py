"""Development-only endpoints for seeding and minting tokens."""

from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from hostelpal.core.config import settings
from hostelpal.core.deps import get_db
from hostelpal.core.security import create_access_token
from hostelpal.db.enums import Role
from hostelpal.db.models import User
from hostelpal.schemas.auth import TokenResponse

router = APIRouter(prefix="/dev", tags=["dev"])


def _verify_dev_secret(x_dev_secret: str = Header(...)):
    """
    Verify dev secret header.

    Provides an extra layer of protection for dev endpoints
    beyond just the ENV check.
    """
    if x_dev_secret != settings.DEV_SECRET:
        raise HTTPException(status_code=403, detail="Invalid dev secret")


SEED_USERS = [
    # email, name, role, room, block
    ("student@hostel.test", "Test Student", Role.STUDENT, "A-101", "A"),
    ("student2@hostel.test", "Second Student", Role.STUDENT, "B-204", "B"),
    ("staff@hostel.test", "Test Staff", Role.STAFF, None, None),
    ("admin@hostel.test", "Test Admin", Role.ADMIN, None, None),
]


@router.post("/seed", dependencies=[Depends(_verify_dev_secret)])
def seed_test_data(db: Session = Depends(get_db)):
    """
    Create test users for local development.

    Idempotent - returns existing users if already seeded.
    """
    users = []
    created = False
    for email, name, role, room, block in SEED_USERS:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            user = User(
                email=email,
                name=name,
                role=role.value,
                room_number=room,
                hostel_block=block,
            )
            db.add(user)
            db.flush()
            created = True
        users.append({"email": email, "user_id": str(user.id), "role": user.role})

    db.commit()
    return {"status": "seeded" if created else "already_seeded", "users": users}


@router.post(
    "/token/{user_id}",
    response_model=TokenResponse,
    dependencies=[Depends(_verify_dev_secret)],
)
def mint_token(user_id: UUID, db: Session = Depends(get_db)):
    """Issue a bearer token for any active user, bypassing login."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=400, detail="User is disabled")

    token = create_access_token(user.id, user.role, user.token_version)
    return TokenResponse(access_token=token, user_id=user.id, role=user.role)

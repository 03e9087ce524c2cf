from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from fastapi import APIRouter, Body
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from peakhabit_api.core.config import Settings
from peakhabit_api.core.security import create_access_token
from peakhabit_api.deps import AppSettings, CurrentUserId, DBSession
from peakhabit_api.errors import ResourceNotFound
from peakhabit_api.models import User
from peakhabit_api.progression import ensure_progress

router = APIRouter(prefix="/api/auth", tags=["auth"])


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str


class GuestStartRequest(BaseModel):
    display_name: str | None = Field(default=None, max_length=80)


class MeResponse(BaseModel):
    user_id: str
    display_name: str
    role: str
    avatar_url: str | None = None


@router.post("/guest", response_model=AuthResponse)
def auth_guest(
    req: GuestStartRequest | None = Body(default=None),
    db: Session = DBSession,
    settings: Settings = AppSettings,
) -> AuthResponse:
    now = datetime.now(UTC)
    user_id = f"guest_{uuid4().hex}"
    name = (req.display_name if req else None) or "Adventurer"
    db.add(User(id=user_id, display_name=name.strip() or "Adventurer", role="user", created_at=now))
    db.flush()
    ensure_progress(db, user_id=user_id, now=now)
    db.commit()
    return AuthResponse(
        access_token=create_access_token(subject=user_id, settings=settings),
        user_id=user_id,
    )


@router.get("/me", response_model=MeResponse)
def auth_me(user_id: str = CurrentUserId, db: Session = DBSession) -> MeResponse:
    user = db.get(User, user_id)
    if user is None:
        raise ResourceNotFound("user", user_id)
    return MeResponse(
        user_id=user.id,
        display_name=user.display_name,
        role=user.role,
        avatar_url=user.avatar_url,
    )

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from peakhabit_api.deps import CurrentUserId, DBSession
from peakhabit_api.pets import activate_pet, grant_pet, list_pets, pet_view
from peakhabit_api.progression import ensure_user

router = APIRouter(prefix="/api/pets", tags=["pets"])


class PetOut(BaseModel):
    pet_id: str
    name: str
    rarity: str
    level: int
    experience: int
    experience_to_next: int
    is_active: bool
    xp_bonus: str


class GrantPetIn(BaseModel):
    pet_id: str = Field(min_length=1, max_length=80)


class ActivatePetIn(BaseModel):
    pet_id: str | None = Field(default=None, max_length=80)


@router.get("", response_model=list[PetOut])
def pets(user_id: str = CurrentUserId, db: Session = DBSession) -> list[PetOut]:
    return [PetOut(**pet_view(p)) for p in list_pets(db, user_id=user_id)]


@router.post("/grant", response_model=PetOut)
def grant(req: GrantPetIn, user_id: str = CurrentUserId, db: Session = DBSession) -> PetOut:
    ensure_user(db, user_id=user_id, now=datetime.now(UTC))
    row, _created = grant_pet(db, user_id=user_id, pet_id=req.pet_id)
    db.commit()
    return PetOut(**pet_view(row))


@router.post("/activate", response_model=list[PetOut])
def activate(
    req: ActivatePetIn, user_id: str = CurrentUserId, db: Session = DBSession
) -> list[PetOut]:
    activate_pet(db, user_id=user_id, pet_id=req.pet_id)
    db.commit()
    return [PetOut(**pet_view(p)) for p in list_pets(db, user_id=user_id)]

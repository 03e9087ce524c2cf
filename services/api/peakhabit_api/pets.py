from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peakhabit_api.errors import ResourceNotFound
from peakhabit_api.eventlog import log_event
from peakhabit_api.models import UserPet
from peakhabit_rules.catalog import PETS, PetDef
from peakhabit_rules.leveling import apply_companion_xp, companion_xp_needed


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PetGrowth:
    pet_id: str
    xp_gained: int
    level: int
    experience: int
    level_up: bool


def pet_def(pet_id: str) -> PetDef:
    d = PETS.get(str(pet_id))
    if d is None:
        raise ResourceNotFound("pet", pet_id)
    return d


def active_pet(session: Session, *, user_id: str) -> UserPet | None:
    return session.scalar(
        select(UserPet)
        .where(UserPet.user_id == str(user_id))
        .where(UserPet.is_active.is_(True))
        .limit(1)
    )


def list_pets(session: Session, *, user_id: str) -> list[UserPet]:
    return list(
        session.scalars(
            select(UserPet)
            .where(UserPet.user_id == str(user_id))
            .order_by(UserPet.acquired_at.asc(), UserPet.pet_id.asc())
        ).all()
    )


def grant_pet(
    session: Session, *, user_id: str, pet_id: str, now: datetime | None = None
) -> tuple[UserPet, bool]:
    """Returns (row, created). Owning a companion twice is a no-op."""
    pet_def(pet_id)
    now_dt = now or datetime.now(UTC)

    existing = session.scalar(
        select(UserPet)
        .where(UserPet.user_id == str(user_id))
        .where(UserPet.pet_id == str(pet_id))
        .limit(1)
    )
    if existing is not None:
        return existing, False

    row = UserPet(
        id=f"pet_{uuid4().hex}",
        user_id=str(user_id),
        pet_id=str(pet_id),
        level=1,
        experience=0,
        is_active=False,
        acquired_at=now_dt,
    )
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:
        existing = session.scalar(
            select(UserPet)
            .where(UserPet.user_id == str(user_id))
            .where(UserPet.pet_id == str(pet_id))
            .limit(1)
        )
        if existing is None:
            raise
        return existing, False
    return row, True


def activate_pet(session: Session, *, user_id: str, pet_id: str | None) -> UserPet | None:
    """
    Makes `pet_id` the single active companion; `None` rests every companion.

    Deactivation is flushed before activation so the one-active-per-user
    index never sees two active rows.
    """
    target: UserPet | None = None
    if pet_id is not None:
        target = session.scalar(
            select(UserPet)
            .where(UserPet.user_id == str(user_id))
            .where(UserPet.pet_id == str(pet_id))
            .limit(1)
        )
        if target is None:
            raise ResourceNotFound("pet", pet_id)

    session.execute(
        update(UserPet)
        .where(UserPet.user_id == str(user_id))
        .where(UserPet.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )
    session.flush()

    if target is not None:
        target.is_active = True
        session.add(target)
        session.flush()
    return target


def credit_active_pet(
    session: Session, *, user_id: str, xp: int, now: datetime | None = None
) -> PetGrowth | None:
    if int(xp) <= 0:
        return None
    pet = active_pet(session, user_id=user_id)
    if pet is None:
        return None

    before = int(pet.level or 1)
    level, exp = apply_companion_xp(
        level=before, experience=int(pet.experience or 0), gain=int(xp)
    )
    pet.level = level
    pet.experience = exp
    session.add(pet)

    if level > before:
        log_event(
            session,
            type="pet_level_up",
            user_id=user_id,
            payload={"pet_id": pet.pet_id, "from_level": before, "to_level": level},
            now=now,
        )
    return PetGrowth(
        pet_id=str(pet.pet_id),
        xp_gained=int(xp),
        level=level,
        experience=exp,
        level_up=level > before,
    )


def pet_view(row: UserPet) -> dict[str, object]:
    d = PETS.get(str(row.pet_id))
    return {
        "pet_id": str(row.pet_id),
        "name": d.name if d else str(row.pet_id),
        "rarity": d.rarity if d else "common",
        "level": int(row.level or 1),
        "experience": int(row.experience or 0),
        "experience_to_next": companion_xp_needed(int(row.level or 1)),
        "is_active": bool(row.is_active),
        "xp_bonus": str(d.xp_bonus) if d else "1",
    }

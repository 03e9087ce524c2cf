from __future__ import annotations

from datetime import UTC, datetime
from fractions import Fraction

from sqlalchemy import select
from sqlalchemy.orm import Session

from peakhabit_api.models import GuildMember, GuildUpgrade
from peakhabit_api.pets import active_pet
from peakhabit_rules.catalog import GUILD_UPGRADES, PETS
from peakhabit_rules.clock import as_aware_utc
from peakhabit_rules.multipliers import ONE, Multiplier, RewardKind, compose


def guild_id_for_user(session: Session, *, user_id: str) -> str | None:
    return session.scalar(
        select(GuildMember.guild_id).where(GuildMember.user_id == str(user_id)).limit(1)
    )


def active_upgrades(
    session: Session, *, guild_id: str, now: datetime | None = None
) -> list[GuildUpgrade]:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    rows = session.scalars(
        select(GuildUpgrade)
        .where(GuildUpgrade.guild_id == str(guild_id))
        .order_by(GuildUpgrade.upgrade_id.asc())
    ).all()
    return [r for r in rows if (as_aware_utc(r.expires_at) or now_dt) > now_dt]


def companion_factor(session: Session, *, user_id: str, kind: RewardKind) -> Fraction:
    pet = active_pet(session, user_id=user_id)
    if pet is None:
        return ONE
    d = PETS.get(str(pet.pet_id))
    if d is None:
        return ONE
    return d.xp_bonus if kind == "xp" else d.gold_bonus


def guild_factor(
    session: Session, *, user_id: str, kind: RewardKind, now: datetime | None = None
) -> Fraction:
    guild_id = guild_id_for_user(session, user_id=user_id)
    if guild_id is None:
        return ONE
    factors: list[Fraction] = []
    for up in active_upgrades(session, guild_id=guild_id, now=now):
        d = GUILD_UPGRADES.get(str(up.upgrade_id))
        if d is None:
            continue
        factors.append(d.xp_bonus if kind == "xp" else d.gold_bonus)
    return compose(*factors)


def resolve(
    session: Session, *, user_id: str, kind: RewardKind, now: datetime | None = None
) -> Multiplier:
    """
    Composed reward multiplier for one user: active companion first, then the
    guild's unexpired upgrades. Callers floor once via `Multiplier.apply`.
    """
    return Multiplier(
        companion=companion_factor(session, user_id=user_id, kind=kind),
        guild=guild_factor(session, user_id=user_id, kind=kind, now=now),
    )


def raid_penalty_factor(
    session: Session, *, guild_id: str, now: datetime | None = None
) -> Fraction:
    factors = [
        GUILD_UPGRADES[up.upgrade_id].raid_penalty_factor
        for up in active_upgrades(session, guild_id=guild_id, now=now)
        if up.upgrade_id in GUILD_UPGRADES
    ]
    return compose(*factors)

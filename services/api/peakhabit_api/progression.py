from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from peakhabit_api.core.config import Settings
from peakhabit_api.eventlog import log_event
from peakhabit_api.models import CompletionRecord, User, UserProgress
from peakhabit_api.multipliers import resolve
from peakhabit_api.pets import PetGrowth, credit_active_pet
from peakhabit_rules.catalog import MAX_HP, rank_for_level
from peakhabit_rules.clock import DayClock, as_aware_utc
from peakhabit_rules.leveling import LevelState, apply_xp_gain, xp_needed
from peakhabit_rules.streaks import next_streak, visible_streak


logger = logging.getLogger(__name__)


def day_clock(settings: Settings | None = None) -> DayClock:
    settings = settings or Settings()
    return DayClock(utc_offset_hours=int(settings.day_boundary_utc_offset_hours))


def ensure_user(session: Session, *, user_id: str, now: datetime) -> User:
    # Identity is owned by the auth layer; rows are materialized on first sight.
    row = session.get(User, str(user_id))
    if row is not None:
        return row
    row = User(id=str(user_id), display_name=str(user_id), role="user", created_at=now)
    session.add(row)
    session.flush()
    return row


def ensure_progress(
    session: Session, *, user_id: str, now: datetime, for_update: bool = False
) -> UserProgress:
    row = session.get(
        UserProgress, str(user_id), with_for_update=True if for_update else None
    )
    if row is not None:
        return row
    ensure_user(session, user_id=user_id, now=now)
    row = UserProgress(
        user_id=str(user_id),
        total_xp=0,
        level=1,
        xp_in_level=0,
        xp_to_next=xp_needed(1),
        hp=MAX_HP,
        gold=0,
        streak=0,
        last_streak_update=None,
        equipped_theme_id="default",
        updated_at=now,
    )
    session.add(row)
    session.flush()
    return row


@dataclass(frozen=True)
class RewardResult:
    base_xp: int
    base_gold: int
    xp_awarded: int
    gold_awarded: int
    xp_multiplier: str
    gold_multiplier: str
    total_xp: int
    level: int
    xp_in_level: int
    xp_to_next: int
    levels_gained: int
    gold: int
    streak: int
    streak_extended: bool
    pet: PetGrowth | None = None

    @property
    def level_up(self) -> bool:
        return self.levels_gained > 0


def apply_reward(
    session: Session,
    *,
    user_id: str,
    base_xp: int,
    base_gold: int,
    source_type: str,
    source_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
    record: CompletionRecord | None = None,
) -> RewardResult:
    """
    Credits one accepted completion to a user.

    Multipliers are composed per kind and floored once; streak moves only for
    experience-bearing rewards; the active companion grows by the credited
    (multiplied) XP. Writes nothing outside the caller's transaction.
    """
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = clock or day_clock()
    base_xp = max(0, int(base_xp))
    base_gold = max(0, int(base_gold))

    xp_mult = resolve(session, user_id=user_id, kind="xp", now=now_dt)
    gold_mult = resolve(session, user_id=user_id, kind="gold", now=now_dt)
    xp = xp_mult.apply(base_xp)
    gold = gold_mult.apply(base_gold)

    row = ensure_progress(session, user_id=user_id, now=now_dt, for_update=True)

    lvl = apply_xp_gain(
        LevelState(
            level=int(row.level or 1),
            xp_in_level=int(row.xp_in_level or 0),
            total_xp=int(row.total_xp or 0),
        ),
        xp,
    )
    row.level = lvl.state.level
    row.xp_in_level = lvl.state.xp_in_level
    row.total_xp = lvl.state.total_xp
    row.xp_to_next = lvl.state.xp_to_next

    streak_extended = False
    if xp > 0:
        st = next_streak(
            streak=int(row.streak or 0),
            last_update=as_aware_utc(row.last_streak_update),
            now=now_dt,
            clock=clock,
        )
        row.streak = st.streak
        row.last_streak_update = st.last_update
        streak_extended = st.extended

    row.gold = int(row.gold or 0) + gold
    row.updated_at = now_dt
    session.add(row)

    if record is not None:
        record.xp_awarded = xp
        record.gold_awarded = gold
        session.add(record)

    pet = credit_active_pet(session, user_id=user_id, xp=xp, now=now_dt)

    log_event(
        session,
        type="reward_credited",
        user_id=user_id,
        payload={
            "source_type": source_type,
            "source_id": source_id,
            "base_xp": base_xp,
            "base_gold": base_gold,
            "xp": xp,
            "gold": gold,
            "xp_multiplier": str(xp_mult.total),
            "gold_multiplier": str(gold_mult.total),
        },
        now=now_dt,
    )
    if lvl.level_up:
        log_event(
            session,
            type="level_up",
            user_id=user_id,
            payload={"from_level": lvl.state.level - lvl.levels_gained, "to_level": lvl.state.level},
            now=now_dt,
        )
    if streak_extended:
        log_event(
            session,
            type="streak_extended",
            user_id=user_id,
            payload={"streak": int(row.streak)},
            now=now_dt,
        )

    return RewardResult(
        base_xp=base_xp,
        base_gold=base_gold,
        xp_awarded=xp,
        gold_awarded=gold,
        xp_multiplier=str(xp_mult.total),
        gold_multiplier=str(gold_mult.total),
        total_xp=int(row.total_xp),
        level=int(row.level),
        xp_in_level=int(row.xp_in_level),
        xp_to_next=int(row.xp_to_next),
        levels_gained=lvl.levels_gained,
        gold=int(row.gold),
        streak=int(row.streak),
        streak_extended=streak_extended,
        pet=pet,
    )


def apply_hp_change(
    session: Session, *, user_id: str, delta: int, now: datetime | None = None
) -> int:
    """Returns the new HP, clamped to 0..MAX_HP."""
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    row = ensure_progress(session, user_id=user_id, now=now_dt, for_update=True)
    row.hp = max(0, min(MAX_HP, int(row.hp if row.hp is not None else MAX_HP) + int(delta)))
    row.updated_at = now_dt
    session.add(row)
    return int(row.hp)


def spend_gold(session: Session, *, row: UserProgress, amount: int, now: datetime) -> None:
    row.gold = int(row.gold or 0) - int(amount)
    row.updated_at = now
    session.add(row)


def progress_snapshot(
    row: UserProgress, *, now: datetime | None = None, clock: DayClock | None = None
) -> dict[str, Any]:
    clock = clock or day_clock()
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    level = int(row.level or 1)
    return {
        "user_id": str(row.user_id),
        "level": level,
        "total_xp": int(row.total_xp or 0),
        "xp_in_level": int(row.xp_in_level or 0),
        "xp_to_next": xp_needed(level),
        "hp": int(row.hp if row.hp is not None else MAX_HP),
        "gold": int(row.gold or 0),
        "streak": visible_streak(
            streak=int(row.streak or 0),
            last_update=as_aware_utc(row.last_streak_update),
            now=now_dt,
            clock=clock,
        ),
        "rank": rank_for_level(level),
        "equipped_theme_id": str(row.equipped_theme_id or "default"),
        "degraded": False,
    }


def default_progress_snapshot(user_id: str | None = None) -> dict[str, Any]:
    """Fixed stand-in served when storage is unreachable; never persisted."""
    return {
        "user_id": user_id,
        "level": 1,
        "total_xp": 0,
        "xp_in_level": 0,
        "xp_to_next": xp_needed(1),
        "hp": MAX_HP,
        "gold": 0,
        "streak": 0,
        "rank": rank_for_level(1),
        "equipped_theme_id": "default",
        "degraded": True,
    }

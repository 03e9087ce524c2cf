from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peakhabit_api.errors import DuplicateCompletion, InvalidAction, NotAuthorized, ResourceNotFound
from peakhabit_api.eventlog import log_event
from peakhabit_api.ledger import try_complete
from peakhabit_api.models import Dungeon, DungeonMission, DungeonProgress, UserTheme
from peakhabit_api.progression import RewardResult, apply_reward, day_clock, ensure_progress, ensure_user
from peakhabit_rules.clock import WINDOW_EVER, DayClock, as_aware_utc


logger = logging.getLogger(__name__)

DEFAULT_THEME_ID = "default"


@dataclass(frozen=True)
class MissionOutcome:
    dungeon_id: str
    mission_id: str
    reward: RewardResult
    dungeon_completed: bool
    theme_unlocked: str | None


def _is_live(d: Dungeon, now: datetime) -> bool:
    if not bool(d.active):
        return False
    starts = as_aware_utc(d.starts_at)
    ends = as_aware_utc(d.ends_at)
    return (starts is None or starts <= now) and (ends is None or now <= ends)


def active_dungeon(session: Session, *, now: datetime | None = None) -> Dungeon | None:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    rows = session.scalars(
        select(Dungeon).where(Dungeon.active.is_(True)).order_by(Dungeon.starts_at.desc())
    ).all()
    for d in rows:
        if _is_live(d, now_dt):
            return d
    return None


def missions_for(session: Session, *, dungeon_id: str) -> list[DungeonMission]:
    return list(
        session.scalars(
            select(DungeonMission)
            .where(DungeonMission.dungeon_id == str(dungeon_id))
            .order_by(DungeonMission.order_index.asc(), DungeonMission.id.asc())
        ).all()
    )


def completed_mission_ids(session: Session, *, user_id: str, dungeon_id: str) -> set[str]:
    rows = session.scalars(
        select(DungeonProgress.mission_id)
        .where(DungeonProgress.user_id == str(user_id))
        .where(DungeonProgress.dungeon_id == str(dungeon_id))
    ).all()
    return {str(r) for r in rows}


def get_active_dungeon(
    session: Session, *, user_id: str, now: datetime | None = None
) -> dict[str, Any] | None:
    d = active_dungeon(session, now=now)
    if d is None:
        return None
    missions = missions_for(session, dungeon_id=d.id)
    done = completed_mission_ids(session, user_id=user_id, dungeon_id=d.id)
    return {
        "dungeon": d,
        "missions": missions,
        "completed_mission_ids": sorted(done),
        "completed_count": sum(1 for m in missions if str(m.id) in done),
        "total_count": len(missions),
        "total_xp": sum(int(m.xp_reward or 0) for m in missions),
        "total_gold": sum(int(m.gold_reward or 0) for m in missions),
    }


def grant_theme(
    session: Session,
    *,
    user_id: str,
    theme_id: str,
    source: str,
    now: datetime | None = None,
) -> bool:
    """Idempotent; True only when this call created the unlock."""
    now_dt = now or datetime.now(UTC)
    if session.get(UserTheme, {"user_id": str(user_id), "theme_id": str(theme_id)}) is not None:
        return False
    try:
        with session.begin_nested():
            session.add(
                UserTheme(
                    user_id=str(user_id),
                    theme_id=str(theme_id),
                    source=str(source)[:120],
                    unlocked_at=now_dt,
                )
            )
            session.flush()
    except IntegrityError:
        return False
    return True


def complete_mission(
    session: Session,
    *,
    user_id: str,
    dungeon_id: str,
    mission_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
) -> MissionOutcome:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = clock or day_clock()

    dungeon = session.get(Dungeon, str(dungeon_id))
    if dungeon is None:
        raise ResourceNotFound("dungeon", dungeon_id)
    mission = session.get(DungeonMission, str(mission_id))
    if mission is None or str(mission.dungeon_id) != str(dungeon.id):
        raise ResourceNotFound("mission", mission_id)
    if not _is_live(dungeon, now_dt):
        raise InvalidAction("dungeon_not_active", details={"dungeon_id": str(dungeon.id)})

    ensure_user(session, user_id=user_id, now=now_dt)
    res = try_complete(
        session,
        user_id=user_id,
        source_type="mission",
        source_id=str(mission.id),
        window_key=WINDOW_EVER,
        now=now_dt,
    )
    if res.already_done:
        raise DuplicateCompletion(details={"mission_id": str(mission.id)})

    session.add(
        DungeonProgress(
            id=f"dp_{uuid4().hex}",
            user_id=str(user_id),
            dungeon_id=str(dungeon.id),
            mission_id=str(mission.id),
            completed_at=now_dt,
        )
    )
    session.flush()

    reward = apply_reward(
        session,
        user_id=user_id,
        base_xp=int(mission.xp_reward or 0),
        base_gold=int(mission.gold_reward or 0),
        source_type="mission",
        source_id=str(mission.id),
        now=now_dt,
        clock=clock,
        record=res.record,
    )

    all_ids = {str(m.id) for m in missions_for(session, dungeon_id=dungeon.id)}
    done_ids = completed_mission_ids(session, user_id=user_id, dungeon_id=dungeon.id)
    dungeon_completed = bool(all_ids) and all_ids <= done_ids

    theme_unlocked: str | None = None
    if dungeon_completed and dungeon.theme_reward_id:
        if grant_theme(
            session,
            user_id=user_id,
            theme_id=str(dungeon.theme_reward_id),
            source=f"dungeon:{dungeon.id}",
            now=now_dt,
        ):
            theme_unlocked = str(dungeon.theme_reward_id)
            log_event(
                session,
                type="theme_unlocked",
                user_id=user_id,
                payload={"theme_id": theme_unlocked, "dungeon_id": str(dungeon.id)},
                now=now_dt,
            )
            logger.info("theme unlocked", extra={"theme_id": theme_unlocked, "user_id": user_id})

    return MissionOutcome(
        dungeon_id=str(dungeon.id),
        mission_id=str(mission.id),
        reward=reward,
        dungeon_completed=dungeon_completed,
        theme_unlocked=theme_unlocked,
    )


def list_unlocked_themes(session: Session, *, user_id: str) -> list[UserTheme]:
    return list(
        session.scalars(
            select(UserTheme)
            .where(UserTheme.user_id == str(user_id))
            .order_by(UserTheme.unlocked_at.asc(), UserTheme.theme_id.asc())
        ).all()
    )


def equip_theme(
    session: Session, *, user_id: str, theme_id: str, now: datetime | None = None
) -> str:
    now_dt = now or datetime.now(UTC)
    theme_id = str(theme_id)
    if theme_id != DEFAULT_THEME_ID:
        owned = session.get(UserTheme, {"user_id": str(user_id), "theme_id": theme_id})
        if owned is None:
            raise NotAuthorized("theme_not_owned", details={"theme_id": theme_id})
    row = ensure_progress(session, user_id=user_id, now=now_dt, for_update=True)
    row.equipped_theme_id = theme_id
    row.updated_at = now_dt
    session.add(row)
    return theme_id


_DEFAULT_MISSIONS: tuple[tuple[str, str, int, int], ...] = (
    ("Light the first brazier", "easy", 50, 25),
    ("Cross the frozen bridge", "easy", 75, 35),
    ("Outlast the blizzard", "medium", 100, 50),
    ("Break the ice golem", "medium", 150, 75),
    ("Claim the citadel crown", "hard", 250, 125),
)


def seed_dungeon(session: Session, *, now: datetime | None = None) -> Dungeon | None:
    """Creates a month-long dungeon when none is live. Returns the new row or None."""
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    if active_dungeon(session, now=now_dt) is not None:
        return None
    starts = datetime(now_dt.year, now_dt.month, 1, tzinfo=UTC)
    ends = datetime(now_dt.year + (now_dt.month == 12), now_dt.month % 12 + 1, 1, tzinfo=UTC)
    key = starts.strftime("%Y%m")
    if session.get(Dungeon, f"dungeon_{key}") is not None:
        return None
    d = Dungeon(
        id=f"dungeon_{key}",
        name="Frost Citadel",
        theme="frost",
        description="Five floors of ice stand between you and the crown.",
        banner_emoji="🏰",
        theme_reward_id="theme-frost",
        starts_at=starts,
        ends_at=ends,
        active=True,
        created_at=now_dt,
    )
    session.add(d)
    for i, (title, difficulty, xp, gold) in enumerate(_DEFAULT_MISSIONS):
        session.add(
            DungeonMission(
                id=f"mission_{key}_{i + 1}",
                dungeon_id=d.id,
                title=title,
                description=None,
                difficulty=difficulty,
                xp_reward=xp,
                gold_reward=gold,
                order_index=i,
            )
        )
    session.flush()
    return d

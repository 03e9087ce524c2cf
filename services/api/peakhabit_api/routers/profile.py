from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from peakhabit_api.completions import completion_stats
from peakhabit_api.core.config import Settings
from peakhabit_api.deps import AppSettings, Clock, CurrentUserId, DBSession, degrade_or_raise
from peakhabit_api.dungeons import equip_theme, list_unlocked_themes
from peakhabit_api.models import User, UserProgress
from peakhabit_api.progression import default_progress_snapshot, ensure_progress, progress_snapshot
from peakhabit_api.schemas import ProgressOut
from peakhabit_rules.catalog import rank_for_level
from peakhabit_rules.clock import DayClock

router = APIRouter(prefix="/api", tags=["profile"])


class LeaderboardRowOut(BaseModel):
    user_id: str
    display_name: str
    level: int
    total_xp: int
    rank: str


class StatsOut(BaseModel):
    total_completions: int
    easy: int
    medium: int
    hard: int
    streak: int


class ThemeOut(BaseModel):
    theme_id: str
    source: str
    unlocked_at: datetime


class ThemesOut(BaseModel):
    equipped_theme_id: str
    themes: list[ThemeOut]


class EquipThemeIn(BaseModel):
    theme_id: str = Field(min_length=1, max_length=80)


@router.get("/profile", response_model=ProgressOut)
def get_profile(
    user_id: str = CurrentUserId,
    db: Session = DBSession,
    settings: Settings = AppSettings,
    clock: DayClock = Clock,
) -> ProgressOut:
    now = datetime.now(UTC)
    try:
        row = ensure_progress(db, user_id=user_id, now=now)
        snapshot = progress_snapshot(row, now=now, clock=clock)
        db.commit()
    except OperationalError as e:
        degrade_or_raise(db, settings, e)
        return ProgressOut(**default_progress_snapshot(user_id))
    return ProgressOut(**snapshot)


@router.get("/profile/stats", response_model=StatsOut)
def stats(
    user_id: str = CurrentUserId, db: Session = DBSession, clock: DayClock = Clock
) -> StatsOut:
    s = completion_stats(db, user_id=user_id, clock=clock)
    return StatsOut(
        total_completions=s.total_completions,
        easy=s.easy,
        medium=s.medium,
        hard=s.hard,
        streak=s.streak,
    )


@router.get("/leaderboard", response_model=list[LeaderboardRowOut])
def leaderboard(
    limit: int = Query(default=10, ge=1, le=100),
    _user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> list[LeaderboardRowOut]:
    rows = db.execute(
        select(UserProgress, User)
        .join(User, User.id == UserProgress.user_id)
        .order_by(UserProgress.level.desc(), UserProgress.total_xp.desc(), User.id.asc())
        .limit(int(limit))
    ).all()
    return [
        LeaderboardRowOut(
            user_id=p.user_id,
            display_name=u.display_name,
            level=int(p.level),
            total_xp=int(p.total_xp),
            rank=rank_for_level(int(p.level)),
        )
        for (p, u) in rows
    ]


@router.get("/themes", response_model=ThemesOut)
def themes(user_id: str = CurrentUserId, db: Session = DBSession) -> ThemesOut:
    row = ensure_progress(db, user_id=user_id, now=datetime.now(UTC))
    out = ThemesOut(
        equipped_theme_id=str(row.equipped_theme_id or "default"),
        themes=[
            ThemeOut(theme_id=t.theme_id, source=t.source, unlocked_at=t.unlocked_at)
            for t in list_unlocked_themes(db, user_id=user_id)
        ],
    )
    db.commit()
    return out


@router.post("/themes/equip", response_model=ThemesOut)
def equip(
    req: EquipThemeIn, user_id: str = CurrentUserId, db: Session = DBSession
) -> ThemesOut:
    equipped = equip_theme(db, user_id=user_id, theme_id=req.theme_id)
    db.commit()
    return ThemesOut(
        equipped_theme_id=equipped,
        themes=[
            ThemeOut(theme_id=t.theme_id, source=t.source, unlocked_at=t.unlocked_at)
            for t in list_unlocked_themes(db, user_id=user_id)
        ],
    )

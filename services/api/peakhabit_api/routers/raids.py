from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from peakhabit_api.core.config import Settings
from peakhabit_api.deps import AppSettings, Clock, CurrentUserId, DBSession
from peakhabit_api.models import GuildRaid
from peakhabit_api.raids import create_raid, list_raids, participate
from peakhabit_rules.clock import DayClock

router = APIRouter(prefix="/api", tags=["raids"])


class RaidOut(BaseModel):
    id: str
    guild_id: str
    title: str
    description: str | None = None
    difficulty: str
    xp_reward: int
    status: Literal["active", "completed", "failed"]
    month: int
    year: int
    created_at: datetime
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    participants: int = 0
    members: int = 0
    participated: bool = False


class CreateRaidIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    xp_reward: int | None = Field(default=None, ge=0)


class ParticipateOut(BaseModel):
    success: bool
    raid_id: str
    already_participated: bool
    status: str
    completed: bool
    participants: int
    members: int
    rewarded_members: int


def _raid_out(r: GuildRaid, **extra: object) -> RaidOut:
    return RaidOut(
        id=r.id,
        guild_id=r.guild_id,
        title=r.title,
        description=r.description,
        difficulty=r.difficulty,
        xp_reward=int(r.xp_reward),
        status=r.status,  # type: ignore[arg-type]
        month=int(r.month),
        year=int(r.year),
        created_at=r.created_at,
        completed_at=r.completed_at,
        failed_at=r.failed_at,
        **extra,  # type: ignore[arg-type]
    )


@router.post("/guilds/{guild_id}/raids", response_model=RaidOut)
def create(
    guild_id: str,
    req: CreateRaidIn,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
    clock: DayClock = Clock,
) -> RaidOut:
    raid = create_raid(
        db,
        leader_id=user_id,
        guild_id=guild_id,
        title=req.title,
        description=req.description,
        difficulty=req.difficulty,
        xp_reward=req.xp_reward,
        clock=clock,
    )
    db.commit()
    return _raid_out(raid)


@router.get("/guilds/{guild_id}/raids", response_model=list[RaidOut])
def raids(
    guild_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
    settings: Settings = AppSettings,
) -> list[RaidOut]:
    rows = list_raids(db, user_id=user_id, guild_id=guild_id, settings=settings)
    out = [
        _raid_out(
            row["raid"],
            participants=row["participants"],
            members=row["members"],
            participated=row["participated"],
        )
        for row in rows
    ]
    # Listing may have failed expired raids; persist that transition.
    db.commit()
    return out


@router.post("/raids/{raid_id}/participate", response_model=ParticipateOut)
def participate_in_raid(
    raid_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
    settings: Settings = AppSettings,
    clock: DayClock = Clock,
) -> ParticipateOut:
    res = participate(db, user_id=user_id, raid_id=raid_id, clock=clock, settings=settings)
    db.commit()
    return ParticipateOut(
        success=res.success,
        raid_id=res.raid_id,
        already_participated=res.already_participated,
        status=res.status,
        completed=res.completed,
        participants=res.participants,
        members=res.members,
        rewarded_members=len(res.rewards),
    )

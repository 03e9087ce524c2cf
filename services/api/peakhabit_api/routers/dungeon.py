from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy.orm import Session

from peakhabit_api.deps import Clock, CurrentUserId, DBSession
from peakhabit_api.dungeons import complete_mission, get_active_dungeon
from peakhabit_api.schemas import RewardOut, reward_out
from peakhabit_rules.clock import DayClock

router = APIRouter(prefix="/api/dungeon", tags=["dungeon"])


class MissionOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    difficulty: str
    xp_reward: int
    gold_reward: int
    order_index: int
    completed: bool


class DungeonOut(BaseModel):
    id: str
    name: str
    theme: str
    description: str | None = None
    banner_emoji: str
    theme_reward_id: str | None = None
    starts_at: datetime
    ends_at: datetime
    missions: list[MissionOut]
    completed_count: int
    total_count: int
    total_xp: int
    total_gold: int


class MissionCompleteOut(BaseModel):
    dungeon_id: str
    mission_id: str
    xp_reward: int
    gold_reward: int
    dungeon_completed: bool
    theme_unlocked: str | None = None
    reward: RewardOut


@router.get("/active", response_model=DungeonOut | None)
def active(user_id: str = CurrentUserId, db: Session = DBSession) -> DungeonOut | None:
    view = get_active_dungeon(db, user_id=user_id)
    if view is None:
        return None
    d = view["dungeon"]
    done = set(view["completed_mission_ids"])
    return DungeonOut(
        id=d.id,
        name=d.name,
        theme=d.theme,
        description=d.description,
        banner_emoji=d.banner_emoji,
        theme_reward_id=d.theme_reward_id,
        starts_at=d.starts_at,
        ends_at=d.ends_at,
        missions=[
            MissionOut(
                id=m.id,
                title=m.title,
                description=m.description,
                difficulty=m.difficulty,
                xp_reward=int(m.xp_reward),
                gold_reward=int(m.gold_reward),
                order_index=int(m.order_index),
                completed=m.id in done,
            )
            for m in view["missions"]
        ],
        completed_count=int(view["completed_count"]),
        total_count=int(view["total_count"]),
        total_xp=int(view["total_xp"]),
        total_gold=int(view["total_gold"]),
    )


@router.post("/{dungeon_id}/missions/{mission_id}/complete", response_model=MissionCompleteOut)
def complete(
    dungeon_id: str,
    mission_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
    clock: DayClock = Clock,
) -> MissionCompleteOut:
    outcome = complete_mission(
        db, user_id=user_id, dungeon_id=dungeon_id, mission_id=mission_id, clock=clock
    )
    db.commit()
    return MissionCompleteOut(
        dungeon_id=outcome.dungeon_id,
        mission_id=outcome.mission_id,
        xp_reward=outcome.reward.xp_awarded,
        gold_reward=outcome.reward.gold_awarded,
        dungeon_completed=outcome.dungeon_completed,
        theme_unlocked=outcome.theme_unlocked,
        reward=reward_out(outcome.reward),
    )

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy.orm import Session

from peakhabit_api.completions import complete_daily_challenge, list_daily_challenges
from peakhabit_api.deps import Clock, CurrentUserId, DBSession
from peakhabit_api.ledger import daily_window
from peakhabit_api.schemas import RewardOut, reward_out
from peakhabit_rules.clock import DayClock

router = APIRouter(prefix="/api/daily", tags=["daily"])


class DailyChallengeOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    emoji: str
    xp_reward: int
    gold_reward: int
    category: str
    completed_today: bool


class DailyListOut(BaseModel):
    day_key: str
    challenges: list[DailyChallengeOut]


class DailyCompleteOut(BaseModel):
    daily_task_id: str
    day_key: str
    xp_reward: int
    gold_reward: int
    reward: RewardOut


@router.get("", response_model=DailyListOut)
def daily(
    user_id: str = CurrentUserId, db: Session = DBSession, clock: DayClock = Clock
) -> DailyListOut:
    rows = list_daily_challenges(db, user_id=user_id, clock=clock)
    return DailyListOut(
        day_key=daily_window(clock),
        challenges=[
            DailyChallengeOut(
                id=d.id,
                title=d.title,
                description=d.description,
                emoji=d.emoji,
                xp_reward=int(d.xp_reward),
                gold_reward=int(d.gold_reward),
                category=d.category,
                completed_today=done,
            )
            for (d, done) in rows
        ],
    )


@router.post("/{daily_task_id}/complete", response_model=DailyCompleteOut)
def complete(
    daily_task_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
    clock: DayClock = Clock,
) -> DailyCompleteOut:
    outcome = complete_daily_challenge(
        db, user_id=user_id, daily_task_id=daily_task_id, clock=clock
    )
    db.commit()
    return DailyCompleteOut(
        daily_task_id=outcome.source_id,
        day_key=outcome.window_key,
        xp_reward=outcome.reward.xp_awarded,
        gold_reward=outcome.reward.gold_awarded,
        reward=reward_out(outcome.reward),
    )

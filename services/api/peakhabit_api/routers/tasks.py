from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

import orjson
from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from peakhabit_api.completions import (
    complete_task,
    create_task,
    delete_task,
    list_tasks,
    update_task,
)
from peakhabit_api.core.config import Settings
from peakhabit_api.deps import AppSettings, Clock, CurrentUserId, DBSession, degrade_or_raise
from peakhabit_api.models import Task, UserProgress
from peakhabit_api.progression import default_progress_snapshot, progress_snapshot
from peakhabit_api.schemas import ProgressOut, RewardOut, SuccessOut, reward_out
from peakhabit_rules.clock import DayClock

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


Difficulty = Literal["easy", "medium", "hard"]
RepeatType = Literal["daily", "weekly", "none"]


class TaskOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    difficulty: Difficulty
    xp_reward: int
    xp_penalty: int
    repeat_type: RepeatType
    repeat_days: list[int] = Field(default_factory=list)
    repeat_ends_at: datetime | None = None
    completed_in_window: bool = False


class CreateTaskIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    difficulty: Difficulty = "medium"
    repeat_type: RepeatType = "daily"
    repeat_days: list[int] = Field(default_factory=list)
    repeat_ends_at: datetime | None = None


class UpdateTaskIn(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    difficulty: Difficulty | None = None
    repeat_type: RepeatType | None = None
    repeat_days: list[int] | None = None
    repeat_ends_at: datetime | None = None


class TaskCompleteOut(BaseModel):
    accepted: bool
    degraded: bool = False
    task_id: str
    window_key: str | None = None
    reward: RewardOut | None = None
    progress: ProgressOut


def _task_out(t: Task, *, completed: bool = False) -> TaskOut:
    days = orjson.loads(t.repeat_days_json) if t.repeat_days_json else []
    return TaskOut(
        id=t.id,
        title=t.title,
        description=t.description,
        difficulty=t.difficulty,  # type: ignore[arg-type]
        xp_reward=int(t.xp_reward),
        xp_penalty=int(t.xp_penalty),
        repeat_type=t.repeat_type,  # type: ignore[arg-type]
        repeat_days=[int(d) for d in days],
        repeat_ends_at=t.repeat_ends_at,
        completed_in_window=completed,
    )


@router.get("", response_model=list[TaskOut])
def tasks(
    user_id: str = CurrentUserId, db: Session = DBSession, clock: DayClock = Clock
) -> list[TaskOut]:
    return [
        _task_out(t, completed=done)
        for (t, done) in list_tasks(db, user_id=user_id, clock=clock)
    ]


@router.post("", response_model=TaskOut)
def create(req: CreateTaskIn, user_id: str = CurrentUserId, db: Session = DBSession) -> TaskOut:
    t = create_task(
        db,
        user_id=user_id,
        title=req.title,
        description=req.description,
        difficulty=req.difficulty,
        repeat_type=req.repeat_type,
        repeat_days=req.repeat_days,
        repeat_ends_at=req.repeat_ends_at,
    )
    db.commit()
    return _task_out(t)


@router.patch("/{task_id}", response_model=TaskOut)
def update(
    task_id: str, req: UpdateTaskIn, user_id: str = CurrentUserId, db: Session = DBSession
) -> TaskOut:
    t = update_task(
        db,
        user_id=user_id,
        task_id=task_id,
        title=req.title,
        description=req.description,
        difficulty=req.difficulty,
        repeat_type=req.repeat_type,
        repeat_days=req.repeat_days,
        repeat_ends_at=req.repeat_ends_at,
    )
    out = _task_out(t)
    db.commit()
    return out


@router.delete("/{task_id}", response_model=SuccessOut)
def delete(task_id: str, user_id: str = CurrentUserId, db: Session = DBSession) -> SuccessOut:
    delete_task(db, user_id=user_id, task_id=task_id)
    db.commit()
    return SuccessOut()


@router.post("/{task_id}/complete", response_model=TaskCompleteOut)
def complete(
    task_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
    settings: Settings = AppSettings,
    clock: DayClock = Clock,
) -> TaskCompleteOut:
    now = datetime.now(UTC)
    try:
        outcome = complete_task(db, user_id=user_id, task_id=task_id, now=now, clock=clock)
        progress = progress_snapshot(db.get(UserProgress, user_id), now=now, clock=clock)
        db.commit()
    except OperationalError as e:
        degrade_or_raise(db, settings, e)
        return TaskCompleteOut(
            accepted=False,
            degraded=True,
            task_id=task_id,
            progress=ProgressOut(**default_progress_snapshot(user_id)),
        )
    return TaskCompleteOut(
        accepted=True,
        task_id=outcome.source_id,
        window_key=outcome.window_key,
        reward=reward_out(outcome.reward),
        progress=ProgressOut(**progress),
    )

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

import orjson
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from peakhabit_api.errors import DuplicateCompletion, InvalidAction, ResourceNotFound
from peakhabit_api.ledger import completed_source_ids, daily_window, try_complete, window_for_repeat
from peakhabit_api.models import CompletionRecord, DailyTask, Task, UserProgress
from peakhabit_api.progression import RewardResult, apply_reward, day_clock, ensure_user
from peakhabit_rules.catalog import (
    DEFAULT_DAILY_CHALLENGES,
    TASK_XP_PENALTY,
    TASK_XP_REWARD,
)
from peakhabit_rules.clock import DayClock, as_aware_utc
from peakhabit_rules.streaks import visible_streak


REPEAT_TYPES = ("daily", "weekly", "none")


@dataclass(frozen=True)
class CompletionOutcome:
    source_id: str
    window_key: str
    reward: RewardResult


# --- tasks -------------------------------------------------------------------


def create_task(
    session: Session,
    *,
    user_id: str,
    title: str,
    description: str | None = None,
    difficulty: str = "medium",
    repeat_type: str = "daily",
    repeat_days: list[int] | None = None,
    repeat_ends_at: datetime | None = None,
    now: datetime | None = None,
) -> Task:
    now_dt = now or datetime.now(UTC)
    if difficulty not in TASK_XP_REWARD:
        raise InvalidAction("invalid_difficulty", details={"difficulty": difficulty})
    if repeat_type not in REPEAT_TYPES:
        raise InvalidAction("invalid_repeat_type", details={"repeat_type": repeat_type})
    title = str(title or "").strip()
    if not title:
        raise InvalidAction("title_required")

    ensure_user(session, user_id=user_id, now=now_dt)
    task = Task(
        id=f"task_{uuid4().hex}",
        user_id=str(user_id),
        title=title[:200],
        description=description,
        difficulty=difficulty,
        xp_reward=TASK_XP_REWARD[difficulty],
        xp_penalty=TASK_XP_PENALTY[difficulty],
        repeat_type=repeat_type,
        repeat_days_json=_repeat_days_json(repeat_days),
        repeat_ends_at=repeat_ends_at,
        created_at=now_dt,
        updated_at=now_dt,
    )
    session.add(task)
    session.flush()
    return task


def get_task(session: Session, *, user_id: str, task_id: str) -> Task:
    task = session.get(Task, str(task_id))
    if task is None or str(task.user_id) != str(user_id):
        raise ResourceNotFound("task", task_id)
    return task


def update_task(
    session: Session,
    *,
    user_id: str,
    task_id: str,
    title: str | None = None,
    description: str | None = None,
    difficulty: str | None = None,
    repeat_type: str | None = None,
    repeat_days: list[int] | None = None,
    repeat_ends_at: datetime | None = None,
    now: datetime | None = None,
) -> Task:
    """Partial edit; fields left as None keep their value. Past completions are untouched."""
    now_dt = now or datetime.now(UTC)
    task = get_task(session, user_id=user_id, task_id=task_id)

    if title is not None:
        title = str(title).strip()
        if not title:
            raise InvalidAction("title_required")
        task.title = title[:200]
    if description is not None:
        task.description = description
    if difficulty is not None:
        if difficulty not in TASK_XP_REWARD:
            raise InvalidAction("invalid_difficulty", details={"difficulty": difficulty})
        task.difficulty = difficulty
        task.xp_reward = TASK_XP_REWARD[difficulty]
        task.xp_penalty = TASK_XP_PENALTY[difficulty]
    if repeat_type is not None:
        if repeat_type not in REPEAT_TYPES:
            raise InvalidAction("invalid_repeat_type", details={"repeat_type": repeat_type})
        task.repeat_type = repeat_type
    if repeat_days is not None:
        task.repeat_days_json = _repeat_days_json(repeat_days)
    if repeat_ends_at is not None:
        task.repeat_ends_at = repeat_ends_at

    task.updated_at = now_dt
    session.flush()
    return task


def _repeat_days_json(repeat_days: list[int] | None) -> str | None:
    days = sorted({int(d) for d in (repeat_days or []) if 0 <= int(d) <= 6})
    return orjson.dumps(days).decode("utf-8") if days else None


def delete_task(session: Session, *, user_id: str, task_id: str) -> None:
    session.delete(get_task(session, user_id=user_id, task_id=task_id))


def list_tasks(
    session: Session,
    *,
    user_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
) -> list[tuple[Task, bool]]:
    """Returns (task, completed_in_window) pairs, newest first."""
    clock = clock or day_clock()
    tasks = session.scalars(
        select(Task)
        .where(Task.user_id == str(user_id))
        .order_by(Task.created_at.desc(), Task.id.asc())
    ).all()
    today = completed_source_ids(
        session, user_id=user_id, source_type="task", window_key=daily_window(clock, now)
    )
    ever = completed_source_ids(
        session, user_id=user_id, source_type="task", window_key=window_for_repeat("none", clock, now)
    )
    out: list[tuple[Task, bool]] = []
    for t in tasks:
        done = str(t.id) in (ever if t.repeat_type == "none" else today)
        out.append((t, done))
    return out


def complete_task(
    session: Session,
    *,
    user_id: str,
    task_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
) -> CompletionOutcome:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = clock or day_clock()
    task = get_task(session, user_id=user_id, task_id=task_id)

    ends = as_aware_utc(task.repeat_ends_at)
    if ends is not None and task.repeat_type != "none" and ends < now_dt:
        raise InvalidAction("task_expired", details={"task_id": str(task.id)})

    window = window_for_repeat(task.repeat_type, clock, now_dt)
    res = try_complete(
        session,
        user_id=user_id,
        source_type="task",
        source_id=str(task.id),
        window_key=window,
        now=now_dt,
    )
    if res.already_done:
        raise DuplicateCompletion(details={"task_id": str(task.id), "window": window})

    reward = apply_reward(
        session,
        user_id=user_id,
        base_xp=int(task.xp_reward or 0),
        base_gold=0,
        source_type="task",
        source_id=str(task.id),
        now=now_dt,
        clock=clock,
        record=res.record,
    )
    return CompletionOutcome(source_id=str(task.id), window_key=window, reward=reward)


@dataclass(frozen=True)
class CompletionStats:
    total_completions: int
    easy: int
    medium: int
    hard: int
    streak: int


def _difficulty_from_xp(xp: int) -> str:
    # Deleted tasks keep their ledger rows; bucket them by the reward they paid.
    if xp >= TASK_XP_REWARD["hard"]:
        return "hard"
    if xp >= TASK_XP_REWARD["medium"]:
        return "medium"
    return "easy"


def completion_stats(
    session: Session,
    *,
    user_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
) -> CompletionStats:
    """Task completion totals split by difficulty, plus the visible streak."""
    clock = clock or day_clock()
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    rows = session.execute(
        select(CompletionRecord.xp_awarded, Task.difficulty)
        .outerjoin(Task, Task.id == CompletionRecord.source_id)
        .where(CompletionRecord.user_id == str(user_id))
        .where(CompletionRecord.source_type == "task")
    ).all()

    split = {"easy": 0, "medium": 0, "hard": 0}
    for xp, difficulty in rows:
        key = difficulty if difficulty in split else _difficulty_from_xp(int(xp or 0))
        split[key] += 1

    row = session.get(UserProgress, str(user_id))
    streak = 0
    if row is not None:
        streak = visible_streak(
            streak=int(row.streak or 0),
            last_update=as_aware_utc(row.last_streak_update),
            now=now_dt,
            clock=clock,
        )
    return CompletionStats(
        total_completions=len(rows),
        easy=split["easy"],
        medium=split["medium"],
        hard=split["hard"],
        streak=streak,
    )


# --- daily challenges ---------------------------------------------------------


def seed_daily_challenges(session: Session, *, now: datetime | None = None) -> int:
    """Inserts the default challenge set when the table is empty. Returns rows added."""
    now_dt = now or datetime.now(UTC)
    existing = int(session.scalar(select(func.count()).select_from(DailyTask)) or 0)
    if existing > 0:
        return 0
    for i, c in enumerate(DEFAULT_DAILY_CHALLENGES, start=1):
        session.add(
            DailyTask(
                id=f"daily_{i:02d}",
                title=c.title,
                description=c.description,
                emoji=c.emoji,
                xp_reward=c.xp_reward,
                gold_reward=c.gold_reward,
                category=c.category,
                active=True,
                created_at=now_dt,
            )
        )
    session.flush()
    return len(DEFAULT_DAILY_CHALLENGES)


def list_daily_challenges(
    session: Session,
    *,
    user_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
) -> list[tuple[DailyTask, bool]]:
    clock = clock or day_clock()
    rows = session.scalars(
        select(DailyTask).where(DailyTask.active.is_(True)).order_by(DailyTask.id.asc())
    ).all()
    done = completed_source_ids(
        session, user_id=user_id, source_type="daily", window_key=daily_window(clock, now)
    )
    return [(r, str(r.id) in done) for r in rows]


def complete_daily_challenge(
    session: Session,
    *,
    user_id: str,
    daily_task_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
) -> CompletionOutcome:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = clock or day_clock()
    challenge = session.get(DailyTask, str(daily_task_id))
    if challenge is None or not bool(challenge.active):
        raise ResourceNotFound("daily_task", daily_task_id)

    ensure_user(session, user_id=user_id, now=now_dt)
    window = daily_window(clock, now_dt)
    res = try_complete(
        session,
        user_id=user_id,
        source_type="daily",
        source_id=str(challenge.id),
        window_key=window,
        now=now_dt,
    )
    if res.already_done:
        raise DuplicateCompletion(details={"daily_task_id": str(challenge.id), "window": window})

    reward = apply_reward(
        session,
        user_id=user_id,
        base_xp=int(challenge.xp_reward or 0),
        base_gold=int(challenge.gold_reward or 0),
        source_type="daily",
        source_id=str(challenge.id),
        now=now_dt,
        clock=clock,
        record=res.record,
    )
    return CompletionOutcome(source_id=str(challenge.id), window_key=window, reward=reward)

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peakhabit_api.models import CompletionRecord
from peakhabit_rules.clock import WINDOW_EVER, DayClock


SourceType = Literal["task", "daily", "mission", "raid"]


@dataclass(frozen=True)
class LedgerResult:
    accepted: bool
    already_done: bool
    record: CompletionRecord | None = None


def daily_window(clock: DayClock, now: datetime | None = None) -> str:
    return clock.today_key(now)


def window_for_repeat(repeat_type: str, clock: DayClock, now: datetime | None = None) -> str:
    if str(repeat_type) == "none":
        return WINDOW_EVER
    return daily_window(clock, now)


def find_completion(
    session: Session,
    *,
    user_id: str,
    source_type: str,
    source_id: str,
    window_key: str,
) -> CompletionRecord | None:
    return session.scalar(
        select(CompletionRecord)
        .where(CompletionRecord.user_id == str(user_id))
        .where(CompletionRecord.source_type == str(source_type))
        .where(CompletionRecord.source_id == str(source_id))
        .where(CompletionRecord.window_key == str(window_key))
        .limit(1)
    )


def try_complete(
    session: Session,
    *,
    user_id: str,
    source_type: SourceType,
    source_id: str,
    window_key: str,
    now: datetime | None = None,
) -> LedgerResult:
    """
    Atomically claims (user, source, window).

    The insert runs inside a SAVEPOINT; the UNIQUE constraint on
    completion_records decides concurrent races, and the loser's savepoint is
    rolled back without touching the outer transaction.
    """
    now_dt = now or datetime.now(UTC)
    if find_completion(
        session,
        user_id=user_id,
        source_type=source_type,
        source_id=source_id,
        window_key=window_key,
    ) is not None:
        return LedgerResult(accepted=False, already_done=True)

    rec = CompletionRecord(
        id=f"cr_{uuid4().hex}",
        user_id=str(user_id),
        source_type=str(source_type),
        source_id=str(source_id),
        window_key=str(window_key),
        xp_awarded=0,
        gold_awarded=0,
        completed_at=now_dt,
    )
    try:
        with session.begin_nested():
            session.add(rec)
            session.flush()
    except IntegrityError:
        return LedgerResult(accepted=False, already_done=True)
    return LedgerResult(accepted=True, already_done=False, record=rec)


def completed_source_ids(
    session: Session,
    *,
    user_id: str,
    source_type: str,
    window_key: str,
) -> set[str]:
    rows = session.scalars(
        select(CompletionRecord.source_id)
        .where(CompletionRecord.user_id == str(user_id))
        .where(CompletionRecord.source_type == str(source_type))
        .where(CompletionRecord.window_key == str(window_key))
    ).all()
    return {str(r) for r in rows}

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest


T0 = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


def test_window_keys(clock) -> None:
    from peakhabit_api.ledger import daily_window, window_for_repeat

    assert window_for_repeat("none", clock, T0) == "ever"
    assert window_for_repeat("daily", clock, T0) == "2026-03-10"
    assert daily_window(clock, datetime(2026, 3, 11, 2, 59, tzinfo=UTC)) == "2026-03-10"
    assert daily_window(clock, datetime(2026, 3, 11, 3, 0, tzinfo=UTC)) == "2026-03-11"


def test_second_claim_in_same_window_is_rejected(session) -> None:
    from peakhabit_api.ledger import try_complete
    from peakhabit_api.progression import ensure_user

    ensure_user(session, user_id="u_ledger", now=T0)
    first = try_complete(
        session, user_id="u_ledger", source_type="daily", source_id="daily_01", window_key="2026-03-10", now=T0
    )
    assert first.accepted is True
    assert first.record is not None

    second = try_complete(
        session, user_id="u_ledger", source_type="daily", source_id="daily_01", window_key="2026-03-10", now=T0
    )
    assert second.accepted is False
    assert second.already_done is True

    other_day = try_complete(
        session, user_id="u_ledger", source_type="daily", source_id="daily_01", window_key="2026-03-11", now=T0
    )
    assert other_day.accepted is True


def test_lost_race_rolls_back_only_the_savepoint(session, monkeypatch: pytest.MonkeyPatch) -> None:
    from sqlalchemy import func, select

    from peakhabit_api import ledger
    from peakhabit_api.models import CompletionRecord
    from peakhabit_api.progression import ensure_user

    ensure_user(session, user_id="u_race", now=T0)
    won = ledger.try_complete(
        session, user_id="u_race", source_type="task", source_id="task_x", window_key="ever", now=T0
    )
    assert won.accepted is True

    # Simulate a concurrent writer that passed the pre-check at the same time.
    monkeypatch.setattr(ledger, "find_completion", lambda *a, **k: None)
    lost = ledger.try_complete(
        session, user_id="u_race", source_type="task", source_id="task_x", window_key="ever", now=T0
    )
    assert lost.accepted is False
    assert lost.already_done is True

    session.commit()
    n = session.scalar(
        select(func.count()).select_from(CompletionRecord).where(CompletionRecord.user_id == "u_race")
    )
    assert n == 1


def test_daily_challenge_idempotent_within_day(session, clock) -> None:
    from peakhabit_api.completions import complete_daily_challenge, list_daily_challenges, seed_daily_challenges
    from peakhabit_api.errors import DuplicateCompletion, ResourceNotFound
    from peakhabit_api.models import UserProgress

    assert seed_daily_challenges(session, now=T0) == 7
    assert seed_daily_challenges(session, now=T0) == 0

    out = complete_daily_challenge(session, user_id="u_daily", daily_task_id="daily_01", now=T0, clock=clock)
    assert out.window_key == "2026-03-10"
    assert out.reward.xp_awarded == 50
    assert out.reward.gold_awarded == 25
    assert out.reward.streak == 1

    with pytest.raises(DuplicateCompletion) as exc:
        complete_daily_challenge(
            session, user_id="u_daily", daily_task_id="daily_01", now=T0 + timedelta(hours=3), clock=clock
        )
    assert exc.value.code == "already_completed"
    assert exc.value.status_code == 409

    row = session.get(UserProgress, "u_daily")
    assert row.total_xp == 50
    assert row.gold == 25

    listing = dict((d.id, done) for d, done in list_daily_challenges(session, user_id="u_daily", now=T0, clock=clock))
    assert listing["daily_01"] is True
    assert listing["daily_02"] is False

    nxt = complete_daily_challenge(
        session, user_id="u_daily", daily_task_id="daily_01", now=T0 + timedelta(days=1), clock=clock
    )
    assert nxt.window_key == "2026-03-11"
    assert nxt.reward.total_xp == 100
    assert nxt.reward.level == 2
    assert nxt.reward.xp_in_level == 0
    assert nxt.reward.level_up is True
    assert nxt.reward.streak == 2

    with pytest.raises(ResourceNotFound) as missing:
        complete_daily_challenge(session, user_id="u_daily", daily_task_id="daily_99", now=T0, clock=clock)
    assert missing.value.code == "daily_task_not_found"


def test_one_shot_task_completes_once_ever(session, clock) -> None:
    from peakhabit_api.completions import complete_task, create_task, list_tasks
    from peakhabit_api.errors import DuplicateCompletion

    task = create_task(session, user_id="u_task", title="File taxes", difficulty="hard", repeat_type="none", now=T0)
    assert task.xp_reward == 50
    assert task.xp_penalty == 25

    out = complete_task(session, user_id="u_task", task_id=task.id, now=T0, clock=clock)
    assert out.window_key == "ever"
    assert out.reward.xp_awarded == 50
    assert out.reward.gold_awarded == 0

    with pytest.raises(DuplicateCompletion):
        complete_task(session, user_id="u_task", task_id=task.id, now=T0 + timedelta(days=5), clock=clock)

    [(listed, done)] = list_tasks(session, user_id="u_task", now=T0 + timedelta(days=5), clock=clock)
    assert listed.id == task.id
    assert done is True


def test_repeating_task_resets_each_day_and_drives_streak(session, clock) -> None:
    from peakhabit_api.completions import complete_task, create_task

    task = create_task(session, user_id="u_streak", title="Stretch", difficulty="easy", now=T0)

    streaks = []
    for day in (0, 1, 3):
        out = complete_task(session, user_id="u_streak", task_id=task.id, now=T0 + timedelta(days=day), clock=clock)
        streaks.append(out.reward.streak)
    assert streaks == [1, 2, 1]


def test_task_validation_and_ownership(session, clock) -> None:
    from peakhabit_api.completions import complete_task, create_task, delete_task
    from peakhabit_api.errors import InvalidAction, ResourceNotFound

    with pytest.raises(InvalidAction) as bad:
        create_task(session, user_id="u_own", title="x", difficulty="legendary", now=T0)
    assert bad.value.code == "invalid_difficulty"

    with pytest.raises(InvalidAction) as blank:
        create_task(session, user_id="u_own", title="   ", now=T0)
    assert blank.value.code == "title_required"

    task = create_task(
        session,
        user_id="u_own",
        title="Practice guitar",
        repeat_type="daily",
        repeat_days=[0, 2, 4, 9],
        repeat_ends_at=T0 - timedelta(hours=1),
        now=T0 - timedelta(days=3),
    )
    assert task.repeat_days_json == "[0,2,4]"

    with pytest.raises(InvalidAction) as expired:
        complete_task(session, user_id="u_own", task_id=task.id, now=T0, clock=clock)
    assert expired.value.code == "task_expired"

    with pytest.raises(ResourceNotFound) as foreign:
        complete_task(session, user_id="u_intruder", task_id=task.id, now=T0, clock=clock)
    assert foreign.value.code == "task_not_found"

    delete_task(session, user_id="u_own", task_id=task.id)
    session.flush()
    with pytest.raises(ResourceNotFound):
        delete_task(session, user_id="u_own", task_id=task.id)


def test_task_edit_reprices_without_touching_past_completions(session, clock) -> None:
    from peakhabit_api.completions import complete_task, create_task, update_task
    from peakhabit_api.errors import DuplicateCompletion, InvalidAction, ResourceNotFound

    task = create_task(session, user_id="u_edit", title="Run", difficulty="medium", now=T0)
    first = complete_task(session, user_id="u_edit", task_id=task.id, now=T0, clock=clock)
    assert first.reward.xp_awarded == 25

    edited = update_task(
        session,
        user_id="u_edit",
        task_id=task.id,
        title="  Run 5k ",
        difficulty="hard",
        repeat_days=[3, 1, 1],
        now=T0 + timedelta(minutes=5),
    )
    assert (edited.title, edited.xp_reward, edited.xp_penalty) == ("Run 5k", 50, 25)
    assert edited.repeat_days_json == "[1,3]"
    assert edited.repeat_type == "daily"
    assert edited.description is None

    with pytest.raises(DuplicateCompletion):
        complete_task(session, user_id="u_edit", task_id=task.id, now=T0 + timedelta(minutes=6), clock=clock)
    again = complete_task(session, user_id="u_edit", task_id=task.id, now=T0 + timedelta(days=1), clock=clock)
    assert again.reward.xp_awarded == 50

    with pytest.raises(InvalidAction) as bad_repeat:
        update_task(session, user_id="u_edit", task_id=task.id, repeat_type="monthly")
    assert bad_repeat.value.code == "invalid_repeat_type"
    with pytest.raises(InvalidAction) as blank:
        update_task(session, user_id="u_edit", task_id=task.id, title=" ")
    assert blank.value.code == "title_required"
    with pytest.raises(ResourceNotFound):
        update_task(session, user_id="u_intruder", task_id=task.id, title="Mine now")


def test_completion_stats_split_by_difficulty(session, clock) -> None:
    from peakhabit_api.completions import (
        complete_daily_challenge,
        complete_task,
        completion_stats,
        create_task,
        delete_task,
        seed_daily_challenges,
    )

    ids = {}
    for difficulty in ("easy", "medium", "hard"):
        t = create_task(session, user_id="u_stats", title=f"{difficulty} chore", difficulty=difficulty, now=T0)
        ids[difficulty] = t.id
        complete_task(session, user_id="u_stats", task_id=t.id, now=T0, clock=clock)
    complete_task(session, user_id="u_stats", task_id=ids["easy"], now=T0 + timedelta(days=1), clock=clock)
    seed_daily_challenges(session, now=T0)
    complete_daily_challenge(session, user_id="u_stats", daily_task_id="daily_01", now=T0, clock=clock)
    session.flush()

    # A deleted task is still counted, bucketed by the XP it paid.
    delete_task(session, user_id="u_stats", task_id=ids["hard"])
    session.flush()

    stats = completion_stats(session, user_id="u_stats", now=T0 + timedelta(days=1), clock=clock)
    assert (stats.total_completions, stats.easy, stats.medium, stats.hard) == (4, 2, 1, 1)
    assert stats.streak == 2

    later = completion_stats(session, user_id="u_stats", now=T0 + timedelta(days=4), clock=clock)
    assert later.streak == 0
    assert later.total_completions == 4

    nobody = completion_stats(session, user_id="u_nobody", now=T0, clock=clock)
    assert (nobody.total_completions, nobody.streak) == (0, 0)


def test_reward_emits_domain_events(session, clock) -> None:
    from sqlalchemy import select

    from peakhabit_api.completions import complete_daily_challenge, seed_daily_challenges
    from peakhabit_api.eventlog import load_payload
    from peakhabit_api.models import Event

    seed_daily_challenges(session, now=T0)
    complete_daily_challenge(session, user_id="u_events", daily_task_id="daily_07", now=T0, clock=clock)
    session.flush()

    events = session.scalars(select(Event).where(Event.user_id == "u_events")).all()
    types = sorted(e.type for e in events)
    assert types == ["reward_credited", "streak_extended"]

    credited = next(e for e in events if e.type == "reward_credited")
    payload = load_payload(credited)
    assert payload["source_type"] == "daily"
    assert payload["xp"] == 80
    assert payload["gold"] == 40
    assert payload["xp_multiplier"] == "1"

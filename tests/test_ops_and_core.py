from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import pytest


T0 = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


def test_lock_keys_are_stable_and_scoped_per_guild() -> None:
    from peakhabit_api.locks import SCHEDULER_SWEEP, guild_raids_key, lock_key

    assert guild_raids_key("guild_a") == guild_raids_key("guild_a")
    assert guild_raids_key("guild_a") != guild_raids_key("guild_b")
    assert lock_key(SCHEDULER_SWEEP) != guild_raids_key("")
    assert -(2**63) <= guild_raids_key("guild_a") < 2**63


def test_locks_are_noops_on_sqlite(session) -> None:
    from peakhabit_api.locks import lock_guild_raids, scheduler_lock

    lock_guild_raids(session, guild_id="guild_a")
    with scheduler_lock(session) as acquired:
        assert acquired is True


def test_expiry_sweep_takes_the_guild_raid_lock(session, clock, monkeypatch) -> None:
    from peakhabit_api import raids
    from peakhabit_api.guilds import create_guild

    g = create_guild(session, leader_id="u_lock", name="Lockers", now=T0)
    raids.create_raid(session, leader_id="u_lock", guild_id=g.id, title="Clear desk", now=T0, clock=clock)

    seen: list[str] = []
    monkeypatch.setattr(raids, "lock_guild_raids", lambda _s, *, guild_id: seen.append(guild_id))

    raids.sweep_expired_raids(session, guild_id=g.id, now=T0 + timedelta(days=1))
    assert seen == []
    raids.sweep_expired_raids(session, guild_id=g.id, now=T0 + timedelta(days=8))
    assert seen == [g.id]


def test_scheduler_run_once_fails_expired_raids(session_factory, clock) -> None:
    from peakhabit_api.core.config import Settings
    from peakhabit_api.guilds import create_guild, join_guild
    from peakhabit_api.models import GuildRaid, UserProgress
    from peakhabit_api.raids import create_raid
    from peakhabit_api.scheduler_main import run_once

    with session_factory() as session:
        g = create_guild(session, leader_id="u_lead", name="Night Shift", now=T0)
        join_guild(session, user_id="u_member", guild_id=g.id, now=T0)
        raid = create_raid(session, leader_id="u_lead", guild_id=g.id, title="Inbox zero", now=T0, clock=clock)
        raid_id = raid.id
        session.commit()

    early = run_once(session_factory=session_factory, settings=Settings(), now=T0 + timedelta(days=3))
    assert early["raids_failed"] == []

    res = run_once(session_factory=session_factory, settings=Settings(), now=T0 + timedelta(days=8))
    assert res["ok"] is True
    assert res["skipped"] is False
    assert res["raids_failed"] == [raid_id]

    again = run_once(session_factory=session_factory, settings=Settings(), now=T0 + timedelta(days=9))
    assert again["raids_failed"] == []

    with session_factory() as session:
        assert session.get(GuildRaid, raid_id).status == "failed"
        assert session.get(UserProgress, "u_lead").hp == 75
        assert session.get(UserProgress, "u_member").hp == 75


def test_scheduler_main_exits_when_disabled() -> None:
    from peakhabit_api.scheduler_main import main

    assert main(["--once"]) == 0


def test_settings_validate_day_boundary() -> None:
    from pydantic import ValidationError

    from peakhabit_api.core.config import Settings

    assert Settings().day_boundary_utc_offset_hours == -3
    with pytest.raises(ValidationError):
        Settings(day_boundary_utc_offset_hours=20)
    with pytest.raises(ValidationError):
        Settings(raid_failure_hp_penalty=-1)


def test_token_round_trip_and_wrong_secret() -> None:
    import jwt

    from peakhabit_api.core.config import Settings
    from peakhabit_api.core.security import create_access_token, decode_token

    token = create_access_token(subject="u_token", settings=Settings())
    assert decode_token(token, Settings())["sub"] == "u_token"

    with pytest.raises(jwt.PyJWTError):
        decode_token(token, Settings(auth_jwt_secret="someone-else"))


def test_json_log_lines_carry_context() -> None:
    import orjson

    from peakhabit_api.core.logging import JsonFormatter

    record = logging.LogRecord("peakhabit_api.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.request_id = "req_1"
    record.code = "already_completed"

    out = orjson.loads(JsonFormatter().format(record))
    assert out["msg"] == "hello world"
    assert out["level"] == "info"
    assert out["logger"] == "peakhabit_api.test"
    assert out["request_id"] == "req_1"
    assert out["code"] == "already_completed"


def test_domain_metrics_render_from_storage(session, clock) -> None:
    from peakhabit_api.completions import complete_daily_challenge, seed_daily_challenges
    from peakhabit_api.metrics import render_prometheus_metrics, reset_http_metrics

    reset_http_metrics()
    seed_daily_challenges(session, now=T0)
    complete_daily_challenge(session, user_id="u_metrics", daily_task_id="daily_02", now=T0, clock=clock)
    session.flush()

    text = render_prometheus_metrics(db=session)
    assert 'peakhabit_completions_total{source_type="daily"} 1' in text
    assert 'peakhabit_domain_events_total{type="reward_credited"} 1' in text

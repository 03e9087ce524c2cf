from __future__ import annotations

from datetime import UTC, datetime, timedelta


T0 = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


def _setup_boosted_user(session, *, user_id: str) -> str:
    from peakhabit_api.guilds import create_guild
    from peakhabit_api.pets import activate_pet, grant_pet
    from peakhabit_api.progression import ensure_progress
    from peakhabit_api.treasury import buy_upgrade

    ensure_progress(session, user_id=user_id, now=T0)
    grant_pet(session, user_id=user_id, pet_id="fox-fire", now=T0)
    activate_pet(session, user_id=user_id, pet_id="fox-fire")

    guild = create_guild(session, leader_id=user_id, name="Ashen Vanguard", now=T0)
    guild.vault_gold = 5000
    session.flush()
    buy_upgrade(session, leader_id=user_id, guild_id=guild.id, upgrade_id="banner-xp", now=T0)
    buy_upgrade(session, leader_id=user_id, guild_id=guild.id, upgrade_id="chalice-gold", now=T0)
    return guild.id


def test_companion_and_guild_factors_compose_before_flooring(session, clock) -> None:
    from fractions import Fraction

    from peakhabit_api.multipliers import resolve
    from peakhabit_api.progression import apply_reward

    _setup_boosted_user(session, user_id="u_boost")
    now = T0 + timedelta(hours=1)

    xp_mult = resolve(session, user_id="u_boost", kind="xp", now=now)
    assert xp_mult.companion == Fraction("1.10")
    assert xp_mult.guild == Fraction("1.20")

    res = apply_reward(
        session,
        user_id="u_boost",
        base_xp=7,
        base_gold=25,
        source_type="task",
        source_id="task_boost",
        now=now,
        clock=clock,
    )
    assert res.xp_awarded == 9
    assert res.gold_awarded == 28
    assert res.xp_multiplier == "33/25"
    assert res.gold_multiplier == "23/20"

    # The companion grows by the credited amount, not the base.
    assert res.pet is not None
    assert res.pet.pet_id == "fox-fire"
    assert res.pet.xp_gained == 9
    assert res.pet.experience == 9


def test_expired_upgrades_stop_applying(session, clock) -> None:
    from peakhabit_api.pets import activate_pet
    from peakhabit_api.progression import apply_reward

    _setup_boosted_user(session, user_id="u_fade")
    later = T0 + timedelta(hours=49)

    res = apply_reward(
        session, user_id="u_fade", base_xp=7, base_gold=25, source_type="task", source_id="t1", now=later, clock=clock
    )
    assert res.xp_awarded == 7
    assert res.gold_awarded == 25

    activate_pet(session, user_id="u_fade", pet_id=None)
    res2 = apply_reward(
        session, user_id="u_fade", base_xp=10, base_gold=0, source_type="task", source_id="t2", now=later, clock=clock
    )
    assert res2.xp_awarded == 10
    assert res2.pet is None


def test_gold_only_reward_leaves_streak_alone(session, clock) -> None:
    from peakhabit_api.progression import apply_reward, ensure_progress

    ensure_progress(session, user_id="u_gold", now=T0)
    res = apply_reward(
        session, user_id="u_gold", base_xp=0, base_gold=40, source_type="mission", source_id="m1", now=T0, clock=clock
    )
    assert res.gold == 40
    assert res.streak == 0
    assert res.streak_extended is False


def test_hp_is_clamped(session) -> None:
    from peakhabit_api.progression import apply_hp_change, ensure_progress

    ensure_progress(session, user_id="u_hp", now=T0)
    assert apply_hp_change(session, user_id="u_hp", delta=-30, now=T0) == 70
    assert apply_hp_change(session, user_id="u_hp", delta=-500, now=T0) == 0
    assert apply_hp_change(session, user_id="u_hp", delta=500, now=T0) == 100


def test_snapshot_hides_stale_streak(session, clock) -> None:
    from peakhabit_api.models import UserProgress
    from peakhabit_api.progression import apply_reward, default_progress_snapshot, progress_snapshot

    apply_reward(session, user_id="u_snap", base_xp=10, base_gold=0, source_type="task", source_id="t", now=T0, clock=clock)

    row = session.get(UserProgress, "u_snap")
    assert progress_snapshot(row, now=T0, clock=clock)["streak"] == 1
    stale = progress_snapshot(row, now=T0 + timedelta(days=4), clock=clock)
    assert stale["streak"] == 0
    assert stale["rank"] == "Iron"
    assert stale["degraded"] is False

    fallback = default_progress_snapshot("u_snap")
    assert fallback["level"] == 1
    assert fallback["xp_to_next"] == 100
    assert fallback["hp"] == 100
    assert fallback["degraded"] is True

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest


T0 = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


def _guild_with_member(session) -> str:
    from peakhabit_api.guilds import create_guild, join_guild

    g = create_guild(session, leader_id="u_lead", name="Copper Keys", now=T0)
    join_guild(session, user_id="u_member", guild_id=g.id, now=T0)
    return g.id


def test_donation_moves_gold_into_vault(session) -> None:
    from peakhabit_api.errors import InsufficientBalance, InvalidAction, NotAuthorized
    from peakhabit_api.progression import ensure_progress
    from peakhabit_api.treasury import donate

    gid = _guild_with_member(session)

    with pytest.raises(InsufficientBalance) as broke:
        donate(session, user_id="u_member", amount=10, now=T0)
    assert broke.value.code == "insufficient_gold"
    assert broke.value.details == {"required": 10, "available": 0}

    ensure_progress(session, user_id="u_member", now=T0).gold = 3000
    session.flush()

    res = donate(session, user_id="u_member", amount=2500, now=T0)
    assert res.guild_id == gid
    assert res.user_gold == 500
    assert res.vault_gold == 2500

    with pytest.raises(InvalidAction) as zero:
        donate(session, user_id="u_member", amount=0, now=T0)
    assert zero.value.code == "invalid_amount"

    with pytest.raises(NotAuthorized):
        donate(session, user_id="u_loner", amount=1, now=T0)


def test_only_leader_buys_and_vault_must_cover_price(session) -> None:
    from peakhabit_api.errors import InsufficientBalance, NotAuthorized, ResourceNotFound
    from peakhabit_api.models import Guild
    from peakhabit_api.treasury import buy_upgrade

    gid = _guild_with_member(session)
    session.get(Guild, gid).vault_gold = 2500
    session.flush()

    with pytest.raises(NotAuthorized):
        buy_upgrade(session, leader_id="u_member", guild_id=gid, upgrade_id="banner-xp", now=T0)

    with pytest.raises(ResourceNotFound) as unknown:
        buy_upgrade(session, leader_id="u_lead", guild_id=gid, upgrade_id="moat", now=T0)
    assert unknown.value.code == "upgrade_not_found"

    shield = buy_upgrade(session, leader_id="u_lead", guild_id=gid, upgrade_id="shield-protection", now=T0)
    assert shield.vault_gold == 500
    assert shield.expires_at == T0 + timedelta(hours=72)

    with pytest.raises(InsufficientBalance) as short:
        buy_upgrade(session, leader_id="u_lead", guild_id=gid, upgrade_id="banner-xp", now=T0)
    assert short.value.code == "insufficient_vault_gold"
    assert session.get(Guild, gid).vault_gold == 500


def test_rebuying_running_upgrade_stacks_duration(session) -> None:
    from peakhabit_api.models import Guild
    from peakhabit_api.treasury import buy_upgrade, get_vault

    gid = _guild_with_member(session)
    session.get(Guild, gid).vault_gold = 5000
    session.flush()

    first = buy_upgrade(session, leader_id="u_lead", guild_id=gid, upgrade_id="banner-xp", now=T0)
    assert first.expires_at == T0 + timedelta(hours=24)
    assert first.extended is False

    stacked = buy_upgrade(
        session, leader_id="u_lead", guild_id=gid, upgrade_id="banner-xp", now=T0 + timedelta(hours=10)
    )
    assert stacked.expires_at == T0 + timedelta(hours=48)
    assert stacked.extended is True

    lapsed = buy_upgrade(
        session, leader_id="u_lead", guild_id=gid, upgrade_id="banner-xp", now=T0 + timedelta(hours=60)
    )
    assert lapsed.expires_at == T0 + timedelta(hours=84)
    assert lapsed.vault_gold == 2000

    vault = get_vault(session, user_id="u_member", guild_id=gid, now=T0 + timedelta(hours=61))
    assert vault["is_leader"] is False
    assert vault["vault_gold"] == 2000
    assert vault["upgrades"] == [
        {
            "upgrade_id": "banner-xp",
            "expires_at": T0 + timedelta(hours=84),
            "remaining_seconds": 23 * 3600,
        }
    ]

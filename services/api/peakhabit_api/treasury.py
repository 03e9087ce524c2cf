from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from peakhabit_api.errors import InsufficientBalance, InvalidAction, NotAuthorized, ResourceNotFound
from peakhabit_api.eventlog import log_event
from peakhabit_api.guilds import get_guild, membership, require_leader, require_member
from peakhabit_api.models import GuildUpgrade
from peakhabit_api.multipliers import active_upgrades
from peakhabit_api.progression import ensure_progress, spend_gold
from peakhabit_rules.catalog import GUILD_UPGRADES, GuildUpgradeDef
from peakhabit_rules.clock import as_aware_utc


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DonationResult:
    guild_id: str
    amount: int
    user_gold: int
    vault_gold: int


@dataclass(frozen=True)
class UpgradePurchase:
    guild_id: str
    upgrade_id: str
    price: int
    expires_at: datetime
    extended: bool
    vault_gold: int


def upgrade_def(upgrade_id: str) -> GuildUpgradeDef:
    d = GUILD_UPGRADES.get(str(upgrade_id))
    if d is None:
        raise ResourceNotFound("upgrade", upgrade_id)
    return d


def donate(
    session: Session, *, user_id: str, amount: int, now: datetime | None = None
) -> DonationResult:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    amount = int(amount)
    if amount <= 0:
        raise InvalidAction("invalid_amount", details={"amount": amount})
    m = membership(session, user_id=user_id)
    if m is None:
        raise NotAuthorized(details={"reason": "not_a_member"})

    progress = ensure_progress(session, user_id=user_id, now=now_dt, for_update=True)
    if int(progress.gold or 0) < amount:
        raise InsufficientBalance("gold", required=amount, available=int(progress.gold or 0))

    guild = get_guild(session, guild_id=m.guild_id, for_update=True)
    spend_gold(session, row=progress, amount=amount, now=now_dt)
    guild.vault_gold = int(guild.vault_gold or 0) + amount
    guild.updated_at = now_dt
    session.add(guild)

    log_event(
        session,
        type="treasury_donation",
        user_id=user_id,
        payload={"guild_id": str(guild.id), "amount": amount},
        now=now_dt,
    )
    return DonationResult(
        guild_id=str(guild.id),
        amount=amount,
        user_gold=int(progress.gold),
        vault_gold=int(guild.vault_gold),
    )


def buy_upgrade(
    session: Session,
    *,
    leader_id: str,
    guild_id: str,
    upgrade_id: str,
    now: datetime | None = None,
) -> UpgradePurchase:
    """
    Spends vault gold on a time-boxed upgrade. Buying an upgrade that is still
    running stacks the new duration on top of the remaining time.
    """
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    d = upgrade_def(upgrade_id)
    guild = get_guild(session, guild_id=guild_id, for_update=True)
    require_leader(session, user_id=leader_id, guild=guild)
    if int(guild.vault_gold or 0) < d.price:
        raise InsufficientBalance(
            "vault_gold", required=d.price, available=int(guild.vault_gold or 0)
        )

    guild.vault_gold = int(guild.vault_gold or 0) - d.price
    guild.updated_at = now_dt
    session.add(guild)

    duration = timedelta(hours=d.duration_hours)
    row = session.get(
        GuildUpgrade,
        {"guild_id": str(guild.id), "upgrade_id": d.id},
        with_for_update=True,
    )
    extended = row is not None
    if row is None:
        row = GuildUpgrade(
            guild_id=str(guild.id),
            upgrade_id=d.id,
            expires_at=now_dt + duration,
            purchased_by=str(leader_id),
            updated_at=now_dt,
        )
    else:
        current = as_aware_utc(row.expires_at) or now_dt
        row.expires_at = max(now_dt, current) + duration
        row.purchased_by = str(leader_id)
        row.updated_at = now_dt
    session.add(row)
    session.flush()

    expires_at = as_aware_utc(row.expires_at) or now_dt
    log_event(
        session,
        type="guild_upgrade_purchased",
        user_id=leader_id,
        payload={
            "guild_id": str(guild.id),
            "upgrade_id": d.id,
            "price": d.price,
            "expires_at": expires_at.isoformat(),
            "extended": extended,
        },
        now=now_dt,
    )
    logger.info("guild upgrade purchased", extra={"guild_id": str(guild.id), "upgrade_id": d.id})
    return UpgradePurchase(
        guild_id=str(guild.id),
        upgrade_id=d.id,
        price=d.price,
        expires_at=expires_at,
        extended=extended,
        vault_gold=int(guild.vault_gold),
    )


def get_vault(
    session: Session, *, user_id: str, guild_id: str, now: datetime | None = None
) -> dict[str, Any]:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    require_member(session, user_id=user_id, guild_id=guild_id)
    guild = get_guild(session, guild_id=guild_id)
    upgrades = []
    for up in active_upgrades(session, guild_id=guild.id, now=now_dt):
        expires = as_aware_utc(up.expires_at) or now_dt
        upgrades.append(
            {
                "upgrade_id": str(up.upgrade_id),
                "expires_at": expires,
                "remaining_seconds": max(0, int((expires - now_dt).total_seconds())),
            }
        )
    return {
        "guild_id": str(guild.id),
        "vault_gold": int(guild.vault_gold or 0),
        "is_leader": str(guild.leader_id) == str(user_id),
        "upgrades": upgrades,
    }

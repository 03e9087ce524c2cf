from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peakhabit_api.core.config import Settings
from peakhabit_api.errors import InvalidAction, ResourceNotFound
from peakhabit_api.eventlog import log_event
from peakhabit_api.guilds import (
    get_guild,
    leave_guild,
    member_count,
    member_ids,
    membership,
    require_leader,
    require_member,
)
from peakhabit_api.ledger import try_complete
from peakhabit_api.locks import lock_guild_raids
from peakhabit_api.models import GuildMember, GuildRaid, GuildRaidParticipant
from peakhabit_api.multipliers import raid_penalty_factor
from peakhabit_api.progression import RewardResult, apply_hp_change, apply_reward, day_clock
from peakhabit_rules.catalog import RAID_XP_REWARD
from peakhabit_rules.clock import WINDOW_EVER, DayClock, as_aware_utc
from peakhabit_rules.multipliers import apply_multiplier


logger = logging.getLogger(__name__)

RAID_ACTIVE = "active"
RAID_COMPLETED = "completed"
RAID_FAILED = "failed"


@dataclass(frozen=True)
class ParticipationResult:
    raid_id: str
    success: bool
    already_participated: bool
    status: str
    participants: int
    members: int
    rewards: dict[str, RewardResult] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == RAID_COMPLETED


@dataclass(frozen=True)
class RaidFailure:
    raid_id: str
    guild_id: str
    hp_penalty: int
    members: list[str]


def get_raid(session: Session, *, raid_id: str, for_update: bool = False) -> GuildRaid:
    raid = session.get(GuildRaid, str(raid_id), with_for_update=True if for_update else None)
    if raid is None:
        raise ResourceNotFound("raid", raid_id)
    return raid


def member_participant_count(session: Session, *, raid: GuildRaid) -> int:
    """Participants who still belong to the raid's guild."""
    return int(
        session.scalar(
            select(func.count())
            .select_from(GuildRaidParticipant)
            .join(
                GuildMember,
                (GuildMember.user_id == GuildRaidParticipant.user_id)
                & (GuildMember.guild_id == str(raid.guild_id)),
            )
            .where(GuildRaidParticipant.raid_id == str(raid.id))
        )
        or 0
    )


def quorum_met(session: Session, *, raid: GuildRaid) -> bool:
    members = member_count(session, guild_id=raid.guild_id)
    return members > 0 and member_participant_count(session, raid=raid) >= members


def is_expired(raid: GuildRaid, *, now: datetime, budget_days: int) -> bool:
    created = as_aware_utc(raid.created_at)
    if created is None:
        return False
    return now - created > timedelta(days=int(budget_days))


def create_raid(
    session: Session,
    *,
    leader_id: str,
    guild_id: str,
    title: str,
    description: str | None = None,
    difficulty: str = "medium",
    xp_reward: int | None = None,
    now: datetime | None = None,
    clock: DayClock | None = None,
) -> GuildRaid:
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = clock or day_clock()
    guild = get_guild(session, guild_id=guild_id)
    require_leader(session, user_id=leader_id, guild=guild)
    if difficulty not in RAID_XP_REWARD:
        raise InvalidAction("invalid_difficulty", details={"difficulty": difficulty})
    title = str(title or "").strip()
    if not title:
        raise InvalidAction("title_required")
    reward = RAID_XP_REWARD[difficulty] if xp_reward is None else int(xp_reward)
    if reward < 0:
        raise InvalidAction("invalid_xp_reward")

    local = clock.today(now_dt)
    raid = GuildRaid(
        id=f"raid_{uuid4().hex}",
        guild_id=str(guild.id),
        title=title[:200],
        description=description,
        difficulty=difficulty,
        xp_reward=reward,
        assigned_by_user_id=str(leader_id),
        status=RAID_ACTIVE,
        month=local.month,
        year=local.year,
        created_at=now_dt,
        completed_at=None,
        failed_at=None,
    )
    session.add(raid)
    session.flush()
    return raid


def _transition(session: Session, *, raid_id: str, status: str, now: datetime) -> bool:
    # Compare-and-set: only one caller can move a raid out of `active`.
    values: dict[str, Any] = {"status": status}
    if status == RAID_COMPLETED:
        values["completed_at"] = now
    else:
        values["failed_at"] = now
    res = session.execute(
        update(GuildRaid)
        .where(GuildRaid.id == str(raid_id))
        .where(GuildRaid.status == RAID_ACTIVE)
        .values(**values)
    )
    return int(res.rowcount or 0) == 1


def _complete_raid(
    session: Session, *, raid: GuildRaid, now: datetime, clock: DayClock
) -> dict[str, RewardResult]:
    if not _transition(session, raid_id=raid.id, status=RAID_COMPLETED, now=now):
        return {}

    members = member_ids(session, guild_id=raid.guild_id)
    rewards: dict[str, RewardResult] = {}
    for uid in members:
        rewards[uid] = apply_reward(
            session,
            user_id=uid,
            base_xp=int(raid.xp_reward or 0),
            base_gold=0,
            source_type="raid",
            source_id=str(raid.id),
            now=now,
            clock=clock,
        )

    guild = get_guild(session, guild_id=raid.guild_id, for_update=True)
    guild.total_xp = int(guild.total_xp or 0) + int(raid.xp_reward or 0)
    guild.total_raids_completed = int(guild.total_raids_completed or 0) + 1
    guild.updated_at = now
    session.add(guild)

    log_event(
        session,
        type="raid_completed",
        user_id=None,
        payload={
            "raid_id": str(raid.id),
            "guild_id": str(raid.guild_id),
            "xp_reward": int(raid.xp_reward or 0),
            "members": members,
        },
        now=now,
    )
    logger.info(
        "raid completed",
        extra={"raid_id": str(raid.id), "guild_id": str(raid.guild_id), "members": len(members)},
    )
    return rewards


def participate(
    session: Session,
    *,
    user_id: str,
    raid_id: str,
    now: datetime | None = None,
    clock: DayClock | None = None,
    settings: Settings | None = None,
) -> ParticipationResult:
    """
    Records one member's participation. The participant that brings the count
    up to the guild's member count completes the raid, crediting every member.
    """
    settings = settings or Settings()
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = clock or day_clock(settings)

    # Row lock serialises concurrent participations so the last one sees the full count.
    raid = get_raid(session, raid_id=raid_id, for_update=True)
    require_member(session, user_id=user_id, guild_id=raid.guild_id)

    already = session.get(
        GuildRaidParticipant, {"raid_id": str(raid.id), "user_id": str(user_id)}
    )
    if already is not None:
        return ParticipationResult(
            raid_id=str(raid.id),
            success=True,
            already_participated=True,
            status=str(raid.status),
            participants=member_participant_count(session, raid=raid),
            members=member_count(session, guild_id=raid.guild_id),
        )

    if raid.status != RAID_ACTIVE:
        raise InvalidAction("raid_not_active", details={"status": str(raid.status)})
    if is_expired(raid, now=now_dt, budget_days=settings.raid_time_budget_days):
        raise InvalidAction("raid_not_active", details={"status": "expired"})

    res = try_complete(
        session,
        user_id=user_id,
        source_type="raid",
        source_id=str(raid.id),
        window_key=WINDOW_EVER,
        now=now_dt,
    )
    if res.accepted:
        try:
            with session.begin_nested():
                session.add(
                    GuildRaidParticipant(raid_id=str(raid.id), user_id=str(user_id), joined_at=now_dt)
                )
                session.flush()
        except IntegrityError:
            pass
    if res.already_done:
        return ParticipationResult(
            raid_id=str(raid.id),
            success=True,
            already_participated=True,
            status=str(raid.status),
            participants=member_participant_count(session, raid=raid),
            members=member_count(session, guild_id=raid.guild_id),
        )

    participants = member_participant_count(session, raid=raid)
    members = member_count(session, guild_id=raid.guild_id)
    rewards: dict[str, RewardResult] = {}
    if members > 0 and participants >= members:
        rewards = _complete_raid(session, raid=raid, now=now_dt, clock=clock)

    return ParticipationResult(
        raid_id=str(raid.id),
        success=True,
        already_participated=False,
        status=str(raid.status),
        participants=participants,
        members=members,
        rewards=rewards,
    )


def _fail_raid(
    session: Session, *, raid: GuildRaid, now: datetime, settings: Settings
) -> RaidFailure | None:
    if not _transition(session, raid_id=raid.id, status=RAID_FAILED, now=now):
        return None

    factor = raid_penalty_factor(session, guild_id=raid.guild_id, now=now)
    penalty = apply_multiplier(int(settings.raid_failure_hp_penalty), factor)
    members = member_ids(session, guild_id=raid.guild_id)
    for uid in members:
        apply_hp_change(session, user_id=uid, delta=-penalty, now=now)

    log_event(
        session,
        type="raid_failed",
        user_id=None,
        payload={
            "raid_id": str(raid.id),
            "guild_id": str(raid.guild_id),
            "hp_penalty": penalty,
            "members": members,
        },
        now=now,
    )
    logger.info(
        "raid failed",
        extra={"raid_id": str(raid.id), "guild_id": str(raid.guild_id), "hp_penalty": penalty},
    )
    return RaidFailure(
        raid_id=str(raid.id), guild_id=str(raid.guild_id), hp_penalty=penalty, members=members
    )


def sweep_expired_raids(
    session: Session,
    *,
    guild_id: str | None = None,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[RaidFailure]:
    """
    Fails every active raid past its time budget. A raid whose quorum is
    already met is completed instead. Safe to re-run.
    """
    settings = settings or Settings()
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = day_clock(settings)

    out: list[RaidFailure] = []
    for raid in _active_raids(session, guild_id=guild_id):
        if not is_expired(raid, now=now_dt, budget_days=settings.raid_time_budget_days):
            continue
        lock_guild_raids(session, guild_id=raid.guild_id)
        if quorum_met(session, raid=raid):
            _complete_raid(session, raid=raid, now=now_dt, clock=clock)
            continue
        failure = _fail_raid(session, raid=raid, now=now_dt, settings=settings)
        if failure is not None:
            out.append(failure)
    return out


def _active_raids(session: Session, *, guild_id: str | None = None) -> list[GuildRaid]:
    q = select(GuildRaid).where(GuildRaid.status == RAID_ACTIVE)
    if guild_id is not None:
        q = q.where(GuildRaid.guild_id == str(guild_id))
    return list(session.scalars(q.order_by(GuildRaid.created_at.asc(), GuildRaid.id.asc())).all())


def settle_quorum(
    session: Session,
    *,
    guild_id: str,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[str]:
    """Completes the guild's active raids whose participants now cover every member."""
    settings = settings or Settings()
    now_dt = as_aware_utc(now) or datetime.now(UTC)
    clock = day_clock(settings)
    lock_guild_raids(session, guild_id=guild_id)

    completed: list[str] = []
    for raid in _active_raids(session, guild_id=guild_id):
        if is_expired(raid, now=now_dt, budget_days=settings.raid_time_budget_days):
            continue
        if not quorum_met(session, raid=raid):
            continue
        if _complete_raid(session, raid=raid, now=now_dt, clock=clock):
            completed.append(str(raid.id))
    return completed


def leave_guild_settling_raids(
    session: Session,
    *,
    user_id: str,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> bool:
    """
    Leaves the caller's guild. Raids that expired under the old roster are
    failed first, then raids the remaining members have all joined complete.
    Returns True when the guild was dissolved.
    """
    m = membership(session, user_id=user_id)
    if m is None:
        raise ResourceNotFound("membership", user_id)
    gid = str(m.guild_id)
    sweep_expired_raids(session, guild_id=gid, now=now, settings=settings)
    dissolved = leave_guild(session, user_id=user_id)
    if not dissolved:
        settle_quorum(session, guild_id=gid, now=now, settings=settings)
    return dissolved


def list_raids(
    session: Session,
    *,
    user_id: str,
    guild_id: str,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[dict[str, Any]]:
    require_member(session, user_id=user_id, guild_id=guild_id)
    sweep_expired_raids(session, guild_id=guild_id, now=now, settings=settings)

    raids = session.scalars(
        select(GuildRaid)
        .where(GuildRaid.guild_id == str(guild_id))
        .order_by(GuildRaid.created_at.desc(), GuildRaid.id.asc())
    ).all()
    counts = dict(
        session.execute(
            select(GuildRaidParticipant.raid_id, func.count())
            .join(GuildRaid, GuildRaid.id == GuildRaidParticipant.raid_id)
            .join(
                GuildMember,
                (GuildMember.user_id == GuildRaidParticipant.user_id)
                & (GuildMember.guild_id == GuildRaid.guild_id),
            )
            .where(GuildRaid.guild_id == str(guild_id))
            .group_by(GuildRaidParticipant.raid_id)
        ).all()
    )
    mine = set(
        session.scalars(
            select(GuildRaidParticipant.raid_id)
            .join(GuildRaid, GuildRaid.id == GuildRaidParticipant.raid_id)
            .where(GuildRaid.guild_id == str(guild_id))
            .where(GuildRaidParticipant.user_id == str(user_id))
        ).all()
    )
    members = len(member_ids(session, guild_id=guild_id))
    return [
        {
            "raid": r,
            "participants": int(counts.get(r.id, 0)),
            "members": members,
            "participated": str(r.id) in mine,
        }
        for r in raids
    ]

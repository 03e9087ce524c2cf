from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peakhabit_api.errors import InvalidAction, NotAuthorized, ResourceNotFound
from peakhabit_api.models import Guild, GuildMember, User, UserProgress
from peakhabit_api.progression import ensure_user


logger = logging.getLogger(__name__)


def get_guild(session: Session, *, guild_id: str, for_update: bool = False) -> Guild:
    g = session.get(Guild, str(guild_id), with_for_update=True if for_update else None)
    if g is None:
        raise ResourceNotFound("guild", guild_id)
    return g


def membership(session: Session, *, user_id: str) -> GuildMember | None:
    return session.scalar(
        select(GuildMember).where(GuildMember.user_id == str(user_id)).limit(1)
    )


def member_ids(session: Session, *, guild_id: str) -> list[str]:
    rows = session.scalars(
        select(GuildMember.user_id)
        .where(GuildMember.guild_id == str(guild_id))
        .order_by(GuildMember.joined_at.asc(), GuildMember.user_id.asc())
    ).all()
    return [str(r) for r in rows]


def member_count(session: Session, *, guild_id: str) -> int:
    return int(
        session.scalar(
            select(func.count())
            .select_from(GuildMember)
            .where(GuildMember.guild_id == str(guild_id))
        )
        or 0
    )


def require_member(session: Session, *, user_id: str, guild_id: str) -> GuildMember:
    m = membership(session, user_id=user_id)
    if m is None or str(m.guild_id) != str(guild_id):
        raise NotAuthorized(details={"guild_id": str(guild_id), "reason": "not_a_member"})
    return m


def require_leader(session: Session, *, user_id: str, guild: Guild) -> None:
    if str(guild.leader_id) != str(user_id):
        raise NotAuthorized(details={"guild_id": str(guild.id), "reason": "leader_only"})


def _add_member(session: Session, *, guild: Guild, user_id: str, role: str, now: datetime) -> GuildMember:
    if membership(session, user_id=user_id) is not None:
        raise InvalidAction("already_in_guild")
    m = GuildMember(guild_id=str(guild.id), user_id=str(user_id), role=role, joined_at=now)
    try:
        with session.begin_nested():
            session.add(m)
            session.flush()
    except IntegrityError as e:
        raise InvalidAction("already_in_guild") from e
    return m


def create_guild(
    session: Session,
    *,
    leader_id: str,
    name: str,
    description: str | None = None,
    now: datetime | None = None,
) -> Guild:
    now_dt = now or datetime.now(UTC)
    name = str(name or "").strip()
    if not name:
        raise InvalidAction("guild_name_required")
    ensure_user(session, user_id=leader_id, now=now_dt)
    if membership(session, user_id=leader_id) is not None:
        raise InvalidAction("already_in_guild")
    if session.scalar(select(Guild.id).where(Guild.name == name).limit(1)) is not None:
        raise InvalidAction("guild_name_taken")

    g = Guild(
        id=f"guild_{uuid4().hex}",
        name=name[:80],
        description=description,
        invite_code=uuid4().hex[:8].upper(),
        leader_id=str(leader_id),
        total_xp=0,
        total_raids_completed=0,
        vault_gold=0,
        created_at=now_dt,
        updated_at=now_dt,
    )
    session.add(g)
    session.flush()
    _add_member(session, guild=g, user_id=leader_id, role="leader", now=now_dt)
    logger.info("guild created", extra={"guild_id": g.id, "user_id": leader_id})
    return g


def join_guild(
    session: Session, *, user_id: str, guild_id: str, now: datetime | None = None
) -> GuildMember:
    now_dt = now or datetime.now(UTC)
    g = get_guild(session, guild_id=guild_id)
    ensure_user(session, user_id=user_id, now=now_dt)
    return _add_member(session, guild=g, user_id=user_id, role="member", now=now_dt)


def join_guild_by_code(
    session: Session, *, user_id: str, invite_code: str, now: datetime | None = None
) -> GuildMember:
    code = str(invite_code or "").strip().upper()
    g = session.scalar(select(Guild).where(Guild.invite_code == code).limit(1))
    if g is None:
        raise ResourceNotFound("guild", code)
    return join_guild(session, user_id=user_id, guild_id=g.id, now=now)


def leave_guild(session: Session, *, user_id: str) -> bool:
    """Returns True when leaving dissolved the guild (the leader left)."""
    m = membership(session, user_id=user_id)
    if m is None:
        raise ResourceNotFound("membership", user_id)
    g = get_guild(session, guild_id=m.guild_id)
    if str(g.leader_id) == str(user_id):
        gid = str(g.id)
        session.execute(delete(GuildMember).where(GuildMember.guild_id == gid))
        session.delete(g)
        session.flush()
        logger.info("guild dissolved", extra={"guild_id": gid, "user_id": user_id})
        return True
    session.delete(m)
    session.flush()
    return False


def get_my_guild(session: Session, *, user_id: str) -> Guild | None:
    m = membership(session, user_id=user_id)
    if m is None:
        return None
    return session.get(Guild, str(m.guild_id))


def list_members(session: Session, *, guild_id: str) -> list[dict[str, object]]:
    rows = session.execute(
        select(GuildMember, User, UserProgress)
        .join(User, User.id == GuildMember.user_id)
        .outerjoin(UserProgress, UserProgress.user_id == GuildMember.user_id)
        .where(GuildMember.guild_id == str(guild_id))
        .order_by(GuildMember.joined_at.asc(), GuildMember.user_id.asc())
    ).all()
    out: list[dict[str, object]] = []
    for m, u, p in rows:
        out.append(
            {
                "user_id": str(m.user_id),
                "display_name": str(u.display_name),
                "role": str(m.role),
                "level": int(p.level) if p is not None else 1,
                "total_xp": int(p.total_xp) if p is not None else 0,
                "joined_at": m.joined_at,
            }
        )
    return out


def list_guilds(session: Session, *, limit: int = 50) -> list[Guild]:
    return list(
        session.scalars(
            select(Guild)
            .order_by(Guild.total_xp.desc(), Guild.name.asc(), Guild.id.asc())
            .limit(int(limit))
        ).all()
    )

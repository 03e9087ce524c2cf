from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from peakhabit_api.core.config import Settings
from peakhabit_api.deps import AppSettings, CurrentUserId, DBSession
from peakhabit_api.guilds import (
    create_guild,
    get_guild,
    get_my_guild,
    join_guild,
    join_guild_by_code,
    list_guilds,
    list_members,
    member_count,
    membership,
    require_member,
)
from peakhabit_api.models import Guild
from peakhabit_api.raids import leave_guild_settling_raids
from peakhabit_api.treasury import buy_upgrade, donate, get_vault

router = APIRouter(prefix="/api/guilds", tags=["guilds"])


class GuildOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    invite_code: str | None = None
    leader_id: str
    total_xp: int
    total_raids_completed: int
    vault_gold: int
    member_count: int


class MyGuildOut(BaseModel):
    guild: GuildOut | None = None


class CreateGuildIn(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    description: str | None = Field(default=None, max_length=2000)


class JoinByCodeIn(BaseModel):
    invite_code: str = Field(min_length=1, max_length=32)


class LeaveOut(BaseModel):
    success: bool = True
    dissolved: bool


class MemberOut(BaseModel):
    user_id: str
    display_name: str
    role: str
    level: int
    total_xp: int
    joined_at: datetime


class DonateIn(BaseModel):
    amount: int = Field(gt=0)


class DonateOut(BaseModel):
    success: bool = True
    guild_id: str
    amount: int
    user_gold: int
    vault_gold: int


class UpgradeOut(BaseModel):
    upgrade_id: str
    expires_at: datetime
    remaining_seconds: int


class VaultOut(BaseModel):
    guild_id: str
    vault_gold: int
    is_leader: bool
    upgrades: list[UpgradeOut]


class BuyUpgradeOut(BaseModel):
    success: bool = True
    guild_id: str
    upgrade_id: str
    price: int
    expires_at: datetime
    extended: bool
    vault_gold: int


def _guild_out(db: Session, g: Guild, *, viewer_id: str | None = None) -> GuildOut:
    # Invite codes are only shown to members when browsing.
    show_code = True
    if viewer_id is not None:
        m = membership(db, user_id=viewer_id)
        show_code = m is not None and str(m.guild_id) == str(g.id)
    return GuildOut(
        id=g.id,
        name=g.name,
        description=g.description,
        invite_code=g.invite_code if show_code else None,
        leader_id=g.leader_id,
        total_xp=int(g.total_xp or 0),
        total_raids_completed=int(g.total_raids_completed or 0),
        vault_gold=int(g.vault_gold or 0),
        member_count=member_count(db, guild_id=g.id),
    )


@router.get("", response_model=list[GuildOut])
def guilds(user_id: str = CurrentUserId, db: Session = DBSession) -> list[GuildOut]:
    return [_guild_out(db, g, viewer_id=user_id) for g in list_guilds(db)]


@router.post("", response_model=GuildOut)
def create(req: CreateGuildIn, user_id: str = CurrentUserId, db: Session = DBSession) -> GuildOut:
    g = create_guild(db, leader_id=user_id, name=req.name, description=req.description)
    out = _guild_out(db, g)
    db.commit()
    return out


@router.get("/me", response_model=MyGuildOut)
def mine(user_id: str = CurrentUserId, db: Session = DBSession) -> MyGuildOut:
    g = get_my_guild(db, user_id=user_id)
    return MyGuildOut(guild=_guild_out(db, g) if g is not None else None)


@router.post("/join-by-code", response_model=GuildOut)
def join_by_code(req: JoinByCodeIn, user_id: str = CurrentUserId, db: Session = DBSession) -> GuildOut:
    m = join_guild_by_code(db, user_id=user_id, invite_code=req.invite_code)
    out = _guild_out(db, get_guild(db, guild_id=m.guild_id))
    db.commit()
    return out


@router.post("/leave", response_model=LeaveOut)
def leave(
    user_id: str = CurrentUserId, db: Session = DBSession, settings: Settings = AppSettings
) -> LeaveOut:
    dissolved = leave_guild_settling_raids(db, user_id=user_id, settings=settings)
    db.commit()
    return LeaveOut(dissolved=dissolved)


@router.post("/vault/donate", response_model=DonateOut)
def donate_to_vault(req: DonateIn, user_id: str = CurrentUserId, db: Session = DBSession) -> DonateOut:
    res = donate(db, user_id=user_id, amount=req.amount)
    db.commit()
    return DonateOut(
        guild_id=res.guild_id,
        amount=res.amount,
        user_gold=res.user_gold,
        vault_gold=res.vault_gold,
    )


@router.get("/{guild_id}", response_model=GuildOut)
def guild(guild_id: str, user_id: str = CurrentUserId, db: Session = DBSession) -> GuildOut:
    return _guild_out(db, get_guild(db, guild_id=guild_id), viewer_id=user_id)


@router.post("/{guild_id}/join", response_model=GuildOut)
def join(guild_id: str, user_id: str = CurrentUserId, db: Session = DBSession) -> GuildOut:
    join_guild(db, user_id=user_id, guild_id=guild_id)
    out = _guild_out(db, get_guild(db, guild_id=guild_id))
    db.commit()
    return out


@router.get("/{guild_id}/members", response_model=list[MemberOut])
def members(guild_id: str, user_id: str = CurrentUserId, db: Session = DBSession) -> list[MemberOut]:
    get_guild(db, guild_id=guild_id)
    require_member(db, user_id=user_id, guild_id=guild_id)
    return [MemberOut(**m) for m in list_members(db, guild_id=guild_id)]


@router.get("/{guild_id}/vault", response_model=VaultOut)
def vault(guild_id: str, user_id: str = CurrentUserId, db: Session = DBSession) -> VaultOut:
    v = get_vault(db, user_id=user_id, guild_id=guild_id)
    return VaultOut(
        guild_id=v["guild_id"],
        vault_gold=v["vault_gold"],
        is_leader=v["is_leader"],
        upgrades=[UpgradeOut(**u) for u in v["upgrades"]],
    )


@router.post("/{guild_id}/upgrades/{upgrade_id}", response_model=BuyUpgradeOut)
def purchase_upgrade(
    guild_id: str, upgrade_id: str, user_id: str = CurrentUserId, db: Session = DBSession
) -> BuyUpgradeOut:
    res = buy_upgrade(db, leader_id=user_id, guild_id=guild_id, upgrade_id=upgrade_id)
    db.commit()
    return BuyUpgradeOut(
        guild_id=res.guild_id,
        upgrade_id=res.upgrade_id,
        price=res.price,
        expires_at=res.expires_at,
        extended=res.extended,
        vault_gold=res.vault_gold,
    )

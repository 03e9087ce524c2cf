from __future__ import annotations

import contextlib
import hashlib
import logging
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)

SCHEDULER_SWEEP = "scheduler:raid_sweep"


def lock_key(scope: str, ident: str = "") -> int:
    """Maps a (scope, ident) pair onto PostgreSQL's signed 64-bit lock space."""
    raw = f"peakhabit:{scope}:{ident}".encode("utf-8")
    return int.from_bytes(hashlib.sha256(raw).digest()[:8], byteorder="big", signed=True)


def guild_raids_key(guild_id: str) -> int:
    return lock_key("guild_raids", str(guild_id))


def _is_postgres(session: Session) -> bool:
    bind = session.get_bind()
    return getattr(getattr(bind, "dialect", None), "name", "") == "postgresql"


def lock_guild_raids(session: Session, *, guild_id: str) -> None:
    """
    Serialises raid settlement (quorum completion and expiry failure) for one
    guild until the current transaction ends. SQLite has a single writer, so
    nothing is taken there.
    """
    if not _is_postgres(session):
        return
    session.execute(
        text("SELECT pg_advisory_xact_lock(:k)"), {"k": guild_raids_key(guild_id)}
    )


@contextlib.contextmanager
def scheduler_lock(session: Session) -> Iterator[bool]:
    """
    Session-level try-lock so only one scheduler process sweeps at a time.
    Yields False when another process holds it.
    """
    if not _is_postgres(session):
        yield True
        return

    key = lock_key(SCHEDULER_SWEEP)
    try:
        acquired = bool(
            session.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": key}).scalar()
        )
    except SQLAlchemyError:
        logger.warning("scheduler lock attempt failed", exc_info=True)
        session.rollback()
        acquired = False
    try:
        yield acquired
    finally:
        if acquired:
            try:
                session.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": key})
                session.commit()
            except SQLAlchemyError:
                logger.warning("scheduler unlock failed", exc_info=True)
                session.rollback()

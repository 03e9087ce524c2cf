from __future__ import annotations

import logging
from typing import Iterator

import jwt
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from peakhabit_api.core.config import Settings
from peakhabit_api.core.security import decode_token
from peakhabit_api.errors import StorageUnavailable
from peakhabit_rules.clock import DayClock


logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> DayClock:
    return request.app.state.clock


def get_db(request: Request) -> Iterator[Session]:
    factory = request.app.state.session_factory
    with factory() as session:
        yield session


def get_current_user_id(
    request: Request, authorization: str | None = Header(default=None)
) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = decode_token(token, get_settings(request))
    except jwt.PyJWTError as e:
        raise HTTPException(status_code=401, detail="Invalid token") from e
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(sub)


CurrentUserId = Depends(get_current_user_id)
DBSession = Depends(get_db)
AppSettings = Depends(get_settings)
Clock = Depends(get_clock)


def degrade_or_raise(db: Session, settings: Settings, exc: SQLAlchemyError) -> None:
    """
    Called from the two read-mostly routes that may serve a default snapshot
    when storage is down. Raises StorageUnavailable when degradation is off.
    """
    logger.warning("storage unavailable, serving default snapshot", exc_info=exc)
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.warning("rollback after storage failure also failed", exc_info=True)
    if not settings.storage_fallback_enabled:
        raise StorageUnavailable() from exc

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import orjson
from sqlalchemy.orm import Session

from peakhabit_api.models import Event


logger = logging.getLogger(__name__)


def log_event(
    session: Session,
    *,
    type: str,
    user_id: str | None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Event:
    """Adds an `events` row to the caller's transaction and mirrors it to the log."""
    now_dt = now or datetime.now(UTC)
    p: dict[str, Any] = dict(payload or {})
    p.setdefault("v", 1)
    p.setdefault("user_id", user_id)

    ev = Event(
        id=f"ev_{uuid4().hex}",
        user_id=user_id,
        type=str(type),
        payload_json=orjson.dumps(p, default=str).decode("utf-8"),
        created_at=now_dt,
    )
    session.add(ev)
    logger.info("event %s", type, extra={"event_type": str(type), "user_id": user_id})
    return ev


def load_payload(ev: Event) -> dict[str, Any]:
    try:
        out = orjson.loads(ev.payload_json or "{}")
    except orjson.JSONDecodeError:
        return {}
    return out if isinstance(out, dict) else {}

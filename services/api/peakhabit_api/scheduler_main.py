from __future__ import annotations

import argparse
import logging
import signal
import time
from datetime import UTC, datetime

import orjson
from sqlalchemy.orm import Session, sessionmaker

from peakhabit_api.core.config import Settings
from peakhabit_api.core.logging import configure_logging
from peakhabit_api.db import create_db_engine, create_session_factory
from peakhabit_api.locks import scheduler_lock
from peakhabit_api.raids import sweep_expired_raids


logger = logging.getLogger(__name__)


def run_once(
    *,
    session_factory: sessionmaker[Session],
    settings: Settings | None = None,
    now: datetime | None = None,
) -> dict[str, object]:
    """Fails every expired active raid across all guilds, once."""
    settings = settings or Settings()
    now_dt = now or datetime.now(UTC)

    failed: list[str] = []
    skipped = False
    with session_factory() as session:
        with scheduler_lock(session) as acquired:
            if acquired:
                failures = sweep_expired_raids(session, now=now_dt, settings=settings)
                session.commit()
                failed = [f.raid_id for f in failures]
            else:
                skipped = True

    return {
        "ok": True,
        "generated_at": now_dt.isoformat(),
        "raids_failed": failed,
        "skipped": skipped,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="PeakHabit scheduler (expired raid sweep)."
    )
    parser.add_argument("--once", action="store_true", help="Run once and exit.")
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings)
    if not bool(settings.scheduler_enabled):
        logger.info("scheduler disabled (PEAKHABIT_SCHEDULER_ENABLED=false)")
        return 0

    session_factory = create_session_factory(create_db_engine(settings.db_url))

    stop = {"flag": False}

    def _handle(_sig, _frame) -> None:  # noqa: ANN001
        stop["flag"] = True

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)

    interval_sec = max(60, int(settings.scheduler_interval_minutes or 60) * 60)

    while True:
        res = run_once(session_factory=session_factory, settings=settings)
        logger.info("scheduler ok: %s", orjson.dumps(res).decode("utf-8"))
        if args.once or stop["flag"]:
            return 0
        time.sleep(interval_sec)


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import logging
from datetime import UTC, datetime

from sqlalchemy import delete, select

from peakhabit_api.completions import seed_daily_challenges
from peakhabit_api.core.config import Settings
from peakhabit_api.core.logging import configure_logging
from peakhabit_api.db import Base, create_db_engine, create_session_factory
from peakhabit_api.dungeons import seed_dungeon
from peakhabit_api.guilds import create_guild, join_guild, membership
from peakhabit_api.models import CompletionRecord, DailyTask, Event, Guild, User
from peakhabit_api.pets import activate_pet, grant_pet
from peakhabit_api.progression import ensure_progress, ensure_user
from peakhabit_api.raids import create_raid


logger = logging.getLogger("peakhabit_api.seed")

DEMO_USER_ID = "user_demo"
DEMO_GUILD_NAME = "Dawn Wardens"
GUILD_MATES: tuple[tuple[str, str], ...] = (
    ("user_mira", "Mira"),
    ("user_tomas", "Tomas"),
)


def _ensure_named_user(session, *, user_id: str, display_name: str, now: datetime) -> User:  # noqa: ANN001
    user = ensure_user(session, user_id=user_id, now=now)
    user.display_name = display_name
    ensure_progress(session, user_id=user_id, now=now)
    return user


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed default PeakHabit content and a demo guild.")
    parser.add_argument("--reset", action="store_true", help="Delete demo rows and regenerate.")
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings)
    engine = create_db_engine(settings.db_url)
    Base.metadata.create_all(engine)
    session_factory = create_session_factory(engine)
    now = datetime.now(UTC)

    with session_factory() as session:
        if args.reset:
            demo_ids = [DEMO_USER_ID, *[uid for uid, _ in GUILD_MATES]]
            session.execute(delete(Guild).where(Guild.name == DEMO_GUILD_NAME))
            session.execute(delete(CompletionRecord).where(CompletionRecord.user_id.in_(demo_ids)))
            session.execute(delete(Event).where(Event.user_id.in_(demo_ids)))
            session.execute(delete(User).where(User.id.in_(demo_ids)))
            session.execute(delete(DailyTask))
            session.commit()

        added = seed_daily_challenges(session, now=now)
        dungeon = seed_dungeon(session, now=now)
        dungeon_id = dungeon.id if dungeon is not None else None

        _ensure_named_user(session, user_id=DEMO_USER_ID, display_name="Demo Hero", now=now)
        for uid, name in GUILD_MATES:
            _ensure_named_user(session, user_id=uid, display_name=name, now=now)

        grant_pet(session, user_id=DEMO_USER_ID, pet_id="slime-blue", now=now)
        activate_pet(session, user_id=DEMO_USER_ID, pet_id="slime-blue")

        guild = session.scalar(select(Guild).where(Guild.name == DEMO_GUILD_NAME).limit(1))
        if guild is None and membership(session, user_id=DEMO_USER_ID) is None:
            guild = create_guild(
                session,
                leader_id=DEMO_USER_ID,
                name=DEMO_GUILD_NAME,
                description="Early risers keeping each other honest.",
                now=now,
            )
            for uid, _ in GUILD_MATES:
                if membership(session, user_id=uid) is None:
                    join_guild(session, user_id=uid, guild_id=guild.id, now=now)
            create_raid(
                session,
                leader_id=DEMO_USER_ID,
                guild_id=guild.id,
                title="30-minute workout, everyone",
                difficulty="medium",
                now=now,
            )

        session.commit()

    logger.info(
        "seed complete",
        extra={
            "daily_challenges_added": added,
            "dungeon_created": dungeon_id,
        },
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""progression and rewards schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="user"),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_progress",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("xp_in_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_to_next", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("hp", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("gold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_streak_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("equipped_theme_id", sa.String(), nullable=False, server_default="default"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("hp >= 0 AND hp <= 100", name="ck_user_progress_hp_range"),
        sa.CheckConstraint("gold >= 0", name="ck_user_progress_gold_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("difficulty", sa.String(), nullable=False, server_default="medium"),
        sa.Column("xp_reward", sa.Integer(), nullable=False),
        sa.Column("xp_penalty", sa.Integer(), nullable=False),
        sa.Column("repeat_type", sa.String(), nullable=False, server_default="daily"),
        sa.Column("repeat_days_json", sa.Text(), nullable=True),
        sa.Column("repeat_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"], unique=False)

    op.create_table(
        "daily_tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("emoji", sa.String(), nullable=False),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("gold_reward", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("category", sa.String(), nullable=False, server_default="health"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "completion_records",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("source_type", sa.String(), nullable=False),
        sa.Column("source_id", sa.String(), nullable=False),
        sa.Column("window_key", sa.String(), nullable=False),
        sa.Column("xp_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gold_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id",
            "source_type",
            "source_id",
            "window_key",
            name="uq_completion_records_user_source_window",
        ),
    )
    op.create_index(
        "ix_completion_records_user_id", "completion_records", ["user_id"], unique=False
    )
    op.create_index(
        "ix_completion_records_completed_at",
        "completion_records",
        ["completed_at"],
        unique=False,
    )

    op.create_table(
        "user_pets",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("pet_id", sa.String(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("experience", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "pet_id", name="uq_user_pets_user_pet"),
    )
    op.create_index("ix_user_pets_user_id", "user_pets", ["user_id"], unique=False)
    op.create_index(
        "uq_user_pets_one_active",
        "user_pets",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "guilds",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("invite_code", sa.String(), nullable=True),
        sa.Column("leader_id", sa.String(), nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_raids_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("vault_gold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("vault_gold >= 0", name="ck_guilds_vault_gold_non_negative"),
        sa.ForeignKeyConstraint(["leader_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sa.UniqueConstraint("invite_code"),
    )

    op.create_table(
        "guild_members",
        sa.Column("guild_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["guild_id"], ["guilds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("guild_id", "user_id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "guild_upgrades",
        sa.Column("guild_id", sa.String(), nullable=False),
        sa.Column("upgrade_id", sa.String(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("purchased_by", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["guild_id"], ["guilds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["purchased_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("guild_id", "upgrade_id"),
    )
    op.create_index(
        "ix_guild_upgrades_expires_at", "guild_upgrades", ["expires_at"], unique=False
    )

    op.create_table(
        "guild_raids",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("guild_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("difficulty", sa.String(), nullable=False, server_default="medium"),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default="500"),
        sa.Column("assigned_by_user_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["guild_id"], ["guilds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_guild_raids_guild_id", "guild_raids", ["guild_id"], unique=False)
    op.create_index("ix_guild_raids_status", "guild_raids", ["status"], unique=False)
    op.create_index("ix_guild_raids_created_at", "guild_raids", ["created_at"], unique=False)

    op.create_table(
        "guild_raid_participants",
        sa.Column("raid_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["raid_id"], ["guild_raids.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("raid_id", "user_id"),
    )

    op.create_table(
        "dungeons",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("theme", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("banner_emoji", sa.String(), nullable=False),
        sa.Column("theme_reward_id", sa.String(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "dungeon_missions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("dungeon_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("difficulty", sa.String(), nullable=False, server_default="medium"),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("gold_reward", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["dungeon_id"], ["dungeons.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_dungeon_missions_dungeon_id", "dungeon_missions", ["dungeon_id"], unique=False
    )

    op.create_table(
        "dungeon_progress",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("dungeon_id", sa.String(), nullable=False),
        sa.Column("mission_id", sa.String(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["dungeon_id"], ["dungeons.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["mission_id"], ["dungeon_missions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "mission_id", name="uq_dungeon_progress_user_mission"),
    )
    op.create_index("ix_dungeon_progress_user_id", "dungeon_progress", ["user_id"], unique=False)
    op.create_index(
        "ix_dungeon_progress_dungeon_id", "dungeon_progress", ["dungeon_id"], unique=False
    )

    op.create_table(
        "user_themes",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("theme_id", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "theme_id"),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_user_id", "events", ["user_id"], unique=False)
    op.create_index("ix_events_type", "events", ["type"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_events_type", table_name="events")
    op.drop_index("ix_events_user_id", table_name="events")
    op.drop_table("events")
    op.drop_table("user_themes")
    op.drop_index("ix_dungeon_progress_dungeon_id", table_name="dungeon_progress")
    op.drop_index("ix_dungeon_progress_user_id", table_name="dungeon_progress")
    op.drop_table("dungeon_progress")
    op.drop_index("ix_dungeon_missions_dungeon_id", table_name="dungeon_missions")
    op.drop_table("dungeon_missions")
    op.drop_table("dungeons")
    op.drop_table("guild_raid_participants")
    op.drop_index("ix_guild_raids_created_at", table_name="guild_raids")
    op.drop_index("ix_guild_raids_status", table_name="guild_raids")
    op.drop_index("ix_guild_raids_guild_id", table_name="guild_raids")
    op.drop_table("guild_raids")
    op.drop_index("ix_guild_upgrades_expires_at", table_name="guild_upgrades")
    op.drop_table("guild_upgrades")
    op.drop_table("guild_members")
    op.drop_table("guilds")
    op.drop_index("uq_user_pets_one_active", table_name="user_pets")
    op.drop_index("ix_user_pets_user_id", table_name="user_pets")
    op.drop_table("user_pets")
    op.drop_index(
        "ix_completion_records_completed_at", table_name="completion_records"
    )
    op.drop_index("ix_completion_records_user_id", table_name="completion_records")
    op.drop_table("completion_records")
    op.drop_table("daily_tasks")
    op.drop_index("ix_tasks_user_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_table("user_progress")
    op.drop_table("users")

"""Daily showcase origin table

Revision ID: 0001
Revises:
Create Date: 2025-01-01 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Trigger function (auto-update updated_at) ─────────────────────────────
    op.execute("""
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
          NEW.updated_at = now();
          RETURN NEW;
        END;
        $$
    """)

    # ── daily_showcase ────────────────────────────────────────────────────────
    # One row per rollover-timezone day; the refresh job upserts on date.
    op.create_table(
        "daily_showcase",
        sa.Column("date", sa.Date, primary_key=True,
                  comment="Rollover-timezone calendar day"),
        sa.Column("movies", JSONB, nullable=False,
                  server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "jsonb_typeof(movies) = 'array'",
            name="chk_daily_showcase_movies_array",
        ),
    )
    op.execute("""
        CREATE TRIGGER trg_daily_showcase_updated_at
        BEFORE UPDATE ON daily_showcase
        FOR EACH ROW EXECUTE FUNCTION set_updated_at()
    """)

    # Anonymous readers (the public site) may read; only the service role writes.
    op.execute("ALTER TABLE daily_showcase ENABLE ROW LEVEL SECURITY")
    op.execute("""
        DO $$
        BEGIN
          IF EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'anon') THEN
            CREATE POLICY daily_showcase_public_read ON daily_showcase
              FOR SELECT TO anon USING (true);
          END IF;
        END
        $$
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_daily_showcase_updated_at ON daily_showcase")
    op.drop_table("daily_showcase")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at()")

"""Worlds table with owner-scoped RLS.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE TABLE worlds (
            owner_id TEXT NOT NULL,
            id TEXT NOT NULL,
            name TEXT NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (owner_id, id)
        );
    """)

    op.execute("CREATE INDEX idx_worlds_owner_position ON worlds(owner_id, position)")

    op.execute("ALTER TABLE worlds ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE worlds FORCE ROW LEVEL SECURITY")

    # Empty app.owner_id (system_conn) sees every row; otherwise only the owner's.
    op.execute("""
        CREATE POLICY worlds_owner_access
        ON worlds
        FOR ALL
        USING (
            NULLIF(current_setting('app.owner_id', true), '') IS NULL
            OR owner_id = current_setting('app.owner_id', true)
        )
        WITH CHECK (
            NULLIF(current_setting('app.owner_id', true), '') IS NULL
            OR owner_id = current_setting('app.owner_id', true)
        );
    """)


def downgrade():
    op.execute("DROP POLICY IF EXISTS worlds_owner_access ON worlds")
    op.execute("DROP TABLE IF EXISTS worlds")

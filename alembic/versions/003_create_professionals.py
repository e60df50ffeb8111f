"""003: create professionals table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE professionals (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id             UUID            NOT NULL REFERENCES users(id),
            display_name        VARCHAR(128)    NOT NULL,
            hourly_rate_cents   BIGINT          NOT NULL,
            cut_bps             INTEGER,
            payout_account_ref  VARCHAR(128),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_professionals_user UNIQUE (user_id),
            CONSTRAINT ck_professionals_rate CHECK (hourly_rate_cents > 0),
            CONSTRAINT ck_professionals_cut CHECK (cut_bps IS NULL OR cut_bps BETWEEN 0 AND 10000)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_professionals_updated_at
            BEFORE UPDATE ON professionals
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON COLUMN professionals.cut_bps IS 'Overrides the platform cut when set';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS professionals CASCADE;")

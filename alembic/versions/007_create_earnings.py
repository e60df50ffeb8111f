"""007: create earnings and platform_settings tables

Revision ID: 007
Revises: 006
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE earnings (
            id                  BIGSERIAL       PRIMARY KEY,
            professional_id     UUID            NOT NULL REFERENCES professionals(id),
            appointment_id      UUID            NOT NULL REFERENCES appointments(id),
            cycle_id            UUID            NOT NULL REFERENCES payout_cycles(id),
            gross_cents         BIGINT          NOT NULL,
            platform_fee_bps    INTEGER         NOT NULL,
            platform_fee_cents  BIGINT          NOT NULL,
            session_start       TIMESTAMPTZ     NOT NULL,
            session_end         TIMESTAMPTZ     NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_earnings_appointment UNIQUE (appointment_id),
            CONSTRAINT ck_earnings_gross CHECK (gross_cents >= 0),
            CONSTRAINT ck_earnings_fee CHECK (
                platform_fee_cents >= 0 AND platform_fee_cents <= gross_cents
            ),
            CONSTRAINT ck_earnings_bps CHECK (platform_fee_bps BETWEEN 0 AND 10000)
        );
    """)
    op.execute("CREATE INDEX idx_earnings_cycle_professional ON earnings (cycle_id, professional_id);")
    op.execute("CREATE INDEX idx_earnings_professional_id ON earnings (professional_id, id DESC);")
    op.execute("COMMENT ON TABLE earnings IS 'Append-only: one row per confirmed session, never updated';")

    op.execute("""
        CREATE TABLE platform_settings (
            key             VARCHAR(64)     PRIMARY KEY,
            value           TEXT            NOT NULL,
            updated_by      UUID            REFERENCES users(id),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_platform_settings_updated_at
            BEFORE UPDATE ON platform_settings
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS platform_settings CASCADE;")
    op.execute("DROP TABLE IF EXISTS earnings CASCADE;")

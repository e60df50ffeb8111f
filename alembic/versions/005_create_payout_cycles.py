"""005: create payout_cycles table

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE payout_cycles (
            id                      UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            start_date              TIMESTAMPTZ     NOT NULL,
            end_date                TIMESTAMPTZ     NOT NULL,
            cutoff_at               TIMESTAMPTZ     NOT NULL,
            status                  VARCHAR(20)     NOT NULL DEFAULT 'active',
            processing_started_at   TIMESTAMPTZ,
            completed_at            TIMESTAMPTZ,
            failure_reason          TEXT,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payout_cycles_window UNIQUE (start_date, end_date),
            CONSTRAINT ck_payout_cycles_window CHECK (end_date > start_date),
            CONSTRAINT ck_payout_cycles_cutoff CHECK (cutoff_at >= end_date),
            CONSTRAINT ck_payout_cycles_status CHECK (
                status IN ('active', 'processing', 'completed', 'failed')
            )
        );
    """)
    op.execute("CREATE INDEX idx_payout_cycles_status_cutoff ON payout_cycles (status, cutoff_at);")
    op.execute("""
        CREATE TRIGGER trg_payout_cycles_updated_at
            BEFORE UPDATE ON payout_cycles
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE payout_cycles IS 'Billing windows [start_date, end_date); one row per window';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS payout_cycles CASCADE;")

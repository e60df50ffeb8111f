"""008: create payouts table

Revision ID: 008
Revises: 007
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "008"
down_revision: Union[str, None] = "007"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE payouts (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            professional_id     UUID            NOT NULL REFERENCES professionals(id),
            cycle_id            UUID            NOT NULL REFERENCES payout_cycles(id),
            amount_cents        BIGINT          NOT NULL,
            gross_cents         BIGINT          NOT NULL,
            fee_cents           BIGINT          NOT NULL,
            earnings_count      INTEGER         NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'pending',
            attempt_count       INTEGER         NOT NULL DEFAULT 0,
            gateway_reference   VARCHAR(128),
            failure_reason      TEXT,
            last_attempt_at     TIMESTAMPTZ,
            completed_at        TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payouts_professional_cycle UNIQUE (professional_id, cycle_id),
            CONSTRAINT ck_payouts_amount CHECK (amount_cents = gross_cents - fee_cents),
            CONSTRAINT ck_payouts_status CHECK (
                status IN ('pending', 'processing', 'completed', 'failed')
            )
        );
    """)
    op.execute("CREATE INDEX idx_payouts_cycle_status ON payouts (cycle_id, status);")
    op.execute("CREATE INDEX idx_payouts_status ON payouts (status);")
    op.execute("""
        CREATE TRIGGER trg_payouts_updated_at
            BEFORE UPDATE ON payouts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS payouts CASCADE;")

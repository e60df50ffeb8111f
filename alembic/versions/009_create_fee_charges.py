"""009: create fee_charges and professional_payment_methods tables

Revision ID: 009
Revises: 008
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "009"
down_revision: Union[str, None] = "008"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE fee_charges (
            id                      UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            professional_id         UUID            NOT NULL REFERENCES professionals(id),
            cycle_id                UUID            NOT NULL REFERENCES payout_cycles(id),
            amount_cents            BIGINT          NOT NULL,
            charged_cents           BIGINT          NOT NULL DEFAULT 0,
            status                  VARCHAR(20)     NOT NULL DEFAULT 'pending',
            attempt_count           INTEGER         NOT NULL DEFAULT 0,
            consecutive_failures    INTEGER         NOT NULL DEFAULT 0,
            gateway_reference       VARCHAR(128),
            failure_code            VARCHAR(64),
            failure_reason          TEXT,
            last_attempt_at         TIMESTAMPTZ,
            next_retry_at           TIMESTAMPTZ,
            charged_at              TIMESTAMPTZ,
            waived_at               TIMESTAMPTZ,
            waived_by               UUID            REFERENCES users(id),
            waived_reason           TEXT,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_fee_charges_professional_cycle UNIQUE (professional_id, cycle_id),
            CONSTRAINT ck_fee_charges_amount CHECK (amount_cents > 0),
            CONSTRAINT ck_fee_charges_charged CHECK (
                charged_cents >= 0 AND charged_cents <= amount_cents
            ),
            CONSTRAINT ck_fee_charges_status CHECK (
                status IN ('pending', 'processing', 'completed', 'failed', 'partially_paid', 'waived')
            )
        );
    """)
    op.execute("CREATE INDEX idx_fee_charges_cycle_status ON fee_charges (cycle_id, status);")
    op.execute("CREATE INDEX idx_fee_charges_professional ON fee_charges (professional_id, status);")
    op.execute("""
        CREATE INDEX idx_fee_charges_retry ON fee_charges (next_retry_at)
            WHERE status IN ('failed', 'partially_paid');
    """)
    op.execute("""
        CREATE TRIGGER trg_fee_charges_updated_at
            BEFORE UPDATE ON fee_charges
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE professional_payment_methods (
            professional_id     UUID            PRIMARY KEY REFERENCES professionals(id),
            card_brand          VARCHAR(32),
            card_last4          VARCHAR(4),
            card_exp_month      SMALLINT,
            card_exp_year       SMALLINT,
            gateway_token       VARCHAR(128),
            is_active           BOOLEAN         NOT NULL DEFAULT FALSE,
            is_blocked          BOOLEAN         NOT NULL DEFAULT FALSE,
            blocked_reason      TEXT,
            blocked_at          TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_payment_methods_exp_month CHECK (
                card_exp_month IS NULL OR card_exp_month BETWEEN 1 AND 12
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_payment_methods_blocked ON professional_payment_methods (blocked_at)
            WHERE is_blocked = TRUE;
    """)
    op.execute("""
        CREATE TRIGGER trg_professional_payment_methods_updated_at
            BEFORE UPDATE ON professional_payment_methods
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS professional_payment_methods CASCADE;")
    op.execute("DROP TABLE IF EXISTS fee_charges CASCADE;")

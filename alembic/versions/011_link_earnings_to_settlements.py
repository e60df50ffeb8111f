"""011: link earnings to the payout and fee charge that settle them

Revision ID: 011
Revises: 010
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "011"
down_revision: Union[str, None] = "010"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Amount already moved to the professional; retries send only the remainder
    op.execute("ALTER TABLE payouts ADD COLUMN paid_cents BIGINT NOT NULL DEFAULT 0;")
    op.execute("""
        ALTER TABLE payouts ADD CONSTRAINT ck_payouts_paid CHECK (
            paid_cents >= 0 AND paid_cents <= GREATEST(amount_cents, 0)
        );
    """)

    # Earnings recorded after a cycle was paid get a top-up row with the next number
    op.execute("ALTER TABLE payouts ADD COLUMN sequence_no INTEGER NOT NULL DEFAULT 1;")
    op.execute("ALTER TABLE payouts DROP CONSTRAINT uq_payouts_professional_cycle;")
    op.execute("""
        ALTER TABLE payouts ADD CONSTRAINT uq_payouts_professional_cycle_seq
            UNIQUE (professional_id, cycle_id, sequence_no);
    """)
    op.execute("ALTER TABLE fee_charges ADD COLUMN sequence_no INTEGER NOT NULL DEFAULT 1;")
    op.execute("ALTER TABLE fee_charges DROP CONSTRAINT uq_fee_charges_professional_cycle;")
    op.execute("""
        ALTER TABLE fee_charges ADD CONSTRAINT uq_fee_charges_professional_cycle_seq
            UNIQUE (professional_id, cycle_id, sequence_no);
    """)

    op.execute("ALTER TABLE earnings ADD COLUMN payout_id UUID REFERENCES payouts(id);")
    op.execute("ALTER TABLE earnings ADD COLUMN fee_charge_id UUID REFERENCES fee_charges(id);")
    op.execute("""
        UPDATE earnings e
        SET payout_id = p.id
        FROM payouts p
        WHERE p.professional_id = e.professional_id AND p.cycle_id = e.cycle_id;
    """)
    op.execute("""
        UPDATE earnings e
        SET fee_charge_id = f.id
        FROM fee_charges f
        WHERE f.professional_id = e.professional_id
          AND f.cycle_id = e.cycle_id
          AND e.platform_fee_cents > 0;
    """)
    op.execute("""
        CREATE INDEX idx_earnings_unpaid ON earnings (cycle_id)
            WHERE payout_id IS NULL;
    """)
    op.execute(
        "COMMENT ON TABLE earnings IS "
        "'One row per confirmed session; amounts never change, settlement links are set once';"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_earnings_unpaid;")
    op.execute("ALTER TABLE earnings DROP COLUMN IF EXISTS fee_charge_id;")
    op.execute("ALTER TABLE earnings DROP COLUMN IF EXISTS payout_id;")
    op.execute(
        "ALTER TABLE fee_charges DROP CONSTRAINT IF EXISTS uq_fee_charges_professional_cycle_seq;"
    )
    op.execute("ALTER TABLE fee_charges DROP COLUMN IF EXISTS sequence_no;")
    op.execute("""
        ALTER TABLE fee_charges ADD CONSTRAINT uq_fee_charges_professional_cycle
            UNIQUE (professional_id, cycle_id);
    """)
    op.execute("ALTER TABLE payouts DROP CONSTRAINT IF EXISTS uq_payouts_professional_cycle_seq;")
    op.execute("ALTER TABLE payouts DROP COLUMN IF EXISTS sequence_no;")
    op.execute("""
        ALTER TABLE payouts ADD CONSTRAINT uq_payouts_professional_cycle
            UNIQUE (professional_id, cycle_id);
    """)
    op.execute("ALTER TABLE payouts DROP CONSTRAINT IF EXISTS ck_payouts_paid;")
    op.execute("ALTER TABLE payouts DROP COLUMN IF EXISTS paid_cents;")
    op.execute(
        "COMMENT ON TABLE earnings IS 'Append-only: one row per confirmed session, never updated';"
    )

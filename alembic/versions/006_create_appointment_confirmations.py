"""006: create appointment_confirmations table

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE appointment_confirmations (
            id                          UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            appointment_id              UUID            NOT NULL REFERENCES appointments(id),
            client_id                   UUID            NOT NULL REFERENCES users(id),
            professional_id             UUID            NOT NULL REFERENCES professionals(id),
            professional_user_id        UUID            NOT NULL REFERENCES users(id),
            client_confirmed            BOOLEAN         NOT NULL DEFAULT FALSE,
            client_confirmed_at         TIMESTAMPTZ,
            professional_confirmed      BOOLEAN         NOT NULL DEFAULT FALSE,
            professional_confirmed_at   TIMESTAMPTZ,
            resolution                  VARCHAR(30)     NOT NULL DEFAULT 'pending',
            auto_confirm_deadline       TIMESTAMPTZ     NOT NULL,
            auto_resolved_at            TIMESTAMPTZ,
            dispute_resolved_at         TIMESTAMPTZ,
            resolution_notes            TEXT,
            resolved_by                 UUID            REFERENCES users(id),
            reminder_sent_at            TIMESTAMPTZ,
            created_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_confirmations_appointment UNIQUE (appointment_id),
            CONSTRAINT ck_confirmations_resolution CHECK (
                resolution IN (
                    'pending', 'client_confirmed', 'professional_confirmed', 'both_confirmed',
                    'disputed', 'admin_confirmed', 'admin_cancelled', 'auto_confirmed'
                )
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_confirmations_open_deadline
            ON appointment_confirmations (auto_confirm_deadline)
            WHERE resolution IN ('pending', 'client_confirmed', 'professional_confirmed');
    """)
    op.execute("CREATE INDEX idx_confirmations_client ON appointment_confirmations (client_id);")
    op.execute(
        "CREATE INDEX idx_confirmations_professional_user "
        "ON appointment_confirmations (professional_user_id);"
    )
    op.execute("""
        CREATE TRIGGER trg_appointment_confirmations_updated_at
            BEFORE UPDATE ON appointment_confirmations
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS appointment_confirmations CASCADE;")

"""004: create availability_slots and appointments tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE availability_slots (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            professional_id     UUID            NOT NULL REFERENCES professionals(id),
            start_time          TIMESTAMPTZ     NOT NULL,
            end_time            TIMESTAMPTZ     NOT NULL,
            is_booked           BOOLEAN         NOT NULL DEFAULT FALSE,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_slots_window CHECK (end_time > start_time)
        );
    """)
    op.execute(
        "CREATE INDEX idx_slots_professional_start ON availability_slots (professional_id, start_time);"
    )
    op.execute("""
        CREATE TRIGGER trg_availability_slots_updated_at
            BEFORE UPDATE ON availability_slots
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE appointments (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            client_id           UUID            NOT NULL REFERENCES users(id),
            professional_id     UUID            NOT NULL REFERENCES professionals(id),
            slot_id             UUID            REFERENCES availability_slots(id),
            start_time          TIMESTAMPTZ     NOT NULL,
            end_time            TIMESTAMPTZ     NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'upcoming',
            rate_cents          BIGINT          NOT NULL,
            adjusted_rate_cents BIGINT,
            dispute_status      VARCHAR(30)     NOT NULL DEFAULT 'none',
            dispute_reason      TEXT,
            disputed_by         UUID            REFERENCES users(id),
            payment_reference   VARCHAR(128),
            venue               TEXT,
            admin_notes         TEXT,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_appointments_window CHECK (end_time > start_time),
            CONSTRAINT ck_appointments_status CHECK (
                status IN ('upcoming', 'completed', 'cancelled', 'disputed')
            ),
            CONSTRAINT ck_appointments_dispute_status CHECK (
                dispute_status IN ('none', 'open', 'resolved_occurred', 'resolved_not_occurred')
            ),
            CONSTRAINT ck_appointments_rate CHECK (rate_cents >= 0),
            CONSTRAINT ck_appointments_adjusted_rate CHECK (
                adjusted_rate_cents IS NULL OR adjusted_rate_cents >= 0
            )
        );
    """)
    op.execute("CREATE INDEX idx_appointments_status_end ON appointments (status, end_time);")
    op.execute("CREATE INDEX idx_appointments_professional ON appointments (professional_id);")
    op.execute("CREATE INDEX idx_appointments_client ON appointments (client_id);")
    op.execute("""
        CREATE TRIGGER trg_appointments_updated_at
            BEFORE UPDATE ON appointments
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE appointments IS 'Booked sessions; never deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS appointments CASCADE;")
    op.execute("DROP TABLE IF EXISTS availability_slots CASCADE;")

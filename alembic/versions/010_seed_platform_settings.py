"""010: seed platform settings

Revision ID: 010
Revises: 009
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "010"
down_revision: Union[str, None] = "009"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        INSERT INTO platform_settings (key, value)
        VALUES ('platform_cut_bps', '2000')
        ON CONFLICT (key) DO NOTHING;
    """)


def downgrade() -> None:
    op.execute("DELETE FROM platform_settings WHERE key = 'platform_cut_bps';")

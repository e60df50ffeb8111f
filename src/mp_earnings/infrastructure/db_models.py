"""SQLAlchemy ORM models for mp_earnings.

These map to existing tables created by Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.mp_common.database import Base


class EarningORM(Base):
    __tablename__ = "earnings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    professional_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id"), nullable=False
    )
    appointment_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("appointments.id"), unique=True, nullable=False
    )
    cycle_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("payout_cycles.id"), nullable=False
    )
    gross_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_fee_bps: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    session_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    session_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Set once, by the payout / fee charge creation that consumed this row
    payout_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("payouts.id")
    )
    fee_charge_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("fee_charges.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PlatformSettingORM(Base):
    __tablename__ = "platform_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

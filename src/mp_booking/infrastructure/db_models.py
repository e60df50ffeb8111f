"""SQLAlchemy ORM models for mp_booking.

These map to existing tables created by Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.mp_common.database import Base


class ProfessionalORM(Base):
    __tablename__ = "professionals"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), unique=True, nullable=False
    )
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    hourly_rate_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cut_bps: Mapped[int | None] = mapped_column(Integer)
    payout_account_ref: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AvailabilitySlotORM(Base):
    __tablename__ = "availability_slots"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    professional_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_booked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AppointmentORM(Base):
    __tablename__ = "appointments"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    client_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    professional_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id"), nullable=False
    )
    slot_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("availability_slots.id")
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="upcoming")
    rate_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    adjusted_rate_cents: Mapped[int | None] = mapped_column(BigInteger)
    dispute_status: Mapped[str] = mapped_column(String(30), nullable=False, default="none")
    dispute_reason: Mapped[str | None] = mapped_column(Text)
    disputed_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    payment_reference: Mapped[str | None] = mapped_column(String(128))
    venue: Mapped[str | None] = mapped_column(Text)
    admin_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

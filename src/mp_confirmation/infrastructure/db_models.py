"""SQLAlchemy ORM models for mp_confirmation.

These map to existing tables created by Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.mp_common.database import Base


class AppointmentConfirmationORM(Base):
    __tablename__ = "appointment_confirmations"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    appointment_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("appointments.id"), unique=True, nullable=False
    )
    client_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    professional_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id"), nullable=False
    )
    professional_user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    client_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    client_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    professional_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    professional_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolution: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    auto_confirm_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    auto_resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispute_resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    resolved_by: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id")
    )
    reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

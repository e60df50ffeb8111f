"""Seed helpers for integration tests.

Users are provisioned by the identity service in production; here they are
inserted directly and authenticated with locally minted tokens.
"""

import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import text

from src.mp_common.database import async_session_factory
from src.mp_gateway.auth.jwt_handler import create_access_token


async def insert_user(*, is_admin: bool = False) -> str:
    uid = uuid.uuid4().hex[:8]
    async with async_session_factory() as session:
        result = await session.execute(
            text("""
                INSERT INTO users (email, display_name, is_admin)
                VALUES (:email, :name, :is_admin)
                RETURNING id
            """),
            {"email": f"user_{uid}@example.com", "name": f"user_{uid}", "is_admin": is_admin},
        )
        user_id = str(result.scalar_one())
        await session.commit()
    return user_id


async def insert_professional(user_id: str, hourly_rate_cents: int = 10000) -> str:
    async with async_session_factory() as session:
        result = await session.execute(
            text("""
                INSERT INTO professionals (user_id, display_name, hourly_rate_cents)
                VALUES (:user_id, 'Integration Pro', :rate)
                RETURNING id
            """),
            {"user_id": user_id, "rate": hourly_rate_cents},
        )
        professional_id = str(result.scalar_one())
        await session.commit()
    return professional_id


async def insert_slot(professional_id: str, hours_from_now: int = 48) -> str:
    start = datetime.now(UTC) + timedelta(hours=hours_from_now)
    async with async_session_factory() as session:
        result = await session.execute(
            text("""
                INSERT INTO availability_slots (professional_id, start_time, end_time)
                VALUES (:professional_id, :start, :end)
                RETURNING id
            """),
            {"professional_id": professional_id, "start": start, "end": start + timedelta(hours=1)},
        )
        slot_id = str(result.scalar_one())
        await session.commit()
    return slot_id


def bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}



def far_past_window() -> tuple[datetime, datetime, datetime]:
    """A (start, end, cutoff) week no other test or run is likely to use."""
    start = datetime(1990, 1, 1, tzinfo=UTC) + timedelta(
        minutes=uuid.uuid4().int % (20 * 365 * 24 * 60)
    )
    end = start + timedelta(days=7)
    return start, end, end + timedelta(hours=72)


async def insert_cycle(status: str = "active") -> tuple[str, datetime]:
    """Returns (cycle_id, start_date)."""
    start, end, cutoff = far_past_window()
    async with async_session_factory() as session:
        result = await session.execute(
            text("""
                INSERT INTO payout_cycles (start_date, end_date, cutoff_at, status)
                VALUES (:start, :end, :cutoff, :status)
                RETURNING id
            """),
            {"start": start, "end": end, "cutoff": cutoff, "status": status},
        )
        cycle_id = str(result.scalar_one())
        await session.commit()
    return cycle_id, start


async def insert_appointment(
    client_id: str,
    professional_id: str,
    start: datetime,
    rate_cents: int = 15000,
    status: str = "completed",
) -> str:
    async with async_session_factory() as session:
        result = await session.execute(
            text("""
                INSERT INTO appointments
                    (client_id, professional_id, start_time, end_time, status, rate_cents)
                VALUES (:client_id, :professional_id, :start, :end, :status, :rate)
                RETURNING id
            """),
            {
                "client_id": client_id,
                "professional_id": professional_id,
                "start": start,
                "end": start + timedelta(hours=1),
                "status": status,
                "rate": rate_cents,
            },
        )
        appointment_id = str(result.scalar_one())
        await session.commit()
    return appointment_id


async def insert_earning(
    client_id: str,
    professional_id: str,
    cycle_id: str,
    session_start: datetime,
    gross_cents: int = 15000,
    fee_bps: int = 2000,
) -> str:
    """One completed appointment and its earning inside the given cycle."""
    appointment_id = await insert_appointment(
        client_id, professional_id, session_start, rate_cents=gross_cents
    )
    fee_cents = (gross_cents * fee_bps + 5000) // 10000
    async with async_session_factory() as session:
        await session.execute(
            text("""
                INSERT INTO earnings
                    (professional_id, appointment_id, cycle_id, gross_cents,
                     platform_fee_bps, platform_fee_cents, session_start, session_end)
                VALUES
                    (:professional_id, :appointment_id, :cycle_id, :gross,
                     :bps, :fee, :start, :end)
            """),
            {
                "professional_id": professional_id,
                "appointment_id": appointment_id,
                "cycle_id": cycle_id,
                "gross": gross_cents,
                "bps": fee_bps,
                "fee": fee_cents,
                "start": session_start,
                "end": session_start + timedelta(hours=1),
            },
        )
        await session.commit()
    return appointment_id


async def make_payable(professional_id: str) -> None:
    """Give the professional a payout account and a usable card."""
    async with async_session_factory() as session:
        await session.execute(
            text("UPDATE professionals SET payout_account_ref = :ref WHERE id = :id"),
            {"ref": f"acct_{professional_id[:8]}", "id": professional_id},
        )
        await session.execute(
            text("""
                INSERT INTO professional_payment_methods
                    (professional_id, card_brand, card_last4, card_exp_month,
                     card_exp_year, gateway_token, is_active)
                VALUES (:id, 'visa', '4242', 12, 2099, 'tok_integration', TRUE)
            """),
            {"id": professional_id},
        )
        await session.commit()

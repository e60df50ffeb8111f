"""Alembic environment.

Migrations are hand-written raw SQL. The ORM mirrors are registered on
Base.metadata only so `alembic check` can report drift between them and the
migrated schema; nothing is autogenerated.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.ext.asyncio import create_async_engine

from config.settings import settings
from src.mp_booking.infrastructure import db_models as _booking  # noqa: F401
from src.mp_common.database import Base
from src.mp_confirmation.infrastructure import db_models as _confirmation  # noqa: F401
from src.mp_cycle.infrastructure import db_models as _cycle  # noqa: F401
from src.mp_earnings.infrastructure import db_models as _earnings  # noqa: F401
from src.mp_fee.infrastructure import db_models as _fee  # noqa: F401
from src.mp_gateway.user import db_models as _users  # noqa: F401
from src.mp_payout.infrastructure import db_models as _payout  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit the migration SQL without a database connection."""
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):  # type: ignore[no-untyped-def]
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations against the configured database with an async engine."""
    connectable = create_async_engine(settings.DATABASE_URL)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

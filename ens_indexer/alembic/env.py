import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

from ens_indexer.app.config import settings
from ens_indexer.app.infrastructure.db.db_base import BaseDB
from ens_indexer.app.infrastructure.db.engine import create_app_async_engine
from ens_indexer.app.infrastructure.db.models import (  # noqa: F401
    audit,
    ens_names,
    indexer_state,
    job_queue,
    marketplace,
    transactions,
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = BaseDB.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_app_async_engine()
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

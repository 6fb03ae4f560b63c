from __future__ import annotations

import asyncio
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

print(f"[alembic-env] loaded: {__file__}", file=sys.stderr)

# Alembic Config object
config = context.config

# Logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

import circulation.db.models  # noqa: E402,F401  registers every table
from circulation.db.base import Base  # noqa: E402

target_metadata = Base.metadata


def _cli_sqlalchemy_url_override() -> str | None:
    x = context.get_x_argument(as_dictionary=True)
    return x.get("sqlalchemy_url") or x.get("url")


def _choose_main_url() -> str:
    override = _cli_sqlalchemy_url_override()
    if override:
        return override
    for k in ("DATABASE_URL", "ALEMBIC_DATABASE_URL", "ASYNC_DATABASE_URL"):
        v = os.getenv(k)
        if v:
            return v
    from circulation.core.config import settings

    return settings.DATABASE_URL


def run_migrations_offline() -> None:
    context.configure(
        url=_choose_main_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def _do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _choose_main_url()
    connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    async with connectable.connect() as connection:
        await connection.run_sync(_do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

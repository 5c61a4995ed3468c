"""Alembic environment for the FollowUpX scheduling tables.

Online runs reuse the application's async engine builder; ``-x url=...`` points
a run at another database (e.g. ``sqlite+aiosqlite:///local.db``).
"""

import asyncio
from logging.config import fileConfig

from alembic import context

from followupx.config import get_settings
from followupx.db.session import Base, create_engine
from followupx.models import *  # noqa: F401, F403

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def override_url() -> str | None:
    return context.get_x_argument(as_dictionary=True).get("url")


def async_url() -> str:
    return override_url() or get_settings().database_url


def sync_url() -> str:
    url = override_url()
    if url is None:
        return get_settings().database_url_sync
    return url.replace("+aiomysql", "+pymysql").replace("+aiosqlite", "")


def configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    configure(url=sync_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def apply(connection) -> None:
    # SQLite cannot ALTER most columns in place.
    configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_engine(async_url())
    try:
        async with engine.connect() as connection:
            await connection.run_sync(apply)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

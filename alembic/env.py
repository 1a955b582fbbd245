"""Alembic environment — DonutDemand ledger, settings and giveaway tables.

The bot reads ``DATABASE_URL`` from ``.env``; migrations use the same
variable so ``alembic upgrade head`` targets the database the bot runs on.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

# Same .env the bot loads in donutdemand.bot.__main__
load_dotenv()

config = context.config

# DATABASE_URL wins over the placeholder in alembic.ini
database_url = os.getenv("DATABASE_URL")
if database_url:
    config.set_main_option("sqlalchemy.url", database_url)

# Logger levels come from alembic.ini
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Importing the models module registers every table on Base.metadata
from donutdemand.database.models import Base  # noqa: E402

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Render the migration as SQL (``alembic upgrade head --sql``)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply pending revisions over a throwaway connection."""
    # NullPool: a migration run opens exactly one connection
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            # Snowflake ids are BigInteger; autogenerate must notice an
            # Integer that slipped in.
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

"""Alembic migration environment."""

from logging.config import fileConfig
import re
import sys

from sqlalchemy import engine_from_config, pool
from alembic import context

from manifest_guard.core.config import settings
from manifest_guard.core.database import Base
import manifest_guard.models  # noqa: F401  registers every table on Base.metadata

config = context.config

database_url = settings.DATABASE_URL
if not database_url:
    print("CRITICAL: DATABASE_URL is not set in environment or .env")
    sys.exit(255)
print(f"Using database URL (redacted): {re.sub(r':([^/@]+)@', ':****@', database_url)}")

# Alembic runs synchronously: map every PostgreSQL URL onto the psycopg v3 driver
if database_url.startswith("postgresql+asyncpg://"):
    sync_database_url = database_url.replace("+asyncpg", "+psycopg")
elif database_url.startswith("postgres://"):
    sync_database_url = database_url.replace("postgres://", "postgresql+psycopg://", 1)
elif database_url.startswith("postgresql://") and "+psycopg" not in database_url:
    sync_database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)
elif database_url.startswith("sqlite+aiosqlite://"):
    sync_database_url = database_url.replace("sqlite+aiosqlite://", "sqlite://", 1)
else:
    sync_database_url = database_url

config.set_main_option("sqlalchemy.url", sync_database_url.replace("%", "%%"))

# Logging config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

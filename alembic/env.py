# alembic/env.py
import os
import sys
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# Make holdings_engine importable when alembic runs from a source checkout.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
holdings_engine_path = os.path.join(project_root, 'src', 'libs', 'holdings-engine')
if holdings_engine_path not in sys.path:
    sys.path.insert(0, holdings_engine_path)

dotenv_path = os.path.join(project_root, '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)

# Importing the models registers both tables on Base.metadata.
from holdings_engine.database_models import Holding, Transaction  # noqa: E402,F401
from holdings_engine.db import get_sync_database_url  # noqa: E402
from holdings_engine.db_base import Base  # noqa: E402

target_metadata = Base.metadata


def get_db_url():
    """
    Alembic runs synchronously, so the URL must use a synchronous driver scheme.
    HOST_DATABASE_URL wins when migrations are run from outside the compose network.
    """
    url = os.environ.get("HOST_DATABASE_URL")
    if url:
        return url.replace("postgresql+asyncpg://", "postgresql://", 1)
    return get_sync_database_url()


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=get_db_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    engine_config = config.get_section(config.config_ini_section) or {}
    engine_config["sqlalchemy.url"] = get_db_url()

    connectable = engine_from_config(
        engine_config,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection, target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

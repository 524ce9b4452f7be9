import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# --- CUSTOM IMPORTS START ---
# 1. Add project root to path
sys.path.append(os.getcwd())

# 2. Import Settings and Models
from garagehub.config import get_settings
from garagehub.database import Base
from garagehub import models  # Registers models with SQLAlchemy
# --- CUSTOM IMPORTS END ---

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 3. Set MetaData
target_metadata = Base.metadata
settings = get_settings()

def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""

    # 4. The URL always comes from settings (env vars / .env)
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = settings.DATABASE_URL

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            # Partial unique indexes carry dialect-specific WHERE clauses
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

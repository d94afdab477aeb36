import os
from logging.config import fileConfig

from sqlalchemy import pool, create_engine
from alembic import context
from dotenv import load_dotenv

# .env sits at the repository root, one level above alembic/
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env'))

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)

DATABASE_URL = os.getenv("DATABASE_URL")
if DATABASE_URL:
    # ConfigParser treats % as interpolation
    config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))

# Registering the pipeline tables on Base.metadata enables autogenerate
from database.models import Base  # noqa: E402
from database import marketplace_models  # noqa: E402,F401

target_metadata = Base.metadata


def _database_url():
    if DATABASE_URL:
        return DATABASE_URL
    url = config.get_main_option("sqlalchemy.url")
    return url.replace("%%", "%") if url else url


def run_migrations_offline():
    """Emit the migration SQL without connecting."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run the migrations against a live connection."""
    connectable = create_engine(_database_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

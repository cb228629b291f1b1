from logging.config import fileConfig
from sqlalchemy import pool, create_engine
from alembic import context

# Import du Base SQLAlchemy et de tous les modèles pour remplir la MetaData
from edb.config import settings
from edb.db.session import Base
import edb.db.models  # noqa: F401

target_metadata = Base.metadata

# Chargement config Alembic
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def get_sync_url() -> str:
    url = config.get_main_option("sqlalchemy.url") or settings.DATABASE_URL
    # Transformer URL async en URL sync (enlever le driver async)
    return url.replace("+asyncpg", "").replace("+aiosqlite", "")


def run_migrations_offline() -> None:
    context.configure(
        url=get_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(
        get_sync_url(),
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

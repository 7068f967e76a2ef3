"""
Migration environment for the daily showcase origin table.

The database URL comes from cinema.core.config (DATABASE_URL), never from
alembic.ini. `prepend_sys_path = .` in alembic.ini puts backend/ on the path,
so run from there:

  cd backend
  alembic upgrade head
  alembic upgrade head --sql    # offline: print the DDL instead of applying it
"""
from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from alembic import context

from cinema.core.config import settings
from cinema.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Supabase ships its own schemas (auth, storage, ...); only ours is managed here.
MANAGED_SCHEMAS = {None, "public"}


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    if type_ == "table":
        return obj.schema in MANAGED_SCHEMAS and (not reflected or name in target_metadata.tables)
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(
        url=settings.DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(settings.DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

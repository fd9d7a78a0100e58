"""Alembic environment for the raw-SQL migrations under migrations/sql."""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# alembic.ini prepends the repository root to sys.path
from migrations.env_helpers import get_database_url

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _run(**configure_kwargs) -> None:
    # No SQLAlchemy models: autogenerate is unused
    context.configure(target_metadata=None, **configure_kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    """Emit the SQL to stdout (``alembic upgrade head --sql``)."""
    _run(url=get_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_online() -> None:
    options = dict(config.get_section(config.config_ini_section) or {})
    options["sqlalchemy.url"] = get_database_url()
    engine = engine_from_config(options, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        _run(connection=connection)


if context.is_offline_mode():
    run_offline()
else:
    run_online()

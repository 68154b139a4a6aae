import logging
import os

from alembic import context
from sqlalchemy import engine_from_config, pool

import signpost_workflow.models.load_database_models  # noqa: F401
from signpost_workflow.models.db import db

config = context.config

# Do not call fileConfig(config.config_file_name); the application owns log formatting.
for name in ("alembic", "alembic.runtime.migration"):
    lg = logging.getLogger(name)
    lg.handlers = []
    lg.propagate = True

target_metadata = db.Model.metadata

VERSION_TABLE = "alembic_version_signpost"


def get_url():
    """Get the database URL from the environment, falling back to alembic.ini."""
    url = os.environ.get("SIGNPOST_DATABASE_URI") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("Set SIGNPOST_DATABASE_URI for Alembic.")
    return url


def run_migrations_offline():
    """Emit SQL to stdout instead of connecting."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        version_table=VERSION_TABLE,
        literal_binds=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        {"sqlalchemy.url": get_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table=VERSION_TABLE,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

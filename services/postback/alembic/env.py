# services/postback/alembic/env.py

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool, text

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from database import DATABASE_URL, POSTBACK_SCHEMA, Base  # noqa: E402
import models  # noqa: E402,F401  (таблицы postbacks и trader_status)

config = context.config
config.set_main_option("sqlalchemy.url", DATABASE_URL)
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# На SQLite схем нет: POSTBACK_SCHEMA = None, version-таблица в default
OPTIONS = dict(
    target_metadata=Base.metadata,
    include_schemas=POSTBACK_SCHEMA is not None,
    version_table_schema=POSTBACK_SCHEMA,
    render_as_batch=True,
)
CREATE_SCHEMA = f'CREATE SCHEMA IF NOT EXISTS "{POSTBACK_SCHEMA}"'


def run_migrations() -> None:
    if context.is_offline_mode():
        context.configure(url=DATABASE_URL, literal_binds=True, **OPTIONS)
        with context.begin_transaction():
            if POSTBACK_SCHEMA is not None:
                context.execute(CREATE_SCHEMA)
            context.run_migrations()
        return

    engine = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.begin() as connection:
        if POSTBACK_SCHEMA is not None:
            connection.execute(text(CREATE_SCHEMA))
        context.configure(connection=connection, **OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


run_migrations()

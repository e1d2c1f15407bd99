# migrations/env.py
# =================================================================================
# 🗄️ Entorno Alembic del servicio de comunicación con invitados
# ---------------------------------------------------------------------------------
# - La URL sale de app.db (DATABASE_URL + política FORCE_DB); alembic.ini no la fija.
# - alembic.ini añade la raíz al sys.path (prepend_sys_path = .).
# - SQLite (tests y local) migra en modo batch: no soporta ALTER completos.
# =================================================================================

from logging.config import fileConfig

from alembic import context
from loguru import logger

from app.db import DATABASE_URL, Base, engine
import app.models  # noqa: F401  Registra bodas, familias, plantillas y eventos en Base.metadata.

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
COMPARE_OPTS = {"compare_type": True, "compare_server_default": True}


def run_migrations_offline() -> None:
    """Genera el SQL sin conectar (alembic upgrade --sql)."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with engine.connect() as connection:
        logger.info("Migrando esquema en dialecto '{}'", connection.dialect.name)
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
            **COMPARE_OPTS,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

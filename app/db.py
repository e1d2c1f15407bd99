# app/db.py
# =================================================================================
# 🗄️ CONEXIÓN A LA BASE DE DATOS
# ---------------------------------------------------------------------------------
# Engine, fábrica de sesiones y Base declarativa compartida por los modelos.
# SQLite se permite solo si FORCE_DB no exige PostgreSQL.
# =================================================================================

import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from loguru import logger


def _resolve_database_url() -> str:
    """Lee DATABASE_URL aplicando la política de FORCE_DB."""
    url = os.getenv("DATABASE_URL", "").strip()
    force_db = os.getenv("FORCE_DB", "postgres").strip().lower()

    # Placeholder de plataforma sin resolver (ej. "${{Postgres.DATABASE_URL}}").
    if url.startswith("${{") and url.endswith("}}"):
        logger.warning("DATABASE_URL parece un placeholder sin resolver: {}", url)
        url = ""

    if url:
        return url

    if force_db == "postgres":
        raise RuntimeError(
            "FATAL: DATABASE_URL no está disponible y FORCE_DB=postgres. "
            "Se aborta para evitar un fallback accidental a SQLite en producción."
        )

    logger.warning("DATABASE_URL está vacía. Usando fallback a SQLite local.")
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    return f"sqlite:///{os.path.join(project_root, 'wedding_comms.db')}"


DATABASE_URL = _resolve_database_url()

if DATABASE_URL.startswith("sqlite"):
    logger.info("DB in use → SQLite")
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},  # La cola en segundo plano usa otro hilo.
        pool_pre_ping=True,
    )
else:
    logger.info("DB in use → PostgreSQL (o no-SQLite)")
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Dependencia de FastAPI: una sesión por petición."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Sesión propia para tareas fuera del ciclo request/response (cola, scheduler)."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def log_db_path_on_startup() -> None:
    """Escribe en los logs el motor (y la ruta si es SQLite) al arrancar."""
    try:
        url = engine.url
        logger.info("DB driver in use → {}", url.drivername)
        if url.drivername == "sqlite":
            db_file = getattr(url, "database", None)
            abs_path = os.path.abspath(db_file) if db_file else "<memory>"
            logger.info("DB path → {} (abs={})", db_file, abs_path)
    except Exception as e:
        logger.warning("No se pudo resolver la información de la BD: {}", e)

"""Database connection and session management for calavail.

This module supports both:
- Local SQLite (default for dev)
- PostgreSQL (production) via `DATABASE_URL`
"""

import os
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from dotenv import load_dotenv

load_dotenv()

# Database URL - SQLite by default (local dev)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./calavail.db")

def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        # Helps avoid stale DB connections behind a pooler.
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # SQLite-specific setting required for FastAPI concurrency in a single process.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    # Postgres / other DBs: keep pooling conservative.
    engine_kwargs["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
    engine_kwargs["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    engine_kwargs["pool_timeout"] = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))
    return engine_kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


# Create engine (module-level singleton)
engine = build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def set_sqlite_pragmas(dbapi_conn, connection_record):
    """Set SQLite PRAGMA statements on connection for better concurrency and foreign key support."""
    if _is_sqlite_url(DATABASE_URL):
        cursor = dbapi_conn.cursor()
        # Enable foreign keys (required for referential integrity and cascades)
        cursor.execute("PRAGMA foreign_keys=ON")
        # Enable WAL mode for better concurrency (allows concurrent reads during writes)
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()

def _sqlite_table_has_column(dbapi_conn, table_name: str, column_name: str) -> bool:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute(f"PRAGMA table_info({table_name})")
        cols = [row[1] for row in cursor.fetchall()]  # row[1] is column name
        return column_name in cols
    finally:
        cursor.close()


def ensure_legacy_schema_compat(*, engine_override: Engine = None, database_url_override: str = None) -> None:
    """Ensure legacy SQLite DB files are compatible with the current schema.

    SQLite `create_all()` does not alter existing tables. Databases created before
    account time zones and optimistic locking existed are missing `users.time_zone`
    and `schedules.version`; patch those columns in place.
    """
    database_url = database_url_override or DATABASE_URL
    if not _is_sqlite_url(database_url):
        return

    use_engine = engine_override or engine

    # Use raw DB-API connection for PRAGMA and ALTER TABLE
    dbapi_conn = use_engine.raw_connection()
    try:
        if _sqlite_table_has_column(dbapi_conn, "users", "id") and not _sqlite_table_has_column(dbapi_conn, "users", "time_zone"):
            cursor = dbapi_conn.cursor()
            try:
                cursor.execute("ALTER TABLE users ADD COLUMN time_zone VARCHAR NOT NULL DEFAULT 'Europe/London'")
                dbapi_conn.commit()
            finally:
                cursor.close()

        if _sqlite_table_has_column(dbapi_conn, "schedules", "id") and not _sqlite_table_has_column(dbapi_conn, "schedules", "version"):
            cursor = dbapi_conn.cursor()
            try:
                cursor.execute("ALTER TABLE schedules ADD COLUMN version INTEGER NOT NULL DEFAULT 1")
                dbapi_conn.commit()
            finally:
                cursor.close()
    finally:
        dbapi_conn.close()


def get_db() -> Session:
    """Get database session (dependency for FastAPI)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database schema.

    - SQLite (default dev): use `create_all()` and apply minimal legacy patches.
    - PostgreSQL: prefer Alembic migrations for deterministic schema.
      Enable by setting `RUN_MIGRATIONS=true` in the environment.
    """
    # Register all tables on Base.metadata before create_all().
    from calavail.database import models  # noqa: F401

    run_migrations = os.getenv("RUN_MIGRATIONS", "False").lower() == "true"
    if run_migrations and not _is_sqlite_url(DATABASE_URL):
        # Run Alembic migrations in-process (non-interactive).
        from alembic import command
        from alembic.config import Config

        alembic_cfg = Config(os.getenv("ALEMBIC_INI", "alembic.ini"))
        # Ensure Alembic uses the same runtime DB URL.
        alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
        command.upgrade(alembic_cfg, "head")
        return

    # Default behavior: create schema directly.
    Base.metadata.create_all(bind=engine)
    ensure_legacy_schema_compat()

    # Minimal, idempotent Postgres compatibility patch for deployments that skip Alembic.
    if not _is_sqlite_url(DATABASE_URL):
        with engine.begin() as conn:
            conn.execute(
                text(
                    "ALTER TABLE users "
                    "ADD COLUMN IF NOT EXISTS time_zone VARCHAR NOT NULL DEFAULT 'Europe/London'"
                )
            )
            conn.execute(
                text(
                    "ALTER TABLE schedules "
                    "ADD COLUMN IF NOT EXISTS version INTEGER NOT NULL DEFAULT 1"
                )
            )
            conn.execute(
                text(
                    "CREATE UNIQUE INDEX IF NOT EXISTS uq_schedules_one_default_per_user "
                    "ON schedules (user_id) WHERE is_default"
                )
            )

import os


def test_get_engine_kwargs_sqlite_has_check_same_thread(monkeypatch):
    # Import lazily so monkeypatch can affect env usage deterministically.
    from calavail.database import database as db

    kwargs = db.get_engine_kwargs("sqlite:///./calavail.db")
    assert kwargs["connect_args"]["check_same_thread"] is False
    assert "pool_size" not in kwargs
    assert kwargs["pool_pre_ping"] is True


def test_get_engine_kwargs_postgres_reads_pool_settings(monkeypatch):
    from calavail.database import database as db

    monkeypatch.setenv("DB_POOL_SIZE", "8")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "2")
    monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "15")

    kwargs = db.get_engine_kwargs("postgresql+psycopg://u:p@localhost:5432/calavail")
    assert "connect_args" not in kwargs
    assert (kwargs["pool_size"], kwargs["max_overflow"], kwargs["pool_timeout"]) == (8, 2, 15)


def test_debug_enables_echo(monkeypatch):
    from calavail.database import database as db

    monkeypatch.setenv("DEBUG", "true")
    assert db.get_engine_kwargs("sqlite://")["echo"] is True
    monkeypatch.setenv("DEBUG", "false")
    assert db.get_engine_kwargs("sqlite://")["echo"] is False


def test_is_sqlite_url():
    from calavail.database import database as db

    assert db._is_sqlite_url("sqlite:///./calavail.db") is True
    assert db._is_sqlite_url("postgresql+psycopg://u:p@localhost/db") is False
    assert db._is_sqlite_url("") is False


def test_ensure_legacy_schema_adds_time_zone_and_version_columns(tmp_path):
    """Databases created before account time zones and schedule versioning are patched in place."""
    from sqlalchemy import create_engine, text
    from calavail.database import database as db

    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    engine = create_engine(url, connect_args={"check_same_thread": False})

    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE users (id VARCHAR PRIMARY KEY, email VARCHAR)"))
        conn.execute(text("INSERT INTO users (id, email) VALUES ('u1', 'u1@example.com')"))
        conn.execute(
            text(
                "CREATE TABLE schedules ("
                "id VARCHAR PRIMARY KEY,"
                "user_id VARCHAR,"
                "name VARCHAR,"
                "is_default BOOLEAN"
                ")"
            )
        )

    db.ensure_legacy_schema_compat(engine_override=engine, database_url_override=url)

    raw = engine.raw_connection()
    try:
        assert db._sqlite_table_has_column(raw, "users", "time_zone") is True
        assert db._sqlite_table_has_column(raw, "schedules", "version") is True
    finally:
        raw.close()

    with engine.connect() as conn:
        assert conn.execute(text("SELECT time_zone FROM users WHERE id = 'u1'")).scalar() == "Europe/London"

    # Running it again is a no-op
    db.ensure_legacy_schema_compat(engine_override=engine, database_url_override=url)
    engine.dispose()


def test_ensure_legacy_schema_skips_non_sqlite():
    from calavail.database import database as db

    # Must return before touching the engine
    db.ensure_legacy_schema_compat(engine_override=object(), database_url_override="postgresql://u:p@h/db")

from pathlib import Path

from sqlalchemy import create_engine, inspect, text

from tasklanes.database import database as db


class TestEngineOptions:
    def test_sqlite_allows_cross_thread_use_without_pool_sizing(self):
        options = db.engine_options("sqlite:///./tasklanes.db")

        assert options["connect_args"] == {"check_same_thread": False}
        assert options["pool_pre_ping"] is True
        assert not {"pool_size", "max_overflow", "pool_timeout"} & options.keys()

    def test_server_database_reads_pool_settings(self, monkeypatch):
        monkeypatch.setenv("DB_POOL_SIZE", "7")
        monkeypatch.setenv("DB_MAX_OVERFLOW", "3")
        monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "45")

        options = db.engine_options("postgresql+psycopg://u:p@localhost:5432/db")

        assert "connect_args" not in options
        assert (options["pool_size"], options["max_overflow"], options["pool_timeout"]) == (7, 3, 45)

    def test_echo_follows_debug(self, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")
        assert db.engine_options("sqlite://")["echo"] is True
        monkeypatch.setenv("DEBUG", "false")
        assert db.engine_options("sqlite://")["echo"] is False

    def test_is_sqlite(self):
        assert db.is_sqlite("sqlite:///x.db")
        assert not db.is_sqlite("postgresql://u@h/db")
        assert not db.is_sqlite(None)


class TestInitDb:
    def test_creates_documents_table(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'docs.db'}")
        db.init_db(engine)

        columns = {col["name"] for col in inspect(engine).get_columns("documents")}
        assert {"collection", "id", "user_id", "data", "created_at", "updated_at"} <= columns
        engine.dispose()

    def test_sqlite_migrations_flag_still_uses_create_all(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RUN_MIGRATIONS", "true")
        engine = create_engine(f"sqlite:///{tmp_path / 'docs.db'}")
        db.init_db(engine)

        assert "documents" in inspect(engine).get_table_names()
        engine.dispose()

    def test_make_engine_enables_wal_for_file_databases(self, tmp_path):
        engine = db.make_engine(f"sqlite:///{tmp_path / 'wal.db'}")
        with engine.connect() as conn:
            mode = conn.execute(text("PRAGMA journal_mode")).scalar()
        assert mode.lower() == "wal"
        engine.dispose()


class TestUpgradeSchema:
    def test_migrates_the_given_url_even_when_env_names_another(self, tmp_path, monkeypatch):
        target = tmp_path / "target.db"
        elsewhere = tmp_path / "elsewhere.db"
        monkeypatch.setenv("ALEMBIC_INI", str(Path(__file__).resolve().parents[1] / "alembic.ini"))
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{elsewhere}")

        db.upgrade_schema(f"sqlite:///{target}")

        engine = create_engine(f"sqlite:///{target}")
        assert "documents" in inspect(engine).get_table_names()
        engine.dispose()
        assert not elsewhere.exists()

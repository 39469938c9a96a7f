"""Tests for models.base engine options."""

from models.base import engine_options


class TestEngineOptions:
    def test_asyncpg_disables_statement_cache(self):
        options = engine_options("postgresql+asyncpg://redpaw:pw@db.supabase.test:6543/postgres")
        assert options["pool_pre_ping"] is True
        assert options["connect_args"] == {"statement_cache_size": 0}

    def test_other_postgres_driver_has_no_asyncpg_args(self):
        options = engine_options("postgresql+psycopg://redpaw@localhost/redpaw")
        assert options["pool_pre_ping"] is True
        assert "connect_args" not in options

    def test_sqlite(self):
        assert engine_options("sqlite+aiosqlite://") == {"echo": False}

"""test_db.py — database URL normalization and dev-mode init."""

import asyncio

from cpq.db import async_database_url, init_db


class TestDatabaseUrl:

    def test_plain_postgres_schemes_get_asyncpg(self):
        assert async_database_url("postgres://u:p@h:5432/db") == "postgresql+asyncpg://u:p@h:5432/db"
        assert async_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_explicit_driver_untouched(self):
        url = "postgresql+asyncpg://u:p@h/db"
        assert async_database_url(url) == url


class TestInitDb:

    def test_dev_mode_skips_schema_sync(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert asyncio.run(init_db()) is False

# tests/test_database.py
import pytest
from sqlalchemy import text

pytestmark = pytest.mark.anyio


async def test_readers_share_the_database(db):
    # a second reader would wait out the busy timeout and fail if reads
    # took the write lock
    async with db.acquire() as first:
        await first.execute(text("SELECT count(*) FROM products"))
        async with db.acquire() as second:
            result = await second.execute(text("SELECT count(*) FROM categories"))
            assert result.scalar() == 0


async def test_only_transactions_begin_immediate(db):
    async with db.acquire() as conn:
        assert "sqlite_begin" not in conn.sync_connection.get_execution_options()
    async with db.transaction() as conn:
        assert conn.sync_connection.get_execution_options()["sqlite_begin"] == "IMMEDIATE"

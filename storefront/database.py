import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional

from sqlalchemy import DateTime, bindparam, event, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.sql.elements import TextClause

# This file holds the connection provider every store is built on, plus the
# table definitions for the two supported engines.

logger = logging.getLogger(__name__)

TIMESTAMP = DateTime(timezone=True)
TIMESTAMP_COLUMNS = ("created_at", "updated_at", "expiry")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def statement(
    sql: str,
    params: Optional[Mapping[str, Any]] = None,
    columns: Iterable[str] = (),
) -> TextClause:
    """Build a textual statement with typed datetime parameters and results.

    Timestamps travel as ``DateTime(timezone=True)`` in both directions so
    SQLite and PostgreSQL store and return comparable values.
    """
    stmt = text(sql)
    binds = [
        bindparam(key, type_=TIMESTAMP)
        for key, value in (params or {}).items()
        if isinstance(value, datetime)
    ]
    if binds:
        stmt = stmt.bindparams(*binds)
    typed = {name: TIMESTAMP for name in columns if name in TIMESTAMP_COLUMNS}
    if typed:
        return stmt.columns(**typed)
    return stmt


def _configure_sqlite(dbapi_connection, connection_record):
    # transactions are started explicitly by _begin_sqlite
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def _begin_sqlite(conn):
    # writers ask for IMMEDIATE and queue on the busy timeout instead of
    # failing a lock upgrade; readers begin deferred and share the database
    mode = conn.get_execution_options().get("sqlite_begin")
    conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


class Database:
    """Connection provider handed to every store.

    Connections are checked out per call and returned on completion or
    failure; nothing holds one across two store operations.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo)
        self.dialect: str = self.engine.dialect.name
        if self.dialect == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _configure_sqlite)
            event.listen(self.engine.sync_engine, "begin", _begin_sqlite)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[AsyncConnection]:
        async with self.engine.connect() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        async with self.engine.connect() as conn:
            await conn.execution_options(sqlite_begin="IMMEDIATE")
            async with conn.begin():
                yield conn

    async def ping(self) -> None:
        async with self.acquire() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_schema(self) -> None:
        ddl = SQLITE_SCHEMA if self.dialect == "sqlite" else POSTGRES_SCHEMA
        async with self.transaction() as conn:
            for stmt in ddl:
                await conn.exec_driver_sql(stmt)
        logger.info("schema ready on %s", _redact(self.url))

    async def close(self) -> None:
        await self.engine.dispose()


def _redact(url: str) -> str:
    return re.sub(r"//([^:/@]+):[^@]*@", r"//\1:***@", url)


def _sqlite_search_index(table: str) -> List[str]:
    index = f"{table}_search"
    return [
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {index} USING fts5("
        f"name, content='{table}', content_rowid='id', tokenize='porter unicode61')",
        f"""CREATE TRIGGER IF NOT EXISTS {index}_insert AFTER INSERT ON {table}
        BEGIN
            INSERT INTO {index} (rowid, name) VALUES (NEW.id, NEW.name);
        END""",
        f"""CREATE TRIGGER IF NOT EXISTS {index}_delete AFTER DELETE ON {table}
        BEGIN
            INSERT INTO {index} ({index}, rowid, name) VALUES ('delete', OLD.id, OLD.name);
        END""",
        f"""CREATE TRIGGER IF NOT EXISTS {index}_update AFTER UPDATE OF name ON {table}
        BEGIN
            INSERT INTO {index} ({index}, rowid, name) VALUES ('delete', OLD.id, OLD.name);
            INSERT INTO {index} (rowid, name) VALUES (NEW.id, NEW.name);
        END""",
    ]


# SQLite reports neither foreign-key nor constraint names, so every reference
# is also checked by a trigger that aborts with the PostgreSQL constraint name.
SQLITE_SCHEMA = [
    """CREATE TABLE IF NOT EXISTS categories (
        id          INTEGER   PRIMARY KEY AUTOINCREMENT,
        name        TEXT      NOT NULL,
        description TEXT      NOT NULL,
        created_at  TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at  TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        version     INTEGER   NOT NULL DEFAULT 1,
        CONSTRAINT categories_name_key UNIQUE (name)
    )""",
    """CREATE TABLE IF NOT EXISTS products (
        id          INTEGER   PRIMARY KEY AUTOINCREMENT,
        name        TEXT      NOT NULL,
        description TEXT      NOT NULL,
        category_id INTEGER   NOT NULL,
        price       INTEGER   NOT NULL,
        quantity    INTEGER   NOT NULL,
        created_at  TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at  TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        version     INTEGER   NOT NULL DEFAULT 1,
        CONSTRAINT products_name_key UNIQUE (name),
        CONSTRAINT products_price_check CHECK (price >= 0),
        CONSTRAINT products_quantity_check CHECK (quantity >= 0),
        CONSTRAINT products_category_id_fkey FOREIGN KEY (category_id)
            REFERENCES categories (id) ON DELETE CASCADE
    )""",
    """CREATE TABLE IF NOT EXISTS users (
        id            INTEGER   PRIMARY KEY AUTOINCREMENT,
        email         TEXT      NOT NULL,
        password_hash BLOB      NOT NULL,
        created_at    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT users_email_key UNIQUE (email)
    )""",
    """CREATE TABLE IF NOT EXISTS tokens (
        hashed  BLOB      NOT NULL PRIMARY KEY,
        user_id INTEGER   NOT NULL,
        expiry  TIMESTAMP NOT NULL,
        CONSTRAINT tokens_user_id_fkey FOREIGN KEY (user_id)
            REFERENCES users (id) ON DELETE CASCADE
    )""",
    """CREATE TABLE IF NOT EXISTS carts (
        id         INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER NOT NULL,
        quantity   INTEGER NOT NULL,
        user_id    INTEGER NOT NULL,
        CONSTRAINT carts_quantity_check CHECK (quantity > 0),
        CONSTRAINT carts_user_id_fkey FOREIGN KEY (user_id)
            REFERENCES users (id) ON DELETE CASCADE,
        CONSTRAINT carts_product_id_fkey FOREIGN KEY (product_id)
            REFERENCES products (id) ON DELETE CASCADE
    )""",
    """CREATE TRIGGER IF NOT EXISTS products_references_insert BEFORE INSERT ON products
    BEGIN
        SELECT RAISE(ABORT, 'products_category_id_fkey')
        WHERE NOT EXISTS (SELECT 1 FROM categories WHERE id = NEW.category_id);
    END""",
    """CREATE TRIGGER IF NOT EXISTS products_references_update
    BEFORE UPDATE OF category_id ON products
    BEGIN
        SELECT RAISE(ABORT, 'products_category_id_fkey')
        WHERE NOT EXISTS (SELECT 1 FROM categories WHERE id = NEW.category_id);
    END""",
    """CREATE TRIGGER IF NOT EXISTS tokens_references_insert BEFORE INSERT ON tokens
    BEGIN
        SELECT RAISE(ABORT, 'tokens_user_id_fkey')
        WHERE NOT EXISTS (SELECT 1 FROM users WHERE id = NEW.user_id);
    END""",
    """CREATE TRIGGER IF NOT EXISTS carts_references_insert BEFORE INSERT ON carts
    BEGIN
        SELECT RAISE(ABORT, 'carts_user_id_fkey')
        WHERE NOT EXISTS (SELECT 1 FROM users WHERE id = NEW.user_id);
        SELECT RAISE(ABORT, 'carts_product_id_fkey')
        WHERE NOT EXISTS (SELECT 1 FROM products WHERE id = NEW.product_id);
    END""",
    """CREATE TRIGGER IF NOT EXISTS carts_references_update
    BEFORE UPDATE OF user_id, product_id ON carts
    BEGIN
        SELECT RAISE(ABORT, 'carts_user_id_fkey')
        WHERE NOT EXISTS (SELECT 1 FROM users WHERE id = NEW.user_id);
        SELECT RAISE(ABORT, 'carts_product_id_fkey')
        WHERE NOT EXISTS (SELECT 1 FROM products WHERE id = NEW.product_id);
    END""",
    *_sqlite_search_index("categories"),
    *_sqlite_search_index("products"),
]

POSTGRES_SCHEMA = [
    """CREATE TABLE IF NOT EXISTS categories (
        id          bigserial   PRIMARY KEY,
        name        text        NOT NULL,
        description text        NOT NULL,
        created_at  timestamptz NOT NULL DEFAULT now(),
        updated_at  timestamptz NOT NULL DEFAULT now(),
        version     integer     NOT NULL DEFAULT 1,
        CONSTRAINT categories_name_key UNIQUE (name)
    )""",
    """CREATE TABLE IF NOT EXISTS products (
        id          bigserial   PRIMARY KEY,
        name        text        NOT NULL,
        description text        NOT NULL,
        category_id bigint      NOT NULL,
        price       integer     NOT NULL,
        quantity    integer     NOT NULL,
        created_at  timestamptz NOT NULL DEFAULT now(),
        updated_at  timestamptz NOT NULL DEFAULT now(),
        version     integer     NOT NULL DEFAULT 1,
        CONSTRAINT products_name_key UNIQUE (name),
        CONSTRAINT products_price_check CHECK (price >= 0),
        CONSTRAINT products_quantity_check CHECK (quantity >= 0),
        CONSTRAINT products_category_id_fkey FOREIGN KEY (category_id)
            REFERENCES categories (id) ON DELETE CASCADE
    )""",
    """CREATE TABLE IF NOT EXISTS users (
        id            bigserial   PRIMARY KEY,
        email         text        NOT NULL,
        password_hash bytea       NOT NULL,
        created_at    timestamptz NOT NULL DEFAULT now(),
        updated_at    timestamptz NOT NULL DEFAULT now(),
        CONSTRAINT users_email_key UNIQUE (email)
    )""",
    """CREATE UNLOGGED TABLE IF NOT EXISTS tokens (
        hashed  bytea       PRIMARY KEY,
        user_id bigint      NOT NULL,
        expiry  timestamptz NOT NULL,
        CONSTRAINT tokens_user_id_fkey FOREIGN KEY (user_id)
            REFERENCES users (id) ON DELETE CASCADE
    )""",
    """CREATE TABLE IF NOT EXISTS carts (
        id         bigserial PRIMARY KEY,
        product_id bigint    NOT NULL,
        quantity   integer   NOT NULL,
        user_id    bigint    NOT NULL,
        CONSTRAINT carts_quantity_check CHECK (quantity > 0),
        CONSTRAINT carts_user_id_fkey FOREIGN KEY (user_id)
            REFERENCES users (id) ON DELETE CASCADE,
        CONSTRAINT carts_product_id_fkey FOREIGN KEY (product_id)
            REFERENCES products (id) ON DELETE CASCADE
    )""",
    "CREATE INDEX IF NOT EXISTS categories_name_search_idx "
    "ON categories USING gin (to_tsvector('english', name))",
    "CREATE INDEX IF NOT EXISTS products_name_search_idx "
    "ON products USING gin (to_tsvector('english', name))",
]

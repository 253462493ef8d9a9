# storefront/store.py
"""Shared shape of the resource stores.

A store owns one table. Every operation is a single statement run on a
connection checked out for that call only, so a cancelled request never
leaves half-applied state behind. Update behaviour is a capability: a
store mixes in either ``VersionedUpdate`` (optimistic concurrency) or
``UnversionedUpdate`` (last write wins).
"""

import logging
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel
from sqlalchemy.exc import DBAPIError

from .database import Database, statement, utcnow
from .errors import ConflictError, InvalidInputError, NotFoundError, translate
from .query import (
    compose,
    equality_fragment,
    match_expression,
    pagination_fragment,
    sort_column,
    sort_fragment,
)
from .models import Filter

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, db: Database):
        self.db = db

    async def _fetch(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        write: bool = False,
        columns: Tuple[str, ...] = (),
    ) -> List[Dict[str, Any]]:
        params = dict(params or {})
        stmt = statement(sql, params, columns)
        session = self.db.transaction() if write else self.db.acquire()
        try:
            async with session as conn:
                result = await conn.execute(stmt, params)
                return [dict(row) for row in result.mappings().all()]
        except DBAPIError as exc:
            raise translate(exc) from exc
        except OverflowError as exc:
            raise InvalidInputError("number out of range") from exc
        except UnicodeEncodeError as exc:
            raise InvalidInputError("text must be valid unicode") from exc

    async def _execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run a write statement and return the affected row count."""
        params = dict(params or {})
        try:
            async with self.db.transaction() as conn:
                result = await conn.execute(statement(sql, params), params)
                return result.rowcount
        except DBAPIError as exc:
            raise translate(exc) from exc
        except OverflowError as exc:
            raise InvalidInputError("number out of range") from exc
        except UnicodeEncodeError as exc:
            raise InvalidInputError("text must be valid unicode") from exc


class ResourceStore(Store):
    table: ClassVar[str]
    columns: ClassVar[Tuple[str, ...]]
    model: ClassVar[Type[BaseModel]]
    filter_model: ClassVar[Type[Filter]]
    predicates: ClassVar[Tuple[str, ...]] = ("id",)
    sort_columns: ClassVar[Mapping[str, str]] = {}
    not_found: ClassVar[Type[NotFoundError]] = NotFoundError
    timestamped: ClassVar[bool] = True

    @property
    def _select(self) -> str:
        return f"SELECT {', '.join(self.columns)} FROM {self.table}"

    def _decode(self, row: Mapping[str, Any]):
        return self.model.model_validate(row)

    async def list(self, criteria: Optional[Filter] = None) -> list:
        """Rows matching ``criteria``; an empty result raises ``not_found``."""
        criteria = criteria or self.filter_model()
        fragments = [equality_fragment(column, getattr(criteria, column)) for column in self.predicates]
        fragments.append(sort_fragment(sort_column(criteria.sort, self.sort_columns)))
        fragments.append(pagination_fragment(criteria.limit, criteria.offset))
        sql, params = compose(f"{self._select} WHERE 1=1", fragments, self.db.dialect)

        rows = await self._fetch(sql, params, columns=self.columns)
        if not rows:
            raise self.not_found()
        return [self._decode(row) for row in rows]

    async def get_by_id(self, id: int):
        if id is None or id <= 0:
            raise self.not_found()
        found = await self.list(self.filter_model(id=id))
        return found[0]

    async def delete(self, id: int) -> None:
        count = await self._execute(f"DELETE FROM {self.table} WHERE id = :id", {"id": id})
        if count != 1:
            raise self.not_found()
        logger.info("deleted %s %s", self.table, id)

    async def _insert(self, entity: BaseModel, fields: Tuple[str, ...]):
        values = {name: getattr(entity, name) for name in fields}
        if self.timestamped:
            now = utcnow()
            values["created_at"] = now
            values["updated_at"] = now
        sql = (
            f"INSERT INTO {self.table} ({', '.join(values)}) "
            f"VALUES ({', '.join(':' + name for name in values)}) "
            f"RETURNING {', '.join(self.columns)}"
        )
        rows = await self._fetch(sql, values, write=True, columns=self.columns)
        created = self._decode(rows[0])
        logger.info("created %s %s", self.table, created.id)
        return created

    def _assignments(self, changes: BaseModel) -> Tuple[List[str], Dict[str, Any]]:
        # absent fields bind NULL and COALESCE keeps the stored value
        sets, params = [], {}
        for name in type(changes).model_fields:
            sets.append(f"{name} = COALESCE(:{name}, {name})")
            params[name] = getattr(changes, name)
        return sets, params


class VersionedUpdate:
    """Optimistic concurrency: the update applies only at the expected version.

    Zero matched rows (unknown id or stale version, indistinguishable here)
    raise ``conflict``; the caller re-reads and decides whether to retry.
    """

    conflict: ClassVar[Type[ConflictError]] = ConflictError

    async def update(self, id: int, changes: BaseModel, version: int):
        sets, params = self._assignments(changes)
        params.update(id=id, version=version, now=utcnow())
        sql = (
            f"UPDATE {self.table} SET {', '.join(sets)}, updated_at = :now, version = version + 1 "
            f"WHERE id = :id AND version = :version "
            f"RETURNING {', '.join(self.columns)}"
        )
        rows = await self._fetch(sql, params, write=True, columns=self.columns)
        if not rows:
            logger.info("update conflict on %s %s at version %s", self.table, id, version)
            raise self.conflict()
        return self._decode(rows[0])


class UnversionedUpdate:
    """Last write wins. Zero matched rows raise ``not_found``."""

    async def update(self, id: int, changes: BaseModel):
        sets, params = self._assignments(changes)
        params["id"] = id
        if self.timestamped:
            sets.append("updated_at = :now")
            params["now"] = utcnow()
        sql = (
            f"UPDATE {self.table} SET {', '.join(sets)} WHERE id = :id "
            f"RETURNING {', '.join(self.columns)}"
        )
        rows = await self._fetch(sql, params, write=True, columns=self.columns)
        if not rows:
            raise self.not_found()
        return self._decode(rows[0])


class FullTextSearch:
    """Stemmed match of every query term against the ``name`` column."""

    async def search(self, query: str) -> list:
        if not query.split():
            return []
        if self.db.dialect == "sqlite":
            index = f"{self.table}_search"
            columns = ", ".join(f"{self.table}.{name} AS {name}" for name in self.columns)
            sql = (
                f"SELECT {columns} FROM {index} "
                f"JOIN {self.table} ON {index}.rowid = {self.table}.id "
                f"WHERE {index} MATCH :query"
            )
            params = {"query": match_expression(query)}
        else:
            sql = (
                f"{self._select} "
                f"WHERE to_tsvector('english', name) @@ plainto_tsquery('english', :query)"
            )
            params = {"query": query}
        rows = await self._fetch(sql, params, columns=self.columns)
        return [self._decode(row) for row in rows]

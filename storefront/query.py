# storefront/query.py
"""Composable query fragments shared by every resource store.

Each builder returns a ``Fragment`` that is either empty or well-formed.
Base queries end in ``WHERE 1=1`` so predicate fragments (all starting with
``AND``) can be appended in any number; ``compose`` puts sort and pagination
fragments after the predicates no matter what order they were passed in.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .errors import InvalidInputError

WHERE = "where"
ORDER = "order"
PAGE = "page"

_CLAUSE_RANK = {WHERE: 0, ORDER: 1, PAGE: 2}
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


@dataclass(frozen=True)
class Fragment:
    clause: str
    sql: str = ""
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.sql


# ---------------------------
# Sort-key whitelists
# ---------------------------
# Public sort keys mapped to the columns they order by. Filters resolve
# caller input through these before anything reaches sort_fragment.
PRODUCT_SORT_COLUMNS = {
    "id": "id",
    "name": "name",
    "price": "price",
    "quantity": "quantity",
    "category_id": "category_id",
    "created_at": "created_at",
    "updated_at": "updated_at",
}
CATEGORY_SORT_COLUMNS = {
    "id": "id",
    "name": "name",
    "created_at": "created_at",
    "updated_at": "updated_at",
}
CART_SORT_COLUMNS = {
    "id": "id",
    "quantity": "quantity",
    "product_id": "product_id",
    "user_id": "user_id",
}
USER_SORT_COLUMNS = {
    "id": "id",
    "email": "email",
    "created_at": "created_at",
}


def sort_column(key: Optional[str], columns: Mapping[str, str]) -> str:
    """Resolve a caller-supplied sort key; empty means unsorted."""
    if not key:
        return ""
    try:
        return columns[key]
    except KeyError:
        allowed = ", ".join(sorted(columns))
        raise InvalidInputError(f"unknown sort key {key!r}, expected one of: {allowed}") from None


# ---------------------------
# Fragment builders
# ---------------------------
def sort_fragment(column: str) -> Fragment:
    if not column:
        return Fragment(ORDER)
    # only pre-resolved identifiers may be inlined
    if not _IDENTIFIER.match(column):
        raise ValueError(f"not a column identifier: {column!r}")
    return Fragment(ORDER, f"ORDER BY {column} ASC")


def equality_fragment(column: str, value: Union[str, int, None]) -> Fragment:
    """``AND column = :eq_column`` unless ``value`` is empty or zero."""
    if not value:
        return Fragment(WHERE)
    if not _IDENTIFIER.match(column):
        raise ValueError(f"not a column identifier: {column!r}")
    name = "eq_" + column.replace(".", "_")
    return Fragment(WHERE, f"AND {column} = :{name}", {name: value})


def pagination_fragment(limit: Optional[int], offset: Optional[int]) -> Fragment:
    parts = []
    params = {}
    if limit and limit > 0:
        parts.append("LIMIT :limit")
        params["limit"] = limit
    if offset and offset > 0:
        parts.append("OFFSET :offset")
        params["offset"] = offset
    return Fragment(PAGE, " ".join(parts), params)


def compose(base: str, fragments: Iterable[Fragment], dialect: str = "postgresql") -> Tuple[str, Dict[str, Any]]:
    """Join ``base`` and ``fragments`` into one statement and its parameters.

    Empty fragments are dropped. At most one sort and one pagination
    fragment may be present; a second one raises ``ValueError``.
    """
    present = [frag for frag in fragments if not frag.empty]
    for clause in (ORDER, PAGE):
        if sum(1 for frag in present if frag.clause == clause) > 1:
            raise ValueError(f"more than one {clause} fragment")
    present.sort(key=lambda frag: _CLAUSE_RANK[frag.clause])

    pieces = [base.rstrip()]
    params: Dict[str, Any] = {}
    for frag in present:
        sql = frag.sql
        # SQLite accepts OFFSET only after a LIMIT
        if frag.clause == PAGE and dialect == "sqlite" and not sql.startswith("LIMIT"):
            sql = "LIMIT -1 " + sql
        pieces.append(sql)
        params.update(frag.params)
    return " ".join(pieces), params


def match_expression(query: str) -> str:
    """FTS5 expression requiring every whitespace-separated term."""
    terms = query.split()
    return " ".join('"' + term.replace('"', '""') + '"' for term in terms)

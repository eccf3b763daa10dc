"""
WHERE-clause builder

Builds a conjunction of parameterized terms, the same way every DAO used to
concatenate "column = ?" strings by hand.
"""
import re
from typing import Any, Iterable, List, Optional, Tuple

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(name: str) -> str:
    """
    Reject table/column names that are not plain identifiers

    Identifiers are interpolated into SQL text, values never are.
    """
    if not _IDENTIFIER.match(name or ""):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def check_order_by(order_by: Optional[str]) -> Optional[str]:
    """
    Validate "column [ASC|DESC], ..." order clauses
    """
    if order_by is None:
        return None
    for part in order_by.split(","):
        tokens = part.split()
        if not tokens or len(tokens) > 2:
            raise ValueError(f"Invalid ORDER BY clause: {order_by!r}")
        check_identifier(tokens[0])
        if len(tokens) == 2 and tokens[1].upper() not in ("ASC", "DESC"):
            raise ValueError(f"Invalid ORDER BY direction: {order_by!r}")
    return order_by


class Where:
    """
    Accumulates AND-ed predicate terms and their positional arguments

    Example:
        >>> where = Where().equals("status", "Pending").at_least("ai_confidence", 0.5)
        >>> where.clause
        'status = ? AND ai_confidence >= ?'
        >>> where.args
        ('Pending', 0.5)
    """
    def __init__(self) -> None:
        self._terms: List[str] = []
        self._args: List[Any] = []

    @classmethod
    def for_id(cls, entity_id: str) -> "Where":
        return cls().equals("id", entity_id)

    def _add(self, term: str, *args: Any) -> "Where":
        self._terms.append(term)
        self._args.extend(args)
        return self

    def equals(self, column: str, value: Any) -> "Where":
        return self._add(f"{check_identifier(column)} = ?", value)

    def not_equals(self, column: str, value: Any) -> "Where":
        return self._add(f"{check_identifier(column)} != ?", value)

    def between(self, column: str, low: Any, high: Any) -> "Where":
        return self._add(f"{check_identifier(column)} BETWEEN ? AND ?", low, high)

    def like(self, column: str, pattern: str) -> "Where":
        return self._add(f"{check_identifier(column)} LIKE ?", pattern)

    def at_least(self, column: str, value: Any) -> "Where":
        return self._add(f"{check_identifier(column)} >= ?", value)

    def at_most(self, column: str, value: Any) -> "Where":
        return self._add(f"{check_identifier(column)} <= ?", value)

    def any_like(self, columns: Iterable[str], term: str) -> "Where":
        """Free-text search: (a LIKE %term% OR b LIKE %term% ...)"""
        columns = [check_identifier(column) for column in columns]
        group = " OR ".join(f"{column} LIKE ?" for column in columns)
        return self._add(f"({group})", *[f"%{term}%"] * len(columns))

    @property
    def clause(self) -> Optional[str]:
        return " AND ".join(self._terms) if self._terms else None

    @property
    def args(self) -> Tuple[Any, ...]:
        return tuple(self._args)

    def __bool__(self) -> bool:
        return bool(self._terms)

    def __repr__(self) -> str:
        return f"Where({self.clause!r}, {self.args!r})"

"""
Predicate terms used to filter each table during extraction.

Predicates are kept as a small tree of terms and turned into SQL only by
``render()``, which always binds values as parameters. The same tree can be
evaluated against an in-memory row with ``matches()``, following SQL
three-valued logic closely enough that NULL never satisfies a comparison.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

QuoteFn = Callable[[str], str]


def default_quote(name: str) -> str:
    """Double-quote an identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def unique_values(values: Iterable[Any], skip_null: bool = False) -> tuple[Any, ...]:
    """
    De-duplicate values keeping first-seen order.

    Unhashable values (lists, dicts from JSON columns) are compared by
    equality instead of hashing.
    """
    seen: set[Any] = set()
    unhashable: list[Any] = []
    result = []
    for value in values:
        if value is None and skip_null:
            continue
        try:
            if value in seen:
                continue
            seen.add(value)
        except TypeError:
            if value in unhashable:
                continue
            unhashable.append(value)
        result.append(value)
    return tuple(result)


class Predicate(ABC):
    """Base class for predicate terms."""

    @abstractmethod
    def render(self, quote: QuoteFn = default_quote) -> tuple[str, list[Any]]:
        """Return ``(sql, params)`` using ``%s`` placeholders."""
        pass

    @abstractmethod
    def matches(self, row: Mapping[str, Any]) -> bool:
        """Evaluate the predicate against a single row."""
        pass

    @abstractmethod
    def columns(self) -> list[str]:
        """Columns the predicate reads."""
        pass

    def __str__(self) -> str:
        sql, params = self.render()
        pieces = sql.split("%s")
        out = [pieces[0]]
        for value, piece in zip(params, pieces[1:]):
            out.append(_literal(value))
            out.append(piece)
        return "".join(out)


def _literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


@dataclass(frozen=True)
class Equals(Predicate):
    """``column = value``."""

    column: str
    value: Any

    def render(self, quote: QuoteFn = default_quote) -> tuple[str, list[Any]]:
        return f"{quote(self.column)} = %s", [self.value]

    def matches(self, row: Mapping[str, Any]) -> bool:
        actual = row.get(self.column)
        if actual is None or self.value is None:
            return False
        return actual == self.value

    def columns(self) -> list[str]:
        return [self.column]


@dataclass(frozen=True)
class In(Predicate):
    """
    ``column IN (values...)``.

    An empty value list renders as ``column IN (NULL)``, which no row can
    satisfy. The term stays in the tree as an always-false branch rather than
    disappearing, because dropping it would select every row.
    """

    column: str
    values: tuple[Any, ...]

    def __post_init__(self):
        if not isinstance(self.values, tuple):
            object.__setattr__(self, "values", tuple(self.values))

    @property
    def is_sentinel(self) -> bool:
        return not self.values

    def render(self, quote: QuoteFn = default_quote) -> tuple[str, list[Any]]:
        if self.is_sentinel:
            return f"{quote(self.column)} IN (NULL)", []
        placeholders = ", ".join(["%s"] * len(self.values))
        return f"{quote(self.column)} IN ({placeholders})", list(self.values)

    def matches(self, row: Mapping[str, Any]) -> bool:
        actual = row.get(self.column)
        if actual is None:
            return False
        return any(value is not None and actual == value for value in self.values)

    def columns(self) -> list[str]:
        return [self.column]


@dataclass(frozen=True)
class AnyOf(Predicate):
    """
    Logical OR of terms.

    With no terms at all it renders ``FALSE``.
    """

    terms: tuple[Predicate, ...]

    def __post_init__(self):
        if not isinstance(self.terms, tuple):
            object.__setattr__(self, "terms", tuple(self.terms))

    def render(self, quote: QuoteFn = default_quote) -> tuple[str, list[Any]]:
        if not self.terms:
            return "FALSE", []
        if len(self.terms) == 1:
            return self.terms[0].render(quote)

        parts = []
        params: list[Any] = []
        for term in self.terms:
            sql, term_params = term.render(quote)
            parts.append(f"({sql})")
            params.extend(term_params)
        return " OR ".join(parts), params

    def matches(self, row: Mapping[str, Any]) -> bool:
        return any(term.matches(row) for term in self.terms)

    def columns(self) -> list[str]:
        seen: list[str] = []
        for term in self.terms:
            for column in term.columns():
                if column not in seen:
                    seen.append(column)
        return seen


def any_of(terms: Sequence[Predicate]) -> Predicate:
    """Combine terms with OR, collapsing a single term to itself."""
    if len(terms) == 1:
        return terms[0]
    return AnyOf(tuple(terms))

"""Filter and ordering expressions for listing users and roles.

Callers express filters with external field names, for example::

    display_name eq 'Alice' and contains(email, '@example.org')

External names are translated to record attributes through a ``FieldMap``
so the storage layer never sees names the caller chose.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from gatehouse.service.errors import InvalidRequestError

OPERATORS = frozenset({"eq", "ne", "gt", "ge", "lt", "le", "contains"})


class FieldMap:
    """Read-only mapping of external field names to record attributes."""

    def __init__(self, fields: Mapping[str, str]) -> None:
        self._fields = MappingProxyType(dict(fields))

    def resolve(self, name: str) -> str:
        try:
            return self._fields[name]
        except KeyError:
            raise InvalidRequestError(
                "unknown field", detail={"field": name}
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)


USER_FIELDS = FieldMap({"id": "id", "display_name": "display_name", "email": "email"})
ROLE_FIELDS = FieldMap({"id": "id", "description": "description"})


@dataclass(frozen=True)
class Condition:
    attribute: str
    op: str
    value: Any

    def matches(self, record: Any) -> bool:
        actual = getattr(record, self.attribute, None)
        if self.op == "eq":
            return actual == self.value
        if self.op == "ne":
            return actual != self.value
        if self.op == "contains":
            return actual is not None and str(self.value) in str(actual)
        if actual is None or self.value is None:
            return False
        try:
            if self.op == "gt":
                return actual > self.value
            if self.op == "ge":
                return actual >= self.value
            if self.op == "lt":
                return actual < self.value
            return actual <= self.value
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    attribute: str
    descending: bool = False


_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>'(?:[^']|'')*')
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<punct>[(),])
      | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    )""",
    re.VERBOSE,
)


def _tokenize(text: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise InvalidRequestError("invalid filter", detail={"position": pos})
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _literal(kind: str, raw: str) -> Any:
    if kind == "string":
        return raw[1:-1].replace("''", "'")
    if kind == "number":
        return float(raw) if "." in raw else int(raw)
    if kind == "word" and raw in ("true", "false"):
        return raw == "true"
    if kind == "word" and raw == "null":
        return None
    raise InvalidRequestError("invalid filter value", detail={"value": raw})


class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]], fields: FieldMap) -> None:
        self.tokens = tokens
        self.fields = fields
        self.pos = 0

    def _next(self) -> Tuple[str, str]:
        if self.pos >= len(self.tokens):
            raise InvalidRequestError("unexpected end of filter")
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _expect(self, value: str) -> None:
        _, raw = self._next()
        if raw != value:
            raise InvalidRequestError(
                "invalid filter", detail={"expected": value, "found": raw}
            )

    def condition(self) -> Condition:
        kind, raw = self._next()
        if kind != "word":
            raise InvalidRequestError("invalid filter", detail={"found": raw})
        if raw == "contains":
            self._expect("(")
            _, name = self._next()
            self._expect(",")
            value = _literal(*self._next())
            self._expect(")")
            return Condition(self.fields.resolve(name), "contains", value)
        attribute = self.fields.resolve(raw)
        _, op = self._next()
        if op not in OPERATORS or op == "contains":
            raise InvalidRequestError("unknown operator", detail={"operator": op})
        return Condition(attribute, op, _literal(*self._next()))

    def parse(self) -> List[Condition]:
        conditions = [self.condition()]
        while self.pos < len(self.tokens):
            kind, raw = self._next()
            if kind != "word" or raw != "and":
                raise InvalidRequestError("invalid filter", detail={"found": raw})
            conditions.append(self.condition())
        return conditions


def parse_filter(text: Optional[str], fields: FieldMap) -> List[Condition]:
    """Parse a filter expression into AND-ed conditions on record attributes."""
    if not text or not text.strip():
        return []
    return _Parser(_tokenize(text), fields).parse()


def parse_order_by(text: Optional[str], fields: FieldMap) -> List[OrderBy]:
    if not text or not text.strip():
        return []
    order: List[OrderBy] = []
    for part in text.split(","):
        words = part.split()
        if not words or len(words) > 2:
            raise InvalidRequestError("invalid order by", detail={"clause": part.strip()})
        direction = words[1].lower() if len(words) == 2 else "asc"
        if direction not in ("asc", "desc"):
            raise InvalidRequestError("invalid order by", detail={"clause": part.strip()})
        order.append(OrderBy(fields.resolve(words[0]), direction == "desc"))
    return order

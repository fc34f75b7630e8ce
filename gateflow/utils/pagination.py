"""Cursor pagination.

A cursor is the sort value and id of the last row on a page, serialized as
compact JSON and encoded with unpadded URL-safe base64. Listings filter with a
compound ``(sort_field, id)`` keyset predicate, so rows that share a sort
value are neither skipped nor repeated.
"""
from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from gateflow.services.base import InvalidInputError

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
MAX_CURSOR_LENGTH = 2048

_CURSOR_ALPHABET = re.compile(r'^[A-Za-z0-9_-]+$')


class InvalidCursorError(InvalidInputError):
    def __init__(self, message: str = 'Invalid cursor'):
        super().__init__(message)


@dataclass(frozen=True)
class Cursor:
    value: Any
    id: str


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: str = 'desc'
    value_type: type = str

    @property
    def descending(self) -> bool:
        return self.direction == 'desc'


def encode_cursor(sort_value: Any, row_id: str) -> str:
    payload = json.dumps({'v': sort_value, 'id': row_id}, separators=(',', ':'), sort_keys=True)
    return base64.urlsafe_b64encode(payload.encode('utf-8')).decode('ascii').rstrip('=')


def _matches_type(value: Any, value_type: Optional[type]) -> bool:
    if value_type is None:
        return isinstance(value, (str, int, float)) and not isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if value_type is float:
        return isinstance(value, (int, float))
    return isinstance(value, value_type)


def decode_cursor(token: str, value_type: Optional[type] = None) -> Cursor:
    """Decode a cursor token, raising InvalidCursorError on any defect."""
    if not isinstance(token, str) or not token or len(token) > MAX_CURSOR_LENGTH:
        raise InvalidCursorError()
    if not _CURSOR_ALPHABET.match(token):
        raise InvalidCursorError()

    padded = token + '=' * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode('ascii'))
        payload = json.loads(raw.decode('utf-8'))
    except (binascii.Error, ValueError):
        raise InvalidCursorError()

    if not isinstance(payload, dict) or set(payload) != {'v', 'id'}:
        raise InvalidCursorError()
    row_id = payload['id']
    if not isinstance(row_id, str) or not row_id:
        raise InvalidCursorError()
    if not _matches_type(payload['v'], value_type):
        raise InvalidCursorError()
    return Cursor(value=payload['v'], id=row_id)


def parse_limit(raw: Any, default: int = DEFAULT_LIMIT) -> int:
    """Clamp a requested page size into [1, MAX_LIMIT]."""
    if raw is None or raw == '':
        return default
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return default
    return max(1, min(MAX_LIMIT, limit))


def parse_sort(args: Mapping[str, str], allowed: Mapping[str, type], default_field: str = 'created_at',
               default_direction: str = 'desc') -> SortSpec:
    """Resolve ``sort=-field`` or ``sort_by``/``sort_order`` against a whitelist."""
    sort = args.get('sort')
    sort_by = args.get('sort_by')
    if sort:
        direction = 'desc' if sort.startswith('-') else 'asc'
        field_name = sort.lstrip('-+')
    elif sort_by:
        field_name = sort_by
        direction = (args.get('sort_order') or default_direction).lower()
    else:
        field_name = default_field
        direction = (args.get('sort_order') or default_direction).lower()

    if direction not in ('asc', 'desc'):
        raise InvalidInputError('Invalid sort order. Allowed: asc, desc')
    if field_name not in allowed:
        raise InvalidInputError(f"Invalid sort field. Allowed: {', '.join(allowed)}")
    return SortSpec(field=field_name, direction=direction, value_type=allowed[field_name])


@dataclass
class ListQuery:
    """Builds a filtered, keyset-paginated SELECT."""
    select: str
    table_alias: str = ''
    clauses: List[str] = field(default_factory=list)
    params: List[Any] = field(default_factory=list)
    order_by: str = ''

    def column(self, name: str) -> str:
        return f'{self.table_alias}.{name}' if self.table_alias else name

    def where(self, clause: str, *params: Any) -> 'ListQuery':
        self.clauses.append(clause)
        self.params.extend(params)
        return self

    def apply_cursor(self, cursor: Optional[Cursor], sort: SortSpec) -> 'ListQuery':
        op = '<' if sort.descending else '>'
        col = self.column(sort.field)
        id_col = self.column('id')
        if cursor is not None:
            self.where(f'({col} {op} ? OR ({col} = ? AND {id_col} {op} ?))', cursor.value, cursor.value, cursor.id)
        direction = 'DESC' if sort.descending else 'ASC'
        self.order_by = f'ORDER BY {col} {direction}, {id_col} {direction}'
        return self

    def build(self, limit: int) -> Tuple[str, List[Any]]:
        sql = self.select
        if self.clauses:
            sql += ' WHERE ' + ' AND '.join(self.clauses)
        if self.order_by:
            sql += ' ' + self.order_by
        sql += ' LIMIT ?'
        return sql, [*self.params, limit]


def _value_of(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item[name]
    return getattr(item, name)


def build_page(rows: Sequence[Any], limit: int, sort: SortSpec, cursor: Optional[str] = None,
               serialize: Optional[Callable[[Any], Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Trim a ``limit + 1`` fetch to one page and attach pagination metadata."""
    has_more = len(rows) > limit
    page = list(rows[:limit])
    next_cursor = None
    if has_more and page:
        last = page[-1]
        next_cursor = encode_cursor(_value_of(last, sort.field), _value_of(last, 'id'))

    if serialize is None:
        serialize = lambda item: item if isinstance(item, Mapping) else item.to_dict()  # noqa: E731
    return {
        'data': [serialize(item) for item in page],
        'pagination': {
            'cursor': cursor,
            'next_cursor': next_cursor,
            'has_more': has_more,
            'limit': limit,
        },
    }


@dataclass(frozen=True)
class PageRequest:
    """Parsed pagination parameters of a list request."""
    limit: int
    sort: SortSpec
    cursor: Optional[Cursor]
    cursor_token: Optional[str]

    @classmethod
    def from_args(cls, args: Mapping[str, str], allowed: Mapping[str, type], default_field: str = 'created_at',
                  default_direction: str = 'desc') -> 'PageRequest':
        sort = parse_sort(args, allowed, default_field, default_direction)
        token = args.get('cursor') or None
        cursor = decode_cursor(token, sort.value_type) if token else None
        return cls(limit=parse_limit(args.get('limit')), sort=sort, cursor=cursor, cursor_token=token)

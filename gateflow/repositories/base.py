from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from gateflow.utils.pagination import ListQuery


class BaseRepository:
    """Base repository with helpers to run queries."""
    table = ''

    def __init__(self, db_factory: Callable[[], sqlite3.Connection]):
        self._db_factory = db_factory

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def _fetchone(self, query: str, params: Iterable = ()) -> Optional[sqlite3.Row]:
        conn = self._db_factory()
        try:
            cursor = conn.cursor()
            cursor.execute(query, tuple(params))
            return cursor.fetchone()
        finally:
            conn.close()

    def _fetchall(self, query: str, params: Iterable = ()) -> List[sqlite3.Row]:
        conn = self._db_factory()
        try:
            cursor = conn.cursor()
            cursor.execute(query, tuple(params))
            return cursor.fetchall()
        finally:
            conn.close()

    def _execute(self, query: str, params: Iterable = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        conn = self._db_factory()
        try:
            cursor = conn.cursor()
            cursor.execute(query, tuple(params))
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def _insert(self, values: Dict[str, Any]) -> None:
        columns = ', '.join(values)
        placeholders = ', '.join('?' for _ in values)
        self._execute(f'INSERT INTO {self.table} ({columns}) VALUES ({placeholders})', values.values())

    def _update(self, row_id: str, changes: Dict[str, Any], guard: str = '', guard_params: Sequence = ()) -> int:
        """Update whitelisted columns of one row; column names come from update schemas, never from clients."""
        assignments = ', '.join(f'{column} = ?' for column in changes)
        query = f'UPDATE {self.table} SET {assignments} WHERE id = ?'
        if guard:
            query += f' AND {guard}'
        return self._execute(query, [*changes.values(), row_id, *guard_params])

    def _page(self, query: ListQuery, limit: int) -> List[sqlite3.Row]:
        sql, params = query.build(limit + 1)
        return self._fetchall(sql, params)

    def get_row(self, row_id: str) -> Optional[sqlite3.Row]:
        return self._fetchone(f'SELECT * FROM {self.table} WHERE id = ?', (row_id,))

    def delete(self, row_id: str) -> bool:
        return self._execute(f'DELETE FROM {self.table} WHERE id = ?', (row_id,)) > 0

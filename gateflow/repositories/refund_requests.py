from __future__ import annotations

from typing import Any, Dict, List, Optional

from gateflow.models import RefundRequest
from gateflow.repositories.base import BaseRepository
from gateflow.utils.pagination import Cursor, ListQuery, SortSpec


class RefundRequestRepository(BaseRepository):
    """Repository for customer refund requests."""
    table = 'refund_requests'

    def get(self, request_id: str) -> Optional[RefundRequest]:
        return RefundRequest.from_row(self.get_row(request_id))

    def list(self, sort: SortSpec, cursor: Optional[Cursor], limit: int,
             status: Optional[str] = None) -> List[RefundRequest]:
        query = ListQuery('SELECT * FROM refund_requests')
        if status:
            query.where('status = ?', status)
        query.apply_cursor(cursor, sort)
        return [RefundRequest.from_row(row) for row in self._page(query, limit)]

    def create(self, values: Dict[str, Any]) -> RefundRequest:
        self._insert(values)
        return self.get(values['id'])

    def transition(self, request_id: str, from_status: str, changes: Dict[str, Any]) -> bool:
        """Move a request out of ``from_status``; False when another writer got there first."""
        return self._update(request_id, changes, 'status = ?', (from_status,)) > 0

    def count_by_status(self) -> Dict[str, int]:
        rows = self._fetchall('SELECT status, COUNT(*) AS total FROM refund_requests GROUP BY status')
        return {row['status']: row['total'] for row in rows}

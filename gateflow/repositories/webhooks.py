from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from gateflow.models import WebhookEndpoint, WebhookLog
from gateflow.repositories.base import BaseRepository
from gateflow.utils.pagination import Cursor, ListQuery, SortSpec


class WebhookRepository(BaseRepository):
    """Repository for webhook endpoints."""
    table = 'webhook_endpoints'

    def get(self, endpoint_id: str) -> Optional[WebhookEndpoint]:
        return WebhookEndpoint.from_row(self.get_row(endpoint_id))

    def list(self, sort: SortSpec, cursor: Optional[Cursor], limit: int) -> List[WebhookEndpoint]:
        query = ListQuery('SELECT * FROM webhook_endpoints').apply_cursor(cursor, sort)
        return [WebhookEndpoint.from_row(row) for row in self._page(query, limit)]

    def create(self, values: Dict[str, Any]) -> WebhookEndpoint:
        self._insert(_encode(values))
        return self.get(values['id'])

    def update(self, endpoint_id: str, changes: Dict[str, Any]) -> Optional[WebhookEndpoint]:
        if not self._update(endpoint_id, _encode(changes)):
            return None
        return self.get(endpoint_id)


class WebhookLogRepository(BaseRepository):
    """Repository for webhook delivery logs."""
    table = 'webhook_logs'

    def list(self, sort: SortSpec, cursor: Optional[Cursor], limit: int,
             endpoint_id: Optional[str] = None, status: Optional[str] = None) -> List[WebhookLog]:
        query = ListQuery('SELECT * FROM webhook_logs')
        if endpoint_id:
            query.where('endpoint_id = ?', endpoint_id)
        if status:
            query.where('status = ?', status)
        query.apply_cursor(cursor, sort)
        return [WebhookLog.from_row(row) for row in self._page(query, limit)]

    def record(self, values: Dict[str, Any]) -> None:
        self._insert(values)


def _encode(values: Dict[str, Any]) -> Dict[str, Any]:
    encoded = dict(values)
    if 'events' in encoded:
        encoded['events'] = json.dumps(encoded['events'])
    if 'is_active' in encoded:
        encoded['is_active'] = 1 if encoded['is_active'] else 0
    return encoded

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

from gateflow.models import WebhookEndpoint
from gateflow.models.updates import WebhookUpdate
from gateflow.repositories import WebhookLogRepository, WebhookRepository
from gateflow.services.base import NotFoundError, ValidationError
from gateflow.utils import validators
from gateflow.utils.pagination import PageRequest, build_page
from gateflow.utils.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

WEBHOOK_SORT_FIELDS = {'created_at': str, 'updated_at': str}
WEBHOOK_LOG_SORT_FIELDS = {'created_at': str}
WEBHOOK_LOG_STATUSES = ('success', 'failed')


def generate_webhook_secret() -> str:
    return f"whsec_{secrets.token_hex(24)}"


class WebhookService:
    """Webhook endpoint configuration and delivery log queries."""

    def __init__(self, webhook_repo: WebhookRepository, log_repo: WebhookLogRepository):
        self._endpoints = webhook_repo
        self._logs = log_repo

    def list(self, page: PageRequest) -> Dict[str, Any]:
        endpoints = self._endpoints.list(page.sort, page.cursor, page.limit)
        return build_page(endpoints, page.limit, page.sort, page.cursor_token)

    def get(self, endpoint_id: str) -> WebhookEndpoint:
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None:
            raise NotFoundError('Webhook not found')
        return endpoint

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        valid, error = validators.validate_required_fields(data, ['url', 'events'])
        if not valid:
            raise ValidationError(error)
        values = WebhookUpdate.parse(data)
        values['events'] = list(dict.fromkeys(values['events']))
        now = isoformat(utcnow())
        values.update({
            'id': self._endpoints.new_id(),
            'secret': generate_webhook_secret(),
            'created_at': now,
            'updated_at': now,
        })
        endpoint = self._endpoints.create(values)
        logger.info(f"Webhook endpoint created for {endpoint.url}")
        # The signing secret is only returned once
        return endpoint.to_dict(include_secret=True)

    def update(self, endpoint_id: str, payload: Any) -> WebhookEndpoint:
        changes = WebhookUpdate.parse(payload)
        self.get(endpoint_id)
        if 'events' in changes:
            changes['events'] = list(dict.fromkeys(changes['events']))
        changes['updated_at'] = isoformat(utcnow())
        endpoint = self._endpoints.update(endpoint_id, changes)
        if endpoint is None:
            raise NotFoundError('Webhook not found')
        return endpoint

    def delete(self, endpoint_id: str) -> None:
        endpoint = self.get(endpoint_id)
        self._endpoints.delete(endpoint_id)
        logger.info(f"Webhook endpoint deleted: {endpoint.url}")

    def list_logs(self, page: PageRequest, endpoint_id: Optional[str] = None,
                  status: Optional[str] = None) -> Dict[str, Any]:
        if endpoint_id:
            valid, _ = validators.validate_uuid(endpoint_id)
            if not valid:
                raise ValidationError('Invalid endpoint_id format')
        if status and status not in WEBHOOK_LOG_STATUSES:
            raise ValidationError(f"Invalid status. Allowed: {', '.join(WEBHOOK_LOG_STATUSES)}")
        logs = self._logs.list(page.sort, page.cursor, page.limit, endpoint_id=endpoint_id or None,
                               status=status or None)
        return build_page(logs, page.limit, page.sort, page.cursor_token)

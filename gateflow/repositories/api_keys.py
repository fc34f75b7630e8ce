from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from gateflow.models import ApiKey, ApiKeyAuditEvent
from gateflow.repositories.base import BaseRepository
from gateflow.utils.pagination import Cursor, ListQuery, SortSpec

KEY_STATUS_FILTERS = {
    'all': None,
    'active': 'is_active = 1 AND revoked_at IS NULL',
    'inactive': 'is_active = 0 AND revoked_at IS NULL',
    'revoked': 'revoked_at IS NOT NULL',
}


class ApiKeyRepository(BaseRepository):
    """Repository for API keys. Every admin-facing lookup is scoped to the owner."""
    table = 'api_keys'

    def create(self, record: Dict[str, Any]) -> ApiKey:
        values = dict(record)
        values['scopes'] = json.dumps(values['scopes'])
        values['is_active'] = 1 if values.get('is_active', True) else 0
        self._insert(values)
        return ApiKey.from_row(self.get_row(record['id']))

    def get_by_hash(self, key_hash: str) -> Optional[ApiKey]:
        return ApiKey.from_row(self._fetchone('SELECT * FROM api_keys WHERE key_hash = ?', (key_hash,)))

    def get_for_admin(self, key_id: str, admin_user_id: str) -> Optional[ApiKey]:
        row = self._fetchone(
            'SELECT * FROM api_keys WHERE id = ? AND admin_user_id = ?',
            (key_id, admin_user_id),
        )
        return ApiKey.from_row(row)

    def list_for_admin(self, admin_user_id: str, status: str, sort: SortSpec,
                       cursor: Optional[Cursor], limit: int) -> List[ApiKey]:
        query = ListQuery('SELECT * FROM api_keys').where('admin_user_id = ?', admin_user_id)
        status_clause = KEY_STATUS_FILTERS[status]
        if status_clause:
            query.where(status_clause)
        query.apply_cursor(cursor, sort)
        return [ApiKey.from_row(row) for row in self._page(query, limit)]

    def update_for_admin(self, key_id: str, admin_user_id: str, changes: Dict[str, Any]) -> bool:
        values = dict(changes)
        if 'scopes' in values:
            values['scopes'] = json.dumps(values['scopes'])
        if 'is_active' in values:
            values['is_active'] = 1 if values['is_active'] else 0
        return self._update(key_id, values, 'admin_user_id = ? AND revoked_at IS NULL', (admin_user_id,)) > 0

    def deactivate_for_rotation(self, key_id: str, admin_user_id: str, now: str,
                                grace_until: Optional[str]) -> bool:
        """Retire a key that was just rotated.

        Applies only while the key is still active and unrevoked, so two
        concurrent rotations cannot both succeed.
        """
        if grace_until is None:
            changes = {
                'is_active': 0,
                'revoked_at': now,
                'revoked_reason': 'Rotated',
                'rotation_grace_until': None,
                'updated_at': now,
            }
        else:
            changes = {'is_active': 0, 'rotation_grace_until': grace_until, 'updated_at': now}
        guard = 'admin_user_id = ? AND is_active = 1 AND revoked_at IS NULL'
        return self._update(key_id, changes, guard, (admin_user_id,)) > 0

    def revoke(self, key_id: str, admin_user_id: str, now: str, reason: Optional[str]) -> bool:
        changes = {
            'is_active': 0,
            'revoked_at': now,
            'revoked_reason': reason,
            'rotation_grace_until': None,
            'updated_at': now,
        }
        return self._update(key_id, changes, 'admin_user_id = ? AND revoked_at IS NULL', (admin_user_id,)) > 0

    def record_usage(self, key_id: str, used_at: str, ip_address: Optional[str]) -> None:
        self._execute(
            '''
            UPDATE api_keys
            SET last_used_at = ?, last_used_ip = COALESCE(?, last_used_ip), usage_count = usage_count + 1
            WHERE id = ?
            ''',
            (used_at, ip_address, key_id),
        )

    def list_grace_expired(self, now: str) -> List[ApiKey]:
        rows = self._fetchall(
            '''
            SELECT * FROM api_keys
            WHERE is_active = 0 AND revoked_at IS NULL
              AND rotation_grace_until IS NOT NULL AND rotation_grace_until < ?
            ''',
            (now,),
        )
        return [ApiKey.from_row(row) for row in rows]

    def finalize_rotation(self, key_id: str, now: str) -> bool:
        return self._execute(
            '''
            UPDATE api_keys
            SET revoked_at = rotation_grace_until, revoked_reason = 'Rotated', updated_at = ?
            WHERE id = ? AND revoked_at IS NULL AND rotation_grace_until < ?
            ''',
            (now, key_id, now),
        ) > 0


class ApiKeyAuditRepository(BaseRepository):
    """Append-only lifecycle log for API keys."""
    table = 'api_key_audit_log'

    def record(self, api_key_id: str, event_type: str, created_at: str,
               event_data: Optional[Dict[str, Any]] = None, ip_address: Optional[str] = None) -> None:
        self._insert({
            'id': self.new_id(),
            'api_key_id': api_key_id,
            'event_type': event_type,
            'event_data': json.dumps(event_data or {}),
            'ip_address': ip_address,
            'created_at': created_at,
        })

    def list_for_key(self, api_key_id: str, limit: int = 100) -> List[ApiKeyAuditEvent]:
        rows = self._fetchall(
            'SELECT * FROM api_key_audit_log WHERE api_key_id = ? ORDER BY created_at DESC, id DESC LIMIT ?',
            (api_key_id, limit),
        )
        return [ApiKeyAuditEvent.from_row(row) for row in rows]

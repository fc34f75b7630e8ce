from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from gateflow.models import ApiKey, ApiKeyAuditEvent
from gateflow.models.updates import ApiKeyUpdate
from gateflow.repositories import ApiKeyAuditRepository, ApiKeyRepository
from gateflow.services.base import (
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from gateflow.utils import validators
from gateflow.utils.pagination import PageRequest, build_page
from gateflow.utils.scopes import WILDCARD, find_invalid_scopes, validate_scopes
from gateflow.utils.timeutil import isoformat, normalize_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r'^gf_(live|test)_[0-9a-f]{64}$')
KEY_PREFIX_LENGTH = 12
KEY_SECRET_BYTES = 32
KEY_ENVIRONMENTS = ('live', 'test')
ROTATED_SUFFIX = ' (rotated)'
SECRET_WARNING = 'Save this key now - it will not be shown again!'
KEY_SORT_FIELDS = {'created_at': str, 'updated_at': str, 'name': str}
KEY_STATUSES = ('all', 'active', 'inactive', 'revoked')


def generate_api_key(environment: str = 'live') -> str:
    """Generate a new plaintext API key."""
    if environment not in KEY_ENVIRONMENTS:
        raise ValueError(f'Unknown key environment: {environment}')
    return f"gf_{environment}_{secrets.token_hex(KEY_SECRET_BYTES)}"


def hash_api_key(key: str) -> str:
    """Hash an API key for storage."""
    return hashlib.sha256(key.encode('utf-8')).hexdigest()


def verify_api_key(key: str, key_hash: str) -> bool:
    """Verify an API key against its hash using constant-time comparison."""
    return hmac.compare_digest(hash_api_key(key), key_hash)


def is_valid_key_format(key: Any) -> bool:
    return isinstance(key, str) and KEY_PATTERN.match(key) is not None


@dataclass(frozen=True)
class ApiKeyAuth:
    """Result of a successful API key authentication."""
    key_id: str
    admin_user_id: str
    key_prefix: str
    scopes: Tuple[str, ...]
    rate_limit_per_minute: int
    in_grace_period: bool = False


def usability_error(key: ApiKey, now: datetime) -> Optional[str]:
    """Return why a key cannot authenticate right now, or None if it can.

    A key is usable while it is active and unrevoked, or while it is inside
    the grace window left by a rotation. Expiry applies in both cases.
    """
    grace_until = parse_timestamp(key.rotation_grace_until)
    in_grace = grace_until is not None and now <= grace_until
    if key.revoked_at and not in_grace:
        return 'API key has been revoked'
    if not key.is_active and not in_grace:
        return 'API key has been revoked'
    expires_at = parse_timestamp(key.expires_at)
    if expires_at is not None and expires_at <= now:
        return 'API key has expired'
    return None


class ApiKeyService:
    """Issue, authenticate, rotate and revoke API keys."""

    def __init__(
        self,
        api_key_repo: ApiKeyRepository,
        audit_repo: ApiKeyAuditRepository,
        usage_executor: Optional[Executor] = None,
        environment: str = 'live',
        clock: Callable[[], datetime] = utcnow,
    ):
        self._repo = api_key_repo
        self._audit = audit_repo
        self._usage_executor = usage_executor
        self._environment = environment
        self._clock = clock

    # Issuance

    def issue(
        self,
        admin_user_id: str,
        name: Any,
        scopes: Any = None,
        rate_limit_per_minute: Any = None,
        expires_at: Any = None,
        ip_address: Optional[str] = None,
    ) -> Tuple[ApiKey, str]:
        """Create a key and return it with its plaintext, which is never shown again."""
        valid, error = validators.validate_key_name(name)
        if not valid:
            raise ValidationError(error, details={'field': 'name'})

        if scopes is None:
            scopes = [WILDCARD]
        valid, error = validate_scopes(scopes)
        if not valid:
            details = {'field': 'scopes'}
            if isinstance(scopes, list):
                invalid = find_invalid_scopes(scope for scope in scopes if isinstance(scope, str))
                if invalid:
                    details['invalid_scopes'] = invalid
            raise ValidationError(error, details=details)

        if rate_limit_per_minute is None:
            rate_limit_per_minute = validators.DEFAULT_RATE_LIMIT
        valid, error = validators.validate_rate_limit(rate_limit_per_minute)
        if not valid:
            raise ValidationError(error, details={'field': 'rate_limit_per_minute'})

        if expires_at is not None:
            valid, error = validators.validate_future_timestamp(expires_at, now=self._clock())
            if not valid:
                raise ValidationError(error, details={'field': 'expires_at'})
            expires_at = normalize_timestamp(expires_at)

        key, plaintext = self._store_new_key(
            admin_user_id,
            name.strip(),
            list(dict.fromkeys(scopes)),
            rate_limit_per_minute,
            expires_at,
        )
        self._audit.record(key.id, 'created', key.created_at, {'name': key.name, 'scopes': key.scopes}, ip_address)
        logger.info(f"API key created: {key.key_prefix}... for admin {admin_user_id}")
        return key, plaintext

    def _store_new_key(
        self,
        admin_user_id: str,
        name: str,
        scopes: List[str],
        rate_limit_per_minute: int,
        expires_at: Optional[str],
        rotated_from_id: Optional[str] = None,
    ) -> Tuple[ApiKey, str]:
        plaintext = generate_api_key(self._environment)
        now = isoformat(self._clock())
        key = self._repo.create({
            'id': self._repo.new_id(),
            'admin_user_id': admin_user_id,
            'name': name,
            'key_prefix': plaintext[:KEY_PREFIX_LENGTH],
            'key_hash': hash_api_key(plaintext),
            'scopes': scopes,
            'rate_limit_per_minute': rate_limit_per_minute,
            'is_active': True,
            'expires_at': expires_at,
            'rotated_from_id': rotated_from_id,
            'created_at': now,
            'updated_at': now,
        })
        return key, plaintext

    # Authentication

    def authenticate(self, presented: Any, ip_address: Optional[str] = None) -> ApiKeyAuth:
        if not is_valid_key_format(presented):
            raise UnauthorizedError('Invalid API key format')

        key = self._repo.get_by_hash(hash_api_key(presented))
        if key is None or not verify_api_key(presented, key.key_hash):
            raise UnauthorizedError('Invalid API key')

        now = self._clock()
        error = usability_error(key, now)
        if error:
            logger.info(f"Rejected API key {key.key_prefix}...: {error}")
            raise UnauthorizedError(error)

        self._schedule_usage(key.id, isoformat(now), ip_address)
        return ApiKeyAuth(
            key_id=key.id,
            admin_user_id=key.admin_user_id,
            key_prefix=key.key_prefix,
            scopes=tuple(key.scopes),
            rate_limit_per_minute=key.rate_limit_per_minute,
            in_grace_period=not key.is_active,
        )

    def _schedule_usage(self, key_id: str, used_at: str, ip_address: Optional[str]) -> None:
        if self._usage_executor is None:
            self._record_usage(key_id, used_at, ip_address)
            return
        try:
            self._usage_executor.submit(self._record_usage, key_id, used_at, ip_address)
        except RuntimeError as exc:
            # Executor already shut down (process exiting)
            logger.warning(f"Skipping usage update for API key {key_id}: {exc}")

    def _record_usage(self, key_id: str, used_at: str, ip_address: Optional[str]) -> None:
        try:
            self._repo.record_usage(key_id, used_at, ip_address)
        except Exception as exc:
            logger.warning(f"Failed to record usage for API key {key_id}: {exc}")

    # Management

    def get(self, admin_user_id: str, key_id: str) -> ApiKey:
        key = self._repo.get_for_admin(key_id, admin_user_id)
        if key is None:
            raise NotFoundError('API key not found')
        return key

    def list_keys(self, admin_user_id: str, page: PageRequest, status: str = 'all') -> Dict[str, Any]:
        if status not in KEY_STATUSES:
            raise ValidationError(f"Invalid status. Allowed: {', '.join(KEY_STATUSES)}")
        keys = self._repo.list_for_admin(admin_user_id, status, page.sort, page.cursor, page.limit)
        return build_page(keys, page.limit, page.sort, page.cursor_token)

    def update(self, admin_user_id: str, key_id: str, payload: Any) -> ApiKey:
        changes = ApiKeyUpdate.parse(payload)
        key = self.get(admin_user_id, key_id)
        if key.revoked_at:
            raise ValidationError('Cannot update a revoked key')
        if changes.get('is_active') and key.rotation_grace_until:
            raise ValidationError('Cannot reactivate a rotated key')

        now = isoformat(self._clock())
        changes['updated_at'] = now
        if not self._repo.update_for_admin(key_id, admin_user_id, changes):
            raise ConflictError('API key was revoked while being updated')
        changed_fields = sorted(field for field in changes if field != 'updated_at')
        self._audit.record(key_id, 'updated', now, {'fields': changed_fields})
        logger.info(f"API key updated: {key.key_prefix}... fields={changed_fields}")
        return self.get(admin_user_id, key_id)

    def rotate(self, admin_user_id: str, key_id: str, grace_period_hours: Any = None,
               ip_address: Optional[str] = None) -> Dict[str, Any]:
        """Issue a successor key and retire the old one after an optional grace window."""
        if grace_period_hours is None:
            grace_period_hours = validators.DEFAULT_GRACE_PERIOD_HOURS
        valid, error = validators.validate_grace_period(grace_period_hours)
        if not valid:
            raise ValidationError(error, details={'field': 'grace_period_hours'})

        old = self.get(admin_user_id, key_id)
        if old.revoked_at:
            raise ValidationError('Cannot rotate a revoked key')
        if not old.is_active:
            raise ValidationError('Cannot rotate an inactive key')
        now = self._clock()
        if usability_error(old, now):
            raise ValidationError('Cannot rotate an expired key')

        name = (old.name + ROTATED_SUFFIX)[:validators.MAX_NAME_LENGTH]
        new_key, plaintext = self._store_new_key(
            admin_user_id,
            name,
            list(old.scopes),
            old.rate_limit_per_minute,
            old.expires_at,
            rotated_from_id=old.id,
        )

        grace_until = isoformat(now + timedelta(hours=grace_period_hours)) if grace_period_hours else None
        if not self._repo.deactivate_for_rotation(old.id, admin_user_id, isoformat(now), grace_until):
            self._abort_rotation(new_key, admin_user_id)
            raise ConflictError('API key changed during rotation; no changes were applied')

        self._audit.record(new_key.id, 'created', new_key.created_at,
                           {'name': new_key.name, 'rotated_from_id': old.id}, ip_address)
        self._audit.record(old.id, 'rotated', isoformat(now), {
            'new_key_id': new_key.id,
            'grace_period_hours': grace_period_hours,
            'grace_until': grace_until,
        }, ip_address)
        logger.info(f"API key rotated: {old.key_prefix}... -> {new_key.key_prefix}... grace={grace_period_hours}h")

        if grace_until:
            message = f'Old key will remain valid until {grace_until}'
        else:
            message = 'Old key has been immediately deactivated'
        new_key_data = new_key.to_dict()
        new_key_data['key'] = plaintext
        new_key_data['warning'] = SECRET_WARNING
        return {
            'new_key': new_key_data,
            'old_key': {'id': old.id, 'grace_until': grace_until, 'message': message},
        }

    def _abort_rotation(self, new_key: ApiKey, admin_user_id: str) -> None:
        now = isoformat(self._clock())
        try:
            self._repo.revoke(new_key.id, admin_user_id, now, 'Rotation aborted')
        except Exception as exc:
            logger.error(f"Failed to revoke successor key {new_key.key_prefix}... after aborted rotation: {exc}")
            raise InternalError('Rotation failed and the new key could not be revoked') from exc

    def revoke(self, admin_user_id: str, key_id: str, reason: Any = None,
               ip_address: Optional[str] = None) -> ApiKey:
        """Deactivate a key immediately, ending any grace window."""
        valid, error = validators.validate_reason(reason)
        if not valid:
            raise ValidationError(error, details={'field': 'reason'})
        if reason is not None:
            reason = reason.strip() or None

        key = self.get(admin_user_id, key_id)
        if key.revoked_at:
            return key

        now = isoformat(self._clock())
        if not self._repo.revoke(key_id, admin_user_id, now, reason):
            # Revoked by a concurrent request; report the stored state
            return self.get(admin_user_id, key_id)
        self._audit.record(key_id, 'revoked', now, {'reason': reason}, ip_address)
        logger.info(f"API key revoked: {key.key_prefix}... for admin {admin_user_id}")
        return self.get(admin_user_id, key_id)

    def audit_log(self, admin_user_id: str, key_id: str) -> List[ApiKeyAuditEvent]:
        self.get(admin_user_id, key_id)
        return self._audit.list_for_key(key_id)

    # Maintenance

    def sweep_expired_grace(self) -> int:
        """Finalize rotated keys whose grace window has passed."""
        now = isoformat(self._clock())
        finalized = 0
        for key in self._repo.list_grace_expired(now):
            if self._repo.finalize_rotation(key.id, now):
                self._audit.record(key.id, 'expired', now, {'grace_until': key.rotation_grace_until})
                finalized += 1
        if finalized:
            logger.info(f"Finalized {finalized} rotated API key(s) after grace period")
        return finalized

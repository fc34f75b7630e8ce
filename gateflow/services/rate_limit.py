from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from gateflow.services.base import RateLimitedError


@dataclass(frozen=True)
class RateLimitWindow:
    """State of one key's current window, reported in X-RateLimit-* headers."""
    limit: int
    remaining: int
    reset_at: int


class ApiKeyRateLimiter:
    """Fixed-window request allowance per API key, sized by the key's own limit."""

    def __init__(self, storage_uri: str = 'memory://', enabled: bool = True):
        self._limiter = FixedWindowRateLimiter(storage_from_string(storage_uri))
        self._enabled = enabled

    def hit(self, key_id: str, per_minute: int) -> Optional[RateLimitWindow]:
        if not self._enabled:
            return None
        allowed = self._limiter.hit(parse(f'{per_minute}/minute'), 'api_key', key_id)
        window = self.window(key_id, per_minute)
        if allowed:
            return window
        raise RateLimitedError(
            f'Rate limit exceeded. Maximum {per_minute} requests per minute.',
            retry_after=max(1, window.reset_at - int(time.time())),
        )

    def window(self, key_id: str, per_minute: int) -> RateLimitWindow:
        reset_time, remaining = self._limiter.get_window_stats(parse(f'{per_minute}/minute'), 'api_key', key_id)
        return RateLimitWindow(limit=per_minute, remaining=remaining, reset_at=int(reset_time))

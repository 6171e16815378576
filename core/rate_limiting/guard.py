"""
Ingress Guard

Decides, per request, whether the caller still has quota left:

    resolve rule -> resolve key -> consume -> allow | reject

Rule resolution, in priority order:
1. Exempt path prefix: no limiter, nothing consumed.
2. Longest matching path prefix from RATE_LIMIT_ROUTES.
3. Role quota from RATE_LIMIT_ROLE_QUOTAS, layered on the matched route: the
   role's budget applies, but counters stay separate per route. An
   ``unlimited`` role consumes nothing and reports unlimited headers.
4. Global default budget.

Limiters are created lazily and cached under a structured LimiterKey.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from django.http import HttpRequest

from .config import Quota, RateLimitConfig
from .identity import authenticated_user_id, quota_key, resolve_role
from .store import QuotaStore, build_quota_store

logger = logging.getLogger(__name__)


UNLIMITED_HEADER = "unlimited"


@dataclass(frozen=True)
class LimiterKey:
    """
    Cache key for a limiter.

    kind is one of ``default``, ``route``, ``role-route`` or ``role-global``;
    discriminator is the matched route prefix (empty when none).
    """

    kind: str
    discriminator: str = ""
    role: str = ""

    @property
    def namespace(self) -> str:
        parts = ["rl", self.kind]
        if self.role:
            parts.append(self.role)
        if self.discriminator:
            parts.append(self.discriminator)
        return ":".join(parts)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    limit: Optional[int] = None
    remaining: Optional[int] = None
    ms_before_next: int = 0
    reset_epoch: Optional[int] = None
    unlimited: bool = False

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.ms_before_next / 1000))

    def headers(self) -> Dict[str, str]:
        if self.unlimited:
            return {
                "X-RateLimit-Limit": UNLIMITED_HEADER,
                "X-RateLimit-Remaining": UNLIMITED_HEADER,
            }
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining or 0)) if self.allowed else "0",
        }
        if self.reset_epoch:
            headers["X-RateLimit-Reset"] = str(self.reset_epoch)
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    def __init__(
        self,
        quota: Quota,
        namespace: str,
        store: QuotaStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.quota = quota
        self.namespace = namespace
        self.store = store
        self._clock = clock

    def consume(self, key: str) -> Decision:
        hit = self.store.hit(f"{self.namespace}:{key}", self.quota.duration * 1000)
        reset_epoch = None
        if hit.ms_before_next:
            reset_epoch = math.floor((self._clock() * 1000 + hit.ms_before_next) / 1000)
        return Decision(
            allowed=hit.count <= self.quota.points,
            limit=self.quota.points,
            remaining=max(0, self.quota.points - hit.count),
            ms_before_next=hit.ms_before_next,
            reset_epoch=reset_epoch,
        )


class IngressGuard:
    """
    Example:
        >>> guard = IngressGuard(RateLimitConfig.from_settings())
        >>> decision = guard.check(request)
        >>> decision is None or decision.allowed
        True
    """

    def __init__(
        self,
        config: RateLimitConfig,
        store: Optional[QuotaStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.store = store if store is not None else build_quota_store(config.redis_url)
        self._clock = clock
        self._limiters: Dict[LimiterKey, RateLimiter] = {}
        # Routes sorted longest first so the first match is the longest prefix.
        self._routes: Tuple[Tuple[str, Quota], ...] = tuple(
            sorted(config.routes.items(), key=lambda item: len(item[0]), reverse=True)
        )

    def is_exempt(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.config.exempt_paths)

    def match_route(self, path: str) -> Optional[Tuple[str, Quota]]:
        for prefix, quota in self._routes:
            if path.startswith(prefix):
                return prefix, quota
        return None

    def limiter_for(self, key: LimiterKey, quota: Quota) -> RateLimiter:
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = RateLimiter(quota, key.namespace, self.store, clock=self._clock)
            self._limiters[key] = limiter
        return limiter

    def evict(self, key: LimiterKey) -> None:
        self._limiters.pop(key, None)

    def clear(self) -> None:
        self._limiters.clear()

    def select_limiter(self, path: str, role: str) -> Optional[RateLimiter]:
        """Return the limiter for this path and role, or None for unlimited roles."""
        route = self.match_route(path)
        role_quota = self.config.roles.get(role)

        if role_quota is not None:
            if role_quota.unlimited:
                return None
            if route is not None:
                key = LimiterKey("role-route", route[0], role)
            else:
                key = LimiterKey("role-global", "", role)
            return self.limiter_for(key, role_quota)

        if route is not None:
            return self.limiter_for(LimiterKey("route", route[0]), route[1])
        return self.limiter_for(LimiterKey("default"), self.config.default)

    def check(self, request: HttpRequest) -> Optional[Decision]:
        """
        Returns:
            None for exempt paths, otherwise the allow/reject Decision
        """
        path = request.path_info or request.path or "/"
        if self.is_exempt(path):
            return None

        user_id = authenticated_user_id(request)
        role = resolve_role(request, user_id)
        limiter = self.select_limiter(path, role)
        if limiter is None:
            return Decision(allowed=True, unlimited=True)

        key = quota_key(request, user_id, role, self.config.user_key_strategy)
        decision = limiter.consume(key)
        if not decision.allowed:
            logger.debug(
                "Rate limit exceeded key=%s limiter=%s retry_after=%s",
                key,
                limiter.namespace,
                decision.retry_after,
            )
        return decision

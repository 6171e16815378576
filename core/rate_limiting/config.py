"""
Rate Limit Configuration

Parses the ``RATE_LIMIT_*`` settings into an immutable RateLimitConfig that is
built once and handed to the IngressGuard. Malformed entries are skipped with a
warning; missing numbers fall back to the global defaults, matching how the
environment has always been interpreted.

Formats:
    RATE_LIMIT_EXEMPT             "/health,/static"
    RATE_LIMIT_ROUTES             "/api/auth/login:10/60;/api/auth/register:5/60"
    RATE_LIMIT_ROLE_QUOTAS        "free:50/60;pro:1000/60;admin:unlimited"
    RATE_LIMIT_USER_KEY_STRATEGY  "always" | "never" | "auth-only"
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from django.conf import settings

logger = logging.getLogger(__name__)


DEFAULT_POINTS = 100
DEFAULT_DURATION = 60

USER_KEY_ALWAYS = "always"
USER_KEY_NEVER = "never"
USER_KEY_AUTH_ONLY = "auth-only"
USER_KEY_STRATEGIES = (USER_KEY_ALWAYS, USER_KEY_NEVER, USER_KEY_AUTH_ONLY)


@dataclass(frozen=True)
class Quota:
    """A point budget replenished every ``duration`` seconds, or no limit at all."""

    points: int = DEFAULT_POINTS
    duration: int = DEFAULT_DURATION
    unlimited: bool = False


UNLIMITED = Quota(points=0, duration=0, unlimited=True)


@dataclass(frozen=True)
class RateLimitConfig:
    default: Quota = Quota()
    exempt_paths: Tuple[str, ...] = ()
    routes: Dict[str, Quota] = field(default_factory=dict)
    roles: Dict[str, Quota] = field(default_factory=dict)
    user_key_strategy: str = USER_KEY_AUTH_ONLY
    redis_url: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "RateLimitConfig":
        return cls.from_values(
            points=getattr(settings, "RATE_LIMIT_POINTS", DEFAULT_POINTS),
            duration=getattr(settings, "RATE_LIMIT_DURATION", DEFAULT_DURATION),
            exempt=getattr(settings, "RATE_LIMIT_EXEMPT", ""),
            routes=getattr(settings, "RATE_LIMIT_ROUTES", ""),
            roles=getattr(settings, "RATE_LIMIT_ROLE_QUOTAS", ""),
            user_key_strategy=getattr(settings, "RATE_LIMIT_USER_KEY_STRATEGY", USER_KEY_AUTH_ONLY),
            redis_url=getattr(settings, "REDIS_URL", None),
        )

    @classmethod
    def from_values(
        cls,
        *,
        points=DEFAULT_POINTS,
        duration=DEFAULT_DURATION,
        exempt="",
        routes="",
        roles="",
        user_key_strategy: str = USER_KEY_AUTH_ONLY,
        redis_url: Optional[str] = None,
    ) -> "RateLimitConfig":
        default = Quota(
            points=_positive_int(points, DEFAULT_POINTS),
            duration=_positive_int(duration, DEFAULT_DURATION),
        )
        strategy = (user_key_strategy or USER_KEY_AUTH_ONLY).strip().lower()
        if strategy not in USER_KEY_STRATEGIES:
            logger.warning("Unknown RATE_LIMIT_USER_KEY_STRATEGY %r, using auth-only", strategy)
            strategy = USER_KEY_AUTH_ONLY
        return cls(
            default=default,
            exempt_paths=parse_exempt_paths(exempt),
            routes=parse_route_quotas(routes, default),
            roles=parse_role_quotas(roles, default),
            user_key_strategy=strategy,
            redis_url=redis_url or None,
        )


def _positive_int(value, fallback: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def _split(raw, separator: str):
    if isinstance(raw, (list, tuple)):
        return [str(item).strip() for item in raw if str(item).strip()]
    return [part.strip() for part in (raw or "").split(separator) if part.strip()]


def parse_exempt_paths(raw) -> Tuple[str, ...]:
    return tuple(_split(raw, ","))


def _parse_quota(spec: str, default: Quota) -> Quota:
    points, _, duration = spec.partition("/")
    return Quota(
        points=_positive_int(points, default.points),
        duration=_positive_int(duration, default.duration),
    )


def _parse_entry(entry: str):
    # Split on the last colon so prefixes like "/api/v1:auth" survive.
    name, sep, spec = entry.rpartition(":")
    if not sep or not name.strip() or not spec.strip():
        logger.warning("Ignoring malformed rate limit entry %r", entry)
        return None, None
    return name.strip(), spec.strip()


def parse_route_quotas(raw, default: Quota) -> Dict[str, Quota]:
    routes: Dict[str, Quota] = {}
    for entry in _split(raw, ";"):
        path, spec = _parse_entry(entry)
        if path is None:
            continue
        routes[path] = _parse_quota(spec, default)
    return routes


def parse_role_quotas(raw, default: Quota) -> Dict[str, Quota]:
    roles: Dict[str, Quota] = {}
    for entry in _split(raw, ";"):
        role, spec = _parse_entry(entry)
        if role is None:
            continue
        if spec.lower() == "unlimited":
            roles[role] = UNLIMITED
        else:
            roles[role] = _parse_quota(spec, default)
    return roles

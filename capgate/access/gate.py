"""Origin-based access gate and CORS header computation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal
from urllib.parse import urlsplit

import structlog

from capgate.access.patterns import any_match, parse_allowed

if TYPE_CHECKING:
    from collections.abc import Mapping

    from capgate.config.settings import Settings

logger = structlog.get_logger(__name__)

GATED_PREFIXES = ("/api", "/widget")
# Server-to-server token checks carry no browser context.
EXEMPT_PATHS = frozenset({"/api/validate", "/api/verify"})

BASE_CORS_HEADERS = {
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str
    hostname: str | None = None


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value or None


def hostname_of(url: str | None) -> str | None:
    """Extract the hostname from an absolute URL, or None if it has none."""
    if not url:
        return None
    try:
        return urlsplit(url).hostname or None
    except ValueError:
        return None


class AccessGate:
    """Decides whether a request may reach gated paths and which CORS headers it gets.

    The allow-list is kept as the raw configuration string and parsed on
    use; parsing is cached per distinct string.
    """

    def __init__(
        self,
        allowed: str = "",
        empty_policy: Literal["deny", "allow"] = "deny",
    ) -> None:
        self._allowed_raw = allowed
        self._empty_policy = empty_policy

    @classmethod
    def from_settings(cls, settings: Settings) -> AccessGate:
        return cls(settings.allowed, settings.empty_allowlist_policy)

    @property
    def patterns(self) -> tuple[str, ...]:
        return parse_allowed(self._allowed_raw)

    @staticmethod
    def is_gated(path: str) -> bool:
        """True for paths under a gated prefix that are not exempt."""
        if path in EXEMPT_PATHS:
            return False
        return any(path == prefix or path.startswith(prefix + "/") for prefix in GATED_PREFIXES)

    def candidate_hostname(self, headers: Mapping[str, str]) -> str | None:
        """Hostname of the Referer, falling back to the Origin header."""
        url = _header(headers, "Referer") or _header(headers, "Origin")
        return hostname_of(url)

    def check(self, headers: Mapping[str, str]) -> AccessDecision:
        """Evaluate the allow-list against the request's Referer/Origin."""
        patterns = self.patterns
        if not patterns:
            if self._empty_policy == "allow":
                return AccessDecision(allowed=True, reason="empty_allowlist_open")
            return AccessDecision(allowed=False, reason="empty_allowlist")

        hostname = self.candidate_hostname(headers)
        if hostname is None:
            return AccessDecision(allowed=False, reason="missing_origin")
        if any_match(hostname, patterns):
            return AccessDecision(allowed=True, reason="matched", hostname=hostname)
        return AccessDecision(allowed=False, reason="not_allowed", hostname=hostname)

    def decide(self, path: str, headers: Mapping[str, str]) -> AccessDecision:
        """Full gate decision for a request path and its headers."""
        if path in EXEMPT_PATHS:
            return AccessDecision(allowed=True, reason="exempt")
        if not self.is_gated(path):
            return AccessDecision(allowed=True, reason="ungated")
        decision = self.check(headers)
        if not decision.allowed:
            logger.info(
                "access_denied", path=path, reason=decision.reason, hostname=decision.hostname
            )
        return decision

    def cors_headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        """CORS response headers for a request.

        Only the Origin header is considered. A matching Origin is echoed back
        verbatim together with ``Vary: Origin``; nothing is advertised when the
        allow-list is empty.
        """
        result = dict(BASE_CORS_HEADERS)
        patterns = self.patterns
        if not patterns:
            return result

        origin = _header(headers, "Origin")
        hostname = hostname_of(origin)
        if origin and hostname and any_match(hostname, patterns):
            result["Access-Control-Allow-Origin"] = origin
            result["Vary"] = "Origin"
        return result

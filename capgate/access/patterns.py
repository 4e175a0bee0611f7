"""Hostname allow-list patterns: exact names and ``*.domain`` wildcards."""

from __future__ import annotations

from functools import lru_cache

WILDCARD_PREFIX = "*."
_STRIP_CHARS = "'\""


def _label_count(name: str) -> int:
    return len(name.split("."))


def matches(hostname: str, pattern: str) -> bool:
    """Return True if ``hostname`` satisfies ``pattern``.

    ``*.example.com`` matches any strict subdomain (``a.example.com``,
    ``a.b.example.com``) but neither the apex ``example.com`` nor look-alikes
    such as ``evilexample.com``. Anything else is compared exactly and
    case-sensitively. Malformed patterns never match.
    """
    if not hostname or not pattern:
        return False
    if pattern.startswith(WILDCARD_PREFIX):
        domain = pattern[len(WILDCARD_PREFIX) :]
        if not domain:
            return False
        return hostname.endswith("." + domain) and _label_count(hostname) > _label_count(domain)
    return hostname == pattern


@lru_cache(maxsize=32)
def parse_allowed(raw: str) -> tuple[str, ...]:
    """Split a comma-separated allow-list into patterns.

    Quote characters are removed, entries are trimmed, and empty entries are
    dropped. Results are cached per raw string.
    """
    cleaned = raw.translate({ord(c): None for c in _STRIP_CHARS})
    return tuple(entry.strip() for entry in cleaned.split(",") if entry.strip())


def any_match(hostname: str, patterns: tuple[str, ...]) -> bool:
    return any(matches(hostname, pattern) for pattern in patterns)

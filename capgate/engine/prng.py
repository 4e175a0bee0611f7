"""Seeded hex generator shared with the Cap widget.

The widget derives every salt and target from the challenge token with this
exact function, so the server only has to store the seed parameters.
"""

from __future__ import annotations

_MASK = 0xFFFFFFFF
_FNV_OFFSET = 2166136261


def fnv1a(text: str) -> int:
    """32-bit FNV-1a hash."""
    value = _FNV_OFFSET
    for char in text:
        value ^= ord(char)
        value += (value << 1) + (value << 4) + (value << 7) + (value << 8) + (value << 24)
        value &= _MASK
    return value


def prng(seed: str, length: int) -> str:
    """Deterministic hex string of ``length`` chars from a xorshift32 stream."""
    state = fnv1a(seed)
    chunks: list[str] = []
    produced = 0
    while produced < length:
        state ^= (state << 13) & _MASK
        state ^= state >> 17
        state ^= (state << 5) & _MASK
        chunks.append(format(state, "08x"))
        produced += 8
    return "".join(chunks)[:length]

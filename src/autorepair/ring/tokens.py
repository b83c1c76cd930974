"""Tokens, token ranges and repair assignments.

The partitioner ring is the Murmur3 token space ``[-2**63, 2**63 - 1]``
treated as modular: ``2**64`` positions, arithmetic wraps.  A
:class:`TokenRange` is the half-open interval ``[start, end)`` walking
forward from ``start``; when ``end <= start`` the walk wraps past the
maximum token, and ``start == end`` covers the whole ring.

::

    MIN ──────────── start ═══════════════ end ──────────── MAX
                        [ sub0 )[ sub1 )[ sub2 )

    MIN ══ end ───────────────────────────── start ═════════ MAX
        (wrapping range: start ... MAX, MIN ... end)

Tags:
    autorepair, ring, tokens, murmur3, split
"""

from __future__ import annotations

from dataclasses import dataclass

MIN_TOKEN = -(2**63)
MAX_TOKEN = 2**63 - 1
RING_SIZE = 2**64


def _wrap(token: int) -> int:
    """Normalize an integer onto the ring."""
    return (token - MIN_TOKEN) % RING_SIZE + MIN_TOKEN


@dataclass(frozen=True, order=True)
class TokenRange:
    """Half-open range ``[start, end)`` on the token ring."""

    start: int
    end: int

    def __post_init__(self) -> None:
        for name, value in (("start", self.start), ("end", self.end)):
            if not MIN_TOKEN <= value <= MAX_TOKEN:
                raise ValueError(f"Token {name}={value} outside ring [{MIN_TOKEN}, {MAX_TOKEN}]")

    @property
    def width(self) -> int:
        """Number of tokens covered."""
        if self.start == self.end:
            return RING_SIZE
        return (self.end - self.start) % RING_SIZE

    @property
    def wraps(self) -> bool:
        return self.end <= self.start

    def contains(self, token: int) -> bool:
        return (token - self.start) % RING_SIZE < self.width

    def __str__(self) -> str:
        return f"[{self.start}, {self.end})"


@dataclass(frozen=True)
class RepairAssignment:
    """One unit of dispatchable repair work: a range of one keyspace's tables."""

    token_range: TokenRange
    keyspace: str
    tables: tuple[str, ...]


def split_evenly(token_range: TokenRange, parts: int) -> list[TokenRange]:
    """Split ``token_range`` into ``parts`` contiguous sub-ranges.

    Sub-range sizes differ by at most one token; the remainder goes to
    the earliest sub-ranges.  A range narrower than ``parts`` tokens is
    split into single-token sub-ranges, since a sub-range may not be
    empty.

    Raises:
        ValueError: if ``parts < 1``.
    """
    if parts < 1:
        raise ValueError(f"parts must be >= 1, got {parts}")

    width = token_range.width
    parts = min(parts, width)
    if parts == 1:
        return [token_range]

    base, remainder = divmod(width, parts)
    result = []
    offset = 0
    for i in range(parts):
        size = base + 1 if i < remainder else base
        start = _wrap(token_range.start + offset)
        offset += size
        end = token_range.end if i == parts - 1 else _wrap(token_range.start + offset)
        result.append(TokenRange(start, end))
    return result

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from seekguard.core.errors import RangeNotSatisfiable

_RANGE_RE = re.compile(r"bytes=([0-9]*)-([0-9]*)")


@dataclass(frozen=True)
class ByteSpan:
    """Inclusive byte offsets of a single transfer: 0 <= start <= end < size."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @classmethod
    def whole(cls, size: int) -> "ByteSpan":
        return cls(0, size - 1)

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


def parse_range_header(range_header: str, *, size: int) -> Optional[ByteSpan]:
    """
    Parse a single `bytes=<start>-<end>` range against a resource of `size` bytes.

    Returns None when both bounds are omitted (treated as no range at all).
    An omitted end runs to the last byte. Suffix ranges (`bytes=-N`) are not
    supported and are rejected like any other malformed header.
    Raises RangeNotSatisfiable carrying `size` on any rejection.
    """
    match = _RANGE_RE.fullmatch(range_header.strip())
    if match is None:
        raise RangeNotSatisfiable(size, "malformed range")

    start_s, end_s = match.groups()
    if not start_s and not end_s:
        return None
    if not start_s:
        raise RangeNotSatisfiable(size, "suffix ranges not supported")

    try:
        start = int(start_s)
        end = int(end_s) if end_s else size - 1
    except ValueError:
        # bounds too long to convert are necessarily past the end
        raise RangeNotSatisfiable(size, "range out of bounds")

    if start < 0 or start > end or end >= size:
        raise RangeNotSatisfiable(size, "range out of bounds")

    return ByteSpan(start, end)

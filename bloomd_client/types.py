"""Filter summaries returned by ``list`` and ``info``."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BloomFilter:
    """One row of a ``list`` response."""

    name: str
    capacity: int = 0
    probability: float = 0.0
    size: int = 0
    storage: int = 0  # bytes


@dataclass(frozen=True)
class VerboseBloomFilter(BloomFilter):
    """Result of ``info``: the summary plus the daemon's counters."""

    checks: int = 0
    check_hits: int = 0
    check_misses: int = 0
    page_ins: int = 0
    page_outs: int = 0
    sets: int = 0
    set_hits: int = 0
    set_misses: int = 0

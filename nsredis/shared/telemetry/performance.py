"""In-process performance counters for one client instance."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any


@dataclass
class PerformanceStats:
    """Accumulating counters; reset only by reset()."""

    operation_count: int = 0
    slow_operation_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    fingerprint_collisions: int = 0
    compression_count: int = 0
    compression_time_ms: float = 0.0
    decompression_count: int = 0
    decompression_time_ms: float = 0.0

    def record_operation(self, slow: bool = False) -> None:
        self.operation_count += 1
        if slow:
            self.slow_operation_count += 1

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_cache_miss(self, collision: bool = False) -> None:
        self.cache_misses += 1
        if collision:
            self.fingerprint_collisions += 1

    def record_compression(self, elapsed_ms: float) -> None:
        self.compression_count += 1
        self.compression_time_ms += elapsed_ms

    def record_decompression(self, elapsed_ms: float) -> None:
        self.decompression_count += 1
        self.decompression_time_ms += elapsed_ms

    @property
    def cache_hit_rate(self) -> float:
        """Hit rate as a percentage (0.0 when nothing was looked up)."""
        lookups = self.cache_hits + self.cache_misses
        return (self.cache_hits / lookups * 100.0) if lookups else 0.0

    @property
    def avg_compression_time_ms(self) -> float:
        return self.compression_time_ms / self.compression_count if self.compression_count else 0.0

    @property
    def avg_decompression_time_ms(self) -> float:
        if not self.decompression_count:
            return 0.0
        return self.decompression_time_ms / self.decompression_count

    def as_dict(self) -> dict[str, Any]:
        """Counters plus derived rates, rounded for display."""
        data: dict[str, Any] = {f.name: getattr(self, f.name) for f in fields(self)}
        data["compression_time_ms"] = round(self.compression_time_ms, 3)
        data["decompression_time_ms"] = round(self.decompression_time_ms, 3)
        data["cache_hit_rate"] = round(self.cache_hit_rate, 2)
        data["avg_compression_time_ms"] = round(self.avg_compression_time_ms, 3)
        data["avg_decompression_time_ms"] = round(self.avg_decompression_time_ms, 3)
        return data

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, f.default)

"""Progress markers emitted during a check cycle."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenchmarkMarker:
    message: str
    elapsed_seconds: float


@dataclass
class Benchmark:
    """
    Observational sink for human-readable progress markers.

    Markers are logged at DEBUG level and kept in order so hosts can show
    how far a cycle got. Nothing reads them back to make decisions.
    """

    started: float = field(default_factory=time.perf_counter)
    markers: list[BenchmarkMarker] = field(default_factory=list)

    def measure(self, message: str) -> BenchmarkMarker:
        marker = BenchmarkMarker(message=message, elapsed_seconds=time.perf_counter() - self.started)
        self.markers.append(marker)
        logger.debug("%s (+%.3fs)", message, marker.elapsed_seconds)
        return marker

    @property
    def elapsed_seconds(self) -> float:
        return time.perf_counter() - self.started

    def messages(self) -> list[str]:
        return [marker.message for marker in self.markers]

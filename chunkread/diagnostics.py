"""
Timing hooks around row fetches. Disabled profilers do nothing.
"""

import time
from typing import Any, Dict, Optional


class AdvanceProfiler:
    """Accumulates time spent fetching rows from the driver"""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self.advance_calls = 0
        self.elapsed_ns = 0

    def start(self) -> Optional[int]:
        if not self.enabled:
            return None
        return time.perf_counter_ns()

    def stop(self, started_at: Optional[int]):
        if started_at is None:
            return
        self.elapsed_ns += time.perf_counter_ns() - started_at
        self.advance_calls += 1

    @property
    def seconds(self) -> float:
        return self.elapsed_ns / 1e9

    def summary(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'advance_calls': self.advance_calls,
            'seconds': self.seconds,
        }

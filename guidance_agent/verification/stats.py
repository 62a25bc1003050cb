"""Per-process verification counters.

One ``VerificationStats`` is created at process start and injected into the
verifier. Counts live only as long as the process: each serverless or
multi-instance replica keeps its own, so these are per-instance figures, not
fleet-wide totals.
"""

from __future__ import annotations

import threading

from guidance_agent.verification.models import Decision, StatsSnapshot


class VerificationStats:
    """Thread-safe decision counters and a running mean of processing time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._counts = {decision: 0 for decision in Decision}
        self._mean_ms = 0.0

    def record(self, decision: Decision, processing_time_ms: float) -> None:
        """Count one finished verification."""
        with self._lock:
            self._total += 1
            self._counts[decision] += 1
            # Incremental mean; avoids keeping a running sum.
            self._mean_ms += (processing_time_ms - self._mean_ms) / self._total

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            total = self._total
            counts = dict(self._counts)
            mean_ms = self._mean_ms
        percentages = {
            decision: round(count / total * 100, 1) if total else 0.0
            for decision, count in counts.items()
        }
        return StatsSnapshot(
            total=total,
            counts=counts,
            percentages=percentages,
            mean_processing_time_ms=mean_ms,
        )

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._counts = {decision: 0 for decision in Decision}
            self._mean_ms = 0.0

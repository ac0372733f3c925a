"""
Performance monitoring utilities for the drift detection pipeline.

Tracks per-stage timing (merchant resolution, recurrence detection, price
change detection) and the item counts each stage produced, and logs them at
a level that reflects how slow the run was.
"""

import time
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

WARN_THRESHOLD_MS = 10000
ERROR_THRESHOLD_MS = 30000


@dataclass
class PipelineMetrics:
    """Container for pipeline run performance metrics."""
    operation_name: str
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    elapsed_ms: Optional[float] = None
    stage_ms: Dict[str, float] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)

    def finish(self):
        """Mark the operation as finished and calculate elapsed time."""
        self.end_time = time.time()
        self.elapsed_ms = (self.end_time - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        return {
            'operation_name': self.operation_name,
            'elapsed_ms': self.elapsed_ms,
            'stage_ms': dict(self.stage_ms),
            'counts': dict(self.counts),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    def log_metrics(self):
        """Log the performance metrics."""
        metrics = self.to_dict()
        elapsed = self.elapsed_ms or 0.0

        if elapsed > ERROR_THRESHOLD_MS:
            logger.error(
                f"SLOW PIPELINE RUN: {self.operation_name} took {elapsed:.2f}ms",
                extra={'pipeline_metrics': metrics}
            )
        elif elapsed > WARN_THRESHOLD_MS:
            logger.warning(
                f"Slow pipeline run: {self.operation_name} took {elapsed:.2f}ms",
                extra={'pipeline_metrics': metrics}
            )
        else:
            logger.info(
                f"Pipeline run completed: {self.operation_name} in {elapsed:.2f}ms",
                extra={'pipeline_metrics': metrics}
            )

        if self.stage_ms:
            breakdown = ', '.join(f"{name}: {ms:.2f}ms" for name, ms in self.stage_ms.items())
            logger.debug(
                f"Pipeline breakdown for {self.operation_name}: {breakdown}",
                extra={'pipeline_metrics': metrics}
            )


class PipelinePerformanceTracker:
    """
    Context manager for pipeline performance tracking.

    Usage:
        with PipelinePerformanceTracker("ingest_csv") as tracker:
            with tracker.stage('merchant_resolution'):
                resolve_all(transactions)
            tracker.set_count('transactions', len(transactions))
    """

    def __init__(self, operation_name: str):
        self.metrics = PipelineMetrics(operation_name=operation_name)

    def __enter__(self):
        logger.info(f"Starting pipeline run: {self.metrics.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.metrics.finish()
        self.metrics.log_metrics()

    @contextmanager
    def stage(self, stage_name: str) -> Iterator[None]:
        """Time one stage; the elapsed time is recorded even if it raises."""
        start_time = time.time()
        logger.debug(f"Starting stage: {stage_name}")
        try:
            yield
        finally:
            elapsed_ms = (time.time() - start_time) * 1000
            self.metrics.stage_ms[stage_name] = elapsed_ms
            logger.debug(f"Completed stage {stage_name} in {elapsed_ms:.2f}ms")

    def set_count(self, name: str, count: int):
        """Record an item count produced by the run."""
        self.metrics.counts[name] = count

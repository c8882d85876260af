import time
import logging
from typing import Dict, Optional
from contextlib import contextmanager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO"):
    """Configure root logging once for the API process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class LatencyTracker:
    """Tracks execution latency for outbound calls and pipeline steps."""

    def __init__(self):
        self.measurements: Dict[str, float] = {}

    @contextmanager
    def measure(self, operation_name: str):
        """Context manager to measure operation latency."""
        start_time = time.time()
        try:
            yield
        finally:
            duration_ms = (time.time() - start_time) * 1000
            self.measurements[operation_name] = duration_ms
            logger.info(f"{operation_name} completed in {duration_ms:.2f}ms")

    def get_measurement(self, operation_name: str) -> Optional[float]:
        """Get latency measurement for an operation."""
        return self.measurements.get(operation_name)

    def get_all_measurements(self) -> Dict[str, float]:
        return self.measurements.copy()

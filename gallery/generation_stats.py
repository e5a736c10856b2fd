"""
GenerationStats - Statistics for a pregeneration run.
"""

import time
from dataclasses import dataclass, field
from typing import List


@dataclass
class GenerationStats:
    """
    Statistics for a pregeneration run.

    Attributes:
        queued: Pictures waiting when the run started
        pictures: Pictures taken off the queue
        generated: Thumbnails generated
        skipped: Tiers already cached
        errors: Pictures that failed to generate
        batches: Batches processed
        bytes_generated: Total bytes of thumbnails generated
        start_time: Start timestamp
        error_details: List of error messages
    """
    queued: int = 0
    pictures: int = 0
    generated: int = 0
    skipped: int = 0
    errors: int = 0
    batches: int = 0
    bytes_generated: int = 0
    start_time: float = field(default_factory=time.time)
    error_details: List[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        """Elapsed time in seconds."""
        return time.time() - self.start_time

    @property
    def rate_per_minute(self) -> float:
        """Generation rate in thumbnails per minute."""
        elapsed = self.elapsed_seconds
        if elapsed > 0:
            return self.generated / elapsed * 60
        return 0.0

    @property
    def remaining_count(self) -> int:
        """Pictures still queued."""
        return max(0, self.queued - self.pictures)

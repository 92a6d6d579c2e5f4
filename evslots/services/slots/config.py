# evslots/services/slots/config.py
"""
Tunables for slot synchronization and booking.
"""

from dataclasses import dataclass

from ...config import Settings


@dataclass(frozen=True)
class SyncConfig:
    """
    Configuration for SyncEngine / BookingService.

    Attributes:
        poll_interval: Seconds between background fetches (shorter = lower
                       perceived latency, longer = less backend load)
        stale_grace: Re-deliver the cached snapshot to observers when the
                     store has been unreachable and nobody was notified for
                     this many seconds. None disables re-delivery.
        commit_attempts: How many times a booking operation restarts after
                         the store reports a concurrent write
    """
    poll_interval: float = 3.0
    stale_grace: float | None = 30.0
    commit_attempts: int = 3

    def __post_init__(self):
        """Validate configuration."""
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.stale_grace is not None and self.stale_grace < 0:
            raise ValueError(f"stale_grace must be >= 0, got {self.stale_grace}")
        if self.commit_attempts < 1:
            raise ValueError(f"commit_attempts must be >= 1, got {self.commit_attempts}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        return cls(
            poll_interval=settings.poll_interval,
            stale_grace=settings.stale_grace,
        )

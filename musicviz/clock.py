"""
Playback position estimation from sparse player samples.

A remote player only tells us where it was at the moment we asked.
Between polls we extrapolate at unit rate, the same way the synced
viewer derives its cursor: position at capture + wall time elapsed.
A paused player stays put.
"""

import threading
import time
from typing import NamedTuple, Optional


class PlaybackSample(NamedTuple):
    """One report from the player.

    position:    seconds from track start at the time of the report
    captured_at: estimator clock reading (seconds) when the report was valid
    is_playing:  False while paused/stopped
    """
    position: float
    captured_at: float
    is_playing: bool


def estimate_position(sample: PlaybackSample, now: float) -> float:
    """Current position in seconds, never negative."""
    if not sample.is_playing:
        return max(0.0, sample.position)
    return max(0.0, sample.position + (now - sample.captured_at))


class PositionEstimator:
    """Holds the latest sample; older ones are simply replaced.

    update() runs on the poller thread, estimate() on the render thread.
    """

    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self._sample = None
        self._lock = threading.Lock()

    @property
    def sample(self) -> Optional[PlaybackSample]:
        with self._lock:
            return self._sample

    def update(self, sample: PlaybackSample):
        with self._lock:
            self._sample = sample

    def report(self, position: float, is_playing: bool, captured_at: Optional[float] = None):
        """Record a raw (position, playing) pair, stamped now unless given."""
        if captured_at is None:
            captured_at = self.clock()
        self.update(PlaybackSample(float(position), float(captured_at), bool(is_playing)))

    def clear(self):
        with self._lock:
            self._sample = None

    def estimate(self, now: Optional[float] = None) -> Optional[float]:
        """Estimated position, or None if no sample has arrived yet."""
        sample = self.sample
        if sample is None:
            return None
        if now is None:
            now = self.clock()
        return estimate_position(sample, now)

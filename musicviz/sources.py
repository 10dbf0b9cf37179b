"""
Signal sources and mode selection.

A loaded track drives the bars from exactly one source:

  LiveFrequency(chain)           preview clip played locally, real FFT
  BeatPulse(schedule, estimator) remote player, beat times + polled position
  Idle()                         nothing usable, bars sit at minimum height

The render driver dispatches on source.mode once per frame.
"""

from enum import Enum
from typing import NamedTuple, Optional, Tuple

from musicviz.beats import BeatSchedule
from musicviz.clock import PositionEstimator


class Mode(Enum):
    LIVE_FREQUENCY = 'live'
    BEAT_PULSE = 'beats'
    IDLE = 'idle'


class TrackInfo(NamedTuple):
    id: str
    name: str = ''
    artists: Tuple[str, ...] = ()
    album_art: str = ''
    preview_url: Optional[str] = None
    uri: Optional[str] = None
    duration: float = 0.0

    @property
    def artist_line(self) -> str:
        return ', '.join(self.artists)

    @property
    def label(self) -> str:
        if self.artists:
            return f"{self.name} - {self.artist_line}"
        return self.name or self.id


class PlayerState(NamedTuple):
    """What a player reports about itself at one instant."""
    track_id: Optional[str]
    position: float
    is_playing: bool


class LiveFrequency:
    mode = Mode.LIVE_FREQUENCY

    def __init__(self, chain):
        self.chain = chain

    def __repr__(self):
        return f"LiveFrequency(built={self.chain.built})"


class BeatPulse:
    mode = Mode.BEAT_PULSE

    def __init__(self, schedule: BeatSchedule, estimator: PositionEstimator):
        self.schedule = schedule
        self.estimator = estimator

    def with_schedule(self, schedule: BeatSchedule) -> 'BeatPulse':
        """Same position tracking, new beat list."""
        return BeatPulse(schedule, self.estimator)

    def __repr__(self):
        return f"BeatPulse({self.schedule!r})"


class Idle:
    mode = Mode.IDLE

    def __repr__(self):
        return "Idle()"


IDLE = Idle()


def select_mode(track: Optional[TrackInfo], remote_available: bool) -> Mode:
    """Pick the source kind for a track.

    A decodable preview wins (sample-accurate). Otherwise a remote player
    can be followed with a beat schedule. Otherwise idle.
    """
    if track is None:
        return Mode.IDLE
    if track.preview_url:
        return Mode.LIVE_FREQUENCY
    if remote_available:
        return Mode.BEAT_PULSE
    return Mode.IDLE

"""
PlaybackSession: the state the render loop reads every frame.

Writers (each owns its field):
  track selection   -> active track + source   (load_*)
  beat fetch thread -> beat schedule           (apply_beats)
  player poller     -> latest position sample  (apply_player_state)

The render tick takes one snapshot() at the top and never sees a
half-switched track. Schedules are replaced, never edited.

Beat fetches are not cancelled when the user switches tracks. Instead the
result is tagged with the track id it was requested for, and apply_beats()
drops it unless that track is still the active one.
"""

import logging
import threading
import time
from typing import NamedTuple, Optional

from musicviz.beats import BeatSchedule
from musicviz.clock import PositionEstimator
from musicviz.config import POLL_INTERVAL
from musicviz.sources import IDLE, BeatPulse, LiveFrequency, Mode, PlayerState, TrackInfo

logger = logging.getLogger(__name__)


class FrameSnapshot(NamedTuple):
    track_id: Optional[str]
    source: object


class PlaybackSession:
    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self._lock = threading.Lock()
        self._track = None
        self._source = IDLE

    @property
    def track(self) -> Optional[TrackInfo]:
        with self._lock:
            return self._track

    @property
    def mode(self) -> Mode:
        with self._lock:
            return self._source.mode

    def snapshot(self) -> FrameSnapshot:
        with self._lock:
            track_id = self._track.id if self._track is not None else None
            return FrameSnapshot(track_id, self._source)

    def _load(self, track, source):
        with self._lock:
            self._track = track
            self._source = source
        logger.info("[session] %s -> %s", track.label if track else '(none)', source.mode.value)
        return source

    def load_live(self, track: TrackInfo, chain) -> LiveFrequency:
        return self._load(track, LiveFrequency(chain))

    def load_beat_pulse(self, track: TrackInfo) -> BeatPulse:
        """Fresh position tracking and an empty schedule until beats arrive."""
        source = BeatPulse(BeatSchedule.empty(track.id), PositionEstimator(self.clock))
        return self._load(track, source)

    def load_idle(self, track: Optional[TrackInfo] = None):
        return self._load(track, IDLE)

    def apply_beats(self, track_id, schedule: BeatSchedule) -> bool:
        """Install a fetched schedule if track_id is still the active beat track."""
        with self._lock:
            active = self._track.id if self._track is not None else None
            source = self._source
            if track_id != active or source.mode is not Mode.BEAT_PULSE:
                stale = True
            else:
                self._source = source.with_schedule(schedule)
                stale = False
        if stale:
            logger.info("[beats] dropped late schedule for %s (active: %s)", track_id, active)
            return False
        return True

    def apply_player_state(self, state: PlayerState, captured_at: Optional[float] = None) -> bool:
        """Feed a player report to the active estimator.

        Ignored outside beat-pulse mode, when the player reports a different
        track (it has not switched over yet), and when it reports no track
        at all (an ad or an episode is playing).
        """
        snapshot = self.snapshot()
        source = snapshot.source
        if source.mode is not Mode.BEAT_PULSE:
            return False
        if state.track_id is None or state.track_id != snapshot.track_id:
            logger.debug("[player] report for %s ignored (active: %s)",
                         state.track_id, snapshot.track_id)
            return False
        source.estimator.report(state.position, state.is_playing, captured_at)
        return True


class PlayerStatePoller:
    """Background thread asking a player for its state every interval seconds.

    Each sample is stamped at the midpoint of the request's round trip.
    A failed query leaves the last sample in place; the estimator keeps
    extrapolating from it.
    """

    def __init__(self, session: PlaybackSession, state_fn, interval: float = POLL_INTERVAL,
                 clock=None):
        self.session = session
        self.state_fn = state_fn
        self.interval = interval
        self.clock = clock or session.clock
        self.failures = 0
        self.polls = 0
        self._stop = threading.Event()
        self._thread = None

    def poll_once(self) -> bool:
        t0 = self.clock()
        try:
            state = self.state_fn()
        except Exception as e:
            self.failures += 1
            if self.failures == 1:
                logger.warning("[player] state query failed: %s", e)
            else:
                logger.debug("[player] state query failed (%d in a row): %s", self.failures, e)
            return False
        t1 = self.clock()

        self.polls += 1
        if self.failures:
            logger.info("[player] state query recovered after %d failures", self.failures)
            self.failures = 0
        if state is None:
            return False
        return self.session.apply_player_state(state, captured_at=(t0 + t1) / 2.0)

    def _run(self):
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.interval)

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name='player-poller', daemon=True)
        self._thread.start()

    def stop(self, timeout=2.0, wait=True):
        """Signal the thread to finish; with wait=False return without joining."""
        self._stop.set()
        thread, self._thread = self._thread, None
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

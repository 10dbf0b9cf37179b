"""
Beat schedule and pulse strength.

When all we have is a remote player (no local samples to analyze), the
visual pulse comes from a precomputed list of beat times instead of a
detector. Each frame we look up the estimated playback position in the
schedule and light up by proximity to the nearest beat:

    strength = max(0, 1 - dist * falloff)

With falloff = 4 a pulse fully fades within 0.25s either side of a beat.
This is a linear decay from absolute timestamps, no BPM involved.

Beat times come from the API's audio analysis (beats[].start) or, for
local files, from librosa's beat tracker.
"""

import logging

import numpy as np

from musicviz.config import NEXT_BEAT_FALLBACK, PULSE_FALLOFF

logger = logging.getLogger(__name__)


class BeatSchedule:
    """Immutable, strictly increasing beat times (seconds from track start).

    Replace a schedule when new data arrives; never mutate one in place.
    """

    def __init__(self, times=(), track_id=None):
        times = np.array(times, dtype=np.float64).reshape(-1)
        if len(times):
            if not np.all(np.isfinite(times)) or times[0] < 0:
                raise ValueError("beat times must be finite and non-negative")
            if np.any(np.diff(times) <= 0):
                raise ValueError("beat times must be strictly increasing")
        times.setflags(write=False)
        self.times = times
        self.track_id = track_id

    @classmethod
    def empty(cls, track_id=None):
        return cls((), track_id=track_id)

    @classmethod
    def from_analysis(cls, payload, track_id=None):
        """Build from an audio-analysis payload: {'beats': [{'start': s}, ...]}.

        External data is cleaned rather than rejected: entries without a
        numeric start or with a negative one are dropped, the rest sorted
        and de-duplicated.
        """
        raw = (payload or {}).get('beats') or []
        starts = []
        for beat in raw:
            start = beat.get('start') if isinstance(beat, dict) else None
            if isinstance(start, (int, float)) and np.isfinite(start) and start >= 0:
                starts.append(float(start))
        times = np.unique(np.array(starts, dtype=np.float64))
        dropped = len(raw) - len(times)
        if dropped:
            logger.debug("[beats] %s: dropped %d unusable beat entries", track_id, dropped)
        return cls(times, track_id=track_id)

    def __len__(self):
        return len(self.times)

    def __bool__(self):
        return len(self.times) > 0

    def __repr__(self):
        return f"BeatSchedule(track_id={self.track_id!r}, beats={len(self.times)})"

    @property
    def bpm(self) -> float:
        """Median tempo implied by the schedule, or 0 if fewer than 2 beats."""
        if len(self.times) < 2:
            return 0.0
        return 60.0 / float(np.median(np.diff(self.times)))

    def pulse(self, position, falloff=PULSE_FALLOFF) -> float:
        return pulse_strength(self, position, falloff)


def pulse_strength(beats, position, falloff=PULSE_FALLOFF) -> float:
    """Pulse intensity in [0, 1] at a playback position.

    Args:
        beats: BeatSchedule or sorted sequence of beat times.
        position: playback position in seconds, or None when unknown.
        falloff: 1/seconds; strength reaches 0 at dist >= 1/falloff.
    """
    times = beats.times if isinstance(beats, BeatSchedule) else np.asarray(beats, dtype=np.float64)
    if position is None or len(times) == 0:
        return 0.0

    # First beat >= position
    i = int(np.searchsorted(times, position, side='left'))
    prev = float(times[i - 1]) if i > 0 else 0.0
    nxt = float(times[i]) if i < len(times) else prev + NEXT_BEAT_FALLBACK

    dist = min(abs(position - prev), abs(nxt - position))
    return max(0.0, 1.0 - dist * falloff)


def track_beats(samples, sample_rate, track_id=None, hop_length=512):
    """Beat schedule for decoded mono audio via librosa's beat tracker."""
    import librosa

    samples = np.asarray(samples, dtype=np.float32)
    if samples.size == 0:
        return BeatSchedule.empty(track_id)

    onset_env = librosa.onset.onset_strength(y=samples, sr=sample_rate, hop_length=hop_length)
    tempo, beat_frames = librosa.beat.beat_track(
        onset_envelope=onset_env, sr=sample_rate, hop_length=hop_length
    )
    beat_times = librosa.frames_to_time(beat_frames, sr=sample_rate, hop_length=hop_length)
    if isinstance(tempo, np.ndarray):
        tempo = float(tempo[0]) if len(tempo) > 0 else 0.0
    logger.info("[beats] tracked %d beats (%.1f BPM)", len(beat_times), float(tempo))
    return BeatSchedule(np.unique(beat_times), track_id=track_id)

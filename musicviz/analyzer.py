"""
Live frequency analysis of a locally played clip.

The playback callback feeds every chunk it sends to the speakers into a
FrequencyAnalyzer, and the render loop pulls one smoothed magnitude frame
per tick. The analyzer behaves like a browser analyser node:

  - Blackman window over the latest fft_size samples (2048)
  - magnitude / fft_size, exponentially smoothed per bin (0.85)
  - dB, mapped linearly from [min_db, max_db] onto 0-255

Bars pick every Nth bin (step = bins // bars); no averaging.

Audio output is gated behind a user gesture: ensure() does nothing until
unlock() has been called from a user action handler. That keeps the
same contract as a browser audio context, and means nothing opens a
sound device just because a track was listed.
"""

import io
import logging
import threading
from typing import Optional

import numpy as np

from musicviz.config import (
    CHUNK_SIZE, FFT_SIZE, MAX_DECIBELS, MIN_DECIBELS, SAMPLE_RATE, SMOOTHING, VOLUME,
)
from musicviz.sources import PlayerState

logger = logging.getLogger(__name__)


class FrequencyAnalyzer:
    """Smoothed, byte-scaled magnitude spectrum of the most recent samples."""

    def __init__(self, fft_size: int = FFT_SIZE, smoothing: float = SMOOTHING,
                 min_db: float = MIN_DECIBELS, max_db: float = MAX_DECIBELS):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing}")
        if max_db <= min_db:
            raise ValueError("max_db must be greater than min_db")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db
        self.window = np.blackman(fft_size).astype(np.float32)

        self._buf = np.zeros(fft_size, dtype=np.float32)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, mono_chunk: np.ndarray):
        """Append samples to the analysis window. Called from the audio thread."""
        chunk = np.asarray(mono_chunk, dtype=np.float32).reshape(-1)
        n = len(chunk)
        if n == 0:
            return
        with self._lock:
            if n >= self.fft_size:
                self._buf[:] = chunk[-self.fft_size:]
            else:
                self._buf[:-n] = self._buf[n:]
                self._buf[-n:] = chunk

    def reset(self):
        with self._lock:
            self._buf[:] = 0.0
        self._smoothed[:] = 0.0

    def current_frame(self) -> np.ndarray:
        """One FrequencyFrame: uint8 array of bin_count magnitudes.

        Each call advances the smoothing by one step, so call it once per
        rendered frame.
        """
        with self._lock:
            frame = self._buf.copy()

        mags = np.abs(np.fft.rfft(frame * self.window))[:self.bin_count] / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * mags

        with np.errstate(divide='ignore'):
            db = 20.0 * np.log10(self._smoothed)
        scaled = (db - self.min_db) * (255.0 / (self.max_db - self.min_db))
        scaled = np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0)
        return np.clip(scaled, 0, 255).astype(np.uint8)


def resample_bins(frame, bar_count: int) -> np.ndarray:
    """Bar intensities (0-1) taking every Nth bin, N = len(frame) // bar_count.

    Bar i reads frame[i * step]. With fewer bins than bars, step is 1 and
    the bars past the end stay at 0.
    """
    frame = np.asarray(frame)
    if bar_count <= 0:
        return np.zeros(0, dtype=np.float64)
    step = max(1, len(frame) // bar_count)
    idx = np.arange(bar_count) * step
    values = np.zeros(bar_count, dtype=np.float64)
    valid = idx < len(frame)
    values[valid] = frame[idx[valid]] / 255.0
    return values


def read_clip(source, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Decode a clip (path or raw bytes) to mono float32 at sample_rate."""
    import soundfile as sf

    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    audio, sr = sf.read(source, dtype='float32')

    # Mix to mono
    if audio.ndim > 1:
        audio = np.mean(audio, axis=1)

    if sr != sample_rate:
        import librosa
        audio = librosa.resample(audio, orig_sr=sr, target_sr=sample_rate)

    return np.ascontiguousarray(audio, dtype=np.float32)


class LiveAudioChain:
    """Clip playback -> analyzer -> speakers, built on the first user gesture.

    Args:
        stream_factory: callable with the sounddevice.OutputStream signature.
            Defaults to sounddevice.OutputStream, imported on first use.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, chunk_size: int = CHUNK_SIZE,
                 fft_size: int = FFT_SIZE, smoothing: float = SMOOTHING,
                 min_db: float = MIN_DECIBELS, max_db: float = MAX_DECIBELS,
                 volume: float = VOLUME, stream_factory=None):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self._analyzer_args = (fft_size, smoothing, min_db, max_db)
        self._stream_factory = stream_factory
        self.volume = float(np.clip(volume, 0.0, 1.0))

        self.analyzer = None
        self._stream = None
        self._unlocked = False

        self._clip = np.zeros(0, dtype=np.float32)
        self._pos = 0
        self._playing = False
        self._lock = threading.Lock()

    @property
    def unlocked(self) -> bool:
        return self._unlocked

    @property
    def built(self) -> bool:
        return self._stream is not None

    def unlock(self) -> bool:
        """Call from a user action handler. Builds the chain if needed."""
        self._unlocked = True
        return self.ensure()

    def ensure(self) -> bool:
        """Build and start the chain if allowed. Before unlock() this is a no-op."""
        if not self._unlocked:
            logger.debug("[audio] chain deferred until a user gesture")
            return False
        if self._stream is not None:
            return True

        try:
            analyzer = FrequencyAnalyzer(*self._analyzer_args)
            stream = self._open_stream()
            stream.start()
        except Exception as e:
            logger.warning("[audio] could not start output: %s", e)
            logger.debug("[audio] output failure", exc_info=True)
            return False

        self.analyzer = analyzer
        self._stream = stream
        logger.info("[audio] output running (%d Hz, %d-sample window)",
                    self.sample_rate, analyzer.fft_size)
        return True

    def _open_stream(self):
        factory = self._stream_factory
        if factory is None:
            import sounddevice as sd
            factory = sd.OutputStream
        return factory(
            samplerate=self.sample_rate,
            channels=1,
            blocksize=self.chunk_size,
            dtype='float32',
            callback=self._callback,
        )

    def _callback(self, outdata, frames, time_info, status):
        if status:
            logger.debug("[audio] %s", status)

        with self._lock:
            if self._playing:
                chunk = self._clip[self._pos:self._pos + frames]
                self._pos += len(chunk)
                if self._pos >= len(self._clip):
                    self._playing = False
            else:
                chunk = self._clip[:0]

        out = np.zeros(frames, dtype=np.float32)
        out[:len(chunk)] = chunk

        # Silence while paused, so the bars decay instead of freezing
        analyzer = self.analyzer
        if analyzer is not None:
            analyzer.push(out)

        outdata[:, 0] = out * self.volume

    # ── Transport ─────────────────────────────────────────────────

    def load(self, samples):
        """Replace the clip and rewind. Does not start playback."""
        clip = np.ascontiguousarray(samples, dtype=np.float32).reshape(-1)
        with self._lock:
            self._clip = clip
            self._pos = 0
            self._playing = False
        if self.analyzer is not None:
            self.analyzer.reset()

    def play(self) -> bool:
        """Start or resume. False if the chain is still gated or failed."""
        if not self.ensure():
            return False
        with self._lock:
            if self._pos >= len(self._clip):
                self._pos = 0
            self._playing = len(self._clip) > 0
        return True

    def pause(self):
        with self._lock:
            self._playing = False

    def toggle(self) -> bool:
        if self.is_playing:
            self.pause()
            return True
        return self.play()

    def set_volume(self, volume: float):
        self.volume = float(np.clip(volume, 0.0, 1.0))

    @property
    def is_playing(self) -> bool:
        with self._lock:
            return self._playing

    @property
    def position(self) -> float:
        with self._lock:
            return self._pos / self.sample_rate

    @property
    def duration(self) -> float:
        return len(self._clip) / self.sample_rate

    def player_state(self, track_id=None) -> PlayerState:
        """Current transport state, shaped like a remote player's report."""
        with self._lock:
            return PlayerState(track_id, self._pos / self.sample_rate, self._playing)

    def read_frame(self) -> Optional[np.ndarray]:
        """Latest analyzer frame, or None if the chain is not running."""
        analyzer = self.analyzer
        if analyzer is None:
            return None
        try:
            return analyzer.current_frame()
        except Exception:
            logger.debug("[audio] frame read failed", exc_info=True)
            return None

    def close(self):
        stream, self._stream = self._stream, None
        self.analyzer = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning("[audio] error closing output: %s", e)

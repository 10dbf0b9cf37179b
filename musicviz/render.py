"""
Render driver: one bar frame per display refresh.

Each tick:
  1. resize check (backing size = display size x device pixel ratio)
  2. clear to an opaque background
  3. pull the signal from the active source
       live:  analyzer frame, every Nth bin -> 96 bars
       pulse: beat strength spread over 48 bars with a sine hump
       idle:  zeros
  4. bars: h = v * H * height_factor + min_px, color ramps with v
  5. baseline strip

The tick never raises. If a source misbehaves the frame is drawn idle and
the loop carries on.

RenderLoop asks the host for the next frame after every frame, like
requestAnimationFrame, and stops only through stop(). Hosts implement a
single method, request_frame(callback), and later call callback(now)
with a time on the same clock as the position estimator.
"""

import logging
import math
import time

import numpy as np

from musicviz.analyzer import resample_bins
from musicviz.beats import pulse_strength
from musicviz.config import DEFAULTS
from musicviz.palette import resolve_palette
from musicviz.sources import Mode

logger = logging.getLogger(__name__)


def pulse_envelope(strength: float, bar_count: int) -> np.ndarray:
    """Spread a scalar pulse over bars as a symmetric hump.

    Bar centers are sampled, v(i) = sin((i + 0.5) / n * pi) * strength, so
    the profile mirrors exactly and an even bar count peaks on its two
    middle bars.
    """
    if bar_count <= 0:
        return np.zeros(0, dtype=np.float64)
    centers = (np.arange(bar_count) + 0.5) / bar_count
    return np.sin(centers * math.pi) * float(strength)


def bar_heights(values, surface_height, height_factor=0.9, min_px=1) -> np.ndarray:
    """Pixel heights: v * H * height_factor + min_px."""
    values = np.clip(np.asarray(values, dtype=np.float64), 0.0, 1.0)
    return values * surface_height * height_factor + min_px


class RenderDriver:
    """Draws the active source of a PlaybackSession onto a PixelSurface.

    Args:
        session: anything with snapshot() -> FrameSnapshot.
        surface: PixelSurface to draw on.
        settings: dict as returned by config.load_settings().
        display_size: optional callable -> (width, height, device_pixel_ratio)
            giving the current displayed size.
    """

    def __init__(self, session, surface, settings=None, palette=None,
                 display_size=None, clock=time.monotonic):
        s = dict(DEFAULTS)
        s.update(settings or {})

        self.session = session
        self.surface = surface
        self.display_size = display_size
        self.clock = clock
        self.palette = resolve_palette(palette if palette is not None else s['palette'])

        self.bar_count_live = int(s['bar_count_live'])
        self.bar_count_pulse = int(s['bar_count_pulse'])
        self.falloff = float(s['pulse_falloff'])
        self.height_factor = float(s['height_factor'])
        self.min_bar_px = s['min_bar_px']
        self.bar_fill = float(s['bar_fill'])
        self.baseline_px = s['baseline_px']
        self.background = tuple(s['background'])
        self.baseline_color = tuple(s['baseline_color'])

        # Diagnostics
        self.frame_count = 0
        self.last_mode = Mode.IDLE
        self.last_values = np.zeros(self.bar_count_pulse)
        self.last_position = None
        self.last_strength = 0.0

    def idle_values(self, mode=Mode.IDLE) -> np.ndarray:
        count = self.bar_count_live if mode is Mode.LIVE_FREQUENCY else self.bar_count_pulse
        return np.zeros(count, dtype=np.float64)

    def signal(self, snapshot, now) -> np.ndarray:
        """Bar intensities (0-1) for this frame from the snapshot's source."""
        source = snapshot.source
        mode = source.mode

        if mode is Mode.LIVE_FREQUENCY:
            frame = source.chain.read_frame()
            if frame is None:
                return self.idle_values(mode)
            return resample_bins(frame, self.bar_count_live)

        if mode is Mode.BEAT_PULSE:
            position = source.estimator.estimate(now)
            strength = pulse_strength(source.schedule, position, self.falloff)
            self.last_position = position
            self.last_strength = strength
            return pulse_envelope(strength, self.bar_count_pulse)

        return self.idle_values(mode)

    def tick(self, now=None) -> np.ndarray:
        """Draw one frame. Returns the bar values that were drawn."""
        if now is None:
            now = self.clock()

        if self.display_size is not None:
            try:
                self.surface.sync_size(*self.display_size())
            except Exception:
                logger.debug("[render] display size unavailable", exc_info=True)

        snapshot = self.session.snapshot()
        mode = snapshot.source.mode
        try:
            values = self.signal(snapshot, now)
        except Exception:
            logger.debug("[render] %s signal failed, drawing idle", mode.value, exc_info=True)
            values = self.idle_values(mode)

        self.draw(values)
        self.frame_count += 1
        self.last_mode = mode
        self.last_values = values
        return values

    def draw(self, values):
        surface = self.surface
        surface.fill(self.background)

        W, H = surface.width, surface.height
        n = len(values)
        if n:
            slot = W / n
            bar_w = slot * self.bar_fill
            heights = bar_heights(values, H, self.height_factor, self.min_bar_px)
            colors = self.palette.colors_for(values)
            for i in range(n):
                h = heights[i]
                surface.fill_rect(i * slot, H - h, bar_w, h, colors[i])

        surface.fill_rect(0, H - self.baseline_px, W, self.baseline_px, self.baseline_color)

    def get_diagnostics(self) -> dict:
        diag = {
            'mode': self.last_mode.value,
            'frames': self.frame_count,
            'peak': float(np.max(self.last_values)) if len(self.last_values) else 0.0,
        }
        if self.last_mode is Mode.BEAT_PULSE:
            diag['pos'] = self.last_position if self.last_position is not None else '-'
            diag['pulse'] = self.last_strength
        return diag


class ManualFrameHost:
    """Frame primitive stepped by hand: step(now) runs what was requested so far."""

    def __init__(self):
        self._pending = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def request_frame(self, callback):
        self._pending.append(callback)

    def step(self, now) -> int:
        callbacks, self._pending = self._pending, []
        for callback in callbacks:
            callback(now)
        return len(callbacks)


class RenderLoop:
    """Runs driver.tick() once per host frame until stop().

    Args:
        on_frame: optional callable(surface) run after each tick, e.g. to
            push pixels to the screen.
    """

    def __init__(self, driver, host, on_frame=None):
        self.driver = driver
        self.host = host
        self.on_frame = on_frame
        self._running = False
        self._scheduled = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        self._running = True
        if not self._scheduled:
            self._scheduled = True
            self.host.request_frame(self._frame)

    def stop(self):
        self._running = False

    def _frame(self, now):
        self._scheduled = False
        if not self._running:
            return
        try:
            self.driver.tick(now)
            if self.on_frame is not None:
                self.on_frame(self.driver.surface)
        except Exception:
            logger.warning("[render] frame failed", exc_info=True)
        finally:
            if self._running:
                self._scheduled = True
                self.host.request_frame(self._frame)

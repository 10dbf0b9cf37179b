"""
Desktop window for the visualizer (matplotlib).

The figure is the host: its canvas timer provides the frame primitive,
its size and device pixel ratio drive the surface resize check, and its
key events are the user gestures.

Controls:
    SPACE        - Play / Pause
    N / RIGHT    - Next search result
    P / LEFT     - Previous search result
    1-9          - Jump to a search result
    + / -        - Volume up / down (preview playback)
    Q            - Quit
"""

import sys
import time

import matplotlib.pyplot as plt

from musicviz.config import FPS, VOLUME_STEP
from musicviz.render import RenderLoop


class FigureFrameHost:
    """request_frame() on a single-shot canvas timer, re-armed per request.

    Callbacks receive time.monotonic() (the position estimator's clock).
    """

    def __init__(self, fig, fps=FPS, clock=time.monotonic):
        self.clock = clock
        self._callbacks = []
        self._armed = False
        self._timer = fig.canvas.new_timer(interval=max(1, int(1000 / fps)))
        self._timer.single_shot = True
        self._timer.add_callback(self._fire)

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def interval(self) -> int:
        return self._timer.interval

    def request_frame(self, callback):
        self._callbacks.append(callback)
        if not self._armed:
            self._armed = True
            self._timer.start()

    def _fire(self):
        self._armed = False
        callbacks, self._callbacks = self._callbacks, []
        now = self.clock()
        for callback in callbacks:
            callback(now)

    def cancel(self):
        self._callbacks = []
        self._timer.stop()
        self._armed = False


def print_diagnostics(diag):
    """One-line status, rewritten in place."""
    parts = []
    for key, val in diag.items():
        if isinstance(val, float):
            parts.append(f"{key}:{val:.2f}")
        else:
            parts.append(f"{key}:{val}")
    sys.stdout.write('\r  ' + ' '.join(parts) + '   ')
    sys.stdout.flush()


class VisualizerWindow:
    """Figure showing the driver's surface, with keys for transport and track choice.

    Args:
        tracks: search results the user can step through; may be empty.
        current: index of the track already selected.
    """

    def __init__(self, driver, visualizer=None, title='musicviz', figsize=(9.6, 4.0),
                 fps=FPS, show_diagnostics=False, tracks=(), current=0,
                 volume_step=VOLUME_STEP):
        self.driver = driver
        self.visualizer = visualizer
        self.show_diagnostics = show_diagnostics
        self.tracks = list(tracks)
        self.current = current
        self.volume_step = volume_step

        plt.style.use('dark_background')
        self.fig = plt.figure(figsize=figsize)
        self.set_title(title)

        self.ax = self.fig.add_axes([0, 0, 1, 1])
        self.ax.set_axis_off()

        driver.display_size = self.display_size
        driver.surface.sync_size(*self.display_size())
        self.image = self.ax.imshow(driver.surface.pixels, interpolation='nearest', aspect='auto')
        self._shape = driver.surface.pixels.shape
        self._set_extent(self._shape)

        self.host = FigureFrameHost(self.fig, fps)
        self.loop = RenderLoop(driver, self.host, on_frame=self._present)

        self.fig.canvas.mpl_connect('key_press_event', self._on_key)
        self.fig.canvas.mpl_connect('close_event', self._on_close)

    def set_title(self, title):
        manager = self.fig.canvas.manager
        if manager is not None:
            manager.set_window_title(title)

    def display_size(self):
        canvas = self.fig.canvas
        width, height = canvas.get_width_height()
        dpr = getattr(canvas, 'device_pixel_ratio', 1.0) or 1.0
        return width, height, dpr

    def _set_extent(self, shape):
        h, w = shape[:2]
        self.image.set_extent((0, w, h, 0))
        self.ax.set_xlim(0, w)
        self.ax.set_ylim(h, 0)

    def _present(self, surface):
        pixels = surface.pixels
        if pixels.shape != self._shape:
            self._shape = pixels.shape
            self._set_extent(pixels.shape)
        self.image.set_data(pixels)
        self.fig.canvas.draw_idle()
        if self.show_diagnostics:
            print_diagnostics(self.driver.get_diagnostics())

    # ── Track choice ──────────────────────────────────────────────

    def choose(self, index):
        """Switch to search result index (wraps around). Returns the track or None."""
        if not self.tracks or self.visualizer is None:
            return None
        index %= len(self.tracks)
        self.current = index
        track = self.tracks[index]
        self.set_title(f"musicviz - {track.label}")
        print(f"\n  [{index + 1}/{len(self.tracks)}] {track.label}")
        self.visualizer.select_in_background(track)
        return track

    def _on_key(self, event):
        key = event.key
        if key == ' ':
            if self.visualizer is not None:
                self.visualizer.toggle_playback()
        elif key in ('n', 'right'):
            self.choose(self.current + 1)
        elif key in ('p', 'left'):
            self.choose(self.current - 1)
        elif key is not None and len(key) == 1 and key in '123456789':
            if int(key) <= len(self.tracks):
                self.choose(int(key) - 1)
        elif key in ('+', '='):
            if self.visualizer is not None:
                self.visualizer.nudge_volume(self.volume_step)
        elif key == '-':
            if self.visualizer is not None:
                self.visualizer.nudge_volume(-self.volume_step)
        elif key == 'q':
            self.loop.stop()
            plt.close(self.fig)

    def _on_close(self, event):
        self.loop.stop()
        self.host.cancel()

    def run(self):
        self.loop.start()
        plt.show()
        self.loop.stop()

"""Tests for the render driver and the frame loop."""

import numpy as np
import pytest

from musicviz.beats import BeatSchedule
from musicviz.clock import PositionEstimator
from musicviz.config import BACKGROUND, BASELINE_COLOR
from musicviz.render import (
    ManualFrameHost, RenderDriver, RenderLoop, bar_heights, pulse_envelope,
)
from musicviz.session import FrameSnapshot
from musicviz.sources import IDLE, BeatPulse, LiveFrequency, Mode
from musicviz.surface import PixelSurface


class StaticSession:
    def __init__(self, source, track_id='t1'):
        self.source = source
        self.track_id = track_id

    def snapshot(self):
        return FrameSnapshot(self.track_id, self.source)


class FrameChain:
    def __init__(self, frame=None, error=None):
        self.frame = frame
        self.error = error
        self.built = True

    def read_frame(self):
        if self.error is not None:
            raise self.error
        return self.frame


def column_height(surface, x):
    """Rows in column x that differ from the background."""
    col = surface.pixels[:, x]
    return int(np.sum(np.any(col != np.array(BACKGROUND, dtype=np.uint8), axis=1)))


class TestPulseEnvelope:
    def test_four_bars_mirror_and_peak_in_the_middle(self):
        v = pulse_envelope(1.0, 4)
        assert v[0] == pytest.approx(v[3])
        assert v[1] == pytest.approx(v[2])
        assert v[1] > v[0] > 0

    def test_scales_with_strength(self):
        np.testing.assert_allclose(pulse_envelope(0.5, 48), 0.5 * pulse_envelope(1.0, 48))

    def test_zero_strength_is_flat(self):
        assert not pulse_envelope(0.0, 48).any()

    def test_no_bars(self):
        assert len(pulse_envelope(1.0, 0)) == 0


class TestBarHeights:
    def test_formula(self):
        np.testing.assert_allclose(bar_heights([0.0, 0.5, 1.0], 100), [1.0, 46.0, 91.0])

    def test_values_are_clamped(self):
        np.testing.assert_allclose(bar_heights([-1.0, 2.0], 100, 0.5, 2), [2.0, 52.0])


class TestRenderDriver:
    def test_idle_draws_background_and_baseline(self):
        surface = PixelSurface(96, 50)
        driver = RenderDriver(StaticSession(IDLE), surface)
        values = driver.tick(0.0)

        assert len(values) == 48
        assert not values.any()
        # Minimum-height bars sit under the baseline strip
        assert np.all(surface.pixels[:48] == BACKGROUND)
        assert np.all(surface.pixels[48:] == BASELINE_COLOR)

    def test_beat_pulse_profile(self, clock):
        estimator = PositionEstimator(clock)
        estimator.report(1.0, False)
        source = BeatPulse(BeatSchedule([1.0, 2.0]), estimator)
        surface = PixelSurface(40, 100)
        driver = RenderDriver(StaticSession(source), surface, {'bar_count_pulse': 4})

        values = driver.tick(clock())
        np.testing.assert_allclose(values, pulse_envelope(1.0, 4))
        assert driver.last_strength == pytest.approx(1.0)

        heights = [column_height(surface, 10 * i + 4) for i in range(4)]
        assert heights[0] == heights[3]
        assert heights[1] == heights[2]
        assert heights[1] > heights[0]
        # Gap between bars stays background above the baseline
        assert column_height(surface, 9) == 2

    def test_pulse_follows_estimated_position(self, clock):
        estimator = PositionEstimator(clock)
        estimator.report(0.5, True)
        source = BeatPulse(BeatSchedule([1.0, 2.0]), estimator)
        driver = RenderDriver(StaticSession(source), PixelSurface(48, 20))

        assert driver.tick(clock()).max() == 0.0
        clock.advance(0.5)
        assert driver.tick(clock()).max() == pytest.approx(1.0, abs=0.01)
        assert driver.last_position == pytest.approx(1.0)

    def test_unknown_position_is_flat(self, clock):
        source = BeatPulse(BeatSchedule([1.0, 2.0]), PositionEstimator(clock))
        driver = RenderDriver(StaticSession(source), PixelSurface(48, 20))
        assert not driver.tick(clock()).any()
        assert driver.last_position is None

    def test_live_frequency_uses_every_nth_bin(self):
        frame = (np.arange(1024) % 256).astype(np.uint8)
        driver = RenderDriver(StaticSession(LiveFrequency(FrameChain(frame))), PixelSurface(96, 20))
        values = driver.tick(0.0)
        assert len(values) == 96
        np.testing.assert_allclose(values, frame[np.arange(96) * 10] / 255.0)

    def test_live_without_frame_is_idle(self):
        driver = RenderDriver(StaticSession(LiveFrequency(FrameChain(None))), PixelSurface(96, 20))
        values = driver.tick(0.0)
        assert len(values) == 96
        assert not values.any()

    def test_failing_source_draws_idle(self):
        chain = FrameChain(error=RuntimeError('device lost'))
        surface = PixelSurface(96, 20)
        driver = RenderDriver(StaticSession(LiveFrequency(chain)), surface)
        values = driver.tick(0.0)
        assert not values.any()
        assert driver.frame_count == 1
        assert driver.last_mode is Mode.LIVE_FREQUENCY

    def test_resize_follows_display(self):
        surface = PixelSurface(10, 10)
        driver = RenderDriver(StaticSession(IDLE), surface, display_size=lambda: (50, 20, 2.0))
        driver.tick(0.0)
        assert (surface.width, surface.height) == (100, 40)

    def test_diagnostics(self, clock):
        estimator = PositionEstimator(clock)
        estimator.report(1.0, False)
        source = BeatPulse(BeatSchedule([1.0]), estimator)
        driver = RenderDriver(StaticSession(source), PixelSurface(48, 20))
        driver.tick(clock())
        diag = driver.get_diagnostics()
        assert diag['mode'] == 'beats'
        assert diag['frames'] == 1
        assert diag['pos'] == pytest.approx(1.0)
        assert diag['pulse'] == pytest.approx(1.0)


class CountingDriver:
    def __init__(self, error=None):
        self.surface = PixelSurface()
        self.frames = []
        self.error = error

    def tick(self, now):
        self.frames.append(now)
        if self.error is not None:
            raise self.error


class TestRenderLoop:
    def test_requests_a_new_frame_after_each_frame(self):
        driver = CountingDriver()
        host = ManualFrameHost()
        loop = RenderLoop(driver, host)
        loop.start()
        assert host.pending == 1

        host.step(1.0)
        host.step(2.0)
        assert driver.frames == [1.0, 2.0]
        assert host.pending == 1

    def test_start_twice_keeps_one_chain(self):
        host = ManualFrameHost()
        loop = RenderLoop(CountingDriver(), host)
        loop.start()
        loop.start()
        assert host.pending == 1

    def test_stop_ends_the_loop(self):
        driver = CountingDriver()
        host = ManualFrameHost()
        loop = RenderLoop(driver, host)
        loop.start()
        host.step(1.0)
        loop.stop()
        host.step(2.0)
        assert driver.frames == [1.0]
        assert host.pending == 0
        assert not loop.running

    def test_errors_do_not_stop_the_loop(self):
        driver = CountingDriver(error=RuntimeError('boom'))
        host = ManualFrameHost()
        loop = RenderLoop(driver, host)
        loop.start()
        host.step(1.0)
        host.step(2.0)
        assert driver.frames == [1.0, 2.0]
        assert host.pending == 1

    def test_on_frame_receives_surface(self):
        driver = CountingDriver()
        host = ManualFrameHost()
        seen = []
        loop = RenderLoop(driver, host, on_frame=seen.append)
        loop.start()
        host.step(1.0)
        assert seen == [driver.surface]

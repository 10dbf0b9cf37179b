"""
Shared fixtures: a controllable clock and a fake output stream so no test
touches a sound device.
"""
import numpy as np
import pytest

from musicviz.analyzer import LiveAudioChain
from musicviz.session import PlaybackSession


class FakeClock:
    def __init__(self, t=100.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, dt):
        self.t += dt


class FakeStream:
    """Stands in for sounddevice.OutputStream."""

    def __init__(self, samplerate, channels, blocksize, dtype, callback):
        self.samplerate = samplerate
        self.channels = channels
        self.blocksize = blocksize
        self.dtype = dtype
        self.callback = callback
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True

    def pull(self, frames):
        """Run one device callback, return what would reach the speakers."""
        outdata = np.zeros((frames, self.channels), dtype=np.float32)
        self.callback(outdata, frames, None, None)
        return outdata[:, 0]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stream_factory():
    streams = []

    def factory(**kwargs):
        stream = FakeStream(**kwargs)
        streams.append(stream)
        return stream

    factory.streams = streams
    return factory


@pytest.fixture
def chain(stream_factory):
    c = LiveAudioChain(sample_rate=8000, chunk_size=256, stream_factory=stream_factory)
    yield c
    c.close()


@pytest.fixture
def session(clock):
    return PlaybackSession(clock=clock)

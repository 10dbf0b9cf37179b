"""Tests for track info and mode selection."""

from musicviz.sources import IDLE, Mode, TrackInfo, select_mode


def make_track(preview_url=None):
    return TrackInfo(id='t1', name='One More Time', artists=('Daft Punk',),
                     preview_url=preview_url)


class TestSelectMode:
    def test_preview_wins(self):
        track = make_track('https://p.scdn.co/mp3-preview/abc')
        assert select_mode(track, remote_available=True) is Mode.LIVE_FREQUENCY
        assert select_mode(track, remote_available=False) is Mode.LIVE_FREQUENCY

    def test_remote_without_preview(self):
        assert select_mode(make_track(), remote_available=True) is Mode.BEAT_PULSE

    def test_nothing_usable(self):
        assert select_mode(make_track(), remote_available=False) is Mode.IDLE
        assert select_mode(make_track(''), remote_available=False) is Mode.IDLE
        assert select_mode(None, remote_available=True) is Mode.IDLE


class TestTrackInfo:
    def test_label(self):
        track = TrackInfo(id='t1', name='Harder', artists=('Daft Punk', 'Guest'))
        assert track.artist_line == 'Daft Punk, Guest'
        assert track.label == 'Harder - Daft Punk, Guest'

    def test_label_falls_back(self):
        assert TrackInfo(id='t1', name='Solo').label == 'Solo'
        assert TrackInfo(id='t1').label == 't1'

    def test_idle_source(self):
        assert IDLE.mode is Mode.IDLE

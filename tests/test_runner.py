"""Tests for the command line entry point (no window, no network)."""

import pytest

from musicviz import runner
from musicviz.config import CONFIG_ENV_VAR
from musicviz.sources import TrackInfo
from musicviz.spotify import SpotifyError


class FakeClient:
    def __init__(self, tracks=(), devices=(), error=None):
        self.tracks = list(tracks)
        self._devices = list(devices)
        self.error = error
        self.queries = []
        self.profile = {'id': 'ada99', 'display_name': 'Ada'}
        self.profile_error = None

    def search_tracks(self, query, limit=20):
        self.queries.append((query, limit))
        if self.error is not None:
            raise self.error
        return self.tracks

    def me(self):
        if self.profile_error is not None:
            raise self.profile_error
        return self.profile

    def devices(self):
        if self.error is not None:
            raise self.error
        return self._devices


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv('SPOTIFY_ACCESS_TOKEN', raising=False)


@pytest.fixture
def fake_client(monkeypatch):
    client = FakeClient()
    monkeypatch.setattr(runner, 'make_client', lambda args, settings: client)
    return client


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            runner.build_parser().parse_args([])

    def test_global_options(self):
        args = runner.build_parser().parse_args(['--fps', '30', '--diag', 'wav', 'a.wav', '--beats'])
        assert args.fps == 30
        assert args.diag
        assert args.beats
        assert args.func is runner.cmd_wav


class TestMain:
    def test_bad_config(self, tmp_path, capsys):
        assert runner.main(['--config', str(tmp_path / 'missing.yaml'), 'devices']) == 1
        assert 'Config error' in capsys.readouterr().out

    def test_not_logged_in(self, capsys):
        assert runner.main(['search', 'daft punk']) == 1
        assert 'Not logged in' in capsys.readouterr().out

    def test_search_lists_results(self, fake_client, capsys):
        fake_client.tracks = [
            TrackInfo(id='t1', name='One More Time', artists=('Daft Punk',), preview_url='u'),
            TrackInfo(id='t2', name='Aerodynamic', artists=('Daft Punk',)),
        ]
        assert runner.main(['search']) == 0
        out = capsys.readouterr().out
        assert 'One More Time - Daft Punk' in out
        assert '(no preview)' in out
        assert fake_client.queries == [('Daft Punk', 20)]

    def test_search_play_out_of_range(self, fake_client, capsys):
        fake_client.tracks = [TrackInfo(id='t1', name='One More Time')]
        assert runner.main(['search', 'x', '--play', '5']) == 1
        assert '--play must be between 1 and 1' in capsys.readouterr().out

    def test_api_error(self, fake_client, capsys):
        fake_client.error = SpotifyError(503, 'unavailable')
        assert runner.main(['devices']) == 1
        assert 'unavailable' in capsys.readouterr().out

    def test_devices(self, fake_client, capsys):
        fake_client._devices = [{'id': 'd1', 'name': 'Kitchen', 'type': 'Speaker', 'is_active': True}]
        assert runner.main(['devices']) == 0
        out = capsys.readouterr().out
        assert 'Kitchen' in out and '(active)' in out

    def test_missing_wav(self, tmp_path, capsys):
        assert runner.main(['wav', str(tmp_path / 'nope.wav')]) == 1
        assert 'File not found' in capsys.readouterr().out

    def test_search_banner_names_the_user(self, fake_client, capsys):
        fake_client.tracks = [TrackInfo(id='t1', name='One More Time')]
        assert runner.main(['search', 'x']) == 0
        assert 'Signed in as Ada' in capsys.readouterr().out

    def test_profile_falls_back_to_id(self, fake_client):
        fake_client.profile = {'id': 'ada99', 'display_name': None}
        assert runner.signed_in_line(fake_client) == 'Signed in as ada99'

    def test_unreadable_profile_is_not_fatal(self, fake_client, capsys):
        fake_client.profile_error = SpotifyError(403, 'insufficient scope')
        fake_client.tracks = [TrackInfo(id='t1', name='One More Time')]
        assert runner.main(['search', 'x']) == 0
        out = capsys.readouterr().out
        assert 'Signed in' not in out
        assert 'One More Time' in out

    def test_bad_palette_in_config(self, tmp_path, capsys):
        path = tmp_path / 'viz.yaml'
        path.write_text("palette: [[255, 0, 0], [0, 255, 0]]\n")
        assert runner.main(['--config', str(path), 'devices']) == 1
        assert 'Config error' in capsys.readouterr().out

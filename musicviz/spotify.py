"""
Spotify Web API client: just the calls the visualizer needs.

Authentication is not handled here: a token provider hands out a bearer
token (or None), and everything else is plain REST over requests.

    client = SpotifyClient(EnvTokenProvider())
    tracks = client.search_tracks('Daft Punk')
    beats = client.beat_schedule(tracks[0].id)
    state = client.player_state()

Non-2xx responses raise SpotifyError; a missing token raises
NotAuthenticated. Callers on background threads catch these and degrade.
"""

import logging
import os

import requests

from musicviz.beats import BeatSchedule
from musicviz.config import API_BASE, REQUEST_TIMEOUT, SEARCH_LIMIT, TOKEN_ENV_VAR
from musicviz.sources import PlayerState, TrackInfo

logger = logging.getLogger(__name__)


class SpotifyError(Exception):
    """API call failed. status is the HTTP status, None for transport errors."""

    def __init__(self, status, message='', retry_after=None):
        super().__init__(f"Spotify API {status}: {message}" if status else message)
        self.status = status
        self.message = message
        self.retry_after = retry_after


class NotAuthenticated(SpotifyError):
    def __init__(self, message='no access token'):
        super().__init__(None, message)


# ── Token providers ───────────────────────────────────────────────

class StaticTokenProvider:
    def __init__(self, token):
        self.token = token or None

    def __call__(self):
        return self.token


class EnvTokenProvider:
    """Reads the token from an environment variable on every call."""

    def __init__(self, var=TOKEN_ENV_VAR):
        self.var = var

    def __call__(self):
        return os.environ.get(self.var, '').strip() or None


class TokenEndpointProvider:
    """GETs a URL answering {"access_token": "..."}, e.g. a local auth helper."""

    def __init__(self, url, http=None, timeout=REQUEST_TIMEOUT):
        self.url = url
        self.http = http or requests.Session()
        self.timeout = timeout

    def __call__(self):
        try:
            r = self.http.get(self.url, timeout=self.timeout)
            if not r.ok:
                logger.warning("[auth] token endpoint returned %s", r.status_code)
                return None
            return r.json().get('access_token') or None
        except (requests.RequestException, ValueError) as e:
            logger.warning("[auth] token endpoint failed: %s", e)
            return None


# ── Payload parsing ───────────────────────────────────────────────

def parse_track(item) -> TrackInfo:
    """TrackInfo from an API track object."""
    album = item.get('album') or {}
    images = album.get('images') or []
    # Second image is the mid-size one
    if len(images) > 1:
        art = images[1].get('url') or ''
    elif images:
        art = images[0].get('url') or ''
    else:
        art = ''
    return TrackInfo(
        id=item['id'],
        name=item.get('name') or '',
        artists=tuple(a.get('name', '') for a in item.get('artists') or []),
        album_art=art,
        preview_url=item.get('preview_url') or None,
        uri=item.get('uri'),
        duration=(item.get('duration_ms') or 0) / 1000.0,
    )


def parse_player_state(payload):
    """PlayerState from /me/player, or None when nothing is loaded."""
    if not payload:
        return None
    item = payload.get('item') or {}
    return PlayerState(
        track_id=item.get('id'),
        position=(payload.get('progress_ms') or 0) / 1000.0,
        is_playing=bool(payload.get('is_playing')),
    )


def _error_message(response):
    try:
        return response.json()['error']['message']
    except (ValueError, KeyError, TypeError):
        return (response.text or '')[:200]


# ── Client ────────────────────────────────────────────────────────

class SpotifyClient:
    """Thin Web API wrapper.

    Args:
        token_provider: callable returning a bearer token or None.
        http: requests.Session-like object (request/get).
    """

    def __init__(self, token_provider, api_base=API_BASE, timeout=REQUEST_TIMEOUT, http=None):
        self.token_provider = token_provider
        self.api_base = api_base.rstrip('/')
        self.timeout = timeout
        self.http = http or requests.Session()

    def _request(self, method, path, params=None, json=None):
        token = self.token_provider()
        if not token:
            raise NotAuthenticated()

        try:
            r = self.http.request(
                method, self.api_base + path,
                params=params, json=json,
                headers={'Authorization': f'Bearer {token}'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SpotifyError(None, str(e)) from e

        if r.status_code == 204:
            return None
        if not r.ok:
            raise SpotifyError(r.status_code, _error_message(r), r.headers.get('Retry-After'))
        if not r.content:
            return None
        return r.json()

    # ── Catalog ──

    def me(self) -> dict:
        return self._request('GET', '/me') or {}

    def search_tracks(self, query, limit=SEARCH_LIMIT) -> list:
        data = self._request('GET', '/search', params={'q': query, 'type': 'track', 'limit': limit})
        items = ((data or {}).get('tracks') or {}).get('items') or []
        return [parse_track(item) for item in items if item and item.get('id')]

    def get_track(self, track_id) -> TrackInfo:
        return parse_track(self._request('GET', f'/tracks/{track_id}'))

    def audio_analysis(self, track_id) -> dict:
        return self._request('GET', f'/audio-analysis/{track_id}') or {}

    def beat_schedule(self, track_id) -> BeatSchedule:
        return BeatSchedule.from_analysis(self.audio_analysis(track_id), track_id=track_id)

    def download(self, url) -> bytes:
        """Fetch a preview clip. No auth header; preview URLs are public."""
        try:
            r = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise SpotifyError(None, str(e)) from e
        if not r.ok:
            raise SpotifyError(r.status_code, 'preview download failed')
        return r.content

    # ── Remote player ──

    def player_state(self):
        return parse_player_state(self._request('GET', '/me/player'))

    def devices(self) -> list:
        return (self._request('GET', '/me/player/devices') or {}).get('devices') or []

    def transfer(self, device_id, play=False):
        self._request('PUT', '/me/player', json={'device_ids': [device_id], 'play': play})

    def play(self, uri, device_id=None):
        params = {'device_id': device_id} if device_id else None
        self._request('PUT', '/me/player/play', params=params, json={'uris': [uri]})

    def resume(self, device_id=None):
        params = {'device_id': device_id} if device_id else None
        self._request('PUT', '/me/player/play', params=params)

    def pause(self, device_id=None):
        params = {'device_id': device_id} if device_id else None
        self._request('PUT', '/me/player/pause', params=params)

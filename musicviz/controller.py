"""
Visualizer: turns a track selection into a running signal source.

  select(track)
    preview clip?      download + decode, play locally   -> live frequency
    remote player?     start it, poll it, fetch beats    -> beat pulse
    neither            nothing to follow                 -> idle

play_file(path) does the same for a local file: live analysis, or with
beats=True a librosa beat schedule followed through the local transport,
which exercises the beat-pulse path without an account.

Selecting a track is a user action, so it also unlocks the audio chain.
From a window, use select_in_background(): downloads and player calls
then run on a worker thread, and only the newest request is applied.
Remote play/pause from a key press runs on a daemon thread too.
"""

import logging
import threading
from pathlib import Path

from musicviz.analyzer import read_clip
from musicviz.beats import BeatSchedule, track_beats
from musicviz.config import DEFAULTS
from musicviz.session import PlayerStatePoller
from musicviz.sources import Mode, TrackInfo, select_mode
from musicviz.spotify import SpotifyError

logger = logging.getLogger(__name__)


class Visualizer:
    """Glue between track selection, the session and the playback backends.

    Args:
        session: PlaybackSession the render loop reads.
        chain: LiveAudioChain for local playback.
        client: SpotifyClient, or None for local-only use.
        remote: True if a remote player can be followed.
        device_id: remote device to play on (None = currently active one).
    """

    def __init__(self, session, chain, client=None, remote=False, device_id=None, settings=None):
        s = dict(DEFAULTS)
        s.update(settings or {})
        self.session = session
        self.chain = chain
        self.client = client
        self.remote = bool(remote and client is not None)
        self.device_id = device_id
        self.sample_rate = s['sample_rate']
        self.poll_interval = s['poll_interval']

        self.beat_source = client.beat_schedule if client is not None else None
        self._poller = None
        self._transport = None     # 'local' | 'remote' | None
        self._threads = []
        self._select_lock = threading.Lock()
        self._selection = 0

    @property
    def transport(self):
        return self._transport

    # ── Track selection ───────────────────────────────────────────

    def select(self, track: TrackInfo) -> Mode:
        """Load a track in the best available mode. Returns the mode used."""
        self.chain.unlock()
        mode = select_mode(track, self.remote)

        if mode is Mode.LIVE_FREQUENCY:
            samples = self._fetch_preview(track)
            if samples is not None:
                self._stop_remote()
                self._follow(None)
                self.chain.load(samples)
                self.session.load_live(track, self.chain)
                self.chain.play()
                self._transport = 'local'
                return mode
            mode = select_mode(track._replace(preview_url=None), self.remote)

        if mode is Mode.BEAT_PULSE:
            self.chain.pause()
            self.session.load_beat_pulse(track)
            self._start_remote(track)
            self._follow(self.client.player_state)
            self.fetch_beats(track.id)
            self._transport = 'remote'
            return mode

        self.chain.pause()
        self._follow(None)
        self.session.load_idle(track)
        self._transport = None
        return mode

    def select_in_background(self, track: TrackInfo) -> threading.Thread:
        """select() on a worker thread. A newer request supersedes older ones."""
        self._selection += 1
        return self._spawn(self._select_latest, self._selection, track,
                           name=f'select-{track.id}')

    def _select_latest(self, ticket, track):
        with self._select_lock:
            if ticket != self._selection:
                logger.debug("[select] %s superseded", track.id)
                return
            try:
                mode = self.select(track)
            except Exception as e:
                logger.warning("[select] %s failed: %s", track.id, e)
                return
        logger.info("[select] %s -> %s", track.label, mode.value)

    def play_file(self, path, beats=False) -> Mode:
        """Play a local audio file, visualized live or via a tracked beat schedule."""
        path = Path(path)
        track = TrackInfo(id=f'file:{path.name}', name=path.stem)
        samples = read_clip(str(path), self.sample_rate)

        self.chain.unlock()
        self._stop_remote()
        self.chain.load(samples)

        if beats:
            self.session.load_beat_pulse(track)
            self._follow(lambda: self.chain.player_state(track.id))
            sr = self.sample_rate
            self.fetch_beats(track.id, lambda track_id: track_beats(samples, sr, track_id=track_id))
            mode = Mode.BEAT_PULSE
        else:
            self._follow(None)
            self.session.load_live(track, self.chain)
            mode = Mode.LIVE_FREQUENCY

        self.chain.play()
        self._transport = 'local'
        return mode

    def _fetch_preview(self, track):
        if self.client is None:
            return None
        try:
            data = self.client.download(track.preview_url)
            return read_clip(data, self.sample_rate)
        except Exception as e:
            logger.warning("[preview] %s unusable, falling back: %s", track.id, e)
            return None

    # ── Beats ─────────────────────────────────────────────────────

    def fetch_beats(self, track_id, beat_source=None) -> threading.Thread:
        """Fetch a schedule in the background; it lands only if track_id is still active."""
        source = beat_source or self.beat_source
        return self._spawn(self._fetch_beats, track_id, source, name=f'beats-{track_id}')

    def _fetch_beats(self, track_id, source):
        try:
            if source is None:
                raise RuntimeError('no beat source')
            schedule = source(track_id)
        except Exception as e:
            logger.warning("[beats] %s: no beat schedule (%s), pulse stays idle", track_id, e)
            schedule = BeatSchedule.empty(track_id)
        if self.session.apply_beats(track_id, schedule):
            logger.info("[beats] %s: %d beats (%.1f BPM)", track_id, len(schedule), schedule.bpm)

    # ── Background threads ────────────────────────────────────────

    def _spawn(self, target, *args, name):
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        thread.start()
        return thread

    def join_background(self, timeout=None):
        """Wait for outstanding selections, beat fetches and player calls."""
        for thread in list(self._threads):
            thread.join(timeout)

    # ── Transport ─────────────────────────────────────────────────

    def _follow(self, state_fn):
        """Swap the player poller; None just stops following.

        The old poller is told to stop but not joined. A report it still
        delivers is dropped by the session's track check.
        """
        if self._poller is not None:
            self._poller.stop(wait=False)
            self._poller = None
        if state_fn is not None:
            self._poller = PlayerStatePoller(self.session, state_fn, self.poll_interval)
            self._poller.start()

    def _start_remote(self, track):
        try:
            if self.device_id:
                self.client.transfer(self.device_id)
            self.client.play(track.uri or f'spotify:track:{track.id}', self.device_id)
        except SpotifyError as e:
            logger.warning("[player] could not start %s: %s", track.id, e)

    def _stop_remote(self):
        if self._transport != 'remote':
            return
        try:
            self.client.pause(self.device_id)
        except SpotifyError as e:
            logger.warning("[player] pause failed: %s", e)

    def _remote_call(self, action):
        try:
            action(self.device_id)
        except SpotifyError as e:
            logger.warning("[player] %s failed: %s", action.__name__, e)

    def toggle_playback(self):
        """Play/pause whatever is currently playing. Called from key handlers."""
        if self._transport == 'local':
            self.chain.unlock()
            self.chain.toggle()
        elif self._transport == 'remote':
            source = self.session.snapshot().source
            sample = source.estimator.sample if source.mode is Mode.BEAT_PULSE else None
            action = self.client.pause if sample is not None and sample.is_playing else self.client.resume
            self._spawn(self._remote_call, action, name='player-control')

    def nudge_volume(self, delta: float) -> float:
        """Change local playback volume by delta. Returns the new volume."""
        self.chain.set_volume(self.chain.volume + delta)
        logger.info("[audio] volume %d%%", round(self.chain.volume * 100))
        return self.chain.volume

    def close(self):
        self._follow(None)
        self.chain.close()

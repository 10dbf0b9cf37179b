#!/usr/bin/env python3
"""
musicviz runner

Search tracks, play them (preview clip locally or on a Spotify Connect
device) and watch the bars.

Usage:
    # Search (default query: Daft Punk)
    musicviz search "daft punk"

    # Search and play the 3rd result
    musicviz search "daft punk" --play 3

    # Play a track by id; follows a remote device if the track has no preview
    musicviz play 0DiWol3AO6WpXZgp0goxAV
    musicviz play 0DiWol3AO6WpXZgp0goxAV --device <device-id>

    # List Spotify Connect devices
    musicviz devices

    # Local file: live spectrum, or beat pulse from a tracked schedule
    musicviz wav song.wav
    musicviz wav song.wav --beats

Auth: set SPOTIFY_ACCESS_TOKEN, or pass --token / --token-url.

Controls (window):
    SPACE      - Play / Pause
    N / P, 1-9 - Switch between search results
    + / -      - Volume
    Q          - Quit
"""

import argparse
import logging
import sys
from pathlib import Path

from musicviz.analyzer import LiveAudioChain
from musicviz.config import load_settings
from musicviz.controller import Visualizer
from musicviz.palette import resolve_palette
from musicviz.render import RenderDriver
from musicviz.session import PlaybackSession
from musicviz.spotify import (
    EnvTokenProvider, NotAuthenticated, SpotifyClient, SpotifyError,
    StaticTokenProvider, TokenEndpointProvider,
)
from musicviz.surface import PixelSurface

logger = logging.getLogger('musicviz')


def make_client(args, settings):
    if args.token:
        provider = StaticTokenProvider(args.token)
    elif args.token_url:
        provider = TokenEndpointProvider(args.token_url, timeout=settings['request_timeout'])
    else:
        provider = EnvTokenProvider()
    return SpotifyClient(provider, api_base=settings['api_base'],
                         timeout=settings['request_timeout'])


def make_chain(settings):
    return LiveAudioChain(
        sample_rate=settings['sample_rate'],
        chunk_size=settings['chunk_size'],
        fft_size=settings['fft_size'],
        smoothing=settings['smoothing'],
        min_db=settings['min_decibels'],
        max_db=settings['max_decibels'],
        volume=settings['volume'],
    )


def remote_available(client, args):
    """A device was named, or the account has at least one Connect device."""
    if args.device or args.remote:
        return True
    try:
        return bool(client.devices())
    except SpotifyError as e:
        logger.warning("[player] could not list devices: %s", e)
        return False


def signed_in_line(client):
    """'Signed in as ...' for the banner, or None if the profile is unavailable."""
    try:
        profile = client.me()
    except NotAuthenticated:
        raise
    except SpotifyError as e:
        logger.warning("[auth] could not read profile: %s", e)
        return None
    name = profile.get('display_name') or profile.get('id')
    return f"Signed in as {name}" if name else None


def run_window(visualizer, settings, args, title, tracks=(), current=0):
    from musicviz.viewer import VisualizerWindow

    driver = RenderDriver(visualizer.session, PixelSurface(), settings)
    window = VisualizerWindow(driver, visualizer, title=title, fps=settings['fps'],
                              show_diagnostics=args.diag, tracks=tracks, current=current,
                              volume_step=settings['volume_step'])
    print("  SPACE: play/pause  |  +/-: volume  |  Q: quit")
    if len(tracks) > 1:
        print("  N/P or 1-9: switch result")
    print()
    try:
        window.run()
    finally:
        visualizer.close()
        print("\n  Done!")
    return 0


def play_track(client, tracks, index, settings, args):
    track = tracks[index]
    session = PlaybackSession()
    visualizer = Visualizer(session, make_chain(settings), client,
                            remote=remote_available(client, args),
                            device_id=args.device, settings=settings)
    mode = visualizer.select(track)

    print(f"\n  musicviz")
    print(f"  {'='*40}")
    print(f"  Track: {track.label}")
    print(f"  Mode: {mode.value}")
    return run_window(visualizer, settings, args, title=f"musicviz - {track.label}",
                      tracks=tracks, current=index)


def cmd_search(args, settings):
    client = make_client(args, settings)
    query = args.query or settings['default_query']
    signed_in = signed_in_line(client)
    tracks = client.search_tracks(query, limit=args.limit or settings['search_limit'])

    if not tracks:
        print("  No results. Try a different query.")
        return 0

    if signed_in:
        print(f"\n  {signed_in}")
    print(f"\n  Results for {query!r}:")
    print(f"  {'='*40}")
    for i, t in enumerate(tracks, 1):
        note = '' if t.preview_url else '  (no preview)'
        print(f"  {i:2d}. {t.label}{note}")
        print(f"      {t.id}")
    print()

    if args.play is None:
        return 0
    if not 1 <= args.play <= len(tracks):
        print(f"  --play must be between 1 and {len(tracks)}")
        return 1
    return play_track(client, tracks, args.play - 1, settings, args)


def cmd_play(args, settings):
    client = make_client(args, settings)
    signed_in = signed_in_line(client)
    if signed_in:
        print(f"\n  {signed_in}")
    track = client.get_track(args.track_id)
    return play_track(client, [track], 0, settings, args)


def cmd_devices(args, settings):
    client = make_client(args, settings)
    devices = client.devices()
    if not devices:
        print("  No devices. Open Spotify on a phone, desktop or speaker first.")
        return 0
    print(f"\n  Devices:")
    print(f"  {'='*40}")
    for d in devices:
        active = ' (active)' if d.get('is_active') else ''
        print(f"  {d.get('name', '?'):24s} {d.get('type', ''):10s} {d.get('id')}{active}")
    print()
    return 0


def cmd_wav(args, settings):
    path = Path(args.path)
    if not path.exists():
        print(f"  File not found: {path}")
        return 1

    session = PlaybackSession()
    visualizer = Visualizer(session, make_chain(settings), settings=settings)
    mode = visualizer.play_file(path, beats=args.beats)

    print(f"\n  musicviz")
    print(f"  {'='*40}")
    print(f"  File: {path.name} ({visualizer.chain.duration:.1f}s)")
    print(f"  Mode: {mode.value}")
    return run_window(visualizer, settings, args, title=f"musicviz - {path.name}")


def build_parser():
    parser = argparse.ArgumentParser(prog='musicviz', description='Music visualizer')
    parser.add_argument('--config', help='YAML settings file (default: $MUSICVIZ_CONFIG)')
    parser.add_argument('--token', help='Bearer token (default: $SPOTIFY_ACCESS_TOKEN)')
    parser.add_argument('--token-url', help='URL answering {"access_token": ...}')
    parser.add_argument('--fps', type=int, help='Frame rate override')
    parser.add_argument('--diag', action='store_true', help='Print per-frame diagnostics')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('search', help='Search tracks')
    p.add_argument('query', nargs='?', help='Search text')
    p.add_argument('--limit', type=int, help='Max results')
    p.add_argument('--play', type=int, metavar='N', help='Play the Nth result')
    p.add_argument('--device', help='Spotify Connect device id')
    p.add_argument('--remote', action='store_true', help='Assume a remote player is available')
    p.set_defaults(func=cmd_search)

    p = sub.add_parser('play', help='Play a track by id')
    p.add_argument('track_id')
    p.add_argument('--device', help='Spotify Connect device id')
    p.add_argument('--remote', action='store_true', help='Assume a remote player is available')
    p.set_defaults(func=cmd_play)

    p = sub.add_parser('devices', help='List Spotify Connect devices')
    p.set_defaults(func=cmd_devices)

    p = sub.add_parser('wav', help='Visualize a local audio file')
    p.add_argument('path')
    p.add_argument('--beats', action='store_true',
                   help='Beat pulse from a tracked schedule instead of the live spectrum')
    p.set_defaults(func=cmd_wav)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        settings = load_settings(args.config, overrides={'fps': args.fps})
        resolve_palette(settings['palette'])
    except (OSError, ValueError) as e:
        print(f"  Config error: {e}")
        return 1

    try:
        return args.func(args, settings)
    except NotAuthenticated:
        print("  Not logged in: set SPOTIFY_ACCESS_TOKEN or pass --token / --token-url.")
        return 1
    except SpotifyError as e:
        print(f"  {e}")
        return 1
    except KeyboardInterrupt:
        print("\n\n  Stopping...")
        return 0


if __name__ == '__main__':
    sys.exit(main())

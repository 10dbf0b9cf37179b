"""
Settings for the visualizer.

Defaults live here as module constants. A YAML file can override any of
them (lowercase keys), e.g.:

    fps: 60
    bar_count_live: 128
    poll_interval: 0.5
    palette: [[40, 200, 255], [220, 80, 255]]

The file path comes from --config or the MUSICVIZ_CONFIG environment
variable. Unknown keys are logged and ignored.
"""

import logging
import os

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'MUSICVIZ_CONFIG'
TOKEN_ENV_VAR = 'SPOTIFY_ACCESS_TOKEN'

# ── Audio ──────────────────────────────────────────────────────────
SAMPLE_RATE = 44100
CHUNK_SIZE = 1024          # ~23ms per playback callback
FFT_SIZE = 2048
SMOOTHING = 0.85           # analyser time constant, 0 = raw, 1 = frozen
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
VOLUME = 0.8
VOLUME_STEP = 0.1         # per +/- key press

# ── Beat pulse ─────────────────────────────────────────────────────
PULSE_FALLOFF = 4.0        # strength hits 0 at 1/4 s from the nearest beat
NEXT_BEAT_FALLBACK = 0.5   # assumed gap after the last beat

# ── Rendering ──────────────────────────────────────────────────────
FPS = 60
BAR_COUNT_LIVE = 96
BAR_COUNT_PULSE = 48
HEIGHT_FACTOR = 0.9
MIN_BAR_PX = 1
BAR_FILL = 0.8             # rest of each slot is gap
BASELINE_PX = 2
BACKGROUND = (0x0b, 0x0d, 0x10)
BASELINE_COLOR = (0x11, 0x11, 0x11)
PALETTE = [
    [40, 200, 255],        # v = 0
    [220, 80, 255],        # v = 1
]

# ── Remote player / API ────────────────────────────────────────────
API_BASE = 'https://api.spotify.com/v1'
POLL_INTERVAL = 1.0        # seconds between player state requests
REQUEST_TIMEOUT = 10.0
SEARCH_LIMIT = 20
DEFAULT_QUERY = 'Daft Punk'

POSITIVE_INT_KEYS = (
    'sample_rate', 'chunk_size', 'fft_size', 'fps', 'bar_count_live', 'bar_count_pulse',
)

DEFAULTS = {
    'sample_rate': SAMPLE_RATE,
    'chunk_size': CHUNK_SIZE,
    'fft_size': FFT_SIZE,
    'smoothing': SMOOTHING,
    'min_decibels': MIN_DECIBELS,
    'max_decibels': MAX_DECIBELS,
    'volume': VOLUME,
    'volume_step': VOLUME_STEP,
    'pulse_falloff': PULSE_FALLOFF,
    'fps': FPS,
    'bar_count_live': BAR_COUNT_LIVE,
    'bar_count_pulse': BAR_COUNT_PULSE,
    'height_factor': HEIGHT_FACTOR,
    'min_bar_px': MIN_BAR_PX,
    'bar_fill': BAR_FILL,
    'baseline_px': BASELINE_PX,
    'background': BACKGROUND,
    'baseline_color': BASELINE_COLOR,
    'palette': PALETTE,
    'api_base': API_BASE,
    'poll_interval': POLL_INTERVAL,
    'request_timeout': REQUEST_TIMEOUT,
    'search_limit': SEARCH_LIMIT,
    'default_query': DEFAULT_QUERY,
}


def load_settings(path=None, overrides=None) -> dict:
    """Return DEFAULTS merged with a YAML file and explicit overrides.

    Args:
        path: YAML file. Falls back to $MUSICVIZ_CONFIG; missing means defaults.
        overrides: dict applied last (CLI flags). None values are skipped.

    Raises:
        FileNotFoundError: an explicit path does not exist.
        ValueError: the file is not a mapping, or a count or rate is not a
            positive integer.
    """
    settings = dict(DEFAULTS)

    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)

    if path:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
        _merge(settings, data, source=path)

    if overrides:
        _merge(settings, {k: v for k, v in overrides.items() if v is not None},
               source='overrides')

    for key in POSITIVE_INT_KEYS:
        value = settings[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"{key} must be a positive integer, got {value!r}")

    return settings


def _merge(settings, data, source):
    for key, value in data.items():
        key = str(key).lower()
        if key not in DEFAULTS:
            logger.warning("[config] %s: unknown key %r ignored", source, key)
            continue
        default = DEFAULTS[key]
        if isinstance(default, float) and isinstance(value, int):
            value = float(value)
        elif isinstance(default, tuple) and isinstance(value, list):
            value = tuple(value)
        settings[key] = value


"""
BarPalette: maps a bar intensity (0-1) to an RGB fill color.

Colors are linear interpolation between stops, so with the default two
stops the red channel rises with intensity while blue stays saturated:

    v = 0  ->  (40, 200, 255)
    v = 1  ->  (220, 80, 255)

A stop list given in the config must keep that shape: red never falls
from one stop to the next and blue stays at 255.
"""

import numpy as np

from musicviz.config import PALETTE


def _sample_colors(colors, t):
    """Sample color from Nx3 color array at position t (0-1)."""
    t = np.clip(t, 0, 1)
    n = len(colors) - 1
    idx = t * n
    lo = int(idx)
    hi = min(lo + 1, n)
    frac = idx - lo
    return colors[lo] * (1 - frac) + colors[hi] * frac


class BarPalette:
    """Converts bar intensities to RGB colors.

    Args:
        colors: Nx3 color stops (0-255), N >= 1. Stop 0 is v = 0.

    Raises:
        ValueError: no stops, red decreasing between stops, or blue not 255.
    """

    def __init__(self, colors=PALETTE):
        colors = np.array(colors, dtype=np.float32).reshape(-1, 3)
        if len(colors) == 0:
            raise ValueError("palette needs at least one color stop")
        if np.any(np.diff(colors[:, 0]) < 0) or np.any(colors[:, 2] != 255):
            raise ValueError("palette stops must keep red non-decreasing and blue at 255")
        if len(colors) == 1:
            colors = np.vstack([colors, colors])
        self.colors = colors

    def color(self, v):
        """RGB tuple (ints) for a single intensity."""
        rgb = _sample_colors(self.colors, v)
        return tuple(int(round(c)) for c in np.clip(rgb, 0, 255))

    def colors_for(self, values) -> np.ndarray:
        """(len(values), 3) uint8 colors, vectorized."""
        t = np.clip(np.asarray(values, dtype=np.float64), 0, 1)
        n = len(self.colors) - 1
        idx = t * n
        lo = np.minimum(idx.astype(int), n)
        hi = np.minimum(lo + 1, n)
        frac = (idx - lo)[:, None]
        rgb = self.colors[lo] * (1 - frac) + self.colors[hi] * frac
        return np.clip(np.round(rgb), 0, 255).astype(np.uint8)


PALETTE_PRESETS = {
    'ice': PALETTE,
}


def resolve_palette(choice) -> BarPalette:
    """BarPalette from a preset name, a list of stops, or a BarPalette."""
    if isinstance(choice, BarPalette):
        return choice
    if isinstance(choice, str):
        if choice not in PALETTE_PRESETS:
            raise ValueError(f"unknown palette {choice!r}, choose from {', '.join(PALETTE_PRESETS)}")
        return BarPalette(PALETTE_PRESETS[choice])
    return BarPalette(choice)

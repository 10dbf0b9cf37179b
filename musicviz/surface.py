"""
PixelSurface: an RGB canvas backed by a numpy array.

The displayed size is in logical (CSS-style) pixels; the backing array is
displayed size x device pixel ratio so bars stay crisp on HiDPI screens.
sync_size() is the resize check the render driver runs every frame.
"""

import numpy as np


class PixelSurface:
    """(height, width, 3) uint8 pixel buffer with clipped rectangle fills."""

    def __init__(self, width: int = 1, height: int = 1, device_pixel_ratio: float = 1.0):
        self.device_pixel_ratio = 1.0
        self.pixels = np.zeros((1, 1, 3), dtype=np.uint8)
        self.sync_size(width, height, device_pixel_ratio)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def sync_size(self, display_width, display_height, device_pixel_ratio=1.0) -> bool:
        """Match the backing size to display size x DPR. True if it changed."""
        dpr = max(1.0, float(device_pixel_ratio or 1.0))
        width = max(1, int(round(display_width * dpr)))
        height = max(1, int(round(display_height * dpr)))
        self.device_pixel_ratio = dpr
        if (height, width) == self.pixels.shape[:2]:
            return False
        self.pixels = np.zeros((height, width, 3), dtype=np.uint8)
        return True

    def fill(self, color):
        self.pixels[:, :] = color

    def fill_rect(self, x, y, w, h, color):
        """Fill [x, x+w) x [y, y+h); float edges are rounded, the rest clipped."""
        x0 = max(0, int(round(x)))
        y0 = max(0, int(round(y)))
        x1 = min(self.width, int(round(x + w)))
        y1 = min(self.height, int(round(y + h)))
        if x1 <= x0 or y1 <= y0:
            return
        self.pixels[y0:y1, x0:x1] = color

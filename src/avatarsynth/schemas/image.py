from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..errors import InputError


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Decoded RGBA image; the pixel buffer is read-only once constructed."""

    pixels: np.ndarray  # H x W x 4, uint8

    def __post_init__(self):
        px = np.asarray(self.pixels)
        if px.ndim != 3 or px.shape[2] != 4:
            raise InputError(f"Expected an HxWx4 RGBA buffer, got shape {px.shape}")
        if px.shape[0] == 0 or px.shape[1] == 0:
            raise InputError("Image has zero width or height")
        if px.dtype != np.uint8:
            px = np.clip(px, 0, 255).astype(np.uint8)
        px = np.ascontiguousarray(px).copy()
        px.setflags(write=False)
        object.__setattr__(self, "pixels", px)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    @classmethod
    def from_rgb(cls, rgb: np.ndarray, alpha: np.ndarray | int = 255) -> "RasterImage":
        rgb = np.asarray(rgb, dtype=np.uint8)
        if rgb.ndim != 3 or rgb.shape[2] != 3:
            raise InputError(f"Expected an HxWx3 RGB buffer, got shape {rgb.shape}")
        a = np.broadcast_to(np.asarray(alpha, dtype=np.uint8), rgb.shape[:2])
        return cls(np.dstack([rgb, a]))

    @classmethod
    def solid(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> "RasterImage":
        buf = np.empty((height, width, 4), dtype=np.uint8)
        buf[:, :] = rgba
        return cls(buf)

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from ..constants import (
    ALPHA_VISIBLE_THRESHOLD,
    BACKGROUND_BORDER_SHARE,
    BACKGROUND_BORDER_STRIDE,
    BACKGROUND_TOLERANCE,
    BRIGHT_POINT_BRIGHTNESS,
    COLOR_CLUSTER_SAMPLE_STRIDE,
    COLOR_CLUSTER_TOLERANCE,
    DARK_POINT_BRIGHTNESS,
    DOMINANT_COLOR_COUNT,
    EDGE_PEAK_EPSILON,
    SOBEL_KERNEL_X,
    WORKING_RESOLUTION,
)
from ..schemas.image import RasterImage
from ..util.imageio import downsample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColorCluster:
    r: int
    g: int
    b: int
    count: int
    fraction: float

    @property
    def rgb(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)

    def key(self) -> str:
        return f"{self.r},{self.g},{self.b}"


@dataclass(frozen=True, eq=False)
class PixelAnalysis:
    """Signals extracted once per image at the working resolution."""

    pixels: np.ndarray          # H x W x 4 uint8
    brightness: np.ndarray      # H x W float32, mean(R,G,B)/255
    saturation: np.ndarray      # H x W float32, (max-min)/255
    visible: np.ndarray         # H x W bool, alpha >= 50%
    foreground: np.ndarray      # H x W bool, visible minus border-connected background
    background_color: tuple[int, int, int] | None
    dominant_colors: tuple[ColorCluster, ...]
    dark_points: np.ndarray     # N x 2 int (x, y)
    bright_points: np.ndarray   # N x 2 int (x, y)
    edge_map: np.ndarray        # H x W float32 in [0, 1]

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def visible_fraction(self) -> float:
        return float(self.visible.mean())

    @property
    def foreground_fraction(self) -> float:
        return float(self.foreground.mean())


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


def brightness_map(rgba: np.ndarray) -> np.ndarray:
    return (rgba[:, :, :3].astype(np.float32).sum(axis=2) / (3.0 * 255.0)).astype(np.float32)


def saturation_map(rgba: np.ndarray) -> np.ndarray:
    rgb = rgba[:, :, :3]
    return ((rgb.max(axis=2).astype(np.float32) - rgb.min(axis=2).astype(np.float32)) / 255.0).astype(np.float32)


def cluster_colors(
    colors: np.ndarray,
    tolerance: float = COLOR_CLUSTER_TOLERANCE,
    top_n: int | None = DOMINANT_COLOR_COUNT,
) -> list[ColorCluster]:
    """Leader clustering in RGB space.

    A color joins the earliest-created cluster whose leader lies within
    ``tolerance``; otherwise it starts a new cluster. Clusters are returned by
    descending size (ties keep creation order).
    """
    colors = np.asarray(colors, dtype=np.float32).reshape(-1, 3)
    total = int(colors.shape[0])
    if total == 0:
        return []

    tol2 = float(tolerance) ** 2
    unassigned = np.ones(total, dtype=bool)
    found: list[tuple[np.ndarray, int]] = []
    while True:
        idx = np.flatnonzero(unassigned)
        if idx.size == 0:
            break
        leader = colors[idx[0]]
        d2 = ((colors[idx] - leader) ** 2).sum(axis=1)
        members = idx[d2 <= tol2]
        unassigned[members] = False
        found.append((leader, int(members.size)))

    found.sort(key=lambda c: -c[1])
    if top_n is not None:
        found = found[:top_n]
    return [
        ColorCluster(r=int(c[0]), g=int(c[1]), b=int(c[2]), count=n, fraction=n / total)
        for c, n in found
    ]


def _border_pixels(rgba: np.ndarray, stride: int) -> np.ndarray:
    top = rgba[0, ::stride]
    bottom = rgba[-1, ::stride]
    left = rgba[::stride, 0]
    right = rgba[::stride, -1]
    return np.concatenate([top, bottom, left, right], axis=0)


def detect_background_color(rgba: np.ndarray) -> tuple[int, int, int] | None:
    """Most common border color, if it dominates the border; ``None`` otherwise."""
    border = _border_pixels(rgba, BACKGROUND_BORDER_STRIDE)
    border = border[border[:, 3] >= ALPHA_VISIBLE_THRESHOLD]
    if border.shape[0] == 0:
        return None
    clusters = cluster_colors(border[:, :3], COLOR_CLUSTER_TOLERANCE, top_n=1)
    top = clusters[0]
    if top.fraction < BACKGROUND_BORDER_SHARE:
        return None
    return top.rgb


def segment_foreground(rgba: np.ndarray, background_color: tuple[int, int, int] | None) -> np.ndarray:
    """Visible pixels that are not background.

    Background = pixels within ``BACKGROUND_TOLERANCE`` of the background color
    that are connected to the image border, so same-colored pixels enclosed by
    the character survive.
    """
    visible = rgba[:, :, 3] >= ALPHA_VISIBLE_THRESHOLD
    if background_color is None:
        return visible.copy()

    diff = rgba[:, :, :3].astype(np.float32) - np.asarray(background_color, dtype=np.float32)
    candidate = visible & ((diff ** 2).sum(axis=2) <= BACKGROUND_TOLERANCE ** 2)
    if not candidate.any():
        return visible.copy()

    _n, labels = cv2.connectedComponents(candidate.astype(np.uint8), connectivity=4)
    edge_labels = np.unique(np.concatenate([labels[0], labels[-1], labels[:, 0], labels[:, -1]]))
    edge_labels = edge_labels[edge_labels != 0]
    background = np.isin(labels, edge_labels)
    return visible & ~background


def edge_strength(brightness: np.ndarray) -> np.ndarray:
    """Sobel magnitude normalized to [0, 1]; all zeros on a uniform image."""
    src = np.asarray(brightness, dtype=np.float64)
    kx = np.asarray(SOBEL_KERNEL_X, dtype=np.float64)
    ky = np.ascontiguousarray(kx.T)
    gx = cv2.filter2D(src, cv2.CV_64F, kx, borderType=cv2.BORDER_REPLICATE)
    gy = cv2.filter2D(src, cv2.CV_64F, ky, borderType=cv2.BORDER_REPLICATE)
    mag = np.sqrt(gx * gx + gy * gy)
    peak = float(mag.max()) if mag.size else 0.0
    if peak <= EDGE_PEAK_EPSILON:
        return np.zeros_like(brightness, dtype=np.float32)
    return (mag / peak).astype(np.float32)


def _points(mask: np.ndarray) -> np.ndarray:
    yx = np.argwhere(mask)
    return np.ascontiguousarray(yx[:, ::-1]).astype(np.int32)


def analyze_pixels(image: RasterImage, working_resolution: int | None = WORKING_RESOLUTION) -> PixelAnalysis:
    working = downsample(image, working_resolution) if working_resolution else image
    rgba = np.asarray(working.pixels)

    brightness = brightness_map(rgba)
    saturation = saturation_map(rgba)
    visible = rgba[:, :, 3] >= ALPHA_VISIBLE_THRESHOLD

    sample = rgba[::COLOR_CLUSTER_SAMPLE_STRIDE, ::COLOR_CLUSTER_SAMPLE_STRIDE]
    sample = sample[sample[:, :, 3] >= ALPHA_VISIBLE_THRESHOLD][:, :3]
    dominant = tuple(cluster_colors(sample))

    background = detect_background_color(rgba)
    foreground = segment_foreground(rgba, background)

    dark = _points(visible & (brightness < DARK_POINT_BRIGHTNESS))
    bright = _points(visible & (brightness > BRIGHT_POINT_BRIGHTNESS))
    edges = edge_strength(brightness)

    logger.debug(
        "pixel analysis %dx%d: visible=%.3f foreground=%.3f background=%s clusters=%d",
        working.width, working.height, float(visible.mean()), float(foreground.mean()),
        background, len(dominant),
    )
    return PixelAnalysis(
        pixels=rgba,
        brightness=_readonly(brightness),
        saturation=_readonly(saturation),
        visible=_readonly(visible),
        foreground=_readonly(foreground),
        background_color=background,
        dominant_colors=dominant,
        dark_points=_readonly(dark),
        bright_points=_readonly(bright),
        edge_map=_readonly(edges),
    )

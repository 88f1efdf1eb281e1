from __future__ import annotations

import logging

import numpy as np

from .. import constants as C
from ..schemas.image import RasterImage
from ..schemas.mesh import DepthField
from .pixel_analysis import detect_background_color, segment_foreground

logger = logging.getLogger(__name__)


def grid_coordinates(resolution: int) -> tuple[np.ndarray, np.ndarray]:
    """Normalized (nx, ny) for every grid cell, each R x R in [0, 1]."""
    if resolution < 2:
        raise ValueError(f"Grid resolution must be at least 2, got {resolution}")
    t = np.arange(resolution, dtype=np.float64) / (resolution - 1)
    ny, nx = np.meshgrid(t, t, indexing="ij")
    return nx, ny


def sample_grid(image: RasterImage, resolution: int) -> np.ndarray:
    """Nearest-neighbour sample of the image on an R x R grid (R x R x 4 uint8)."""
    nx, ny = grid_coordinates(resolution)
    sx = np.floor(nx[0] * (image.width - 1)).astype(np.intp)
    sy = np.floor(ny[:, 0] * (image.height - 1)).astype(np.intp)
    return image.pixels[np.ix_(sy, sx)]


def pixel_depth(
    rgba: np.ndarray,
    nx: np.ndarray,
    ny: np.ndarray,
    depth_multiplier: float = 1.0,
) -> np.ndarray:
    """Additive depth heuristic for sampled pixels.

    Every visible pixel starts at ``BASE_DEPTH``; zone bonuses (face, eye
    sockets, lips, torso, chest) and color bonuses (highlights, saturation)
    are added, the sum is scaled and clamped to [MIN_DEPTH, MAX_DEPTH].
    Pixels under 50% alpha are background and sit at ``MIN_DEPTH``.
    """
    rgb = rgba[..., :3].astype(np.float64)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    brightness = rgb.sum(axis=-1) / 3.0 / 255.0
    saturation = (rgb.max(axis=-1) - rgb.min(axis=-1)) / 255.0

    depth = np.full(brightness.shape, C.BASE_DEPTH, dtype=np.float64)

    face = ny < C.FACE_ZONE_MAX_Y
    depth += np.where(face, C.FACE_BONUS, 0.0)
    depth += np.where(face & (ny < C.EYE_ZONE_MAX_Y) & (brightness < C.EYE_DARK_BRIGHTNESS), C.EYE_SOCKET_BONUS, 0.0)
    lips = face & (ny > C.LIP_ZONE_Y[0]) & (ny < C.LIP_ZONE_Y[1]) & (r > g) & (r > b)
    depth += np.where(lips, C.LIP_BONUS, 0.0)

    torso = (ny > C.TORSO_ZONE_Y[0]) & (ny < C.TORSO_ZONE_Y[1])
    depth += np.where(torso, C.TORSO_BONUS, 0.0)
    depth += np.where(torso & (nx > C.CHEST_ZONE_X[0]) & (nx < C.CHEST_ZONE_X[1]), C.CHEST_BONUS, 0.0)

    depth += np.where(brightness > C.HIGHLIGHT_BRIGHTNESS, C.HIGHLIGHT_BONUS, 0.0)
    depth += np.where(saturation > C.SATURATION_THRESHOLD, C.SATURATION_BONUS, 0.0)

    depth = np.clip(depth * depth_multiplier, C.MIN_DEPTH, C.MAX_DEPTH)
    return np.where(rgba[..., 3] < C.ALPHA_VISIBLE_THRESHOLD, C.MIN_DEPTH, depth)


def synthesize_depth(
    image: RasterImage,
    resolution: int = C.DEFAULT_MESH_RESOLUTION,
    depth_multiplier: float = 1.0,
    mask_background: bool = True,
) -> DepthField:
    """Depth field on a ``resolution`` grid.

    With ``mask_background`` the border-connected region of the dominant border
    color is flattened to the minimum depth. On tight close-ups where the
    character itself fills most of the border, that color is the character
    and real opaque pixels get flattened too; pass ``mask_background=False``
    for such crops.
    """
    if depth_multiplier <= 0:
        raise ValueError(f"depth_multiplier must be positive, got {depth_multiplier}")
    grid = sample_grid(image, resolution)
    nx, ny = grid_coordinates(resolution)
    depth = pixel_depth(grid, nx, ny, depth_multiplier)

    if mask_background:
        bg = detect_background_color(grid)
        fg = segment_foreground(grid, bg)
        depth = np.where(fg, depth, C.MIN_DEPTH)
        logger.debug("depth: background %s, foreground %.3f of grid", bg, float(fg.mean()))

    logger.debug("depth field %dx%d: min=%.3f max=%.3f", resolution, resolution, float(depth.min()), float(depth.max()))
    return DepthField(values=depth.astype(np.float32), depth_multiplier=depth_multiplier)

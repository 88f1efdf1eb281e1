from __future__ import annotations

import logging

import cv2
import numpy as np

from .. import constants as C
from ..schemas.image import RasterImage
from ..schemas.pose import PoseEstimate

logger = logging.getLogger(__name__)


def _stroke(width_px: int, image_width: int) -> int:
    return max(1, int(round(width_px * image_width / C.GUIDE_REFERENCE_SIZE)))


def _blend(rgb: np.ndarray, mask: np.ndarray, color: tuple[int, int, int], alpha: float) -> None:
    """In-place ``rgb = rgb * (1 - a) + color * a`` wherever ``mask`` is set."""
    a = (mask.astype(np.float32) / 255.0 * alpha)[:, :, None]
    rgb *= 1.0 - a
    rgb += np.asarray(color, dtype=np.float32) * a


def guide_layers(width: int, height: int) -> list[tuple[np.ndarray, tuple[int, int, int], float]]:
    """Overlay masks (uint8, 255 = covered) with their color and opacity, in compositing order."""
    y = int(round(height * C.CANONICAL_SHOULDER_Y))

    tint = np.full((height, width), 255, dtype=np.uint8)

    line = np.zeros((height, width), dtype=np.uint8)
    x0, x1 = (int(round(width * f)) for f in C.GUIDE_LINE_SPAN)
    cv2.line(line, (x0, y), (x1, y), 255, _stroke(C.GUIDE_LINE_WIDTH, width))

    zones = np.zeros((height, width), dtype=np.uint8)
    radius = max(1, int(round(width * C.ARM_ZONE_RADIUS_FRACTION)))
    for cx in C.ARM_ZONE_CENTERS_X:
        cv2.circle(zones, (int(round(width * cx)), y), radius, 255, thickness=-1)

    arms = np.zeros((height, width), dtype=np.uint8)
    for a, b in C.ARM_GUIDE_SEGMENTS:
        cv2.line(arms, (int(round(width * a)), y), (int(round(width * b)), y), 255,
                 _stroke(C.ARM_GUIDE_WIDTH, width))

    return [
        (tint, (0, 0, 0), C.TINT_ALPHA),
        (line, C.GUIDE_LINE_COLOR, C.GUIDE_LINE_ALPHA),
        (zones, C.ARM_ZONE_COLOR, C.ARM_ZONE_ALPHA),
        (arms, C.ARM_ZONE_COLOR, C.ARM_GUIDE_ALPHA),
    ]


def normalize_pose(image: RasterImage, pose: PoseEstimate | None = None) -> RasterImage:
    """Composite canonical T-pose guides over the image.

    Guides sit at fixed canonical arm positions: a horizontal line at shoulder
    height and arm-zone circles at both sides. Output is a new image of the
    same size; the alpha channel is copied unchanged. Same input, same output.
    """
    rgb = image.rgb.astype(np.float32)
    for mask, color, alpha in guide_layers(image.width, image.height):
        _blend(rgb, mask, color, alpha)

    out = np.dstack([np.clip(np.rint(rgb), 0, 255).astype(np.uint8), image.alpha])
    if pose is not None:
        logger.info(
            "normalized pose (ratio %.2f, left %.1f / right %.1f deg)",
            pose.asymmetry_ratio, pose.left_arm.angle, pose.right_arm.angle,
        )
    return RasterImage(out)

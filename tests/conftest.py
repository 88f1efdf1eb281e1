import math
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = (ROOT / "src").resolve()
SCRIPTS = (ROOT / "scripts").resolve()

for p in (SRC, SCRIPTS):
    if p not in (Path(x).resolve() for x in sys.path):
        sys.path.insert(0, str(p))

from avatarsynth.schemas.image import RasterImage  # noqa: E402

FIGURE_COLOR = (120, 80, 40)
ARM_LENGTH = 80
LEFT_SHOULDER = (98, 100)
RIGHT_SHOULDER = (157, 100)


def draw_figure(left_angle: float, right_angle: float, size: int = 256) -> RasterImage:
    """Stick-figure character on a white background.

    Arms start at the torso corners and rise ``left_angle`` / ``right_angle``
    degrees above horizontal, pointing away from the body.
    """
    img = np.full((size, size, 3), 255, dtype=np.uint8)
    cv2.rectangle(img, (98, 90), (157, 190), FIGURE_COLOR, -1)
    cv2.circle(img, (128, 65), 18, FIGURE_COLOR, -1)
    cv2.rectangle(img, (105, 191), (122, 250), FIGURE_COLOR, -1)
    cv2.rectangle(img, (133, 191), (150, 250), FIGURE_COLOR, -1)

    la, ra = math.radians(left_angle), math.radians(right_angle)
    lx, ly = LEFT_SHOULDER
    rx, ry = RIGHT_SHOULDER
    cv2.line(img, (lx, ly), (int(round(lx - ARM_LENGTH * math.cos(la))), int(round(ly - ARM_LENGTH * math.sin(la)))), FIGURE_COLOR, 6)
    cv2.line(img, (rx, ry), (int(round(rx + ARM_LENGTH * math.cos(ra))), int(round(ry - ARM_LENGTH * math.sin(ra)))), FIGURE_COLOR, 6)
    return RasterImage.from_rgb(img)


@pytest.fixture
def gray_image() -> RasterImage:
    return RasterImage.solid(256, 256, (128, 128, 128, 255))


@pytest.fixture
def transparent_image() -> RasterImage:
    return RasterImage.solid(64, 64, (200, 50, 50, 0))


@pytest.fixture
def figure():
    return draw_figure


@pytest.fixture
def png_bytes():
    from avatarsynth.util.imageio import encode_png

    def _encode(image: RasterImage) -> bytes:
        return encode_png(image)

    return _encode

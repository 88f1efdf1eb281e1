import numpy as np

from avatarsynth.schemas.image import RasterImage
from avatarsynth.stages.pose_normalizer import guide_layers, normalize_pose


def test_normalization_is_deterministic(figure):
    image = figure(80, 10)
    a = normalize_pose(image)
    b = normalize_pose(image)
    assert a is not image
    assert np.array_equal(a.pixels, b.pixels)
    assert (a.width, a.height) == (image.width, image.height)


def test_alpha_channel_is_untouched():
    px = np.full((64, 64, 4), 200, dtype=np.uint8)
    px[:, :32, 3] = 0
    image = RasterImage(px)
    out = normalize_pose(image)
    assert np.array_equal(out.alpha, image.alpha)


def test_guides_tint_and_mark_the_shoulder_line():
    white = RasterImage.solid(256, 256, (255, 255, 255, 255))
    out = normalize_pose(white).pixels
    y = round(256 * 0.35)
    # tint only
    assert tuple(out[250, 128, :3]) == (242, 242, 242)
    # tint then the green shoulder line
    assert tuple(out[y, 128, :3]) == (218, 244, 218)
    # arm zones lean blue
    zone = out[y + 10, round(256 * 0.15)]
    assert zone[2] > zone[0]


def test_guide_layers_scale_with_image():
    layers = guide_layers(128, 64)
    assert [m.shape for m, _, _ in layers] == [(64, 128)] * 4
    tint, line, zones, arms = (m for m, _, _ in layers)
    assert tint.min() == 255
    assert line[round(64 * 0.35)].any()
    assert not line[0].any()
    assert zones.any() and arms.any()

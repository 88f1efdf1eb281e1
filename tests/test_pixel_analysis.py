import numpy as np

from avatarsynth.schemas.image import RasterImage
from avatarsynth.stages.pixel_analysis import (
    analyze_pixels,
    cluster_colors,
    detect_background_color,
    edge_strength,
    segment_foreground,
)


def test_uniform_image_has_no_edges_or_point_sets(gray_image):
    a = analyze_pixels(gray_image)
    assert a.width == a.height == 256
    assert float(a.edge_map.max()) == 0.0
    assert a.dark_points.shape == (0, 2)
    assert a.bright_points.shape == (0, 2)
    assert len(a.dominant_colors) == 1
    assert a.dominant_colors[0].rgb == (128, 128, 128)
    assert a.dominant_colors[0].fraction == 1.0


def test_uniform_image_is_all_background(gray_image):
    a = analyze_pixels(gray_image)
    assert a.background_color == (128, 128, 128)
    assert a.visible_fraction == 1.0
    assert a.foreground_fraction == 0.0


def test_transparent_image_has_nothing_visible(transparent_image):
    a = analyze_pixels(transparent_image, working_resolution=None)
    assert not a.visible.any()
    assert not a.foreground.any()
    assert a.dominant_colors == ()
    assert a.background_color is None


def test_cluster_colors_joins_within_tolerance_and_orders_by_size():
    colors = np.array(
        [[0, 0, 0], [10, 10, 10], [200, 0, 0], [205, 5, 0], [210, 0, 0], [0, 0, 255]],
        dtype=np.uint8,
    )
    clusters = cluster_colors(colors, tolerance=30, top_n=None)
    assert [c.count for c in clusters] == [3, 2, 1]
    assert clusters[0].rgb == (200, 0, 0)
    assert clusters[1].key() == "0,0,0"


def test_edge_strength_is_normalized():
    b = np.zeros((16, 16), dtype=np.float32)
    b[:, 8:] = 1.0
    edges = edge_strength(b)
    assert float(edges.max()) == 1.0
    assert float(edges[:, 0].max()) == 0.0


def test_solid_images_have_no_edges_at_any_gray_level():
    for v in range(256):
        a = analyze_pixels(RasterImage.solid(32, 32, (v, v, v, 255)), working_resolution=None)
        assert float(a.edge_map.max()) == 0.0, v


def test_one_level_step_still_reads_as_an_edge():
    px = np.full((32, 32, 3), 128, dtype=np.uint8)
    px[:, 16:] = 129
    a = analyze_pixels(RasterImage.from_rgb(px), working_resolution=None)
    assert float(a.edge_map.max()) == 1.0
    assert float(a.edge_map[:, :8].max()) == 0.0


def test_foreground_keeps_enclosed_background_colored_pixels():
    px = np.full((64, 64, 3), 255, dtype=np.uint8)
    px[20:44, 20:44] = (0, 0, 0)
    px[26:38, 26:38] = (255, 255, 255)
    rgba = RasterImage.from_rgb(px).pixels

    bg = detect_background_color(rgba)
    assert bg == (255, 255, 255)
    fg = segment_foreground(rgba, bg)
    assert fg[30, 30]
    assert fg[21, 21]
    assert not fg[5, 5]
    assert int(fg.sum()) == 24 * 24


def test_no_background_when_border_is_mixed():
    px = np.zeros((32, 32, 3), dtype=np.uint8)
    px[:, 16:] = (255, 255, 255)
    rgba = RasterImage.from_rgb(px).pixels
    assert detect_background_color(rgba) is None
    assert segment_foreground(rgba, None).all()

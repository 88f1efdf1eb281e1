import logging

import numpy as np
import pytest

from avatarsynth.schemas.image import RasterImage
from avatarsynth.stages.depth_synthesis import grid_coordinates, pixel_depth, sample_grid, synthesize_depth
from avatarsynth.stages.mesh_assembly import (
    assemble_mesh,
    estimate_mesh_bytes,
    fit_resolution_to_budget,
    grid_faces,
)


def _depth_of(rgba, nx, ny):
    px = np.array([[rgba]], dtype=np.uint8)
    return float(pixel_depth(px, np.array([[nx]]), np.array([[ny]]))[0, 0])


def test_pixel_depth_zones():
    # face + lips + saturation, clamped
    assert _depth_of((255, 0, 0, 255), 0.5, 0.5) == pytest.approx(0.8)
    # row 0.6 is neither face nor torso
    assert _depth_of((128, 128, 128, 255), 0.5, 0.6) == pytest.approx(0.1)
    # torso + chest
    assert _depth_of((128, 128, 128, 255), 0.5, 0.7) == pytest.approx(0.35)
    # torso only outside the chest band
    assert _depth_of((128, 128, 128, 255), 0.2, 0.7) == pytest.approx(0.25)
    # dark pixel in the eye band
    assert _depth_of((20, 20, 20, 255), 0.5, 0.2) == pytest.approx(0.55)
    # below the torso a bright pixel only gets the highlight bonus
    assert _depth_of((250, 250, 250, 255), 0.5, 0.95) == pytest.approx(0.3)
    assert _depth_of((250, 250, 250, 0), 0.5, 0.5) == pytest.approx(0.02)


def test_depth_multiplier_scales_before_clamping():
    px = np.array([[(128, 128, 128, 255)]], dtype=np.uint8)
    base = pixel_depth(px, np.array([[0.5]]), np.array([[0.95]]), 1.0)
    doubled = pixel_depth(px, np.array([[0.5]]), np.array([[0.95]]), 2.0)
    assert float(doubled[0, 0]) == pytest.approx(2 * float(base[0, 0]))
    with pytest.raises(ValueError):
        synthesize_depth(RasterImage.solid(8, 8, (0, 0, 0, 255)), resolution=4, depth_multiplier=0)


def test_transparent_image_is_flat(transparent_image):
    depth = synthesize_depth(transparent_image, resolution=16)
    assert depth.resolution == 16
    assert depth.is_uniform()
    assert float(depth.values[0, 0]) == pytest.approx(0.02)


def test_background_masking(gray_image):
    masked = synthesize_depth(gray_image, resolution=32)
    assert masked.is_uniform()
    assert float(masked.values.max()) == pytest.approx(0.02)

    unmasked = synthesize_depth(gray_image, resolution=32, mask_background=False)
    assert not unmasked.is_uniform()


def test_masking_flattens_a_close_up_that_fills_the_border():
    px = np.full((64, 64, 3), (220, 180, 150), dtype=np.uint8)
    px[28:36, 28:36] = (20, 20, 20)
    face = RasterImage.from_rgb(px)
    masked = synthesize_depth(face, resolution=32)
    unmasked = synthesize_depth(face, resolution=32, mask_background=False)
    assert float(masked.values[10, 3]) == pytest.approx(0.02)
    assert float(unmasked.values[10, 3]) > 0.02


def test_depth_values_stay_in_range(figure):
    depth = synthesize_depth(figure(80, 10), resolution=64)
    assert float(depth.values.min()) >= 0.02 - 1e-6
    assert float(depth.values.max()) <= 0.8 + 1e-6
    assert not depth.is_uniform()


def test_grid_sampling_hits_corners():
    px = np.zeros((10, 20, 4), dtype=np.uint8)
    px[0, 0] = (1, 0, 0, 255)
    px[9, 19] = (2, 0, 0, 255)
    grid = sample_grid(RasterImage(px), 5)
    assert grid.shape == (5, 5, 4)
    assert grid[0, 0, 0] == 1
    assert grid[4, 4, 0] == 2
    with pytest.raises(ValueError):
        grid_coordinates(1)


def test_small_grid_mesh_topology():
    faces = grid_faces(4)
    assert faces.shape == (18, 3)
    assert faces[:2].tolist() == [[0, 4, 1], [1, 4, 5]]
    assert int(faces.max()) == 15


def test_grid_faces_are_manifold_around_every_vertex():
    r = 6
    counts = np.bincount(grid_faces(r).ravel(), minlength=r * r).reshape(r, r)
    assert (counts[1:-1, 1:-1] == 6).all()
    border = np.concatenate([counts[0], counts[-1], counts[1:-1, 0], counts[1:-1, -1]])
    assert ((border >= 1) & (border < 6)).all()
    assert (counts[0, 0], counts[0, -1], counts[-1, 0], counts[-1, -1]) == (1, 2, 2, 1)


def test_assembled_mesh_buffers(transparent_image):
    mesh = assemble_mesh(synthesize_depth(transparent_image, resolution=4), transparent_image)
    assert mesh.validate() == []
    assert mesh.vertex_count == 16
    assert mesh.face_count == 18
    pos = mesh.positions()
    assert pos[0].tolist() == pytest.approx([-1.0, 1.0, 0.02])
    assert pos[15].tolist() == pytest.approx([1.0, -1.0, 0.02])
    uv = mesh.texture_coords.reshape(-1, 2)
    assert uv[0].tolist() == pytest.approx([0.0, 1.0])
    n = mesh.normals.reshape(-1, 3)
    assert n[0].tolist() == pytest.approx([-0.1, -0.1, np.sqrt(0.98)], abs=1e-6)
    assert np.allclose(np.linalg.norm(n, axis=1), 1.0, atol=1e-6)
    assert mesh.colors is not None and mesh.colors.size == 16 * 4


def test_full_resolution_counts(gray_image):
    mesh = assemble_mesh(synthesize_depth(gray_image, resolution=256))
    assert mesh.vertex_count == 65536
    assert mesh.face_count == 130050
    assert mesh.colors is None
    assert mesh.nbytes() <= estimate_mesh_bytes(256)


def test_resolution_fits_output_budget(caplog):
    assert fit_resolution_to_budget(256, 10) == 256
    with caplog.at_level(logging.WARNING):
        assert fit_resolution_to_budget(256, 1) == 128
    assert "reduced 256 -> 128" in caplog.text
    assert fit_resolution_to_budget(64, 0.001) == 16

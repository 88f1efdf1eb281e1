from __future__ import annotations

import logging

import numpy as np

from .. import constants as C
from ..schemas.image import RasterImage
from ..schemas.mesh import DepthField, Mesh3D
from .depth_synthesis import grid_coordinates, sample_grid

logger = logging.getLogger(__name__)

MIN_MESH_RESOLUTION = 16
# float32 position + normal, float32 uv, rgba bytes
_BYTES_PER_VERTEX = 12 + 12 + 8 + 4
_BYTES_PER_FACE = 12


def grid_faces(resolution: int) -> np.ndarray:
    """Two triangles per grid quad, (tl, bl, tr) and (tr, bl, br)."""
    r = resolution
    y, x = np.meshgrid(np.arange(r - 1), np.arange(r - 1), indexing="ij")
    tl = (y * r + x).ravel()
    tr = tl + 1
    bl = tl + r
    br = bl + 1
    quads = np.stack([tl, bl, tr, tr, bl, br], axis=1)
    return quads.reshape(-1, 3).astype(np.uint32)


def estimate_mesh_bytes(resolution: int) -> int:
    return resolution * resolution * _BYTES_PER_VERTEX + 2 * (resolution - 1) ** 2 * _BYTES_PER_FACE


def fit_resolution_to_budget(resolution: int, max_output_size_mb: float) -> int:
    """Halve ``resolution`` until the mesh buffers fit ``max_output_size_mb``."""
    limit = max_output_size_mb * 1024 * 1024
    r = resolution
    while r > MIN_MESH_RESOLUTION and estimate_mesh_bytes(r) > limit:
        r = max(MIN_MESH_RESOLUTION, r // 2)
    if r != resolution:
        logger.warning("mesh resolution reduced %d -> %d to fit %.0f MB", resolution, r, max_output_size_mb)
    return r


def assemble_mesh(depth: DepthField, image: RasterImage | None = None) -> Mesh3D:
    """Build the R x R grid mesh for a depth field.

    Positions are ``((nx-0.5)*2, (0.5-ny)*2, depth)``, UVs ``(nx, 1-ny)``.
    Normals lean away from the grid center rather than following the surface.
    When ``image`` is given its sampled RGBA becomes the vertex color.
    """
    r = depth.resolution
    nx, ny = grid_coordinates(r)

    positions = np.stack([(nx - 0.5) * 2.0, (0.5 - ny) * 2.0, depth.values], axis=-1)
    uvs = np.stack([nx, 1.0 - ny], axis=-1)

    ox = (nx - 0.5) * C.NORMAL_DEVIATION_SCALE
    oy = (ny - 0.5) * C.NORMAL_DEVIATION_SCALE
    oz = np.sqrt(np.maximum(0.0, 1.0 - ox * ox - oy * oy))
    normals = np.stack([ox, oy, oz], axis=-1)

    colors = sample_grid(image, r) if image is not None else None

    mesh = Mesh3D(
        vertices=positions,
        faces=grid_faces(r),
        normals=normals,
        texture_coords=uvs,
        colors=colors,
    )
    logger.debug("mesh %dx%d: %d vertices, %d faces", r, r, mesh.vertex_count, mesh.face_count)
    return mesh

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


def _frozen(arr: np.ndarray, dtype) -> np.ndarray:
    out = np.ascontiguousarray(arr, dtype=dtype).copy()
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class DepthField:
    """Per-cell depth on the R x R synthesis grid, clamped to [MIN_DEPTH, MAX_DEPTH]."""

    values: np.ndarray  # R x R float32
    depth_multiplier: float = 1.0

    def __post_init__(self):
        v = np.asarray(self.values)
        if v.ndim != 2 or v.shape[0] != v.shape[1]:
            raise ValueError(f"Depth field must be square, got shape {v.shape}")
        object.__setattr__(self, "values", _frozen(v, np.float32))

    @property
    def resolution(self) -> int:
        return int(self.values.shape[0])

    def is_uniform(self, tol: float = 1e-6) -> bool:
        return bool(float(self.values.max() - self.values.min()) <= tol)


@dataclass(frozen=True, eq=False)
class Mesh3D:
    """Dense grid mesh stored as flat buffers.

    ``vertices`` and ``normals`` hold 3 floats per vertex, ``texture_coords``
    2 floats per vertex, ``faces`` 3 vertex indices per triangle and ``colors``
    4 bytes (RGBA) per vertex.
    """

    vertices: np.ndarray
    faces: np.ndarray
    normals: np.ndarray
    texture_coords: np.ndarray
    colors: np.ndarray | None = None

    def __post_init__(self):
        object.__setattr__(self, "vertices", _frozen(np.ravel(self.vertices), np.float32))
        object.__setattr__(self, "faces", _frozen(np.ravel(self.faces), np.uint32))
        object.__setattr__(self, "normals", _frozen(np.ravel(self.normals), np.float32))
        object.__setattr__(self, "texture_coords", _frozen(np.ravel(self.texture_coords), np.float32))
        if self.colors is not None:
            object.__setattr__(self, "colors", _frozen(np.ravel(self.colors), np.uint8))

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.size // 3)

    @property
    def face_count(self) -> int:
        return int(self.faces.size // 3)

    def positions(self) -> np.ndarray:
        return self.vertices.reshape(-1, 3)

    def triangles(self) -> np.ndarray:
        return self.faces.reshape(-1, 3)

    def nbytes(self) -> int:
        total = self.vertices.nbytes + self.faces.nbytes + self.normals.nbytes + self.texture_coords.nbytes
        if self.colors is not None:
            total += self.colors.nbytes
        return int(total)

    def validate(self) -> list[str]:
        """Return a list of broken buffer invariants (empty when the mesh is valid)."""
        errors: list[str] = []
        if self.vertices.size % 3:
            errors.append("vertex buffer length is not a multiple of 3")
        if self.faces.size % 3:
            errors.append("face buffer length is not a multiple of 3")
        if self.normals.size != self.vertices.size:
            errors.append("normals and vertices differ in length")
        if self.vertices.size != 3 * self.texture_coords.size // 2 or self.texture_coords.size % 2:
            errors.append("texture coordinates do not match the vertex count")
        if self.colors is not None and self.colors.size != 4 * self.vertex_count:
            errors.append("colors do not match the vertex count")
        if self.faces.size and int(self.faces.max()) >= self.vertex_count:
            errors.append("face index out of range")
        return errors

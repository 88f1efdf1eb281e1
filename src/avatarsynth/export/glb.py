from __future__ import annotations

import logging

import numpy as np
import trimesh
from PIL import Image

from ..schemas.image import RasterImage
from ..schemas.mesh import Mesh3D
from ..schemas.rig import RigAllocation

logger = logging.getLogger(__name__)

GLB_MAGIC = b"glTF"


def to_trimesh(mesh: Mesh3D, texture: RasterImage | None = None) -> trimesh.Trimesh:
    """Wrap the flat buffers without letting trimesh merge or reorder vertices."""
    tm = trimesh.Trimesh(
        vertices=mesh.positions(),
        faces=mesh.triangles(),
        vertex_normals=mesh.normals.reshape(-1, 3),
        process=False,
    )
    uv = mesh.texture_coords.reshape(-1, 2)
    if texture is not None:
        material = trimesh.visual.material.PBRMaterial(
            baseColorTexture=Image.fromarray(np.ascontiguousarray(texture.pixels)),
            metallicFactor=0.0,
            roughnessFactor=1.0,
        )
        tm.visual = trimesh.visual.TextureVisuals(uv=uv, material=material)
    elif mesh.colors is not None:
        tm.visual = trimesh.visual.ColorVisuals(tm, vertex_colors=mesh.colors.reshape(-1, 4))
    else:
        tm.visual = trimesh.visual.TextureVisuals(uv=uv)
    return tm


def _local_translation(bone, by_name) -> list[float]:
    pos = np.asarray(bone.position, dtype=np.float64)
    # A bone whose parent is not in the rig becomes a root at its absolute position.
    parent = by_name.get(bone.parent) if bone.parent is not None else None
    if parent is not None:
        pos = pos - np.asarray(parent.position, dtype=np.float64)
    return [float(v) for v in pos]


def rig_tree_postprocessor(rig: RigAllocation):
    """Returns a hook that appends the bone hierarchy and morph names to a glTF tree."""

    def _post(tree: dict) -> None:
        nodes = tree.setdefault("nodes", [])
        base = len(nodes)
        by_name = {b.name: b for b in rig.bones}
        index = {b.name: base + i for i, b in enumerate(rig.bones)}
        for b in rig.bones:
            nodes.append({"name": b.name, "translation": _local_translation(b, by_name)})
        roots = []
        for b in rig.bones:
            if b.parent is None or b.parent not in index:
                roots.append(index[b.name])
            else:
                nodes[index[b.parent]].setdefault("children", []).append(index[b.name])

        scenes = tree.setdefault("scenes", [{"nodes": []}])
        scenes[tree.get("scene", 0)].setdefault("nodes", []).extend(roots)

        morph_names = rig.morph_names
        for m in tree.get("meshes", []):
            m.setdefault("extras", {})["targetNames"] = morph_names
        tree.setdefault("extras", {})["avatarsynth"] = {
            "tier": rig.tier,
            "bones": rig.bone_names,
            "morph_targets": morph_names,
        }

    return _post


def export_glb(mesh: Mesh3D, rig: RigAllocation, texture: RasterImage | None = None) -> bytes:
    """Serialize mesh + rig as one binary glTF 2.0 container."""
    scene = trimesh.Scene()
    scene.add_geometry(to_trimesh(mesh, texture), node_name="avatar", geom_name="avatar")
    data = trimesh.exchange.gltf.export_glb(
        scene,
        include_normals=True,
        tree_postprocessor=rig_tree_postprocessor(rig),
    )
    logger.debug("glb: %d bytes, %d bones, %d morph names", len(data), len(rig.bones), len(rig.morph_targets))
    return data

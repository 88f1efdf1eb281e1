from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from .features import FeatureProfile
from .pose import PoseEstimate


class Status(BaseModel):
    ok: bool
    errors: list[str] = Field(default_factory=list)


class MeshStats(BaseModel):
    resolution: int
    vertex_count: int
    face_count: int
    nbytes: int
    depth_min: float
    depth_max: float
    depth_uniform: bool


class RigSummary(BaseModel):
    tier: str
    bones: list[str] = Field(default_factory=list)
    morph_targets: list[str] = Field(default_factory=list)
    bones_clamped: bool = False
    morphs_clamped: bool = False


class AvatarReport(BaseModel):
    schema_version: str = "1.0"
    image_id: str
    rel_image_path: str | None = None
    width: int = 0
    height: int = 0
    status: Status
    features: FeatureProfile | None = None
    pose: PoseEstimate | None = None
    # "none" | "regenerated" | "guide_overlay"
    normalization: str = "none"
    mesh: MeshStats | None = None
    rig: RigSummary | None = None
    timings_ms: dict[str, float] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)

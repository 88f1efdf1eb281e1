from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Landmark2D(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    x_px: float | None = None
    y_px: float | None = None


class ArmPose(BaseModel):
    model_config = ConfigDict(frozen=True)

    shoulder: Landmark2D
    elbow: Landmark2D
    wrist: Landmark2D
    angle: float = 0.0  # degrees in [0, 180], elevation measured outward from the body


class ArmLandmarks(BaseModel):
    """Raw estimator output for both arms (image-left arm first)."""

    model_config = ConfigDict(frozen=True)

    left_shoulder: Landmark2D
    left_elbow: Landmark2D
    left_wrist: Landmark2D
    right_shoulder: Landmark2D
    right_elbow: Landmark2D
    right_wrist: Landmark2D
    confidence: float = 1.0


class PoseEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    left_arm: ArmPose
    right_arm: ArmPose
    asymmetry_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    requires_normalization: bool = False
    confidence: float = 0.0
    issues: tuple[str, ...] = ()

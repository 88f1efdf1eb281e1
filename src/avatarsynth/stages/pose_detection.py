from __future__ import annotations

import logging
import math

from .. import constants as C
from ..detectors.heuristic_landmarks import HeuristicLandmarkEstimator, LandmarkEstimator
from ..schemas.pose import ArmLandmarks, ArmPose, Landmark2D, PoseEstimate
from .pixel_analysis import PixelAnalysis

logger = logging.getLogger(__name__)


def default_landmarks() -> ArmLandmarks:
    """Canonical relaxed pose used when landmarks cannot be estimated."""
    return ArmLandmarks(
        left_shoulder=Landmark2D(x=0.3, y=0.3),
        left_elbow=Landmark2D(x=0.2, y=0.4),
        left_wrist=Landmark2D(x=0.1, y=0.5),
        right_shoulder=Landmark2D(x=0.7, y=0.3),
        right_elbow=Landmark2D(x=0.8, y=0.4),
        right_wrist=Landmark2D(x=0.9, y=0.5),
        confidence=0.0,
    )


def _px(lm: Landmark2D, width: int, height: int) -> tuple[float, float]:
    if lm.x_px is not None and lm.y_px is not None:
        return lm.x_px, lm.y_px
    return lm.x * width, lm.y * height


def arm_angle(shoulder: Landmark2D, wrist: Landmark2D, side: str, width: int = 1, height: int = 1) -> float:
    """Elevation of the shoulder-to-wrist vector in degrees, in [0, 180].

    0 is horizontal pointing away from the body, 90 straight up (or down).
    The horizontal component is mirrored for the image-left arm so mirrored
    poses produce equal angles.
    """
    sx, sy = _px(shoulder, width, height)
    wx, wy = _px(wrist, width, height)
    dx = wx - sx
    if side == "left":
        dx = -dx
    dy = wy - sy
    return abs(math.degrees(math.atan2(-dy, dx)))


def estimate_pose_from_landmarks(landmarks: ArmLandmarks, width: int = 1, height: int = 1) -> PoseEstimate:
    left = arm_angle(landmarks.left_shoulder, landmarks.left_wrist, "left", width, height)
    right = arm_angle(landmarks.right_shoulder, landmarks.right_wrist, "right", width, height)
    diff = abs(left - right)
    ratio = min(1.0, diff / 180.0)
    requires = ratio > C.ASYMMETRY_THRESHOLD

    issues: list[str] = []
    if requires:
        issues.append("Asymmetrical arm positioning detected")
        if left > C.RAISED_ARM_ANGLE or right > C.RAISED_ARM_ANGLE:
            issues.append("One or both arms raised above shoulder level")
        if diff > C.LARGE_ANGLE_DIFFERENCE:
            issues.append("Significant arm angle difference detected")

    return PoseEstimate(
        left_arm=ArmPose(
            shoulder=landmarks.left_shoulder, elbow=landmarks.left_elbow,
            wrist=landmarks.left_wrist, angle=left,
        ),
        right_arm=ArmPose(
            shoulder=landmarks.right_shoulder, elbow=landmarks.right_elbow,
            wrist=landmarks.right_wrist, angle=right,
        ),
        asymmetry_ratio=ratio,
        requires_normalization=requires,
        confidence=landmarks.confidence,
        issues=tuple(issues),
    )


def failed_pose(reason: str) -> PoseEstimate:
    lms = default_landmarks()
    return PoseEstimate(
        left_arm=ArmPose(shoulder=lms.left_shoulder, elbow=lms.left_elbow, wrist=lms.left_wrist, angle=0.0),
        right_arm=ArmPose(shoulder=lms.right_shoulder, elbow=lms.right_elbow, wrist=lms.right_wrist, angle=0.0),
        asymmetry_ratio=0.0,
        requires_normalization=False,
        confidence=0.0,
        issues=(f"Pose detection failed: {reason}",),
    )


def detect_pose(analysis: PixelAnalysis, estimator: LandmarkEstimator | None = None) -> PoseEstimate:
    """Estimate arm landmarks and score left/right asymmetry.

    Never raises: an estimator failure (``None`` or an exception) yields the
    canonical default pose with zero confidence and no normalization request.
    """
    estimator = estimator or HeuristicLandmarkEstimator()
    try:
        landmarks = estimator.estimate(analysis.foreground)
    except Exception as e:
        logger.warning("landmark estimation raised %s: %s", type(e).__name__, e)
        return failed_pose(f"{type(e).__name__}: {e}")

    if landmarks is None:
        logger.info("no figure found for pose estimation; assuming canonical pose")
        return failed_pose("no figure found")

    pose = estimate_pose_from_landmarks(landmarks, analysis.width, analysis.height)
    logger.info(
        "pose: left=%.1f right=%.1f ratio=%.2f normalize=%s",
        pose.left_arm.angle, pose.right_arm.angle, pose.asymmetry_ratio, pose.requires_normalization,
    )
    return pose

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from .. import constants as C
from ..schemas.pose import ArmLandmarks, Landmark2D

logger = logging.getLogger(__name__)


class LandmarkEstimator(Protocol):
    def estimate(self, foreground: np.ndarray) -> ArmLandmarks | None: ...


@dataclass(frozen=True)
class HeuristicLandmarkConfig:
    min_foreground_fraction: float = C.MIN_FOREGROUND_FRACTION
    max_foreground_fraction: float = C.MAX_FOREGROUND_FRACTION
    torso_column_coverage: float = C.TORSO_COLUMN_COVERAGE
    torso_row_coverage: float = C.TORSO_ROW_COVERAGE
    shoulder_drop_fraction: float = C.SHOULDER_DROP_FRACTION
    min_arm_length_fraction: float = C.MIN_ARM_LENGTH_FRACTION

    def __post_init__(self):
        if not 0.0 <= self.min_foreground_fraction < self.max_foreground_fraction <= 1.0:
            raise ValueError(
                f"Foreground fraction bounds must satisfy 0 <= min < max <= 1 "
                f"(got {self.min_foreground_fraction}, {self.max_foreground_fraction})"
            )


def _run_around(values: np.ndarray, start: int, threshold: float) -> tuple[int, int]:
    """Inclusive bounds of the contiguous run around ``start`` where values >= threshold."""
    lo = hi = start
    while lo > 0 and values[lo - 1] >= threshold:
        lo -= 1
    while hi < values.size - 1 and values[hi + 1] >= threshold:
        hi += 1
    return lo, hi


class HeuristicLandmarkEstimator:
    """Arm landmarks from a foreground silhouette.

    The torso is the widest block of tall columns; shoulders sit just below its
    top edge, the wrist is the foreground pixel farthest from the shoulder on
    each side (above the hip line) and the elbow is the foreground pixel nearest
    the shoulder-wrist midpoint. ``estimate`` returns ``None`` when no figure
    with two arms can be found.
    """

    def __init__(self, cfg: HeuristicLandmarkConfig | None = None):
        self.cfg = cfg or HeuristicLandmarkConfig()

    def estimate(self, foreground: np.ndarray) -> ArmLandmarks | None:
        fg = np.asarray(foreground, dtype=bool)
        h, w = fg.shape
        frac = float(fg.mean())
        if not (self.cfg.min_foreground_fraction <= frac <= self.cfg.max_foreground_fraction):
            logger.debug("landmarks: foreground fraction %.3f outside bounds", frac)
            return None

        cols = fg.sum(axis=0).astype(np.float64)
        peak = int(np.argmax(cols))
        x0, x1 = _run_around(cols, peak, self.cfg.torso_column_coverage * cols[peak])

        row_cov = fg[:, x0:x1 + 1].mean(axis=1)
        torso_rows = np.flatnonzero(row_cov >= self.cfg.torso_row_coverage)
        if torso_rows.size == 0:
            logger.debug("landmarks: no torso rows in span x=%d..%d", x0, x1)
            return None
        top, hip = _run_around(row_cov, int(torso_rows[0]), self.cfg.torso_row_coverage)
        torso_h = max(1, hip - top)
        shoulder_y = top + self.cfg.shoulder_drop_fraction * torso_h

        ys, xs = np.nonzero(fg)
        above_hip = ys < hip
        min_len = self.cfg.min_arm_length_fraction * torso_h

        arms = []
        for side, shoulder_x, on_side in (
            ("left", float(x0), xs < x0),
            ("right", float(x1), xs > x1),
        ):
            sel = on_side & above_hip
            if not sel.any():
                logger.debug("landmarks: no %s arm pixels outside torso span", side)
                return None
            ax = xs[sel].astype(np.float64)
            ay = ys[sel].astype(np.float64)
            d2 = (ax - shoulder_x) ** 2 + (ay - shoulder_y) ** 2
            i = int(np.argmax(d2))
            if float(np.sqrt(d2[i])) < min_len:
                logger.debug("landmarks: %s arm shorter than %.1f px", side, min_len)
                return None
            wrist = (ax[i], ay[i])
            mid = ((shoulder_x + wrist[0]) / 2.0, (shoulder_y + wrist[1]) / 2.0)
            j = int(np.argmin((ax - mid[0]) ** 2 + (ay - mid[1]) ** 2))
            elbow = (ax[j], ay[j])
            arms.append(((shoulder_x, shoulder_y), elbow, wrist))

        def lm(p: tuple[float, float]) -> Landmark2D:
            return Landmark2D(x=p[0] / w, y=p[1] / h, x_px=p[0], y_px=p[1])

        confidence = min(_segment_coverage(fg, a[0], a[2]) for a in arms)
        (ls, le, lw), (rs, re, rw) = arms
        return ArmLandmarks(
            left_shoulder=lm(ls), left_elbow=lm(le), left_wrist=lm(lw),
            right_shoulder=lm(rs), right_elbow=lm(re), right_wrist=lm(rw),
            confidence=confidence,
        )


def _segment_coverage(fg: np.ndarray, a: tuple[float, float], b: tuple[float, float], samples: int = 32) -> float:
    """Fraction of points on segment a-b that land on the foreground."""
    h, w = fg.shape
    t = np.linspace(0.0, 1.0, samples)
    x = np.clip(np.rint(a[0] + (b[0] - a[0]) * t).astype(int), 0, w - 1)
    y = np.clip(np.rint(a[1] + (b[1] - a[1]) * t).astype(int), 0, h - 1)
    return float(fg[y, x].mean())

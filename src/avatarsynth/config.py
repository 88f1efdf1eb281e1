from __future__ import annotations

import os
from dataclasses import dataclass

from . import constants as C

INFERENCE_URL_ENV = "AVATARSYNTH_INFERENCE_URL"


@dataclass(frozen=True)
class SynthesisConfig:
    QUALITY_PRESETS = {
        "draft": {"mesh_resolution": 64},
        "standard": {"mesh_resolution": 128},
        "high": {"mesh_resolution": 256},
    }

    quality: str | None = None
    working_resolution: int = C.WORKING_RESOLUTION
    mesh_resolution: int = C.DEFAULT_MESH_RESOLUTION
    depth_multiplier: float = 1.0
    mask_background: bool = True
    fit_output_budget: bool = True

    def __post_init__(self):
        if self.working_resolution < 8:
            raise ValueError(f"working_resolution must be >= 8 (got {self.working_resolution})")
        if self.mesh_resolution < 2:
            raise ValueError(f"mesh_resolution must be >= 2 (got {self.mesh_resolution})")
        if self.depth_multiplier <= 0:
            raise ValueError(f"depth_multiplier must be positive (got {self.depth_multiplier})")
        if self.quality is None:
            return
        preset = self.apply_quality_preset(self.quality)
        object.__setattr__(self, "quality", self.quality.strip().lower())
        # A named preset wins over an explicit mesh_resolution.
        object.__setattr__(self, "mesh_resolution", preset["mesh_resolution"])

    @classmethod
    def apply_quality_preset(cls, quality: str) -> dict[str, int]:
        key = quality.strip().lower()
        if key not in cls.QUALITY_PRESETS:
            raise ValueError(f"Unknown quality preset '{quality}' (expected one of: {', '.join(cls.QUALITY_PRESETS)})")
        return cls.QUALITY_PRESETS[key]


@dataclass(frozen=True)
class InferenceConfig:
    """Generative image service settings; ``base_url=None`` disables remote calls."""

    base_url: str | None = None
    timeout_s: float = C.INFERENCE_TIMEOUT_S
    max_concurrency: int = C.INFERENCE_MAX_CONCURRENCY
    min_interval_s: float = C.INFERENCE_MIN_INTERVAL_S
    width: int = 512
    height: int = 512
    steps: int = 30
    guidance_scale: float = 7.5
    cache_ttl_s: float = 3600.0

    def __post_init__(self):
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive (got {self.timeout_s})")
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1 (got {self.max_concurrency})")
        if self.min_interval_s < 0:
            raise ValueError(f"min_interval_s must be >= 0 (got {self.min_interval_s})")
        if self.base_url is not None:
            url = self.base_url.strip().rstrip("/")
            object.__setattr__(self, "base_url", url or None)

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    @classmethod
    def from_env(cls, **overrides) -> "InferenceConfig":
        if overrides.get("base_url") is None:
            overrides["base_url"] = os.environ.get(INFERENCE_URL_ENV) or None
        return cls(**overrides)

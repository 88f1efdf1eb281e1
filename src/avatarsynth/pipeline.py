from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from .cache import ImageCache, cache_key
from .config import SynthesisConfig
from .detectors.heuristic_landmarks import HeuristicLandmarkEstimator, LandmarkEstimator
from .errors import ExternalServiceFailure, InferenceResponseError, InputError
from .export.glb import export_glb
from .inference.client import InferenceClient
from .inference.prompts import negative_prompt, tpose_prompt
from .rig.catalog import RigCatalogs, default_catalogs
from .rig.tiers import resolve_tier
from .schemas.features import FeatureProfile
from .schemas.image import RasterImage
from .schemas.mesh import DepthField, Mesh3D
from .schemas.pose import PoseEstimate
from .schemas.report import AvatarReport, MeshStats, RigSummary, Status
from .schemas.rig import RigAllocation
from .stages.depth_synthesis import synthesize_depth
from .stages.feature_classifier import classify_features, region_ratios
from .stages.mesh_assembly import assemble_mesh, fit_resolution_to_budget
from .stages.pixel_analysis import PixelAnalysis, analyze_pixels
from .stages.pose_detection import detect_pose, failed_pose
from .stages.pose_normalizer import normalize_pose
from .stages.rig_budget import allocate_rig
from .util.imageio import downsample, encode_png, load_raster

logger = logging.getLogger(__name__)

NORMALIZATION_NONE = "none"
NORMALIZATION_REGENERATED = "regenerated"
NORMALIZATION_GUIDES = "guide_overlay"


@dataclass(frozen=True, eq=False)
class AvatarResult:
    image_id: str
    source: RasterImage
    features: FeatureProfile
    pose: PoseEstimate
    depth: DepthField
    mesh: Mesh3D
    rig: RigAllocation
    texture: RasterImage
    normalization: str = NORMALIZATION_NONE
    normalized: RasterImage | None = None
    classifier_ratios: dict[str, float] = field(default_factory=dict)
    timings_ms: dict[str, float] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    def to_glb(self) -> bytes:
        return export_glb(self.mesh, self.rig, texture=self.texture)

    def report(self, rel_image_path: str | None = None) -> AvatarReport:
        values = self.depth.values
        return AvatarReport(
            image_id=self.image_id,
            rel_image_path=rel_image_path,
            width=self.source.width,
            height=self.source.height,
            status=Status(ok=True),
            features=self.features,
            pose=self.pose,
            normalization=self.normalization,
            mesh=MeshStats(
                resolution=self.depth.resolution,
                vertex_count=self.mesh.vertex_count,
                face_count=self.mesh.face_count,
                nbytes=self.mesh.nbytes(),
                depth_min=float(values.min()),
                depth_max=float(values.max()),
                depth_uniform=self.depth.is_uniform(),
            ),
            rig=RigSummary(
                tier=self.rig.tier,
                bones=self.rig.bone_names,
                morph_targets=self.rig.morph_names,
                bones_clamped=self.rig.bones_clamped,
                morphs_clamped=self.rig.morphs_clamped,
            ),
            timings_ms=dict(self.timings_ms),
            warnings=list(self.warnings),
            meta={"classifier_ratios": dict(self.classifier_ratios)},
        )


def _read_source(source: bytes | bytearray | str | Path) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    path = Path(source)
    if not path.is_file():
        raise InputError(f"Image file not found: {path}")
    return path.read_bytes()


class AvatarSynthesisPipeline:
    """Runs every stage for one image.

    Heuristic stages degrade to defaults rather than failing; only malformed
    input raises (``InputError``). Pose regeneration goes through the injected
    inference client and cache when both are available, and falls back to the
    deterministic guide overlay on any ``ExternalServiceFailure``.
    """

    def __init__(
        self,
        cfg: SynthesisConfig | None = None,
        inference: InferenceClient | None = None,
        cache: ImageCache | None = None,
        estimator: LandmarkEstimator | None = None,
        catalogs: RigCatalogs | None = None,
    ):
        self.cfg = cfg or SynthesisConfig()
        self.inference = inference
        self.cache = cache
        self.estimator = estimator or HeuristicLandmarkEstimator()
        self.catalogs = catalogs or default_catalogs()

    def close(self) -> None:
        if self.inference is not None:
            self.inference.close()

    def run(
        self,
        source: bytes | bytearray | str | Path | RasterImage,
        subscription_tier: str | None = "free",
        image_id: str = "avatar",
    ) -> AvatarResult:
        timings: dict[str, float] = {}
        warnings: list[str] = []

        @contextmanager
        def timed(stage: str):
            t0 = time.perf_counter()
            yield
            timings[stage] = round((time.perf_counter() - t0) * 1000.0, 3)

        with timed("decode"):
            if isinstance(source, RasterImage):
                data, image = None, source
            else:
                data = _read_source(source)
                image = load_raster(data)

        with timed("pixel_analysis"):
            analysis = analyze_pixels(image, self.cfg.working_resolution)

        with timed("classify_and_pose"):
            with ThreadPoolExecutor(max_workers=2) as ex:
                f_features = ex.submit(self._classify, analysis, warnings)
                f_pose = ex.submit(self._detect_pose, analysis, warnings)
                features = f_features.result()
                pose = f_pose.result()
            ratios = region_ratios(analysis)

        normalization, normalized = NORMALIZATION_NONE, None
        surface = image
        if pose.requires_normalization:
            with timed("pose_normalization"):
                normalized, normalization = self._normalize(image, data, features, pose, warnings)
            surface = normalized

        tier = resolve_tier(subscription_tier)
        resolution = self.cfg.mesh_resolution
        if self.cfg.fit_output_budget:
            resolution = fit_resolution_to_budget(resolution, tier.max_output_size_mb)

        with timed("depth"):
            depth = synthesize_depth(surface, resolution, self.cfg.depth_multiplier, self.cfg.mask_background)
        with timed("mesh"):
            mesh = assemble_mesh(depth, surface)
        with timed("rig"):
            rig = allocate_rig(tier.name, self.catalogs)

        logger.info(
            "%s: %s, %d vertices, %d faces, %d bones, normalization=%s",
            image_id, features.character_type.value, mesh.vertex_count, mesh.face_count,
            len(rig.bones), normalization,
        )
        return AvatarResult(
            image_id=image_id,
            source=image,
            features=features,
            pose=pose,
            depth=depth,
            mesh=mesh,
            rig=rig,
            texture=downsample(surface, self.cfg.working_resolution),
            normalization=normalization,
            normalized=normalized,
            classifier_ratios=ratios,
            timings_ms=timings,
            warnings=tuple(warnings),
        )

    def _classify(self, analysis: PixelAnalysis, warnings: list[str]) -> FeatureProfile:
        try:
            return classify_features(analysis)
        except Exception as e:
            logger.exception("feature classification failed; using default profile")
            warnings.append(f"feature classification degraded: {type(e).__name__}: {e}")
            return FeatureProfile.default()

    def _detect_pose(self, analysis: PixelAnalysis, warnings: list[str]) -> PoseEstimate:
        try:
            return detect_pose(analysis, self.estimator)
        except Exception as e:
            logger.exception("pose detection failed; assuming canonical pose")
            warnings.append(f"pose detection degraded: {type(e).__name__}: {e}")
            return failed_pose(f"{type(e).__name__}: {e}")

    def _normalize(
        self,
        image: RasterImage,
        data: bytes | None,
        features: FeatureProfile,
        pose: PoseEstimate,
        warnings: list[str],
    ) -> tuple[RasterImage, str]:
        if self.inference is not None and self.inference.enabled:
            try:
                return self._regenerate(image, data, features), NORMALIZATION_REGENERATED
            except ExternalServiceFailure as e:
                logger.warning("pose regeneration failed (%s); using guide overlay", e)
                warnings.append(f"pose regeneration fell back to guide overlay: {type(e).__name__}: {e}")
        return normalize_pose(image, pose), NORMALIZATION_GUIDES

    def _regenerate(self, image: RasterImage, data: bytes | None, features: FeatureProfile) -> RasterImage:
        prompt = tpose_prompt(features)
        key = cache_key(data if data is not None else encode_png(image), prompt)

        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                logger.info("pose regeneration served from cache")
                return load_raster(hit)

        request = self.inference.build_request(prompt, negative_prompt(features))
        payload = self.inference.generate(request)
        try:
            regenerated = load_raster(payload)
        except InputError as e:
            raise InferenceResponseError(f"Inference service returned an undecodable image: {e}") from e

        if self.cache is not None:
            self.cache.put(key, payload, self.inference.cfg.cache_ttl_s)
        return regenerated

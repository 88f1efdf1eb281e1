import json

import httpx
import pytest

from avatarsynth.cache import MemoryImageCache
from avatarsynth.config import InferenceConfig, SynthesisConfig
from avatarsynth.errors import InputError
from avatarsynth.inference.client import InferenceClient
from avatarsynth.pipeline import (
    NORMALIZATION_GUIDES,
    NORMALIZATION_NONE,
    NORMALIZATION_REGENERATED,
    AvatarSynthesisPipeline,
)
from avatarsynth.schemas.features import CharacterType

DRAFT = SynthesisConfig(quality="draft")


def _client(handler) -> InferenceClient:
    return InferenceClient(
        InferenceConfig(base_url="http://inference.local", min_interval_s=0.0, timeout_s=2.0),
        transport=httpx.MockTransport(handler),
    )


def test_solid_gray_end_to_end(gray_image, png_bytes):
    result = AvatarSynthesisPipeline().run(png_bytes(gray_image), subscription_tier="free", image_id="gray")
    assert result.features.character_type == CharacterType.GENERIC
    assert result.pose.confidence == 0.0
    assert result.normalization == NORMALIZATION_NONE
    assert result.normalized is None
    assert result.depth.is_uniform()
    assert result.mesh.vertex_count == 256 * 256
    assert result.mesh.face_count == 2 * 255 * 255
    assert len(result.rig.bones) == 9 and len(result.rig.morph_targets) == 5
    assert result.mesh.validate() == []
    assert set(result.timings_ms) >= {"decode", "pixel_analysis", "classify_and_pose", "depth", "mesh", "rig"}


def test_output_budget_lowers_resolution(monkeypatch, gray_image):
    from avatarsynth.rig import tiers

    small = tiers.SUBSCRIPTION_TIERS["free"].model_copy(update={"max_output_size_mb": 1})
    monkeypatch.setitem(tiers.SUBSCRIPTION_TIERS, "free", small)
    result = AvatarSynthesisPipeline().run(gray_image)
    assert result.depth.resolution == 128

    unfitted = AvatarSynthesisPipeline(SynthesisConfig(fit_output_budget=False)).run(gray_image)
    assert unfitted.depth.resolution == 256


def test_asymmetric_pose_gets_guide_overlay_without_inference(figure):
    image = figure(80, 10)
    result = AvatarSynthesisPipeline(DRAFT).run(image, subscription_tier="tier3")
    assert result.pose.requires_normalization
    assert result.normalization == NORMALIZATION_GUIDES
    assert result.normalized is not None
    assert result.normalized.width == image.width
    assert len(result.rig.bones) == 25
    assert result.warnings == ()


def test_symmetric_pose_is_left_alone(figure):
    result = AvatarSynthesisPipeline(DRAFT).run(figure(30, 30))
    assert result.normalization == NORMALIZATION_NONE
    assert not result.depth.is_uniform()


def test_regeneration_uses_service_and_cache(figure, png_bytes):
    calls = []
    regenerated = png_bytes(figure(10, 10))

    def handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(200, content=regenerated)

    pipeline = AvatarSynthesisPipeline(DRAFT, inference=_client(handler), cache=MemoryImageCache())
    source = png_bytes(figure(80, 10))
    first = pipeline.run(source)
    second = pipeline.run(source)
    pipeline.close()

    assert first.normalization == NORMALIZATION_REGENERATED
    assert second.normalization == NORMALIZATION_REGENERATED
    assert len(calls) == 1
    assert "T-pose" in calls[0]["prompt"]
    assert "crossed arms" in calls[0]["negative_prompt"]
    assert first.normalized.pixels.tobytes() == second.normalized.pixels.tobytes()


@pytest.mark.parametrize(
    "handler",
    [
        lambda req: httpx.Response(503, text="busy"),
        lambda req: httpx.Response(200, content=b"not an image"),
    ],
)
def test_inference_failure_falls_back_to_guides(figure, handler):
    pipeline = AvatarSynthesisPipeline(DRAFT, inference=_client(handler), cache=MemoryImageCache())
    result = pipeline.run(figure(80, 10))
    pipeline.close()
    assert result.normalization == NORMALIZATION_GUIDES
    assert len(result.warnings) == 1
    assert "guide overlay" in result.warnings[0]


def test_malformed_input_raises(tmp_path):
    with pytest.raises(InputError):
        AvatarSynthesisPipeline(DRAFT).run(b"\x00\x01garbage")
    with pytest.raises(InputError):
        AvatarSynthesisPipeline(DRAFT).run(tmp_path / "missing.png")


def test_report_serializes(figure):
    result = AvatarSynthesisPipeline(DRAFT).run(figure(80, 10), subscription_tier="tier2", image_id="fig")
    report = result.report(rel_image_path="fig.png")
    data = json.loads(report.model_dump_json())
    assert data["status"]["ok"] is True
    assert data["image_id"] == "fig"
    assert data["normalization"] == NORMALIZATION_GUIDES
    assert data["mesh"]["resolution"] == 64
    assert data["rig"]["tier"] == "tier2"
    assert len(data["rig"]["bones"]) == 15
    assert "headwear.dark" in data["meta"]["classifier_ratios"]
    assert data["pose"]["requires_normalization"] is True


def test_quality_preset_overrides_mesh_resolution():
    cfg = SynthesisConfig(quality=" Draft ", mesh_resolution=200)
    assert (cfg.quality, cfg.mesh_resolution) == ("draft", 64)
    assert SynthesisConfig.apply_quality_preset("HIGH") == {"mesh_resolution": 256}
    with pytest.raises(ValueError, match="Unknown quality preset"):
        SynthesisConfig(quality="ultra")
    with pytest.raises(ValueError):
        SynthesisConfig(depth_multiplier=0)

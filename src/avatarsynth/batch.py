from __future__ import annotations

import json
import logging
import traceback
from concurrent.futures import ProcessPoolExecutor, as_completed
from contextlib import ExitStack
from dataclasses import asdict, replace
from multiprocessing import Manager
from pathlib import Path

from tqdm import tqdm

from .cache import MemoryImageCache
from .config import InferenceConfig, SynthesisConfig
from .errors import InputError
from .inference.client import InferenceClient
from .pipeline import AvatarSynthesisPipeline
from .schemas.report import AvatarReport, Status
from .util.imageio import encode_png, iter_images

logger = logging.getLogger(__name__)

INDEX_NAME = "avatarsynth_index.jsonl"
SUMMARY_NAME = "avatarsynth_summary.json"


def _safe_relpath(p: Path, root: Path) -> str:
    try:
        return p.relative_to(root).as_posix()
    except ValueError:
        return p.name


def image_id_from_rel(rel: str) -> str:
    # Stable ID usable as a filename.
    base = rel.replace("/", "__")
    base = "".join(ch if (ch.isalnum() or ch in "._-") else "_" for ch in base)
    return base.replace(".", "_")


# ---- multiprocessing worker state ----
_PIPELINE: AvatarSynthesisPipeline | None = None


def worker_inference_config(cfg: InferenceConfig, workers: int) -> InferenceConfig:
    """Per-process share of the service budget.

    The in-flight cap is enforced by one shared semaphore; each worker only
    keeps its own rate clock, so its call spacing is stretched by ``workers``
    to keep the pool-wide start rate at ``1 / min_interval_s``.
    """
    if workers <= 1 or not cfg.enabled:
        return cfg
    return replace(cfg, min_interval_s=cfg.min_interval_s * workers)


def build_pipeline(synth: dict | None = None, inference: dict | None = None, slots=None) -> AvatarSynthesisPipeline:
    cfg = SynthesisConfig(**synth) if synth else SynthesisConfig()
    inf_cfg = InferenceConfig(**inference) if inference else InferenceConfig()
    client = InferenceClient(inf_cfg, slots=slots) if inf_cfg.enabled else None
    return AvatarSynthesisPipeline(cfg=cfg, inference=client, cache=MemoryImageCache() if client else None)


def _init_worker(synth: dict | None = None, inference: dict | None = None, slots=None):
    global _PIPELINE
    _PIPELINE = build_pipeline(synth, inference, slots)


def process_one(
    image_path: Path,
    input_root: Path,
    out_dir: Path,
    tier: str,
    save_normalized: bool,
) -> tuple[str, bool]:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = build_pipeline()

    rel = _safe_relpath(image_path, input_root)
    image_id = image_id_from_rel(rel)
    report_path = out_dir / "reports" / f"{image_id}.json"

    try:
        result = _PIPELINE.run(image_path, subscription_tier=tier, image_id=image_id)
        glb_path = out_dir / "avatars" / f"{image_id}.glb"
        glb_path.parent.mkdir(parents=True, exist_ok=True)
        glb_path.write_bytes(result.to_glb())

        report = result.report(rel_image_path=rel)
        report.meta["glb"] = f"avatars/{glb_path.name}"
        if save_normalized and result.normalized is not None:
            norm_path = out_dir / "normalized" / f"{image_id}.png"
            norm_path.parent.mkdir(parents=True, exist_ok=True)
            norm_path.write_bytes(encode_png(result.normalized))
            report.meta["normalized"] = f"normalized/{norm_path.name}"
        ok = True
    except InputError as e:
        logger.warning("%s: %s", rel, e)
        report = AvatarReport(image_id=image_id, rel_image_path=rel, status=Status(ok=False, errors=[f"InputError: {e}"]))
        ok = False
    except Exception as e:
        report = AvatarReport(
            image_id=image_id,
            rel_image_path=rel,
            status=Status(ok=False, errors=[f"{type(e).__name__}: {e}"]),
            meta={"traceback": traceback.format_exc()},
        )
        ok = False

    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(report.model_dump_json(indent=2))
    return image_id, ok


def run_batch(
    input_path: Path,
    out_dir: Path,
    tier: str = "free",
    workers: int = 4,
    synth_cfg: SynthesisConfig | None = None,
    inference_cfg: InferenceConfig | None = None,
    save_normalized: bool = False,
    max_images: int | None = None,
) -> Path:
    images = iter_images(input_path)
    if max_images is not None:
        images = images[:max_images]
    input_root = input_path if input_path.is_dir() else input_path.parent

    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / "reports").mkdir(parents=True, exist_ok=True)
    (out_dir / "avatars").mkdir(parents=True, exist_ok=True)

    ok = 0
    failed = 0
    index_path = out_dir / INDEX_NAME
    # Clear prior index for reruns
    if index_path.exists():
        index_path.unlink()

    synth = asdict(synth_cfg or SynthesisConfig())
    inf_cfg = inference_cfg or InferenceConfig()
    inference = asdict(worker_inference_config(inf_cfg, workers))

    with ExitStack() as stack:
        slots = None
        if inf_cfg.enabled and workers > 1:
            # One in-flight cap for the whole pool, not one per process.
            slots = stack.enter_context(Manager()).BoundedSemaphore(inf_cfg.max_concurrency)
        ex = stack.enter_context(
            ProcessPoolExecutor(max_workers=workers, initializer=_init_worker, initargs=(synth, inference, slots))
        )
        futures = [
            ex.submit(process_one, p, input_root, out_dir, tier, save_normalized)
            for p in images
        ]
        for fut in tqdm(as_completed(futures), total=len(futures), desc="Avatar synthesis"):
            image_id, is_ok = fut.result()
            if is_ok:
                ok += 1
            else:
                failed += 1
            with open(index_path, "a", encoding="utf-8") as f:
                f.write(json.dumps({"image_id": image_id, "ok": is_ok}) + "\n")

    summary = {
        "input": str(input_path.resolve()),
        "tier": tier,
        "total_images": len(images),
        "ok": ok,
        "failed": failed,
        "config": {"synthesis": synth, "inference_enabled": inference["base_url"] is not None},
        "outputs": {
            "index": INDEX_NAME,
            "reports_dir": "reports",
            "avatars_dir": "avatars",
            "normalized_dir": "normalized" if save_normalized else None,
        },
    }
    (out_dir / SUMMARY_NAME).write_text(json.dumps(summary, indent=2))
    return index_path

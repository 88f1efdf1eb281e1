from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .batch import SUMMARY_NAME, run_batch
from .config import INFERENCE_URL_ENV, InferenceConfig, SynthesisConfig
from .inference.client import inference_healthy
from .rig.tiers import SUBSCRIPTION_TIERS, TIER_ALIASES

app = typer.Typer(add_completion=False)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@app.command()
def main(
    input_path: Path = typer.Argument(..., exists=True, readable=True, help="Image file or directory (searched recursively)."),
    out: Path = typer.Option(Path("outputs/avatars/run1"), "--out", help="Output run directory."),
    tier: str = typer.Option("free", "--tier", help="Subscription tier: free|tier2|tier3|tier4|tier5 (legacy plan names accepted)."),
    workers: int = typer.Option(4, "--workers", min=1, help="Number of worker processes."),
    quality: str | None = typer.Option(None, "--quality", help="Mesh quality preset: draft|standard|high (overrides --mesh-resolution)."),
    mesh_resolution: int = typer.Option(256, "--mesh-resolution", min=2, help="Mesh grid size R (R x R vertices)."),
    depth_multiplier: float = typer.Option(1.0, "--depth-multiplier", min=0.01, help="Scale applied to the depth heuristic before clamping."),
    mask_background: bool = typer.Option(True, "--mask-background/--no-mask-background", help="Flatten border-connected background to minimum depth. Turn off for close-up crops where the character fills most of the border."),
    fit_output_budget: bool = typer.Option(True, "--fit-output-budget/--no-fit-output-budget", help="Lower the mesh resolution until it fits the tier's output size."),
    inference_url: str | None = typer.Option(None, "--inference-url", help=f"Generative image service base URL (default: ${INFERENCE_URL_ENV}). Unset = local guide overlay only."),
    inference_timeout: float = typer.Option(20.0, "--inference-timeout", min=0.1, help="Per-call inference timeout in seconds."),
    save_normalized: bool = typer.Option(False, "--save-normalized", help="Write pose-normalized images to outputs."),
    max_images: int | None = typer.Option(None, "--max-images", help="Optional cap for debugging."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Turn character portraits into rigged GLB avatars."""
    _setup_logging(verbose)

    tier_key = tier.strip().lower()
    if tier_key not in SUBSCRIPTION_TIERS and tier_key not in TIER_ALIASES:
        console.print(f"[yellow]Unknown tier '{tier}', free-tier limits apply[/yellow]")

    quality = quality.strip().lower() if quality else None
    if quality is not None and quality not in SynthesisConfig.QUALITY_PRESETS:
        raise typer.BadParameter("--quality must be one of: draft, standard, high")

    synth_cfg = SynthesisConfig(
        quality=quality,
        mesh_resolution=mesh_resolution,
        depth_multiplier=depth_multiplier,
        mask_background=mask_background,
        fit_output_budget=fit_output_budget,
    )
    inference_cfg = InferenceConfig.from_env(base_url=inference_url, timeout_s=inference_timeout)

    out.mkdir(parents=True, exist_ok=True)
    console.print(
        f"[bold]AvatarSynth[/bold]\nInput: {input_path}\nOut: {out}\nTier: {tier}\nWorkers: {workers}\n"
        f"Mesh: {synth_cfg.mesh_resolution}x{synth_cfg.mesh_resolution}"
    )
    if inference_cfg.enabled:
        state = "reachable" if inference_healthy(inference_cfg.base_url) else "[yellow]not responding[/yellow]"
        console.print(f"Inference: {inference_cfg.base_url} ({state})")
    else:
        console.print("Inference: disabled (guide overlay normalization)")

    run_batch(
        input_path=input_path,
        out_dir=out,
        tier=tier,
        workers=workers,
        synth_cfg=synth_cfg,
        inference_cfg=inference_cfg,
        save_normalized=save_normalized,
        max_images=max_images,
    )

    summary = json.loads((out / SUMMARY_NAME).read_text())
    table = Table(title="Run summary")
    table.add_column("images", justify="right")
    table.add_column("ok", justify="right", style="green")
    table.add_column("failed", justify="right", style="red")
    table.add_row(str(summary["total_images"]), str(summary["ok"]), str(summary["failed"]))
    console.print(table)


if __name__ == "__main__":
    app()

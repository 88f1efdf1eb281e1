from __future__ import annotations

import json
import math
from collections import Counter, defaultdict
from pathlib import Path
from typing import Iterable

import typer

from avatarsynth import constants as C

app = typer.Typer(add_completion=False, help="Aggregate report metrics to tune classifier thresholds.")

# report signal -> name of the constant it is compared against
SIGNAL_THRESHOLDS = {
    "headwear.dark": "HEADWEAR_DARK_RATIO",
    "headwear.colored": "HEADWEAR_COLORED_RATIO",
    "headwear.metallic": "HEADWEAR_METALLIC_RATIO",
    "eyewear.dark": "EYEWEAR_DARK_RATIO",
    "eyewear.reflective": "EYEWEAR_REFLECTIVE_RATIO",
    "eyewear.red": "EYEWEAR_RED_RATIO",
    "mouth.metallic": "MOUTH_GRILL_RATIO",
    "mouth.white": "MOUTH_TEETH_RATIO",
    "mouth.dark": "MOUTH_OPEN_DARK_RATIO",
    "clothing.fabric": "CLOTHING_FABRIC_RATIO",
    "clothing.chain": "CLOTHING_CHAIN_RATIO",
    "clothing.color_bins": "CLOTHING_PATTERN_BIN_COUNT",
    "pose.asymmetry_ratio": "ASYMMETRY_THRESHOLD",
}


def _percentile(values: list[float], pct: float) -> float | None:
    if not values:
        return None
    if len(values) == 1:
        return float(values[0])
    pct = min(max(pct, 0.0), 1.0)
    sorted_vals = sorted(values)
    idx = (len(sorted_vals) - 1) * pct
    lower = math.floor(idx)
    upper = math.ceil(idx)
    if lower == upper:
        return float(sorted_vals[int(idx)])
    weight = idx - lower
    return float(sorted_vals[lower] * (1.0 - weight) + sorted_vals[upper] * weight)


def _clamp(val: float, *, lo: float, hi: float) -> float:
    return float(max(lo, min(hi, val)))


def _collect_report_paths(run_dir: Path) -> list[Path]:
    reports = run_dir / "reports"
    if reports.is_dir():
        return sorted(reports.glob("*.json"))
    return []


def _load_metrics(path: Path) -> dict[str, object]:
    data = json.loads(path.read_text())
    if not (data.get("status") or {}).get("ok"):
        return {}
    meta = data.get("meta") or {}
    metrics: dict[str, object] = {k: float(v) for k, v in (meta.get("classifier_ratios") or {}).items()}
    pose = data.get("pose") or {}
    if pose.get("confidence"):
        metrics["pose.asymmetry_ratio"] = float(pose.get("asymmetry_ratio", 0.0))
    features = data.get("features") or {}
    if features.get("character_type"):
        metrics["character_type"] = str(features["character_type"])
    return metrics


def _summarize_metrics(values: list[float]) -> dict[str, float]:
    clean = [v for v in values if v is not None]
    if not clean:
        return {}
    return {
        "count": len(clean),
        "mean": sum(clean) / len(clean),
        "p10": _percentile(clean, 0.10),
        "p50": _percentile(clean, 0.50),
        "p90": _percentile(clean, 0.90),
    }


def recommend_threshold(values: list[float], target_rate: float, *, integer: bool = False) -> float | None:
    """Threshold at which roughly ``target_rate`` of the values fire (strict ``>``)."""
    thr = _percentile(values, 1.0 - target_rate)
    if thr is None:
        return None
    if integer:
        return float(max(1, round(thr)))
    return _clamp(round(thr, 3), lo=0.01, hi=0.95)


def firing_rate(values: list[float], threshold: float) -> float:
    if not values:
        return 0.0
    return sum(1 for v in values if v > threshold) / len(values)


def _emit_profile_report(profile: str, stats: dict[str, list[object]], target_rate: float, out_lines: list[str]) -> None:
    types: Counter[str] = Counter(stats.get("character_type", []))  # type: ignore[arg-type]

    out_lines.append(f"\n=== Run: {profile} ===")
    out_lines.append(f"reports: {sum(types.values())} ok")
    if types:
        total = sum(types.values())
        out_lines.append("character types: " + ", ".join(
            f"{kind}={count} ({(count/total)*100:.1f}%)" for kind, count in types.most_common()
        ))

    overrides: list[str] = []
    for signal, const_name in SIGNAL_THRESHOLDS.items():
        values = [float(v) for v in stats.get(signal, [])]  # type: ignore[arg-type]
        summary = _summarize_metrics(values)
        if not summary:
            continue
        current = float(getattr(C, const_name))
        integer = signal.endswith("color_bins")
        rec = recommend_threshold(values, target_rate, integer=integer)
        out_lines.append(
            f"{signal}: mean={summary['mean']:.3f} p10={summary['p10']:.3f} p50={summary['p50']:.3f} "
            f"p90={summary['p90']:.3f} | {const_name}={current:g} fires {firing_rate(values, current)*100:.1f}%"
        )
        if rec is not None and not math.isclose(rec, current):
            overrides.append(f"  {const_name} = {rec:g}")

    out_lines.append(f"proposed constants (target firing rate {target_rate:.0%}):")
    out_lines.extend(overrides or ["  (current values already match)"])


def _aggregate_runs(run_dirs: Iterable[Path]) -> dict[str, dict[str, list[object]]]:
    profiles: dict[str, dict[str, list[object]]] = defaultdict(lambda: defaultdict(list))
    for run_dir in run_dirs:
        paths = _collect_report_paths(run_dir)
        if not paths:
            continue
        bucket = profiles[run_dir.name]
        for path in paths:
            for key, value in _load_metrics(path).items():
                if value is None:
                    continue
                bucket[key].append(value)
    return profiles


@app.command()
def calibrate(
    root: Path = typer.Argument(Path("outputs/avatars"), exists=True, help="Run directory or a folder of runs."),
    target_rate: float = typer.Option(0.2, "--target-rate", min=0.01, max=0.99, help="Desired share of images on which each feature fires."),
    report_path: Path | None = typer.Option(None, "--report", help="Optional path to save the text report."),
):
    """Aggregate classifier ratios from one or more runs and propose thresholds."""
    if (root / "reports").is_dir():
        run_dirs = [root]
    else:
        run_dirs = [p for p in root.iterdir() if p.is_dir() and (p / "reports").is_dir()]

    if not run_dirs:
        typer.echo(f"No report folders found under {root}.")
        raise typer.Exit(code=1)

    profiles = _aggregate_runs(run_dirs)
    if not profiles:
        typer.echo("No metrics found in reports.")
        raise typer.Exit(code=1)

    lines: list[str] = []
    lines.append("AvatarSynth threshold calibration")
    lines.append(f"scanned runs: {', '.join(sorted(p.name for p in run_dirs))}")

    for profile, stats in sorted(profiles.items()):
        _emit_profile_report(profile, stats, target_rate, lines)

    report = "\n".join(lines)
    typer.echo(report)

    if report_path:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(report)
        typer.echo(f"Saved report to {report_path}")


if __name__ == "__main__":
    app()

import json

import pytest
from typer.testing import CliRunner

import calibrate_thresholds as cal


def _write_report(path, ok=True, dark=0.1, ratio=0.2, conf=0.9, kind="generic"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({
        "status": {"ok": ok},
        "features": {"character_type": kind},
        "pose": {"asymmetry_ratio": ratio, "confidence": conf},
        "meta": {"classifier_ratios": {"headwear.dark": dark, "clothing.color_bins": 4}},
    }))


def test_recommend_threshold_targets_firing_rate():
    values = [i / 10 for i in range(11)]
    thr = cal.recommend_threshold(values, 0.2)
    assert thr == pytest.approx(0.8)
    assert cal.firing_rate(values, thr) == pytest.approx(2 / 11)
    assert cal.recommend_threshold([], 0.2) is None
    assert cal.recommend_threshold([3, 9, 12], 0.5, integer=True) == 9.0


def test_aggregate_skips_failed_and_poseless_reports(tmp_path):
    run = tmp_path / "run1"
    _write_report(run / "reports" / "a.json", dark=0.5)
    _write_report(run / "reports" / "b.json", dark=0.2, conf=0.0)
    _write_report(run / "reports" / "c.json", ok=False, dark=0.9)
    profiles = cal._aggregate_runs([run, tmp_path / "empty"])
    stats = profiles["run1"]
    assert sorted(stats["headwear.dark"]) == [0.2, 0.5]
    assert stats["pose.asymmetry_ratio"] == [0.2]
    assert stats["character_type"] == ["generic", "generic"]
    assert "empty" not in profiles


def test_calibrate_command_writes_report(tmp_path):
    for i in range(5):
        _write_report(tmp_path / "runA" / "reports" / f"{i}.json", dark=0.1 * i)
    out = tmp_path / "calibration.txt"
    result = CliRunner().invoke(cal.app, [str(tmp_path), "--report", str(out)])
    assert result.exit_code == 0, result.output
    text = out.read_text()
    assert "=== Run: runA ===" in text
    assert "HEADWEAR_DARK_RATIO" in text


def test_calibrate_command_without_reports(tmp_path):
    result = CliRunner().invoke(cal.app, [str(tmp_path)])
    assert result.exit_code == 1

from __future__ import annotations

import logging

import numpy as np

from .. import constants as C
from ..schemas.features import (
    CharacterType,
    Clothing,
    Eyewear,
    FeatureProfile,
    Fur,
    Headwear,
    MissingParts,
    Mouth,
)
from .pixel_analysis import PixelAnalysis

logger = logging.getLogger(__name__)


def _margin(value: float, threshold: float) -> float:
    """0.5 exactly at the threshold, rising to 1.0 at the far end of [0, 1]."""
    span = threshold if value <= threshold else (1.0 - threshold)
    if span <= 0.0:
        return 1.0
    return float(min(1.0, 0.5 + 0.5 * abs(value - threshold) / span))


def _decision_confidence(checks: list[tuple[float, float]], fired: bool) -> float:
    if fired:
        return max(_margin(v, t) for v, t in checks if v > t)
    return min(_margin(v, t) for v, t in checks)


def _dominant_bin(rgb: np.ndarray, bin_size: int) -> str:
    q = (rgb // bin_size) * bin_size
    keys, counts = np.unique(q, axis=0, return_counts=True)
    r, g, b = keys[int(np.argmax(counts))]
    return f"{int(r)},{int(g)},{int(b)}"


def _region(analysis: PixelAnalysis, band: tuple[float, float]) -> tuple[np.ndarray, np.ndarray]:
    """Visible RGB pixels (int32, N x 3) and their 0-255 brightness for a vertical band."""
    h = analysis.height
    y0 = int(h * band[0])
    y1 = max(y0, int(h * band[1]))
    px = analysis.pixels[y0:y1]
    vis = analysis.visible[y0:y1]
    rgb = px[vis][:, :3].astype(np.int32)
    return rgb, rgb.sum(axis=1) / 3.0


def _channels(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    return rgb[:, 0], rgb[:, 1], rgb[:, 2]


def headwear_ratios(rgb: np.ndarray, bright: np.ndarray) -> dict[str, float]:
    r, g, b = _channels(rgb)
    metallic = (
        (bright > C.HEADWEAR_METALLIC_BRIGHTNESS)
        & (np.abs(r - g) < C.HEADWEAR_METALLIC_CHANNEL_DIFF)
        & (np.abs(g - b) < C.HEADWEAR_METALLIC_CHANNEL_DIFF)
    )
    return {
        "dark": float((bright < C.HEADWEAR_DARK_BRIGHTNESS).mean()),
        "colored": float((rgb > C.HEADWEAR_COLORED_CHANNEL).any(axis=1).mean()),
        "metallic": float(metallic.mean()),
    }


def analyze_headwear(rgb: np.ndarray, bright: np.ndarray) -> Headwear:
    if rgb.shape[0] == 0:
        return Headwear()
    ratios = headwear_ratios(rgb, bright)
    dark, colored, metallic = ratios["dark"], ratios["colored"], ratios["metallic"]

    present = dark > C.HEADWEAR_DARK_RATIO or colored > C.HEADWEAR_COLORED_RATIO
    kind, color = "none", "none"
    if present:
        if dark > C.HEADWEAR_SOLID_DARK_RATIO:
            kind = "military_helmet" if metallic > C.HEADWEAR_METALLIC_RATIO else "cap"
            color = "black"
        elif colored > C.HEADWEAR_COLORED_RATIO:
            kind = "beanie"
            color = _dominant_bin(rgb, C.HEADWEAR_COLOR_BIN)
        else:
            kind, color = "hat", "dark"

    conf = _decision_confidence(
        [(dark, C.HEADWEAR_DARK_RATIO), (colored, C.HEADWEAR_COLORED_RATIO)], present
    )
    logger.debug("headwear: %s (%s) dark=%.2f colored=%.2f metallic=%.2f", kind, color, dark, colored, metallic)
    return Headwear(present=present, type=kind, color=color, confidence=conf)


def eyewear_ratios(rgb: np.ndarray, bright: np.ndarray) -> dict[str, float]:
    r, g, b = _channels(rgb)
    red = (r > C.EYEWEAR_RED_MIN_R) & (g < C.EYEWEAR_RED_MAX_GB) & (b < C.EYEWEAR_RED_MAX_GB)
    return {
        "dark": float((bright < C.EYEWEAR_DARK_BRIGHTNESS).mean()),
        "red": float(red.mean()),
        "reflective": float((bright > C.EYEWEAR_REFLECTIVE_BRIGHTNESS).mean()),
    }


def analyze_eyewear(rgb: np.ndarray, bright: np.ndarray) -> Eyewear:
    if rgb.shape[0] == 0:
        return Eyewear()
    ratios = eyewear_ratios(rgb, bright)
    dark, red, reflective = ratios["dark"], ratios["red"], ratios["reflective"]

    present = dark > C.EYEWEAR_DARK_RATIO or reflective > C.EYEWEAR_REFLECTIVE_RATIO
    kind, eye_color = "none", "normal"
    if present:
        if red > C.EYEWEAR_RED_RATIO:
            kind, eye_color = "laser_eyes", "red"
        elif reflective > C.EYEWEAR_REFLECTIVE_RATIO:
            kind, eye_color = "reflective_sunglasses", "mirrored"
        else:
            kind, eye_color = "dark_sunglasses", "dark"

    conf = _decision_confidence(
        [(dark, C.EYEWEAR_DARK_RATIO), (reflective, C.EYEWEAR_REFLECTIVE_RATIO)], present
    )
    logger.debug("eyewear: %s dark=%.2f red=%.2f reflective=%.2f", kind, dark, red, reflective)
    return Eyewear(present=present, type=kind, eye_color=eye_color, confidence=conf)


def mouth_ratios(rgb: np.ndarray, bright: np.ndarray) -> dict[str, float]:
    r, g, b = _channels(rgb)
    metallic = (
        (bright > C.MOUTH_METALLIC_BRIGHTNESS)
        & (np.abs(r - g) < C.MOUTH_METALLIC_CHANNEL_DIFF)
        & (np.abs(g - b) < C.MOUTH_METALLIC_CHANNEL_DIFF)
    )
    return {
        "metallic": float(metallic.mean()),
        "white": float((rgb > C.MOUTH_WHITE_CHANNEL).all(axis=1).mean()),
        "dark": float((bright < C.MOUTH_DARK_BRIGHTNESS).mean()),
    }


def analyze_mouth(rgb: np.ndarray, bright: np.ndarray) -> Mouth:
    if rgb.shape[0] == 0:
        return Mouth()
    ratios = mouth_ratios(rgb, bright)
    metallic, white, dark = ratios["metallic"], ratios["white"], ratios["dark"]

    has_teeth = white > C.MOUTH_TEETH_RATIO
    has_grill = metallic > C.MOUTH_GRILL_RATIO
    if has_grill:
        style = "grill"
    elif has_teeth and dark > C.MOUTH_FANG_DARK_RATIO:
        style = "fanged"
    elif has_teeth:
        style = "smiling"
    elif dark > C.MOUTH_OPEN_DARK_RATIO:
        style = "open"
    else:
        style = "normal"

    checks = [(metallic, C.MOUTH_GRILL_RATIO), (white, C.MOUTH_TEETH_RATIO), (dark, C.MOUTH_OPEN_DARK_RATIO)]
    conf = _decision_confidence(checks, style != "normal")
    logger.debug("mouth: %s metallic=%.2f white=%.2f dark=%.2f", style, metallic, white, dark)
    return Mouth(style=style, has_teeth=has_teeth, has_grill=has_grill, confidence=conf)


def clothing_ratios(rgb: np.ndarray, bright: np.ndarray) -> dict[str, float]:
    r, g, b = _channels(rgb)
    chroma = rgb.max(axis=1) - rgb.min(axis=1)
    fabric = (
        (bright > C.CLOTHING_FABRIC_MIN_BRIGHTNESS)
        & (bright < C.CLOTHING_FABRIC_MAX_BRIGHTNESS)
        & (chroma > C.CLOTHING_FABRIC_CHROMA)
    )
    chain = (
        (bright > C.CLOTHING_CHAIN_BRIGHTNESS)
        & (np.abs(r - g) < C.CLOTHING_CHAIN_CHANNEL_DIFF)
        & (np.abs(g - b) < C.CLOTHING_CHAIN_CHANNEL_DIFF)
    )
    return {
        "fabric": float(fabric.mean()),
        "chain": float(chain.mean()),
        "color_bins": float(np.unique(rgb // C.CLOTHING_COLOR_BIN, axis=0).shape[0]),
    }


def analyze_clothing(rgb: np.ndarray, bright: np.ndarray) -> Clothing:
    if rgb.shape[0] == 0:
        return Clothing()
    ratios = clothing_ratios(rgb, bright)
    fabric, chain, variety = ratios["fabric"], ratios["chain"], int(ratios["color_bins"])

    present = fabric > C.CLOTHING_FABRIC_RATIO
    accessories: list[str] = []
    if chain > C.CLOTHING_CHAIN_RATIO:
        accessories.append("necklace")
    if variety > C.CLOTHING_PATTERN_BIN_COUNT:
        accessories.append("patterned_clothing")

    conf = _decision_confidence([(fabric, C.CLOTHING_FABRIC_RATIO)], present)
    logger.debug("clothing: present=%s fabric=%.2f chain=%.2f colors=%d", present, fabric, chain, variety)
    return Clothing(
        present=present,
        type="shirt" if present else "none",
        accessories=tuple(accessories),
        confidence=conf,
    )


def analyze_fur(analysis: PixelAnalysis) -> Fur:
    rgb = analysis.pixels[analysis.visible][:, :3].astype(np.int32)
    if rgb.shape[0] == 0:
        return Fur()
    q = (rgb // C.FUR_COLOR_BIN) * C.FUR_COLOR_BIN
    keys, counts = np.unique(q, axis=0, return_counts=True)
    order = np.argsort(-counts, kind="stable")
    top = keys[order[0]]
    primary = f"{int(top[0])},{int(top[1])},{int(top[2])}"
    significant = int((counts / float(rgb.shape[0]) >= C.FUR_MIN_BIN_SHARE).sum())
    pattern = "multicolored" if significant >= C.FUR_MULTICOLOR_BIN_COUNT else "solid"
    edge_mean = float(analysis.edge_map[analysis.visible].mean())
    texture = "fur" if edge_mean > C.FUR_ROUGH_EDGE_MEAN else "smooth"
    logger.debug("fur: primary=%s pattern=%s bins=%d edge=%.3f", primary, pattern, significant, edge_mean)
    return Fur(primary_color=primary, pattern=pattern, texture=texture)


def _sample_window(brightness255: np.ndarray, window: tuple[float, float, float, float]) -> np.ndarray:
    h, w = brightness255.shape
    x0, x1, y0, y1 = window
    step = C.MISSING_PART_SAMPLE_STRIDE
    return brightness255[int(y0 * h):int(y1 * h):step, int(x0 * w):int(x1 * w):step].ravel()


def is_region_empty(samples: np.ndarray) -> bool:
    """Low variance or extreme brightness reads as background."""
    if samples.size == 0:
        return True
    mean = float(samples.mean())
    variance = float(((samples - mean) ** 2).mean())
    return (
        variance < C.MISSING_PART_MIN_VARIANCE
        or mean < C.MISSING_PART_MIN_MEAN
        or mean > C.MISSING_PART_MAX_MEAN
    )


def detect_missing_parts(analysis: PixelAnalysis) -> MissingParts:
    b = analysis.brightness.astype(np.float64) * 255.0

    def empty(window) -> bool:
        return is_region_empty(_sample_window(b, window))

    return MissingParts(
        arms=empty(C.ARM_LEFT_WINDOW) or empty(C.ARM_RIGHT_WINDOW),
        legs=empty(C.LEG_LEFT_WINDOW) or empty(C.LEG_RIGHT_WINDOW),
        torso=empty(C.TORSO_WINDOW),
        hands=empty(C.HAND_LEFT_WINDOW) or empty(C.HAND_RIGHT_WINDOW),
    )


def classify_character(
    headwear: Headwear,
    eyewear: Eyewear,
    mouth: Mouth,
    clothing: Clothing,
    fur: Fur,
) -> tuple[CharacterType, float]:
    """Weighted vote over five feature flags, then single-cause overrides."""
    flags = {
        "hat": headwear.present,
        "sunglasses": eyewear.present,
        "grill_or_fangs": mouth.has_grill or mouth.style == "fanged",
        "clothing": clothing.present,
        "multicolored_fur": fur.pattern == "multicolored",
    }
    score = float(sum(C.FEATURE_VOTE_WEIGHTS[k] for k, on in flags.items() if on))

    if score >= C.NFT_VOTE_THRESHOLD:
        kind = CharacterType.NFT_CHARACTER
    elif mouth.style == "fanged":
        kind = CharacterType.ANIMAL
    elif eyewear.type == "laser_eyes":
        kind = CharacterType.ROBOT
    elif headwear.type == "military_helmet":
        kind = CharacterType.HUMAN
    else:
        kind = CharacterType.GENERIC
    return kind, score


def classify_features(analysis: PixelAnalysis) -> FeatureProfile:
    if not analysis.visible.any():
        logger.info("no visible pixels; returning default feature profile")
        return FeatureProfile.default()

    headwear = analyze_headwear(*_region(analysis, C.HEAD_REGION))
    eyewear = analyze_eyewear(*_region(analysis, C.EYE_REGION))
    mouth = analyze_mouth(*_region(analysis, C.MOUTH_REGION))
    clothing = analyze_clothing(*_region(analysis, C.BODY_REGION))
    fur = analyze_fur(analysis)
    missing = detect_missing_parts(analysis)
    kind, score = classify_character(headwear, eyewear, mouth, clothing, fur)

    confidence = float(np.mean([headwear.confidence, eyewear.confidence, mouth.confidence, clothing.confidence]))
    logger.info("character classification: %s (score %.1f, confidence %.2f)", kind.value, score, confidence)
    return FeatureProfile(
        character_type=kind,
        headwear=headwear,
        eyewear=eyewear,
        mouth=mouth,
        clothing=clothing,
        fur=fur,
        missing_parts=missing,
        vote_score=score,
        confidence=confidence,
    )


def region_ratios(analysis: PixelAnalysis) -> dict[str, float]:
    """Raw per-region ratios behind the classifier decisions, keyed ``region.signal``.

    Regions without visible pixels are left out. Used for threshold calibration.
    """
    out: dict[str, float] = {}
    for region, band, fn in (
        ("headwear", C.HEAD_REGION, headwear_ratios),
        ("eyewear", C.EYE_REGION, eyewear_ratios),
        ("mouth", C.MOUTH_REGION, mouth_ratios),
        ("clothing", C.BODY_REGION, clothing_ratios),
    ):
        rgb, bright = _region(analysis, band)
        if rgb.shape[0] == 0:
            continue
        out.update({f"{region}.{k}": v for k, v in fn(rgb, bright).items()})
    return out

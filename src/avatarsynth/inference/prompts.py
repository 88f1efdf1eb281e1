from __future__ import annotations

from ..schemas.features import CharacterType, FeatureProfile

_TYPE_PHRASES = {
    CharacterType.HUMAN: "human character",
    CharacterType.ANIMAL: "anthropomorphic animal character",
    CharacterType.ROBOT: "robot character",
    CharacterType.NFT_CHARACTER: "stylized collectible character",
    CharacterType.GENERIC: "character",
}

BASE_NEGATIVES = [
    "sitting", "crouching", "bent arms", "crossed arms", "arms at sides", "arms down",
    "hands on hips", "action pose", "dynamic pose",
    "side view", "back view", "three-quarter view",
    "partial body", "cropped", "incomplete limbs", "missing arms", "missing legs",
    "extra arms", "extra limbs",
    "deformed", "distorted", "malformed", "asymmetrical",
]


def tpose_prompt(profile: FeatureProfile) -> str:
    """Regeneration prompt: same character, front view, arms out in a T-pose."""
    parts = [f"front view of the same {_TYPE_PHRASES[profile.character_type]}", "T-pose", "arms extended horizontally"]

    if profile.headwear.present:
        color = "" if profile.headwear.color in ("none", "dark", "black") else f"rgb({profile.headwear.color}) "
        parts.append(f"wearing {color}{profile.headwear.type.replace('_', ' ')}")
    if profile.eyewear.present:
        parts.append(profile.eyewear.type.replace("_", " "))
    if profile.mouth.style != "normal":
        parts.append(f"{profile.mouth.style} mouth")
    if profile.clothing.present:
        parts.append(profile.clothing.type)
    for acc in profile.clothing.accessories:
        parts.append(acc.replace("_", " "))
    parts.append(f"{profile.fur.pattern} {profile.fur.texture} in rgb({profile.fur.primary_color})")

    missing = profile.missing_parts.names()
    if missing:
        parts.append(f"complete {', '.join(missing)}")

    parts += ["full body visible", "exactly two arms", "plain background"]
    return ", ".join(parts)


def negative_prompt(profile: FeatureProfile) -> str:
    negatives = list(BASE_NEGATIVES)
    if profile.character_type == CharacterType.ANIMAL:
        negatives.append("human proportions")
    elif profile.character_type == CharacterType.ROBOT:
        negatives.append("organic skin")
    return ", ".join(negatives)

from __future__ import annotations

import logging

from ..schemas.rig import TierBudget, TierProfile

logger = logging.getLogger(__name__)

DEFAULT_TIER = "free"

SUBSCRIPTION_TIERS: dict[str, TierProfile] = {
    "free": TierProfile(name="free", max_bones=9, max_morph_targets=5, max_output_size_mb=10, priority_level=1),
    "tier2": TierProfile(name="tier2", max_bones=15, max_morph_targets=12, max_output_size_mb=25, priority_level=2),
    "tier3": TierProfile(name="tier3", max_bones=25, max_morph_targets=20, max_output_size_mb=50, priority_level=3),
    "tier4": TierProfile(name="tier4", max_bones=45, max_morph_targets=35, max_output_size_mb=100, priority_level=4),
    "tier5": TierProfile(name="tier5", max_bones=65, max_morph_targets=50, max_output_size_mb=250, priority_level=5),
}

# Plan names used by older subscription records.
TIER_ALIASES = {
    "starter": "free",
    "reply_guy": "tier2",
    "spartan": "tier3",
    "zeus": "tier4",
    "goat": "tier5",
}


def resolve_tier(tier: str | None) -> TierProfile:
    """Tier profile for a plan name; unknown names fall back to the free tier."""
    key = (tier or "").strip().lower()
    key = TIER_ALIASES.get(key, key)
    profile = SUBSCRIPTION_TIERS.get(key)
    if profile is None:
        logger.warning("unknown subscription tier %r; using %s limits", tier, DEFAULT_TIER)
        return SUBSCRIPTION_TIERS[DEFAULT_TIER]
    return profile


def apply_tier_limits(tier: str | None, requested: TierBudget) -> TierBudget:
    """Cap a requested budget by the tier's limits."""
    profile = resolve_tier(tier)
    capped = TierBudget(
        max_bones=min(requested.max_bones, profile.max_bones),
        max_morph_targets=min(requested.max_morph_targets, profile.max_morph_targets),
    )
    if capped != requested:
        logger.info(
            "requested %d bones / %d morphs capped to %d / %d for tier %s",
            requested.max_bones, requested.max_morph_targets,
            capped.max_bones, capped.max_morph_targets, profile.name,
        )
    return capped

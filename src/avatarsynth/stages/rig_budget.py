from __future__ import annotations

import logging

from ..rig.catalog import RigCatalogs, default_catalogs
from ..rig.tiers import resolve_tier
from ..schemas.rig import RigAllocation, TierBudget

logger = logging.getLogger(__name__)


def truncate(items: tuple, limit: int) -> tuple[tuple, bool]:
    """Stable prefix of ``items``; the flag is set when ``limit`` exceeds the list."""
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    return tuple(items[:limit]), limit > len(items)


def allocate_rig(
    tier: str | None,
    catalogs: RigCatalogs | None = None,
    budget: TierBudget | None = None,
) -> RigAllocation:
    """Keep the highest-priority bones and morph targets the tier can afford.

    ``budget`` overrides the tier's own limits (already capped by the caller).
    A budget larger than a catalog keeps the whole catalog and raises the
    matching clamp flag. Same inputs always give the same allocation.
    """
    catalogs = catalogs or default_catalogs()
    profile = resolve_tier(tier)
    budget = budget or profile.budget

    bones, bones_clamped = truncate(catalogs.bones, budget.max_bones)
    morphs, morphs_clamped = truncate(catalogs.morph_targets, budget.max_morph_targets)
    if bones_clamped:
        logger.warning(
            "tier %s allows %d bones but the catalog has %d; using all",
            profile.name, budget.max_bones, len(catalogs.bones),
        )
    if morphs_clamped:
        logger.warning(
            "tier %s allows %d morph targets but the catalog has %d; using all",
            profile.name, budget.max_morph_targets, len(catalogs.morph_targets),
        )

    logger.info("rig for tier %s: %d bones, %d morph targets", profile.name, len(bones), len(morphs))
    return RigAllocation(
        tier=profile.name,
        budget=budget,
        bones=bones,
        morph_targets=morphs,
        bones_clamped=bones_clamped,
        morphs_clamped=morphs_clamped,
    )

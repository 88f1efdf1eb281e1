import logging

import pytest

from avatarsynth.rig.catalog import (
    BASIC_EXPRESSIONS,
    RigCatalogs,
    build_bone_catalog,
    build_morph_catalog,
    check_bone_order,
    default_catalogs,
)
from avatarsynth.rig.tiers import SUBSCRIPTION_TIERS, apply_tier_limits, resolve_tier
from avatarsynth.schemas.rig import BoneSpec, MorphTargetSpec, TierBudget
from avatarsynth.stages.rig_budget import allocate_rig, truncate


def test_catalog_sizes_cover_the_largest_tier():
    cat = default_catalogs()
    assert len(cat.bones) == 87
    assert len(cat.morph_targets) == 71
    top = max(SUBSCRIPTION_TIERS.values(), key=lambda t: t.max_bones)
    assert len(cat.bones) >= top.max_bones
    assert len(cat.morph_targets) >= top.max_morph_targets


def test_every_prefix_is_a_valid_skeleton():
    bones = build_bone_catalog()
    for k in range(len(bones) + 1):
        check_bone_order(bones[:k])


def test_paired_bones_alternate_sides():
    names = [b.name for b in build_bone_catalog()]
    i = names.index("upper_arm_l")
    assert names[i + 1] == "upper_arm_r"
    j = names.index("thumb_01_l")
    assert names[j + 1] == "thumb_01_r"


def test_check_bone_order_rejects_bad_lists():
    with pytest.raises(ValueError, match="before its parent"):
        check_bone_order([BoneSpec(name="hand", parent="arm", group="limbs")])
    with pytest.raises(ValueError, match="Duplicate"):
        check_bone_order([BoneSpec(name="root", group="core"), BoneSpec(name="root", group="core")])
    with pytest.raises(ValueError):
        RigCatalogs(
            bones=build_bone_catalog(),
            morph_targets=(MorphTargetSpec(name="a", group="x"), MorphTargetSpec(name="a", group="x")),
        )


def test_free_tier_gets_core_skeleton_and_basic_expressions():
    rig = allocate_rig("free")
    assert rig.tier == "free"
    assert rig.bone_names == [
        "root", "pelvis", "spine_01", "spine_02", "spine_03", "neck", "head", "shoulder_l", "shoulder_r",
    ]
    assert rig.morph_names == BASIC_EXPRESSIONS
    assert not rig.bones_clamped and not rig.morphs_clamped


def test_tiers_nest():
    prev = allocate_rig("free")
    for name in ("tier2", "tier3", "tier4", "tier5"):
        rig = allocate_rig(name)
        assert rig.bone_names[: len(prev.bones)] == prev.bone_names
        assert rig.morph_names[: len(prev.morph_targets)] == prev.morph_names
        prev = rig
    assert (len(prev.bones), len(prev.morph_targets)) == (65, 50)


def test_allocation_is_deterministic():
    assert allocate_rig("tier3") == allocate_rig("tier3")


def test_budget_beyond_catalog_is_clamped(caplog):
    small = RigCatalogs(
        bones=build_bone_catalog()[:5],
        morph_targets=build_morph_catalog()[:3],
    )
    with caplog.at_level(logging.WARNING):
        rig = allocate_rig("tier5", catalogs=small)
    assert len(rig.bones) == 5 and len(rig.morph_targets) == 3
    assert rig.bones_clamped and rig.morphs_clamped
    assert "catalog has 5" in caplog.text


def test_exact_fit_is_not_clamped():
    items = (1, 2, 3)
    assert truncate(items, 3) == ((1, 2, 3), False)
    assert truncate(items, 0) == ((), False)
    assert truncate(items, 5) == ((1, 2, 3), True)
    with pytest.raises(ValueError):
        truncate(items, -1)


def test_tier_aliases_and_fallback(caplog):
    assert resolve_tier("goat").name == "tier5"
    assert resolve_tier(" Spartan ").name == "tier3"
    with caplog.at_level(logging.WARNING):
        assert resolve_tier("platinum").name == "free"
    assert "unknown subscription tier" in caplog.text
    assert resolve_tier(None).name == "free"


def test_apply_tier_limits_caps_requests():
    capped = apply_tier_limits("tier2", TierBudget(max_bones=40, max_morph_targets=3))
    assert capped == TierBudget(max_bones=15, max_morph_targets=3)
    rig = allocate_rig("tier2", budget=capped)
    assert len(rig.bones) == 15 and len(rig.morph_targets) == 3

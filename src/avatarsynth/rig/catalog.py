"""Priority-ordered bone and morph-target catalogs.

Truncating either list to any prefix must leave a usable rig, so bones are
ordered core skeleton, primary limbs, face, fingers, then twist and accessory
bones, and every parent comes before its children. Paired bones alternate
left/right so even budgets stay symmetric. Morph targets go basic
expressions, eye and mouth control, visemes, hand gestures, then extras.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..schemas.rig import BoneSpec, MorphTargetSpec

_CORE = [
    ("root", None, (0.0, 0.0, 0.0)),
    ("pelvis", "root", (0.0, 0.95, 0.0)),
    ("spine_01", "pelvis", (0.0, 1.1, 0.0)),
    ("spine_02", "spine_01", (0.0, 1.25, 0.0)),
    ("spine_03", "spine_02", (0.0, 1.4, 0.0)),
    ("neck", "spine_03", (0.0, 1.55, 0.0)),
    ("head", "neck", (0.0, 1.7, 0.0)),
]

# (name, parent, position of the image-left bone); the right twin mirrors x.
_LIMBS = [
    ("shoulder", "spine_03", (-0.15, 1.45, 0.0)),
    ("upper_arm", "shoulder", (-0.3, 1.45, 0.0)),
    ("thigh", "pelvis", (-0.1, 0.9, 0.0)),
    ("forearm", "upper_arm", (-0.55, 1.45, 0.0)),
    ("shin", "thigh", (-0.1, 0.5, 0.0)),
    ("hand", "forearm", (-0.8, 1.45, 0.0)),
    ("foot", "shin", (-0.1, 0.08, 0.05)),
    ("toe", "foot", (-0.1, 0.02, 0.15)),
]

_FACE_CENTER = [
    ("jaw", "head", (0.0, 1.65, 0.05)),
]
_FACE_PAIRED = [
    ("eye", "head", (-0.035, 1.75, 0.08)),
    ("eyelid_upper", "head", (-0.035, 1.77, 0.09)),
    ("eyelid_lower", "head", (-0.035, 1.73, 0.09)),
    ("brow_inner", "head", (-0.02, 1.8, 0.09)),
    ("brow_outer", "head", (-0.06, 1.8, 0.08)),
    ("cheek", "head", (-0.05, 1.7, 0.08)),
    ("lip_corner", "jaw", (-0.025, 1.66, 0.09)),
]
_FACE_TAIL = [
    ("lip_upper", "head", (0.0, 1.67, 0.1)),
    ("lip_lower", "jaw", (0.0, 1.64, 0.1)),
    ("tongue", "jaw", (0.0, 1.65, 0.06)),
]

_FINGERS = ["thumb", "index", "middle", "ring", "pinky"]
_PHALANGES = 3

_TWIST = [
    ("upper_arm_twist", "upper_arm", (-0.42, 1.45, 0.0)),
    ("forearm_twist", "forearm", (-0.68, 1.45, 0.0)),
    ("thigh_twist", "thigh", (-0.1, 0.7, 0.0)),
    ("calf_twist", "shin", (-0.1, 0.3, 0.0)),
]
_ACCESSORY = [
    ("hair_01", "head", (0.0, 1.85, -0.05)),
    ("hair_02", "hair_01", (0.0, 1.8, -0.12)),
    ("ear_l", "head", (-0.08, 1.75, 0.0)),
    ("ear_r", "head", (0.08, 1.75, 0.0)),
    ("tail_01", "pelvis", (0.0, 0.95, -0.1)),
    ("tail_02", "tail_01", (0.0, 0.85, -0.25)),
    ("tail_03", "tail_02", (0.0, 0.75, -0.4)),
    ("prop_r", "hand_r", (0.85, 1.45, 0.05)),
]

BASIC_EXPRESSIONS = ["jawOpen", "eyeBlinkLeft", "eyeBlinkRight", "mouthSmile", "mouthFrown"]
EYE_CONTROLS = [
    "eyeSquintLeft", "eyeSquintRight", "eyeWideLeft", "eyeWideRight",
    "browInnerUp", "browDownLeft", "browDownRight", "browOuterUpLeft", "browOuterUpRight",
    "eyeLookUpLeft", "eyeLookUpRight", "eyeLookDownLeft", "eyeLookDownRight",
]
MOUTH_CONTROLS = [
    "mouthPucker", "mouthFunnel", "mouthLeft", "mouthRight",
    "mouthSmileLeft", "mouthSmileRight", "mouthFrownLeft", "mouthFrownRight",
    "mouthRollLower", "mouthRollUpper", "jawForward", "jawLeft", "jawRight",
    "cheekPuff", "noseSneerLeft", "noseSneerRight", "tongueOut",
]
VISEMES = [
    "viseme_sil", "viseme_PP", "viseme_FF", "viseme_TH", "viseme_DD",
    "viseme_kk", "viseme_CH", "viseme_SS", "viseme_nn", "viseme_RR",
    "viseme_aa", "viseme_E", "viseme_I", "viseme_O", "viseme_U",
]
HAND_GESTURES = [
    "handFistLeft", "handFistRight", "handOpenLeft", "handOpenRight",
    "handPointLeft", "handPointRight", "handPeaceLeft", "handPeaceRight",
    "handThumbsUpLeft", "handThumbsUpRight",
]
EXTRAS = [
    "cheekSquintLeft", "cheekSquintRight", "mouthDimpleLeft", "mouthDimpleRight",
    "mouthStretchLeft", "mouthStretchRight", "mouthPressLeft", "mouthPressRight",
    "mouthShrugUpper", "mouthShrugLower", "mouthClose",
]


def _mirror(p: tuple[float, float, float]) -> tuple[float, float, float]:
    return (-p[0], p[1], p[2])


def _paired(entries, group: str, parent_suffix: bool) -> list[BoneSpec]:
    out: list[BoneSpec] = []
    for name, parent, pos in entries:
        for side, p in (("l", pos), ("r", _mirror(pos))):
            par = f"{parent}_{side}" if parent_suffix else parent
            out.append(BoneSpec(name=f"{name}_{side}", parent=par, group=group, position=p))
    return out


def _finger_bones() -> list[BoneSpec]:
    out: list[BoneSpec] = []
    for k in range(1, _PHALANGES + 1):
        for i, finger in enumerate(_FINGERS):
            for side, sign in (("l", -1.0), ("r", 1.0)):
                parent = f"hand_{side}" if k == 1 else f"{finger}_{k - 1:02d}_{side}"
                pos = (sign * (0.85 + 0.03 * k), 1.45, 0.04 - 0.02 * i)
                out.append(BoneSpec(name=f"{finger}_{k:02d}_{side}", parent=parent, group="fingers", position=pos))
    return out


def _limb_parent_is_paired(parent: str) -> bool:
    return parent not in {"spine_03", "pelvis", "head", "root"}


def build_bone_catalog() -> tuple[BoneSpec, ...]:
    bones = [BoneSpec(name=n, parent=p, group="core", position=pos) for n, p, pos in _CORE]
    for name, parent, pos in _LIMBS:
        bones.extend(_paired([(name, parent, pos)], "limbs", _limb_parent_is_paired(parent)))
    bones.extend(BoneSpec(name=n, parent=p, group="face", position=pos) for n, p, pos in _FACE_CENTER)
    bones.extend(_paired(_FACE_PAIRED, "face", parent_suffix=False))
    bones.extend(BoneSpec(name=n, parent=p, group="face", position=pos) for n, p, pos in _FACE_TAIL)
    bones.extend(_finger_bones())
    bones.extend(_paired(_TWIST, "twist", parent_suffix=True))
    bones.extend(BoneSpec(name=n, parent=p, group="accessory", position=pos) for n, p, pos in _ACCESSORY)
    return tuple(bones)


def build_morph_catalog() -> tuple[MorphTargetSpec, ...]:
    groups = [
        ("basic", BASIC_EXPRESSIONS),
        ("eye", EYE_CONTROLS),
        ("mouth", MOUTH_CONTROLS),
        ("viseme", VISEMES),
        ("gesture", HAND_GESTURES),
        ("extra", EXTRAS),
    ]
    return tuple(MorphTargetSpec(name=n, group=g) for g, names in groups for n in names)


def check_bone_order(bones) -> None:
    """Raise ``ValueError`` on duplicate names or a parent listed after its child."""
    seen: set[str] = set()
    for b in bones:
        if b.name in seen:
            raise ValueError(f"Duplicate bone name: {b.name}")
        if b.parent is not None and b.parent not in seen:
            raise ValueError(f"Bone {b.name} listed before its parent {b.parent}")
        seen.add(b.name)


@dataclass(frozen=True)
class RigCatalogs:
    bones: tuple[BoneSpec, ...]
    morph_targets: tuple[MorphTargetSpec, ...]

    def __post_init__(self):
        check_bone_order(self.bones)
        names = [m.name for m in self.morph_targets]
        if len(set(names)) != len(names):
            raise ValueError("Duplicate morph target names in catalog")


_DEFAULT: RigCatalogs | None = None


def default_catalogs() -> RigCatalogs:
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = RigCatalogs(bones=build_bone_catalog(), morph_targets=build_morph_catalog())
    return _DEFAULT

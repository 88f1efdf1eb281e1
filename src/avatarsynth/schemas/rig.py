from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class BoneSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    parent: str | None = None
    group: str
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)


class MorphTargetSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    group: str


class TierBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_bones: int = Field(ge=0)
    max_morph_targets: int = Field(ge=0)


class TierProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    max_bones: int = Field(ge=0)
    max_morph_targets: int = Field(ge=0)
    max_output_size_mb: float = Field(gt=0)
    priority_level: int = 1

    @property
    def budget(self) -> TierBudget:
        return TierBudget(max_bones=self.max_bones, max_morph_targets=self.max_morph_targets)


class RigAllocation(BaseModel):
    """Bones and morph targets assigned to one generated avatar.

    Stored alongside the mesh and replaced wholesale on re-rig.
    """

    model_config = ConfigDict(frozen=True)

    tier: str
    budget: TierBudget
    bones: tuple[BoneSpec, ...] = ()
    morph_targets: tuple[MorphTargetSpec, ...] = ()
    bones_clamped: bool = False
    morphs_clamped: bool = False

    @property
    def bone_names(self) -> list[str]:
        return [b.name for b in self.bones]

    @property
    def morph_names(self) -> list[str]:
        return [m.name for m in self.morph_targets]

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..constants import FUR_DEFAULT_PRIMARY_COLOR


class CharacterType(str, Enum):
    HUMAN = "human"
    ANIMAL = "animal"
    ROBOT = "robot"
    NFT_CHARACTER = "nft_character"
    GENERIC = "generic"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Headwear(_Frozen):
    present: bool = False
    type: str = "none"
    color: str = "none"
    confidence: float = 0.0


class Eyewear(_Frozen):
    present: bool = False
    type: str = "none"
    eye_color: str = "normal"
    confidence: float = 0.0


class Mouth(_Frozen):
    style: str = "normal"
    has_teeth: bool = False
    has_grill: bool = False
    confidence: float = 0.0


class Clothing(_Frozen):
    present: bool = False
    type: str = "none"
    accessories: tuple[str, ...] = ()
    confidence: float = 0.0


class Fur(_Frozen):
    primary_color: str = FUR_DEFAULT_PRIMARY_COLOR
    pattern: str = "solid"
    texture: str = "fur"


class MissingParts(_Frozen):
    arms: bool = True
    legs: bool = True
    torso: bool = False
    hands: bool = True

    def names(self) -> list[str]:
        return [k for k in ("arms", "legs", "torso", "hands") if getattr(self, k)]


class FeatureProfile(_Frozen):
    """Per-image classification result; created once, never mutated."""

    character_type: CharacterType = CharacterType.GENERIC
    headwear: Headwear = Field(default_factory=Headwear)
    eyewear: Eyewear = Field(default_factory=Eyewear)
    mouth: Mouth = Field(default_factory=Mouth)
    clothing: Clothing = Field(default_factory=Clothing)
    fur: Fur = Field(default_factory=Fur)
    missing_parts: MissingParts = Field(default_factory=MissingParts)
    vote_score: float = 0.0
    confidence: float = 0.0

    @classmethod
    def default(cls) -> "FeatureProfile":
        """Low-confidence profile used when no signal can be extracted."""
        return cls()

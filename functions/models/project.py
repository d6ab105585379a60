"""Project detail models for QuoteSmith.

Pydantic models for the partially-filled project description that the
conversation engine accumulates and the learning engine consumes.
"""

from enum import Enum
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field, field_validator


def numeric_dimensions(value: Any) -> Dict[str, float]:
    """Keep only numeric dimension values; anything else is discarded."""
    if not isinstance(value, dict):
        return {}
    return {
        key: float(v)
        for key, v in value.items()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    }


class ProjectType(str, Enum):
    """Project types with a coded estimate branch."""

    FENCING = "fencing"
    DECKING = "decking"
    ROOFING = "roofing"
    CONCRETE = "concrete"


class ProjectLocation(BaseModel):
    """City/state location of a project."""

    city: Optional[str] = Field(default=None, description="City name")
    state: Optional[str] = Field(default=None, description="Two-letter US state code")

    def is_empty(self) -> bool:
        return not self.city and not self.state


class ProjectDetails(BaseModel):
    """Structured description of a project being estimated.

    Every field is optional until the conversation fills it in.
    Dimensions are keyed by name (length, height, width, squareFeet,
    thickness) and always hold numbers.
    """

    type: Optional[str] = Field(default=None, description="Project type (fencing, decking, ...)")
    subtype: Optional[str] = Field(default=None, description="Subtype or main material")
    material: Optional[str] = Field(default=None, description="Main material key")
    style: Optional[str] = Field(default=None, description="Style preference")
    color: Optional[str] = Field(default=None, description="Main color")
    finish: Optional[str] = Field(default=None, description="Finish (smooth, textured, ...)")
    dimensions: Dict[str, float] = Field(
        default_factory=dict,
        description="Dimension name -> value in feet (inches for thickness)"
    )
    location: Optional[ProjectLocation] = Field(default=None, description="Project location")
    gates: List[Dict[str, Any]] = Field(default_factory=list, description="Gates (fencing)")
    stairs: bool = Field(default=False, description="Includes stairs (decking)")
    demolition: bool = Field(default=False, description="Requires demolition")
    permit_needed: bool = Field(
        default=False,
        alias="permitNeeded",
        description="Requires a permit"
    )

    class Config:
        populate_by_name = True

    @field_validator("dimensions", mode="before")
    @classmethod
    def drop_non_numeric_dimensions(cls, v):
        return numeric_dimensions(v)

    def has_dimension(self, name: str) -> bool:
        """Check if a dimension is known (present and non-zero)."""
        return bool(self.dimensions.get(name))

    def apply_delta(self, delta: Dict[str, Any]) -> List[str]:
        """Merge an extraction delta into these details.

        Dimensions and location merge key by key; other fields are
        overwritten when the delta value is not None.

        Args:
            delta: Partial details as produced by the information extractor.

        Returns:
            Names of the fields whose value changed.
        """
        changed: List[str] = []

        for key, value in delta.items():
            if value is None:
                continue

            if key == "dimensions":
                merged = {**self.dimensions, **numeric_dimensions(value)}
                if merged != self.dimensions:
                    self.dimensions = merged
                    changed.append(key)
            elif key == "location":
                incoming = value if isinstance(value, ProjectLocation) else ProjectLocation(**value)
                current = self.location.model_dump() if self.location else {}
                merged = {
                    **current,
                    **incoming.model_dump(exclude_none=True)
                }
                if merged != current:
                    self.location = ProjectLocation(**merged)
                    changed.append(key)
            elif key in type(self).model_fields:
                if getattr(self, key) != value:
                    setattr(self, key, value)
                    changed.append(key)

        return changed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a camelCase dict, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)

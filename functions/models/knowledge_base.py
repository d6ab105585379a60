"""Knowledge base models for QuoteSmith.

Pydantic models for a contractor's learned knowledge: material prices,
labor rates, project patterns, client preferences and the derived
contractor profile. Persisted as one camelCase document per contractor.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime
from pydantic import BaseModel, Field

from models.conversation import utc_now

KNOWLEDGE_BASE_SCHEMA_VERSION = "1.0.0"


class ContractorProfile(BaseModel):
    """Derived view over the contractor's project patterns."""

    specialties: List[str] = Field(default_factory=list, description="Project types by frequency")
    preferred_materials: Dict[str, List[str]] = Field(
        default_factory=dict,
        alias="preferredMaterials",
        description="Project type -> materials by frequency"
    )
    typical_markups: Dict[str, float] = Field(
        default_factory=dict,
        alias="typicalMarkups",
        description="Project type -> mean markup"
    )
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class MaterialPriceRecord(BaseModel):
    """Running statistics for one material."""

    name: str = Field(description="Material display name")
    price: float = Field(description="Weighted average unit price")
    quantity: float = Field(description="Total quantity observed (the averaging weight)")
    unit: str = Field(default="unit", description="Unit of measure")
    occurrences: int = Field(default=1, ge=0, description="Number of estimates seen in")
    project_types: List[str] = Field(
        default_factory=list,
        alias="projectTypes",
        description="Project types the material appeared in"
    )
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class LaborRateRecord(BaseModel):
    """Running statistics for one labor service."""

    rate: float = Field(description="Weighted average hourly rate")
    hours: float = Field(description="Total hours observed (the averaging weight)")
    unit: str = Field(default="hour", description="Rate unit")
    occurrences: int = Field(default=1, ge=0, description="Number of estimates seen in")
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class PatternMaterial(BaseModel):
    """Material snapshot stored in a project pattern."""

    id: str
    name: str
    quantity: float = 0.0
    unit: str = "unit"

    class Config:
        frozen = True


class ProjectPattern(BaseModel):
    """Immutable snapshot of one completed estimate and its outcome."""

    id: str = Field(description="Pattern identifier")
    project_type: Optional[str] = Field(default=None, alias="projectType")
    project_subtype: Optional[str] = Field(default=None, alias="projectSubtype")
    dimensions: Dict[str, float] = Field(default_factory=dict)
    material_cost: float = Field(default=0.0, alias="materialCost")
    labor_cost: float = Field(default=0.0, alias="laborCost")
    total_estimated_cost: float = Field(default=0.0, alias="totalEstimatedCost")
    final_price: float = Field(default=0.0, alias="finalPrice")
    was_accepted: bool = Field(default=False, alias="wasAccepted")
    markup: float = Field(default=0.0, description="Effective markup over material + labor")
    timestamp: datetime = Field(default_factory=utc_now)
    materials: List[PatternMaterial] = Field(default_factory=list)
    key_features: List[str] = Field(default_factory=list, alias="keyFeatures")

    class Config:
        populate_by_name = True
        frozen = True


class ClientProjectRecord(BaseModel):
    """One project in a client's history."""

    type: Optional[str] = None
    subtype: Optional[str] = None
    date: datetime = Field(default_factory=utc_now)
    was_accepted: bool = Field(default=False, alias="wasAccepted")

    class Config:
        populate_by_name = True


class ClientPreferenceRecord(BaseModel):
    """What the contractor has learned about one client."""

    project_history: List[ClientProjectRecord] = Field(default_factory=list, alias="projectHistory")
    preferences: Dict[str, str] = Field(
        default_factory=dict,
        description='"{type}:material" / "{type}:style" -> latest value'
    )
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class MaterialPrices(BaseModel):
    items: Dict[str, MaterialPriceRecord] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class LaborRates(BaseModel):
    rates: Dict[str, LaborRateRecord] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class ProjectPatterns(BaseModel):
    patterns: List[ProjectPattern] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class ClientPreferences(BaseModel):
    clients: Dict[str, ClientPreferenceRecord] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")

    class Config:
        populate_by_name = True


class KnowledgeBase(BaseModel):
    """A contractor's complete learned knowledge.

    Stored as a single document with five top-level sections plus a
    schema version stamp.
    """

    schema_version: str = Field(default=KNOWLEDGE_BASE_SCHEMA_VERSION, alias="schemaVersion")
    contractor_profile: ContractorProfile = Field(default_factory=ContractorProfile, alias="contractorProfile")
    material_prices: MaterialPrices = Field(default_factory=MaterialPrices, alias="materialPrices")
    labor_rates: LaborRates = Field(default_factory=LaborRates, alias="laborRates")
    project_patterns: ProjectPatterns = Field(default_factory=ProjectPatterns, alias="projectPatterns")
    client_preferences: ClientPreferences = Field(default_factory=ClientPreferences, alias="clientPreferences")

    class Config:
        populate_by_name = True

    @classmethod
    def empty(cls, now: Optional[datetime] = None) -> "KnowledgeBase":
        """Create an empty knowledge base with all sections stamped at `now`."""
        now = now or utc_now()
        return cls(
            contractor_profile=ContractorProfile(last_updated=now),
            material_prices=MaterialPrices(last_updated=now),
            labor_rates=LaborRates(last_updated=now),
            project_patterns=ProjectPatterns(last_updated=now),
            client_preferences=ClientPreferences(last_updated=now),
        )

    def to_document(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible camelCase document."""
        data = self.model_dump(by_alias=True, mode="json")
        data["schemaVersion"] = KNOWLEDGE_BASE_SCHEMA_VERSION
        return data

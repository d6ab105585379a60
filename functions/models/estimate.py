"""Estimate models for QuoteSmith.

Pydantic models for completed estimates handed to the learning engine
and for the recommendations it returns.
"""

from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field


class EstimateMaterial(BaseModel):
    """A material line of an estimate."""

    id: str = Field(description="Material identifier")
    name: str = Field(description="Material display name")
    quantity: float = Field(default=0.0, ge=0, description="Quantity used")
    unit: str = Field(default="unit", description="Unit of measure")
    unit_price: float = Field(
        default=0.0,
        alias="unitPrice",
        ge=0,
        description="Price per unit (USD)"
    )
    description: Optional[str] = Field(default=None, description="Line description")

    class Config:
        populate_by_name = True


class EstimateService(BaseModel):
    """A labor/service line of an estimate."""

    name: str = Field(description="Service name")
    hours: float = Field(default=0.0, ge=0, description="Hours of labor")
    hourly_rate: float = Field(
        default=0.0,
        alias="hourlyRate",
        ge=0,
        description="Rate per hour (USD)"
    )
    description: Optional[str] = Field(default=None, description="Line description")

    class Config:
        populate_by_name = True


class TimeEstimate(BaseModel):
    """Expected duration range in days."""

    min_days: int = Field(alias="minDays", ge=0)
    max_days: int = Field(alias="maxDays", ge=0)

    class Config:
        populate_by_name = True


class EstimateResult(BaseModel):
    """A completed estimate, as produced by the pricing engine."""

    project_summary: Optional[str] = Field(
        default=None,
        alias="projectSummary",
        description="Short summary of the estimate"
    )
    material_cost: float = Field(default=0.0, alias="materialCost", description="Total material cost")
    labor_cost: float = Field(default=0.0, alias="laborCost", description="Total labor cost")
    equipment_cost: float = Field(default=0.0, alias="equipmentCost", description="Total equipment cost")
    total_cost: float = Field(default=0.0, alias="totalCost", description="Total price quoted")
    materials: List[EstimateMaterial] = Field(default_factory=list, description="Material lines")
    services: List[EstimateService] = Field(default_factory=list, description="Labor lines")
    construction_method: Optional[str] = Field(
        default=None,
        alias="constructionMethod",
        description="Construction approach summary"
    )
    construction_steps: List[str] = Field(
        default_factory=list,
        alias="constructionSteps",
        description="Ordered construction steps"
    )
    time_estimate: Optional[TimeEstimate] = Field(
        default=None,
        alias="timeEstimate",
        description="Expected duration"
    )

    class Config:
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ClientInfo(BaseModel):
    """Client the estimate was prepared for."""

    id: Optional[str] = Field(default=None, description="Client identifier")
    name: Optional[str] = Field(default=None, description="Client name")
    email: Optional[str] = Field(default=None, description="Client email")


class CostRange(BaseModel):
    """Min/max cost range in USD."""

    min: float = Field(description="Lowest expected cost")
    max: float = Field(description="Highest expected cost")


class Recommendations(BaseModel):
    """Recommendations for a new project."""

    recommended_materials: List[str] = Field(
        alias="recommendedMaterials",
        description="Materials ordered by preference"
    )
    estimated_costs: CostRange = Field(alias="estimatedCosts", description="Expected cost range")
    suggested_markup: float = Field(alias="suggestedMarkup", description="Markup as a fraction (0.25 = 25%)")
    client_specific_tips: Optional[List[str]] = Field(
        default=None,
        alias="clientSpecificTips",
        description="Tips based on the client's history"
    )

    class Config:
        populate_by_name = True


class MaterialRequest(BaseModel):
    """A material whose price should be estimated."""

    id: str = Field(description="Material identifier")
    name: str = Field(default="", description="Material display name")
    quantity: float = Field(default=0.0, ge=0, description="Quantity needed")
    unit: str = Field(default="unit", description="Unit of measure")


class PricedMaterial(MaterialRequest):
    """A material request with its learned or estimated unit price."""

    estimated_price: float = Field(alias="estimatedPrice", description="Unit price (USD)")

    class Config:
        populate_by_name = True


class LaborRateRecommendation(BaseModel):
    """Recommended rate for a labor service."""

    service: str = Field(description="Service name")
    rate: float = Field(description="Rate per unit (USD)")
    unit: str = Field(default="hour", description="Rate unit")

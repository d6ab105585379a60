"""Preliminary estimates for QuoteSmith chat sessions.

Rule-of-thumb pricing from the project catalog: a price per unit of the
type's size dimension, split into material, labor and equipment.
"""

from typing import List, Sequence

import structlog

from models.estimate import EstimateMaterial, EstimateResult, EstimateService, TimeEstimate
from models.project import ProjectDetails
from engines.project_catalog import (
    GENERIC_CONSTRUCTION_METHOD,
    GENERIC_CONSTRUCTION_STEPS,
    GENERIC_SAMPLE_MATERIALS,
    SampleMaterial,
    get_project_spec,
    material_name,
    project_type_name,
)

logger = structlog.get_logger(__name__)

SAMPLE_SERVICES = [
    EstimateService(
        name="Instalación profesional",
        hours=20,
        hourly_rate=45.00,
        description="Mano de obra para instalación completa"
    ),
    EstimateService(
        name="Preparación del terreno",
        hours=4,
        hourly_rate=35.00,
        description="Nivelación y preparación del área de trabajo"
    ),
    EstimateService(
        name="Limpieza final",
        hours=2,
        hourly_rate=30.00,
        description="Retirada de materiales sobrantes y limpieza"
    ),
]

DEFAULT_TIME_ESTIMATE = TimeEstimate(min_days=3, max_days=7)


def _sample_materials(samples: Sequence[SampleMaterial], material: str) -> List[EstimateMaterial]:
    return [
        EstimateMaterial(
            id=sample.id,
            name=sample.name.format(material=material),
            quantity=sample.quantity,
            unit=sample.unit,
            unit_price=sample.unit_price,
            description=sample.description
        )
        for sample in samples
    ]


def build_preliminary_estimate(details: ProjectDetails) -> EstimateResult:
    """Build a rough estimate from the catalog's pricing rule.

    A missing size dimension falls back to the type's default size.
    Unknown types get a zero-cost estimate with generic lines.
    """
    spec = get_project_spec(details.type)
    if spec is None:
        logger.warning("preliminary_estimate_unsupported_type", project_type=details.type)
        return EstimateResult(
            project_summary=f"Estimado para {project_type_name(details.type)}",
            materials=_sample_materials(GENERIC_SAMPLE_MATERIALS, ""),
            services=[service.model_copy() for service in SAMPLE_SERVICES],
            construction_method=GENERIC_CONSTRUCTION_METHOD,
            construction_steps=list(GENERIC_CONSTRUCTION_STEPS),
            time_estimate=DEFAULT_TIME_ESTIMATE.model_copy(),
        )

    pricing = spec.pricing
    size = details.dimensions.get(pricing.size_dimension) or pricing.default_size
    subtotal = size * pricing.price_for(details.material)

    material_cost = round(subtotal * pricing.material_share, 2)
    labor_cost = round(subtotal * pricing.labor_share, 2)
    equipment_cost = round(subtotal * pricing.equipment_share, 2)
    total_cost = round(material_cost + labor_cost + equipment_cost, 2)

    logger.info(
        "preliminary_estimate_built",
        project_type=spec.key,
        size=size,
        total_cost=total_cost
    )

    return EstimateResult(
        project_summary=f"Estimado para {spec.display_name}",
        material_cost=material_cost,
        labor_cost=labor_cost,
        equipment_cost=equipment_cost,
        total_cost=total_cost,
        materials=_sample_materials(
            spec.sample_materials,
            material_name(details.material or pricing.default_material)
        ),
        services=[service.model_copy() for service in SAMPLE_SERVICES],
        construction_method=spec.construction_method,
        construction_steps=list(spec.construction_steps),
        time_estimate=DEFAULT_TIME_ESTIMATE.model_copy(),
    )

"""Adaptive learning engine for QuoteSmith.

Learns from a contractor's completed estimates and turns that history
into recommendations for new projects:
- material prices and labor rates as quantity/hour weighted averages
- an append-only, capped history of project patterns
- per-client project history and latest preferences
- a contractor profile derived from the pattern history

Every public operation loads the contractor's knowledge base once from
the injected KnowledgeStore; learn_from_estimate saves it once at the
end. Two concurrent learn_from_estimate calls for one contractor can
lose an update (last save wins), so callers must serialize them.
"""

import math
import re
import uuid
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import structlog

from config.errors import ErrorCode, KnowledgeStoreError, QuoteSmithError
from config.settings import settings
from engines.contractor_profile import compute_contractor_profile, is_profile_stale
from models.conversation import utc_now
from models.estimate import (
    ClientInfo,
    CostRange,
    EstimateResult,
    LaborRateRecommendation,
    MaterialRequest,
    PricedMaterial,
    Recommendations,
)
from models.knowledge_base import (
    ClientPreferenceRecord,
    ClientProjectRecord,
    ContractorProfile,
    KnowledgeBase,
    LaborRateRecord,
    MaterialPriceRecord,
    PatternMaterial,
    ProjectPattern,
)
from models.project import ProjectDetails
from services.knowledge_store import KnowledgeStore, create_knowledge_store
from utils.engine_logger import log_learning_event
from validators.estimate_validator import parse_estimate_result

logger = structlog.get_logger(__name__)

DEFAULT_RECOMMENDED_MATERIALS = ["wood", "vinyl", "composite"]
DEFAULT_COST_RANGE = (1000.0, 5000.0)
SIZE_RATIO_BOUNDS = (0.5, 2.0)
SIZE_DIMENSIONS = ("squareFeet", "length")
SIMILARITY_PREFIX_LENGTH = 4
UNKNOWN_PROJECT_TYPE = "unknown"

# (substrings, unit price) checked in order
MATERIAL_PRICE_FALLBACKS: Tuple[Tuple[Tuple[str, ...], float], ...] = (
    (("wood", "madera"), 15.0),
    (("concrete", "concreto"), 12.0),
    (("paint", "pintura"), 25.0),
    (("tool", "herramienta"), 40.0),
)
DEFAULT_MATERIAL_PRICE = 20.0

# (substrings, hourly rate) checked in order
LABOR_RATE_FALLBACKS: Tuple[Tuple[Tuple[str, ...], float], ...] = (
    (("install", "instala"), 75.0),
    (("repair", "repara"), 85.0),
    (("remove", "remov"), 65.0),
    (("prep", "prepar"), 60.0),
)
DEFAULT_LABOR_RATE = 70.0


def normalize_material_id(material_id: str) -> str:
    """Lower-case a material id and replace anything outside [a-z0-9] with _."""
    return re.sub(r"[^a-z0-9]", "_", material_id.lower())


def weighted_average(old_value: float, old_weight: float, new_value: float, new_weight: float) -> float:
    """Incremental weighted mean; keeps old_value when there is no weight at all."""
    total_weight = old_weight + new_weight
    if total_weight <= 0:
        return old_value
    return (old_value * old_weight + new_value * new_weight) / total_weight


def calculate_effective_markup(
    material_cost: float,
    labor_cost: float,
    total_cost: float,
    default: float = 0.25
) -> float:
    """Markup of total_cost over material + labor, never negative."""
    base_cost = material_cost + labor_cost
    if base_cost <= 0:
        return default
    return max(0.0, (total_cost - base_cost) / base_cost)


def extract_key_features(details: ProjectDetails) -> List[str]:
    """Tag a project with its distinguishing features.

    Example: ["type:fencing", "material:wood", "dimension:length:100.0", "gates:2"]
    """
    features = []
    for name in ("type", "subtype", "material", "style", "color", "finish"):
        value = getattr(details, name)
        if value:
            features.append(f"{name}:{value}")

    for key, value in details.dimensions.items():
        features.append(f"dimension:{key}:{value}")

    if details.demolition:
        features.append("has:demolition")
    if details.stairs:
        features.append("has:stairs")
    if details.permit_needed:
        features.append("has:permit")
    if details.gates:
        features.append(f"gates:{len(details.gates)}")

    return features


def _top_by_frequency(values: Sequence[str], top_n: int = 3) -> List[str]:
    return [value for value, _ in Counter(values).most_common(top_n)]


def _fallback_by_keyword(name: str, table, default: float) -> float:
    for keywords, value in table:
        if any(keyword in name for keyword in keywords):
            return value
    return default


def _size_ratio(requested: Dict[str, float], stored: Dict[str, float]) -> float:
    """Requested/stored size on the first dimension both sides know, clamped."""
    low, high = SIZE_RATIO_BOUNDS
    for dimension in SIZE_DIMENSIONS:
        if requested.get(dimension) and stored.get(dimension):
            return max(low, min(high, requested[dimension] / stored[dimension]))
    return 1.0


def recommended_materials(profile: ContractorProfile, patterns: Sequence[ProjectPattern], project_type: str) -> List[str]:
    """Profile's preferred materials, else top-3 pattern subtypes, else a generic list."""
    preferred = profile.preferred_materials.get(project_type)
    if preferred:
        return list(preferred)

    subtypes = [pattern.project_subtype for pattern in patterns if pattern.project_subtype]
    return _top_by_frequency(subtypes) or list(DEFAULT_RECOMMENDED_MATERIALS)


def estimate_cost_range(patterns: Sequence[ProjectPattern], dimensions: Dict[str, float]) -> CostRange:
    """Min/max of the historical totals, each scaled to the requested size."""
    if not patterns:
        low, high = DEFAULT_COST_RANGE
        return CostRange(min=low, max=high)

    costs = sorted(
        pattern.total_estimated_cost * _size_ratio(dimensions, pattern.dimensions)
        for pattern in patterns
    )
    return CostRange(min=costs[0], max=costs[-1])


def suggested_markup(
    profile: ContractorProfile,
    patterns: Sequence[ProjectPattern],
    project_type: str,
    default: float
) -> float:
    """Profile's typical markup, else the mean pattern markup, else default."""
    if project_type in profile.typical_markups:
        return profile.typical_markups[project_type]
    if patterns:
        return sum(pattern.markup for pattern in patterns) / len(patterns)
    return default


def client_specific_tips(client: ClientPreferenceRecord, project_type: str) -> List[str]:
    """Tips from a client's remembered preferences and acceptance history."""
    tips = []

    material = client.preferences.get(f"{project_type}:material")
    if material:
        tips.append(f"El cliente ha preferido {material} para proyectos de {project_type} en el pasado.")

    style = client.preferences.get(f"{project_type}:style")
    if style:
        tips.append(f"El cliente prefiere el estilo {style} para este tipo de proyectos.")

    history = [record for record in client.project_history if record.type == project_type]
    if history:
        accepted = sum(1 for record in history if record.was_accepted)
        acceptance_rate = accepted / len(history)
        if acceptance_rate < 0.5:
            tips.append(
                f"Este cliente ha rechazado {len(history) - accepted} de {len(history)} estimados "
                f"para proyectos de {project_type}. Considere un precio más competitivo."
            )
        elif acceptance_rate > 0.8:
            percent = math.floor(acceptance_rate * 100 + 0.5)
            tips.append(
                f"Este cliente tiene una alta tasa de aceptación ({percent}%) para proyectos de {project_type}."
            )

    return tips


class AdaptiveLearningEngine:
    """Per-contractor learning over an injected knowledge store.

    Example:
        engine = AdaptiveLearningEngine("contractor_1", store=InMemoryKnowledgeStore())
        await engine.learn_from_estimate(estimate, details, was_accepted=True)
        recommendations = await engine.generate_recommendations("fencing", details)
    """

    def __init__(
        self,
        contractor_id: str,
        store: Optional[KnowledgeStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        pattern_history_limit: Optional[int] = None,
        refresh_days: Optional[int] = None,
        default_markup: Optional[float] = None
    ):
        """Initialize the engine.

        Args:
            contractor_id: Contractor whose knowledge base is used.
            store: Knowledge store. Defaults to the configured backend.
            clock: Time source for timestamps and profile staleness.
            pattern_history_limit: Max stored patterns (first one is kept).
            refresh_days: Profile age that triggers a recompute.
            default_markup: Markup used when nothing has been learned.
        """
        self.contractor_id = contractor_id
        self.clock = clock or utc_now
        self.store = store or create_knowledge_store(clock=self.clock)
        self.pattern_history_limit = (
            settings.pattern_history_limit if pattern_history_limit is None else pattern_history_limit
        )
        self.refresh_days = settings.contractor_profile_refresh_days if refresh_days is None else refresh_days
        if self.pattern_history_limit < 2:
            raise QuoteSmithError(
                code=ErrorCode.INVALID_CONFIGURATION,
                message="pattern_history_limit must be at least 2",
                details={"pattern_history_limit": self.pattern_history_limit}
            )
        if self.refresh_days < 0:
            raise QuoteSmithError(
                code=ErrorCode.INVALID_CONFIGURATION,
                message="refresh_days cannot be negative",
                details={"refresh_days": self.refresh_days}
            )
        self.default_markup = settings.default_markup if default_markup is None else default_markup

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    async def learn_from_estimate(
        self,
        estimate: Union[EstimateResult, Dict[str, Any]],
        project_details: Union[ProjectDetails, Dict[str, Any]],
        client_info: Optional[Union[ClientInfo, Dict[str, Any]]] = None,
        was_accepted: bool = False,
        final_price: Optional[float] = None
    ) -> ProjectPattern:
        """Record a completed estimate in the contractor's knowledge base.

        Args:
            estimate: EstimateResult or raw estimate dict.
            project_details: Details the estimate was built for.
            client_info: Client the estimate was for; preferences are
                only tracked when it has an id.
            was_accepted: Whether the client accepted the estimate.
            final_price: Price finally charged (defaults to the total).

        Returns:
            The pattern recorded for this estimate.

        Raises:
            ValidationError: If a raw estimate dict is malformed.
            KnowledgeStoreError: If the knowledge base cannot be read.
        """
        if not isinstance(estimate, EstimateResult):
            estimate = parse_estimate_result(estimate)
        details = _coerce_details(project_details)
        client = _coerce_client(client_info)
        now = self.clock()

        knowledge_base = await self.store.load(self.contractor_id)

        self.update_material_knowledge(knowledge_base, estimate, details, now)
        self.update_labor_knowledge(knowledge_base, estimate, details, now)
        pattern = self.update_project_patterns(knowledge_base, estimate, details, was_accepted, final_price, now)
        if client is not None and client.id:
            self.update_client_preferences(knowledge_base, client.id, details, was_accepted, now)

        if is_profile_stale(knowledge_base.contractor_profile, now, self.refresh_days):
            knowledge_base.contractor_profile = compute_contractor_profile(
                knowledge_base.project_patterns.patterns, now
            )
            logger.info("contractor_profile_recomputed", contractor_id=self.contractor_id)

        try:
            await self.store.save(self.contractor_id, knowledge_base)
        except KnowledgeStoreError as e:
            # Don't fail the caller if persistence fails
            logger.warning(
                "learned_knowledge_not_saved",
                contractor_id=self.contractor_id,
                error=e.message
            )

        log_learning_event(
            contractor_id=self.contractor_id,
            project_type=details.type,
            was_accepted=was_accepted,
            materials=len(estimate.materials),
            services=len(estimate.services),
            pattern_count=len(knowledge_base.project_patterns.patterns),
            client_id=client.id if client else None
        )
        return pattern

    def update_material_knowledge(
        self,
        knowledge_base: KnowledgeBase,
        estimate: EstimateResult,
        details: ProjectDetails,
        now: datetime
    ) -> None:
        """Fold the estimate's material lines into the quantity-weighted prices."""
        if not estimate.materials:
            return

        items = knowledge_base.material_prices.items
        for material in estimate.materials:
            key = normalize_material_id(material.id)
            record = items.get(key)

            if record is None:
                record = MaterialPriceRecord(
                    name=material.name,
                    price=material.unit_price,
                    quantity=material.quantity,
                    unit=material.unit,
                    occurrences=1,
                    last_updated=now,
                )
                items[key] = record
            else:
                record.price = weighted_average(record.price, record.quantity, material.unit_price, material.quantity)
                record.quantity += material.quantity
                record.occurrences += 1
                record.last_updated = now

            if details.type and details.type not in record.project_types:
                record.project_types.append(details.type)

        knowledge_base.material_prices.last_updated = now

    def update_labor_knowledge(
        self,
        knowledge_base: KnowledgeBase,
        estimate: EstimateResult,
        details: ProjectDetails,
        now: datetime
    ) -> None:
        """Fold the estimate's service lines into the hour-weighted rates."""
        if not estimate.services:
            return

        rates = knowledge_base.labor_rates.rates
        project_type = details.type or UNKNOWN_PROJECT_TYPE
        for service in estimate.services:
            key = f"{project_type}:{service.name}"
            record = rates.get(key)

            if record is None:
                rates[key] = LaborRateRecord(
                    rate=service.hourly_rate,
                    hours=service.hours,
                    unit="hour",
                    occurrences=1,
                    last_updated=now,
                )
            else:
                record.rate = weighted_average(record.rate, record.hours, service.hourly_rate, service.hours)
                record.hours += service.hours
                record.occurrences += 1
                record.last_updated = now

        knowledge_base.labor_rates.last_updated = now

    def update_project_patterns(
        self,
        knowledge_base: KnowledgeBase,
        estimate: EstimateResult,
        details: ProjectDetails,
        was_accepted: bool,
        final_price: Optional[float],
        now: datetime
    ) -> ProjectPattern:
        """Append a new pattern, keeping the first one plus the most recent."""
        pattern = ProjectPattern(
            id=f"pattern_{uuid.uuid4().hex}",
            project_type=details.type,
            project_subtype=details.subtype or details.material,
            dimensions=dict(details.dimensions),
            material_cost=estimate.material_cost,
            labor_cost=estimate.labor_cost,
            total_estimated_cost=estimate.total_cost,
            final_price=estimate.total_cost if final_price is None else final_price,
            was_accepted=was_accepted,
            markup=calculate_effective_markup(
                estimate.material_cost,
                estimate.labor_cost,
                estimate.total_cost,
                default=self.default_markup
            ),
            timestamp=now,
            materials=[
                PatternMaterial(id=m.id, name=m.name, quantity=m.quantity, unit=m.unit)
                for m in estimate.materials
            ],
            key_features=extract_key_features(details),
        )

        patterns = knowledge_base.project_patterns.patterns
        patterns.append(pattern)
        if len(patterns) > self.pattern_history_limit:
            keep_from = len(patterns) - (self.pattern_history_limit - 1)
            knowledge_base.project_patterns.patterns = [patterns[0]] + patterns[keep_from:]

        knowledge_base.project_patterns.last_updated = now
        return pattern

    def update_client_preferences(
        self,
        knowledge_base: KnowledgeBase,
        client_id: str,
        details: ProjectDetails,
        was_accepted: bool,
        now: datetime
    ) -> None:
        """Append to the client's history; latest material/style wins."""
        clients = knowledge_base.client_preferences.clients
        client = clients.get(client_id)
        if client is None:
            client = ClientPreferenceRecord(last_updated=now)
            clients[client_id] = client

        client.project_history.append(ClientProjectRecord(
            type=details.type,
            subtype=details.subtype,
            date=now,
            was_accepted=was_accepted,
        ))
        if details.material:
            client.preferences[f"{details.type}:material"] = details.material
        if details.style:
            client.preferences[f"{details.type}:style"] = details.style
        client.last_updated = now

        knowledge_base.client_preferences.last_updated = now

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    async def generate_recommendations(
        self,
        project_type: str,
        project_details: Optional[Union[ProjectDetails, Dict[str, Any]]] = None,
        client_id: Optional[str] = None
    ) -> Recommendations:
        """Recommend materials, a cost range and a markup for a new project.

        Args:
            project_type: Project type key (fencing, decking, ...).
            project_details: Details of the new project; its squareFeet
                or length scales the historical costs.
            client_id: Client to add history-based tips for.

        Returns:
            Recommendations; client_specific_tips is None unless the
            client is known.
        """
        details = _coerce_details(project_details)
        knowledge_base = await self.store.load(self.contractor_id)
        profile = knowledge_base.contractor_profile
        patterns = [
            pattern for pattern in knowledge_base.project_patterns.patterns
            if pattern.project_type == project_type
        ]

        tips = None
        client = knowledge_base.client_preferences.clients.get(client_id) if client_id else None
        if client is not None:
            tips = client_specific_tips(client, project_type)

        recommendations = Recommendations(
            recommended_materials=recommended_materials(profile, patterns, project_type),
            estimated_costs=estimate_cost_range(patterns, details.dimensions),
            suggested_markup=suggested_markup(profile, patterns, project_type, self.default_markup),
            client_specific_tips=tips,
        )
        logger.info(
            "recommendations_generated",
            contractor_id=self.contractor_id,
            project_type=project_type,
            similar_patterns=len(patterns),
            client_known=client is not None
        )
        return recommendations

    async def get_estimated_material_costs(
        self,
        materials: Sequence[Union[MaterialRequest, Dict[str, Any]]]
    ) -> List[PricedMaterial]:
        """Price materials from learned prices, falling back to estimates.

        Unknown materials are priced from the average of known materials
        whose name contains the first four letters of the requested name,
        then from a small keyword table, then a generic default.
        """
        knowledge_base = await self.store.load(self.contractor_id)
        items = knowledge_base.material_prices.items

        priced = []
        for material in materials:
            request = material if isinstance(material, MaterialRequest) else MaterialRequest.model_validate(material)
            record = items.get(normalize_material_id(request.id))
            price = record.price if record is not None else self._estimate_material_price(request, items)
            priced.append(PricedMaterial(**request.model_dump(), estimated_price=price))
        return priced

    async def get_recommended_labor_rates(
        self,
        project_type: str,
        services: Sequence[str]
    ) -> List[LaborRateRecommendation]:
        """Hourly rates for services, falling back to estimates for unknown ones."""
        knowledge_base = await self.store.load(self.contractor_id)
        rates = knowledge_base.labor_rates.rates

        recommendations = []
        for service in services:
            record = rates.get(f"{project_type}:{service}")
            if record is not None:
                recommendations.append(LaborRateRecommendation(service=service, rate=record.rate, unit=record.unit))
            else:
                recommendations.append(LaborRateRecommendation(
                    service=service,
                    rate=self._estimate_labor_rate(service, project_type, rates),
                    unit="hour",
                ))
        return recommendations

    # ------------------------------------------------------------------
    # Contractor profile
    # ------------------------------------------------------------------

    async def analyze_contractor_specialties(self) -> ContractorProfile:
        """Return the stored contractor profile as last computed."""
        knowledge_base = await self.store.load(self.contractor_id)
        return knowledge_base.contractor_profile

    async def refresh_contractor_profile(self) -> ContractorProfile:
        """Recompute the contractor profile now, regardless of its age.

        Raises:
            KnowledgeStoreError: If the knowledge base cannot be read or saved.
        """
        knowledge_base = await self.store.load(self.contractor_id)
        knowledge_base.contractor_profile = compute_contractor_profile(
            knowledge_base.project_patterns.patterns, self.clock()
        )
        await self.store.save(self.contractor_id, knowledge_base)
        logger.info(
            "contractor_profile_refreshed",
            contractor_id=self.contractor_id,
            specialties=knowledge_base.contractor_profile.specialties
        )
        return knowledge_base.contractor_profile

    # ------------------------------------------------------------------
    # Fallback estimation
    # ------------------------------------------------------------------

    def _estimate_material_price(self, material: MaterialRequest, known: Dict[str, MaterialPriceRecord]) -> float:
        name = (material.name or material.id).lower()
        prefix = name[:SIMILARITY_PREFIX_LENGTH]

        similar = [record.price for record in known.values() if prefix and prefix in record.name.lower()]
        if similar:
            return sum(similar) / len(similar)

        price = _fallback_by_keyword(name, MATERIAL_PRICE_FALLBACKS, DEFAULT_MATERIAL_PRICE)
        logger.debug("material_price_estimated", material=name, price=price)
        return price

    def _estimate_labor_rate(self, service: str, project_type: str, known: Dict[str, LaborRateRecord]) -> float:
        name = service.lower()
        prefix = name[:SIMILARITY_PREFIX_LENGTH]

        similar = []
        for key, record in known.items():
            key_type, _, key_service = key.partition(":")
            if prefix and key_type == project_type and prefix in key_service.lower():
                similar.append(record.rate)
        if similar:
            return sum(similar) / len(similar)

        rate = _fallback_by_keyword(name, LABOR_RATE_FALLBACKS, DEFAULT_LABOR_RATE)
        logger.debug("labor_rate_estimated", service=service, rate=rate)
        return rate


def _coerce_details(details: Optional[Union[ProjectDetails, Dict[str, Any]]]) -> ProjectDetails:
    if isinstance(details, ProjectDetails):
        return details
    return ProjectDetails.model_validate(details or {})


def _coerce_client(client: Optional[Union[ClientInfo, Dict[str, Any]]]) -> Optional[ClientInfo]:
    if client is None or isinstance(client, ClientInfo):
        return client
    return ClientInfo.model_validate(client)

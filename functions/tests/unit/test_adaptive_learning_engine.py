"""Unit tests for the adaptive learning engine.

Test Coverage:
- Weighted-average material prices and labor rates
- Pattern history with markup, cap and permanent first entry
- Client preferences and client-specific tips
- Contractor profile staleness and explicit refresh
- Recommendations and fallback pricing
"""

import pytest
from unittest.mock import AsyncMock, patch

from config.errors import ErrorCode, KnowledgeStoreError, QuoteSmithError, ValidationError
from engines.adaptive_learning_engine import (
    AdaptiveLearningEngine,
    calculate_effective_markup,
    extract_key_features,
    normalize_material_id,
    weighted_average,
)
from models.estimate import EstimateResult, MaterialRequest
from models.project import ProjectDetails
from tests.fixtures.mock_estimate_data import (
    DECKING_DETAILS,
    FENCING_DETAILS,
    estimate_payload,
    fencing_estimate,
)


async def stored_knowledge_base(engine):
    return await engine.store.load(engine.contractor_id)


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    """Tests for module-level helpers."""

    def test_normalize_material_id(self):
        """Test ids are lower-cased with non-alphanumerics replaced."""
        assert normalize_material_id("Wood-Post 4x4") == "wood_post_4x4"

    def test_weighted_average(self):
        """Test the incremental weighted mean."""
        assert weighted_average(10.0, 10, 20.0, 30) == pytest.approx(17.5)

    def test_weighted_average_without_weight_keeps_old_value(self):
        """Test zero total weight leaves the average unchanged."""
        assert weighted_average(10.0, 0, 50.0, 0) == 10.0

    @pytest.mark.parametrize("material,labor,total,expected", [
        (800, 200, 1250, 0.25),
        (800, 200, 900, 0.0),
        (0, 0, 500, 0.25),
    ])
    def test_effective_markup(self, material, labor, total, expected):
        """Test markup over base cost, floored at zero, defaulted without a base."""
        assert calculate_effective_markup(material, labor, total) == pytest.approx(expected)

    def test_key_features(self):
        """Test feature tags for scalar fields, dimensions and extras."""
        details = ProjectDetails(
            type="decking",
            material="cedar",
            dimensions={"squareFeet": 200},
            stairs=True,
            permit_needed=True,
            gates=[{"width": 4}, {"width": 6}],
        )

        assert extract_key_features(details) == [
            "type:decking",
            "material:cedar",
            "dimension:squareFeet:200.0",
            "has:stairs",
            "has:permit",
            "gates:2",
        ]


# =============================================================================
# Learning
# =============================================================================


class TestLearnFromEstimate:
    """Tests for learn_from_estimate."""

    @pytest.mark.asyncio
    async def test_markup_recorded_on_pattern(self, learning_engine):
        """Test material 800 + labor 200 sold at 1250 is a 25% markup."""
        pattern = await learning_engine.learn_from_estimate(estimate_payload(), FENCING_DETAILS)

        assert pattern.markup == pytest.approx(0.25)
        knowledge_base = await stored_knowledge_base(learning_engine)
        assert knowledge_base.project_patterns.patterns[0].markup == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_pattern_fields(self, learning_engine, clock):
        """Test the stored pattern snapshot."""
        pattern = await learning_engine.learn_from_estimate(
            fencing_estimate(), FENCING_DETAILS, was_accepted=True
        )

        assert pattern.id.startswith("pattern_")
        assert pattern.project_type == "fencing"
        assert pattern.project_subtype == "wood"
        assert pattern.dimensions == {"length": 100.0, "height": 6.0, "squareFeet": 600.0}
        assert pattern.final_price == 1250.0
        assert pattern.was_accepted is True
        assert pattern.timestamp == clock()
        assert pattern.materials[0].id == "wood_post"
        assert "style:privacy" in pattern.key_features

    @pytest.mark.asyncio
    async def test_final_price_overrides_total(self, learning_engine):
        """Test an explicit final price is stored."""
        pattern = await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS, final_price=1100.0)

        assert pattern.final_price == 1100.0

    @pytest.mark.asyncio
    async def test_zero_final_price_is_kept(self, learning_engine):
        """Test a final price of zero is stored instead of the estimate total."""
        pattern = await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS, final_price=0.0)

        assert pattern.final_price == 0.0
        knowledge_base = await stored_knowledge_base(learning_engine)
        assert knowledge_base.project_patterns.patterns[0].final_price == 0.0

    @pytest.mark.asyncio
    async def test_material_price_weighted_by_quantity(self, learning_engine):
        """Test repeated materials average by quantity."""
        await learning_engine.learn_from_estimate(fencing_estimate(unit_price=12.0, quantity=10), FENCING_DETAILS)
        await learning_engine.learn_from_estimate(fencing_estimate(unit_price=18.0, quantity=30), FENCING_DETAILS)

        knowledge_base = await stored_knowledge_base(learning_engine)
        record = knowledge_base.material_prices.items["wood_post"]

        assert record.price == pytest.approx((12.0 * 10 + 18.0 * 30) / 40)
        assert record.quantity == 40
        assert record.occurrences == 2

    @pytest.mark.asyncio
    async def test_weighted_average_over_many_updates(self, learning_engine):
        """Test the stored price equals sum(price*qty)/sum(qty) for any sequence."""
        updates = [(10.0, 5), (14.0, 1), (9.5, 12), (20.0, 3), (11.0, 8)]
        for price, quantity in updates:
            await learning_engine.learn_from_estimate(
                fencing_estimate(unit_price=price, quantity=quantity), FENCING_DETAILS
            )

        knowledge_base = await stored_knowledge_base(learning_engine)
        expected = sum(p * q for p, q in updates) / sum(q for _, q in updates)

        assert knowledge_base.material_prices.items["wood_post"].price == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_material_project_types(self, learning_engine):
        """Test each project type is listed once per material."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)
        await learning_engine.learn_from_estimate(fencing_estimate(), DECKING_DETAILS)

        knowledge_base = await stored_knowledge_base(learning_engine)

        assert knowledge_base.material_prices.items["wood_post"].project_types == ["fencing", "decking"]

    @pytest.mark.asyncio
    async def test_labor_rate_keyed_by_type_and_service(self, learning_engine):
        """Test labor rates are kept per project type and weighted by hours."""
        await learning_engine.learn_from_estimate(
            estimate_payload(services=[{"name": "Instalación", "hours": 10, "hourlyRate": 40}]),
            FENCING_DETAILS
        )
        await learning_engine.learn_from_estimate(
            estimate_payload(services=[{"name": "Instalación", "hours": 30, "hourlyRate": 60}]),
            FENCING_DETAILS
        )

        knowledge_base = await stored_knowledge_base(learning_engine)
        record = knowledge_base.labor_rates.rates["fencing:Instalación"]

        assert record.rate == pytest.approx(55.0)
        assert record.hours == 40
        assert record.unit == "hour"

    @pytest.mark.asyncio
    async def test_pattern_history_cap_keeps_first(self, learning_engine):
        """Test 150 estimates leave 100 patterns with the first one kept."""
        patterns = []
        for index in range(150):
            patterns.append(await learning_engine.learn_from_estimate(
                fencing_estimate(total_cost=1000.0 + index), FENCING_DETAILS
            ))

        knowledge_base = await stored_knowledge_base(learning_engine)
        stored = knowledge_base.project_patterns.patterns

        assert len(stored) == 100
        assert stored[0].id == patterns[0].id
        assert [p.id for p in stored[1:]] == [p.id for p in patterns[-99:]]

    @pytest.mark.asyncio
    async def test_smallest_history_limit(self, memory_store, clock):
        """Test a limit of 2 keeps the first pattern and the latest one."""
        engine = AdaptiveLearningEngine("contractor-1", store=memory_store, clock=clock, pattern_history_limit=2)
        patterns = []
        for index in range(5):
            patterns.append(await engine.learn_from_estimate(
                fencing_estimate(total_cost=1000.0 + index), FENCING_DETAILS
            ))

        knowledge_base = await stored_knowledge_base(engine)

        assert [p.id for p in knowledge_base.project_patterns.patterns] == [patterns[0].id, patterns[-1].id]

    @pytest.mark.parametrize("limit", [0, 1, -5])
    def test_history_limit_below_two_rejected(self, memory_store, clock, limit):
        """Test a history limit that cannot hold the first and latest pattern is refused."""
        with pytest.raises(QuoteSmithError) as exc_info:
            AdaptiveLearningEngine("contractor-1", store=memory_store, clock=clock, pattern_history_limit=limit)

        assert exc_info.value.code == ErrorCode.INVALID_CONFIGURATION
        assert exc_info.value.details == {"pattern_history_limit": limit}

    def test_negative_refresh_days_rejected(self, memory_store, clock):
        """Test a negative profile refresh interval is refused."""
        with pytest.raises(QuoteSmithError) as exc_info:
            AdaptiveLearningEngine("contractor-1", store=memory_store, clock=clock, refresh_days=-1)

        assert exc_info.value.code == ErrorCode.INVALID_CONFIGURATION

    @pytest.mark.asyncio
    async def test_client_preferences(self, learning_engine):
        """Test client history grows and the latest preferences win."""
        client = {"id": "client-1", "name": "Ana"}
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS, client_info=client)
        await learning_engine.learn_from_estimate(
            fencing_estimate(),
            {**FENCING_DETAILS, "material": "vinyl"},
            client_info=client,
            was_accepted=True
        )

        knowledge_base = await stored_knowledge_base(learning_engine)
        record = knowledge_base.client_preferences.clients["client-1"]

        assert [entry.was_accepted for entry in record.project_history] == [False, True]
        assert record.preferences == {"fencing:material": "vinyl", "fencing:style": "privacy"}

    @pytest.mark.asyncio
    async def test_client_without_id_is_not_tracked(self, learning_engine):
        """Test anonymous clients leave no preference record."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS, client_info={"name": "Ana"})

        knowledge_base = await stored_knowledge_base(learning_engine)

        assert knowledge_base.client_preferences.clients == {}

    @pytest.mark.asyncio
    async def test_invalid_payload_raises(self, learning_engine):
        """Test a payload without usable totals is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await learning_engine.learn_from_estimate({"totalCost": "mucho"}, FENCING_DETAILS)

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_save_failure_is_logged_not_raised(self, learning_engine, memory_store):
        """Test a failing save does not fail the learning call."""
        error = KnowledgeStoreError(
            code=ErrorCode.KNOWLEDGE_STORE_WRITE_FAILED,
            message="disk full",
            contractor_id="contractor-1"
        )

        with patch.object(memory_store, "save", AsyncMock(side_effect=error)):
            pattern = await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)

        assert pattern.project_type == "fencing"
        assert memory_store.documents == {}

    @pytest.mark.asyncio
    async def test_read_failure_propagates(self, learning_engine, memory_store):
        """Test a failing load is surfaced to the caller."""
        error = KnowledgeStoreError(
            code=ErrorCode.KNOWLEDGE_STORE_READ_FAILED,
            message="unreachable",
            contractor_id="contractor-1"
        )

        with patch.object(memory_store, "load", AsyncMock(side_effect=error)):
            with pytest.raises(KnowledgeStoreError):
                await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)


# =============================================================================
# Contractor profile
# =============================================================================


class TestContractorProfile:
    """Tests for the stored contractor profile."""

    @pytest.mark.asyncio
    async def test_profile_not_recomputed_while_fresh(self, learning_engine):
        """Test a fresh profile is left alone by learning."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)

        profile = await learning_engine.analyze_contractor_specialties()

        assert profile.specialties == []

    @pytest.mark.asyncio
    async def test_profile_recomputed_when_stale(self, learning_engine, clock):
        """Test learning recomputes a profile that is 14 days old."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)
        clock.advance(days=14)
        await learning_engine.learn_from_estimate(fencing_estimate(total_cost=1500.0), DECKING_DETAILS)

        profile = await learning_engine.analyze_contractor_specialties()

        assert profile.specialties == ["fencing", "decking"]
        assert profile.preferred_materials == {"fencing": ["wood"], "decking": ["composite"]}
        assert profile.last_updated == clock()

    @pytest.mark.asyncio
    async def test_explicit_refresh(self, learning_engine):
        """Test refresh_contractor_profile ignores the profile's age."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)
        await learning_engine.learn_from_estimate(fencing_estimate(total_cost=1500.0), FENCING_DETAILS)

        profile = await learning_engine.refresh_contractor_profile()

        assert profile.specialties == ["fencing"]
        assert profile.typical_markups["fencing"] == pytest.approx((0.25 + 0.5) / 2)
        stored = await learning_engine.analyze_contractor_specialties()
        assert stored.specialties == ["fencing"]


# =============================================================================
# Recommendations
# =============================================================================


class TestGenerateRecommendations:
    """Tests for generate_recommendations."""

    @pytest.mark.asyncio
    async def test_defaults_without_history(self, learning_engine):
        """Test the generic recommendations for a new contractor."""
        recommendations = await learning_engine.generate_recommendations("fencing")

        assert recommendations.recommended_materials == ["wood", "vinyl", "composite"]
        assert recommendations.estimated_costs.min == 1000.0
        assert recommendations.estimated_costs.max == 5000.0
        assert recommendations.suggested_markup == 0.25
        assert recommendations.client_specific_tips is None

    @pytest.mark.asyncio
    async def test_cost_range_scaled_and_clamped(self, learning_engine):
        """Test a 2x larger project doubles the historical cost."""
        estimate = EstimateResult(material_cost=600, labor_cost=200, total_cost=1000)
        await learning_engine.learn_from_estimate(estimate, {"type": "fencing", "dimensions": {"squareFeet": 100}})

        recommendations = await learning_engine.generate_recommendations(
            "fencing", {"dimensions": {"squareFeet": 200}}
        )

        assert recommendations.estimated_costs.min == 2000.0
        assert recommendations.estimated_costs.max == 2000.0
        assert recommendations.suggested_markup == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_size_ratio_clamped_low(self, learning_engine):
        """Test a much smaller project is clamped to half the historical cost."""
        estimate = EstimateResult(material_cost=600, labor_cost=200, total_cost=1000)
        await learning_engine.learn_from_estimate(estimate, {"type": "fencing", "dimensions": {"length": 100}})

        recommendations = await learning_engine.generate_recommendations(
            "fencing", ProjectDetails(dimensions={"length": 10})
        )

        assert recommendations.estimated_costs.min == 500.0

    @pytest.mark.asyncio
    async def test_materials_from_patterns(self, learning_engine):
        """Test pattern subtypes are ranked by frequency."""
        for material in ("vinyl", "wood", "vinyl", "aluminum", "chain_link"):
            await learning_engine.learn_from_estimate(
                fencing_estimate(), {**FENCING_DETAILS, "material": material}
            )

        recommendations = await learning_engine.generate_recommendations("fencing")

        assert recommendations.recommended_materials == ["vinyl", "wood", "aluminum"]

    @pytest.mark.asyncio
    async def test_profile_takes_precedence(self, learning_engine):
        """Test the stored profile is preferred over raw patterns."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)
        await learning_engine.refresh_contractor_profile()
        await learning_engine.learn_from_estimate(
            fencing_estimate(total_cost=2000.0), {**FENCING_DETAILS, "material": "vinyl"}
        )
        await learning_engine.learn_from_estimate(
            fencing_estimate(total_cost=2000.0), {**FENCING_DETAILS, "material": "vinyl"}
        )

        recommendations = await learning_engine.generate_recommendations("fencing")

        assert recommendations.recommended_materials == ["wood"]
        assert recommendations.suggested_markup == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_client_tips_for_rejections(self, learning_engine):
        """Test a client who rejected most estimates gets a pricing warning."""
        client = {"id": "client-1"}
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS, client_info=client)
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS, client_info=client)

        recommendations = await learning_engine.generate_recommendations("fencing", client_id="client-1")

        assert recommendations.client_specific_tips == [
            "El cliente ha preferido wood para proyectos de fencing en el pasado.",
            "El cliente prefiere el estilo privacy para este tipo de proyectos.",
            "Este cliente ha rechazado 2 de 2 estimados para proyectos de fencing. "
            "Considere un precio más competitivo.",
        ]

    @pytest.mark.asyncio
    async def test_client_tips_for_high_acceptance(self, learning_engine):
        """Test a client who accepts nearly everything gets a confidence note."""
        client = {"id": "client-2"}
        await learning_engine.learn_from_estimate(
            fencing_estimate(), DECKING_DETAILS, client_info=client, was_accepted=True
        )

        recommendations = await learning_engine.generate_recommendations("decking", client_id="client-2")

        assert recommendations.client_specific_tips[-1] == (
            "Este cliente tiene una alta tasa de aceptación (100%) para proyectos de decking."
        )

    @pytest.mark.asyncio
    async def test_unknown_client_gets_no_tips(self, learning_engine):
        """Test tips are only produced for known clients."""
        recommendations = await learning_engine.generate_recommendations("fencing", client_id="nobody")

        assert recommendations.client_specific_tips is None


# =============================================================================
# Pricing lookups
# =============================================================================


class TestPricingLookups:
    """Tests for material and labor pricing with fallbacks."""

    @pytest.mark.asyncio
    async def test_material_costs(self, learning_engine):
        """Test known prices, similar-name averages and keyword fallbacks."""
        await learning_engine.learn_from_estimate(fencing_estimate(unit_price=12.0), FENCING_DETAILS)

        priced = await learning_engine.get_estimated_material_costs([
            {"id": "Wood_Post", "name": "Wood post", "quantity": 4, "unit": "pieza"},
            MaterialRequest(id="plank", name="Wood plank", quantity=2),
            {"id": "paint", "name": "Pintura blanca"},
            {"id": "gizmo", "name": "Widget"},
        ])

        assert [item.estimated_price for item in priced] == [12.0, 12.0, 25.0, 20.0]
        assert priced[0].quantity == 4
        assert priced[0].model_dump(by_alias=True)["estimatedPrice"] == 12.0

    @pytest.mark.asyncio
    async def test_material_costs_keyword_table(self, learning_engine):
        """Test the keyword table for a contractor without history."""
        priced = await learning_engine.get_estimated_material_costs([
            {"id": "a", "name": "Madera de pino"},
            {"id": "b", "name": "Concreto premezclado"},
            {"id": "c", "name": "Herramienta de corte"},
        ])

        assert [item.estimated_price for item in priced] == [15.0, 12.0, 40.0]

    @pytest.mark.asyncio
    async def test_labor_rates(self, learning_engine):
        """Test known rates, similar services and keyword fallbacks."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)

        fencing = await learning_engine.get_recommended_labor_rates(
            "fencing", ["Instalación", "Instalación de puertas", "Limpieza"]
        )
        decking = await learning_engine.get_recommended_labor_rates(
            "decking", ["Instalación", "Repair work", "Prep work"]
        )

        assert [(r.service, r.rate, r.unit) for r in fencing] == [
            ("Instalación", 40.0, "hour"),
            ("Instalación de puertas", 40.0, "hour"),
            ("Limpieza", 70.0, "hour"),
        ]
        assert [r.rate for r in decking] == [75.0, 85.0, 60.0]

    @pytest.mark.asyncio
    async def test_labor_similarity_ignores_project_type_name(self, learning_engine):
        """Test a service is only compared with service names, not the project type."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)

        rates = await learning_engine.get_recommended_labor_rates("fencing", ["Fence repair"])

        assert rates[0].rate == 85.0

    @pytest.mark.asyncio
    async def test_labor_similarity_requires_same_project_type(self, learning_engine):
        """Test learned rates of another project type are not averaged in."""
        await learning_engine.learn_from_estimate(fencing_estimate(), FENCING_DETAILS)

        rates = await learning_engine.get_recommended_labor_rates("fence", ["Instalación"])

        assert rates[0].rate == 75.0

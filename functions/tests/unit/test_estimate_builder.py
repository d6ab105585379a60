"""Unit tests for preliminary estimates."""

import pytest

from engines.estimate_builder import SAMPLE_SERVICES, build_preliminary_estimate
from models.project import ProjectDetails


class TestBuildPreliminaryEstimate:
    """Tests for build_preliminary_estimate."""

    def test_decking_composite(self):
        """Test decking pricing with its own cost shares."""
        estimate = build_preliminary_estimate(
            ProjectDetails(type="decking", material="composite", dimensions={"squareFeet": 200})
        )

        assert estimate.material_cost == 4400.0
        assert estimate.labor_cost == 3200.0
        assert estimate.equipment_cost == 400.0
        assert estimate.total_cost == 8000.0
        assert estimate.materials[0].name == "Tablas de material compuesto"

    def test_default_size_when_dimension_missing(self):
        """Test roofing without an area uses the default size."""
        estimate = build_preliminary_estimate(ProjectDetails(type="roofing"))

        assert estimate.total_cost == 15000.0
        assert estimate.material_cost == 9000.0

    def test_fence_price_by_material(self):
        """Test chain link is cheaper than aluminum for the same length."""
        chain = build_preliminary_estimate(
            ProjectDetails(type="fencing", material="chain_link", dimensions={"length": 100})
        )
        aluminum = build_preliminary_estimate(
            ProjectDetails(type="fencing", material="aluminum", dimensions={"length": 100})
        )

        assert chain.total_cost == 1500.0
        assert aluminum.total_cost == 4000.0

    def test_total_is_sum_of_parts(self):
        """Test the total always equals material + labor + equipment."""
        estimate = build_preliminary_estimate(
            ProjectDetails(type="concrete", dimensions={"squareFeet": 333.3})
        )

        assert estimate.total_cost == pytest.approx(
            estimate.material_cost + estimate.labor_cost + estimate.equipment_cost
        )

    def test_unknown_type_has_zero_cost(self):
        """Test a type outside the catalog gets a generic zero-cost estimate."""
        estimate = build_preliminary_estimate(ProjectDetails(type="pool"))

        assert estimate.total_cost == 0.0
        assert len(estimate.materials) == 3
        assert len(estimate.construction_steps) == 5

    def test_services_are_copies(self):
        """Test changing an estimate's services leaves the templates untouched."""
        estimate = build_preliminary_estimate(ProjectDetails(type="fencing", dimensions={"length": 10}))

        estimate.services[0].hours = 999

        assert SAMPLE_SERVICES[0].hours == 20
        assert estimate.time_estimate.min_days == 3
        assert estimate.time_estimate.max_days == 7

"""Unit tests for estimate payload validation."""

import pytest

from config.errors import ErrorCode, ValidationError
from config.settings import settings
from validators.estimate_validator import parse_estimate_result, validate_estimate_payload
from tests.fixtures.mock_estimate_data import estimate_payload


BAD_LINES_PAYLOAD = estimate_payload(
    materials=[
        {"id": "post", "name": "Post", "quantity": 4, "unitPrice": 12.0},
        {"id": "nail", "name": "Nails", "quantity": -3},
        {"name": "No id"},
    ],
    services=[
        {"name": "Instalación", "hours": 8, "hourlyRate": 45.0},
        {"hours": 2},
    ],
)


class TestLenientValidation:
    """Tests for lenient mode."""

    def test_valid_payload(self):
        """Test a well formed payload parses completely."""
        result = validate_estimate_payload(estimate_payload(), strict=False)

        assert result.is_valid
        assert result.errors == []
        assert result.dropped_lines == []
        assert len(result.parsed.materials) == 2
        assert result.parsed.time_estimate.max_days == 4

    def test_bad_lines_are_dropped(self):
        """Test invalid material and service lines are discarded."""
        result = validate_estimate_payload(BAD_LINES_PAYLOAD, strict=False)

        assert result.is_valid
        assert [m.id for m in result.parsed.materials] == ["post"]
        assert [s.name for s in result.parsed.services] == ["Instalación"]
        assert any(line.startswith("materials.1.quantity") for line in result.dropped_lines)
        assert any(line.startswith("materials.2.id") for line in result.dropped_lines)
        assert any(line.startswith("services.1.name") for line in result.dropped_lines)

    def test_non_list_section_dropped(self):
        """Test a section that is not a list is treated as empty."""
        payload = estimate_payload()
        payload["services"] = {"name": "Instalación"}

        result = validate_estimate_payload(payload, strict=False)

        assert result.is_valid
        assert result.parsed.services == []
        assert result.dropped_lines == ["services: expected a list"]

    def test_invalid_top_level_fails(self):
        """Test bad totals still reject the payload."""
        result = validate_estimate_payload({"totalCost": "mucho"}, strict=False)

        assert not result.is_valid
        assert result.errors[0].startswith("totalCost")

    def test_snake_case_keys(self):
        """Test snake_case payloads are accepted."""
        result = validate_estimate_payload(
            {"material_cost": 100, "total_cost": 150, "materials": [{"id": "a", "name": "A", "unit_price": 2}]},
            strict=False
        )

        assert result.parsed.total_cost == 150.0
        assert result.parsed.materials[0].unit_price == 2.0

    @pytest.mark.parametrize("payload", [None, "estimate", [1, 2]])
    def test_non_dict_rejected(self, payload):
        """Test payloads that are not dicts are rejected."""
        result = validate_estimate_payload(payload)

        assert not result.is_valid
        assert result.errors == ["estimate must be a dictionary"]


class TestStrictValidation:
    """Tests for strict mode."""

    def test_bad_line_rejects_payload(self):
        """Test one bad line rejects the whole payload."""
        result = validate_estimate_payload(BAD_LINES_PAYLOAD, strict=True)

        assert not result.is_valid
        assert result.parsed is None
        assert any(error.startswith("materials.1.quantity") for error in result.errors)

    def test_settings_toggle(self, monkeypatch):
        """Test strict mode follows settings when not passed explicitly."""
        monkeypatch.setattr(settings, "strict_estimate_validation", True)

        assert not validate_estimate_payload(BAD_LINES_PAYLOAD).is_valid

        monkeypatch.setattr(settings, "strict_estimate_validation", False)

        assert validate_estimate_payload(BAD_LINES_PAYLOAD).is_valid


class TestParseEstimateResult:
    """Tests for parse_estimate_result."""

    def test_returns_parsed_estimate(self):
        """Test a valid payload returns the typed model."""
        estimate = parse_estimate_result(estimate_payload(total_cost=999.0))

        assert estimate.total_cost == 999.0

    def test_invalid_payload_raises(self):
        """Test an invalid payload raises ValidationError with the errors."""
        with pytest.raises(ValidationError) as exc_info:
            parse_estimate_result("not an estimate")

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert exc_info.value.details["field"] == "estimate"
        assert exc_info.value.details["errors"] == ["estimate must be a dictionary"]

"""
Unit tests for keg variance helpers and the threshold evaluator.
"""

import pytest

from core.variance import (
    VarianceEvaluation,
    calculate_confidence,
    calculate_expected_pints,
    calculate_keg_deposit,
    calculate_variance_status,
    classify_severity,
    evaluate,
    format_abv,
    parse_abv,
)


class TestKegHelpers:
    """Test cases for keg-level helpers."""

    @pytest.mark.parametrize(
        "keg_size,pints",
        [("1/6BBL", 41), ("1/4BBL", 74), ("1/2BBL", 124), ("Pony", 53), ("Cornelius", 37)],
    )
    def test_expected_pints_lookup(self, keg_size, pints):
        assert calculate_expected_pints(keg_size) == pints

    def test_expected_pints_unknown_size(self):
        with pytest.raises(ValueError):
            calculate_expected_pints("1/3BBL")

    def test_variance_status_bands(self):
        assert calculate_variance_status(0) == "NORMAL"
        assert calculate_variance_status(3) == "NORMAL"
        assert calculate_variance_status(-3) == "NORMAL"
        assert calculate_variance_status(4) == "WARNING"
        assert calculate_variance_status(8) == "WARNING"
        assert calculate_variance_status(-8) == "WARNING"
        assert calculate_variance_status(9) == "CRITICAL"
        assert calculate_variance_status(-20) == "CRITICAL"

    def test_deposit_is_flat_per_size(self):
        assert calculate_keg_deposit("1/2BBL") == 30.0
        assert calculate_keg_deposit("Cornelius") == 30.0
        with pytest.raises(ValueError):
            calculate_keg_deposit("barrel")

    def test_abv_storage_format(self):
        assert parse_abv(6.5) == 65
        assert parse_abv(12) == 120
        assert format_abv(65) == "6.5%"


class TestEvaluator:
    """Test cases for evaluate() and its severity/confidence rules."""

    def test_evaluate_returns_evaluation(self):
        result = evaluate(120, 100)

        assert isinstance(result, VarianceEvaluation)
        assert result.variance == pytest.approx(20)
        assert result.variance_percentage == pytest.approx(20)
        assert result.severity == "medium"
        assert result.reportable is True

    def test_negative_variance(self):
        result = evaluate(40, 100)

        assert result.variance == pytest.approx(-60)
        assert result.variance_percentage == pytest.approx(-60)
        assert result.severity == "critical"

    @pytest.mark.parametrize(
        "pct,severity",
        [(50, "critical"), (-75, "critical"), (25, "high"), (49.9, "high"), (10, "medium"), (24.99, "medium"), (9.99, "low"), (0, "low")],
    )
    def test_severity_bands(self, pct, severity):
        assert classify_severity(pct) == severity

    def test_sensitivity_moves_reporting_threshold(self):
        # 12% deviation: only high sensitivity (10%) reports it
        assert evaluate(112, 100, "high").reportable is True
        assert evaluate(112, 100, "medium").reportable is False
        assert evaluate(112, 100, "low").reportable is False
        # 20% deviation: medium (15%) reports, low (25%) does not
        assert evaluate(120, 100, "medium").reportable is True
        assert evaluate(120, 100, "low").reportable is False

    def test_sensitivity_does_not_change_severity(self):
        assert evaluate(130, 100, "low").severity == evaluate(130, 100, "high").severity == "high"

    def test_confidence(self):
        assert calculate_confidence(20, 0) == 0.2
        assert calculate_confidence(-20, 0) == 0.2
        assert calculate_confidence(50, 100) == 1.0
        assert calculate_confidence(200, 500) == 1.0
        assert calculate_confidence(25, 50) == 0.5
        assert evaluate(125, 100, data_points=50).confidence == 0.5

    def test_invalid_expected(self):
        with pytest.raises(ValueError):
            evaluate(10, 0)
        with pytest.raises(ValueError):
            evaluate(10, -5)

    def test_unknown_sensitivity(self):
        with pytest.raises(ValueError):
            evaluate(10, 5, "extreme")

"""
Tests for edge and expected value
Run with: pytest tests/test_edge.py -v
"""

import pytest

from betsmart.core.edge import calculate_edge, calculate_expected_value, raw_expected_value


class TestExpectedValue:

    def test_ten_percent_edge_at_even_money(self):
        result = calculate_expected_value(0.55, 2.0)

        assert result.ev == pytest.approx(0.1)
        assert result.ev_percentage == pytest.approx(10.0)
        assert result.is_positive_ev is True

    def test_zero_edge_is_not_positive(self):
        result = calculate_expected_value(0.50, 2.0)

        assert result.ev == 0.0
        assert result.is_positive_ev is False

    def test_breakeven_residue_snapped_to_zero(self):
        # p = 1/d leaves float residue without the snap
        assert raw_expected_value(1 / 1.91, 1.91) == 0.0
        assert calculate_expected_value(1 / 1.91, 1.91).is_positive_ev is False

    def test_negative_edge(self):
        result = calculate_expected_value(0.40, 2.0)
        assert result.ev_percentage == pytest.approx(-20.0)
        assert not result.is_positive_ev

    def test_invalid_inputs_raise(self):
        with pytest.raises(ValueError):
            calculate_expected_value(1.0, 2.0)
        with pytest.raises(ValueError):
            calculate_expected_value(0.5, 1.0)


class TestEdge:

    def test_edge_over_implied_probability(self):
        assert calculate_edge(0.55, 2.0) == pytest.approx(0.05)

    def test_edge_can_be_negative(self):
        assert calculate_edge(0.45, 2.0) == pytest.approx(-0.05)

"""Tests for the two-way sensitivity tables."""
import math

import pytest

from credit_model.analysis.sensitivity import growth_vs_rate_min_dscr, wacc_vs_terminal_growth
from credit_model.model.projection import project


class TestWaccVsGrowth:
    def test_shape_and_labels(self, loan_params):
        df = wacc_vs_terminal_growth(loan_params)
        assert df.shape == (5, 4)
        assert df.index.name == "WACC"
        assert list(df.columns) == ["g 1.0%", "g 2.0%", "g 3.0%", "g 4.0%"]

    def test_base_cell_matches_projection(self, loan_params):
        df = wacc_vs_terminal_growth(loan_params)
        assert df.loc["10.0%", "g 3.0%"] == pytest.approx(project(loan_params).enterprise_value)

    def test_ev_falls_with_wacc(self, loan_params):
        column = wacc_vs_terminal_growth(loan_params)["g 2.0%"]
        assert list(column) == sorted(column, reverse=True)

    def test_invalid_cells_nan(self, loan_params):
        df = wacc_vs_terminal_growth(loan_params, waccs=[0.03, 0.10], growths=[0.03])
        assert math.isnan(df.loc["3.0%", "g 3.0%"])
        assert not math.isnan(df.loc["10.0%", "g 3.0%"])


class TestGrowthVsRate:
    def test_labels(self, loan_params):
        df = growth_vs_rate_min_dscr(loan_params)
        assert df.index.name == "Growth Shock"
        assert list(df.index) == ["-6.0%", "-3.0%", "+0.0%", "+3.0%"]
        assert list(df.columns) == ["Rate +0.0%", "Rate +1.0%", "Rate +2.0%", "Rate +3.0%"]

    def test_base_cell(self, loan_params):
        df = growth_vs_rate_min_dscr(loan_params)
        assert df.loc["+0.0%", "Rate +0.0%"] == pytest.approx(project(loan_params).credit.min_dscr)

    def test_monotone_in_rate(self, loan_params):
        row = growth_vs_rate_min_dscr(loan_params).loc["+0.0%"]
        assert list(row) == sorted(row, reverse=True)

    def test_no_debt_is_nan(self, unlevered_params):
        df = growth_vs_rate_min_dscr(unlevered_params)
        assert df.isna().all().all()

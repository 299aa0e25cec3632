"""Tests for scenario shocks and the scenario runner."""
from dataclasses import replace

import pandas as pd
import pytest

from credit_model.analysis.scenarios import (
    BASE,
    CUSTOM,
    PRESET_SHOCKS,
    ZERO_SHOCK,
    ScenarioShock,
    apply_shocks,
    run_scenarios,
)
from credit_model.model.assumptions import AmortizationType, ModelParameters
from credit_model.model.projection import project


class TestApplyShocks:
    def test_zero_shock_is_identity(self, loan_params):
        shocked = apply_shocks(loan_params, ZERO_SHOCK)
        assert shocked == loan_params
        assert project(shocked) == project(loan_params)

    def test_deltas_added(self, loan_params):
        shocked = apply_shocks(loan_params, PRESET_SHOCKS["Mild Recession"])
        assert shocked.growth == pytest.approx(0.05)
        assert shocked.cogs_pct == pytest.approx(0.41)
        assert shocked.opex_pct == pytest.approx(0.255)
        assert shocked.capex_pct == pytest.approx(0.047)
        assert shocked.proposed_pricing == pytest.approx(0.13)
        assert shocked.wacc == pytest.approx(0.11)
        assert shocked.terminal_growth == pytest.approx(0.028)

    def test_base_untouched(self, loan_params):
        before = replace(loan_params)
        apply_shocks(loan_params, PRESET_SHOCKS["Severe Recession"])
        assert loan_params == before

    def test_clamped(self, loan_params):
        shocked = apply_shocks(loan_params, ScenarioShock(cogs_delta=0.9, wacc_delta=-0.5,
                                                          term_g_delta=0.5, rate_delta=-1.0))
        assert shocked.cogs_pct == 1.0
        assert shocked.wacc == pytest.approx(0.01)
        assert shocked.terminal_growth == pytest.approx(0.2)
        assert shocked.proposed_pricing == 0.0

    def test_zero_delta_field_not_clamped(self, loan_params):
        odd = replace(loan_params, cogs_pct=1.5)
        assert apply_shocks(odd, ScenarioShock(growth_delta=-0.01)).cogs_pct == 1.5

    def test_growth_not_clamped(self, loan_params):
        assert apply_shocks(loan_params, ScenarioShock(growth_delta=-0.5)).growth == pytest.approx(-0.42)

    def test_tranche_rates_shifted(self, multi_tranche_params):
        shocked = apply_shocks(multi_tranche_params, PRESET_SHOCKS["Rate Shock"])
        assert [t.rate for t in shocked.tranches] == pytest.approx([0.13, 0.17])

    def test_from_mapping(self):
        shock = ScenarioShock.from_mapping({"growthDelta": -0.02, "rate_delta": 0.01})
        assert shock == ScenarioShock(growth_delta=-0.02, rate_delta=0.01)
        assert ScenarioShock.from_mapping({}).is_zero

    def test_from_mapping_whole_percentages(self):
        shock = ScenarioShock.from_mapping({"rateDelta": 2, "growthDelta": -3, "waccDelta": 0.01})
        assert shock.rate_delta == pytest.approx(0.02)
        assert shock.growth_delta == pytest.approx(-0.03)
        assert shock.wacc_delta == pytest.approx(0.01)


class TestRunScenarios:
    def test_presets_in_order(self, loan_params):
        run = run_scenarios(loan_params)
        assert list(run.comparison_df.index) == list(PRESET_SHOCKS)
        assert run.base is run.results[BASE]
        assert run.parameters[BASE] == loan_params

    def test_custom_scenario(self, loan_params):
        run = run_scenarios(loan_params, custom=ScenarioShock(growth_delta=0.02))
        assert list(run.comparison_df.index)[-1] == CUSTOM
        assert run.parameters[CUSTOM].growth == pytest.approx(0.10)

    def test_list_intervals_run(self):
        params = ModelParameters(
            start_year=2025, base_revenue=100e6, requested_loan_amount=50e6,
            amortization_type=AmortizationType.CUSTOM,
            custom_amortization_intervals=[25, 25, 25, 25],
        )
        run = run_scenarios(params, max_workers=2)
        assert run.base.ok
        assert run.base.rows[-1].ending_debt == pytest.approx(0.0, abs=1e-6)

    def test_parallel_matches_sequential(self, loan_params):
        sequential = run_scenarios(loan_params)
        parallel = run_scenarios(loan_params, max_workers=4)
        pd.testing.assert_frame_equal(sequential.comparison_df, parallel.comparison_df)

    def test_stress_lowers_coverage(self, loan_params):
        run = run_scenarios(loan_params)
        base_dscr = run.results[BASE].credit.min_dscr
        assert run.results["Severe Recession"].credit.min_dscr < base_dscr
        assert run.results["Rate Shock"].credit.min_icr < run.results[BASE].credit.min_icr

    def test_rejected_scenario_reported(self, loan_params, caplog):
        run = run_scenarios(loan_params, custom=ScenarioShock(term_g_delta=0.08))
        row = run.comparison_df.loc[CUSTOM]
        assert run.results[CUSTOM].errors
        assert row["Compliant"] == "NO"
        assert "terminal growth" in row["Errors"]
        assert row["Enterprise Value"] == "—"
        assert "Scenario Custom rejected" in caplog.text

    def test_comparison_formatting(self, loan_params):
        row = run_scenarios(loan_params).comparison_df.loc[BASE]
        assert row["Final Revenue"] == f"${100 * 1.08 ** 5:,.1f}M"
        assert row["IRR"] == "N/A"
        assert row["Errors"] == ""

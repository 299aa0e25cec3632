"""Tests for the NPV / IRR solver and return metrics."""
import pytest

from credit_model.analysis.returns import (
    UNDEFINED,
    cagr,
    discounted_payback_period,
    irr,
    mirr,
    npv,
    npv_derivative,
    npv_tolerance,
    payback_period,
    profitability_index,
    solve_irr,
)


class TestNPV:
    def test_first_flow_undiscounted(self):
        assert npv(0.10, [-100.0]) == pytest.approx(-100.0)

    def test_known_value(self):
        # -100 + 110 / 1.1 = 0
        assert npv(0.10, [-100.0, 110.0]) == pytest.approx(0.0, abs=1e-9)

    def test_derivative_matches_finite_difference(self):
        flows = [-100.0, 30.0, 40.0, 50.0]
        h = 1e-6
        numeric = (npv(0.08 + h, flows) - npv(0.08 - h, flows)) / (2 * h)
        assert npv_derivative(0.08, flows) == pytest.approx(numeric, rel=1e-5)


class TestSolveIRR:
    def test_closed_form(self):
        # 100 × 1.1^5 = 161.051
        solution = solve_irr([-100, 0, 0, 0, 0, 161.051])
        assert solution.is_defined
        assert solution.rate == pytest.approx(0.10, abs=1e-6)
        assert solution.method == "newton"

    def test_zero_irr_is_not_undefined(self):
        solution = solve_irr([-100, 50, 50])
        assert solution.rate == pytest.approx(0.0, abs=1e-6)
        assert solution.is_defined

    def test_all_positive_is_undefined(self):
        assert solve_irr([100, 50, 50]) == UNDEFINED
        assert irr([100, 50, 50]) is None

    def test_all_negative_is_undefined(self):
        assert solve_irr([-100, -50]).rate is None

    def test_single_flow_is_undefined(self):
        assert solve_irr([-100]).rate is None

    def test_high_return_within_bracket(self):
        # 500% return in one year
        assert irr([-100, 600]) == pytest.approx(5.0, abs=1e-6)

    def test_deep_negative_irr(self):
        # root near -60%; first Newton step overshoots to the -99% floor
        flows = [-100, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0.01]
        solution = solve_irr(flows)
        assert solution.is_defined
        assert npv(solution.rate, flows) == pytest.approx(0.0, abs=1e-4)

    def test_small_flows_not_stopped_at_guess(self):
        solution = solve_irr([-1e-4, 2e-4])
        assert solution.rate == pytest.approx(1.0, rel=1e-4)
        assert npv_tolerance([-1e-4, 2e-4]) == pytest.approx(2e-8)
        assert npv_tolerance([-100, 161.051]) == pytest.approx(1e-4)

    def test_no_root_in_bracket(self):
        # Root below -99%
        assert solve_irr([-100, 0.5]).rate is None


class TestOtherMetrics:
    def test_mirr_equal_rates_single_period(self):
        assert mirr([-100, 110], 0.10, 0.10) == pytest.approx(0.10)

    def test_mirr_closed_form(self):
        # FV of inflows at 12%: 50×1.12 + 80 = 136; (136/100)^(1/2) − 1
        assert mirr([-100, 50, 80], 0.10, 0.12) == pytest.approx(136 ** 0.5 / 10 - 1)

    def test_mirr_undefined_without_sign_change(self):
        assert mirr([100, 50], 0.1, 0.1) is None

    def test_payback_interpolates(self):
        assert payback_period([-100, 30, 40, 50]) == pytest.approx(2.6)

    def test_payback_never(self):
        assert payback_period([-100, 10, 10]) is None

    def test_discounted_payback_longer(self):
        flows = [-100, 40, 50, 60]
        # discounted: 36.36, 41.32, 45.08 → 22.31 left after year 2
        assert discounted_payback_period(flows, 0.10) == pytest.approx(2 + 22.314 / 45.079, rel=1e-4)
        assert discounted_payback_period(flows, 0.10) > payback_period(flows)

    def test_discounted_payback_never(self):
        # discounted inflows only reach 97.9
        assert discounted_payback_period([-100, 30, 40, 50], 0.10) is None

    def test_profitability_index(self):
        assert profitability_index(0.10, [-100, 110]) == pytest.approx(1.0)

    def test_profitability_index_needs_outlay(self):
        assert profitability_index(0.10, [100, 110]) is None

    def test_cagr(self):
        assert cagr(100, 121, 2) == pytest.approx(0.10)
        assert cagr(0, 121, 2) is None

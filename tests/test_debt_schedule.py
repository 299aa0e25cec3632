"""Tests for tranche schedules and the blended debt profile."""
from dataclasses import replace
from datetime import date

import pytest

from credit_model.analysis.valuation import present_value
from credit_model.model.assumptions import AmortizationType, DebtTranche, ModelParameters, ParameterError
from credit_model.model.debt_schedule import (
    annuity_payment,
    blended_rate,
    build_debt_profile,
    build_tranche_schedule,
    compute_annual_service,
    debt_schedule_frame,
    effective_annual_rate,
    expand_custom_intervals,
    facility_tranches,
    implied_loan_rate,
    max_sustainable_debt,
    period_breakdown,
)


def _tranche(**kwargs) -> DebtTranche:
    defaults = dict(id="t", name="Loan", principal=100.0, rate=0.10, tenor_years=5)
    defaults.update(kwargs)
    return DebtTranche(**defaults)


class TestAnnualService:
    def test_annuity_known_value(self):
        # $100M at 12% over 5 years
        assert compute_annual_service(100e6, 0.12, 5) == pytest.approx(27.741e6, rel=1e-4)

    def test_payments_recover_principal(self):
        for principal, rate, n in [(100.0, 0.12, 5), (250.0, 0.05, 10), (1e6, 0.2, 3)]:
            payment = annuity_payment(principal, rate, n)
            assert present_value([payment] * n, rate) == pytest.approx(principal)

    def test_zero_rate(self):
        assert compute_annual_service(100.0, 0.0, 5) == pytest.approx(20.0)

    def test_interest_only_and_bullet(self):
        assert compute_annual_service(100.0, 0.1, 5, AmortizationType.INTEREST_ONLY) == pytest.approx(10.0)
        assert compute_annual_service(100.0, 0.1, 5, AmortizationType.BULLET) == pytest.approx(10.0)

    def test_balloon(self):
        expected = annuity_payment(50.0, 0.1, 5) + 5.0
        service = compute_annual_service(100.0, 0.1, 5, AmortizationType.BALLOON, balloon_pct=50)
        assert service == pytest.approx(expected)

    def test_no_principal(self):
        assert compute_annual_service(0.0, 0.1, 5) == 0.0


class TestTrancheSchedule:
    def test_amortizing_fully_repays(self):
        schedule = build_tranche_schedule(_tranche(), 5)
        assert schedule.periods[-1].ending_balance == pytest.approx(0.0, abs=1e-9)
        assert sum(p.principal for p in schedule.periods) == pytest.approx(100.0)
        payment = annuity_payment(100.0, 0.10, 5)
        for p in schedule.periods:
            assert p.service == pytest.approx(payment)

    def test_interest_on_beginning_balance(self):
        schedule = build_tranche_schedule(_tranche(), 5)
        for p in schedule.periods:
            assert p.interest == pytest.approx(p.beginning_balance * 0.10)

    def test_balances_never_negative(self):
        schedule = build_tranche_schedule(_tranche(tenor_years=3), 6)
        assert all(p.ending_balance >= 0 for p in schedule.periods)
        assert all(p.service == 0 for p in schedule.periods[3:])

    def test_interest_only_years_first(self):
        schedule = build_tranche_schedule(_tranche(interest_only_years=2), 5)
        assert [p.principal for p in schedule.periods[:2]] == [0.0, 0.0]
        assert schedule.periods[1].ending_balance == 100.0
        payment = annuity_payment(100.0, 0.10, 3)
        assert schedule.periods[2].service == pytest.approx(payment)
        assert schedule.periods[-1].ending_balance == pytest.approx(0.0, abs=1e-9)

    def test_interest_only_leaves_balance(self):
        schedule = build_tranche_schedule(_tranche(amortization_type=AmortizationType.INTEREST_ONLY), 5)
        assert all(p.principal == 0 for p in schedule.periods)
        assert schedule.periods[-1].ending_balance == 100.0

    def test_bullet(self):
        schedule = build_tranche_schedule(_tranche(amortization_type=AmortizationType.BULLET), 5)
        assert [p.principal for p in schedule.periods] == [0.0, 0.0, 0.0, 0.0, 100.0]
        assert schedule.periods[-1].ending_balance == 0.0

    def test_balloon_final_payment(self):
        tranche = _tranche(amortization_type=AmortizationType.BALLOON, balloon_pct=50)
        schedule = build_tranche_schedule(tranche, 5)
        level = compute_annual_service(100.0, 0.1, 5, AmortizationType.BALLOON, balloon_pct=50)
        for p in schedule.periods[:4]:
            assert p.service == pytest.approx(level)
            assert not p.is_balloon
        final = schedule.periods[-1]
        assert final.is_balloon
        assert final.principal > 50.0
        assert final.ending_balance == 0.0

    def test_custom_percentages(self):
        tranche = _tranche(amortization_type=AmortizationType.CUSTOM,
                           custom_intervals=(10, 20, 30, 40, 0))
        schedule = build_tranche_schedule(tranche, 5)
        principals = [p.principal for p in schedule.periods]
        assert principals[:4] == pytest.approx([10.0, 20.0, 30.0, 40.0])
        assert schedule.periods[-1].ending_balance == pytest.approx(0.0, abs=1e-9)

    def test_actual_360_grosses_up(self):
        schedule = build_tranche_schedule(_tranche(), 5, day_count_convention="Actual/360")
        assert schedule.effective_rate == pytest.approx(0.10 * 365 / 360)
        assert effective_annual_rate(0.10, "30/360") == 0.10

    def test_maturity_date_overrides_tenor(self):
        tranche = _tranche(tenor_years=10, maturity_date=date(2027, 6, 30))
        schedule = build_tranche_schedule(tranche, 5, start_year=2025)
        assert schedule.maturity_period == 3
        assert schedule.periods[2].ending_balance == 0.0


class TestCustomIntervals:
    def test_one_per_year(self):
        assert expand_custom_intervals(5, 0, [20] * 5) == pytest.approx([20.0] * 5)

    def test_four_buckets_spread(self):
        expanded = expand_custom_intervals(8, 0, [10, 20, 30, 40])
        assert expanded == pytest.approx([5, 5, 10, 10, 15, 15, 20, 20])

    def test_after_interest_only(self):
        assert expand_custom_intervals(6, 2, [10, 20, 30, 40]) == pytest.approx([0, 0, 10, 20, 30, 40])

    def test_overflow_folds_into_final_year(self):
        expanded = expand_custom_intervals(3, 0, [25, 25, 25, 25, 0, 0])
        assert len(expanded) == 3
        assert sum(expanded) == pytest.approx(100.0)

    def test_short_intervals_rejected(self):
        with pytest.raises(ParameterError, match="sum to 40.00%"):
            expand_custom_intervals(4, 0, [10, 10, 10, 10])

    def test_service_rejects_short_intervals(self):
        with pytest.raises(ParameterError):
            compute_annual_service(100.0, 0.10, 4, AmortizationType.CUSTOM, custom_intervals=(10, 10, 10, 10))

    def test_schedule_rejects_short_intervals(self):
        tranche = _tranche(amortization_type=AmortizationType.CUSTOM, custom_intervals=(10, 10, 10, 10))
        with pytest.raises(ParameterError):
            build_tranche_schedule(tranche, 5)

    def test_within_tolerance_accepted(self):
        tranche = _tranche(tenor_years=4, amortization_type=AmortizationType.CUSTOM,
                           custom_intervals=(25, 25, 25, 24.7))
        schedule = build_tranche_schedule(tranche, 4)
        assert schedule.periods[-1].ending_balance == pytest.approx(0.0, abs=1e-9)


class TestDebtProfile:
    def test_blended_rate(self, tranches):
        # (60 × 10% + 40 × 14%) / 100
        assert blended_rate(tranches) == pytest.approx(0.116)

    def test_blended_rate_no_principal(self):
        assert blended_rate([]) == 0.0

    def test_tranches_sorted_by_seniority(self, multi_tranche_params):
        reordered = replace(multi_tranche_params, tranches=tuple(reversed(multi_tranche_params.tranches)))
        assert [t.id for t in facility_tranches(reordered)] == ["a", "b"]

    def test_profile_sums_tranches(self, multi_tranche_params):
        profile = build_debt_profile(multi_tranche_params)
        assert profile.total_principal == pytest.approx(multi_tranche_params.total_debt)
        assert profile.beginning_balance[0] == pytest.approx(100e6)
        # Mezzanine bullet: interest only within the horizon
        assert profile.schedules[1].periods[0].principal == 0.0
        assert profile.interest[0] == pytest.approx(60e6 * 0.10 + 40e6 * 0.14)
        assert profile.blended_rate == pytest.approx(0.116)

    def test_repaid_in_final_year_not_flagged(self, multi_tranche_params):
        # Term Loan A amortizes to zero in 2029, the last projection year
        assert build_debt_profile(multi_tranche_params).refinancing == ()

    def test_refinancing_flags(self, multi_tranche_params):
        profile = build_debt_profile(replace(multi_tranche_params, years=6))
        # Term Loan A matures 2029 (before 2030); mezzanine 2031 (outside)
        assert [f.tranche_id for f in profile.refinancing] == ["a"]
        assert profile.refinancing[0].maturity_year == 2029
        assert profile.refinancing[0].outstanding_at_maturity == pytest.approx(0.0, abs=1e-6)

    def test_single_loan_repaid_at_horizon_end(self, loan_params):
        assert build_debt_profile(loan_params).refinancing == ()

    def test_balance_at_final_year_maturity_flagged(self, loan_params):
        params = replace(loan_params, amortization_type=AmortizationType.INTEREST_ONLY)
        flags = build_debt_profile(params).refinancing
        assert [f.maturity_year for f in flags] == [2029]
        assert flags[0].outstanding_at_maturity == pytest.approx(100e6)

    def test_interest_only_refinancing_outstanding(self):
        params = ModelParameters(start_year=2025, years=5, base_revenue=10.0,
                                 requested_loan_amount=100.0, proposed_tenor=3,
                                 amortization_type=AmortizationType.INTEREST_ONLY)
        profile = build_debt_profile(params)
        assert profile.refinancing[0].maturity_year == 2027
        assert profile.refinancing[0].outstanding_at_maturity == 100.0

    def test_existing_and_new_facility(self):
        params = ModelParameters(start_year=2025, opening_debt=50.0, interest_rate=0.08,
                                 requested_loan_amount=30.0, proposed_pricing=0.12)
        ids = [t.id for t in facility_tranches(params)]
        assert ids == ["existing", "new-facility"]

    def test_no_debt(self):
        profile = build_debt_profile(ModelParameters(start_year=2025))
        assert profile.schedules == ()
        assert profile.service == (0.0,) * 5
        assert profile.blended_rate == 0.0

    def test_schedule_frame(self, multi_tranche_params):
        profile = build_debt_profile(multi_tranche_params)
        df = debt_schedule_frame(profile, 2025)
        assert list(df["Year"]) == [2025, 2026, 2027, 2028, 2029]
        assert "Term Loan A Balance" in df.columns
        assert df["Debt Service"].iloc[0] == pytest.approx(profile.service[0])


class TestPeriodBreakdown:
    def test_quarterly(self):
        rows = period_breakdown(100.0, 20.0, 4, 0.08)
        assert len(rows) == 4
        assert rows[0]["interest"] == pytest.approx(2.0)
        assert sum(r["principal"] for r in rows) == pytest.approx(20.0)
        assert rows[-1]["ending_balance"] == pytest.approx(80.0)

    def test_annual(self):
        rows = period_breakdown(100.0, 20.0, 1, 0.08)
        assert len(rows) == 1
        assert rows[0]["interest"] == pytest.approx(8.0)
        assert rows[0]["total"] == pytest.approx(28.0)
        assert rows[0]["ending_balance"] == pytest.approx(80.0)


class TestCapacity:
    def test_max_sustainable_debt(self):
        debt = max_sustainable_debt(cash_flow=30.0, target_dscr=1.2, rate=0.12, tenor_years=5)
        assert annuity_payment(debt, 0.12, 5) == pytest.approx(25.0)

    def test_implied_loan_rate(self):
        payment = annuity_payment(100.0, 0.09, 7)
        assert implied_loan_rate(100.0, payment, 7) == pytest.approx(0.09, abs=1e-6)
        assert implied_loan_rate(0.0, payment, 7) is None

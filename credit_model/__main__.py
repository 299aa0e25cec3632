"""
Command-line runner.

    python -m credit_model params.json [--history history.csv | --ticker DG]
                           [--edited growth,cogs_pct] [--shock shock.json]
                           [--csv covenants.csv] [--xlsx model.xlsx] [--capacity]

Projects the base case and every preset stress scenario (plus an optional
custom shock), prints the scenario comparison (optionally the base-case
debt capacity assessment) and writes the exports.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import pandas as pd

from credit_model.analysis.capacity import alternative_structures, debt_capacity
from credit_model.analysis.scenarios import BASE, ScenarioShock, run_scenarios
from credit_model.analysis.sensitivity import wacc_vs_terminal_growth
from credit_model.data.fetch_financials import fetch_historical_records
from credit_model.export import build_excel_workbook, covenant_schedule_csv
from credit_model.logging_config import setup_logging
from credit_model.model.assumptions import build_parameters, load_parameters
from credit_model.model.historical import load_history_csv
from credit_model.utils.formatting import fmt_millions, format_projection_df

logger = logging.getLogger("credit_model")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="credit_model",
        description="Financial projection and covenant stress testing",
    )
    parser.add_argument("params", type=Path, help="JSON file of model parameters")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--history", type=Path, help="CSV of historical financials for calibration")
    source.add_argument("--ticker", help="calibrate from yfinance statements for this ticker")
    parser.add_argument("--edited", default="",
                        help="comma-separated fields set by hand (not overwritten by calibration)")
    parser.add_argument("--shock", type=Path, help="JSON file with a custom scenario shock")
    parser.add_argument("--csv", type=Path, help="write the base-case covenant schedule here")
    parser.add_argument("--xlsx", type=Path, help="write the scenario workbook here")
    parser.add_argument("--workers", type=int, default=1, help="threads for scenario runs")
    parser.add_argument("--show-projection", action="store_true",
                        help="print the base-case year-by-year projection")
    parser.add_argument("--sensitivity", action="store_true",
                        help="print the WACC vs terminal growth EV table")
    parser.add_argument("--capacity", action="store_true",
                        help="print the base-case debt capacity and alternative structures")
    parser.add_argument("--json-logs", action="store_true", help="structured JSON log output")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    setup_logging(json_format=args.json_logs, level="DEBUG" if args.verbose else "INFO")

    try:
        raw = load_parameters(args.params)
        history = None
        if args.history:
            history = load_history_csv(args.history)
        elif args.ticker:
            history = fetch_historical_records(args.ticker)
        edited = {f.strip() for f in args.edited.split(",") if f.strip()}
        params = build_parameters(raw, history=history, edited=edited)

        custom = None
        if args.shock:
            with open(args.shock, encoding="utf-8") as fh:
                custom = ScenarioShock.from_mapping(json.load(fh))
    except (OSError, ValueError) as exc:
        # ParameterError and JSONDecodeError are ValueErrors
        logger.error("Could not load inputs: %s", exc)
        return 2

    run = run_scenarios(params, custom=custom, max_workers=args.workers)
    base = run.results[BASE]

    if base.errors:
        for issue in base.errors:
            logger.error("Invalid parameters: %s", issue)
        return 1
    for message in base.warnings:
        logger.warning(message)

    with pd.option_context("display.width", 200, "display.max_columns", 20):
        print(run.comparison_df.to_string())
        if args.show_projection:
            print()
            print(format_projection_df(base.to_frame()).T.to_string())
        if args.sensitivity:
            print()
            print(wacc_vs_terminal_growth(params).round(0).to_string())
        if args.capacity:
            capacity = debt_capacity(params, base)
            print()
            print(f"Debt capacity: {capacity.recommendation} (risk {capacity.risk_level}), "
                  f"max {fmt_millions(capacity.max_debt)}, safe {fmt_millions(capacity.safe_debt)}, "
                  f"requested {fmt_millions(capacity.requested_debt)}")
            print(alternative_structures(params, capacity).round(2).to_string())

    if args.csv:
        args.csv.write_text(covenant_schedule_csv(base, params, include_summary=True), encoding="utf-8")
        logger.info("Covenant schedule written to %s", args.csv)
    if args.xlsx:
        args.xlsx.write_bytes(build_excel_workbook(run))
        logger.info("Workbook written to %s", args.xlsx)

    return 0


if __name__ == "__main__":
    sys.exit(main())

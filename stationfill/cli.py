#!/usr/bin/env python3
"""
StationFill CLI — Command-line interface.

Usage:
    python -m stationfill.cli observations.csv --stations stations.csv --key S1 S2
    stationfill observations.csv --stations stations.csv --key S1 --max-donors 3 -o out/
    stationfill --stations stations.csv --key S1 --fetch 2020-01-01 2020-12-31
"""

import argparse
import json
import logging
import sys

from .distance import METRICS
from .engine import reconcile
from .errors import InvalidConfigurationError, StationFillError
from .options import WEIGHTINGS, ReconcileOptions
from .table import ObservationTable, load_observations_csv, load_stations_csv
from .writer import StationWriter


def build_parser():
    parser = argparse.ArgumentParser(
        description="StationFill — Multi-station daily gap reconciliation",
    )
    parser.add_argument("input", nargs="?", help="Long-format observations CSV")
    parser.add_argument("--stations", required=True, help="Station registry CSV")
    parser.add_argument("--key", nargs="+", required=True, help="Key station ids")
    parser.add_argument("-o", "--output-dir", default="stationfill_output")
    parser.add_argument("--date-col", default=None, help="Date column name")
    parser.add_argument(
        "--fetch", nargs=2, metavar=("START", "END"), default=None,
        help="Download observations from Open-Meteo instead of reading input",
    )
    parser.add_argument("--config", default=None, help="JSON options file")
    parser.add_argument("--max-donors", type=int, default=None)
    parser.add_argument("--weighting", choices=WEIGHTINGS, default=None)
    parser.add_argument("--metric", choices=list(METRICS), default=None)
    parser.add_argument("--exclude-key-donors", action="store_true", default=None)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--prefix", default="station_")
    parser.add_argument("--report", default=None, help="JSON report path")
    parser.add_argument("--quiet", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    return parser


def load_options(args):
    config = {}
    if args.config:
        with open(args.config) as f:
            config = json.load(f)
        if not isinstance(config, dict):
            raise InvalidConfigurationError(f"{args.config} must hold a JSON object")
    overrides = {
        "max_donors": args.max_donors,
        "weighting": args.weighting,
        "distance_metric": args.metric,
        "exclude_key_donors": args.exclude_key_donors,
        "workers": args.workers,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    config["emit_warnings"] = False
    return ReconcileOptions.from_dict(config).validate()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if (args.input is None) == (args.fetch is None):
        parser.error("give either an observations CSV or --fetch START END")

    def log(msg):
        if not args.quiet:
            print(msg)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        )

    log("🌍 StationFill — Multi-station daily gap reconciliation\n")

    try:
        options = load_options(args)
    except (ValueError, OSError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    # Load
    try:
        stations = load_stations_csv(args.stations)
        if args.fetch:
            from .providers import fetch_observations

            start, end = args.fetch
            log(f"🌐 Downloading Open-Meteo observations {start} to {end}...")
            observations = fetch_observations(stations, start, end)
        else:
            log(f"📤 Loading {args.input} and {args.stations}...")
            observations = load_observations_csv(args.input, date_col=args.date_col)
        table = ObservationTable(stations, observations)
    except (StationFillError, ValueError) as e:
        print(f"Input error: {e}", file=sys.stderr)
        sys.exit(2)
    log(f"   {len(table.registry)} stations, variables: {', '.join(table.variables)}")

    # Reconcile
    log(f"\n🔧 Reconciling {len(args.key)} key stations ({options.weighting}, "
        f"{options.distance_metric})...")
    try:
        series, report = reconcile(None, table, args.key, options)
    except InvalidConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    # Write
    log(f"\n📥 Writing station files to {args.output_dir}...")
    writer = StationWriter(args.output_dir, prefix=args.prefix, workers=options.workers)
    units = writer.write(series, table, report)

    # Summary
    log("\n" + "=" * 50)
    log(f"  Gaps: {report.total_gaps}, filled: {report.filled_count}, "
        f"irreconcilable: {report.unfilled_count}")
    for unit in units:
        status = unit.path if unit.ok else f"FAILED ({unit.error})"
        log(f"  {unit.station_id}: {status}")
    for sid, err in report.failed_stations.items():
        log(f"  {sid}: FAILED ({err})")
    for w in report.irreconcilable:
        log(f"  ⚠️ {w}")

    if args.report:
        with open(args.report, "w") as f:
            json.dump(report.to_dict(), f, indent=2, default=str)
        log(f"  Report: {args.report}")

    log("\n🎉 Done!")


if __name__ == "__main__":
    main()

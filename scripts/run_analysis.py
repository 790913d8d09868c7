"""Run the full analytics pipeline for one day and print the report as JSON."""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from training_engine.logging_config import configure_logging
from training_engine.services.engine import build_engine


logger = logging.getLogger("scripts.run_analysis")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compute load, injury risk, readiness, zones and fitness trend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze today
  python scripts/run_analysis.py

  # Analyze a specific day and save the report
  python scripts/run_analysis.py --date 2025-03-14 --output report.json
        """
    )
    parser.add_argument("--date", type=str, help="Day to analyze (YYYY-MM-DD, default: today)")
    parser.add_argument("--output", type=Path, help="Write the report to this file instead of stdout")
    parser.add_argument("--verbose", action="store_true", help="Show detailed output")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging("DEBUG" if args.verbose else None)

    as_of = None
    if args.date:
        try:
            as_of = date.fromisoformat(args.date)
        except ValueError:
            logger.error("Invalid date format: %s. Use YYYY-MM-DD", args.date)
            sys.exit(1)

    engine = build_engine()
    report = engine.run_analysis(as_of)
    output = report.model_dump_json(indent=2)

    if args.output:
        args.output.write_text(output, encoding="utf-8")
        logger.info("Report written to %s", args.output)
    else:
        print(output)

    if report.errors:
        logger.warning("%d component(s) failed: %s", len(report.errors), ", ".join(sorted(report.errors)))
        sys.exit(2)


if __name__ == "__main__":
    main()

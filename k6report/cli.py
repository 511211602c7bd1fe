"""
k6 Report - command line entry point
------------------------------------

Reads the result feed of a k6 run, aggregates it per API, scenario, page and
virtual user, evaluates thresholds, and writes the report model as JSON and/or
an Excel workbook.

Usage:
    # JSON report from k6 --out json=results.json
    k6-report --input results.json --output report.json

    # JSON and Excel, with thresholds from the scenario configuration
    k6-report --input results.json --output report.json \
        --excel-export report.xlsx \
        --thresholds-json '{"http_req_duration": ["p(95)<800"], "http_req_failed": ["rate<0.01"]}'

    # Console output of the load script (console.log of each call)
    k6 run script.js 2> console.log
    k6-report --input console.log --output report.json

    # Everything from a config file
    k6-report --config report.yaml

Exit codes: 0 on success, 1 when a threshold fails, 2 on bad arguments,
configuration, or an unreadable feed.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from . import __version__
from .assembler import build_report_from_feed
from .config import ReportConfig, config_from_dict, load_config_file, merge_config_with_args, resolve_output_path
from .errors import ConfigError, FeedOpenError
from .export import export_to_excel, write_report_json
from .models import SUCCESS_POLICIES, ReportModel, get_success_policy
from .thresholds import evaluate_thresholds

logger = logging.getLogger("k6report")

EXIT_OK = 0
EXIT_THRESHOLDS_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="k6-report",
        description="Aggregate k6 results (JSON output or console logs) into a report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # JSON report from k6 --out json=results.json
  k6-report --input results.json --output report.json

  # Excel workbook, treating any 2xx status as success
  k6-report --input results.json --excel-export report.xlsx --success-policy 2xx

  # Everything from a config file, overriding the output path
  k6-report --config report.yaml --output custom_${TIMESTAMP}.json
        """,
    )
    parser.add_argument("--config",
                        help="Path to configuration file (JSON or YAML)")
    parser.add_argument("--input", help="k6 results feed (NDJSON, JSON array, console log, .gz, or - for stdin)")
    parser.add_argument("--output", help="Output JSON report path")
    parser.add_argument("--excel-export", dest="excel_export", help="Export to Excel file (provide path)")
    parser.add_argument("--test-name", dest="test_name", help="Name of the test to display in the report")
    parser.add_argument("--environment", help="Environment (e.g. QA, UAT, Prod-like)")
    parser.add_argument("--success-policy", dest="success_policy", choices=sorted(SUCCESS_POLICIES),
                        help="Which statuses count as success (default: status-200)")
    parser.add_argument("--percentiles", type=float, nargs="+",
                        help="Percentiles to compute per group (default: 50 90 95 99)")
    parser.add_argument("--bucket-ms", dest="bucket_ms", type=int,
                        help="Bucket width in ms for per-VU trends (default: 1000)")
    parser.add_argument("--thresholds-json", dest="thresholds_json",
                        help='Thresholds as JSON, e.g. \'{"http_req_duration": ["p(95)<800"]}\'')
    parser.add_argument("--include-samples", dest="include_samples", action="store_true",
                        help="Include raw durations per group in the JSON report")
    parser.add_argument("--log-level", dest="log_level", default="WARNING",
                        help="Logging level for diagnostics (default: WARNING)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _print_summary(report: ReportModel, config: ReportConfig) -> None:
    overall = report.overall
    print(f"\n{'=' * 60}")
    print(f"k6 Report {__version__} - {config.test_name} ({config.environment})")
    print(f"{'=' * 60}")
    if report.feed is not None:
        feed = report.feed
        print(f"Entries read:      {feed.lines}")
        print(f"Records:           {feed.records}")
        print(f"Malformed:         {feed.malformed}")
        print(f"Setup skipped:     {feed.setup}")
    print(f"Total requests:    {report.total_requests}")
    if overall is not None:
        print(f"Avg response:      {overall.avg_duration_ms:.2f} ms")
        print(f"P95 response:      {overall.p95_duration_ms:.2f} ms")
        print(f"Error rate:        {overall.error_rate * 100:.2f}%")
    print(f"APIs / scenarios / pages: "
          f"{len(report.by_api)} / {len(report.by_scenario)} / {len(report.by_page)}")
    print(f"{'=' * 60}\n")


def _print_thresholds(result: dict) -> None:
    for row in result["rows"]:
        for check in row["checks"]:
            mark = "✓" if check["status"] else "✗"
            actual = "-" if check["actual"] is None else f"{check['actual']:.4g}"
            print(f"  {mark} {row['label']}: {check['metric']} (actual {actual})")
    status = "PASS" if result["overall_status"] else "FAIL"
    print(f"Thresholds: {result['passed_checks']}/{result['total_checks']} passed - {status}")


def load_config(args: argparse.Namespace) -> ReportConfig:
    config = ReportConfig()
    if args.config:
        config = config_from_dict(load_config_file(args.config))
    if args.thresholds_json:
        try:
            args.thresholds = json.loads(args.thresholds_json)
        except ValueError as e:
            raise ConfigError(f"Failed to parse thresholds JSON: {e}") from e
    config = merge_config_with_args(config, args)
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    if not config.input:
        parser.error("--input is required when not set in the config file")

    try:
        report = build_report_from_feed(
            config.input,
            policy=get_success_policy(config.success_policy),
            percentiles=config.percentiles,
            bucket_ms=config.bucket_ms,
        )
    except FeedOpenError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    _print_summary(report, config)

    threshold_result = None
    if config.thresholds:
        try:
            threshold_result = evaluate_thresholds(report, config.thresholds)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_USAGE
        _print_thresholds(threshold_result)

    output = resolve_output_path(config.output, config.timestamp_format)
    if output:
        write_report_json(report, output, config.test_name, config.environment,
                          threshold_result, include_samples=config.include_samples)
        print(f"✓ JSON report generated: {output}")

    excel = resolve_output_path(config.excel_export, config.timestamp_format)
    if excel:
        export_to_excel(report, excel, config.test_name, config.environment, threshold_result)
        print(f"✓ Excel report generated: {excel}")

    if threshold_result is not None and not threshold_result["overall_status"]:
        return EXIT_THRESHOLDS_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

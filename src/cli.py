"""Command-line interface for auditmap-core."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger

from contract.errors import AuditMapError
from contract.formats import DEFAULT_BASELINE, DIAGNOSTIC_RULE_IDS, REPORT_FORMATS
from engine.run import RunOptions, build_rules, run_analysis
from findings.models import Severity
from findings.render import render_report, write_report
from rules.config import load_config, resolve_within_root
from suppress.load import write_baseline
from verify.verify import verify_report

_SEVERITIES = [severity.value for severity in Severity]


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _add_common_paths(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "paths",
        nargs="*",
        help="Input files or directories (default: the analysis root)",
    )
    parser.add_argument(
        "--root",
        default=".",
        help="Analysis root holding auditmap.toml and contract sources (default: .)",
    )
    parser.add_argument(
        "--catalog",
        action="append",
        default=[],
        help="Extra rule catalog (repeatable)",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="auditmap")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser("analyze", help="Analyze contracts")
    _add_common_paths(analyze_parser)
    analyze_parser.add_argument(
        "--format",
        choices=sorted(REPORT_FORMATS),
        default=None,
        help="Report format (default: config format)",
    )
    analyze_parser.add_argument(
        "--severity-floor",
        choices=_SEVERITIES,
        default=None,
        help="Lowest severity that fails the run (default: config severity_floor)",
    )
    analyze_parser.add_argument("--baseline", default=None, help="Baseline file")
    analyze_parser.add_argument("--suppressions", default=None, help="Suppression file")
    analyze_parser.add_argument("--out", default=None, help="Write the report here")
    analyze_parser.add_argument("--jobs", type=int, default=None, help="Worker threads")
    analyze_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-contract analysis budget in seconds",
    )

    baseline_parser = subparsers.add_parser(
        "baseline", help="Accept every current finding into a baseline"
    )
    _add_common_paths(baseline_parser)
    baseline_parser.add_argument(
        "--out",
        default=None,
        help=f"Baseline file (default: config baseline or {DEFAULT_BASELINE})",
    )

    rules_parser = subparsers.add_parser("rules", help="List registered rules")
    rules_parser.add_argument("--root", default=".", help="Analysis root (default: .)")
    rules_parser.add_argument("--catalog", action="append", default=[])
    rules_parser.add_argument("--verbose", action="store_true")

    verify_parser = subparsers.add_parser(
        "verify", help="Verify that a stored report regenerates byte-for-byte"
    )
    _add_common_paths(verify_parser)
    verify_parser.add_argument("--report", required=True, help="Stored report")
    verify_parser.add_argument(
        "--format",
        choices=sorted(REPORT_FORMATS),
        default="json",
        help="Format the report was written in (default: json)",
    )

    return parser


def _options(args: argparse.Namespace, **overrides: object) -> RunOptions:
    return RunOptions(
        paths=tuple(Path(p) for p in args.paths),
        catalogs=tuple(Path(p).expanduser().resolve() for p in args.catalog),
        **overrides,
    )


def _optional_path(value: str | None) -> Path | None:
    return Path(value).expanduser().resolve() if value is not None else None


def _handle_analyze(root: Path, args: argparse.Namespace) -> int:
    config = load_config(root)
    options = _options(
        args,
        baseline=_optional_path(args.baseline),
        suppressions=_optional_path(args.suppressions),
        jobs=args.jobs,
        contract_timeout=args.timeout,
    )
    result = run_analysis(root, options, config=config)

    fmt = args.format or config.format
    report = render_report(result, fmt, verbose=args.verbose)
    if args.out is not None:
        write_report(Path(args.out).expanduser().resolve(), report)
    else:
        sys.stdout.write(report.decode("utf-8"))

    floor = Severity(args.severity_floor) if args.severity_floor else config.severity_floor
    return 1 if result.at_or_above(floor) else 0


def _handle_baseline(root: Path, args: argparse.Namespace) -> int:
    config = load_config(root)
    if args.out is not None:
        out = Path(args.out).expanduser().resolve()
    else:
        out = resolve_within_root(root, config.baseline or DEFAULT_BASELINE, label="baseline")

    result = run_analysis(root, _options(args, use_baseline=False), config=config)
    accepted = [f for f in result.findings if f.rule_id not in DIAGNOSTIC_RULE_IDS]
    count = write_baseline(out, accepted)
    sys.stdout.write(f"Baselined {count} finding(s) into {out}\n")
    return 0


def _handle_rules(root: Path, args: argparse.Namespace) -> int:
    config = load_config(root)
    extra = [Path(p).expanduser().resolve() for p in args.catalog]
    registry = build_rules(root, config, extra)
    for rule in registry:
        group = f" (group {rule.group})" if rule.group else ""
        sys.stdout.write(
            f"{rule.id}\t{rule.severity.value}\t{rule.scope}\t{rule.title}{group}\n"
        )
    return 0


def _handle_verify(root: Path, args: argparse.Namespace) -> int:
    report = Path(args.report).expanduser().resolve()
    try:
        result = verify_report(
            root=root,
            report=report,
            options=_options(args),
            fmt=args.format,
        )
    except (FileNotFoundError, IsADirectoryError) as exc:
        sys.stderr.write(f"report: {report}\n")
        sys.stderr.write(f"error: {exc}\n")
        return 2
    if not result.ok:
        sys.stderr.write(f"mismatch: {result.describe()}\n")
        return 1
    return 0


_HANDLERS = {
    "analyze": _handle_analyze,
    "baseline": _handle_baseline,
    "rules": _handle_rules,
    "verify": _handle_verify,
}


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    root = Path(args.root).expanduser().resolve()

    try:
        return _HANDLERS[args.command](root, args)
    except AuditMapError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())

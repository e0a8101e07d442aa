"""
    Main entry point for the endpoint security posture checker.
"""
from __future__ import annotations
import argparse
import logging
from functools import partial

from endpoint_posture.collectors.windows import WindowsProvider
from endpoint_posture.core.errors import CatastrophicSetupError, ConfigError
from endpoint_posture.core.logging import setup_logging
from endpoint_posture.core.models import ComplianceReport
from endpoint_posture.core.report import ensure_output_dir, write_report
from endpoint_posture.core.runner import CheckRunner, __version__, build_definitions
from endpoint_posture.core.settings import PROFILES, default_log_level, load_settings
from endpoint_posture.followup.collector import collect_followup
from endpoint_posture.followup.form import TkFormPresenter
from endpoint_posture.reports.formatter import KIND_LABELS
from endpoint_posture.shared.system import get_host_context

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="endpoint-posture",
        description="Read-only Windows endpoint security posture checks with an HTML or JSON report.",
    )
    parser.add_argument("--profile", choices=sorted(PROFILES), help="Configuration profile (default: it)")
    parser.add_argument("--config", help="JSON file with check toggles and organization lists")
    parser.add_argument("--format", dest="report_format", choices=["html", "json"], help="Report format")
    parser.add_argument("--output-dir", help="Directory to write the report to")
    parser.add_argument("--no-followup", action="store_true", help="Never show the follow-up form")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_summary(report: ComplianceReport) -> None:
    print("\nSecurity posture results:")
    width = max((len(n) for n in report), default=0)
    for name, verdict in report.entries():
        print(f"  {name.ljust(width)}  {KIND_LABELS[verdict.kind]:<13}  {verdict.detail}")
    counts = report.counts()
    print("\n  " + ", ".join(f"{KIND_LABELS[k]}: {v}" for k, v in counts.items()))


def main(argv: list[str] | None = None, provider=None, presenter=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or default_log_level(), args.log_json)

    overrides = {"report_format": args.report_format, "output_dir": args.output_dir}
    if args.no_followup:
        overrides["followup_enabled"] = False
    try:
        settings = load_settings(args.profile, args.config, overrides)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2

    try:
        out_dir = ensure_output_dir(settings.output_dir)

        provider = provider or WindowsProvider(settings.provider_timeout_s)
        runner = CheckRunner(
            build_definitions(settings, provider),
            host_info=partial(get_host_context, provider),
            meta={"profile": settings.profile, "review_name": settings.review_name},
        )
        report = runner.run()
        print_summary(report)

        followup = None
        if settings.followup_enabled:
            followup = collect_followup(
                report,
                presenter or TkFormPresenter(),
                title=settings.review_name,
                intro=settings.intro_text,
                always_ask=settings.always_ask,
            )
        else:
            logger.info("Follow-up form disabled for profile %s", settings.profile)

        path = write_report(report, out_dir, settings.report_format, followup, settings.review_name)
    except CatastrophicSetupError as e:
        logger.error("Aborting, no report written: %s", e)
        return 1

    print(f"\nReport saved to: {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

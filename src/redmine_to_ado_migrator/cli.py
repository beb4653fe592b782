"""
Command-line interface for the Redmine to Azure DevOps migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from .ado_utils import AdoClient
from .config import DEFAULT_CONFIG_PATH, DEFAULT_MAPPING_PATH, load_config
from .exceptions import MigrationError
from .field_mapper import FieldMapper
from .identity_map import IdentityMap
from .orchestrator import Migrator
from .pacing import Pacer
from .redmine_utils import RedmineClient
from .utils import setup_logging
from .validation import fetch_reference_data, format_report, validate_mapping

if TYPE_CHECKING:
    from .config import AppConfig
    from .orchestrator import MigrationResult

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="redmine-to-ado",
        description="Migrate Redmine issues to Azure DevOps work items",
    )

    _ = parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase console verbosity (-v for info, -vv for debug)",
    )
    _ = parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help=f"Connection settings file (default: {DEFAULT_CONFIG_PATH})"
    )
    _ = parser.add_argument(
        "--mapping", default=DEFAULT_MAPPING_PATH, help=f"Field mapping file (default: {DEFAULT_MAPPING_PATH})"
    )
    _ = parser.add_argument("--redmine-pass-path", help="Path of the Redmine API key in the pass utility")
    _ = parser.add_argument("--ado-pass-path", help="Path of the Azure DevOps PAT in the pass utility")

    subparsers = parser.add_subparsers(dest="command", required=True)

    _ = subparsers.add_parser("test", help="Check connectivity to Redmine and Azure DevOps")

    single = subparsers.add_parser("single", help="Migrate one Redmine issue with its comments and attachments")
    _ = single.add_argument("issue_id", type=int, help="Redmine issue id")

    migrate_all = subparsers.add_parser("all", help="Migrate all issues of the configured project")
    _ = migrate_all.add_argument("--scope", help="Redmine project identifier (overrides redmine.project_identifier)")
    _ = migrate_all.add_argument("--resume-from", help="Identity map written by an earlier run")
    _ = migrate_all.add_argument("--mapping-output", help="Where to write the identity map")

    _ = subparsers.add_parser("validate", help="Check the field mapping against both systems")

    return parser.parse_args(argv)


def _print_report(result: MigrationResult) -> None:
    """Print the per-category outcome of a migration run."""
    print("\n" + "=" * 60)
    print(f"Migration {'SUCCEEDED' if result.success else 'FAILED'} (state: {result.state.value})")
    print("=" * 60)
    print(f"{'':<16}{'attempted':>10}{'created':>10}{'failed':>10}{'skipped':>10}")
    for label, counter in result.stats.counters().items():
        print(f"{label:<16}{counter.attempted:>10}{counter.created:>10}{counter.failed:>10}{counter.skipped:>10}")

    if result.fatal_error:
        print(f"\nFatal error: {result.fatal_error}")
    if result.stats.errors:
        print(f"\n{len(result.stats.errors)} error(s):")
        for error in result.stats.errors:
            print(f"  - {error}")
    if result.mapping_path is not None:
        print(f"\nIdentity map written to {result.mapping_path}")


def _build_clients(config: AppConfig, pacer: Pacer) -> tuple[RedmineClient, AdoClient]:
    redmine = RedmineClient(
        config.redmine.base_url,
        config.redmine.api_key,
        verify_ssl=config.redmine.verify_ssl,
        pacer=pacer,
    )
    ado = AdoClient(config.azure_devops.organization_url, config.azure_devops.project, config.azure_devops.pat)
    return redmine, ado


def _build_migrator(config: AppConfig, redmine: RedmineClient, ado: AdoClient, pacer: Pacer) -> Migrator:
    mapper = FieldMapper(config.mapping, source_base_url=config.redmine.base_url)
    return Migrator(redmine, ado, mapper, config.mapping.options, pacer=pacer)


def _run_test(redmine: RedmineClient, ado: AdoClient) -> bool:
    redmine.validate_access()
    print("✓ Redmine connection OK")
    ado.validate_access()
    print("✓ Azure DevOps connection OK")
    return True


def _run_single(config: AppConfig, migrator: Migrator, issue_id: int) -> bool:
    result = migrator.migrate_single(issue_id)
    _print_report(result)
    work_item_id = result.identity_map.get(issue_id)
    if work_item_id is not None:
        print(f"\nRedmine issue #{issue_id} -> {config.azure_devops.work_item_url(work_item_id)}")
    return result.success


def _run_all(config: AppConfig, migrator: Migrator, args: argparse.Namespace) -> bool:
    resume_from = IdentityMap.load(args.resume_from) if args.resume_from else None
    result = migrator.migrate_all(
        scope=args.scope or config.redmine.project_identifier,
        resume_from=resume_from,
        mapping_path=args.mapping_output,
    )
    _print_report(result)
    return result.success


def _run_validate(config: AppConfig, redmine: RedmineClient, ado: AdoClient) -> bool:
    report = validate_mapping(config.mapping, fetch_reference_data(redmine, ado))
    print(format_report(report))
    return report.success


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(verbosity=args.verbose)

    try:
        config = load_config(
            args.config,
            args.mapping,
            redmine_pass_path=args.redmine_pass_path,
            ado_pass_path=args.ado_pass_path,
        )
        pacer = Pacer.from_milliseconds(config.mapping.options.delay_ms)
        redmine, ado = _build_clients(config, pacer)

        if args.command == "test":
            success = _run_test(redmine, ado)
        elif args.command == "validate":
            success = _run_validate(config, redmine, ado)
        elif args.command == "single":
            success = _run_single(config, _build_migrator(config, redmine, ado, pacer), args.issue_id)
        else:
            success = _run_all(config, _build_migrator(config, redmine, ado, pacer), args)

    except MigrationError:
        logger.exception(f"Command '{args.command}' failed")
        sys.exit(1)

    sys.exit(0 if success else 1)

#!/usr/bin/env python3
"""
main.py
-------
Command-line entry point: copy user objects stored in master, model and
msdb from one SQL Server instance to one or more others.

Usage::

    python main.py --source sql01 --destination sql02 --destination sql03\\INST2 \\
        --user sa --dry-run

Exit codes:
    0  every attempted pass finished without a failed statement
    1  at least one statement failed or a destination was not processed
    2  the run was aborted (source unreachable, not sysadmin, bad arguments)
"""
from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from typing import Sequence

from config import CONFIG
from core.database import DatabaseError, PrivilegeError
from core.orchestrator import SourceLostError, migrate_system_objects
from logger import get_logger, set_console_level
from models.objects import ObjectCategory
from models.outcome import MigrationReport
from models.policy import TransferPolicy
from models.server import Credential, ServerAddress

log = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_ABORTED = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Copy user objects from the system databases (master, model, msdb) "
                    "of one SQL Server instance to others.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what would be copied
  python main.py --source sql01 --destination sql02 --user sa --dry-run

  # Copy to two instances, no prompts, skip users and permissions
  python main.py -s sql01 -d sql02 -d sql03,1533 -u sa --yes \\
      --exclude-category user --no-permissions
        """,
    )
    parser.add_argument("-s", "--source", required=True,
                        help="Source instance (host, host\\instance, host:port or host,port)")
    parser.add_argument("-d", "--destination", action="append", required=True,
                        help="Destination instance; repeat for several destinations")
    parser.add_argument("-u", "--user", default=os.getenv("SQL_USER"),
                        help="SQL login (default: $SQL_USER)")
    parser.add_argument("--password-env", default="SQL_PASSWORD",
                        help="Environment variable holding the password "
                             "(prompted for when unset)")
    parser.add_argument("--destination-user",
                        help="Separate SQL login for destinations (password via "
                             "$SQL_DESTINATION_PASSWORD or prompt)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show what would be applied without changing destinations")
    parser.add_argument("-y", "--yes", action="store_true",
                        help="Apply without asking for confirmation")
    parser.add_argument("--exclude-category", action="append", default=[],
                        metavar="CATEGORY",
                        choices=[c.value for c in ObjectCategory],
                        help="Object category to leave out; repeatable")
    parser.add_argument("--include-system-objects", action="store_true",
                        help="Also copy objects shipped with SQL Server")
    parser.add_argument("--include-dependencies", action="store_true",
                        help="Also copy objects referenced by the selected ones")
    parser.add_argument("--no-permissions", action="store_true",
                        help="Do not script GRANT/DENY statements")
    parser.add_argument("--no-role-memberships", action="store_true",
                        help="Do not script role memberships")
    parser.add_argument("--no-indexes", action="store_true",
                        help="Do not script non-key indexes")
    parser.add_argument("--stop-on-generation-error", action="store_true",
                        help="Abandon a database pass when any object cannot be scripted")
    parser.add_argument("--no-preserve-owner", action="store_true",
                        help="Rebind tables, types, sequences and synonyms to dbo")
    parser.add_argument("--drop-existing", action="store_true",
                        help="Drop and re-create objects that already exist on a destination")
    parser.add_argument("--workers", type=int, default=CONFIG.transfer.workers,
                        help="Destinations processed in parallel (default: %(default)s)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show statement text and reason for every non-applied statement")
    return parser.parse_args(argv)


def build_policy(args: argparse.Namespace) -> TransferPolicy:
    return TransferPolicy.from_overrides(
        exclude=args.exclude_category,
        include_system_objects=args.include_system_objects,
        include_dependencies=args.include_dependencies,
        include_permissions=not args.no_permissions,
        include_role_memberships=not args.no_role_memberships,
        include_indexes=not args.no_indexes,
        continue_on_generation_error=not args.stop_on_generation_error,
        preserve_owner_schema=not args.no_preserve_owner,
        drop_existing=args.drop_existing,
    )


def _read_password(env_var: str, prompt: str) -> str:
    password = os.getenv(env_var)
    if password is None:
        password = getpass.getpass(prompt)
    return password


def confirm_prompt(target: str, statements: Sequence[str]) -> bool:
    """Interactive confirmation gate for one (destination, database) pass."""
    if not statements:
        return True
    print(f"\n{len(statements)} statement(s) will be applied to {target}.")
    answer = input("Type 'yes' to proceed (anything else previews only): ")
    return answer.strip().lower() == "yes"


def render_report(report: MigrationReport, verbose: bool = False) -> str:
    """Per-(destination, database) summary table."""
    lines = [
        f"Source: {report.source}",
        f"{'Destination':<30} {'Database':<8} {'Applied':>8} {'Skipped':>8} {'Failed':>8} {'Planned':>8}  Status",
        "-" * 90,
    ]
    for outcome in report:
        if not outcome.attempted:
            status = f"NOT ATTEMPTED ({outcome.error})"
        elif outcome.dry_run:
            status = "PREVIEW"
        elif not outcome.completed:
            status = f"INCOMPLETE ({outcome.error})"
        else:
            status = "FAILED" if outcome.has_failures else "OK"
        lines.append(
            f"{outcome.destination:<30} {outcome.database:<8} {outcome.applied:>8} "
            f"{outcome.skipped:>8} {outcome.failed:>8} {outcome.planned:>8}  {status}"
        )
        if verbose:
            for diag in outcome.diagnostics:
                lines.append(f"    [NOT SCRIPTED] {diag}")
            for result in outcome.not_applied():
                label = result.status.value.upper()
                reason = f": {result.reason}" if result.reason else ""
                lines.append(f"    [{label}] {result.statement.object_name}{reason}")
                lines.extend(f"        {text_line}" for text_line in result.statement.text.splitlines())
    return "\n".join(lines)


def exit_code_for(report: MigrationReport) -> int:
    if report.has_failures or report.has_unattempted:
        return EXIT_FAILURES
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        set_console_level(logging.DEBUG)

    try:
        source = ServerAddress.parse(args.source)
        destinations = [ServerAddress.parse(d) for d in args.destination]
        policy = build_policy(args)
    except ValueError as exc:
        log.error("%s", exc)
        return EXIT_ABORTED

    if not args.user:
        log.error("No SQL login given (use --user or set SQL_USER).")
        return EXIT_ABORTED

    credential = Credential(args.user, _read_password(args.password_env, f"Password for {args.user}: "))
    destination_credential = None
    if args.destination_user:
        destination_credential = Credential(
            args.destination_user,
            _read_password("SQL_DESTINATION_PASSWORD", f"Password for {args.destination_user}: "),
        )

    confirm = None if (args.yes or args.dry_run) else confirm_prompt

    try:
        report = migrate_system_objects(
            source=source,
            destinations=destinations,
            credential=credential,
            destination_credential=destination_credential,
            policy=policy,
            dry_run=args.dry_run,
            confirm=confirm,
            max_workers=args.workers,
        )
    except (DatabaseError, PrivilegeError, SourceLostError) as exc:
        log.error("Run aborted: %s", exc)
        return EXIT_ABORTED

    print(render_report(report, verbose=args.verbose))
    return exit_code_for(report)


if __name__ == "__main__":
    sys.exit(main())

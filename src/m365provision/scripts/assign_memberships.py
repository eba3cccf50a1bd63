"""CLI script to add a user to groups, distribution lists, and shared mailboxes.

Targets are given as display labels, the same strings ``m365-targets``
prints (e.g. ``"Sales [Distribution List] - sales@contoso.com"``). Exchange
assignments for newly created accounts are retried while directory
replication catches up; anything still failing is reported as a manual task.

Prerequisites for Exchange targets:
1. PowerShell 7+ with ExchangeOnlineManagement module
2. Azure AD App with Exchange.ManageAsApp permission
3. Certificate-based authentication configured
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from m365provision.entra.users import EntraUserManager
from m365provision.provisioning.classifier import classify_labels
from m365provision.provisioning.models import AssignmentRequest, BatchResult
from m365provision.provisioning.services import build_coordinator

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# Silence verbose HTTP request logging
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.WARNING)

EXIT_OK = 0
EXIT_INCOMPLETE = 1
EXIT_USAGE = 2


def read_labels(labels: list[str] | None, labels_file: Path | None) -> list[str]:
    """Combine labels from the command line and an optional file (one per line)."""
    combined = list(labels or [])
    if labels_file:
        with labels_file.open(encoding="utf-8") as f:
            combined.extend(line.rstrip("\n") for line in f)
    return combined


def print_plan(requests: list[AssignmentRequest]) -> None:
    """Print what would be assigned."""
    for request in requests:
        print(f"  {request.target_kind.value:<28} {request.target_name}")


def print_result(result: BatchResult) -> None:
    """Print the summary and every outcome needing attention."""
    print()
    for line in result.summary_lines():
        print(line)


async def run_assignments(upn: str, labels: list[str], dry_run: bool = False) -> int:
    """Apply the labelled assignments to a user.

    Args:
        upn: User principal name of the account
        labels: Display labels of the targets
        dry_run: If True, only show the classified requests

    Returns:
        Exit code
    """
    logger.info("=" * 60)
    logger.info("Membership Assignment")
    logger.info("=" * 60)

    requests = classify_labels(labels)
    if not requests:
        logger.error("No assignable targets in the given labels")
        return EXIT_USAGE

    logger.info(f"{len(requests)} assignment(s) for {upn}")
    if dry_run:
        logger.info("DRY RUN - no changes will be made")
        print_plan(requests)
        return EXIT_OK

    user = await EntraUserManager().get_user_by_upn(upn)
    if user is None:
        logger.error(f"User not found: {upn}")
        return EXIT_USAGE
    if not user.is_active:
        logger.warning(f"Account {upn} is disabled; assignments will still be applied")

    include_exchange = any(r.target_kind.is_exchange for r in requests)
    coordinator, activity = build_coordinator(include_exchange=include_exchange)

    loop = asyncio.get_running_loop()
    # Signal handlers are unavailable on Windows event loops
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, coordinator.cancel)

    try:
        result = await coordinator.run(user.to_identity(), requests)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)

    print_result(result)
    if activity.path:
        logger.info(f"Activity log written to {activity.path}")

    return EXIT_OK if result.all_succeeded else EXIT_INCOMPLETE


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Add a user to security groups, Microsoft 365 groups, distribution "
        "lists, and shared mailboxes, retrying while directory replication completes.",
    )
    parser.add_argument(
        "--upn",
        required=True,
        help="User principal name of the account to assign",
    )
    parser.add_argument(
        "--label",
        action="append",
        dest="labels",
        metavar="LABEL",
        help="Target label, e.g. 'Sales [Distribution List]' (can be specified multiple times)",
    )
    parser.add_argument(
        "--labels-file",
        type=Path,
        help="File with one target label per line",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be assigned without making changes",
    )

    args = parser.parse_args()

    if not args.labels and not args.labels_file:
        parser.error("Specify at least one --label or --labels-file")

    try:
        labels = read_labels(args.labels, args.labels_file)
    except OSError as e:
        parser.error(f"cannot read labels file: {e}")
    exit_code = asyncio.run(run_assignments(args.upn, labels, dry_run=args.dry_run))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

"""CLI script to list assignable targets as display labels.

Output lines can be passed straight back to ``m365-assign --label`` or
saved to a file for ``--labels-file``.
"""

import argparse
import asyncio
import logging
import sys

from m365provision.core.errors import ServiceError
from m365provision.entra.groups import EntraGroup, EntraGroupManager, GroupType
from m365provision.exchange.client import ExchangeOnlineClient
from m365provision.provisioning.classifier import format_label, section_separator
from m365provision.provisioning.models import TargetKind
from m365provision.provisioning.services import ExchangeMailboxService

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.WARNING)

# Distribution lists are listed from Exchange, not Graph
GROUP_SECTIONS: list[tuple[str, GroupType, TargetKind]] = [
    ("Security Groups", GroupType.SECURITY, TargetKind.SECURITY_GROUP),
    ("Microsoft 365 Groups", GroupType.MICROSOFT_365, TargetKind.M365_GROUP),
    (
        "Mail-Enabled Security Groups",
        GroupType.MAIL_ENABLED_SECURITY,
        TargetKind.MAIL_ENABLED_SECURITY_GROUP,
    ),
]


def group_labels(groups: list[EntraGroup]) -> list[str]:
    """Render Entra groups as labelled sections."""
    lines: list[str] = []
    for title, group_type, kind in GROUP_SECTIONS:
        members = sorted(
            (g for g in groups if g.group_type == group_type),
            key=lambda g: g.display_name.lower(),
        )
        if not members:
            continue
        lines.append(section_separator(title))
        lines.extend(format_label(g.display_name, kind, g.mail) for g in members)
    return lines


async def list_targets(include_exchange: bool = True) -> int:
    """Print every assignable target.

    Args:
        include_exchange: Also list distribution lists and shared mailboxes

    Returns:
        Exit code
    """
    try:
        groups = await EntraGroupManager().get_groups()
        lines = group_labels(groups)

        if include_exchange:
            client = ExchangeOnlineClient()
            mailbox = ExchangeMailboxService(client)
            try:
                distribution_lists = await mailbox.list_distribution_lists()
                shared_mailboxes = await mailbox.list_shared_mailboxes()
            finally:
                await client.close()

            sections = [
                ("Distribution Lists", TargetKind.DISTRIBUTION_LIST, distribution_lists),
                ("Shared Mailboxes", TargetKind.SHARED_MAILBOX, shared_mailboxes),
            ]
            for title, kind, targets in sections:
                if not targets:
                    continue
                lines.append(section_separator(title))
                lines.extend(
                    format_label(t.display_name, kind, t.address)
                    for t in sorted(targets, key=lambda t: t.display_name.lower())
                )
    except ServiceError as e:
        logger.error(f"Error: {e.message}")
        return 1

    for line in lines:
        print(line)
    return 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="List groups, distribution lists, and shared mailboxes as target labels.",
    )
    parser.add_argument(
        "--no-exchange",
        action="store_true",
        help="Skip Exchange Online (distribution lists and shared mailboxes)",
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(list_targets(include_exchange=not args.no_exchange)))


if __name__ == "__main__":
    main()

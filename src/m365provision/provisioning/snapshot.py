"""Tenant directory listings captured once per batch."""

import logging
from dataclasses import dataclass

from m365provision.provisioning.matching import resolve_by_name
from m365provision.provisioning.models import TargetKind, TargetRef
from m365provision.provisioning.ports import DirectoryService, MailboxService

logger = logging.getLogger(__name__)


def _display_name(ref: TargetRef) -> str:
    return ref.display_name


@dataclass(frozen=True)
class TenantSnapshot:
    """Groups, distribution lists, and shared mailboxes visible at batch start.

    The directory and Exchange listings are loaded independently. A listing
    that could not be loaded keeps its error message so that only the
    requests depending on it fail.
    """

    groups: tuple[TargetRef, ...] = ()
    distribution_lists: tuple[TargetRef, ...] = ()
    shared_mailboxes: tuple[TargetRef, ...] = ()
    group_error: str | None = None
    mailbox_error: str | None = None

    @classmethod
    async def load(
        cls,
        directory: DirectoryService,
        mailbox: MailboxService | None,
        include_groups: bool = True,
        include_mailboxes: bool = True,
    ) -> "TenantSnapshot":
        """Fetch the listings a batch needs.

        Args:
            directory: Directory service to list groups from
            mailbox: Mailbox service to list distribution lists and shared mailboxes from
            include_groups: Fetch directory groups
            include_mailboxes: Fetch Exchange listings (slow; skip when unused)

        Returns:
            TenantSnapshot with the requested listings and any lookup errors
        """
        groups: list[TargetRef] = []
        distribution_lists: list[TargetRef] = []
        shared_mailboxes: list[TargetRef] = []
        group_error = None
        mailbox_error = None

        if include_groups:
            try:
                groups = await directory.list_groups()
                logger.info(f"Loaded {len(groups)} directory groups")
            except Exception as e:
                logger.error(f"Failed to list directory groups: {e}")
                group_error = str(e)

        if include_mailboxes and mailbox is not None:
            try:
                distribution_lists = await mailbox.list_distribution_lists()
                shared_mailboxes = await mailbox.list_shared_mailboxes()
                logger.info(
                    f"Loaded {len(distribution_lists)} distribution lists and "
                    f"{len(shared_mailboxes)} shared mailboxes"
                )
            except Exception as e:
                logger.error(f"Failed to list Exchange recipients: {e}")
                distribution_lists, shared_mailboxes = [], []
                mailbox_error = str(e)

        return cls(
            groups=tuple(groups),
            distribution_lists=tuple(distribution_lists),
            shared_mailboxes=tuple(shared_mailboxes),
            group_error=group_error,
            mailbox_error=mailbox_error,
        )

    def lookup_error(self, kind: TargetKind) -> str | None:
        """Get the listing error affecting targets of this kind, if any."""
        return self.mailbox_error if kind.is_exchange else self.group_error

    def resolve_group(self, name: str) -> TargetRef | None:
        """Resolve a group by display name."""
        return resolve_by_name(name, self.groups, _display_name)

    def resolve_distribution_list(self, name: str) -> TargetRef | None:
        """Resolve a distribution list by display name."""
        return resolve_by_name(name, self.distribution_lists, _display_name)

    def resolve_shared_mailbox(self, name: str) -> TargetRef | None:
        """Resolve a shared mailbox by display name."""
        return resolve_by_name(name, self.shared_mailboxes, _display_name)

"""Interfaces the provisioning engine needs from its collaborators.

Services report failures by raising ``ServiceError`` (or a subclass) whose
message is the text returned by the downstream service.
"""

from typing import Protocol

from m365provision.provisioning.models import GrantResult, TargetRef


class DirectoryService(Protocol):
    """Directory of record for identities and groups (Microsoft Graph)."""

    async def list_groups(self) -> list[TargetRef]:
        """List all groups that can receive members."""
        ...

    async def add_group_member(self, group: TargetRef, identity_id: str) -> None:
        """Add an identity to a group by directory object ID."""
        ...


class MailboxService(Protocol):
    """Mail system for distribution lists and shared mailboxes (Exchange Online)."""

    async def list_distribution_lists(self) -> list[TargetRef]:
        """List all distribution lists."""
        ...

    async def list_shared_mailboxes(self) -> list[TargetRef]:
        """List all shared mailboxes."""
        ...

    async def list_distribution_list_members(self, dl: TargetRef) -> list[str]:
        """List member principal names of a distribution list."""
        ...

    async def add_distribution_list_member(self, dl: TargetRef, principal_name: str) -> None:
        """Add a member to a distribution list."""
        ...

    async def grant_full_access(self, mailbox: TargetRef, principal_name: str) -> GrantResult:
        """Grant FullAccess on a mailbox."""
        ...

    async def grant_send_as(self, mailbox: TargetRef, principal_name: str) -> GrantResult:
        """Grant SendAs on a mailbox."""
        ...


class ActivitySink(Protocol):
    """Receives one entry per attempt and per outcome."""

    def __call__(self, category: str, status: str, detail: str) -> None: ...

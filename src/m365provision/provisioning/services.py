"""Bind the Graph and Exchange clients to the provisioning ports."""

import asyncio
import logging

from m365provision.core.settings import ProvisioningSettings, get_settings
from m365provision.entra.groups import EntraGroupManager
from m365provision.exchange.client import ExchangeOnlineClient, ExchangeRecipient
from m365provision.provisioning.activity import ActivityLog
from m365provision.provisioning.coordinator import BatchCoordinator
from m365provision.provisioning.engine import AssignmentEngine
from m365provision.provisioning.models import GrantResult, TargetRef
from m365provision.provisioning.retry import SleepFn

logger = logging.getLogger(__name__)


def _recipient_ref(recipient: ExchangeRecipient) -> TargetRef:
    return TargetRef(
        id=recipient.primary_smtp_address or recipient.identity,
        display_name=recipient.display_name,
        address=recipient.primary_smtp_address or None,
    )


class GraphDirectoryService:
    """DirectoryService backed by Microsoft Graph."""

    def __init__(self, groups: EntraGroupManager | None = None) -> None:
        """Initialize with an EntraGroupManager (created lazily if omitted)."""
        self._groups = groups

    @property
    def groups(self) -> EntraGroupManager:
        """Lazy-load Entra group manager."""
        if self._groups is None:
            self._groups = EntraGroupManager()
        return self._groups

    async def list_groups(self) -> list[TargetRef]:
        """List all Entra ID groups."""
        return [
            TargetRef(id=g.id, display_name=g.display_name, address=g.mail)
            for g in await self.groups.get_groups()
        ]

    async def add_group_member(self, group: TargetRef, identity_id: str) -> None:
        """Add a directory object to a group."""
        await self.groups.add_user_to_group(group.id, identity_id)


class ExchangeMailboxService:
    """MailboxService backed by Exchange Online PowerShell."""

    def __init__(self, client: ExchangeOnlineClient | None = None) -> None:
        """Initialize with an ExchangeOnlineClient (created lazily if omitted)."""
        self._client = client

    @property
    def client(self) -> ExchangeOnlineClient:
        """Lazy-load Exchange client."""
        if self._client is None:
            self._client = ExchangeOnlineClient()
        return self._client

    async def list_distribution_lists(self) -> list[TargetRef]:
        """List all distribution lists."""
        return [_recipient_ref(r) for r in await self.client.get_distribution_lists()]

    async def list_shared_mailboxes(self) -> list[TargetRef]:
        """List all shared mailboxes."""
        return [_recipient_ref(r) for r in await self.client.get_shared_mailboxes()]

    async def list_distribution_list_members(self, dl: TargetRef) -> list[str]:
        """List member addresses of a distribution list."""
        return await self.client.get_distribution_group_members(dl.id)

    async def add_distribution_list_member(self, dl: TargetRef, principal_name: str) -> None:
        """Add a member to a distribution list."""
        await self.client.add_distribution_group_member(dl.id, principal_name)

    async def grant_full_access(self, mailbox: TargetRef, principal_name: str) -> GrantResult:
        """Grant FullAccess on a shared mailbox."""
        return await self.client.add_full_access_permission(mailbox.id, principal_name)

    async def grant_send_as(self, mailbox: TargetRef, principal_name: str) -> GrantResult:
        """Grant SendAs on a shared mailbox."""
        return await self.client.add_send_as_permission(mailbox.id, principal_name)


def build_coordinator(
    settings: ProvisioningSettings | None = None,
    include_exchange: bool = True,
    sleep: SleepFn = asyncio.sleep,
) -> tuple[BatchCoordinator, ActivityLog]:
    """Wire a BatchCoordinator to Graph and Exchange Online.

    Args:
        settings: Provisioning settings (defaults to environment)
        include_exchange: Configure the Exchange Online mailbox service
        sleep: Awaitable sleep used for backoff and propagation waits

    Returns:
        Tuple of (coordinator, activity log)
    """
    settings = settings or get_settings()
    activity = ActivityLog(settings.activity_log_path)
    engine = AssignmentEngine(
        directory=GraphDirectoryService(),
        mailbox=ExchangeMailboxService() if include_exchange else None,
        activity=activity,
        policy=settings.retry_policy(),
        sleep=sleep,
    )
    return BatchCoordinator(engine), activity

"""Shared pytest fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from m365provision.core.errors import ExchangeCommandError
from m365provision.provisioning.activity import ActivityLog
from m365provision.provisioning.coordinator import BatchCoordinator
from m365provision.provisioning.engine import AssignmentEngine
from m365provision.provisioning.models import GrantResult, Identity, TargetRef

NOT_FOUND = (
    "Couldn't find object \"jdoe@contoso.com\". Please make sure that it was spelled "
    "correctly or specify a different object."
)


class FakeDirectory:
    """In-memory DirectoryService with scripted add_group_member results."""

    def __init__(self, groups: list[TargetRef] | None = None) -> None:
        self.groups = groups or []
        self.add_group_member = AsyncMock(return_value=None)

    async def list_groups(self) -> list[TargetRef]:
        return list(self.groups)


class FakeMailbox:
    """In-memory MailboxService with scripted per-call results."""

    def __init__(
        self,
        distribution_lists: list[TargetRef] | None = None,
        shared_mailboxes: list[TargetRef] | None = None,
    ) -> None:
        self.distribution_lists = distribution_lists or []
        self.shared_mailboxes = shared_mailboxes or []
        self.list_distribution_list_members = AsyncMock(return_value=[])
        self.add_distribution_list_member = AsyncMock(return_value=None)
        self.grant_full_access = AsyncMock(return_value=GrantResult.SUCCESS)
        self.grant_send_as = AsyncMock(return_value=GrantResult.SUCCESS)

    async def list_distribution_lists(self) -> list[TargetRef]:
        return list(self.distribution_lists)

    async def list_shared_mailboxes(self) -> list[TargetRef]:
        return list(self.shared_mailboxes)


def not_found_error() -> ExchangeCommandError:
    """A replication-lag error as reported by Exchange Online."""
    return ExchangeCommandError(NOT_FOUND)


@pytest.fixture
def not_found():
    """Factory for replication-lag errors."""
    return not_found_error


@pytest.fixture
def identity():
    """Newly created account."""
    return Identity(id="user-123", principal_name="jdoe@contoso.com", display_name="Jane Doe")


@pytest.fixture
def security_group():
    return TargetRef(id="grp-1", display_name="Finance")


@pytest.fixture
def sales_dl():
    return TargetRef(id="sales@contoso.com", display_name="Sales", address="sales@contoso.com")


@pytest.fixture
def support_mailbox():
    return TargetRef(
        id="support@contoso.com", display_name="Support", address="support@contoso.com"
    )


@pytest.fixture
def directory(security_group):
    return FakeDirectory(groups=[security_group, TargetRef(id="grp-2", display_name="Marketing")])


@pytest.fixture
def mailbox(sales_dl, support_mailbox):
    return FakeMailbox(distribution_lists=[sales_dl], shared_mailboxes=[support_mailbox])


@pytest.fixture
def sleep():
    """Recording sleep so tests never wait in real time."""
    return AsyncMock(return_value=None)


@pytest.fixture
def activity():
    return ActivityLog()


@pytest.fixture
def engine(directory, mailbox, activity, sleep):
    return AssignmentEngine(directory=directory, mailbox=mailbox, activity=activity, sleep=sleep)


@pytest.fixture
def coordinator(engine):
    return BatchCoordinator(engine)


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set mock environment variables for testing."""
    monkeypatch.setenv("MS_GRAPH_TENANT_ID", "test-tenant-id")
    monkeypatch.setenv("MS_GRAPH_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("MS_GRAPH_CLIENT_SECRET", "test-client-secret")


@pytest.fixture
def mock_graph_client():
    """Mock MS Graph client for testing."""
    client = MagicMock()
    return client

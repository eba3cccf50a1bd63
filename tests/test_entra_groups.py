"""Tests for entra/groups.py - Entra ID group operations."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from msgraph.generated.models.o_data_errors.o_data_error import ODataError

from m365provision.core.errors import DirectoryServiceError
from m365provision.entra.groups import (
    EntraGroup,
    EntraGroupManager,
    GroupType,
    odata_message,
)


def _odata_error(message: str) -> ODataError:
    error = ODataError()
    error.error = MagicMock(message=message)
    return error


def _graph_group(group_id, name, mail=None, mail_enabled=False, security_enabled=True, types=None):
    group = MagicMock()
    group.id = group_id
    group.display_name = name
    group.description = None
    group.mail = mail
    group.mail_enabled = mail_enabled
    group.security_enabled = security_enabled
    group.group_types = types or []
    return group


def _page(groups, next_link=None):
    page = MagicMock()
    page.value = groups
    page.odata_next_link = next_link
    return page


def _entra_group(**overrides):
    fields = {
        "id": "grp-1",
        "display_name": "Finance",
        "description": None,
        "mail": None,
        "mail_enabled": False,
        "security_enabled": True,
        "group_types": [],
    }
    fields.update(overrides)
    return EntraGroup(**fields)


# =============================================================================
# Group type detection
# =============================================================================


class TestEntraGroupType:
    """Tests for EntraGroup.group_type."""

    def test_security(self):
        assert _entra_group().group_type == GroupType.SECURITY

    def test_microsoft_365(self):
        group = _entra_group(mail_enabled=True, security_enabled=False, group_types=["Unified"])
        assert group.group_type == GroupType.MICROSOFT_365

    def test_mail_enabled_security(self):
        group = _entra_group(mail_enabled=True, security_enabled=True)
        assert group.group_type == GroupType.MAIL_ENABLED_SECURITY

    def test_distribution(self):
        group = _entra_group(mail_enabled=True, security_enabled=False)
        assert group.group_type == GroupType.DISTRIBUTION

    def test_unknown(self):
        group = _entra_group(mail_enabled=False, security_enabled=False)
        assert group.group_type == GroupType.UNKNOWN


class TestOdataMessage:
    """Tests for odata_message."""

    def test_uses_service_message(self):
        assert odata_message(_odata_error("Insufficient privileges")) == "Insufficient privileges"

    def test_falls_back_to_str(self):
        error = ODataError()
        error.error = None
        assert odata_message(error) == str(error)


# =============================================================================
# Listing
# =============================================================================


class TestGetGroups:
    """Tests for EntraGroupManager.get_groups."""

    async def test_follows_next_link(self, mock_graph_client):
        first = _page([_graph_group("grp-1", "Finance")], next_link="https://next")
        second = _page([_graph_group("grp-2", "All Staff", types=["Unified"])])
        mock_graph_client.groups.get = AsyncMock(return_value=first)
        mock_graph_client.groups.with_url.return_value.get = AsyncMock(return_value=second)

        groups = await EntraGroupManager(client=mock_graph_client).get_groups()

        assert [g.display_name for g in groups] == ["Finance", "All Staff"]
        mock_graph_client.groups.with_url.assert_called_once_with("https://next")

    async def test_filters_by_type(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(
            return_value=_page(
                [
                    _graph_group("grp-1", "Finance"),
                    _graph_group("grp-2", "All Staff", types=["Unified"]),
                ]
            )
        )

        groups = await EntraGroupManager(client=mock_graph_client).get_groups(
            include_types=[GroupType.MICROSOFT_365]
        )

        assert [g.id for g in groups] == ["grp-2"]

    async def test_odata_error_raises_service_error(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(side_effect=_odata_error("Token expired"))

        with pytest.raises(DirectoryServiceError, match="Token expired"):
            await EntraGroupManager(client=mock_graph_client).get_groups()


# =============================================================================
# Membership
# =============================================================================


class TestAddUserToGroup:
    """Tests for EntraGroupManager.add_user_to_group."""

    async def test_posts_member_reference(self, mock_graph_client):
        post = AsyncMock()
        mock_graph_client.groups.by_group_id.return_value.members.ref.post = post

        await EntraGroupManager(client=mock_graph_client).add_user_to_group("grp-1", "user-123")

        mock_graph_client.groups.by_group_id.assert_called_with("grp-1")
        body = post.await_args.args[0]
        assert body.odata_id == "https://graph.microsoft.com/v1.0/directoryObjects/user-123"

    async def test_existing_member_is_not_an_error(self, mock_graph_client):
        mock_graph_client.groups.by_group_id.return_value.members.ref.post = AsyncMock(
            side_effect=_odata_error(
                "One or more added object references already exist for the following "
                "modified properties: 'members'."
            )
        )

        await EntraGroupManager(client=mock_graph_client).add_user_to_group("grp-1", "user-123")

    async def test_error_raises_with_message(self, mock_graph_client):
        mock_graph_client.groups.by_group_id.return_value.members.ref.post = AsyncMock(
            side_effect=_odata_error("Insufficient privileges to complete the operation.")
        )

        with pytest.raises(DirectoryServiceError) as exc_info:
            await EntraGroupManager(client=mock_graph_client).add_user_to_group(
                "grp-1", "user-123"
            )

        assert exc_info.value.message == "Insufficient privileges to complete the operation."

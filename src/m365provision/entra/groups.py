"""Entra ID group operations."""

import logging
from dataclasses import dataclass
from enum import Enum

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder
from msgraph.generated.models.group import Group
from msgraph.generated.models.o_data_errors.o_data_error import ODataError
from msgraph.generated.models.reference_create import ReferenceCreate

from m365provision.core.errors import DirectoryServiceError
from m365provision.core.msgraph_client import get_graph_client

logger = logging.getLogger(__name__)

GROUP_FIELDS = [
    "id",
    "displayName",
    "description",
    "mail",
    "mailEnabled",
    "securityEnabled",
    "groupTypes",
]


def odata_message(error: ODataError) -> str:
    """Extract the service message from a Graph error."""
    if error.error and error.error.message:
        return error.error.message
    return str(error)


class GroupType(Enum):
    """Types of Entra ID groups."""

    SECURITY = "security"
    MICROSOFT_365 = "microsoft365"
    DISTRIBUTION = "distribution"
    MAIL_ENABLED_SECURITY = "mail_enabled_security"
    UNKNOWN = "unknown"


@dataclass
class EntraGroup:
    """Represents an Entra ID group."""

    id: str
    display_name: str
    description: str | None
    mail: str | None
    mail_enabled: bool
    security_enabled: bool
    group_types: list[str]

    @property
    def group_type(self) -> GroupType:
        """Determine the type of group."""
        # Microsoft 365 groups have "Unified" in groupTypes
        if "Unified" in self.group_types:
            return GroupType.MICROSOFT_365
        if self.mail_enabled and self.security_enabled:
            return GroupType.MAIL_ENABLED_SECURITY
        if self.mail_enabled and not self.security_enabled:
            return GroupType.DISTRIBUTION
        if self.security_enabled and not self.mail_enabled:
            return GroupType.SECURITY
        return GroupType.UNKNOWN


class EntraGroupManager:
    """Manage group membership in Entra ID."""

    def __init__(self, client: GraphServiceClient | None = None) -> None:
        """Initialize the group manager.

        Args:
            client: Graph client (defaults to one built from environment credentials)
        """
        self.client: GraphServiceClient = client or get_graph_client()

    async def get_groups(
        self,
        include_types: list[GroupType] | None = None,
    ) -> list[EntraGroup]:
        """Fetch groups from Entra ID.

        Args:
            include_types: Filter to specific group types. If None, returns all.

        Returns:
            List of EntraGroup objects

        Raises:
            DirectoryServiceError: If Graph rejects the request
        """
        logger.info("Fetching Entra ID groups")

        query_params = GroupsRequestBuilder.GroupsRequestBuilderGetQueryParameters(
            select=GROUP_FIELDS,
            top=999,
        )
        config = RequestConfiguration(query_parameters=query_params)

        groups: list[EntraGroup] = []
        try:
            result = await self.client.groups.get(request_configuration=config)
            while result:
                for group in result.value or []:
                    entra_group = self._to_entra_group(group)
                    if include_types is None or entra_group.group_type in include_types:
                        groups.append(entra_group)
                if not result.odata_next_link:
                    break
                result = await self.client.groups.with_url(result.odata_next_link).get()
        except ODataError as e:
            raise DirectoryServiceError(odata_message(e)) from e

        logger.info(f"Found {len(groups)} groups")
        return groups

    def _to_entra_group(self, group: Group) -> EntraGroup:
        """Convert MS Graph Group to EntraGroup."""
        return EntraGroup(
            id=group.id or "",
            display_name=group.display_name or "",
            description=group.description,
            mail=group.mail,
            mail_enabled=group.mail_enabled or False,
            security_enabled=group.security_enabled or False,
            group_types=group.group_types or [],
        )

    async def add_user_to_group(self, group_id: str, user_id: str) -> None:
        """Add a user to a group.

        An existing membership is not an error.

        Args:
            group_id: The group ID
            user_id: The user ID to add

        Raises:
            DirectoryServiceError: With Graph's message if the add failed
        """
        request_body = ReferenceCreate(
            odata_id=f"https://graph.microsoft.com/v1.0/directoryObjects/{user_id}",
        )

        try:
            await self.client.groups.by_group_id(group_id).members.ref.post(request_body)
        except ODataError as e:
            message = odata_message(e)
            if "already exist" in message.lower():
                logger.debug(f"User {user_id} is already a member of group {group_id}")
                return
            logger.error(f"Failed to add user {user_id} to group {group_id}: {message}")
            raise DirectoryServiceError(message) from e

        logger.info(f"Added user {user_id} to group {group_id}")

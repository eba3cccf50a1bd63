"""Entra ID user lookups."""

import logging
from dataclasses import dataclass

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.models.o_data_errors.o_data_error import ODataError
from msgraph.generated.models.user import User
from msgraph.generated.users.item.user_item_request_builder import UserItemRequestBuilder

from m365provision.core.msgraph_client import get_graph_client
from m365provision.provisioning.models import Identity

logger = logging.getLogger(__name__)


@dataclass
class EntraUser:
    """Represents an Entra ID user."""

    id: str
    display_name: str | None
    upn: str | None
    email: str | None
    account_enabled: bool = True

    @property
    def is_active(self) -> bool:
        """Check if user account is enabled."""
        return self.account_enabled

    def to_identity(self) -> Identity:
        """Convert to the Identity that assignments are applied to."""
        return Identity(
            id=self.id,
            principal_name=self.upn or self.email or "",
            display_name=self.display_name or "",
        )


class EntraUserManager:
    """Look up users in Entra ID."""

    def __init__(self, client: GraphServiceClient | None = None) -> None:
        """Initialize the user manager.

        Args:
            client: Graph client (defaults to one built from environment credentials)
        """
        self.client: GraphServiceClient = client or get_graph_client()

    def _to_entra_user(self, user: User) -> EntraUser:
        """Convert MS Graph User to EntraUser."""
        return EntraUser(
            id=user.id or "",
            display_name=user.display_name,
            upn=user.user_principal_name,
            email=user.mail,
            account_enabled=user.account_enabled or False,
        )

    async def get_user_by_upn(self, upn: str) -> EntraUser | None:
        """Fetch a single user by UPN.

        Args:
            upn: User principal name

        Returns:
            EntraUser or None if not found
        """
        query_params = UserItemRequestBuilder.UserItemRequestBuilderGetQueryParameters(
            select=["id", "displayName", "userPrincipalName", "mail", "accountEnabled"],
        )
        config = RequestConfiguration(query_parameters=query_params)

        try:
            user = await self.client.users.by_user_id(upn).get(request_configuration=config)
        except ODataError as e:
            logger.debug(f"User not found: {upn} - {e}")
            return None

        if user:
            return self._to_entra_user(user)
        return None

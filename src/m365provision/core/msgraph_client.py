"""Microsoft Graph client for directory lookups and group membership."""

import logging

from azure.identity import ClientSecretCredential
from msgraph import GraphServiceClient

from m365provision.core.config import GRAPH_SCOPES, get_graph_credentials

logger = logging.getLogger(__name__)


def get_graph_client() -> GraphServiceClient:
    """Create an app-only Graph client from environment credentials.

    Raises:
        ValueError: If the MS_GRAPH_* variables are not set
    """
    tenant_id, client_id, client_secret = get_graph_credentials()
    logger.debug(f"Creating Graph client for tenant {tenant_id}")

    credential = ClientSecretCredential(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
    )
    return GraphServiceClient(credentials=credential, scopes=GRAPH_SCOPES)

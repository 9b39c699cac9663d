"""
MS Graph client setup with lazy initialization.
"""

from azure.identity import ClientSecretCredential
from msgraph import GraphServiceClient

from core.config import GRAPH_APP_ID, GRAPH_CLIENT_SECRET, GRAPH_TENANT_ID

_credential: ClientSecretCredential | None = None
_graph_client: GraphServiceClient | None = None


def get_credential() -> ClientSecretCredential:
    """Get or create the app credential (lazy initialization)."""
    global _credential
    if _credential is None:
        _credential = ClientSecretCredential(
            tenant_id=GRAPH_TENANT_ID,
            client_id=GRAPH_APP_ID,
            client_secret=GRAPH_CLIENT_SECRET,
        )
    return _credential


def get_graph_client() -> GraphServiceClient:
    """Get or create the MS Graph client (lazy initialization)."""
    global _graph_client
    if _graph_client is None:
        _graph_client = GraphServiceClient(credentials=get_credential())
    return _graph_client


def reset_graph_client() -> None:
    """Drop the cached credential and client so the next call starts a fresh token cache."""
    global _credential, _graph_client
    if _credential is not None:
        _credential.close()
    _credential = None
    _graph_client = None

"""Cosmos DB binding for the change feed store protocol."""

from changefeed.cosmos.auth import AzureIdentityTokenProvider, master_key_authorization
from changefeed.cosmos.client import CosmosChangefeedClient, classify_cosmos_error

__all__ = [
    "AzureIdentityTokenProvider",
    "CosmosChangefeedClient",
    "classify_cosmos_error",
    "master_key_authorization",
]

"""
Cosmos DB request authorization.

Two schemes are supported:
- master key: HMAC-SHA256 signature over verb, resource type, resource
  link and request date, keyed with the base64-decoded account key
- Azure AD: a bearer token for https://<account>.documents.azure.com/.default
  obtained through azure-identity
"""

import base64
import hashlib
import hmac
import logging
import time
from email.utils import formatdate
from urllib.parse import quote, urlparse

from azure.core.exceptions import ClientAuthenticationError
from azure.identity.aio import DefaultAzureCredential

from core.errors import AuthError, ConfigurationError

logger = logging.getLogger(__name__)

# Refresh cached tokens this long before they expire
TOKEN_REFRESH_BUFFER_SECONDS = 300


def rfc1123_now() -> str:
    """Current time formatted for the x-ms-date header."""
    return formatdate(timeval=None, localtime=False, usegmt=True)


def master_key_authorization(
    verb: str,
    resource_type: str,
    resource_link: str,
    date: str,
    master_key: str,
) -> str:
    """Build the url-encoded Authorization header value for a master key request.

    Args:
        verb: HTTP method, e.g. "GET"
        resource_type: "pkranges", "docs", ...
        resource_link: Resource path without leading slash, e.g. "dbs/db/colls/coll"
        date: Value sent in x-ms-date
        master_key: Base64 account key
    """
    try:
        key = base64.b64decode(master_key, validate=True)
    except (ValueError, TypeError) as e:
        raise ConfigurationError("Cosmos auth_key is not valid base64", cause=e) from e

    payload = (
        f"{verb.lower()}\n{resource_type.lower()}\n{resource_link}\n{date.lower()}\n\n"
    )
    digest = hmac.new(key, payload.encode("utf-8"), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode("utf-8")
    return quote(f"type=master&ver=1.0&sig={signature}", safe="")


def aad_authorization(token: str) -> str:
    return quote(f"type=aad&ver=1.0&sig={token}", safe="")


def cosmos_scope(uri: str) -> str:
    """AAD scope for a Cosmos DB account URI."""
    parsed = urlparse(uri)
    return f"{parsed.scheme}://{parsed.hostname}/.default"


class AzureIdentityTokenProvider:
    """TokenProvider backed by azure-identity's DefaultAzureCredential.

    Tokens are cached per scope until shortly before they expire.
    """

    def __init__(self, credential=None):
        self._credential = credential
        self._owns_credential = credential is None
        self._cache: dict[str, tuple[str, int]] = {}

    def _ensure_credential(self):
        if self._credential is None:
            self._credential = DefaultAzureCredential()
        return self._credential

    async def get_token(self, scopes: list[str]) -> str:
        key = " ".join(scopes)
        cached = self._cache.get(key)
        if cached is not None and cached[1] - TOKEN_REFRESH_BUFFER_SECONDS > time.time():
            return cached[0]

        credential = self._ensure_credential()
        try:
            access_token = await credential.get_token(*scopes)
        except ClientAuthenticationError as e:
            raise AuthError(f"Failed to acquire Azure AD token: {e.message}", cause=e) from e

        self._cache[key] = (access_token.token, access_token.expires_on)
        logger.debug(
            "Acquired Azure AD token",
            extra={"operation": "get_token", "resource_link": key},
        )
        return access_token.token

    async def close(self) -> None:
        self._cache.clear()
        if self._owns_credential and self._credential is not None:
            await self._credential.close()
            self._credential = None


__all__ = [
    "AzureIdentityTokenProvider",
    "aad_authorization",
    "cosmos_scope",
    "master_key_authorization",
    "rfc1123_now",
]

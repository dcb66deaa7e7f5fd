"""Cosmos DB change feed client over the REST API."""

import asyncio
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from changefeed.config import CosmosEndpoint
from changefeed.cosmos.auth import (
    AzureIdentityTokenProvider,
    aad_authorization,
    cosmos_scope,
    master_key_authorization,
    rfc1123_now,
)
from changefeed.cosmos.schemas import DocumentFeedResponse, PartitionKeyRangesResponse
from changefeed.store import ChangefeedPage, PartitionDescriptor
from core.errors import (
    AuthError,
    ChangefeedError,
    ConfigurationError,
    PermanentError,
    ThrottlingError,
    TransientError,
)
from core.logging.context import get_log_context
from core.types import TokenProvider

logger = logging.getLogger(__name__)

API_VERSION = "2018-12-31"

# (label, error class) per status code
_STATUS_MAP: dict[int, tuple[str, type[ChangefeedError]]] = {
    401: ("Unauthorized", AuthError),
    403: ("Forbidden", PermanentError),
    404: ("Not found", PermanentError),
    408: ("Request timeout", TransientError),
    410: ("Gone", TransientError),
    429: ("Request rate is large", ThrottlingError),
    500: ("Server error", TransientError),
    502: ("Server error", TransientError),
    503: ("Service unavailable", TransientError),
    504: ("Server error", TransientError),
}


def classify_cosmos_error(
    status: int, url: str, retry_after_ms: str | None = None
) -> ChangefeedError:
    """Classify a non-success Cosmos status into the typed error hierarchy."""
    context = {"http_status": status, "http_url": url}
    entry = _STATUS_MAP.get(status)
    if entry:
        label, error_class = entry
        message = f"{label} ({status}): {url}"
        if error_class is ThrottlingError:
            retry_after = None
            if retry_after_ms:
                try:
                    retry_after = int(retry_after_ms) / 1000.0
                except ValueError:
                    retry_after = None
            return ThrottlingError(message, retry_after=retry_after, context=context)
        return error_class(message, context=context)

    # Fallback: remaining 4xx are permanent, everything else is transient
    if 400 <= status < 500:
        return PermanentError(f"Client error ({status}): {url}", context=context)
    return TransientError(f"HTTP error ({status}): {url}", context=context)


def quote_etag(token: str) -> str:
    """Cosmos expects If-None-Match etags in double quotes."""
    token = token.strip()
    if token.startswith('"') and token.endswith('"') and len(token) >= 2:
        return token
    return f'"{token}"'


class CosmosChangefeedClient:
    """Async Cosmos DB client bound to one collection.

    Implements the ChangefeedStore protocol. Safe to share across partition
    readers: one aiohttp session serves all requests.

    Args:
        uri: Account endpoint, e.g. https://myaccount.documents.azure.com:443/
        database_name: Database id
        collection_name: Collection (container) id
        auth_key: Master key; mutually exclusive with token_provider
        token_provider: Azure AD token source
        timeout_seconds: Total timeout per request
        max_connections: Connection pool size
    """

    def __init__(
        self,
        uri: str,
        database_name: str,
        collection_name: str,
        auth_key: str = "",
        token_provider: TokenProvider | None = None,
        timeout_seconds: float = 60.0,
        max_connections: int = 100,
    ):
        self.base_url = uri.rstrip("/") if uri else ""
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"CosmosChangefeedClient uri must start with http:// or https://, got: {uri!r}"
            )
        if not auth_key and token_provider is None:
            raise ConfigurationError("CosmosChangefeedClient requires auth_key or token_provider")

        self.database_name = database_name
        self.collection_name = collection_name
        self.collection_link = f"dbs/{database_name}/colls/{collection_name}"
        self.timeout_seconds = timeout_seconds
        self.max_connections = max_connections

        self._auth_key = auth_key
        self._token_provider = token_provider
        self._owns_token_provider = False
        self._scope = cosmos_scope(self.base_url)
        self._session: aiohttp.ClientSession | None = None
        self._closed = False

        logger.info(
            "CosmosChangefeedClient initialized",
            extra={
                "http_url": self.base_url,
                "database": database_name,
                "collection": collection_name,
                "operation": "aad" if token_provider is not None else "master_key",
            },
        )

    @classmethod
    def from_endpoint(
        cls, endpoint: CosmosEndpoint, token_provider: TokenProvider | None = None
    ) -> "CosmosChangefeedClient":
        owns_provider = False
        if endpoint.use_aad_auth and token_provider is None:
            token_provider = AzureIdentityTokenProvider()
            owns_provider = True
        client = cls(
            uri=endpoint.uri,
            database_name=endpoint.database_name,
            collection_name=endpoint.collection_name,
            auth_key="" if endpoint.use_aad_auth else endpoint.auth_key,
            token_provider=token_provider if endpoint.use_aad_auth else None,
            timeout_seconds=endpoint.timeout_seconds,
        )
        client._owns_token_provider = owns_provider
        return client

    async def __aenter__(self) -> "CosmosChangefeedClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> None:
        if self._closed:
            raise RuntimeError("CosmosChangefeedClient is closed, cannot create new session")
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=self.max_connections)
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "Accept": "application/json",
                    "x-ms-version": API_VERSION,
                },
            )

    async def close(self) -> None:
        self._closed = True
        if self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None
        if self._owns_token_provider and self._token_provider is not None:
            await self._token_provider.close()

    async def _authorization(self, verb: str, resource_type: str, date: str) -> str:
        if self._token_provider is not None:
            token = await self._token_provider.get_token([self._scope])
            return aad_authorization(token)
        return master_key_authorization(
            verb, resource_type, self.collection_link, date, self._auth_key
        )

    async def _get(
        self,
        resource_type: str,
        headers: dict[str, str] | None = None,
        accept_not_modified: bool = False,
    ) -> tuple[int, dict[str, str], dict[str, Any]]:
        """GET a feed under the collection; returns (status, lower-cased headers, body)."""
        await self._ensure_session()
        url = f"{self.base_url}/{self.collection_link}/{resource_type}"
        date = rfc1123_now()
        request_headers = {
            "x-ms-date": date,
            "authorization": await self._authorization("GET", resource_type, date),
            **(headers or {}),
        }
        ctx = {k: v for k, v in get_log_context().items() if v}

        start_time = asyncio.get_running_loop().time()
        try:
            async with self._session.get(
                url,
                headers=request_headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                duration_ms = (asyncio.get_running_loop().time() - start_time) * 1000
                response_headers = {k.lower(): v for k, v in response.headers.items()}

                if response.status == 304 and accept_not_modified:
                    return response.status, response_headers, {}

                if response.status != 200:
                    try:
                        body = await response.text()
                    except aiohttp.ClientError:
                        body = "<unable to read response body>"
                    error = classify_cosmos_error(
                        response.status, url, response.headers.get("x-ms-retry-after-ms")
                    )
                    logger.warning(
                        "Cosmos request failed",
                        extra={
                            **ctx,
                            "http_method": "GET",
                            "http_url": url,
                            "http_status": response.status,
                            "error_category": error.category.value,
                            "error_message": body[:500],
                            "duration_ms": round(duration_ms, 2),
                        },
                    )
                    raise error

                data = await response.json(content_type=None)
                logger.debug(
                    "Cosmos request succeeded",
                    extra={
                        **ctx,
                        "http_method": "GET",
                        "http_url": url,
                        "http_status": response.status,
                        "request_charge": response.headers.get("x-ms-request-charge"),
                        "duration_ms": round(duration_ms, 2),
                    },
                )
                return response.status, response_headers, data or {}

        except TimeoutError as e:
            raise TransientError(
                f"Timeout after {self.timeout_seconds}s: {url}",
                cause=e,
                context={"http_url": url},
            ) from e
        except aiohttp.ClientError as e:
            raise TransientError(
                f"Connection error: {e}", cause=e, context={"http_url": url}
            ) from e

    async def list_partitions(self) -> list[PartitionDescriptor]:
        """List the collection's partition key ranges, following continuation pages."""
        descriptors: list[PartitionDescriptor] = []
        continuation: str | None = None

        while True:
            headers = {"x-ms-continuation": continuation} if continuation else None
            _, response_headers, body = await self._get("pkranges", headers=headers)
            try:
                page = PartitionKeyRangesResponse.model_validate(body)
            except ValidationError as e:
                raise PermanentError(
                    f"Malformed pkranges response: {e.error_count()} validation errors",
                    cause=e,
                ) from e
            descriptors.extend(r.to_descriptor() for r in page.partition_key_ranges)

            continuation = response_headers.get("x-ms-continuation")
            if not continuation:
                return descriptors

    async def query_changefeed(
        self,
        partition_id: str,
        continuation_token: str | None,
        max_item_count: int,
    ) -> ChangefeedPage:
        """Read one page of a partition's change feed.

        The returned continuation token is the response etag (quotes
        included). A 304 means the partition is caught up.
        """
        headers = {
            "A-IM": "Incremental feed",
            "x-ms-documentdb-partitionkeyrangeid": partition_id,
            "x-ms-max-item-count": str(max_item_count),
        }
        if continuation_token is not None:
            headers["If-None-Match"] = quote_etag(continuation_token)

        status, response_headers, body = await self._get(
            "docs", headers=headers, accept_not_modified=True
        )
        etag = response_headers.get("etag")
        next_token = etag if etag is not None else continuation_token

        if status == 304:
            return ChangefeedPage(items=[], continuation_token=next_token, has_more=False)

        try:
            page = DocumentFeedResponse.model_validate(body)
        except ValidationError as e:
            raise PermanentError(
                f"Malformed change feed response for partition {partition_id}",
                cause=e,
                context={"partition_id": partition_id},
            ) from e
        return ChangefeedPage(items=page.documents, continuation_token=next_token, has_more=True)


__all__ = ["CosmosChangefeedClient", "classify_cosmos_error", "quote_etag", "API_VERSION"]

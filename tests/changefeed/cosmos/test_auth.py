"""
Tests for Cosmos DB request authorization.
"""

import base64
import hashlib
import hmac
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock
from urllib.parse import unquote

import pytest
from azure.core.exceptions import ClientAuthenticationError

from changefeed.cosmos.auth import (
    AzureIdentityTokenProvider,
    aad_authorization,
    cosmos_scope,
    master_key_authorization,
    rfc1123_now,
)
from core.errors import AuthError, ConfigurationError

KEY = base64.b64encode(b"super-secret-account-key").decode()
DATE = "Tue, 01 Oct 2024 10:00:00 GMT"


class TestMasterKeyAuthorization:
    def test_signature_matches_hmac_of_canonical_payload(self):
        header = master_key_authorization("GET", "docs", "dbs/db/colls/coll", DATE, KEY)

        payload = f"get\ndocs\ndbs/db/colls/coll\n{DATE.lower()}\n\n"
        expected_sig = base64.b64encode(
            hmac.new(b"super-secret-account-key", payload.encode(), hashlib.sha256).digest()
        ).decode()
        assert unquote(header) == f"type=master&ver=1.0&sig={expected_sig}"

    def test_header_is_url_encoded(self):
        header = master_key_authorization("GET", "pkranges", "dbs/db/colls/coll", DATE, KEY)
        assert "&" not in header
        assert header.startswith("type%3Dmaster%26ver%3D1.0%26sig%3D")

    def test_resource_link_is_case_sensitive(self):
        a = master_key_authorization("GET", "docs", "dbs/DB/colls/coll", DATE, KEY)
        b = master_key_authorization("GET", "docs", "dbs/db/colls/coll", DATE, KEY)
        assert a != b

    def test_invalid_key(self):
        with pytest.raises(ConfigurationError, match="base64"):
            master_key_authorization("GET", "docs", "dbs/db/colls/coll", DATE, "abc")


class TestHelpers:
    def test_aad_authorization(self):
        assert unquote(aad_authorization("tok")) == "type=aad&ver=1.0&sig=tok"

    def test_cosmos_scope(self):
        assert (
            cosmos_scope("https://acct.documents.azure.com:443/")
            == "https://acct.documents.azure.com/.default"
        )

    def test_rfc1123_now(self):
        assert rfc1123_now().endswith(" GMT")


class TestAzureIdentityTokenProvider:
    def make_credential(self, expires_in=3600):
        credential = AsyncMock()
        credential.get_token.return_value = SimpleNamespace(
            token="aad-token", expires_on=int(time.time()) + expires_in
        )
        return credential

    @pytest.mark.asyncio
    async def test_get_token(self):
        credential = self.make_credential()
        provider = AzureIdentityTokenProvider(credential)

        assert await provider.get_token(["https://acct/.default"]) == "aad-token"
        credential.get_token.assert_awaited_once_with("https://acct/.default")

    @pytest.mark.asyncio
    async def test_token_cached_until_near_expiry(self):
        credential = self.make_credential()
        provider = AzureIdentityTokenProvider(credential)

        await provider.get_token(["s"])
        await provider.get_token(["s"])

        assert credential.get_token.await_count == 1

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed(self):
        credential = self.make_credential(expires_in=60)
        provider = AzureIdentityTokenProvider(credential)

        await provider.get_token(["s"])
        await provider.get_token(["s"])

        assert credential.get_token.await_count == 2

    @pytest.mark.asyncio
    async def test_authentication_failure(self):
        credential = AsyncMock()
        credential.get_token.side_effect = ClientAuthenticationError(message="no identity")
        provider = AzureIdentityTokenProvider(credential)

        with pytest.raises(AuthError, match="no identity"):
            await provider.get_token(["s"])

    @pytest.mark.asyncio
    async def test_close_leaves_caller_credential_open(self):
        credential = self.make_credential()
        provider = AzureIdentityTokenProvider(credential)

        await provider.close()

        credential.close.assert_not_awaited()

"""Tests for API key storage and verification."""

import asyncio

import httpx
import pytest

from expense_tracker.services import (
    ApiKeyService,
    ApiKeyVerifier,
    DocumentStoreService,
    StoreOperationFailed,
)
from expense_tracker.services.api_keys import (
    mask_api_key,
    obfuscate_key,
    reveal_key,
    validate_api_key_format,
)


VALID_KEY = "sk-proj-" + "x" * 30 + "9876"


class AcceptingVerifier:
    async def verify(self, api_key: str) -> bool:
        return True


@pytest.fixture
def keys(store) -> ApiKeyService:
    return ApiKeyService(store, AcceptingVerifier())


class TestKeyHelpers:
    """Tests for formatting and obfuscation helpers."""

    def test_format(self):
        """Test the 'sk-' prefix and minimum length."""
        assert validate_api_key_format(VALID_KEY) is True
        assert validate_api_key_format("sk-short") is False
        assert validate_api_key_format("pk-" + "x" * 30) is False
        assert validate_api_key_format(None) is False

    def test_mask_keeps_ends(self):
        """Test that only the prefix and the last four characters show."""
        masked = mask_api_key(VALID_KEY)
        assert masked.startswith("sk-proj")
        assert masked.endswith("9876")
        assert len(masked) == len(VALID_KEY)
        assert "x" not in masked

    def test_obfuscation_is_reversible_per_owner(self):
        """Test that only the same owner id reveals the key."""
        encoded = obfuscate_key(VALID_KEY, "alice")
        assert encoded != VALID_KEY
        assert reveal_key(encoded, "alice") == VALID_KEY
        assert reveal_key(encoded, "bob") != VALID_KEY

    def test_obfuscation_requires_secret(self):
        with pytest.raises(ValueError, match="Failed to encrypt API key"):
            obfuscate_key(VALID_KEY, "")

    def test_reveal_unreadable_input(self):
        """Test that garbage decodes to an empty string."""
        assert reveal_key("not base64!", "alice") == ""
        assert reveal_key(None, "alice") == ""


class TestApiKeyVerifier:
    """Tests for asking the provider about a key."""

    def test_accepted_key(self):
        """Test the request sent and a successful answer."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": []})

        verifier = ApiKeyVerifier(
            url="https://llm.test/v1/models",
            transport=httpx.MockTransport(handler),
        )

        assert asyncio.run(verifier.verify(VALID_KEY)) is True
        [request] = seen
        assert request.method == "GET"
        assert str(request.url) == "https://llm.test/v1/models"
        assert request.headers["Authorization"] == f"Bearer {VALID_KEY}"

    def test_refused_key(self):
        """Test that an error status means the key is not accepted."""
        transport = httpx.MockTransport(lambda request: httpx.Response(401))
        verifier = ApiKeyVerifier(transport=transport)
        assert asyncio.run(verifier.verify(VALID_KEY)) is False

    def test_network_failure_is_not_raised(self):
        """Test that transport errors report the key as not accepted."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        verifier = ApiKeyVerifier(transport=httpx.MockTransport(handler))
        assert asyncio.run(verifier.verify(VALID_KEY)) is False

    def test_url_from_settings(self, monkeypatch):
        """Test the configured endpoint is used by default."""
        monkeypatch.setenv("API_KEY_CHECK_URL", "https://keys.test/check")
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200)

        asyncio.run(ApiKeyVerifier(transport=httpx.MockTransport(handler)).verify(VALID_KEY))
        assert seen == ["https://keys.test/check"]


class TestApiKeyService:
    """Tests for owner-scoped key storage."""

    def test_save_stores_obfuscated_key(self, keys, store):
        """Test the stored document shape."""
        key_id = asyncio.run(keys.save_api_key("alice", VALID_KEY))

        document = asyncio.run(store.get_by_id("apiKeys", key_id))
        assert document["userId"] == "alice"
        assert document["label"] == "Default"
        assert document["keyType"] == "openai"
        assert document["isActive"] is True
        assert document["usageCount"] == 0
        assert document["maskedKey"] == mask_api_key(VALID_KEY)
        assert document["encryptedKey"] != VALID_KEY

    def test_same_label_replaces(self, keys, backend):
        """Test one key per label and owner."""
        first = asyncio.run(keys.save_api_key("alice", VALID_KEY, "work"))
        second = asyncio.run(keys.save_api_key("alice", "sk-" + "z" * 30, "work"))
        asyncio.run(keys.save_api_key("alice", VALID_KEY, "home"))

        assert first == second
        assert backend.count("apiKeys") == 2

    def test_invalid_format_is_not_saved(self, keys, backend):
        """Test the format check before writing."""
        with pytest.raises(StoreOperationFailed, match="Failed to save API key") as exc_info:
            asyncio.run(keys.save_api_key("alice", "sk-short"))
        assert exc_info.value.operation == "save_api_key"
        assert backend.count("apiKeys") == 0

    def test_blank_owner_is_rejected(self, keys, backend):
        with pytest.raises(StoreOperationFailed, match="Valid user ID is required"):
            asyncio.run(keys.save_api_key(" ", VALID_KEY))
        assert backend.calls == []

    def test_listing_hides_key_material(self, keys):
        """Test that listings carry the masked key only."""
        asyncio.run(keys.save_api_key("alice", VALID_KEY, "work"))
        asyncio.run(keys.save_api_key("bob", VALID_KEY, "other"))

        [info] = asyncio.run(keys.list_api_keys("alice"))

        assert info.label == "work"
        assert info.masked_key == mask_api_key(VALID_KEY)
        assert "encryptedKey" not in (info.model_extra or {})

    def test_get_reveals_and_counts_usage(self, keys, store):
        """Test that reading a key bumps its usage counters."""
        key_id = asyncio.run(keys.save_api_key("alice", VALID_KEY))

        assert asyncio.run(keys.get_api_key("alice")) == VALID_KEY
        assert asyncio.run(keys.get_api_key("alice")) == VALID_KEY

        document = asyncio.run(store.get_by_id("apiKeys", key_id))
        assert document["usageCount"] == 2
        assert document["lastUsed"] is not None

    def test_get_is_owner_scoped(self, keys):
        asyncio.run(keys.save_api_key("alice", VALID_KEY))
        assert asyncio.run(keys.get_api_key("bob")) is None

    def test_usage_failure_does_not_fail_read(self, failing_backend):
        """Test that usage tracking is best effort."""
        keys = ApiKeyService(DocumentStoreService(failing_backend), AcceptingVerifier())
        asyncio.run(keys.save_api_key("alice", VALID_KEY))
        failing_backend.failing_operations.add("update")

        assert asyncio.run(keys.get_api_key("alice")) == VALID_KEY

    def test_deactivate_hides_key_from_reads(self, keys, store):
        """Test the soft delete."""
        key_id = asyncio.run(keys.save_api_key("alice", VALID_KEY))

        asyncio.run(keys.deactivate_api_key(key_id))

        assert asyncio.run(keys.get_api_key("alice")) is None
        [info] = asyncio.run(keys.list_api_keys("alice"))
        assert info.is_active is False

    def test_delete(self, keys, backend):
        key_id = asyncio.run(keys.save_api_key("alice", VALID_KEY))
        asyncio.run(keys.delete_api_key(key_id))
        assert backend.count("apiKeys") == 0

    def test_key_id_is_required(self, keys):
        """Test the id check on delete and deactivate."""
        with pytest.raises(StoreOperationFailed, match="Valid key document ID is required"):
            asyncio.run(keys.delete_api_key(""))
        with pytest.raises(StoreOperationFailed, match="Failed to deactivate API key"):
            asyncio.run(keys.deactivate_api_key(None))

    def test_listing_failure_is_wrapped(self, failing_backend):
        keys = ApiKeyService(DocumentStoreService(failing_backend), AcceptingVerifier())
        failing_backend.failing_operations.add("query")
        with pytest.raises(StoreOperationFailed, match="Failed to fetch API keys"):
            asyncio.run(keys.list_api_keys("alice"))

    def test_check_skips_provider_for_bad_format(self, store):
        """Test that malformed keys are refused locally."""

        class ExplodingVerifier:
            async def verify(self, api_key):
                raise AssertionError("provider should not be called")

        keys = ApiKeyService(store, ExplodingVerifier())
        assert asyncio.run(keys.test_api_key("nope")) is False

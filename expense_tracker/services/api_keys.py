"""
API Key Management

Users register their own OpenAI API key so that AI-backed features can
run on their account. Keys live in the owner-scoped `apiKeys`
collection, one document per label:

    encryptedKey | maskedKey | label | keyType | isActive | lastUsed | usageCount

SECURITY NOTE:
`encryptedKey` is obfuscated, not encrypted. The key is XORed with the
owner id and base64 encoded, which keeps it out of casual view in the
spreadsheet but protects nothing from someone who knows the scheme.
Listings never include it; only `get_api_key` reveals the key.
"""

import base64
import binascii
import math
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional

import httpx

from expense_tracker.config import get_settings
from expense_tracker.logs import get_logger
from expense_tracker.models import ApiKeyInfo, Collection, coerce_amount, parse_records
from expense_tracker.services.document_store import DocumentStoreService, StoreOperationFailed
from expense_tracker.services.storage import StorageError


DEFAULT_LABEL = "Default"
KEY_TYPE = "openai"


def validate_api_key_format(api_key: object) -> bool:
    """OpenAI keys start with 'sk-' and are longer than 20 characters."""
    return isinstance(api_key, str) and api_key.startswith("sk-") and len(api_key) > 20


def mask_api_key(api_key: str) -> str:
    """Keep the first 7 and last 4 characters visible."""
    return f"{api_key[:7]}{'•' * max(len(api_key) - 11, 0)}{api_key[-4:]}"


def obfuscate_key(api_key: str, secret: str) -> str:
    """XOR `api_key` with `secret` and base64 encode the result."""
    if not secret:
        raise ValueError("Failed to encrypt API key")
    data = api_key.encode("utf-8")
    pad = secret.encode("utf-8")
    mixed = bytes(byte ^ pad[i % len(pad)] for i, byte in enumerate(data))
    return base64.b64encode(mixed).decode("ascii")


def reveal_key(encoded: object, secret: str) -> str:
    """Undo `obfuscate_key`. Unreadable input gives an empty string."""
    if not isinstance(encoded, str) or not secret:
        return ""
    try:
        mixed = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return ""
    pad = secret.encode("utf-8")
    data = bytes(byte ^ pad[i % len(pad)] for i, byte in enumerate(mixed))
    return data.decode("utf-8", errors="replace")


class ApiKeyVerifier:
    """
    Asks the provider whether a key is accepted, by listing its models.

    Network failures count as "not accepted"; they are logged, not raised.

    Args:
        url: Endpoint to call. Defaults to the `api_key_check_url` setting.
        timeout: Seconds to wait. Defaults to the `api_key_check_timeout` setting.
        transport: Optional httpx transport (tests pass a mock transport)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        app_settings = get_settings().app
        self._url = url if url is not None else app_settings.api_key_check_url
        self._timeout = timeout if timeout is not None else app_settings.api_key_check_timeout
        self._transport = transport
        self._logger = get_logger(__name__)

    async def verify(self, api_key: str) -> bool:
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout,
            ) as client:
                response = await client.get(
                    self._url,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            self._logger.warning("api_key_check_failed", error=str(e))
            return False

        return response.is_success


class ApiKeyService:
    """
    Owner-scoped CRUD for API keys on top of the document store.

    Failures surface as StoreOperationFailed with an API-key specific
    message ("Failed to save API key: ...").
    """

    def __init__(
        self,
        store: DocumentStoreService,
        verifier: Optional[ApiKeyVerifier] = None,
    ):
        self._store = store
        self._verifier = verifier or ApiKeyVerifier()
        self._logger = get_logger(__name__)

    def _fail(self, operation: str, message: str, error: Exception, **context: Any) -> NoReturn:
        self._logger.error(
            "api_key_operation_failed",
            operation=operation,
            error=str(error),
            **context,
        )
        raise StoreOperationFailed(operation, f"{message}: {error}", error) from error

    @staticmethod
    def _validate_key_id(key_id: object) -> None:
        if not isinstance(key_id, str) or not key_id:
            raise ValueError("Valid key document ID is required")

    async def test_api_key(self, api_key: str) -> bool:
        """Check the key's format, then ask the provider. Never raises."""
        if not validate_api_key_format(api_key):
            return False
        return await self._verifier.verify(api_key)

    async def save_api_key(self, owner_id: str, api_key: str, label: str = DEFAULT_LABEL) -> str:
        """
        Store a key under `label`, replacing any key the owner already
        has with that label.

        Returns:
            The key document id
        """
        label = label or DEFAULT_LABEL
        try:
            DocumentStoreService.validate_owner_id(owner_id)
            if not validate_api_key_format(api_key):
                raise ValueError("Invalid OpenAI API key format")

            existing = await self._store.get_all_for_owner(Collection.API_KEYS, owner_id)
            existing_id = next(
                (document["id"] for document in existing if document.get("label") == label),
                None,
            )

            return await self._store.save_or_update(
                Collection.API_KEYS,
                owner_id,
                {
                    "encryptedKey": obfuscate_key(api_key, owner_id),
                    "maskedKey": mask_api_key(api_key),
                    "label": label,
                    "keyType": KEY_TYPE,
                    "isActive": True,
                    "lastUsed": None,
                    "usageCount": 0,
                },
                existing_id,
            )
        except Exception as e:
            self._fail("save_api_key", "Failed to save API key", e, label=label)

    async def get_api_key(self, owner_id: str, label: str = DEFAULT_LABEL) -> Optional[str]:
        """
        Reveal the owner's active key with `label`, or None.

        Each successful read bumps the key's usage counters.
        """
        try:
            DocumentStoreService.validate_owner_id(owner_id)
            documents = await self._store.get_all_for_owner(Collection.API_KEYS, owner_id)
        except Exception as e:
            self._fail("get_api_key", "Failed to retrieve API key", e, label=label)

        document = next(
            (
                document
                for document in documents
                if document.get("label") == label and document.get("isActive")
            ),
            None,
        )
        if document is None:
            return None

        api_key = reveal_key(document.get("encryptedKey"), owner_id)
        await self.record_usage(document["id"])
        return api_key

    async def list_api_keys(self, owner_id: str) -> list[ApiKeyInfo]:
        """The owner's keys, newest first, without the key material."""
        try:
            documents = await self._store.get_all_for_owner(
                Collection.API_KEYS,
                owner_id,
                order_field="createdAt",
                direction="desc",
            )
        except Exception as e:
            self._fail("list_api_keys", "Failed to fetch API keys", e)

        keys, rejected = parse_records(
            ApiKeyInfo,
            (
                {name: value for name, value in document.items() if name != "encryptedKey"}
                for document in documents
            ),
        )
        for document_id, error in rejected:
            self._logger.warning(
                "document_skipped",
                collection=Collection.API_KEYS.value,
                document_id=document_id,
                error=error,
            )
        return keys

    async def record_usage(self, key_id: str) -> None:
        """
        Bump `usageCount` and set `lastUsed`.

        Usage tracking is best effort: failures are logged, not raised.
        """
        try:
            document = await self._store.get_by_id(Collection.API_KEYS, key_id)
            if document is None:
                return
            count = coerce_amount(document.get("usageCount"))
            await self._store.update_document(
                Collection.API_KEYS,
                key_id,
                {
                    "lastUsed": datetime.now(timezone.utc),
                    "usageCount": (int(count) if math.isfinite(count) else 0) + 1,
                },
            )
        except StorageError as e:
            self._logger.warning("api_key_usage_not_recorded", key_id=key_id, error=str(e))

    async def delete_api_key(self, key_id: str) -> None:
        try:
            self._validate_key_id(key_id)
            await self._store.delete(Collection.API_KEYS, key_id)
        except Exception as e:
            self._fail("delete_api_key", "Failed to delete API key", e, key_id=key_id)

    async def deactivate_api_key(self, key_id: str) -> None:
        """Soft delete: the key stays stored but is no longer used."""
        try:
            self._validate_key_id(key_id)
            await self._store.update_document(Collection.API_KEYS, key_id, {"isActive": False})
        except Exception as e:
            self._fail("deactivate_api_key", "Failed to deactivate API key", e, key_id=key_id)

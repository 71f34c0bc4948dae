"""Remote gateway for the authoritative record source.

This module provides:
- RemoteGateway: Protocol for fetch-all / post-one against a remote source
- RemoteItem: Wire representation of a remote item
- HTTPGateway: httpx-based implementation

No retry logic lives here. Failed posts are retried by the offline queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from recordsync.core.errors import NetworkError, ValidationError
from recordsync.core.types import Record, RecordSource

if TYPE_CHECKING:
    from recordsync.core.config import GatewayConfig

logger = logging.getLogger(__name__)

# Category used when a remote item carries no usable category
DEFAULT_REMOTE_CATEGORY = "Server"
MAX_DERIVED_CATEGORY_LENGTH = 40


class RemoteGateway(Protocol):
    """Protocol for the remote record source."""

    async def fetch_all(self) -> list[Record]:
        """Fetch every remote record.

        Raises:
            NetworkError: On transport failure or non-2xx response.
        """
        ...

    async def post_one(self, record: Record) -> Record:
        """Deliver one record.

        Returns:
            The record as stored remotely (remote id and last_modified).

        Raises:
            NetworkError: On transport failure or non-2xx response.
        """
        ...


def derive_category(item: dict[str, Any]) -> str:
    """Derive a record category from a remote item.

    Uses an explicit 'category' field when present, otherwise the body
    when it is a short single line, otherwise DEFAULT_REMOTE_CATEGORY.
    """
    category = item.get("category")
    if isinstance(category, str) and category.strip():
        return category.strip()

    body = item.get("body")
    if isinstance(body, str):
        body = body.strip()
        if body and "\n" not in body and len(body) <= MAX_DERIVED_CATEGORY_LENGTH:
            return body

    return DEFAULT_REMOTE_CATEGORY


@dataclass
class RemoteItem:
    """Item as returned by the remote collection."""

    id: str
    title: str
    body: str
    category: str

    @classmethod
    def from_dict(cls, data: Any) -> RemoteItem:
        """Create from API response dictionary.

        Raises:
            ValidationError: If the item is not {id, title, body}-shaped.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Remote item must be an object, got {type(data).__name__}")
        item_id = data.get("id")
        if item_id is None or isinstance(item_id, bool) or item_id == "":
            raise ValidationError("Remote item is missing an id")
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError(f"Remote item {item_id} has no title")
        body = data.get("body")
        return cls(
            id=str(item_id),
            title=title.strip(),
            body=body if isinstance(body, str) else "",
            category=derive_category(data),
        )

    def to_record(self, last_modified: datetime | None = None) -> Record:
        """Map to a Record tagged as coming from the server."""
        return Record(
            id=self.id,
            text=self.title,
            category=self.category,
            source=RecordSource.SERVER,
            last_modified=last_modified,
        )


class HTTPGateway:
    """HTTP client for the remote record collection."""

    def __init__(
        self,
        config: GatewayConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            config: Remote URL, collection, owner and timeout.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HTTPGateway:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Raise NetworkError on any non-2xx response."""
        if not response.is_success:
            raise NetworkError(
                f"{response.request.method} {response.request.url} "
                f"returned HTTP {response.status_code}",
                response.status_code,
            )
        return response

    async def _request(self, method: str, **kwargs: Any) -> httpx.Response:
        path = f"/{self._config.collection}"
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e
        return self._handle_response(response)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(
                f"Invalid JSON in response from {response.request.url}",
                response.status_code,
            ) from e

    async def fetch_all(self) -> list[Record]:
        """Fetch all remote records.

        Malformed items are skipped with a warning.

        Returns:
            Records tagged RecordSource.SERVER, in remote order.
        """
        response = await self._request("GET")
        data = self._decode(response)
        if not isinstance(data, list):
            raise NetworkError("Expected a list of items from remote collection")

        records: list[Record] = []
        for entry in data:
            try:
                records.append(RemoteItem.from_dict(entry).to_record())
            except ValidationError as e:
                logger.warning(f"Skipping malformed remote item: {e}")

        logger.debug("Fetched %d remote records", len(records))
        return records

    async def post_one(self, record: Record) -> Record:
        """Post one record.

        Sends {title, body, ownerRef} and keeps the local text/category,
        taking the id assigned by the remote.
        """
        payload = {
            "title": record.text,
            "body": record.category,
            "ownerRef": self._config.owner_ref,
        }
        response = await self._request("POST", json=payload)
        data = self._decode(response)
        remote_id = data.get("id") if isinstance(data, dict) else None
        if remote_id is None:
            raise NetworkError("Remote did not assign an id to the posted record")

        logger.debug("Posted record %s, remote id %s", record.id, remote_id)
        return Record(
            id=str(remote_id),
            text=record.text,
            category=record.category,
            source=RecordSource.SERVER,
            last_modified=datetime.now(UTC),
        )

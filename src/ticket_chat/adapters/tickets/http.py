"""Ticket store adapter for the ticket REST API.

Talks to the application's ticket endpoints with httpx:
- ``GET  {base_url}/tickets/{id}``
- ``PUT  {base_url}/tickets/{id}/status`` with ``{"status": ...}``

Conditional status writes read the ticket first and also send
``expectedStatus``; a 409 from the API maps to ``ConflictError``.

Transport failures are retried with exponential backoff (tenacity);
HTTP error statuses are mapped onto the chat error taxonomy.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
import structlog

from ...config.schema import HttpTicketStoreConfig, RetryConfig
from ...models.ticket import Ticket, TicketStatus
from ...utils.async_helpers import (
    AccessDenied,
    ConflictError,
    NotFound,
    StoreError,
    create_retry,
)

log = structlog.get_logger()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    # The API emits JavaScript ISO strings ending in "Z"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _ref_id(value: Any) -> str | None:
    """Return the id of a possibly-populated reference field."""
    if value is None:
        return None
    if isinstance(value, dict):
        return str(value.get("_id") or value.get("id"))
    return str(value)


def parse_ticket(data: dict[str, Any]) -> Ticket:
    """Build a Ticket from the API's JSON document.

    Args:
        data: Ticket document as returned by the API

    Returns:
        Parsed Ticket

    Raises:
        StoreError: If required fields are missing or invalid
    """
    try:
        return Ticket(
            ticket_id=str(data.get("_id") or data["id"]),
            student_id=str(_ref_id(data["student"])),
            teacher_id=_ref_id(data.get("assignedTo")),
            status=TicketStatus(data.get("status", TicketStatus.OPEN.value)),
            title=data.get("title", ""),
            category=data.get("category", ""),
            resolved_at=_parse_timestamp(data.get("resolvedAt")),
            closed_at=_parse_timestamp(data.get("closedAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
        )
    except (KeyError, ValueError) as e:
        raise StoreError(f"Malformed ticket document: {e}") from e


class HttpTicketStore:
    """TicketStore implemented over the ticket REST API.

    Example:
        config = HttpTicketStoreConfig(base_url="http://localhost:8080/api")
        async with HttpTicketStore(config) as tickets:
            ticket = await tickets.get_ticket("665f...")
    """

    def __init__(
        self,
        config: HttpTicketStoreConfig,
        retry_config: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            config: API location and credentials
            retry_config: Backoff settings for transport errors
            client: Pre-built client (tests inject one with a MockTransport)
        """
        self._config = config
        headers = {"Accept": "application/json"}
        if config.api_token:
            headers["Authorization"] = f"Bearer {config.api_token}"
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            timeout=config.timeout,
        )
        self._owns_client = client is None

        retry_config = retry_config or RetryConfig()
        self._retry = create_retry(
            max_attempts=retry_config.max_attempts,
            min_wait=retry_config.initial_delay,
            max_wait=retry_config.max_delay,
        )

    async def __aenter__(self) -> HttpTicketStore:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    async def get_ticket(self, ticket_id: str) -> Ticket:
        data = await self._request("GET", f"/tickets/{ticket_id}", ticket_id)
        return parse_ticket(data)

    async def update_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        resolved_at: datetime | None = None,
        closed_at: datetime | None = None,
        expected_status: TicketStatus | None = None,
    ) -> Ticket:
        body: dict[str, Any] = {"status": status.value}
        if expected_status is not None:
            # The API has no conditional update; narrow the window with a read
            current = await self.get_ticket(ticket_id)
            if current.status != expected_status:
                raise ConflictError(
                    f"Ticket {ticket_id} is {current.status.value}, "
                    f"expected {expected_status.value}",
                    existing_id=ticket_id,
                )
            body["expectedStatus"] = expected_status.value
        if resolved_at is not None:
            body["resolvedAt"] = resolved_at.isoformat()
        if closed_at is not None:
            body["closedAt"] = closed_at.isoformat()

        data = await self._request("PUT", f"/tickets/{ticket_id}/status", ticket_id, json=body)
        log.info("ticket_status_written", ticket_id=ticket_id, status=status.value)
        return parse_ticket(data)

    async def ping(self) -> bool:
        """Return True when the API answers at all."""
        try:
            response = await self._client.get("/tickets", params={"limit": 1})
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    async def _request(
        self,
        method: str,
        path: str,
        ticket_id: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        @self._retry
        async def send() -> httpx.Response:
            return await self._client.request(method, path, json=json)

        try:
            response = await send()
        except httpx.HTTPError as e:
            log.error("ticket_api_unreachable", method=method, path=path, error=str(e))
            raise StoreError(f"Ticket API request failed: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"Ticket not found: {ticket_id}")
        if response.status_code in (401, 403):
            raise AccessDenied(f"Ticket API refused access to {ticket_id}")
        if response.status_code == 409:
            raise ConflictError(
                f"Ticket API rejected {method} {path} as conflicting", existing_id=ticket_id
            )
        if response.status_code >= 400:
            raise StoreError(
                f"Ticket API returned {response.status_code} for {method} {path}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            log.error("ticket_api_bad_body", method=method, path=path, error=str(e))
            raise StoreError(f"Ticket API returned a non-JSON body for {method} {path}") from e
        if not isinstance(payload, dict):
            raise StoreError("Ticket API returned a non-object body")
        return payload

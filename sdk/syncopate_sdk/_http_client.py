"""
Internal HTTP client for Syncopate SDK.

This module provides the low-level HTTP communication layer:
- HttpTransport: JSON request/response over httpx with optional retries
- StoreApi: One method per store endpoint

It is internal to the SDK and should not be used directly by users.
Users should use SyncopateClient instead.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from .errors import ApiError, TransportError, error_from_response
from .join import JoinQueryOptions
from .query import QueryOptions
from .validate import validate_query

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080"
API_PREFIX = "/api/v1"


class Transport(Protocol):
    """Request capability consumed by StoreApi."""

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: dict[str, Any] | None = None,
    ) -> Any: ...


class HttpTransport:
    """JSON over HTTP transport backed by httpx.Client.

    Network failures become TransportError and are retried when
    ``retry_failed`` is set. Store error bodies are raised as the most
    specific ApiError subclass.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 30.0,
        retry_failed: bool = False,
        max_retries: int = 3,
        retry_delay: int = 1000,
        headers: dict[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Store base URL
            timeout: Request timeout in seconds
            retry_failed: Retry requests that fail at the network level
            max_retries: Retries after the first attempt
            retry_delay: Pause between retries in milliseconds
            headers: Extra headers sent with every request
            client: Preconfigured httpx.Client (not closed by this transport)
        """
        self._base_url = base_url.rstrip("/")
        self._retry_failed = retry_failed
        self._max_retries = max(0, max_retries)
        self._retry_delay = retry_delay
        self._owns_client = client is None
        default_headers = {"Accept": "application/json", **(headers or {})}
        if client is None:
            client = httpx.Client(
                base_url=self._base_url,
                timeout=timeout,
                headers=default_headers,
            )
        else:
            client.headers.update(default_headers)
        self._client = client

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request and decode the JSON response.

        Raises:
            TransportError: The store could not be reached
            ApiError: The store reported a failure
        """
        attempts = 1 + (self._max_retries if self._retry_failed else 0)
        last_error: httpx.TransportError | None = None

        for attempt in range(1, attempts + 1):
            logger.debug(f"{method} {path} (attempt {attempt}/{attempts})")
            try:
                response = self._client.request(method, path, json=body, params=query)
            except httpx.TransportError as e:
                last_error = e
                logger.debug(f"{method} {path} failed: {e}")
                if attempt < attempts:
                    time.sleep(self._retry_delay / 1000)
                continue
            return self._decode(method, path, response)

        raise TransportError(
            f"Failed to reach store at {self._base_url}: {last_error}",
            url=f"{self._base_url}{path}",
        ) from last_error

    def _decode(self, method: str, path: str, response: httpx.Response) -> Any:
        if not response.content:
            if response.is_success:
                return {}
            raise error_from_response(
                {"message": response.reason_phrase or f"HTTP {response.status_code}"},
                response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError(
                f"Invalid JSON response from {method} {path}",
                status_code=response.status_code,
            ) from e

        if not response.is_success:
            raise error_from_response(payload, response.status_code)
        if isinstance(payload, dict) and payload.get("error"):
            raise error_from_response(payload)
        return payload


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


def is_delete_confirmed(response: Any) -> bool:
    """Whether a delete response reports success."""
    if not isinstance(response, dict):
        return False
    if response.get("deleted") is True:
        return True
    message = response.get("message")
    return isinstance(message, str) and "success" in message.lower()


class StoreApi:
    """Store endpoints.

    Query-bearing calls validate their payload before anything is sent.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    @property
    def transport(self) -> Transport:
        return self._transport

    # Server

    def get_info(self) -> dict[str, Any]:
        return self._transport.request("GET", "/")

    def get_settings(self) -> dict[str, Any]:
        return self._transport.request("GET", "/settings")

    def health(self) -> dict[str, Any]:
        return self._transport.request("GET", "/health")

    # Entity types

    def get_entity_types(self) -> list[str]:
        response = self._transport.request("GET", f"{API_PREFIX}/entity-types")
        if isinstance(response, dict):
            response = response.get("data") or response.get("entityTypes") or []
        return [item["name"] if isinstance(item, dict) else str(item) for item in response]

    def get_entity_type(self, name: str) -> dict[str, Any]:
        return self._transport.request("GET", f"{API_PREFIX}/entity-types/{_segment(name)}")

    def create_entity_type(self, definition: dict[str, Any]) -> dict[str, Any]:
        return self._transport.request("POST", f"{API_PREFIX}/entity-types", definition)

    def update_entity_type(self, name: str, definition: dict[str, Any]) -> dict[str, Any]:
        return self._transport.request(
            "PUT", f"{API_PREFIX}/entity-types/{_segment(name)}", definition
        )

    # Entities

    def get_entities(self, entity_type: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._transport.request(
            "GET", f"{API_PREFIX}/entities/{_segment(entity_type)}", query=params
        )

    def create_entity(self, entity_type: str, record: dict[str, Any]) -> dict[str, Any]:
        return self._transport.request(
            "POST", f"{API_PREFIX}/entities/{_segment(entity_type)}", record
        )

    def get_entity(self, entity_type: str, entity_id: str | int) -> dict[str, Any]:
        return self._transport.request(
            "GET", f"{API_PREFIX}/entities/{_segment(entity_type)}/{_segment(entity_id)}"
        )

    def update_entity(
        self, entity_type: str, entity_id: str | int, fields: dict[str, Any]
    ) -> dict[str, Any]:
        return self._transport.request(
            "PUT",
            f"{API_PREFIX}/entities/{_segment(entity_type)}/{_segment(entity_id)}",
            {"fields": fields},
        )

    def delete_entity(self, entity_type: str, entity_id: str | int) -> dict[str, Any]:
        return self._transport.request(
            "DELETE", f"{API_PREFIX}/entities/{_segment(entity_type)}/{_segment(entity_id)}"
        )

    def truncate_entity_type(self, entity_type: str) -> dict[str, Any]:
        return self._transport.request(
            "DELETE", f"{API_PREFIX}/entities/{_segment(entity_type)}/truncate"
        )

    def truncate_database(self) -> dict[str, Any]:
        return self._transport.request("DELETE", f"{API_PREFIX}/truncate")

    # Queries

    def query(self, options: QueryOptions) -> dict[str, Any]:
        validate_query(options)
        return self._transport.request("POST", f"{API_PREFIX}/query", options.to_wire())

    def query_count(self, options: QueryOptions) -> dict[str, Any]:
        validate_query(options)
        return self._transport.request("POST", f"{API_PREFIX}/query/count", options.to_wire())

    def join_query(self, options: JoinQueryOptions) -> dict[str, Any]:
        validate_query(options)
        return self._transport.request("POST", f"{API_PREFIX}/query/join", options.to_wire())

    def join_query_count(self, options: JoinQueryOptions) -> dict[str, Any]:
        validate_query(options)
        return self._transport.request(
            "POST", f"{API_PREFIX}/query/join/count", options.to_wire()
        )

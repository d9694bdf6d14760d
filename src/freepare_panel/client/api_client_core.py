"""Freepare backend client - core CRUD calls and response handling."""

import asyncio
import sys
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from ..models import (
    SERVER_ERROR_MESSAGE,
    APIConfiguration,
    AuthenticationError,
    Entity,
    EntityCreateRequest,
    EntityUpdateRequest,
    Forest,
    NetworkError,
    PaperTestNameRequest,
    RemoteStoreError,
    RemoteTimeoutError,
    ReorderRequest,
)

# Base delay (seconds) for exponential backoff on read retries.
READ_RETRY_BASE_DELAY = 1.0


def log_event(message: str, component: str = "CLIENT") -> None:
    """Log an event to stderr with timestamp and consistent formatting."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] [{component}] {message}", file=sys.stderr, flush=True)


class _ClientLogger:
    """Small logger facade over :func:`log_event` with a fixed component tag."""

    def __init__(self, component: str = "CLIENT") -> None:
        self._component = component

    def info(self, msg: object) -> None:
        log_event(str(msg), self._component)

    def warning(self, msg: object) -> None:
        log_event(f"WARNING: {msg}", self._component)

    def error(self, msg: object) -> None:
        log_event(f"ERROR: {msg}", self._component)


def _is_transient(err: RemoteStoreError) -> bool:
    """Transport failures, timeouts and 5xx responses are worth retrying."""
    if isinstance(err, (NetworkError, RemoteTimeoutError)):
        return True
    return err.status_code is not None and err.status_code >= 500


def _entity_from(data: Any) -> Entity:
    # Most endpoints return the entity itself; tolerate an {"entity": {...}} wrapper
    if isinstance(data, dict) and "entity" in data and isinstance(data["entity"], dict):
        data = data["entity"]
    try:
        return Entity.model_validate(data)
    except ValidationError as err:
        raise RemoteStoreError("Invalid response format from server") from err


class PanelClientCore:
    """Core Freepare API client - one method per backend endpoint.

    Mutating calls are attempted exactly once; the caller decides how to
    recover. Only :meth:`list_entities` retries.
    """

    def __init__(self, config: APIConfiguration):
        """Initialize the client (the HTTP connection is opened lazily)."""
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.retry_base_delay = READ_RETRY_BASE_DELAY
        self._client: httpx.AsyncClient | None = None
        self._logger = _ClientLogger()

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PanelClientCore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _handle_response(self, response: httpx.Response) -> Any:
        """Turn an HTTP response into JSON data or a ``RemoteStoreError``."""
        if response.status_code < 400:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as err:
                raise RemoteStoreError("Invalid response format from server") from err

        message: str | None = None
        try:
            error_data = response.json()
            if isinstance(error_data, dict):
                message = error_data.get("message") or error_data.get("error")
        except ValueError:
            pass

        if response.status_code == 401:
            raise AuthenticationError(message) if message else AuthenticationError()
        if response.status_code == 404:
            raise RemoteStoreError(message or "Resource not found", status_code=404)
        if response.status_code >= 500 and not message:
            raise RemoteStoreError(SERVER_ERROR_MESSAGE, status_code=response.status_code)
        raise RemoteStoreError(
            message or f"Request failed ({response.status_code})", status_code=response.status_code
        )

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        """Send one request, mapping transport failures onto the error taxonomy."""
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as err:
            self._logger.warning(f"Timeout during {operation}: {err}")
            raise RemoteTimeoutError(operation) from err
        except httpx.TransportError as err:
            self._logger.warning(f"Network error during {operation}: {err}")
            raise NetworkError() from err
        except httpx.HTTPError as err:
            self._logger.warning(f"Request error during {operation}: {err}")
            raise RemoteStoreError(f"Request failed: {err}") from err
        return await self._handle_response(response)

    async def list_entities(self, max_retries: int | None = None) -> list[dict[str, Any]]:
        """Fetch the whole nested entity tree, retrying transient failures.

        Args:
            max_retries: Maximum attempts (defaults to the configured value)
        """
        attempts = max_retries or self.config.read_max_retries
        retry_count = 0

        while True:
            try:
                data = await self._request("GET", "/entities", "list_entities")
                if isinstance(data, dict):
                    data = data.get("entities") or data.get("data") or []
                if not isinstance(data, list):
                    raise RemoteStoreError("Invalid response format from server")
                return data

            except RemoteStoreError as err:
                retry_count += 1
                if not _is_transient(err) or retry_count >= attempts:
                    self._logger.error(f"list_entities failed after {retry_count} attempt(s): {err}")
                    raise
                delay = self.retry_base_delay * (2 ** (retry_count - 1))
                self._logger.warning(
                    f"list_entities: {err}. Retry {retry_count}/{attempts} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def create_entity(self, request: EntityCreateRequest) -> Entity:
        """Create an entity; the response carries the backend-assigned ``_id``."""
        data = await self._request("POST", "/entities", "create_entity", json=request.to_payload())
        entity = _entity_from(data)
        self._logger.info(f"Created {entity.type.value} '{entity.name}' ({entity.id})")
        return entity

    async def update_entity(self, entity_id: str, request: EntityUpdateRequest) -> Entity:
        """Rename an entity and return the backend's copy of it."""
        data = await self._request(
            "PUT", f"/entities/{entity_id}", "update_entity", json=request.model_dump()
        )
        return _entity_from(data)

    async def delete_entity(self, entity_id: str) -> bool:
        """Delete an entity (and, server side, everything beneath it)."""
        await self._request("DELETE", f"/entities/{entity_id}", "delete_entity")
        self._logger.info(f"Deleted entity {entity_id}")
        return True

    async def reorder_entities(self, forest: Forest) -> None:
        """Persist the positions of the whole forest."""
        await self._request(
            "POST",
            "/entities/reorder",
            "reorder_entities",
            json=ReorderRequest(updatedData=forest).to_payload(),
        )

    async def rename_test_name(self, entity_id: str, request: PaperTestNameRequest) -> Entity:
        """Change the test name attached to a paper."""
        data = await self._request(
            "PUT",
            f"/entities/{entity_id}/renameTestName",
            "rename_test_name",
            json=request.model_dump(),
        )
        return _entity_from(data)

"""
Convex Streaming Export HTTP Client.

Implements the Source capability against a real deployment:
- GET /api/json_schemas
- GET /api/list_snapshot
- GET /api/document_deltas

Rate limiting and transport errors are retried a bounded number of times;
anything else is raised to the caller as SourceError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from convex_sync import __version__
from convex_sync.config import HttpOptions, Settings
from convex_sync.connectors.source import (
    DocumentDeltasResponse,
    ListSnapshotResponse,
    Source,
)
from convex_sync.errors import SourceError, SourceUnavailable


logger = logging.getLogger(__name__)

CLIENT_HEADER = "Convex-Client"
CLIENT_HEADER_VALUE = f"convex-sync-{__version__}"


class ConvexClient(Source):
    """
    Convex deployment client over HTTP.

    Example:
        async with ConvexClient(
            deploy_url="https://aware-llama-900.convex.cloud",
            deploy_key="prod:aware-llama-900|...",
        ) as client:
            page = await client.list_snapshot(None, None)
    """

    def __init__(
        self,
        deploy_url: str,
        deploy_key: str,
        options: HttpOptions | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            deploy_url: Root URL of the deployment
            deploy_key: Deploy key with admin access
            options: HTTP options (optional, uses defaults)
            transport: Custom httpx transport (used by tests)
        """
        self.deploy_url = deploy_url.rstrip("/") + "/"
        self.deploy_key = deploy_key
        self.options = options or HttpOptions()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def __str__(self) -> str:
        return self.deploy_url

    @property
    def api_url(self) -> str:
        """Base URL for streaming export endpoints."""
        return f"{self.deploy_url}api/"

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with authentication."""
        return {
            "Authorization": f"Convex {self.deploy_key}",
            CLIENT_HEADER: CLIENT_HEADER_VALUE,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._get_headers(),
                timeout=httpx.Timeout(
                    connect=self.options.connect_timeout_seconds,
                    read=self.options.read_timeout_seconds,
                    write=30.0,
                    pool=10.0,
                ),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ConvexClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        GET an endpoint of the streaming export API.

        Null parameters are dropped and `format=convex_json` is always sent.

        Handles:
        - Rate limiting (429) with Retry-After
        - Transient transport errors with retry
        """
        client = await self._get_client()
        url = f"{self.api_url}{endpoint}"
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}
        query["format"] = "convex_json"

        max_retries = self.options.max_retries
        retry_delay = self.options.retry_delay_seconds

        for attempt in range(max_retries):
            try:
                response = await client.get(url, params=query)
            except httpx.TransportError as e:
                if attempt < max_retries - 1:
                    logger.debug(f"{endpoint}: transport error ({e}), retrying")
                    await asyncio.sleep(retry_delay * (attempt + 1))
                    continue
                raise SourceUnavailable(
                    f"Call to {endpoint} on {self.deploy_url} caused an error: {e}"
                ) from e
            except httpx.RequestError as e:
                # Undecodable bodies and redirect loops are not retried
                raise SourceError(
                    f"Call to {endpoint} on {self.deploy_url} returned a malformed response: {e}"
                ) from e

            if response.status_code == 429:
                retry_after = _retry_after(response, default=retry_delay * (attempt + 1))
                if attempt < max_retries - 1:
                    logger.debug(f"{endpoint}: rate limited, retrying in {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue
                raise SourceError(
                    f"Call to {endpoint} on {self.deploy_url} was rate limited",
                    status=429,
                )

            if not response.is_success:
                raise SourceError(
                    f"Call to {endpoint} on {self.deploy_url} returned an "
                    f"unsuccessful response: {response.status_code} {_error_body(response)}",
                    status=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise SourceError(
                    f"Failed to deserialize {endpoint} result: {e}",
                    status=response.status_code,
                ) from e

        raise SourceUnavailable("Max retries exceeded")

    async def json_schemas(self) -> dict[str, Any]:
        data = await self._get("json_schemas")
        if not isinstance(data, dict):
            raise SourceError("json_schemas response must be a JSON object")
        return data

    async def list_snapshot(
        self,
        snapshot: int | None,
        cursor: str | None,
        table_name: str | None = None,
    ) -> ListSnapshotResponse:
        data = await self._get(
            "list_snapshot",
            {
                "snapshot": snapshot,
                "cursor": cursor,
                "tableName": table_name,
            },
        )
        response = ListSnapshotResponse.from_dict(data)
        logger.debug(
            f"list_snapshot: {len(response.values)} values, "
            f"snapshot={response.snapshot}, has_more={response.has_more}"
        )
        return response

    async def document_deltas(
        self,
        cursor: int | str,
        table_name: str | None = None,
    ) -> DocumentDeltasResponse:
        data = await self._get(
            "document_deltas",
            {
                "cursor": cursor,
                "tableName": table_name,
            },
        )
        response = DocumentDeltasResponse.from_dict(data)
        logger.debug(
            f"document_deltas: {len(response.values)} values, "
            f"cursor={response.cursor}, has_more={response.has_more}"
        )
        return response


def _retry_after(response: httpx.Response, default: float) -> float:
    try:
        return float(response.headers.get("Retry-After", default))
    except ValueError:
        return default


def _error_body(response: httpx.Response) -> str:
    text = response.text
    return text[:500] if text else ""


# Convenience function for creating client from settings
def create_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConvexClient:
    """Create a ConvexClient from settings."""
    return ConvexClient(
        deploy_url=settings.deploy_url,
        deploy_key=settings.deploy_key.get_secret_value(),
        options=settings.http,
        transport=transport,
    )

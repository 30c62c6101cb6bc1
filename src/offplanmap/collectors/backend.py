"""HTTP client for the paginated property backend.

Requests go to the primary backend first. Only when the primary cannot be
reached at all (connection refused, DNS failure, timeout) is the fallback
backend tried; a primary that answers with an error status is reported as is.
Each parsed page records which backend served it.

Backend contract:
    GET <endpoint>?page=<n>&limit=<m>[&filters...]
    -> {"success": bool, "data": [...], "pagination": {"page", "limit",
        "totalPages", "total"}}
"""

import logging
from collections.abc import Callable
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models.property import PageResponse
from .base import BackendHTTPError, BackendUnavailableError, InvalidResponseError

logger = logging.getLogger(__name__)

PRIMARY = "primary"
FALLBACK = "fallback"


class BackendClient:
    """Async client for the property backend with primary/fallback resolution.

    Example:
        async with BackendClient() as client:
            page = await client.fetch_page("/api/properties", page=1, limit=12)
            print(page.backend_used, len(page.data))
    """

    def __init__(
        self,
        primary_url: Optional[str] = None,
        fallback_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_request: Optional[Callable[[str], None]] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the backend client.

        Args:
            primary_url: Primary backend base URL (defaults to settings)
            fallback_url: Fallback backend base URL; None or empty disables it
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
            on_request: Called with the URL of every HTTP attempt
            settings: Settings to read defaults from
        """
        settings = settings or Settings()
        self.primary_url = (primary_url or settings.backend_url).rstrip("/")
        fallback = settings.fallback_backend_url if fallback_url is None else fallback_url
        self.fallback_url = fallback.rstrip("/") if fallback else None
        self.timeout = timeout or settings.request_timeout
        self._transport = transport
        self._on_request = on_request
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def build_url(self, base_url: str, endpoint: str) -> str:
        return f"{base_url}/{endpoint.lstrip('/')}"

    async def _get(self, url: str, params: dict[str, Any]) -> httpx.Response:
        if self._on_request is not None:
            self._on_request(url)
        return await self._get_client().get(url, params=params)

    async def get_json(
        self, endpoint: str, params: Optional[dict[str, Any]] = None
    ) -> tuple[Any, str, str]:
        """GET ``endpoint`` on the primary backend, falling back if unreachable.

        Returns:
            Tuple of (decoded JSON body, backend used, URL requested)

        Raises:
            BackendUnavailableError: If no backend could be reached
            BackendHTTPError: If the backend answered with a non-2xx status
            InvalidResponseError: If the body is not JSON
        """
        params = {k: v for k, v in (params or {}).items() if v is not None}
        backend_used = PRIMARY
        url = self.build_url(self.primary_url, endpoint)

        try:
            response = await self._get(url, params)
        except httpx.TransportError as primary_error:
            if not self.fallback_url:
                raise BackendUnavailableError(
                    f"Primary backend unreachable: {primary_error}"
                ) from primary_error
            logger.warning(f"Primary backend failed ({primary_error}), trying fallback...")
            backend_used = FALLBACK
            url = self.build_url(self.fallback_url, endpoint)
            try:
                response = await self._get(url, params)
            except httpx.TransportError as fallback_error:
                logger.error(f"Both backends failed for {endpoint}")
                raise BackendUnavailableError(
                    f"Both backends unreachable: {fallback_error}"
                ) from fallback_error

        if not response.is_success:
            raise BackendHTTPError(backend_used, response.status_code, url)

        try:
            return response.json(), backend_used, url
        except ValueError as e:
            raise InvalidResponseError(backend_used, f"Invalid JSON body: {e}") from e

    async def fetch_page(
        self,
        endpoint: str,
        page: int,
        limit: int,
        filters: Optional[dict[str, Any]] = None,
    ) -> PageResponse:
        """Fetch one page of property records.

        Args:
            endpoint: Path such as "/api/properties"
            page: 1-based page cursor
            limit: Page size
            filters: Extra query parameters forwarded to the backend

        Returns:
            PageResponse annotated with backend_used and api_url

        Raises:
            BackendError: Any failure; see get_json for the subclasses
        """
        params: dict[str, Any] = {**(filters or {}), "page": page, "limit": limit}
        body, backend_used, url = await self.get_json(endpoint, params)

        if not isinstance(body, dict) or not body.get("success", False):
            message = body.get("message") if isinstance(body, dict) else None
            raise InvalidResponseError(
                backend_used, message or "Backend reported an unsuccessful response"
            )

        try:
            result = PageResponse.model_validate(
                {**body, "backend_used": backend_used, "api_url": url}
            )
        except ValidationError as e:
            raise InvalidResponseError(
                backend_used, f"Malformed page payload ({e.error_count()} errors)"
            ) from e

        logger.debug(
            f"Fetched {endpoint} page {result.pagination.page}/"
            f"{result.pagination.total_pages} ({len(result.data)} records, {backend_used})"
        )
        return result

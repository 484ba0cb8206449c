"""Plain HTTP page backend for sites that render without JavaScript."""

import logging
from typing import Dict, Optional

import httpx

from sitecrawl.browser_config import get_common_headers
from sitecrawl.fetcher import FetchError, RawPage, RequestOptions

logger = logging.getLogger(__name__)


class HttpPageFetcher:
    """
    httpx-based page backend.

    Proxies are per-client in httpx, so one client is kept per proxy URL.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the HTTP backend.

        Args:
            client: Optional client used for direct (non-proxied) requests
        """
        self._direct_client = client
        self._owns_direct_client = client is None
        self._proxy_clients: Dict[str, httpx.AsyncClient] = {}

    async def __aenter__(self) -> "HttpPageFetcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        if self._direct_client is None:
            self._direct_client = httpx.AsyncClient(follow_redirects=True)

    async def close(self) -> None:
        for client in self._proxy_clients.values():
            await client.aclose()
        self._proxy_clients.clear()

        if self._direct_client is not None and self._owns_direct_client:
            await self._direct_client.aclose()
            self._direct_client = None

    def _client_for(self, options: RequestOptions) -> httpx.AsyncClient:
        if options.proxy is None:
            if self._direct_client is None:
                raise RuntimeError("HttpPageFetcher is not started. Call start() first.")
            return self._direct_client

        proxy_url = options.proxy.url
        client = self._proxy_clients.get(proxy_url)
        if client is None:
            client = httpx.AsyncClient(proxy=proxy_url, follow_redirects=True)
            self._proxy_clients[proxy_url] = client
        return client

    async def fetch(self, url: str, options: RequestOptions) -> RawPage:
        """
        Fetch a URL without rendering.

        Args:
            url: URL to load
            options: User agent, proxy and timeout for this request

        Returns:
            RawPage with response HTML and headers

        Raises:
            FetchError: If the request fails or times out
        """
        client = self._client_for(options)
        try:
            response = await client.get(
                url,
                headers=get_common_headers(options.user_agent),
                timeout=options.timeout_ms / 1000.0,
            )
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Request timeout after {options.timeout_ms}ms", url=url, code="timeout"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Request failed: {e}", url=url, code="navigation") from e

        content_type = response.headers.get("content-type")
        if content_type and "html" not in content_type.lower() and response.status_code < 400:
            raise FetchError(
                f"Unsupported content type: {content_type}",
                url=url,
                status_code=response.status_code,
                code="content_type",
            )

        return RawPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            html=response.text,
            headers=dict(response.headers),
            cookies=list(response.cookies.keys()),
            content_type=content_type,
        )

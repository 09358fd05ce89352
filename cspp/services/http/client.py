"""Global HTTP client manager.

Provides a shared httpx.AsyncClient with connection pooling, started and
closed by the FastAPI lifespan.
"""

from __future__ import annotations

import httpx
import structlog

logger = structlog.get_logger()


class HTTPClientManager:
    """Manages a shared httpx.AsyncClient.

    Usage:
        await http_client_manager.startup()
        response = await http_client_manager.client.get("https://...")
        await http_client_manager.shutdown()
    """

    def __init__(
        self,
        *,
        max_connections: int = 20,
        max_keepalive_connections: int = 10,
        keepalive_expiry: float = 30.0,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        write_timeout: float = 60.0,
        pool_timeout: float = 10.0,
    ) -> None:
        """Initialize HTTP client manager.

        Args:
            max_connections: Maximum number of concurrent connections.
            max_keepalive_connections: Maximum connections to keep alive.
            keepalive_expiry: Seconds before idle connections are closed.
            connect_timeout: Connection timeout in seconds.
            read_timeout: Read timeout in seconds.
            write_timeout: Write timeout in seconds. Image uploads are the
                slowest requests this client makes.
            pool_timeout: Pool acquisition timeout in seconds.
        """
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
            keepalive_expiry=keepalive_expiry,
        )
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=pool_timeout,
        )
        self._client: httpx.AsyncClient | None = None
        self._log = logger.bind(component="http_client")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client.

        Raises:
            RuntimeError: If client is not initialized (call startup first)
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialized. Call startup() first.")
        return self._client

    async def startup(self) -> None:
        """Initialize the HTTP client with connection pooling."""
        if self._client is not None:
            self._log.warning("http_client.already_started")
            return

        self._client = httpx.AsyncClient(limits=self._limits, timeout=self._timeout)
        self._log.info("http_client.started")

    async def shutdown(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is None:
            return

        await self._client.aclose()
        self._client = None
        self._log.info("http_client.shutdown")


# Global singleton instance
http_client_manager = HTTPClientManager()

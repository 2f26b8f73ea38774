"""Outbound HTTP for actions and HTTP-based conditions."""

import asyncio
from typing import Dict, Optional

import httpx

from constants import HTTP_TIMEOUT_MS
from core.logging import get_logger
from .exceptions import ExecutionError, HttpTimeoutError

logger = get_logger(__name__)


class HttpSender:
    """Sends one request per call with a hard timeout.

    A fresh ``httpx.AsyncClient`` is opened per request and closed on every
    exit path, including cancellation by the timeout.
    """

    def __init__(self, timeout_ms: int = HTTP_TIMEOUT_MS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            timeout_ms: Hard timeout for the whole request
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self.timeout_ms = timeout_ms
        self.transport = transport

    async def request(self, method: str, url: str,
                      headers: Optional[Dict[str, str]] = None,
                      content: Optional[str] = None) -> httpx.Response:
        """Send a request and return the fully read response.

        Raises:
            HttpTimeoutError: The call did not finish within ``timeout_ms``
            ExecutionError: Connection or protocol failure
        """
        timeout = self.timeout_ms / 1000
        logger.debug("Sending HTTP request", method=method, url=url, timeout_ms=self.timeout_ms)

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                return await asyncio.wait_for(
                    client.request(method, url, headers=headers, content=content),
                    timeout=timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error("HTTP request timed out", method=method, url=url, timeout_ms=self.timeout_ms)
            raise HttpTimeoutError(method, url, self.timeout_ms) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("HTTP request failed", method=method, url=url, error=str(e))
            raise ExecutionError(f"HTTP {method} {url} failed: {e}") from e

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""HTTP transport used by the OAuth2 flow.

The flow only needs ``fetch(url) -> body``. HttpxTransport is the default
implementation; tests and hosts can pass any object with a compatible
``fetch`` method.
"""

from typing import Protocol
from urllib.parse import urlsplit, urlunsplit

import httpx

from .logger import Logger, StdlibLogger
from .provider import TransportError, TransportErrorKind


class HttpTransport(Protocol):
    """Synchronous GET capability returning the raw response body."""

    def fetch(self, url: str) -> str:
        """Issue a GET request and return the response body.

        Raises:
            TransportError: If the request cannot be completed
        """
        ...


def redact_url(url: str) -> str:
    """Drop the query and fragment (they carry secrets and tokens)."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


class HttpxTransport:
    """HttpTransport backed by httpx.

    Client errors (4xx) are returned as bodies because the provider reports
    OAuth errors such as invalid_grant with a 401 and a JSON payload. Server
    errors (5xx) and network failures raise TransportError.

    Attributes:
        timeout: Request timeout in seconds (used for an internally created client)
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        logger: Logger | None = None,
    ):
        """Initialize the transport.

        Args:
            client: Optional shared httpx.Client; closed by the caller, not here
            timeout: Request timeout in seconds
            logger: Optional logger (defaults to the stdlib logging hierarchy)
        """
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._logger = logger or StdlibLogger(name="vk_oauth2.transport")

    def fetch(self, url: str) -> str:
        endpoint = redact_url(url)
        self._logger.debug("Sending GET request", endpoint=endpoint)

        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            self._logger.warning("HTTP request failed", endpoint=endpoint, error=str(e))
            raise TransportError(TransportErrorKind.UNDERLYING, f"Request to {endpoint} failed: {e}") from e

        if response.status_code >= 500:
            self._logger.warning(
                "Provider returned server error",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise TransportError(
                TransportErrorKind.UNDERLYING,
                f"Request to {endpoint} failed with HTTP {response.status_code}",
            )

        self._logger.debug("Received response", endpoint=endpoint, status_code=response.status_code)
        return response.text

    def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

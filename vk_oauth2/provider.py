# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""OAuth2 provider interface and error taxonomy.

This module defines the contract an authorization-code provider adapter
implements (authorization URL, code exchange, profile fetch) together with
the exceptions raised by every phase of the flow.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import IdentityRecord, TokenState


class OAuth2Provider(ABC):
    """Abstract base class for OAuth2 authorization code providers.

    A provider adapter implements the three phases of the grant. Each
    provider is an independent implementation paired with its own
    ProviderConfig.
    """

    @abstractmethod
    def build_authorization_url(self, return_url: str) -> str:
        """Build the URL the user-agent is redirected to for consent.

        Args:
            return_url: Callback URL the provider redirects back to

        Returns:
            Absolute authorization endpoint URL with query parameters
        """
        pass

    @abstractmethod
    def exchange_token(self, return_url: str, code: str) -> "TokenState":
        """Exchange an authorization code for an access token.

        Args:
            return_url: The same callback URL used for authorization
            code: Authorization code echoed back by the provider

        Returns:
            TokenState carrying the access token and subject id

        Raises:
            TransportError: If the request fails or the body is empty
            ProtocolError: If the response does not match the expected shape
            ProviderError: If the provider reports an error
        """
        pass

    @abstractmethod
    def fetch_profile(self, token: "TokenState | None" = None) -> "IdentityRecord":
        """Fetch the normalized identity of the authenticated subject.

        Args:
            token: TokenState returned by exchange_token (optional when the
                provider keeps it from the previous phase)

        Returns:
            IdentityRecord, possibly empty

        Raises:
            SequenceError: If no usable token is available
            TransportError: If the request fails
            ProtocolError: If the response does not match the expected shape
        """
        pass


class OAuth2Error(Exception):
    """Base class for all OAuth2 client errors."""
    pass


class InvalidArgumentError(OAuth2Error, ValueError):
    """Raised when a caller passes an invalid argument (e.g. an empty query key)."""
    pass


class TransportErrorKind(str, Enum):
    EMPTY_RESPONSE = "empty_response"
    UNDERLYING = "underlying"


class TransportError(OAuth2Error):
    """Raised when the HTTP transport fails or returns nothing."""

    def __init__(self, kind: TransportErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)


class ProtocolErrorKind(str, Enum):
    MALFORMED = "malformed"
    UNEXPECTED_COUNT = "unexpected_count"


class ProtocolError(OAuth2Error):
    """Raised when a provider response does not match the expected shape."""

    def __init__(self, kind: ProtocolErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)


class ProviderError(OAuth2Error):
    """Raised when the provider explicitly reports a failure.

    Attributes:
        code: Provider error code (e.g. "invalid_grant")
        description: Human readable description from the provider, if any
    """

    def __init__(self, code: str, description: str | None = None):
        self.code = code
        self.description = description
        message = f"{code}: {description}" if description else code
        super().__init__(message)


class SequenceErrorKind(str, Enum):
    OUT_OF_ORDER = "out_of_order"


class SequenceError(OAuth2Error):
    """Raised when flow phases are invoked out of order."""

    def __init__(self, kind: SequenceErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)


class ParseErrorKind(str, Enum):
    EMPTY = "empty"
    MALFORMED = "malformed"
    UNEXPECTED_COUNT = "unexpected_count"


class ParseError(OAuth2Error):
    """Raised by the response parser when a body cannot be interpreted."""

    def __init__(self, kind: ParseErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)

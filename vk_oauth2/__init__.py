# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""VK OAuth2 Client.

Client side of the OAuth2 authorization code grant for VK: builds the
authorization URL, exchanges the callback code for an access token and
fetches a normalized identity record. Includes a strict RFC 3986
query-string codec used to build every request URL.
"""

__version__ = "0.1.0"

from .config import FieldMapping, ProviderConfig
from .flow import OAuth2Flow, create_vk_flow
from .logger import Logger, SilentLogger, StdlibLogger, StdoutLogger, create_logger
from .models import FlowState, IdentityRecord, RawUserRecord, TokenState
from .provider import (
    InvalidArgumentError,
    OAuth2Error,
    OAuth2Provider,
    ParseError,
    ParseErrorKind,
    ProtocolError,
    ProtocolErrorKind,
    ProviderError,
    SequenceError,
    SequenceErrorKind,
    TransportError,
    TransportErrorKind,
)
from .query_codec import (
    append_query_args,
    build_query_string,
    encode_component,
    normalize_hex_escapes,
)
from .response_parser import parse_token_response, parse_user_list_response
from .transport import HttpTransport, HttpxTransport

__all__ = [
    # Version
    "__version__",
    # Models
    "FlowState",
    "IdentityRecord",
    "RawUserRecord",
    "TokenState",
    # Configuration
    "FieldMapping",
    "ProviderConfig",
    # Flow
    "OAuth2Provider",
    "OAuth2Flow",
    "create_vk_flow",
    # Query codec
    "encode_component",
    "build_query_string",
    "append_query_args",
    "normalize_hex_escapes",
    # Response parsing
    "parse_token_response",
    "parse_user_list_response",
    # Transport
    "HttpTransport",
    "HttpxTransport",
    # Logging
    "Logger",
    "StdoutLogger",
    "StdlibLogger",
    "SilentLogger",
    "create_logger",
    # Exceptions
    "OAuth2Error",
    "InvalidArgumentError",
    "TransportError",
    "TransportErrorKind",
    "ProtocolError",
    "ProtocolErrorKind",
    "ProviderError",
    "SequenceError",
    "SequenceErrorKind",
    "ParseError",
    "ParseErrorKind",
]

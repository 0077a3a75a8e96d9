# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""RFC 3986 query-string codec.

Providers that validate the percent-encoded form of a request disagree with
encoders that still treat the RFC 2396 marks ``! * ' ( )`` as safe. Every
function here escapes all octets outside the RFC 3986 unreserved set
(``A-Z a-z 0-9 - _ . ~``) using uppercase hex digits.
"""

from collections.abc import Iterable, Mapping
from typing import Union
from urllib.parse import quote, urlsplit, urlunsplit

from .provider import InvalidArgumentError

QueryParams = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def _iter_pairs(params: QueryParams) -> list[tuple[str, str]]:
    if isinstance(params, Mapping):
        return list(params.items())
    return list(params)


def encode_component(value: str) -> str:
    """Percent-encode a string for use as a query key or value.

    The string is encoded as UTF-8 and every octet outside the RFC 3986
    unreserved set is written as ``%XX`` with uppercase hex digits.

    Args:
        value: String to encode

    Returns:
        Encoded string

    Raises:
        InvalidArgumentError: If value is None

    Example:
        >>> encode_component("a b!*'()")
        'a%20b%21%2A%27%28%29'
    """
    if value is None:
        raise InvalidArgumentError("Cannot encode None")

    # quote() with no safe characters leaves exactly the RFC 3986 unreserved set
    return quote(value, safe="", encoding="utf-8", errors="strict")


def build_query_string(params: QueryParams) -> str:
    """Concatenate key/value pairs as ``key=value&key=value``.

    Pairs are emitted in the given order. No ``?`` is prefixed and no
    trailing ``&`` is added. The input is not modified.

    Args:
        params: Ordered pairs or a mapping of keys to values

    Returns:
        Query string, or "" when params is empty

    Raises:
        InvalidArgumentError: If a key is None or empty, or a value is None
    """
    pairs = _iter_pairs(params)
    if not pairs:
        return ""

    parts = []
    for key, value in pairs:
        if not key:
            raise InvalidArgumentError("Query parameter key must not be null or empty")
        if value is None:
            raise InvalidArgumentError(f"Query parameter '{key}' has a null value")
        parts.append(f"{encode_component(key)}={encode_component(value)}")

    return "&".join(parts)


def append_query_args(url: str, params: QueryParams) -> str:
    """Append encoded query arguments to a URL.

    Existing query content is kept verbatim so already-escaped values are
    not encoded twice.

    Args:
        url: Absolute or relative URL
        params: Ordered pairs or a mapping of keys to values

    Returns:
        URL with the new arguments appended, or url unchanged if params is empty
    """
    pairs = _iter_pairs(params)
    if not pairs:
        return url

    parts = urlsplit(url)
    query = build_query_string(pairs)
    if parts.query:
        query = f"{parts.query}&{query}"

    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def _upper_ascii(char: str) -> str:
    # str.upper() can change length for non-ASCII input (e.g. "\u00df" -> "SS")
    return char.upper() if char.isascii() else char


def normalize_hex_escapes(url: str) -> str:
    """Upper-case the hex digits of every ``%XX`` escape in a URL.

    Some providers reject a redirect_uri whose escapes use lowercase hex
    digits. Only the two characters following each ``%`` are changed, and
    they are never re-examined as escape markers.

    Example:
        >>> normalize_hex_escapes("Login.aspx?ReturnUrl=%2fAccount%2fManage.aspx")
        'Login.aspx?ReturnUrl=%2FAccount%2FManage.aspx'
    """
    chars = list(url)
    i = 0
    while i < len(chars) - 2:
        if chars[i] == "%":
            chars[i + 1] = _upper_ascii(chars[i + 1])
            chars[i + 2] = _upper_ascii(chars[i + 2])
            i += 2
        i += 1
    return "".join(chars)

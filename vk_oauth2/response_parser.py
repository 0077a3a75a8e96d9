# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Parsing of raw provider response bodies.

Bodies are decoded with pydantic models. Anything that does not decode into
exactly one expected shape is reported as a ParseError; ambiguous input is
never defaulted to success.
"""

from pydantic import BaseModel, ConfigDict, ValidationError

from .models import RawUserRecord, TokenState
from .provider import ParseError, ParseErrorKind


class _TokenEnvelope(BaseModel):
    """Flat token endpoint object carrying either arm."""

    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    expires_in: int | None = None
    user_id: int | str | None = None
    error: str | None = None
    error_description: str | None = None


class TokenSuccess(BaseModel):
    """Success arm of the token endpoint response."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    user_id: str
    expires_in: int = 0


class TokenFailure(BaseModel):
    """Error arm of the token endpoint response."""

    model_config = ConfigDict(frozen=True)

    error: str
    error_description: str | None = None


class _UserListEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    response: list[RawUserRecord]


def _require_body(body: str | None) -> str:
    if not body:
        raise ParseError(ParseErrorKind.EMPTY, "Response body is empty")
    return body


def _describe(error: ValidationError) -> str:
    # The default ValidationError text echoes input_value, i.e. the raw body
    problems = []
    for detail in error.errors(include_url=False, include_input=False):
        location = ".".join(str(part) for part in detail["loc"])
        problems.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(problems)


def decode_token_result(body: str | None) -> TokenSuccess | TokenFailure:
    """Decode a token endpoint body into its success or failure arm.

    Args:
        body: Raw response body

    Returns:
        TokenSuccess or TokenFailure

    Raises:
        ParseError: EMPTY for an empty body; MALFORMED if the body is not an
            object of the expected shape or does not populate exactly one arm
    """
    body = _require_body(body)

    try:
        envelope = _TokenEnvelope.model_validate_json(body)
    except ValidationError as e:
        raise ParseError(ParseErrorKind.MALFORMED, f"Invalid token response: {_describe(e)}") from e

    has_success = bool(envelope.access_token)
    has_error = bool(envelope.error)

    if has_success == has_error:
        raise ParseError(
            ParseErrorKind.MALFORMED,
            "Token response must carry either access_token or error, not "
            + ("both" if has_success else "neither"),
        )

    if has_error:
        return TokenFailure(error=envelope.error, error_description=envelope.error_description)

    if envelope.user_id is None or envelope.user_id == "":
        raise ParseError(ParseErrorKind.MALFORMED, "Token response missing user_id")

    return TokenSuccess(
        access_token=envelope.access_token,
        user_id=str(envelope.user_id),
        expires_in=envelope.expires_in or 0,
    )


def parse_token_response(body: str | None) -> TokenState:
    """Parse a token endpoint body into a TokenState.

    A provider error payload is not raised here; it is returned in the
    TokenState error slot so the caller decides how to treat it.

    Args:
        body: Raw response body

    Returns:
        TokenState with either the token fields or the error fields set

    Raises:
        ParseError: If the body is empty or malformed
    """
    result = decode_token_result(body)

    if isinstance(result, TokenFailure):
        return TokenState(error_code=result.error, error_description=result.error_description)

    return TokenState(
        access_token=result.access_token,
        subject_id=result.user_id,
        expires_in_seconds=result.expires_in,
    )


def parse_user_list_response(body: str | None) -> list[RawUserRecord]:
    """Parse a users.get body into its list of raw user records.

    The flow only ever asks for one subject, so any other count is reported
    instead of being masked.

    Args:
        body: Raw response body

    Returns:
        List holding exactly one RawUserRecord

    Raises:
        ParseError: EMPTY, MALFORMED, or UNEXPECTED_COUNT
    """
    body = _require_body(body)

    try:
        envelope = _UserListEnvelope.model_validate_json(body)
    except ValidationError as e:
        raise ParseError(ParseErrorKind.MALFORMED, f"Invalid user list response: {_describe(e)}") from e

    if len(envelope.response) != 1:
        raise ParseError(
            ParseErrorKind.UNEXPECTED_COUNT,
            f"Expected exactly 1 user record, got {len(envelope.response)}",
        )

    return list(envelope.response)

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Token, identity and flow-state models for the VK OAuth2 client.

TokenState bridges the token exchange and the profile fetch; IdentityRecord
is the only value the flow hands back to its caller as a final result.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class FlowState(str, Enum):
    """States of a single authorization attempt."""

    INITIAL = "initial"
    AUTHORIZATION_URL_BUILT = "authorization_url_built"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    FAILED = "failed"


@dataclass(frozen=True)
class TokenState:
    """Result of the code-for-token exchange.

    Either the success fields (access_token, subject_id, expires_in_seconds)
    or the error fields (error_code, error_description) are meaningful.

    Attributes:
        access_token: OAuth access token
        subject_id: Provider user id the token was issued for
        expires_in_seconds: Token lifetime; 0 means the provider did not expire it
        error_code: Provider error code when the exchange was rejected
        error_description: Provider error description, if any
    """
    access_token: str = ""
    subject_id: str = ""
    expires_in_seconds: int = 0
    error_code: str | None = None
    error_description: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error_code is not None

    def __repr__(self) -> str:
        # Keep the bearer token out of logs and tracebacks
        masked = "***" if self.access_token else ""
        return (
            f"TokenState(access_token={masked!r}, subject_id={self.subject_id!r}, "
            f"expires_in_seconds={self.expires_in_seconds!r}, error_code={self.error_code!r}, "
            f"error_description={self.error_description!r})"
        )


@dataclass(frozen=True)
class IdentityRecord:
    """Normalized identity of the authenticated user.

    Attributes:
        external_id: Stable provider-assigned id, None when absent
        display_name: Display name, None when absent
    """
    external_id: str | None = None
    display_name: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.external_id and not self.display_name

    def to_dict(self) -> dict[str, str]:
        """Convert to the provider-neutral user data mapping.

        Only non-empty values are included.

        Returns:
            Dictionary with optional "id" and "name" keys
        """
        user_data: dict[str, str] = {}
        add_item_if_not_empty(user_data, "id", self.external_id)
        add_item_if_not_empty(user_data, "name", self.display_name)
        return user_data


class RawUserRecord(BaseModel):
    """A single user entry as returned by users.get.

    Fields other than uid and the two name parts are kept in ``model_extra``
    so a custom FieldMapping can select them.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    uid: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @field_validator("uid", mode="before")
    @classmethod
    def _uid_to_str(cls, value: Any) -> Any:
        # users.get returns numeric ids; older API versions return strings
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


def add_item_if_not_empty(dictionary: dict[str, str], key: str, value: str | None) -> None:
    """Set dictionary[key] to value unless value is None or empty.

    Raises:
        ValueError: If key is None
    """
    if key is None:
        raise ValueError("key must not be None")

    if value:
        dictionary[key] = value

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Provider configuration for the VK OAuth2 client.

Holds the three endpoint URLs, the client credentials and the mapping that
projects a raw users.get record onto an IdentityRecord. Values can be given
explicitly or loaded from the environment.
"""

import os
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from .models import IdentityRecord, RawUserRecord

VK_AUTHORIZE_URL = "https://oauth.vk.com/authorize"
VK_TOKEN_URL = "https://oauth.vk.com/access_token"
VK_USER_INFO_URL = "https://api.vk.com/method/users.get"


def _default(value: str | None, env_var: str, fallback: str) -> str:
    """Helper to pick an explicit value, then env var, then fallback."""
    return (value or os.getenv(env_var) or fallback)


def _require_http_url(name: str, url: str) -> None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"{name} must be an absolute http(s) URL, got: {url!r}")


def _field_text(record: RawUserRecord, name: str) -> str | None:
    """Read a declared or extra record field as text; non-scalars read as None."""
    value = getattr(record, name, None)
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class FieldMapping:
    """Projection of a raw user record onto an IdentityRecord.

    Attributes:
        id_field: Record field holding the stable user id
        name_fields: Record fields concatenated into the display name
        name_separator: Separator placed between name parts
    """
    id_field: str = "uid"
    name_fields: tuple[str, ...] = ("first_name", "last_name")
    name_separator: str = " "

    def project(self, record: RawUserRecord) -> IdentityRecord:
        """Map a raw record to an IdentityRecord, omitting empty values.

        The name parts are joined as-is; they are not trimmed.
        """
        external_id = _field_text(record, self.id_field) or None

        parts = [_field_text(record, name) or "" for name in self.name_fields]
        display_name = self.name_separator.join(parts) if any(parts) else None

        return IdentityRecord(external_id=external_id, display_name=display_name)


@dataclass(frozen=True)
class ProviderConfig:
    """Static configuration of the OAuth2 provider.

    Attributes:
        client_id: Application id issued by the provider
        client_secret: Application secret issued by the provider
        authorize_url: Authorization endpoint
        token_url: Token endpoint
        user_info_url: User-info endpoint
        scope: Requested scope ("" requests the default permissions)
        field_mapping: Raw user record to IdentityRecord projection
    """
    client_id: str
    client_secret: str
    authorize_url: str = VK_AUTHORIZE_URL
    token_url: str = VK_TOKEN_URL
    user_info_url: str = VK_USER_INFO_URL
    scope: str = ""
    field_mapping: FieldMapping = field(default_factory=FieldMapping)

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ValueError("client_id is required")
        if not self.client_secret:
            raise ValueError("client_secret is required")
        if self.scope is None:
            raise ValueError("scope must be a string (use \"\" for the default scope)")

        _require_http_url("authorize_url", self.authorize_url)
        _require_http_url("token_url", self.token_url)
        _require_http_url("user_info_url", self.user_info_url)

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(client_id={self.client_id!r}, client_secret='***', "
            f"authorize_url={self.authorize_url!r}, token_url={self.token_url!r}, "
            f"user_info_url={self.user_info_url!r}, scope={self.scope!r})"
        )

    @classmethod
    def from_env(
        cls,
        client_id: str | None = None,
        client_secret: str | None = None,
        scope: str | None = None,
    ) -> "ProviderConfig":
        """Load configuration from explicit values and environment variables.

        Environment variables:
            VK_CLIENT_ID: Application id (required)
            VK_CLIENT_SECRET: Application secret (required)
            VK_AUTHORIZE_URL, VK_TOKEN_URL, VK_USER_INFO_URL: Endpoint overrides
            VK_SCOPE: Requested scope

        Returns:
            ProviderConfig instance

        Raises:
            ValueError: If the client id or secret is missing, or an endpoint is invalid
        """
        resolved_id = _default(client_id, "VK_CLIENT_ID", "")
        resolved_secret = _default(client_secret, "VK_CLIENT_SECRET", "")

        if not resolved_id:
            raise ValueError(
                "client_id is required. "
                "Provide it explicitly or set VK_CLIENT_ID"
            )

        if not resolved_secret:
            raise ValueError(
                "client_secret is required. "
                "Provide it explicitly or set VK_CLIENT_SECRET"
            )

        return cls(
            client_id=resolved_id,
            client_secret=resolved_secret,
            authorize_url=_default(None, "VK_AUTHORIZE_URL", VK_AUTHORIZE_URL),
            token_url=_default(None, "VK_TOKEN_URL", VK_TOKEN_URL),
            user_info_url=_default(None, "VK_USER_INFO_URL", VK_USER_INFO_URL),
            scope=scope if scope is not None else os.getenv("VK_SCOPE", ""),
        )

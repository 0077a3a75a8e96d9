# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""VK OAuth2 authorization code flow.

This module drives one authorization attempt through its three phases:

1. build_authorization_url - where to send the user-agent
2. exchange_token - trade the callback code for an access token
3. fetch_profile - resolve the token into a normalized identity

An OAuth2Flow instance is used for exactly one attempt and is not safe for
concurrent use. The transport and the ProviderConfig can be shared.
Nothing here retries: authorization codes are single use.
"""

from .config import ProviderConfig
from .logger import Logger, StdlibLogger
from .models import FlowState, IdentityRecord, TokenState
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
from .query_codec import append_query_args, normalize_hex_escapes
from .response_parser import parse_token_response, parse_user_list_response
from .transport import HttpTransport, HttpxTransport


class OAuth2Flow(OAuth2Provider):
    """State machine for a single VK authorization attempt.

    States: INITIAL -> AUTHORIZATION_URL_BUILT -> TOKEN_EXCHANGED ->
    PROFILE_FETCHED, plus FAILED once a phase has failed.

    Attributes:
        config: Provider endpoints, credentials and field mapping
        transport: HTTP GET capability
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: HttpTransport,
        logger: Logger | None = None,
        owns_transport: bool = False,
    ):
        """Initialize the flow.

        Args:
            config: Provider configuration
            transport: Object with a fetch(url) -> str method
            logger: Optional logger (defaults to the stdlib logging hierarchy)
            owns_transport: Close the transport in close(); it must then
                have a close() method
        """
        self.config = config
        self.transport = transport
        self._owns_transport = owns_transport
        self._logger = logger or StdlibLogger(name="vk_oauth2.flow")

        self._state = FlowState.INITIAL
        self._token: TokenState | None = None
        self._failure: OAuth2Error | None = None

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def token(self) -> TokenState | None:
        """TokenState stored by a successful exchange_token, if any."""
        return self._token

    @property
    def failure(self) -> OAuth2Error | None:
        """The error that moved the flow to FAILED, if any."""
        return self._failure

    def reset(self) -> None:
        """Return to INITIAL so the instance can serve a new attempt."""
        self._state = FlowState.INITIAL
        self._token = None
        self._failure = None

    def close(self) -> None:
        """Close the transport if this flow created it."""
        if self._owns_transport:
            self.transport.close()

    def __enter__(self) -> "OAuth2Flow":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _fetch(self, url: str) -> str:
        try:
            return self.transport.fetch(url)
        except OAuth2Error as e:
            self._fail(e)
            raise
        except Exception as e:
            error = TransportError(TransportErrorKind.UNDERLYING, f"Transport raised {type(e).__name__}")
            self._fail(error)
            raise error from e

    def _fail(self, error: OAuth2Error) -> None:
        self._logger.warning(
            "OAuth2 flow failed",
            previous_state=self._state.value,
            error_type=type(error).__name__,
            error=str(error),
        )
        self._state = FlowState.FAILED
        self._token = None
        self._failure = error

    def build_authorization_url(self, return_url: str) -> str:
        """Build the authorize endpoint URL for the user-agent redirect.

        The return URL is encoded as given; unlike the token request it is
        not hex-normalized.

        Args:
            return_url: Callback URL

        Returns:
            Authorization URL with client_id, redirect_uri and scope
        """
        url = append_query_args(
            self.config.authorize_url,
            [
                ("client_id", self.config.client_id),
                ("redirect_uri", str(return_url)),
                ("scope", self.config.scope),
            ],
        )

        if self._state is FlowState.INITIAL:
            self._state = FlowState.AUTHORIZATION_URL_BUILT

        return url

    def exchange_token(self, return_url: str, code: str) -> TokenState:
        """Exchange the authorization code for an access token.

        Allowed from INITIAL or AUTHORIZATION_URL_BUILT; the callback is
        normally handled by a fresh instance.

        Args:
            return_url: Callback URL used for the authorization request
            code: Authorization code from the callback

        Returns:
            TokenState with access token, subject id and lifetime

        Raises:
            SequenceError: If a token was already exchanged or the flow failed
            InvalidArgumentError: If code is empty
            TransportError: EMPTY_RESPONSE for an empty body, UNDERLYING for
                transport failures
            ProtocolError: If the body is malformed
            ProviderError: If the provider rejected the code
        """
        if self._state not in (FlowState.INITIAL, FlowState.AUTHORIZATION_URL_BUILT):
            raise SequenceError(
                SequenceErrorKind.OUT_OF_ORDER,
                f"exchange_token is not allowed in state {self._state.value}",
            )
        if not code:
            raise InvalidArgumentError("Authorization code must not be empty")

        url = append_query_args(
            self.config.token_url,
            [
                ("client_id", self.config.client_id),
                ("redirect_uri", normalize_hex_escapes(str(return_url))),
                ("client_secret", self.config.client_secret),
                ("code", code),
                ("scope", self.config.scope),
            ],
        )

        self._logger.debug("Exchanging authorization code", endpoint=self.config.token_url)

        body = self._fetch(url)

        try:
            token = parse_token_response(body)
        except ParseError as e:
            if e.kind is ParseErrorKind.EMPTY:
                error: OAuth2Error = TransportError(
                    TransportErrorKind.EMPTY_RESPONSE,
                    "Token endpoint returned an empty body",
                )
            else:
                error = ProtocolError(ProtocolErrorKind.MALFORMED, str(e))
            self._fail(error)
            raise error from e

        if token.is_error:
            error = ProviderError(token.error_code, token.error_description)
            self._fail(error)
            raise error

        self._token = token
        self._state = FlowState.TOKEN_EXCHANGED
        self._logger.debug(
            "Authorization code exchanged",
            subject_id=token.subject_id,
            expires_in=token.expires_in_seconds,
        )
        return token

    def fetch_profile(self, token: TokenState | None = None) -> IdentityRecord:
        """Fetch and normalize the authenticated user's profile.

        An empty user-info body is treated as "no profile data" and yields
        an empty IdentityRecord, whereas an empty token body is fatal.

        Args:
            token: TokenState returned by exchange_token. When omitted the
                token stored by this instance is used, which requires state
                TOKEN_EXCHANGED.

        Returns:
            IdentityRecord with the id and display name that were present

        Raises:
            SequenceError: If no usable token is available
            TransportError: If the transport fails
            ProtocolError: If the body is malformed or does not hold exactly one user
        """
        if token is None:
            if self._state is not FlowState.TOKEN_EXCHANGED or self._token is None:
                raise SequenceError(
                    SequenceErrorKind.OUT_OF_ORDER,
                    f"fetch_profile requires an exchanged token (state: {self._state.value})",
                )
            token = self._token
        elif token.is_error or not token.access_token:
            raise SequenceError(
                SequenceErrorKind.OUT_OF_ORDER,
                "fetch_profile requires a TokenState from a successful exchange",
            )

        url = append_query_args(
            self.config.user_info_url,
            [
                ("uid", token.subject_id),
                ("access_token", token.access_token),
            ],
        )

        body = self._fetch(url)

        if not body:
            self._logger.debug("User-info endpoint returned no profile data", subject_id=token.subject_id)
            self._state = FlowState.PROFILE_FETCHED
            return IdentityRecord()

        try:
            records = parse_user_list_response(body)
        except ParseError as e:
            error = ProtocolError(ProtocolErrorKind.MALFORMED, str(e))
            self._fail(error)
            raise error from e

        identity = self.config.field_mapping.project(records[0])
        self._state = FlowState.PROFILE_FETCHED
        self._logger.debug("Profile fetched", subject_id=token.subject_id)
        return identity


def create_vk_flow(
    config: ProviderConfig | None = None,
    transport: HttpTransport | None = None,
    logger: Logger | None = None,
) -> OAuth2Flow:
    """Create an OAuth2Flow for VK.

    A transport passed in is shared and left open. When it is omitted the
    flow creates an HttpxTransport of its own and closes it in close(), so
    use the flow as a context manager. Hosts handling many callbacks should
    pass one long-lived transport instead.

    Args:
        config: Provider configuration (loaded from the environment if omitted)
        transport: HTTP transport (an owned HttpxTransport if omitted)
        logger: Optional logger shared by the flow and the default transport

    Returns:
        A new OAuth2Flow in state INITIAL

    Raises:
        ValueError: If config is omitted and the environment lacks credentials
    """
    if config is None:
        config = ProviderConfig.from_env()

    if transport is not None:
        return OAuth2Flow(config=config, transport=transport, logger=logger)

    return OAuth2Flow(
        config=config,
        transport=HttpxTransport(logger=logger),
        logger=logger,
        owns_transport=True,
    )

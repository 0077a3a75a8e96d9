# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Tests for the OAuth2 authorization code flow."""

import json
import logging
import os
from dataclasses import replace
from unittest.mock import patch

import pytest

from vk_oauth2 import (
    FieldMapping,
    FlowState,
    HttpxTransport,
    IdentityRecord,
    InvalidArgumentError,
    OAuth2Flow,
    OAuth2Provider,
    ProtocolError,
    ProtocolErrorKind,
    ProviderError,
    SequenceError,
    SequenceErrorKind,
    StdlibLogger,
    TokenState,
    TransportError,
    TransportErrorKind,
    create_vk_flow,
)

from tests.conftest import TOKEN_BODY, USER_BODY, FakeTransport

RETURN_URL = "https://x/cb"


class TestBuildAuthorizationUrl:
    """Tests for build_authorization_url."""

    def test_authorization_url(self, make_flow):
        """Test the authorize URL carries client_id, redirect_uri and scope."""
        flow, transport = make_flow()

        url = flow.build_authorization_url(RETURN_URL)

        assert url == "https://oauth.example/authorize?client_id=42&redirect_uri=https%3A%2F%2Fx%2Fcb&scope="
        assert transport.requested_urls == []

    def test_moves_to_authorization_url_built(self, make_flow):
        flow, _ = make_flow()
        assert flow.state is FlowState.INITIAL

        flow.build_authorization_url(RETURN_URL)

        assert flow.state is FlowState.AUTHORIZATION_URL_BUILT

    def test_return_url_is_not_hex_normalized(self, make_flow):
        """Test lowercase escapes in the return URL are encoded as given."""
        flow, _ = make_flow()

        url = flow.build_authorization_url("https://x/cb?next=%2fhome")

        assert "redirect_uri=https%3A%2F%2Fx%2Fcb%3Fnext%3D%252fhome" in url

    def test_configured_scope(self, config):
        """Test a configured scope is sent."""
        flow = OAuth2Flow(config=replace(config, scope="friends,email"), transport=None)

        url = flow.build_authorization_url(RETURN_URL)

        assert url.endswith("&scope=friends%2Cemail")

    def test_is_pure(self, make_flow):
        """Test repeated calls return the same URL."""
        flow, _ = make_flow()
        assert flow.build_authorization_url(RETURN_URL) == flow.build_authorization_url(RETURN_URL)


class TestExchangeToken:
    """Tests for exchange_token."""

    def test_success(self, make_flow):
        """Test a successful exchange stores and returns the token."""
        flow, _ = make_flow(TOKEN_BODY)

        token = flow.exchange_token(RETURN_URL, "abc")

        assert token == TokenState(access_token="T", subject_id="7", expires_in_seconds=100)
        assert flow.token == token
        assert flow.state is FlowState.TOKEN_EXCHANGED

    def test_token_request_url(self, make_flow):
        """Test the token request carries all parameters in order."""
        flow, transport = make_flow(TOKEN_BODY)

        flow.exchange_token(RETURN_URL, "abc")

        assert transport.requested_urls == [
            "https://oauth.example/access_token?client_id=42"
            "&redirect_uri=https%3A%2F%2Fx%2Fcb"
            "&client_secret=s3cr3t&code=abc&scope="
        ]

    def test_redirect_uri_is_hex_normalized(self, make_flow):
        """Test lowercase escapes in the return URL are upper-cased first."""
        flow, transport = make_flow(TOKEN_BODY)

        flow.exchange_token("https://x/cb?next=%2fhome", "abc")

        assert "redirect_uri=https%3A%2F%2Fx%2Fcb%3Fnext%3D%252Fhome&" in transport.requested_urls[0]

    def test_allowed_after_authorization_url(self, make_flow):
        flow, _ = make_flow(TOKEN_BODY)
        flow.build_authorization_url(RETURN_URL)

        flow.exchange_token(RETURN_URL, "abc")

        assert flow.state is FlowState.TOKEN_EXCHANGED

    def test_provider_error(self, make_flow):
        """Test an error payload raises ProviderError and fails the flow."""
        flow, _ = make_flow('{"error":"invalid_grant","error_description":"Code is invalid or expired."}')

        with pytest.raises(ProviderError) as exc_info:
            flow.exchange_token(RETURN_URL, "abc")

        assert exc_info.value.code == "invalid_grant"
        assert exc_info.value.description == "Code is invalid or expired."
        assert flow.state is FlowState.FAILED
        assert flow.failure is exc_info.value
        assert flow.token is None

    def test_provider_error_leaves_no_usable_token(self, make_flow):
        """Test fetch_profile cannot run after a rejected exchange."""
        flow, transport = make_flow('{"error":"invalid_grant","error_description":"..."}')

        with pytest.raises(ProviderError):
            flow.exchange_token(RETURN_URL, "abc")

        with pytest.raises(SequenceError):
            flow.fetch_profile()
        assert len(transport.requested_urls) == 1

    def test_empty_body(self, make_flow):
        """Test an empty token body is fatal."""
        flow, _ = make_flow("")

        with pytest.raises(TransportError) as exc_info:
            flow.exchange_token(RETURN_URL, "abc")

        assert exc_info.value.kind is TransportErrorKind.EMPTY_RESPONSE
        assert flow.state is FlowState.FAILED

    @pytest.mark.parametrize(
        "body",
        [
            "<html>Bad Gateway</html>",
            "{}",
            '{"access_token":"T","user_id":7,"error":"invalid_grant"}',
        ],
    )
    def test_malformed_body(self, make_flow, body):
        """Test malformed or ambiguous bodies raise ProtocolError."""
        flow, _ = make_flow(body)

        with pytest.raises(ProtocolError) as exc_info:
            flow.exchange_token(RETURN_URL, "abc")

        assert exc_info.value.kind is ProtocolErrorKind.MALFORMED
        assert flow.state is FlowState.FAILED

    def test_transport_error_is_propagated(self, make_flow):
        """Test transport failures are re-raised unchanged."""
        error = TransportError(TransportErrorKind.UNDERLYING, "timed out")
        flow, _ = make_flow(error)

        with pytest.raises(TransportError) as exc_info:
            flow.exchange_token(RETURN_URL, "abc")

        assert exc_info.value is error
        assert flow.state is FlowState.FAILED

    def test_empty_code_raises(self, make_flow):
        """Test an empty code is rejected without a request."""
        flow, transport = make_flow()

        with pytest.raises(InvalidArgumentError):
            flow.exchange_token(RETURN_URL, "")

        assert transport.requested_urls == []
        assert flow.state is FlowState.INITIAL

    def test_second_exchange_is_out_of_order(self, make_flow):
        """Test a code cannot be exchanged twice on one instance."""
        flow, _ = make_flow(TOKEN_BODY, TOKEN_BODY)
        flow.exchange_token(RETURN_URL, "abc")

        with pytest.raises(SequenceError) as exc_info:
            flow.exchange_token(RETURN_URL, "abc")

        assert exc_info.value.kind is SequenceErrorKind.OUT_OF_ORDER

    def test_exchange_after_failure_is_out_of_order(self, make_flow):
        flow, _ = make_flow("", TOKEN_BODY)
        with pytest.raises(TransportError):
            flow.exchange_token(RETURN_URL, "abc")

        with pytest.raises(SequenceError):
            flow.exchange_token(RETURN_URL, "abc")

    def test_no_retry(self, make_flow):
        """Test a failed exchange issues exactly one request."""
        flow, transport = make_flow(TransportError(TransportErrorKind.UNDERLYING), TOKEN_BODY)

        with pytest.raises(TransportError):
            flow.exchange_token(RETURN_URL, "abc")

        assert len(transport.requested_urls) == 1

    def test_non_oauth_transport_exception_is_wrapped(self, make_flow):
        """Test arbitrary transport exceptions become TransportError and fail the flow."""
        cause = TimeoutError("read timed out")
        flow, _ = make_flow(cause)

        with pytest.raises(TransportError) as exc_info:
            flow.exchange_token(RETURN_URL, "abc")

        assert exc_info.value.kind is TransportErrorKind.UNDERLYING
        assert exc_info.value.__cause__ is cause
        assert flow.state is FlowState.FAILED
        assert flow.failure is exc_info.value

    def test_truncated_body_does_not_leak_token(self, make_flow, logger):
        """Test the raw body stays out of the error message and the logs."""
        flow, _ = make_flow('{"access_token":"tok-SECRET-123","user_id":7')

        with pytest.raises(ProtocolError) as exc_info:
            flow.exchange_token(RETURN_URL, "abc")

        assert exc_info.value.kind is ProtocolErrorKind.MALFORMED
        assert "tok-SECRET-123" not in str(exc_info.value)
        assert "tok-SECRET-123" not in json.dumps(logger.logs, default=str)


class TestFetchProfile:
    """Tests for fetch_profile."""

    def test_before_exchange_is_out_of_order(self, make_flow):
        """Test fetch_profile without a token fails with OUT_OF_ORDER."""
        flow, transport = make_flow()

        with pytest.raises(SequenceError) as exc_info:
            flow.fetch_profile()

        assert exc_info.value.kind is SequenceErrorKind.OUT_OF_ORDER
        assert transport.requested_urls == []

    def test_end_to_end(self, make_flow):
        """Test token exchange followed by profile fetch."""
        flow, transport = make_flow(TOKEN_BODY, USER_BODY)

        flow.build_authorization_url(RETURN_URL)
        flow.exchange_token(RETURN_URL, "abc")
        identity = flow.fetch_profile()

        assert identity == IdentityRecord(external_id="7", display_name="A B")
        assert identity.to_dict() == {"id": "7", "name": "A B"}
        assert flow.state is FlowState.PROFILE_FETCHED
        assert transport.requested_urls[1] == "https://api.example/method/users.get?uid=7&access_token=T"

    def test_explicit_token_on_fresh_flow(self, make_flow):
        """Test a TokenState can be threaded into another instance."""
        exchanging, _ = make_flow(TOKEN_BODY)
        token = exchanging.exchange_token(RETURN_URL, "abc")

        fetching, transport = make_flow(USER_BODY)
        identity = fetching.fetch_profile(token)

        assert identity.external_id == "7"
        assert transport.requested_urls == ["https://api.example/method/users.get?uid=7&access_token=T"]

    @pytest.mark.parametrize(
        "token",
        [
            TokenState(error_code="invalid_grant"),
            TokenState(subject_id="7"),
        ],
    )
    def test_unusable_explicit_token(self, make_flow, token):
        """Test an error or empty TokenState cannot be used."""
        flow, transport = make_flow()

        with pytest.raises(SequenceError):
            flow.fetch_profile(token)

        assert transport.requested_urls == []

    def test_empty_body_yields_empty_identity(self, make_flow):
        """Test an empty user-info body is 'no profile data', not an error.

        This differs from exchange_token, where an empty body is fatal. The
        asymmetry is kept on purpose and pinned here so a change to it is a
        visible decision.
        """
        flow, _ = make_flow(TOKEN_BODY, "")
        flow.exchange_token(RETURN_URL, "abc")

        identity = flow.fetch_profile()

        assert identity == IdentityRecord()
        assert identity.is_empty
        assert identity.to_dict() == {}
        assert flow.state is FlowState.PROFILE_FETCHED

    def test_missing_name_fields_are_omitted(self, make_flow):
        """Test empty source fields do not produce keys."""
        flow, _ = make_flow(TOKEN_BODY, '{"response":[{"uid":"7","first_name":"","last_name":""}]}')
        flow.exchange_token(RETURN_URL, "abc")

        identity = flow.fetch_profile()

        assert identity.to_dict() == {"id": "7"}

    def test_name_is_not_trimmed(self, make_flow):
        """Test a missing last name leaves the separator in place."""
        flow, _ = make_flow(TOKEN_BODY, '{"response":[{"uid":7,"first_name":"A"}]}')
        flow.exchange_token(RETURN_URL, "abc")

        assert flow.fetch_profile().display_name == "A "

    @pytest.mark.parametrize(
        "body",
        [
            '{"response":[]}',
            '{"response":[{"uid":"1"},{"uid":"2"}]}',
            '{"error":{"error_code":5,"error_msg":"User authorization failed"}}',
            "not json",
        ],
    )
    def test_unexpected_shape_is_malformed(self, make_flow, body):
        """Test count mismatches and malformed bodies raise ProtocolError(MALFORMED)."""
        flow, _ = make_flow(TOKEN_BODY, body)
        flow.exchange_token(RETURN_URL, "abc")

        with pytest.raises(ProtocolError) as exc_info:
            flow.fetch_profile()

        assert exc_info.value.kind is ProtocolErrorKind.MALFORMED
        assert flow.state is FlowState.FAILED

    def test_transport_error_fails_flow(self, make_flow):
        flow, _ = make_flow(TOKEN_BODY, TransportError(TransportErrorKind.UNDERLYING))
        flow.exchange_token(RETURN_URL, "abc")

        with pytest.raises(TransportError):
            flow.fetch_profile()

        assert flow.state is FlowState.FAILED

    def test_second_fetch_is_out_of_order(self, make_flow):
        flow, _ = make_flow(TOKEN_BODY, USER_BODY)
        flow.exchange_token(RETURN_URL, "abc")
        flow.fetch_profile()

        with pytest.raises(SequenceError):
            flow.fetch_profile()

    def test_non_oauth_transport_exception_is_wrapped(self, make_flow):
        flow, _ = make_flow(TOKEN_BODY, OSError("connection reset"))
        flow.exchange_token(RETURN_URL, "abc")

        with pytest.raises(TransportError) as exc_info:
            flow.fetch_profile()

        assert isinstance(exc_info.value.__cause__, OSError)
        assert flow.state is FlowState.FAILED

    def test_custom_field_mapping(self, config):
        """Test a configured mapping can select extra users.get fields."""
        mapping = FieldMapping(id_field="screen_name", name_fields=("nickname",))
        transport = FakeTransport(TOKEN_BODY, '{"response":[{"uid":7,"screen_name":"durov","nickname":"neo"}]}')
        flow = OAuth2Flow(config=replace(config, field_mapping=mapping), transport=transport)
        flow.exchange_token(RETURN_URL, "abc")

        assert flow.fetch_profile() == IdentityRecord(external_id="durov", display_name="neo")


class TestFlowLifecycle:
    """Tests for reset, logging and construction helpers."""

    def test_is_oauth2_provider(self, make_flow):
        flow, _ = make_flow()
        assert isinstance(flow, OAuth2Provider)

    def test_reset(self, make_flow):
        """Test reset allows a new attempt after a failure."""
        flow, _ = make_flow("", TOKEN_BODY)
        with pytest.raises(TransportError):
            flow.exchange_token(RETURN_URL, "abc")

        flow.reset()

        assert flow.state is FlowState.INITIAL
        assert flow.failure is None
        flow.exchange_token(RETURN_URL, "def")
        assert flow.state is FlowState.TOKEN_EXCHANGED

    def test_failure_is_logged(self, make_flow, logger):
        """Test a failure is logged as a warning."""
        flow, _ = make_flow('{"error":"invalid_grant"}')

        with pytest.raises(ProviderError):
            flow.exchange_token(RETURN_URL, "abc")

        assert logger.has_log("OAuth2 flow failed", level="WARNING")

    def test_secrets_are_not_logged(self, make_flow, logger):
        """Test neither the client secret nor the access token reaches the logs."""
        flow, _ = make_flow('{"access_token":"tok-xyz","user_id":7}', USER_BODY)
        flow.exchange_token(RETURN_URL, "abc")
        flow.fetch_profile()

        dumped = json.dumps(logger.logs, default=str)
        assert "tok-xyz" not in dumped
        assert "s3cr3t" not in dumped

    def test_create_vk_flow_from_env(self):
        """Test the factory loads config from the environment."""
        with patch.dict(os.environ, {"VK_CLIENT_ID": "42", "VK_CLIENT_SECRET": "secret"}, clear=True):
            flow = create_vk_flow()

        with flow:
            assert flow.config.client_id == "42"
            assert flow.config.authorize_url == "https://oauth.vk.com/authorize"
            assert isinstance(flow.transport, HttpxTransport)
            assert flow.state is FlowState.INITIAL

    def test_create_vk_flow_with_explicit_parts(self, config):
        transport = object()
        flow = create_vk_flow(config=config, transport=transport)

        assert flow.config is config
        assert flow.transport is transport

    def test_create_vk_flow_without_credentials(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="VK_CLIENT_ID"):
                create_vk_flow()

    def test_context_manager_closes_owned_transport(self, config):
        """Test a factory-created transport is closed with the flow."""
        with create_vk_flow(config) as flow:
            client = flow.transport._client
            assert not client.is_closed

        assert client.is_closed

    def test_shared_transport_is_left_open(self, config):
        """Test flows never close a transport they were given."""
        with HttpxTransport() as shared:
            for _ in range(3):
                with create_vk_flow(config, transport=shared):
                    pass

            assert not shared._client.is_closed

    def test_close_without_owned_transport(self, make_flow):
        """Test close() leaves an injected transport alone (FakeTransport has no close)."""
        flow, _ = make_flow()

        flow.close()

        assert flow.state is FlowState.INITIAL

    def test_default_logger_retains_nothing(self, config, caplog):
        """Test the default logger forwards to stdlib logging without keeping entries."""
        flow = OAuth2Flow(config=config, transport=FakeTransport('{"error":"invalid_grant"}'))

        with caplog.at_level(logging.WARNING, logger="vk_oauth2.flow"):
            with pytest.raises(ProviderError):
                flow.exchange_token(RETURN_URL, "abc")

        assert isinstance(flow._logger, StdlibLogger)
        assert not hasattr(flow._logger, "logs")
        assert "OAuth2 flow failed" in caplog.text

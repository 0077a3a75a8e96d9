# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Shared fixtures for vk_oauth2 tests."""

import pytest

from vk_oauth2 import OAuth2Flow, ProviderConfig, SilentLogger


class FakeTransport:
    """Transport returning queued bodies (or raising queued exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requested_urls: list[str] = []

    def fetch(self, url: str) -> str:
        self.requested_urls.append(url)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


TOKEN_BODY = '{"access_token":"T","user_id":7,"expires_in":100}'
USER_BODY = '{"response":[{"uid":"7","first_name":"A","last_name":"B"}]}'


@pytest.fixture
def config():
    """Provider configuration pointing at example endpoints."""
    return ProviderConfig(
        client_id="42",
        client_secret="s3cr3t",
        authorize_url="https://oauth.example/authorize",
        token_url="https://oauth.example/access_token",
        user_info_url="https://api.example/method/users.get",
    )


@pytest.fixture
def logger():
    return SilentLogger(name="test")


@pytest.fixture
def make_flow(config, logger):
    """Build a flow over a FakeTransport with the given queued responses."""

    def _make(*responses):
        transport = FakeTransport(*responses)
        return OAuth2Flow(config=config, transport=transport, logger=logger), transport

    return _make

"""
tests/test_identity_client.py -- External Identity Client lifecycle, events, and REST wrapper.

Covers:
  - init() publishes exactly one ProviderReady and is idempotent
  - missing IDENTITY_API_KEY -> failed state, ProviderReady carrying the error
  - operations before init() -> IdentityNotReady
  - signup / login / logout publish IdentityChanged
  - INITIAL_AUTH_TOKEN exchanged on init; exchange failure leaves client ready
  - ProviderReady is published before the token exchange, whatever it does
  - late subscribers catch up with replay=True; a raising listener is isolated
  - teardown() and the process-wide singleton
  - IdentityProvider error mapping (4xx code; 5xx, network, or a 2xx body
    missing idToken/localId -> UpstreamUnavailable)
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from core.config import load_settings
from core.errors import ConfigurationError, IdentityNotReady, IdentityProviderError, UpstreamUnavailable
from identity.client import ClientState, ExternalIdentityClient, get_identity_client, reset_identity_client
from identity.events import AuthEventChannel, IdentityChanged, ProviderReady
from identity.provider import Identity, IdentityProvider

ADA = Identity(uid="uid-ada", email="ada@example.com", display_name=None, id_token="id-token-1")


def _settings(**overrides):
    values = {"identity_api_key": "", "initial_auth_token": ""}
    values.update(overrides)
    return load_settings(_env_file=None, **values)


@pytest.fixture
def provider() -> MagicMock:
    fake = MagicMock(spec=IdentityProvider)
    fake.sign_up.return_value = ADA
    fake.sign_in_with_password.return_value = ADA
    fake.update_profile.side_effect = lambda identity, name: Identity(
        uid=identity.uid, email=identity.email, display_name=name, id_token=identity.id_token
    )
    return fake


@pytest.fixture
def recorded():
    """A client plus the list of every event it published."""
    events: list = []
    channel = AuthEventChannel()
    channel.subscribe(events.append)
    return ExternalIdentityClient(events=channel), events


class TestLifecycle:
    def test_init_publishes_ready_once(self, recorded, provider):
        client, events = recorded
        assert client.init(_settings(), provider=provider) is ClientState.ready
        assert client.init(_settings(), provider=provider) is ClientState.ready
        ready = [e for e in events if isinstance(e, ProviderReady)]
        assert len(ready) == 1
        assert ready[0].ok and ready[0].provider is provider

    def test_missing_config_fails(self, recorded):
        client, events = recorded
        assert client.init(_settings()) is ClientState.failed
        assert client.state is ClientState.failed
        assert isinstance(client.init_error, ConfigurationError)
        assert len(events) == 1
        assert not events[0].ok
        assert isinstance(events[0].error, ConfigurationError)

    def test_configured_key_builds_real_provider(self, recorded):
        client, events = recorded
        assert client.init(_settings(identity_api_key="web-api-key")) is ClientState.ready
        assert isinstance(events[0].provider, IdentityProvider)
        client.teardown()

    def test_operations_before_init_raise(self, provider):
        client = ExternalIdentityClient()
        with pytest.raises(IdentityNotReady):
            client.login("ada@example.com", "pw")
        with pytest.raises(IdentityNotReady):
            client.signup("ada@example.com", "pw")
        with pytest.raises(IdentityNotReady):
            client.logout()
        assert client.current_identity() is None
        provider.sign_in_with_password.assert_not_called()

    def test_operations_after_failed_init_raise(self):
        client = ExternalIdentityClient()
        client.init(_settings())
        with pytest.raises(IdentityNotReady):
            client.login("ada@example.com", "pw")

    def test_teardown_returns_to_not_ready(self, recorded, provider):
        client, _ = recorded
        client.init(_settings(), provider=provider)
        client.login("ada@example.com", "pw")
        client.teardown()
        assert client.state is ClientState.not_ready
        assert client.current_identity() is None
        provider.close.assert_called_once()
        with pytest.raises(IdentityNotReady):
            client.login("ada@example.com", "pw")
        # A fresh lifecycle may init again
        assert client.init(_settings(), provider=provider) is ClientState.ready


class TestInitialToken:
    def test_initial_token_signs_in(self, recorded, provider):
        client, events = recorded
        provider.sign_in_with_custom_token.return_value = ADA
        client.init(_settings(initial_auth_token="custom-token"), provider=provider)
        provider.sign_in_with_custom_token.assert_called_once_with("custom-token")
        assert client.current_identity() == ADA
        assert isinstance(events[0], ProviderReady)
        assert events[1] == IdentityChanged(ADA)

    def test_initial_token_failure_still_ready(self, recorded, provider):
        client, events = recorded
        provider.sign_in_with_custom_token.side_effect = IdentityProviderError("INVALID_CUSTOM_TOKEN")
        assert client.init(_settings(initial_auth_token="bad"), provider=provider) is ClientState.ready
        assert client.current_identity() is None
        assert [type(e) for e in events] == [ProviderReady]

    def test_initial_token_bad_response_still_ready(self, recorded, provider):
        client, events = recorded
        provider.sign_in_with_custom_token.side_effect = UpstreamUnavailable("invalid response")
        assert client.init(_settings(initial_auth_token="tok"), provider=provider) is ClientState.ready
        assert client.current_identity() is None
        assert [type(e) for e in events] == [ProviderReady]

    def test_ready_published_even_if_exchange_blows_up(self, recorded, provider):
        client, events = recorded
        provider.sign_in_with_custom_token.side_effect = RuntimeError("provider bug")
        with pytest.raises(RuntimeError):
            client.init(_settings(initial_auth_token="tok"), provider=provider)
        assert client.state is ClientState.ready
        assert len(events) == 1
        assert events[0].ok
        # Later calls see the finished lifecycle and publish nothing new
        assert client.init(_settings(), provider=provider) is ClientState.ready
        assert len(events) == 1


class TestOperations:
    def test_login_and_logout_publish_changes(self, recorded, provider):
        client, events = recorded
        client.init(_settings(), provider=provider)
        assert client.login("ada@example.com", "pw") == ADA
        assert client.current_identity() == ADA
        client.logout()
        assert client.current_identity() is None
        assert events[1:] == [IdentityChanged(ADA), IdentityChanged(None)]

    def test_signup_sets_display_name(self, recorded, provider):
        client, events = recorded
        client.init(_settings(), provider=provider)
        identity = client.signup("ada@example.com", "pw-123456", display_name="Ada")
        provider.update_profile.assert_called_once_with(ADA, "Ada")
        assert identity.display_name == "Ada"
        assert events[-1] == IdentityChanged(identity)

    def test_signup_without_name_skips_profile_update(self, recorded, provider):
        client, _ = recorded
        client.init(_settings(), provider=provider)
        client.signup("ada@example.com", "pw-123456")
        provider.update_profile.assert_not_called()

    def test_provider_errors_propagate_without_state_change(self, recorded, provider):
        client, events = recorded
        client.init(_settings(), provider=provider)
        provider.sign_in_with_password.side_effect = IdentityProviderError("INVALID_PASSWORD")
        with pytest.raises(IdentityProviderError) as excinfo:
            client.login("ada@example.com", "wrong")
        assert excinfo.value.code == "INVALID_PASSWORD"
        assert client.current_identity() is None
        assert len(events) == 1


class TestEventChannel:
    def test_replay_delivers_last_state(self, provider):
        channel = AuthEventChannel()
        client = ExternalIdentityClient(events=channel)
        client.init(_settings(), provider=provider)
        client.login("ada@example.com", "pw")

        late: list = []
        channel.subscribe(late.append, replay=True)
        assert [type(e) for e in late] == [ProviderReady, IdentityChanged]
        assert late[1].identity == ADA

    def test_no_replay_by_default(self, provider):
        channel = AuthEventChannel()
        ExternalIdentityClient(events=channel).init(_settings(), provider=provider)
        late: list = []
        channel.subscribe(late.append)
        assert late == []

    def test_unsubscribe_stops_delivery(self):
        channel = AuthEventChannel()
        seen: list = []
        unsubscribe = channel.subscribe(seen.append)
        channel.publish(IdentityChanged(None))
        unsubscribe()
        channel.publish(IdentityChanged(ADA))
        assert seen == [IdentityChanged(None)]

    def test_raising_listener_does_not_block_others(self):
        channel = AuthEventChannel()
        seen: list = []

        def broken(event):
            raise RuntimeError("listener bug")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        channel.publish(IdentityChanged(ADA))
        assert seen == [IdentityChanged(ADA)]


class TestSingleton:
    def test_same_instance_until_reset(self):
        reset_identity_client()
        first = get_identity_client()
        assert get_identity_client() is first
        assert first.state is ClientState.not_ready
        reset_identity_client()
        assert get_identity_client() is not first
        reset_identity_client()


# ---------------------------------------------------------------------------
# IdentityProvider REST wrapper
# ---------------------------------------------------------------------------


def _http(status_code: int, payload=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


@pytest.fixture
def http() -> MagicMock:
    return MagicMock(spec=requests.Session)


class TestIdentityProvider:
    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            IdentityProvider("")

    def test_sign_in_maps_fields(self, http):
        http.post.return_value = _http(
            200,
            {"localId": "u1", "email": "ada@example.com", "displayName": "", "idToken": "t", "expiresIn": "3600"},
        )
        identity = IdentityProvider("key", base_url="http://idp/v1", timeout=4.0, session=http).sign_in_with_password(
            "ada@example.com", "pw"
        )
        assert identity == Identity(
            uid="u1", email="ada@example.com", display_name=None, id_token="t", expires_in=3600
        )
        args, kwargs = http.post.call_args
        assert args[0] == "http://idp/v1/accounts:signInWithPassword"
        assert kwargs["params"] == {"key": "key"}
        assert kwargs["timeout"] == 4.0

    def test_client_error_code(self, http):
        http.post.return_value = _http(
            400, {"error": {"message": "WEAK_PASSWORD : Password should be at least 6 characters"}}
        )
        with pytest.raises(IdentityProviderError) as excinfo:
            IdentityProvider("key", session=http).sign_up("ada@example.com", "123")
        assert excinfo.value.code == "WEAK_PASSWORD"

    def test_server_error_is_unavailable(self, http):
        http.post.return_value = _http(503)
        with pytest.raises(UpstreamUnavailable):
            IdentityProvider("key", session=http).sign_up("ada@example.com", "pw-123456")

    def test_network_error_is_unavailable(self, http):
        http.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(UpstreamUnavailable):
            IdentityProvider("key", session=http).sign_in_with_password("ada@example.com", "pw")

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "ada@example.com"},
            {"localId": "u1", "email": "ada@example.com"},
            {"idToken": "t", "email": "ada@example.com"},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_success_body_is_unavailable(self, http, payload):
        http.post.return_value = _http(200, payload)
        with pytest.raises(UpstreamUnavailable):
            IdentityProvider("key", session=http).sign_in_with_password("ada@example.com", "pw")

    def test_custom_token_exchange_without_id_token(self, http):
        http.post.return_value = _http(200, {"refreshToken": "r"})
        with pytest.raises(UpstreamUnavailable):
            IdentityProvider("key", session=http).sign_in_with_custom_token("custom")
        assert http.post.call_count == 1

    def test_custom_token_exchange_looks_up_user(self, http):
        http.post.side_effect = [
            _http(200, {"idToken": "t2", "refreshToken": "r2", "expiresIn": "3600"}),
            _http(200, {"users": [{"localId": "u2", "email": "bob@example.com", "displayName": "Bob"}]}),
        ]
        identity = IdentityProvider("key", session=http).sign_in_with_custom_token("custom")
        assert identity.uid == "u2"
        assert identity.display_name == "Bob"
        assert identity.refresh_token == "r2"
        assert http.post.call_args_list[1][1]["json"] == {"idToken": "t2"}

#!/usr/bin/env python3
"""
Unit tests for the OAuth credential holder and the data models it feeds.
"""

import pytest
from datetime import datetime, timedelta

from config_manager import ConfigurationError
from exceptions import ExpiredCredential
from models import Credential, Identity, ConnectionDescriptor, UserJoined, MessageReceived, CloseReason
from oauth_provider import OAuthProvider


class TestCredential:
    """Test Credential expiry handling."""

    def test_with_lifetime(self):
        """Test a credential built with a lifetime expires in the future."""
        credential = Credential.with_lifetime('token', 365)
        assert credential.token == 'token'
        assert credential.expires_at > datetime.now() + timedelta(days=364)
        assert credential.is_expired() == False

    def test_expiry_boundary(self):
        """Test a credential is expired exactly at its expiry time."""
        expires_at = datetime(2030, 1, 1)
        credential = Credential('token', expires_at)
        assert credential.is_expired(expires_at - timedelta(seconds=1)) == False
        assert credential.is_expired(expires_at) == True
        assert credential.is_expired(expires_at + timedelta(days=1)) == True


class TestOAuthProvider:
    """Test OAuthProvider header attachment."""

    def test_attach_adds_bearer_header(self):
        """Test attach returns a new dict with the Authorization header."""
        provider = OAuthProvider(Credential.with_lifetime('abc123', 1))
        headers = {'Accept': 'application/json'}

        attached = provider.attach(headers)

        assert attached == {'Accept': 'application/json', 'Authorization': 'Bearer abc123'}
        assert 'Authorization' not in headers

    def test_attach_without_headers(self):
        """Test attach works without existing headers."""
        provider = OAuthProvider(Credential.with_lifetime('abc123', 1))
        assert provider.attach() == {'Authorization': 'Bearer abc123'}

    def test_attach_expired_credential(self):
        """Test attach refuses an expired token."""
        provider = OAuthProvider(Credential('abc123', datetime.now() - timedelta(seconds=1)))

        with pytest.raises(ExpiredCredential):
            provider.attach({})

    def test_from_env(self, monkeypatch):
        """Test building a provider from the environment."""
        monkeypatch.setenv('mixer_token', ' secret-token \n')

        provider = OAuthProvider.from_env('mixer_token', 365)

        assert provider.credential.token == 'secret-token'
        assert provider.credential.is_expired() == False

    def test_from_env_missing(self, monkeypatch):
        """Test a missing token variable is a configuration error."""
        monkeypatch.delenv('mixer_token', raising=False)

        with pytest.raises(ConfigurationError):
            OAuthProvider.from_env('mixer_token')

    def test_from_env_empty(self, monkeypatch):
        """Test an empty token variable is a configuration error."""
        monkeypatch.setenv('mixer_token', '   ')

        with pytest.raises(ConfigurationError):
            OAuthProvider.from_env('mixer_token')


class TestModels:
    """Test parsing of API responses and chat events."""

    def test_identity_from_api(self):
        identity = Identity.from_api({'id': 42, 'username': 'Bot', 'channel': {'id': 99, 'token': 'bot'}})
        assert identity == Identity(user_id=42, username='Bot', channel_id=99)

    def test_identity_missing_channel(self):
        with pytest.raises(KeyError):
            Identity.from_api({'id': 42, 'username': 'Bot'})

    def test_descriptor_from_api(self):
        descriptor = ConnectionDescriptor.from_api({
            'endpoints': ['wss://a', 'wss://b'],
            'authkey': 'K',
            'roles': ['Owner']
        })
        assert descriptor.endpoints == ('wss://a', 'wss://b')
        assert descriptor.auth_key == 'K'

    def test_descriptor_without_endpoints(self):
        with pytest.raises(ValueError):
            ConnectionDescriptor.from_api({'endpoints': [], 'authkey': 'K'})

    def test_user_joined_from_event(self):
        event = UserJoined.from_event({'originatingChannel': 99, 'username': 'alice', 'id': 7})
        assert event.username == 'alice'
        assert event.user_id == 7

    def test_message_received_from_event(self):
        event = MessageReceived.from_event({
            'channel': 99,
            'user_name': 'alice',
            'user_id': 7,
            'message': {
                'message': [
                    {'type': 'text', 'data': '!PING ', 'text': '!PING '},
                    {'type': 'emoticon', 'data': ':)', 'text': ':)'}
                ],
                'meta': {}
            }
        })
        assert event.username == 'alice'
        assert event.user_id == 7
        assert event.first_text == '!PING '
        assert event.text == '!PING :)'

    def test_message_received_without_fragments(self):
        event = MessageReceived.from_event({'user_name': 'alice', 'message': {'message': []}})
        assert event.message_parts == ()
        assert event.first_text == ''
        assert event.text == ''

    def test_close_reason_str(self):
        assert str(CloseReason(CloseReason.CLIENT_CLOSED)) == 'client_closed'
        assert str(CloseReason(CloseReason.TRANSPORT_ERROR, 'reset')) == 'transport_error: reset'

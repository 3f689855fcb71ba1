"""
Core data models for the Mixer ping bot.

This module defines the data structures passed between the credential holder,
the REST client, the chat socket and the bot behavior.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Any, Optional, Tuple


@dataclass
class Credential:
    """An OAuth bearer token and the moment it stops being valid."""

    token: str
    expires_at: datetime

    @classmethod
    def with_lifetime(cls, token: str, lifetime_days: float) -> 'Credential':
        """Create a credential that expires ``lifetime_days`` from now."""
        return cls(token=token, expires_at=datetime.now() + timedelta(days=lifetime_days))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the credential can no longer be used."""
        now = now or datetime.now()
        return now >= self.expires_at


@dataclass(frozen=True)
class Identity:
    """The user that owns the bearer token."""

    user_id: int
    username: str
    channel_id: int

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Identity':
        """Create an Identity from a ``users/current`` response body."""
        return cls(
            user_id=int(data['id']),
            username=str(data['username']),
            channel_id=int(data['channel']['id'])
        )


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Chat endpoints and the single-use auth key for one join attempt."""

    endpoints: Tuple[str, ...]
    auth_key: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'ConnectionDescriptor':
        """Create a ConnectionDescriptor from a ``chats/{id}`` response body."""
        endpoints = tuple(str(endpoint) for endpoint in data['endpoints'])
        if not endpoints:
            raise ValueError("join response contains no endpoints")
        return cls(endpoints=endpoints, auth_key=str(data['authkey']))


@dataclass(frozen=True)
class UserJoined:
    """A user joined the chat channel."""

    username: str
    user_id: Optional[int] = None

    @classmethod
    def from_event(cls, data: Dict[str, Any]) -> 'UserJoined':
        return cls(username=str(data.get('username', '')), user_id=data.get('id'))


@dataclass(frozen=True)
class MessageReceived:
    """A chat message posted to the channel."""

    username: str
    message_parts: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)
    user_id: Optional[int] = None

    @classmethod
    def from_event(cls, data: Dict[str, Any]) -> 'MessageReceived':
        message = data.get('message') or {}
        parts = tuple(message.get('message') or ())
        return cls(
            username=str(data.get('user_name', '')),
            message_parts=parts,
            user_id=data.get('user_id')
        )

    @property
    def first_text(self) -> str:
        """Text of the first fragment, which is what commands are matched against."""
        if not self.message_parts:
            return ''
        return str(self.message_parts[0].get('data', ''))

    @property
    def text(self) -> str:
        """Full message text with every fragment joined."""
        return ''.join(str(part.get('data', '')) for part in self.message_parts)


class SessionState(Enum):
    """Lifecycle state of a chat socket."""
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class CloseReason:
    """Why a chat socket reached the closed state."""

    CLIENT_CLOSED = "client_closed"
    SERVER_CLOSED = "server_closed"
    TRANSPORT_ERROR = "transport_error"
    HANDSHAKE_FAILED = "handshake_failed"

    code: str
    message: str = ""

    def __str__(self) -> str:
        if self.message:
            return f"{self.code}: {self.message}"
        return self.code

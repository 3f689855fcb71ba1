"""
Exception hierarchy for the Mixer ping bot.

Startup errors (credential, REST lookups, chat handshake) are raised to the
controller, which treats every one of them as fatal.
"""


class MixerBotError(Exception):
    """Base exception for Mixer bot errors."""
    pass


class ExpiredCredential(MixerBotError):
    """Raised when the bearer token is used after its expiry."""
    pass


class AuthRejected(MixerBotError):
    """Raised when the REST API refuses the bearer token."""
    pass


class ChannelNotFound(MixerBotError):
    """Raised when the requested chat channel does not exist."""
    pass


class NetworkError(MixerBotError):
    """Raised when a REST request fails or returns an unusable response."""
    pass


class HandshakeTimeout(MixerBotError):
    """Raised when the chat server does not answer the auth packet in time."""
    pass


class AuthKeyRejected(MixerBotError):
    """Raised when the chat server rejects the auth packet."""
    pass


class TransportError(MixerBotError):
    """Raised when the chat WebSocket cannot be opened or fails during handshake."""
    pass

"""
Mixer REST client for the ping bot.

This module performs the two lookups the bot needs before it can chat: the
identity that owns the OAuth token, and the chat connection information for
a channel.
"""

import asyncio
import logging
from typing import Dict, Any, Optional
import json
import requests

from exceptions import AuthRejected, ChannelNotFound, NetworkError
from models import Identity, ConnectionDescriptor
from oauth_provider import OAuthProvider


logger = logging.getLogger(__name__)


class MixerClient:
    """
    Client for the Mixer REST API.

    Every request is authenticated through the OAuth provider and issued once;
    there is no retry and no pagination.
    """

    def __init__(self, provider: OAuthProvider, base_url: str = "https://mixer.com/api/v1", timeout: float = 10.0):
        """
        Initialize the Mixer client.

        Args:
            provider: OAuth provider that attaches the bearer token
            base_url: Base URL for the REST API
            timeout: Timeout for requests in seconds
        """
        self.provider = provider
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = requests.Session()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Close the HTTP session."""
        if self._session:
            self._session.close()

    async def get_current_user(self) -> Identity:
        """
        Get the user who owns the OAuth token.

        Returns:
            Identity of the token owner

        Raises:
            ExpiredCredential: If the token expired
            AuthRejected: If the API answers with a non-2xx status
            NetworkError: If the request fails or the body is malformed
        """
        response = await self._make_request('GET', 'users/current')

        if not response.ok:
            logger.error(f"users/current returned HTTP {response.status_code}: {response.text}")
            raise AuthRejected(f"HTTP {response.status_code}: {response.text}")

        data = self._decode(response)
        try:
            identity = Identity.from_api(data)
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Unexpected users/current response: {e}")

        logger.info(f"Hi, {identity.username}! (user {identity.user_id}, channel {identity.channel_id})")
        return identity

    async def join_chat(self, channel_id: int) -> ConnectionDescriptor:
        """
        Get chat connection information for a channel.

        The returned auth key is single-use, so every call performs a fresh
        request.

        Args:
            channel_id: Id of the channel to join

        Returns:
            Endpoints and auth key for the chat handshake

        Raises:
            ExpiredCredential: If the token expired
            ChannelNotFound: If the channel id is invalid or unknown
            AuthRejected: If the API refuses the token
            NetworkError: For any other failure
        """
        if isinstance(channel_id, bool) or not isinstance(channel_id, int) or channel_id <= 0:
            raise ChannelNotFound(f"Invalid channel id: {channel_id!r}")

        response = await self._make_request('GET', f'chats/{channel_id}')

        if response.status_code == 404:
            raise ChannelNotFound(f"Channel {channel_id} not found")
        if response.status_code in (401, 403):
            raise AuthRejected(f"HTTP {response.status_code}: {response.text}")
        if not response.ok:
            logger.error(f"chats/{channel_id} returned HTTP {response.status_code}: {response.text}")
            raise NetworkError(f"HTTP {response.status_code}: {response.text}")

        data = self._decode(response)
        try:
            descriptor = ConnectionDescriptor.from_api(data)
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Unexpected chats/{channel_id} response: {e}")

        logger.debug(f"Chat endpoints for channel {channel_id}: {list(descriptor.endpoints)}")
        return descriptor

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        timeout: Optional[float] = None
    ) -> requests.Response:
        """
        Make an authenticated HTTP request to the API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            timeout: Request timeout override

        Returns:
            The raw response

        Raises:
            ExpiredCredential: If the token expired
            NetworkError: If the connection fails or times out
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        request_timeout = timeout or self.timeout
        headers = self.provider.attach({'Accept': 'application/json'})

        try:
            # Use asyncio.to_thread to run the synchronous requests call in a thread
            return await asyncio.to_thread(
                self._session.request,
                method.upper(),
                url,
                headers=headers,
                timeout=request_timeout
            )
        except requests.exceptions.Timeout:
            logger.error(f"Request to {url} timed out after {request_timeout}s")
            raise NetworkError(f"Request timed out after {request_timeout}s")
        except requests.exceptions.RequestException as e:
            logger.error(f"Connection error to {url}: {e}")
            raise NetworkError(f"Failed to connect to Mixer API: {e}")

    def _decode(self, response: requests.Response) -> Dict[str, Any]:
        """Decode a JSON object body."""
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Failed to decode JSON response: {e}")
            raise NetworkError(f"Invalid JSON response: {e}")

        if not isinstance(data, dict):
            raise NetworkError(f"Expected a JSON object, got {type(data).__name__}")
        return data

"""
Main controller for the Mixer ping bot.

This module runs the chat session lifecycle: load the OAuth token, look up the
bot's identity, request chat connection information, authenticate the chat
socket, announce the bot and bind its behavior until the socket closes.
"""

import logging
from typing import Optional, Dict, Any
from datetime import datetime

from config_manager import ConfigurationManager
from oauth_provider import OAuthProvider
from mixer_client import MixerClient
from chat_socket import ChatSocket
from ping_bot import PingBot
from models import Identity, ConnectionDescriptor, CloseReason
from exceptions import MixerBotError


class BotController:
    """
    Orchestrates the startup sequence and lifetime of one chat session.

    Startup is strictly ordered: identity, then connection information for
    the target channel, then the handshake. Any error raised during startup
    is fatal and propagates to the caller.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the Bot Controller.

        Args:
            config_path: Path to the configuration file, or None for defaults
        """
        self.config_path = config_path
        self.logger = logging.getLogger(__name__)

        # Core components
        self.config_manager: Optional[ConfigurationManager] = None
        self.provider: Optional[OAuthProvider] = None
        self.client: Optional[MixerClient] = None
        self.socket: Optional[ChatSocket] = None
        self.bot: Optional[PingBot] = None

        # Session state
        self.identity: Optional[Identity] = None
        self.channel_id: Optional[int] = None
        self.startup_time: Optional[datetime] = None
        self.stopping = False

    def initialize(self) -> None:
        """Load configuration and the OAuth token."""
        self.logger.info("Loading configuration...")
        self.config_manager = ConfigurationManager(self.config_path)

        mixer_config = self.config_manager.get_mixer_config()
        self.provider = OAuthProvider.from_env(
            mixer_config['token_env'],
            mixer_config['token_lifetime_days']
        )
        self.client = MixerClient(
            self.provider,
            base_url=mixer_config['api_base_url'],
            timeout=mixer_config['request_timeout']
        )

    async def start(self) -> Optional[ChatSocket]:
        """
        Connect to chat and bind the bot.

        Returns:
            The ready chat socket, or None if stop() was called during startup

        Raises:
            MixerBotError: If any startup step fails
            ConfigurationError: If configuration or the token is missing
        """
        if self.config_manager is None:
            self.initialize()

        chat_config = self.config_manager.get_chat_config()
        bot_config = self.config_manager.get_bot_config()

        self.identity = await self.client.get_current_user()
        if self.stopping:
            return None

        # Join the bot's own channel unless another one is configured
        self.channel_id = chat_config.get('channel_id') or self.identity.channel_id
        descriptor = await self.client.join_chat(self.channel_id)
        if self.stopping:
            return None

        await self._join_chat(descriptor, chat_config)
        self.startup_time = datetime.now()

        self.socket.send(chat_config['connect_message'])

        self.bot = PingBot(
            command_prefix=bot_config['command_prefix'],
            greeting_template=bot_config['greeting_template'],
            pong_template=bot_config['pong_template'],
            own_user_id=self.identity.user_id,
            ignore_own_messages=bot_config['ignore_own_messages']
        )
        self.bot.bind(self.socket)

        self.logger.info(
            f"Ping bot started!\n"
            f"  - User: {self.identity.username} ({self.identity.user_id})\n"
            f"  - Channel: {self.channel_id}\n"
            f"  - Endpoint: {self.socket.endpoint}"
        )
        return self.socket

    async def _join_chat(self, descriptor: ConnectionDescriptor, chat_config: Dict[str, Any]) -> ChatSocket:
        """Open and authenticate the chat socket with a fresh descriptor."""
        # Assigned before connecting so stop() can abort the handshake
        self.socket = socket = ChatSocket(handshake_timeout=chat_config['handshake_timeout'])
        socket.on_close(self._on_socket_closed)
        await socket.connect(
            list(descriptor.endpoints),
            self.channel_id,
            self.identity.user_id,
            descriptor.auth_key
        )
        return socket

    def _on_socket_closed(self, reason: CloseReason) -> None:
        if reason.code == CloseReason.CLIENT_CLOSED:
            self.logger.info("Chat session ended")
        else:
            self.logger.error(f"Chat session lost: {reason}")

    async def run(self) -> CloseReason:
        """
        Start the bot and wait until the chat socket closes.

        Returns:
            Why the session ended; client_closed if stop() interrupted startup
        """
        try:
            socket = await self.start()
            if socket is None:
                return CloseReason(CloseReason.CLIENT_CLOSED, "stopped during startup")
            return await socket.wait_closed()
        except MixerBotError:
            if not self.stopping:
                raise
            # stop() closed the socket under the handshake
            self.logger.info("Startup interrupted by shutdown")
            if self.socket and self.socket.close_reason:
                return self.socket.close_reason
            return CloseReason(CloseReason.CLIENT_CLOSED, "stopped during startup")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Close the chat socket and the REST client, aborting any startup in progress."""
        self.stopping = True

        if self.socket:
            await self.socket.close()

        if self.client:
            await self.client.close()

        if self.startup_time:
            uptime = datetime.now() - self.startup_time
            self.logger.info(f"Ping bot stopped (uptime: {uptime})")

    def get_status(self) -> Dict[str, Any]:
        """Get session status information."""
        return {
            'state': self.socket.state.value if self.socket else 'not_started',
            'user': self.identity.username if self.identity else None,
            'channel_id': self.channel_id,
            'endpoint': self.socket.endpoint if self.socket else None,
            'close_reason': str(self.socket.close_reason) if self.socket and self.socket.close_reason else None,
            'startup_time': self.startup_time.isoformat() if self.startup_time else None
        }

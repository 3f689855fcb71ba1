"""
Ping bot behavior.

Greets users joining the channel and answers the ``!ping`` command.
"""

import logging
from typing import Optional

from chat_socket import ChatSocket, USER_JOIN, CHAT_MESSAGE
from models import UserJoined, MessageReceived


class PingBot:
    """Chat reactions bound once to a ready chat socket."""

    def __init__(
        self,
        command_prefix: str = '!ping',
        greeting_template: str = "Hi {username}! I'm pingbot! Write !ping and I will pong back!",
        pong_template: str = '@{username} PONG!',
        own_user_id: Optional[int] = None,
        ignore_own_messages: bool = False
    ):
        """
        Initialize the bot behavior.

        Args:
            command_prefix: Prefix that triggers a pong, matched case-insensitively
            greeting_template: Greeting sent on join, formatted with ``username``
            pong_template: Reply to the command, formatted with ``username``
            own_user_id: User id the bot chats as
            ignore_own_messages: Skip chat messages sent by ``own_user_id``
        """
        self.command_prefix = command_prefix.casefold()
        self.greeting_template = greeting_template
        self.pong_template = pong_template
        self.own_user_id = own_user_id
        self.ignore_own_messages = ignore_own_messages
        self.logger = logging.getLogger(__name__)

        self.socket: Optional[ChatSocket] = None

    def bind(self, socket: ChatSocket) -> None:
        """Register the bot's handlers on a chat socket."""
        self.socket = socket
        socket.on(USER_JOIN, self.greet)
        socket.on(CHAT_MESSAGE, self.handle_message)

    def greet(self, event: UserJoined) -> None:
        """Greet a user who joined the channel."""
        self.socket.send(self.greeting_template.format(username=event.username))

    def handle_message(self, event: MessageReceived) -> None:
        """Answer the ping command."""
        if self.ignore_own_messages and event.user_id is not None and event.user_id == self.own_user_id:
            return

        if not event.first_text.casefold().startswith(self.command_prefix):
            return

        self.socket.send(self.pong_template.format(username=event.username))
        self.logger.info(f"Ponged {event.username}")

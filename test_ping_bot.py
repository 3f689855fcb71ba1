#!/usr/bin/env python3
"""
Unit tests for the ping bot behavior.
"""

import logging
import pytest
from unittest.mock import MagicMock, call

from chat_socket import ChatSocket, USER_JOIN, CHAT_MESSAGE
from models import UserJoined, MessageReceived, SessionState
from ping_bot import PingBot


def message(username, *fragments, user_id=None):
    return MessageReceived(
        username=username,
        message_parts=tuple({'type': 'text', 'data': text} for text in fragments),
        user_id=user_id
    )


@pytest.fixture
def socket():
    return MagicMock(spec=ChatSocket)


@pytest.fixture
def bot(socket):
    bot = PingBot()
    bot.bind(socket)
    return bot


class TestBinding:
    """Test handler registration."""

    def test_bind_registers_handlers(self, socket):
        bot = PingBot()
        bot.bind(socket)

        assert socket.on.call_args_list == [
            call(USER_JOIN, bot.greet),
            call(CHAT_MESSAGE, bot.handle_message)
        ]
        assert bot.socket is socket


class TestGreeting:
    """Test greeting joining users."""

    @pytest.mark.parametrize('username', ['alice', 'ALICE', 'x_Y-9', 'name {with} braces', ''])
    def test_greets_once_with_username(self, bot, socket, username):
        bot.greet(UserJoined(username=username))

        socket.send.assert_called_once_with(
            f"Hi {username}! I'm pingbot! Write !ping and I will pong back!"
        )

    def test_custom_template(self, socket):
        bot = PingBot(greeting_template='Welcome, {username}')
        bot.bind(socket)

        bot.greet(UserJoined(username='alice'))

        socket.send.assert_called_once_with('Welcome, alice')


class TestPing:
    """Test the !ping command."""

    @pytest.mark.parametrize('text', ['!ping', '!PING now', '!Ping', '!pinging', '!ping!'])
    def test_matching_prefix_pongs_once(self, bot, socket, text):
        bot.handle_message(message('alice', text))

        socket.send.assert_called_once_with('@alice PONG!')

    @pytest.mark.parametrize('text', ['ping', ' !ping', 'hello !ping', '!pin', '', '!pong'])
    def test_other_text_is_ignored(self, bot, socket, text):
        bot.handle_message(message('alice', text))

        socket.send.assert_not_called()

    def test_only_first_fragment_is_matched(self, bot, socket):
        bot.handle_message(message('alice', 'hey ', '!ping'))
        socket.send.assert_not_called()

        bot.handle_message(message('bob', '!ping', ' :)'))
        socket.send.assert_called_once_with('@bob PONG!')

    def test_message_without_fragments(self, bot, socket):
        bot.handle_message(message('alice'))
        socket.send.assert_not_called()

    def test_pong_is_logged(self, bot, caplog):
        with caplog.at_level(logging.INFO, logger='ping_bot'):
            bot.handle_message(message('alice', '!ping'))

        assert 'Ponged alice' in caplog.text

    def test_custom_prefix_is_case_insensitive(self, socket):
        bot = PingBot(command_prefix='!Hello', pong_template='hi {username}')
        bot.bind(socket)

        bot.handle_message(message('alice', '!HELLO there'))

        socket.send.assert_called_once_with('hi alice')


class TestSelfEcho:
    """Test handling of the bot's own messages."""

    def test_own_messages_answered_by_default(self, socket):
        bot = PingBot(own_user_id=42)
        bot.bind(socket)

        bot.handle_message(message('Bot', '!ping', user_id=42))

        socket.send.assert_called_once_with('@Bot PONG!')

    def test_own_messages_ignored_when_enabled(self, socket):
        bot = PingBot(own_user_id=42, ignore_own_messages=True)
        bot.bind(socket)

        bot.handle_message(message('Bot', '!ping', user_id=42))
        socket.send.assert_not_called()

        bot.handle_message(message('alice', '!ping', user_id=7))
        socket.send.assert_called_once_with('@alice PONG!')


class TestDuplicateBinding:
    """Test binding twice is not deduplicated."""

    @pytest.mark.asyncio
    async def test_binding_twice_pongs_twice(self):
        socket = ChatSocket()
        socket.send = MagicMock()
        bot = PingBot()
        bot.bind(socket)
        bot.bind(socket)

        # Dispatch directly as the reader task would once READY
        socket.state = SessionState.READY
        await socket._dispatch(CHAT_MESSAGE, {
            'user_name': 'alice',
            'message': {'message': [{'data': '!ping'}]}
        })

        assert socket.send.call_args_list == [call('@alice PONG!'), call('@alice PONG!')]

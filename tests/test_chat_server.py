#!/usr/bin/env python3
"""
Unit tests for relay_server/chat/chat_server.py

Connections are mocks that record what was sent, so every protocol rule
can be checked without opening sockets:
- Nickname registration and rejection
- Welcome message contents
- Broadcast fan-out that skips the sender
- Join and leave notices
- Failure isolation during broadcast
"""

import unittest
from unittest.mock import Mock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relay_server.chat.chat_server import ChatServer
from relay_server.chat.registry import PendingConnection, RegisteredClient


def received(conn) -> str:
    """Everything a mocked connection was sent, decoded."""
    return ''.join(call.args[0].decode('utf-8') for call in conn.sendall.call_args_list)


class TestChatServer(unittest.TestCase):
    """Test cases for the nickname/broadcast protocol."""

    def setUp(self):
        self.chat = ChatServer()
        self.connections = {}

    def connect(self, handle):
        conn = Mock()
        self.connections[handle] = conn
        self.chat.open_session(handle, ('127.0.0.1', 40000 + handle))
        return conn

    def register(self, handle, nickname):
        conn = self.connect(handle)
        self.chat.handle_line(handle, nickname, self.connections)
        return conn

    def test_first_client_gets_alone_welcome(self):
        alice = self.register(4, 'alice')

        self.assertEqual(received(alice), "Welcome! You are the only user here.\r\n")
        self.assertIsInstance(self.chat.get_session(4), RegisteredClient)
        self.assertEqual(self.chat.get_participant_count(), 1)

    def test_online_count_is_logged_on_join_and_leave(self):
        self.register(4, 'alice')

        with self.assertLogs('chat_relay', level='DEBUG') as logs:
            self.register(5, 'bob')
            self.chat.disconnect_client(4, self.connections)

        counts = [line for line in logs.output if 'users online' in line]
        self.assertEqual(len(counts), 2)
        self.assertIn('2 users online', counts[0])
        self.assertIn('1 users online', counts[1])

    def test_open_session_is_pending_and_unregistered(self):
        self.connect(4)

        self.assertIsInstance(self.chat.get_session(4), PendingConnection)
        self.assertNotIn(4, self.chat.registry)

    def test_taken_nickname_is_rejected_and_retry_allowed(self):
        self.register(4, 'alice')
        bob = self.connect(5)

        accepted = self.chat.handle_register(5, 'alice', self.connections)

        self.assertFalse(accepted)
        self.assertEqual(received(bob), "Nickname taken, choose another:\r\n> ")
        self.assertIsInstance(self.chat.get_session(5), PendingConnection)
        self.assertEqual(self.chat.registry.nicknames(), ['alice'])

        self.chat.handle_line(5, 'bob', self.connections)
        self.assertIsInstance(self.chat.get_session(5), RegisteredClient)
        self.assertEqual(self.chat.registry.nicknames(), ['alice', 'bob'])

    def test_welcome_lists_other_named_clients_only(self):
        self.register(4, 'alice')
        self.connect(5)  # still anonymous
        self.register(6, 'bob')
        dave = self.register(7, 'dave')

        self.assertEqual(received(dave), "Welcome! 2 users online.\r\nUsers: alice, bob\r\n")

    def test_join_notice_goes_to_others_only(self):
        alice = self.register(4, 'alice')
        pending = self.connect(5)
        bob = self.register(6, 'bob')

        self.assertIn("bob joined the chat\r\n", received(alice))
        self.assertNotIn("joined", received(bob))
        pending.sendall.assert_not_called()

    def test_chat_is_relayed_to_everybody_but_sender(self):
        alice = self.register(4, 'alice')
        bob = self.register(5, 'bob')
        carol = self.register(6, 'carol')
        pending = self.connect(7)
        for conn in (alice, bob, carol):
            conn.sendall.reset_mock()

        self.chat.handle_line(5, 'hello', self.connections)

        self.assertEqual(received(alice), "bob: hello\r\n")
        self.assertEqual(received(carol), "bob: hello\r\n")
        bob.sendall.assert_not_called()
        pending.sendall.assert_not_called()

    def test_broadcast_follows_registry_order(self):
        order = []
        for handle, name in ((9, 'zed'), (4, 'alice'), (6, 'mike')):
            conn = self.register(handle, name)
            conn.sendall.side_effect = lambda data, h=handle: order.append(h)
        order.clear()

        self.chat.broadcast(-1, "announcement\r\n", self.connections)

        self.assertEqual(order, [9, 4, 6])

    def test_empty_line_is_ignored(self):
        alice = self.register(4, 'alice')
        anon = self.connect(5)
        alice.sendall.reset_mock()

        self.chat.handle_line(5, '', self.connections)
        self.chat.handle_line(4, '', self.connections)

        anon.sendall.assert_not_called()
        alice.sendall.assert_not_called()
        self.assertIsInstance(self.chat.get_session(5), PendingConnection)

    def test_disconnect_named_client_notifies_each_remaining_client_once(self):
        alice = self.register(4, 'alice')
        bob = self.register(5, 'bob')
        carol = self.register(6, 'carol')
        for conn in (alice, bob, carol):
            conn.sendall.reset_mock()

        session = self.chat.disconnect_client(5, self.connections)

        self.assertEqual(session.nickname, 'bob')
        self.assertEqual(received(alice), "bob left the chat\r\n")
        self.assertEqual(received(carol), "bob left the chat\r\n")
        bob.sendall.assert_not_called()
        self.assertEqual(self.chat.registry.nicknames(), ['alice', 'carol'])
        self.assertIsNone(self.chat.get_session(5))

    def test_disconnect_anonymous_client_is_silent(self):
        alice = self.register(4, 'alice')
        self.connect(5)
        alice.sendall.reset_mock()

        session = self.chat.disconnect_client(5, self.connections)

        self.assertIsInstance(session, PendingConnection)
        alice.sendall.assert_not_called()
        self.assertEqual(self.chat.registry.nicknames(), ['alice'])

    def test_disconnect_twice_is_noop(self):
        alice = self.register(4, 'alice')
        self.register(5, 'bob')
        self.chat.disconnect_client(5, self.connections)
        alice.sendall.reset_mock()

        self.assertIsNone(self.chat.disconnect_client(5, self.connections))
        alice.sendall.assert_not_called()

    def test_nickname_is_released_on_disconnect(self):
        self.register(4, 'alice')
        self.chat.disconnect_client(4, self.connections)
        del self.connections[4]

        newcomer = self.register(5, 'alice')

        self.assertEqual(received(newcomer), "Welcome! You are the only user here.\r\n")
        self.assertEqual(self.chat.registry.find(5).nickname, 'alice')

    def test_send_failure_does_not_abort_broadcast(self):
        alice = self.register(4, 'alice')
        broken = self.register(5, 'broken')
        carol = self.register(6, 'carol')
        broken.sendall.side_effect = ConnectionResetError("reset")
        alice.sendall.reset_mock()
        carol.sendall.reset_mock()

        failed = self.chat.broadcast(4, "ping\r\n", self.connections)

        self.assertEqual(failed, [5])
        self.assertEqual(received(carol), "ping\r\n")
        # Recipient stays registered until its own read fails
        self.assertIn(5, self.chat.registry)

    def test_broken_pipe_is_logged_at_debug(self):
        self.register(4, 'alice')
        gone = self.register(5, 'gone')
        gone.sendall.side_effect = BrokenPipeError()

        with self.assertLogs('chat_relay', level='DEBUG') as logs:
            self.chat.handle_line(4, 'hi', self.connections)

        self.assertTrue(any('already gone' in line for line in logs.output))
        self.assertFalse(any(line.startswith('ERROR') for line in logs.output))

    def test_full_send_buffer_drops_message_for_that_recipient_only(self):
        self.register(4, 'alice')
        stalled = self.register(5, 'stalled')
        carol = self.register(6, 'carol')
        stalled.sendall.side_effect = BlockingIOError()
        carol.sendall.reset_mock()

        with self.assertLogs('chat_relay', level='WARNING') as logs:
            self.chat.handle_line(4, 'hi', self.connections)

        self.assertTrue(any('Send buffer full for handle=5' in line for line in logs.output))
        self.assertEqual(received(carol), "alice: hi\r\n")
        self.assertIsInstance(self.chat.get_session(5), RegisteredClient)
        self.assertEqual(self.chat.registry.nicknames(), ['alice', 'stalled', 'carol'])

    def test_join_survives_failing_recipient(self):
        broken = self.register(4, 'broken')
        broken.sendall.side_effect = OSError("boom")

        bob = self.register(5, 'bob')

        self.assertIn("Users: broken", received(bob))
        self.assertEqual(self.chat.registry.nicknames(), ['broken', 'bob'])

    def test_send_to_missing_connection_returns_false(self):
        self.assertFalse(self.chat.send_message(99, "hi\r\n", self.connections))

    def test_data_from_unknown_handle_is_ignored(self):
        alice = self.register(4, 'alice')
        alice.sendall.reset_mock()

        self.chat.handle_line(42, 'hello', self.connections)

        alice.sendall.assert_not_called()
        self.assertNotIn(42, self.chat.registry)


if __name__ == '__main__':
    unittest.main()

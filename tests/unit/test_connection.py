"""
Unit tests for the Connection wrapper.
"""

import time

from tagserver.core.connection import Connection, ConnectionState


def make_connection(sock, **kwargs) -> Connection:
    return Connection(socket=sock, address=("127.0.0.1", 50000), **kwargs)


class TestConnectionReceive:
    """Tests for Connection.receive()."""

    def test_receive_message(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side)

        client_side.sendall(b"<echo>hi</echo>")

        assert conn.receive() == "<echo>hi</echo>"
        assert conn.state == ConnectionState.PROCESSING

    def test_receive_is_bounded(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side, max_message_size=8)

        client_side.sendall(b"0123456789abcdef")

        assert conn.receive() == "01234567"
        assert conn.receive() == "89abcdef"

    def test_short_read_after_long_read(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side)

        client_side.sendall(b"<echo>a long message</echo>")
        assert conn.receive() == "<echo>a long message</echo>"

        client_side.sendall(b"<loadavg/>")
        assert conn.receive() == "<loadavg/>"

    def test_peer_close_returns_none(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side)

        client_side.close()

        assert conn.receive() is None

    def test_idle_timeout_returns_none(self, socket_pair):
        server_side, _ = socket_pair
        conn = make_connection(server_side, idle_timeout=0.1)

        start = time.time()
        assert conn.receive() is None
        assert time.time() - start < 2.0

    def test_invalid_utf8_is_replaced(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side)

        client_side.sendall(b"<echo>\xff</echo>")

        assert conn.receive() == "<echo>�</echo>"


class TestConnectionSend:
    """Tests for Connection.send()."""

    def test_send_reply(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side)

        assert conn.send("<reply>hi</reply>") is True
        assert client_side.recv(256) == b"<reply>hi</reply>"
        assert conn.messages_handled == 1

    def test_send_failure_returns_false(self, socket_pair):
        server_side, _ = socket_pair
        conn = make_connection(server_side)
        server_side.close()

        assert conn.send("<reply>x</reply>") is False
        assert conn.messages_handled == 0


class TestConnectionClose:
    """Tests for Connection.close()."""

    def test_close_is_idempotent(self, socket_pair):
        server_side, _ = socket_pair
        conn = make_connection(server_side)

        conn.close()
        conn.close()

        assert conn.is_closed

    def test_peer_sees_end_of_stream(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side)

        conn.close()

        assert client_side.recv(16) == b""

    def test_context_manager_closes(self, socket_pair):
        server_side, _ = socket_pair

        with make_connection(server_side) as conn:
            assert not conn.is_closed

        assert conn.is_closed

    def test_client_address_properties(self, socket_pair):
        server_side, _ = socket_pair
        conn = make_connection(server_side)

        assert conn.client_ip == "127.0.0.1"
        assert conn.client_port == 50000
        assert len(conn.id) == 8

    def test_activity_resets_idle_time(self, socket_pair):
        server_side, client_side = socket_pair
        conn = make_connection(server_side)
        conn.last_activity -= 60

        assert conn.idle_time >= 60

        client_side.sendall(b"<loadavg/>")
        conn.receive()

        assert conn.idle_time < 5

"""
Unit tests for the per-connection handler loop.
"""

import threading
from typing import List, Optional

import pytest

from tagserver.core.connection import Connection
from tagserver.handler import ConnectionHandler, HandlerState
from tagserver.protocol import Executor


class ScriptedConnection:
    """
    Connection stand-in that replays a list of messages.

    receive() returns the scripted messages, then None. send() records the
    reply and returns the next scripted result (True by default).
    """

    def __init__(self, messages: List[str], send_results: Optional[List[bool]] = None):
        self.id = "scripted"
        self.client_ip = "10.0.0.1"
        self.client_port = 4242
        self._messages = list(messages)
        self._send_results = list(send_results or [])
        self.sent: List[str] = []
        self.closed = False

    def receive(self) -> Optional[str]:
        if not self._messages:
            return None
        return self._messages.pop(0)

    def send(self, reply: str) -> bool:
        self.sent.append(reply)
        if self._send_results:
            return self._send_results.pop(0)
        return True

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


@pytest.fixture
def executor() -> Executor:
    return Executor(load_average=lambda: (1.0, 2.0, 3.0))


class TestConnectionHandler:
    """Tests for ConnectionHandler."""

    def test_one_reply_per_message(self, executor):
        conn = ScriptedConnection([
            "<echo>HelloWorld</echo>",
            "<echo>HelloWorld</echo>\n",
            "\n",
            "<loadavg/>",
            "<echo> Hello World <echo>",
            "<echo></echo>",
        ])

        ConnectionHandler(conn, executor).run()

        assert conn.sent == [
            "<reply>HelloWorld</reply>",
            "<reply>HelloWorld</reply>",
            "<error>unknown format</error>",
            "<replyLoadAvg>1.000000:2.000000:3.000000</replyLoadAvg>",
            "<error>unknown format</error>",
            "<reply></reply>",
        ]

    def test_closes_when_peer_disconnects(self, executor):
        conn = ScriptedConnection([])
        handler = ConnectionHandler(conn, executor)

        handler.run()

        assert conn.closed
        assert conn.sent == []
        assert handler.state is HandlerState.CLOSED

    def test_send_failure_does_not_stop_loop(self, executor):
        conn = ScriptedConnection(
            ["<echo>a</echo>", "<echo>b</echo>", "<echo>c</echo>"],
            send_results=[True, False, True],
        )
        handler = ConnectionHandler(conn, executor)

        handler.run()

        assert conn.sent == ["<reply>a</reply>", "<reply>b</reply>", "<reply>c</reply>"]
        assert handler.messages_received == 3
        assert handler.send_failures == 1

    def test_unexpected_error_closes_connection(self, caplog):
        class ExplodingExecutor(Executor):
            def execute(self, command, message):
                raise RuntimeError("boom")

        conn = ScriptedConnection(["<echo>a</echo>", "<echo>b</echo>"])
        handler = ConnectionHandler(conn, ExplodingExecutor())

        with caplog.at_level("ERROR", logger="tagserver.handler"):
            handler.run()

        assert conn.closed
        assert handler.state is HandlerState.CLOSED
        assert "boom" in caplog.text

    def test_traffic_is_logged(self, executor, caplog):
        conn = ScriptedConnection(["<echo>logged</echo>\n"])

        with caplog.at_level("INFO", logger="tagserver.traffic"):
            ConnectionHandler(conn, executor).run()

        assert "'<echo>logged</echo>' -> '<reply>logged</reply>'" in caplog.text

    def test_real_socket_round_trip(self, socket_pair, executor):
        server_side, client_side = socket_pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 1))
        handler = ConnectionHandler(conn, executor)

        thread = threading.Thread(target=handler.run, daemon=True)
        thread.start()

        client_side.settimeout(5.0)
        for _ in range(5):
            client_side.sendall(b"<echo>X</echo>")
            assert client_side.recv(256) == b"<reply>X</reply>"

        client_side.close()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert conn.is_closed
        assert handler.messages_received == 5

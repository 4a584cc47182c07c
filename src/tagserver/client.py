"""
=============================================================================
TAG PROTOCOL CLIENT
=============================================================================

A small blocking client for the tag server, plus the `tagserver-client`
command that runs a sequence of requests against a live server.

=============================================================================
USAGE
=============================================================================

    with TagClient(ClientConfig(host="192.168.1.20", port=43817)) as client:
        print(client.request("<echo>Hello</echo>"))   # <reply>Hello</reply>
        print(client.request("<loadavg/>"))

From the shell:

    # Run the built-in smoke sequence
    python -m tagserver.client 192.168.1.20 43817

    # Send your own messages
    python -m tagserver.client localhost 43817 -m "<echo>hi</echo>" -m "<loadavg/>"

Each response is printed as:

    Response from server: <reply>hi</reply>

=============================================================================
ONE REQUEST AT A TIME
=============================================================================

The server reads one message per recv() and answers it before reading the
next, so request() always waits for the reply before returning. Sending
two messages without reading in between could merge them into a single
server-side read.

=============================================================================
"""

import argparse
import socket
import sys
import logging
from typing import List, Optional, Sequence

from . import __version__
from .config import ClientConfig
from .core.socket_server import TransportError


logger = logging.getLogger(__name__)


# Requests sent when no --message is given: normal echoes, trailing
# newlines, an empty and a newline-only message, load average, a broken
# closing tag and an empty echo.
SMOKE_MESSAGES: List[str] = [
    "<echo>HelloWorld</echo>",
    "<echo>HelloWorld</echo>\n",
    "<echo>sfglk</echo>",
    "",
    "\n",
    "<echo>New Line At End</echo>\n",
    "<loadavg/>",
    "<echo> Hello World <echo>",
    "<echo></echo>",
]


class ClientError(TransportError):
    """A client-side connection, send or receive failure."""


def format_response(response: str) -> str:
    return f"Response from server: {response}"


class TagClient:
    """
    Blocking client for the tag protocol.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   connect()          resolve host, create socket, connect           │
    │   send_request(m)    sendall(m)  (empty messages are refused)       │
    │   receive_response() one recv() of at most reply_read_size bytes    │
    │   request(m)         send_request + receive_response                │
    │   close()            release the socket                             │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, config: ClientConfig):
        config.validate()
        self.config = config
        self._socket: Optional[socket.socket] = None

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    def connect(self) -> "TagClient":
        """
        Connect to the server.

        Raises:
            ClientError: If the host can't be resolved or the connection
                         is refused.
        """
        if self._socket is not None:
            return self

        try:
            address = socket.gethostbyname(self.config.host)
        except OSError as e:
            raise ClientError(f"That host does not exist: {self.config.host}", stage="resolve") from e

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise ClientError(f"Cannot open socket: {e}", stage="socket") from e

        sock.settimeout(self.config.timeout)

        try:
            sock.connect((address, self.config.port))
        except OSError as e:
            sock.close()
            raise ClientError(
                f"Cannot connect to the server at {address}:{self.config.port}: {e}",
                stage="connect",
            ) from e

        logger.debug(f"Connected to {address}:{self.config.port}")
        self._socket = sock
        return self

    def _require_socket(self) -> socket.socket:
        if self._socket is None:
            raise ClientError("Not connected", stage="connect")
        return self._socket

    def send_request(self, request: str):
        """
        Send one request without waiting for the reply.

        Raises:
            ValueError: If the request is empty.
            ClientError: If the send fails.
        """
        if not request:
            raise ValueError("Cannot send empty message to the server")

        sock = self._require_socket()
        try:
            sock.sendall(request.encode("utf-8"))
        except OSError as e:
            raise ClientError(f"Send failed: {e}", stage="send") from e

    def receive_response(self) -> str:
        """
        Read one reply.

        Raises:
            ClientError: If the server closed the connection, the read
                         timed out, or the socket failed.
        """
        sock = self._require_socket()
        try:
            data = sock.recv(self.config.reply_read_size)
        except socket.timeout as e:
            raise ClientError("Timed out waiting for a response", stage="receive") from e
        except OSError as e:
            raise ClientError(f"Receive failed: {e}", stage="receive") from e

        if not data:
            raise ClientError("Server closed the connection", stage="receive")

        return data.decode("utf-8", errors="replace")

    def request(self, message: str) -> str:
        """Send a request and return the server's reply."""
        self.send_request(message)
        return self.receive_response()

    def close(self):
        """Close the connection. Safe to call more than once."""
        if self._socket is None:
            return
        try:
            self._socket.close()
        except OSError:
            pass
        self._socket = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def run_messages(client: TagClient, messages: Sequence[str], out=None, err=None) -> int:
    """
    Send each message in turn and print its response.

    Empty messages are reported on `err` and skipped, like any other
    refused request; the remaining messages are still sent.

    Returns:
        Number of messages that got a response.
    """
    out = out or sys.stdout
    err = err or sys.stderr
    answered = 0

    for message in messages:
        try:
            response = client.request(message)
        except ValueError as e:
            print(f"ERROR: {e}", file=err)
            continue
        print(format_response(response), file=out)
        answered += 1

    return answered


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Client CLI entry point.

    Returns:
        Process exit code: 0 on success, 1 on a connection failure.
    """
    parser = argparse.ArgumentParser(
        prog="tagserver-client",
        description="Send tagged requests to a tag server and print the replies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tagserver-client 192.168.1.20 43817                       # Smoke sequence
  tagserver-client localhost 43817 -m "<echo>hi</echo>"     # One request
  tagserver-client localhost 43817 -m "<loadavg/>" -m "<loadavg/>"
        """
    )

    parser.add_argument("host", help="IP address or host name of the server")
    parser.add_argument("port", type=int, help="Port number of the server")

    parser.add_argument(
        "--message", "-m",
        action="append",
        dest="messages",
        help="Message to send (repeatable). Default: built-in smoke sequence"
    )

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=10.0,
        help="Seconds to wait for connect and each reply (default: 10)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"tagserver-client {__version__}"
    )

    args = parser.parse_args(argv)

    try:
        config = ClientConfig(host=args.host, port=args.port, timeout=args.timeout)
        with TagClient(config) as client:
            run_messages(client, args.messages or SMOKE_MESSAGES)
    except (ValueError, ClientError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the small API the
connection handler needs: receive one message, send one reply, close.

=============================================================================
ONE RECEIVE = ONE MESSAGE
=============================================================================

TCP is a byte stream and does not preserve message boundaries. This
protocol deliberately doesn't add framing on top of it: a message is
whatever ONE recv() call returns, bounded by max_message_size (256 bytes).

    Client sends:  "<echo>Hello</echo>"
    Server:        recv(256) → b"<echo>Hello</echo>"   → one message

That works because clients wait for the reply before sending the next
request - there is never more than one request in flight per connection:

    Client                              Server
      │   "<echo>A</echo>"                │
      │ ─────────────────────────────────►│ recv()
      │                                   │
      │   "<reply>A</reply>"              │
      │ ◄─────────────────────────────────│ sendall()
      │                                   │
      │   "<loadavg/>"                    │
      │ ─────────────────────────────────►│ recv()
      ...

Every receive gets a FRESH bytes object from the socket, so a short read
never contains leftovers from the previous, longer one.

=============================================================================
WHEN DOES receive() RETURN None?
=============================================================================

    recv() returned b""          → peer closed its side (FIN)
    ConnectionResetError         → peer aborted (RST)
    socket.timeout               → idle_timeout elapsed with no data
    any other OSError            → socket is unusable

In every case the handler's answer is the same: stop reading and close.

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states.

    Used for logging and to make close() idempotent.
    """
    NEW = "new"              # Just accepted
    RECEIVING = "receiving"  # Blocked in recv()
    PROCESSING = "processing"  # Building the reply
    SENDING = "sending"      # Writing the reply
    CLOSED = "closed"        # Socket released


@dataclass
class Connection:
    """
    Represents one accepted client.

    A Connection is owned by exactly one handler thread from accept()
    until close(); nothing else reads from or writes to its socket.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        last_activity: Timestamp of the last successful recv/send.
        messages_handled: Number of replies sent on this connection.
        max_message_size: Upper bound for one recv().
        idle_timeout: Seconds to wait in recv(); None blocks forever.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    messages_handled: int = 0

    max_message_size: int = 256
    idle_timeout: Optional[float] = None

    def __post_init__(self):
        # settimeout(None) puts the socket in plain blocking mode
        self.socket.settimeout(self.idle_timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        if isinstance(self.address, tuple) and self.address:
            return str(self.address[0])
        return str(self.address)

    @property
    def client_port(self) -> int:
        """Get the client port (0 for non-IP sockets)."""
        if isinstance(self.address, tuple) and len(self.address) > 1:
            return self.address[1]
        return 0

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def idle_time(self) -> float:
        """Seconds since the last successful recv/send."""
        return time.time() - self.last_activity

    # =========================================================================
    # READING
    # =========================================================================

    def receive(self) -> Optional[str]:
        """
        Read one message from the client.

        Blocks until data arrives, the peer disconnects, or idle_timeout
        elapses. At most max_message_size bytes are read; the bytes are
        decoded as UTF-8 with undecodable bytes replaced.

        Returns:
            The message text, or None if the connection is finished.
        """
        self.state = ConnectionState.RECEIVING

        try:
            data = self.socket.recv(self.max_message_size)
        except socket.timeout:
            logger.debug(f"[{self.id}] Idle timeout after {self.idle_timeout}s")
            return None
        except (ConnectionResetError, ConnectionAbortedError):
            logger.debug(f"[{self.id}] Connection reset by peer")
            return None
        except OSError as e:
            logger.warning(f"[{self.id}] Receive failed: {e}")
            return None

        if not data:
            # Zero bytes: peer closed its side
            return None

        self.last_activity = time.time()
        self.state = ConnectionState.PROCESSING
        return data.decode("utf-8", errors="replace")

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, reply: str) -> bool:
        """
        Send a reply to the client.

        Uses sendall() so the whole reply goes out or an error is raised.

        Returns:
            True if the reply was sent, False if the send failed.
        """
        self.state = ConnectionState.SENDING

        try:
            self.socket.sendall(reply.encode("utf-8"))
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.time()
        self.messages_handled += 1
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection. Safe to call more than once.

        shutdown(SHUT_WR) sends FIN so the client sees a clean end of
        stream before the descriptor is released.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed after {self.messages_handled} messages "
            f"(age {self.age:.2f}s, idle {self.idle_time:.2f}s)"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False

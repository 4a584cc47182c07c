"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Runs the request/reply loop for ONE client, from accept to close. Each
handler runs in its own thread and touches nothing but its own Connection,
so handlers never need to coordinate with each other.

=============================================================================
STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │        ┌──────────────────────────────┐                             │
    │        │          RECEIVING           │◄──────────────┐             │
    │        └──────────────┬───────────────┘               │             │
    │                       │ conn.receive()                │             │
    │           ┌───────────┴────────────┐                  │             │
    │           │                        │                  │             │
    │       None (EOF,               message                │             │
    │       reset, timeout)              │                  │             │
    │           │                strip "\\n", classify,     │             │
    │           │                execute, conn.send()  ─────┘             │
    │           ▼                (send failure is logged,                 │
    │   ┌──────────────┐          loop continues)                         │
    │   │    CLOSED    │                                                  │
    │   └──────────────┘                                                  │
    │     socket released                                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every message gets exactly one reply before the next message is read.
A failed send does not end the loop; a broken socket ends it on the next
receive.

=============================================================================
"""

import time
import logging
from enum import Enum
from typing import Optional

from .core.connection import Connection
from .protocol import Executor, classify, strip_newline
from .traffic import TrafficLogger


logger = logging.getLogger(__name__)


class HandlerState(Enum):
    RECEIVING = "receiving"
    CLOSED = "closed"


class ConnectionHandler:
    """
    Request/reply loop for one connection.

    Usage:
        handler = ConnectionHandler(conn, Executor())
        handler.run()   # Returns when the client disconnects
    """

    def __init__(
        self,
        connection: Connection,
        executor: Executor,
        traffic: Optional[TrafficLogger] = None,
    ):
        self.connection = connection
        self.executor = executor
        self.traffic = traffic or TrafficLogger()
        self.state = HandlerState.RECEIVING
        self.messages_received = 0
        self.send_failures = 0

    def run(self):
        """
        Serve the connection until it closes.

        Unexpected errors end this connection only; they are logged with a
        traceback and never reach the accept loop.
        """
        conn = self.connection
        logger.info(f"[{conn.id}] Client connected from {conn.client_ip}:{conn.client_port}")

        try:
            with conn:
                while self.state is HandlerState.RECEIVING:
                    raw = conn.receive()
                    if raw is None:
                        break
                    self.handle_message(raw)
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            self.state = HandlerState.CLOSED

        logger.info(
            f"[{conn.id}] Client {conn.client_ip}:{conn.client_port} disconnected "
            f"after {self.messages_received} messages"
        )

    def handle_message(self, raw: str) -> str:
        """
        Reply to one received message.

        Args:
            raw: The message exactly as received.

        Returns:
            The reply that was (or failed to be) sent.
        """
        started_at = time.time()
        self.messages_received += 1

        message = strip_newline(raw)
        command = classify(message)
        reply = self.executor.execute(command, message)

        sent = self.connection.send(reply)
        if not sent:
            self.send_failures += 1

        self.traffic.log_exchange(
            self.connection,
            command=command.kind.value,
            message=message,
            reply=reply,
            sent=sent,
            started_at=started_at,
        )
        return reply

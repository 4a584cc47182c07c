"""
=============================================================================
TRAFFIC LOGGING
=============================================================================

One log line per request/reply exchange, written to the namespaced
"tagserver.traffic" logger so it can be routed or silenced on its own:

    logging.getLogger("tagserver.traffic").setLevel(logging.WARNING)

=============================================================================
FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ [3f9c2a1b] 192.168.1.50:51234 "<echo>Hi</echo>" -> "<reply>Hi</..." │
    │ 0.12ms                                                              │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"connection_id": "3f9c2a1b", "client_ip": "192.168.1.50",          │
    │  "client_port": 51234, "command": "echo",                           │
    │  "message": "<echo>Hi</echo>", "reply": "<reply>Hi</reply>",        │
    │  "sent": true, "duration_ms": 0.12, "timestamp": "..."}             │
    └─────────────────────────────────────────────────────────────────────┘

Messages are logged with repr() in text mode so embedded newlines stay on
one line.

=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass, asdict


logger = logging.getLogger("tagserver.traffic")


@dataclass
class ExchangeLog:
    """
    Structured log entry for one message and its reply.

    Attributes:
        connection_id: Connection.id of the client.
        client_ip: Client's IP address.
        client_port: Client's port.
        command: CommandKind value ("echo", "loadavg", "malformed").
        message: The message as classified (newline stripped).
        reply: The reply produced.
        sent: False if writing the reply failed.
        duration_ms: Time from receive to send completion.
        timestamp: When the exchange finished.
    """

    connection_id: str
    client_ip: str
    client_port: int
    command: str
    message: str
    reply: str
    sent: bool
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        status = "" if self.sent else " (send failed)"
        return (
            f"[{self.connection_id}] {self.client_ip}:{self.client_port} "
            f"{self.message!r} -> {self.reply!r}{status} {self.duration_ms:.2f}ms"
        )


class TrafficLogger:
    """
    Emits ExchangeLog entries in text or JSON form.

    Usage:
        traffic = TrafficLogger(log_format="json")
        traffic.log_exchange(conn, command, message, reply, sent, started)
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def render(self, entry: ExchangeLog) -> str:
        if self.log_format == "json":
            return json.dumps(entry.to_dict())
        return entry.to_text()

    def log_exchange(
        self,
        connection,
        command: str,
        message: str,
        reply: str,
        sent: bool,
        started_at: float,
    ) -> ExchangeLog:
        """
        Build and emit the log entry for one exchange.

        Args:
            connection: The Connection the exchange happened on.
            command: CommandKind value of the classified message.
            message: The classified message.
            reply: The reply produced.
            sent: Whether the reply was written successfully.
            started_at: time.time() when the message was received.

        Returns:
            The ExchangeLog that was emitted.
        """
        entry = ExchangeLog(
            connection_id=connection.id,
            client_ip=connection.client_ip,
            client_port=connection.client_port,
            command=command,
            message=message,
            reply=reply,
            sent=sent,
            duration_ms=(time.time() - started_at) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if logger.isEnabledFor(self.log_level):
            logger.log(self.log_level, self.render(entry))

        return entry

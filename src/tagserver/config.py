"""
=============================================================================
SERVER AND CLIENT CONFIGURATION
=============================================================================

Centralized configuration for the tag server and its client.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m tagserver --port 9000                           │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TAGSERVER_PORT=9000 python -m tagserver                   │
    │                                                                      │
    │   3. Default values (in the dataclasses below)                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
THE DEFAULTS REPRODUCE THE CLASSIC BEHAVIOUR
=============================================================================

Out of the box the server:
- binds every interface on a port the OS picks (port=0)
- reads at most 256 bytes per message
- waits forever for an idle client (idle_timeout=None)
- runs any number of connections at once (max_connections=None)

idle_timeout and max_connections are opt-in hardening. Set them when the
server faces clients you don't trust.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .protocol.commands import ECHO_OPEN, ECHO_CLOSE, REPLY_OPEN, REPLY_CLOSE


DEFAULT_MAX_MESSAGE_SIZE = 256

ECHO_REPLY_GROWTH = len(REPLY_OPEN + REPLY_CLOSE) - len(ECHO_OPEN + ECHO_CLOSE)


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class ServerConfig:
    """
    Configuration for the tag server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, accept_timeout

    CONNECTION SETTINGS
    - max_message_size, idle_timeout, max_connections

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = ""
    """
    The IP address to bind to.
    - "" - All interfaces (the server then reports its outbound IP)
    - "127.0.0.1" - Localhost only
    """

    port: int = 0
    """
    The port number to listen on. 0 lets the OS choose a free port;
    the chosen port is printed at startup.
    """

    backlog: int = 5
    """Maximum number of connections queued before accept()."""

    accept_timeout: float = 1.0
    """
    How long accept() blocks before re-checking for shutdown.
    Only affects how quickly Ctrl+C is noticed.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE
    """Largest message read in one receive, in bytes."""

    idle_timeout: Optional[float] = None
    """
    Seconds a connection may sit idle before it is closed.
    None = wait forever.
    """

    max_connections: Optional[int] = None
    """
    Upper bound on concurrently served connections.
    None = unbounded (one thread per connection, no cap).
    Connections above the cap are closed right after accept().
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    log_format: str = "text"
    """Traffic log format: 'text' or 'json'."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        TAGSERVER_HOST              Bind address (default: all interfaces)
        TAGSERVER_PORT              Port (default: 0 = ephemeral)
        TAGSERVER_MAX_MESSAGE_SIZE  Bytes per message (default: 256)
        TAGSERVER_IDLE_TIMEOUT      Idle seconds before close (default: none)
        TAGSERVER_MAX_CONNECTIONS   Concurrent connection cap (default: none)
        TAGSERVER_LOG_LEVEL         Logging level (default: INFO)
        TAGSERVER_LOG_FORMAT        text or json (default: text)

        =====================================================================
        """
        return cls(
            host=os.getenv("TAGSERVER_HOST", ""),
            port=int(os.getenv("TAGSERVER_PORT", "0")),
            max_message_size=int(
                os.getenv("TAGSERVER_MAX_MESSAGE_SIZE", str(DEFAULT_MAX_MESSAGE_SIZE))
            ),
            idle_timeout=_optional_float(os.getenv("TAGSERVER_IDLE_TIMEOUT")),
            max_connections=_optional_int(os.getenv("TAGSERVER_MAX_CONNECTIONS")),
            log_level=os.getenv("TAGSERVER_LOG_LEVEL", "INFO"),
            log_format=os.getenv("TAGSERVER_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by TagServer at construction so a bad value fails at
        startup, not on the first connection.

        Raises:
            ValueError: Describing the first invalid field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.max_message_size < 1:
            raise ValueError("max_message_size must be >= 1")

        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise ValueError("idle_timeout must be > 0")

        if self.max_connections is not None and self.max_connections < 1:
            raise ValueError("max_connections must be >= 1")

        if self.accept_timeout <= 0:
            raise ValueError("accept_timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format: {self.log_format!r}. Must be 'text' or 'json'.")


@dataclass
class ClientConfig:
    """Configuration for TagClient."""

    host: str = "127.0.0.1"
    port: int = 0
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE
    timeout: Optional[float] = 10.0
    """Seconds to wait for connect and for each reply. None = forever."""

    max_reply_size: Optional[int] = None
    """
    Bytes read for one reply. None = max_message_size plus the growth of
    an echo (<reply></reply> is longer than <echo></echo>).
    """

    @property
    def reply_read_size(self) -> int:
        if self.max_reply_size is not None:
            return self.max_reply_size
        return self.max_message_size + ECHO_REPLY_GROWTH

    def validate(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if self.max_message_size < 1:
            raise ValueError("max_message_size must be >= 1")

        if self.max_reply_size is not None and self.max_reply_size < 1:
            raise ValueError("max_reply_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

"""
=============================================================================
CORE TRANSPORT COMPONENTS
=============================================================================

The networking layer under the tag protocol. Nothing above this package
creates, binds or accepts sockets.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Creates the TCP listening socket (ephemeral port by default)     │
    │  • Discovers the hostname and IP clients should use                 │
    │  • Runs the accept() loop                                            │
    │  • Stops on SIGTERM / SIGINT                                         │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ One Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Wraps the client socket                                           │
    │  • receive(): one recv() of at most max_message_size bytes          │
    │  • send(): sendall() one reply                                      │
    │  • close(): idempotent, usable as a context manager                 │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import (
    SocketServer,
    TransportError,
    AcceptError,
    HostInfo,
    discover_host_info,
)
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",       # Listening socket + accept loop
    "TransportError",     # Fatal socket setup failure
    "AcceptError",        # Fatal accept() failure
    "HostInfo",           # Hostname / IP / port for the startup banner
    "discover_host_info",
    "Connection",         # One client socket
    "ConnectionState",    # Connection lifecycle states
]

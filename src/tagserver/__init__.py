"""
=============================================================================
TAGSERVER - Threaded Request/Reply Server for a Tiny Tagged Protocol
=============================================================================

Clients connect over TCP and send one tagged command at a time; the server
answers each with one tagged reply:

    <echo>TEXT</echo>    →  <reply>TEXT</reply>
    <loadavg/>           →  <replyLoadAvg>0.520000:0.580000:0.590000</replyLoadAvg>
    anything else        →  <error>unknown format</error>

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tagserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # Server CLI (python -m tagserver)
    ├── server.py            # TagServer: accept loop + handler threads
    ├── handler.py           # ConnectionHandler: per-client request loop
    ├── client.py            # TagClient + client CLI
    ├── config.py            # ServerConfig / ClientConfig dataclasses
    ├── traffic.py           # Per-exchange traffic logging
    ├── core/                # Transport
    │   ├── socket_server.py # Listening socket, address discovery, accept
    │   └── connection.py    # One client socket
    └── protocol/            # Protocol logic, no sockets
        ├── commands.py      # classify()
        └── executor.py      # Executor / execute()

=============================================================================
QUICK START
=============================================================================

    from tagserver import TagServer, ServerConfig

    server = TagServer(ServerConfig(host="127.0.0.1", port=9000))
    server.run()

    # elsewhere
    from tagserver import TagClient, ClientConfig

    with TagClient(ClientConfig(host="127.0.0.1", port=9000)) as client:
        client.request("<echo>Hello</echo>")   # "<reply>Hello</reply>"

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, ClientConfig
from .server import TagServer
from .client import TagClient, ClientError
from .core import TransportError, AcceptError

__all__ = [
    "TagServer",
    "TagClient",
    "ServerConfig",
    "ClientConfig",
    "TransportError",
    "AcceptError",
    "ClientError",
    "__version__",
]

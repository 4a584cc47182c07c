"""
=============================================================================
TCP TRANSPORT PROVIDER
=============================================================================

This module owns everything about the listening socket: creating it,
binding it, finding out which address and port it ended up on, and
accepting clients. The rest of the server only ever sees Connection
objects.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a TCP socket
    2. bind()      Associate it with IP:PORT
                   └─ port 0 = "any free port", the OS picks one
    3. getsockname() Ask the OS which port it picked
    4. listen()    Start queueing incoming connections
    5. accept()    Wait for a client, get a NEW socket just for it
    6. close()     Release the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    │   bound to 0.0.0.0:0  │     OS assigns e.g. :43817
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │Connection │         │Connection │         │Connection │
    │ (client 1)│         │ (client 2)│         │ (client 3)│
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
EPHEMERAL PORTS AND SELF-DISCOVERY
=============================================================================

By default the server binds port 0 on every interface, so it can't know
its own address in advance. After bind() it asks:

    getsockname()         → which port did the OS assign?
    gethostname()         → what is this machine called?
    outbound IP lookup    → which local IP would a client reach us on?

and prints all three so clients know where to connect.

=============================================================================
ERRORS
=============================================================================

Setup failures (socket, bind, listen, name resolution) are fatal: they are
logged and raised as TransportError. A failing accept() is fatal as well
(AcceptError) - the server stops rather than spin on a broken socket.

=============================================================================
"""

import socket
import signal
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class TransportError(OSError):
    """
    A fatal transport setup failure.

    Carries the stage that failed so the diagnostic can say what went
    wrong ("Failed to bind to socket", not just "Errno 98").

    Attributes:
        stage: One of "socket", "bind", "listen", "resolve", "accept",
               "connect".
    """

    def __init__(self, message: str, stage: str):
        super().__init__(message)
        self.stage = stage


class AcceptError(TransportError):
    """accept() failed while the server was running."""

    def __init__(self, message: str):
        super().__init__(message, stage="accept")


@dataclass(frozen=True)
class HostInfo:
    """Where clients can reach the server."""
    hostname: str
    ip_address: str
    port: int


def outbound_ip_address(probe_host: str = "8.8.8.8", probe_port: int = 80) -> str:
    """
    Find the local IP address used for outgoing traffic.

    connect() on a UDP socket sends nothing; it only makes the kernel pick
    a route, which tells us the address of the interface it would use.
    Falls back to the address the hostname resolves to, then loopback.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect((probe_host, probe_port))
            return probe.getsockname()[0]
    except OSError:
        pass

    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"


def discover_host_info(bound_address: Tuple[str, int]) -> HostInfo:
    """
    Describe the server's reachable address.

    Args:
        bound_address: (host, port) as returned by getsockname().

    Raises:
        TransportError: If the local host name can't be determined.
    """
    host, port = bound_address[0], bound_address[1]

    try:
        hostname = socket.gethostname()
    except OSError as e:
        raise TransportError(f"Cannot get the host name: {e}", stage="resolve") from e

    if host in ("", "0.0.0.0"):
        ip_address = outbound_ip_address()
    else:
        ip_address = host

    return HostInfo(hostname=hostname, ip_address=ip_address, port=port)


class SocketServer:
    """
    Listening socket plus accept loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    bind()            Create socket, bind, listen                     │
    │        └──► returns the real (host, port), port 0 resolved          │
    │                                                                      │
    │    start(on_connection)                                              │
    │        ├──► bind() if not bound yet                                  │
    │        ├──► _setup_signals()  SIGTERM/SIGINT → shutdown()           │
    │        └──► _accept_loop()    BLOCKS here                           │
    │                 └──► accept() → Connection → on_connection(conn)    │
    │                                                                      │
    │    shutdown()        Ask the accept loop to stop                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)
        host, port = server.bind()
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        """Check if the accept loop is running."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port).

        Before bind() this is the configured address (port may be 0).
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            logger.error(f"Cannot open socket to listen: {e}")
            raise TransportError(f"Cannot open socket to listen: {e}", stage="socket") from e

        # Avoid "Address already in use" when restarting on a fixed port
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # accept() wakes up periodically so shutdown() is noticed
        sock.settimeout(self.config.accept_timeout)

        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create the socket, bind it and start listening.

        Returns:
            The bound (host, port). With port 0 this is the port the OS
            assigned.

        Raises:
            TransportError: If any step fails.
        """
        if self._bound_address is not None:
            return self._bound_address

        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            self._close_socket()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise TransportError(f"Failed to bind to socket: {e}", stage="bind") from e

        try:
            self._socket.listen(self.config.backlog)
        except OSError as e:
            self._close_socket()
            logger.error(f"Cannot listen on socket: {e}")
            raise TransportError(f"Cannot listen on socket: {e}", stage="listen") from e

        host, port = self._socket.getsockname()[:2]
        self._bound_address = (host, port)
        logger.info(f"Server listening on {host}:{port}")
        return self._bound_address

    def host_info(self) -> HostInfo:
        """Hostname, reachable IP and port of the bound server."""
        return discover_host_info(self.bind())

    def _setup_signals(self):
        """
        Stop the accept loop on SIGTERM / SIGINT.

        Python only allows signal handlers in the main thread; when the
        server runs in another thread (as in tests) the caller stops it
        with shutdown() instead.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, on_connection: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        Args:
            on_connection: Called with each accepted Connection. It must
                           return quickly - the next accept() waits for it.

        Raises:
            TransportError: If the socket can't be set up.
            AcceptError: If accept() fails while running.
        """
        self.bind()

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        try:
            self._accept_loop(on_connection)
        finally:
            self._cleanup()

    def _accept_loop(self, on_connection: Callable[[Connection], None]):
        """
        Main accept loop.

        ┌─────────────────────────────────────────────────────────────────┐
        │   while self._running:                                           │
        │       accept()           BLOCKS up to accept_timeout             │
        │       Connection(...)    wrap the client socket                  │
        │       on_connection()    hand off, don't wait for the client     │
        └─────────────────────────────────────────────────────────────────┘
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue  # Poll the running flag
            except OSError as e:
                if not self._running:
                    break  # Socket closed by shutdown
                logger.error(f"Cannot accept the incoming connection: {e}")
                raise AcceptError(f"Cannot accept the incoming connection: {e}") from e

            conn = Connection(
                socket=client_socket,
                address=client_address,
                max_message_size=self.config.max_message_size,
                idle_timeout=self.config.idle_timeout,
            )
            logger.debug(f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}")

            on_connection(conn)

    def shutdown(self):
        """
        Stop accepting connections.

        Safe to call from a signal handler, another thread, or more than
        once. The accept loop exits within accept_timeout seconds.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _close_socket(self):
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

    def _cleanup(self):
        """Restore signals and release the listening socket."""
        self._running = False
        self._restore_signals()
        self._close_socket()
        self._bound_address = None
        logger.info("Socket server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for shutdown() to be called.

        Returns:
            True if shutdown was requested, False on timeout.
        """
        return self._shutdown_event.wait(timeout)

"""
=============================================================================
TAG SERVER
=============================================================================

Ties the pieces together: the transport provider accepts clients, and
each client gets its own thread running a ConnectionHandler.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │    TagServer    │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │   Executor   │    │TrafficLogger │        │
    │    │ (accepting)  │    │  (replies)   │    │  (logging)   │        │
    │    └──────┬───────┘    └──────────────┘    └──────────────┘        │
    │           │ Connection                                              │
    │           ▼                                                         │
    │    ┌──────────────────────────────────────────────┐                │
    │    │  Thread "conn-<id>"  →  ConnectionHandler     │  one per client│
    │    └──────────────────────────────────────────────┘                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
THREAD-PER-CONNECTION
=============================================================================

The accept loop never waits for a client. Each accepted connection is
handed to a new daemon thread and the loop goes straight back to
accept(). Handlers share no mutable state, so nothing needs locking
except the live-connection counter below.

By default there is no limit on live handlers. ServerConfig.max_connections
puts a BoundedSemaphore in front of thread creation; a connection that
arrives while every slot is taken is closed immediately.

=============================================================================
LIFECYCLE
=============================================================================

    server = TagServer(ServerConfig())
    host, port = server.bind()      # optional: learn the ephemeral port
    server.serve()                  # blocks until shutdown() or a signal

shutdown() stops the accept loop. Handler threads are daemons: they are
not joined, and they end with the process if their clients are still
connected.

=============================================================================
"""

import logging
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import Connection, SocketServer, HostInfo
from .handler import ConnectionHandler
from .protocol import Executor
from .traffic import TrafficLogger


logger = logging.getLogger(__name__)


class TagServer:
    """
    Threaded tag protocol server.

    Usage:
        server = TagServer(ServerConfig(host="127.0.0.1", port=9000))
        server.run()   # Logging setup, banner, then serve() - blocking

    For embedding (tests, other programs) call bind() and serve() directly
    from a background thread and stop it with shutdown().
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the server.

        Args:
            config: Server configuration. Validated immediately.
            executor: Produces replies. Defaults to one reading the host
                      load average.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._executor = executor or Executor()
        self._traffic = TrafficLogger(log_format=self.config.log_format)

        self._slots: Optional[threading.BoundedSemaphore] = None
        if self.config.max_connections is not None:
            self._slots = threading.BoundedSemaphore(self.config.max_connections)

        self._active = 0
        self._active_lock = threading.Lock()
        self._running = False

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running and self._socket_server.is_running

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def active_connections(self) -> int:
        """Number of handler threads currently serving a client."""
        with self._active_lock:
            return self._active

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self) -> Tuple[str, int]:
        """
        Bind and listen without accepting yet.

        Returns:
            The bound (host, port), with an ephemeral port resolved.

        Raises:
            TransportError: If the socket can't be set up.
        """
        return self._socket_server.bind()

    def host_info(self) -> HostInfo:
        """Hostname, reachable IP address and port of this server."""
        return self._socket_server.host_info()

    def serve(self):
        """
        Accept connections until shutdown() or SIGINT/SIGTERM.

        Raises:
            TransportError: If the socket can't be set up.
            AcceptError: If accept() fails while running.
        """
        self._running = True
        try:
            self._socket_server.start(self._handle_connection)
        finally:
            self._running = False

    def run(self):
        """
        Configure logging, print where the server is, then serve().

        This is what the command-line entry point calls.
        """
        self._setup_logging()
        self.bind()
        self._print_startup_banner(self.host_info())

        try:
            self.serve()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")

        logger.info("Server stopped")

    def shutdown(self):
        """Stop accepting connections. Safe to call from any thread."""
        self._socket_server.shutdown()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_for_shutdown(timeout)

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("tagserver").setLevel(level)

    def _print_startup_banner(self, info: HostInfo):
        """Print where clients should connect."""
        print()
        print(f"Hostname Name : {info.hostname}")
        print(f"Host IP Address : {info.ip_address}")
        print(f"Host Port Number : {info.port}")
        print()
        if self.config.max_connections is not None:
            print(f"Serving at most {self.config.max_connections} clients at once")
        print("Waiting for Clients ......")
        print()

    # =========================================================================
    # CONNECTION DISPATCH
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Start a handler thread for a new connection.

        Called by SocketServer from the accept loop, so it must not block.
        """
        if self._slots is not None and not self._slots.acquire(blocking=False):
            logger.warning(
                f"[{conn.id}] Connection limit ({self.config.max_connections}) reached, "
                f"rejecting {conn.client_ip}:{conn.client_port}"
            )
            conn.close()
            return

        thread = threading.Thread(
            target=self._run_handler,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )

        try:
            thread.start()
        except RuntimeError as e:
            # Out of threads: drop this client, keep accepting
            logger.error(f"[{conn.id}] Cannot start handler thread: {e}")
            conn.close()
            self._release_slot()

    def _run_handler(self, conn: Connection):
        """Handler thread body."""
        with self._active_lock:
            self._active += 1

        try:
            ConnectionHandler(conn, self._executor, self._traffic).run()
        finally:
            # Slot first: active_connections == 0 implies a free slot
            self._release_slot()
            with self._active_lock:
                self._active -= 1

    def _release_slot(self):
        if self._slots is not None:
            self._slots.release()

"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tagserver import TagServer, TagClient, ServerConfig, ClientConfig
from tagserver.protocol import Executor


FIXED_LOAD = (0.25, 0.5, 1.75)


@pytest.fixture
def fixed_executor() -> Executor:
    """Executor reporting a known load average."""
    return Executor(load_average=lambda: FIXED_LOAD)


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        accept_timeout=0.1,
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator:
    """Connected pair of sockets: (server side, client side)."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    for sock in (server_side, client_side):
        try:
            sock.close()
        except OSError:
            pass


class ServerThread:
    """Runs a TagServer in a background thread."""

    def __init__(self, server: TagServer):
        self.server = server
        self.host: str = ""
        self.port: int = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "ServerThread":
        self.host, self.port = self.server.bind()

        self._thread = threading.Thread(target=self.server.serve, daemon=True)
        self._thread.start()

        # Wait for the accept loop to be running
        for _ in range(50):  # 5 seconds max
            if self.server.is_running:
                return self
            time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def client(self, timeout: float = 5.0) -> TagClient:
        """A connected client for this server."""
        return TagClient(ClientConfig(host=self.host, port=self.port, timeout=timeout)).connect()

    def wait_for_idle(self, timeout: float = 5.0) -> bool:
        """Wait until no handler thread is serving a client."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.server.active_connections == 0:
                return True
            time.sleep(0.05)
        return False

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def start_server(config: ServerConfig, fixed_executor: Executor) -> Generator[Callable[..., ServerThread], None, None]:
    """
    Factory fixture: start_server(**config_overrides) -> ServerThread.

    Every server started through it is stopped at teardown.
    """
    started: List[ServerThread] = []

    def _start(executor: Optional[Executor] = None, **overrides) -> ServerThread:
        for name, value in overrides.items():
            setattr(config, name, value)
        server = TagServer(config, executor=executor or fixed_executor)
        running = ServerThread(server).start()
        started.append(running)
        return running

    yield _start

    for running in started:
        running.stop()


@pytest.fixture
def running_server(start_server) -> ServerThread:
    """A server with the default test configuration."""
    return start_server()

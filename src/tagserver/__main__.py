"""
=============================================================================
TAG SERVER CLI ENTRY POINT
=============================================================================

    # Bind every interface on a port the OS picks, print where we are
    python -m tagserver

    # Fixed address
    python -m tagserver --host 127.0.0.1 --port 9000

    # Hardened: drop idle clients after 60s, at most 100 at once
    python -m tagserver --idle-timeout 60 --max-connections 100

On startup the server prints its host name, IP address and port, then
serves until Ctrl+C / SIGTERM (exit code 0). A socket setup or accept
failure prints "ERROR: ..." to stderr and exits with code 1.

Settings not given on the command line come from TAGSERVER_* environment
variables (see ServerConfig.from_env), then from the defaults.

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig
from .core import TransportError
from .server import TagServer


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Overlay parsed CLI arguments on the environment configuration."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.max_message_size is not None:
        config.max_message_size = args.max_message_size
    if args.idle_timeout is not None:
        config.idle_timeout = args.idle_timeout
    if args.max_connections is not None:
        config.max_connections = args.max_connections
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagserver",
        description="Threaded server for the <echo>/<loadavg/> tag protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tagserver                             # All interfaces, ephemeral port
  python -m tagserver --port 9000                 # Fixed port
  python -m tagserver --idle-timeout 60           # Close idle clients
  python -m tagserver --log-format json           # JSON traffic log
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind (default: all interfaces)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 0, the OS picks a free port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-message-size",
        type=int,
        default=None,
        help="Bytes read per message (default: 256)"
    )

    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=None,
        help="Close a client after this many idle seconds (default: never)"
    )

    parser.add_argument(
        "--max-connections",
        type=int,
        default=None,
        help="Serve at most this many clients at once (default: unlimited)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Traffic log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"tagserver {__version__}"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        server = TagServer(build_config(args))
    except ValueError as e:
        parser.error(str(e))

    try:
        server.run()
    except TransportError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
=============================================================================
COMMAND EXECUTION
=============================================================================

Turns a classified command into the reply string sent back to the client.
Every input produces a reply - nothing in here raises to the caller.

=============================================================================
THE THREE TRANSFORMS
=============================================================================

ECHO
────
    "<echo>Hello</echo>"
      │     └─┬─┘
      │       └── payload: everything strictly between the tags
      │
      └──► "<reply>Hello</reply>"

    The message must START with <echo> and END with </echo>. If the closing
    tag is missing (or is a second <echo>), the reply is the unknown-format
    error:

    "<echo> Hello World <echo>"  → "<error>unknown format</error>"
    "<echo>"                     → "<error>unknown format</error>"
    "<echo></echo>"              → "<reply></reply>"

LOAD AVERAGE
────────────
    "<loadavg/>" → "<replyLoadAvg>0.520000:0.580000:0.590000</replyLoadAvg>"
                                  └──┬───┘ └──┬───┘ └──┬───┘
                                   1 min    5 min   15 min

    Each value is printed with 6 fractional digits ("%f" style).

    If the host can't report its load average (os.getloadavg() raises
    OSError, or the platform doesn't have it), the reply is:

        "<error>load average unavailable</error>"

    We never report stale or zero-filled values as if they were real.

MALFORMED
─────────
    Anything else → "<error>unknown format</error>"

=============================================================================
"""

import os
import logging
from typing import Callable, Optional, Sequence, Tuple

from .commands import (
    Command,
    CommandKind,
    ECHO_OPEN,
    ECHO_CLOSE,
    REPLY_OPEN,
    REPLY_CLOSE,
    LOADAVG_REPLY_OPEN,
    LOADAVG_REPLY_CLOSE,
    UNKNOWN_FORMAT_REPLY,
    LOADAVG_UNAVAILABLE_REPLY,
)


logger = logging.getLogger(__name__)


LoadAverageSource = Callable[[], Tuple[float, float, float]]


class LoadAverageUnavailable(Exception):
    """Raised when the host cannot report its load average."""


def read_load_average() -> Tuple[float, float, float]:
    """
    Read the host's 1, 5 and 15 minute load averages.

    Raises:
        LoadAverageUnavailable: If the OS query fails or the platform
                                has no load average (e.g. Windows).
    """
    getloadavg = getattr(os, "getloadavg", None)
    if getloadavg is None:
        raise LoadAverageUnavailable("os.getloadavg() is not available on this platform")

    try:
        return getloadavg()
    except OSError as e:
        raise LoadAverageUnavailable(str(e)) from e


def format_load_average(values: Sequence[float], precision: int = 6) -> str:
    """
    Format load averages as "1min:5min:15min".

    Args:
        values: The three load values.
        precision: Fractional digits per value (6 matches C's "%f").
    """
    return ":".join(f"{value:.{precision}f}" for value in values)


def extract_echo_payload(message: str) -> Optional[str]:
    """
    Return the text between <echo> and </echo>, or None if the tags don't match.

    Both tags must be present and must not overlap. A message shorter than
    the two tags together can't be valid, whatever its prefix and suffix.
    """
    if not (message.startswith(ECHO_OPEN) and message.endswith(ECHO_CLOSE)):
        return None

    content_length = len(message) - len(ECHO_OPEN) - len(ECHO_CLOSE)
    if content_length < 0:
        return None

    return message[len(ECHO_OPEN):len(ECHO_OPEN) + content_length]


class Executor:
    """
    Produces replies for classified commands.

    The load-average source is injectable so tests (and hosts without
    os.getloadavg) can supply their own:

        executor = Executor(load_average=lambda: (1.0, 2.0, 3.0))
        executor.execute(classify("<loadavg/>"), "<loadavg/>")
        # "<replyLoadAvg>1.000000:2.000000:3.000000</replyLoadAvg>"

    An Executor holds no per-request state, so one instance can be shared
    by every connection handler.
    """

    def __init__(
        self,
        load_average: Optional[LoadAverageSource] = None,
        precision: int = 6,
    ):
        self._load_average = load_average or read_load_average
        self.precision = precision

    def execute(self, command: Command, message: str) -> str:
        """
        Build the reply for a command.

        Args:
            command: The classified command.
            message: The raw message the command was classified from.

        Returns:
            The reply string.
        """
        if command.kind is CommandKind.ECHO:
            return self.echo(message)
        if command.kind is CommandKind.LOAD_AVERAGE:
            return self.load_average()
        return self.error()

    def echo(self, message: str) -> str:
        payload = extract_echo_payload(message)
        if payload is None:
            return self.error()
        return f"{REPLY_OPEN}{payload}{REPLY_CLOSE}"

    def load_average(self) -> str:
        try:
            values = self._load_average()
        except (LoadAverageUnavailable, OSError) as e:
            logger.warning(f"Load average unavailable: {e}")
            return LOADAVG_UNAVAILABLE_REPLY

        formatted = format_load_average(values, self.precision)
        return f"{LOADAVG_REPLY_OPEN}{formatted}{LOADAVG_REPLY_CLOSE}"

    def error(self) -> str:
        return UNKNOWN_FORMAT_REPLY


# Shared default instance for the module-level helper below.
_default_executor = Executor()


def execute(command: Command, message: str) -> str:
    """Execute a command with the default Executor (host load average)."""
    return _default_executor.execute(command, message)

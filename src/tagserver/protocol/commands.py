"""
=============================================================================
COMMAND CLASSIFICATION
=============================================================================

Every message a client sends is classified into exactly one command before
anything else happens to it. Classification looks ONLY at the literal
prefix of the message - there is no XML parsing here.

=============================================================================
THE THREE COMMANDS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Message starts with...        Command          Payload             │
    ├─────────────────────────────────────────────────────────────────────┤
    │  <echo>                        ECHO             the whole message   │
    │  <loadavg/>                    LOAD_AVERAGE     (none)              │
    │  anything else                 MALFORMED        (none)              │
    └─────────────────────────────────────────────────────────────────────┘

The ECHO command carries the full message forward. The closing </echo> tag
is NOT checked here - the executor re-validates it, so a message like
"<echo>abc" is still classified as ECHO and only rejected later.

Matching is case-sensitive:

    "<echo>hi</echo>"   → ECHO
    "<ECHO>hi</ECHO>"   → MALFORMED
    " <echo>hi</echo>"  → MALFORMED   (leading space, prefix doesn't match)

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════
# PROTOCOL TAGS
# ═══════════════════════════════════════════════════════════════════════════

ECHO_OPEN = "<echo>"
ECHO_CLOSE = "</echo>"
LOADAVG_TAG = "<loadavg/>"

REPLY_OPEN = "<reply>"
REPLY_CLOSE = "</reply>"
LOADAVG_REPLY_OPEN = "<replyLoadAvg>"
LOADAVG_REPLY_CLOSE = "</replyLoadAvg>"

UNKNOWN_FORMAT_REPLY = "<error>unknown format</error>"
LOADAVG_UNAVAILABLE_REPLY = "<error>load average unavailable</error>"


class CommandKind(Enum):
    """The kind of request a message carries."""
    ECHO = "echo"
    LOAD_AVERAGE = "loadavg"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Command:
    """
    A classified message.

    Commands are short-lived values: one is created per received message
    and discarded once the reply has been produced.

    Attributes:
        kind: Which command this is.
        payload: The original message for ECHO, empty otherwise.
    """
    kind: CommandKind
    payload: str = ""

    @property
    def is_echo(self) -> bool:
        return self.kind is CommandKind.ECHO

    @property
    def is_load_average(self) -> bool:
        return self.kind is CommandKind.LOAD_AVERAGE

    @property
    def is_malformed(self) -> bool:
        return self.kind is CommandKind.MALFORMED


def strip_newline(message: str) -> str:
    """
    Remove ONE trailing newline, if present.

    Clients typically send "<echo>hi</echo>\\n" from a terminal. Only the
    last character is considered; interior newlines and a second trailing
    newline are left alone.
    """
    if message.endswith("\n"):
        return message[:-1]
    return message


def classify(message: str) -> Command:
    """
    Classify a message by its literal prefix.

    Never raises - every string maps to some command.

    Args:
        message: The received message (trailing newline already stripped).

    Returns:
        The classified Command.
    """
    if message.startswith(ECHO_OPEN):
        return Command(CommandKind.ECHO, payload=message)

    if message.startswith(LOADAVG_TAG):
        return Command(CommandKind.LOAD_AVERAGE)

    return Command(CommandKind.MALFORMED)

"""
=============================================================================
TAG PROTOCOL COMPONENTS
=============================================================================

The request/response protocol spoken over each connection:

    commands.py   Classify a message: ECHO / LOAD_AVERAGE / MALFORMED
    executor.py   Turn a classified command into its reply string

    ┌──────────────┐   classify()   ┌──────────────┐   execute()   ┌───────┐
    │   message    │ ─────────────► │   Command    │ ────────────► │ reply │
    └──────────────┘                └──────────────┘               └───────┘

Neither module touches sockets; both are pure functions of their input
(apart from reading the host load average).

=============================================================================
"""

from typing import Optional

from .commands import (
    Command,
    CommandKind,
    classify,
    strip_newline,
    UNKNOWN_FORMAT_REPLY,
    LOADAVG_UNAVAILABLE_REPLY,
)
from .executor import (
    Executor,
    LoadAverageUnavailable,
    execute,
    extract_echo_payload,
    format_load_average,
    read_load_average,
)


def respond(message: str, executor: Optional[Executor] = None) -> str:
    """
    Full request → reply pipeline for one message.

    Strips one trailing newline, classifies, and executes.

        respond("<echo>hi</echo>\\n")  # "<reply>hi</reply>"
    """
    message = strip_newline(message)
    command = classify(message)
    if executor is None:
        return execute(command, message)
    return executor.execute(command, message)


__all__ = [
    # Commands
    "Command",
    "CommandKind",
    "classify",
    "strip_newline",
    "UNKNOWN_FORMAT_REPLY",
    "LOADAVG_UNAVAILABLE_REPLY",

    # Execution
    "Executor",
    "LoadAverageUnavailable",
    "execute",
    "extract_echo_payload",
    "format_load_average",
    "read_load_average",

    # Pipeline
    "respond",
]

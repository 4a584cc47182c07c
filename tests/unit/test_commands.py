"""
Unit tests for command classification.
"""

import pytest

from tagserver.protocol.commands import (
    Command,
    CommandKind,
    classify,
    strip_newline,
)


class TestClassify:
    """Tests for classify()."""

    def test_echo(self):
        command = classify("<echo>Hello</echo>")

        assert command.kind is CommandKind.ECHO
        assert command.is_echo
        assert command.payload == "<echo>Hello</echo>"

    def test_echo_without_closing_tag_is_still_echo(self):
        """The closing tag is checked by the executor, not here."""
        command = classify("<echo> Hello World <echo>")

        assert command.kind is CommandKind.ECHO

    def test_load_average(self):
        command = classify("<loadavg/>")

        assert command.kind is CommandKind.LOAD_AVERAGE
        assert command.is_load_average
        assert command.payload == ""

    def test_load_average_prefix_only(self):
        assert classify("<loadavg/>trailing").kind is CommandKind.LOAD_AVERAGE

    @pytest.mark.parametrize("message", [
        "",
        "hello",
        "<ECHO>hi</ECHO>",
        " <echo>hi</echo>",
        "<loadavg>",
        "<loadavg />",
        "<reply>hi</reply>",
        "echo",
    ])
    def test_malformed(self, message: str):
        command = classify(message)

        assert command.kind is CommandKind.MALFORMED
        assert command.is_malformed

    def test_commands_are_immutable(self):
        command = classify("<echo>x</echo>")

        with pytest.raises(AttributeError):
            command.payload = "other"

    def test_commands_compare_by_value(self):
        assert classify("<loadavg/>") == Command(CommandKind.LOAD_AVERAGE)


class TestStripNewline:
    """Tests for strip_newline()."""

    def test_strips_one_trailing_newline(self):
        assert strip_newline("<echo>hi</echo>\n") == "<echo>hi</echo>"

    def test_strips_only_one(self):
        assert strip_newline("abc\n\n") == "abc\n"

    def test_interior_newlines_untouched(self):
        assert strip_newline("<echo>sf\nglk</echo>") == "<echo>sf\nglk</echo>"

    def test_no_newline(self):
        assert strip_newline("<loadavg/>") == "<loadavg/>"

    def test_newline_only(self):
        assert strip_newline("\n") == ""

    def test_empty(self):
        assert strip_newline("") == ""

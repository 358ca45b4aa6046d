"""Tests for raw-mode keyboard input."""

from __future__ import annotations

import os
import pty
import termios

import pytest

from dp800_tui.terminal import KeyReader, decode_keys


class TestDecodeKeys:
    """Tests for decode_keys."""

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            (b"\x1b[A", ["up"]),
            (b"\x1b[B", ["down"]),
            (b"\x1b[C", ["right"]),
            (b"\x1b[D", ["left"]),
            (b"\x1bOA", ["up"]),
            (b"\x1bOD", ["left"]),
        ],
    )
    def test_arrows(self, data: bytes, expected: list[str]) -> None:
        assert decode_keys(data) == expected

    def test_enter(self) -> None:
        assert decode_keys(b"\r\n") == ["enter", "enter"]

    def test_lone_escape(self) -> None:
        assert decode_keys(b"\x1b") == ["esc"]

    def test_backspace(self) -> None:
        assert decode_keys(b"\x7f\x08") == ["backspace", "backspace"]

    def test_printable(self) -> None:
        assert decode_keys(b"5.q") == ["5", ".", "q"]

    def test_mixed_burst(self) -> None:
        assert decode_keys(b"\x1b[A5.\r") == ["up", "5", ".", "enter"]

    def test_other_control_bytes_dropped(self) -> None:
        assert decode_keys(b"\x01a\x00") == ["a"]

    def test_non_ascii_dropped(self) -> None:
        assert decode_keys("é".encode("utf-8")) == []

    def test_empty(self) -> None:
        assert decode_keys(b"") == []


class TestKeyReader:
    """Tests for KeyReader on a pseudo-terminal."""

    def test_reads_keys_and_restores_mode(self) -> None:
        master, slave = pty.openpty()
        stream = os.fdopen(slave, "r")
        try:
            before = termios.tcgetattr(slave)
            with KeyReader(stream) as reader:
                assert reader.read_keys(0.01) == []
                os.write(master, b"\x1b[Bj")
                assert reader.read_keys(1.0) == ["down", "j"]
            assert termios.tcgetattr(slave) == before
        finally:
            stream.close()
            os.close(master)

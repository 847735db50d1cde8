"""Control connection text protocol for FTPLink.

Sends CRLF-terminated command lines and reads numeric-coded replies,
including RFC 959 multi-line replies (``211-...`` up to ``211 ...``).
"""

import logging
import socket
from dataclasses import dataclass
from typing import List, Optional

from src.ftp.exceptions import (
    FTPConnectionClosedError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPReplyError,
)


ENCODING = "utf-8"


@dataclass(frozen=True)
class Reply:
    """One reply read from the control connection."""
    code: int
    message: str

    @property
    def lines(self) -> List[str]:
        """Message split into its lines (multi-line replies)."""
        return self.message.split("\n")

    def matches(self, expected: Optional[int]) -> bool:
        """
        Check the reply code against an expectation.

        Args:
            expected: None (anything goes), a full 3-digit code, or a
                1- or 2-digit class prefix (e.g. 2 for any 2xx reply)

        Returns:
            True if the code is acceptable
        """
        if expected is None:
            return True
        if 1 <= expected < 10:
            return self.code // 100 == expected
        if 10 <= expected < 100:
            return self.code // 10 == expected
        return self.code == expected


def _split_code_line(line: str):
    """Split ``NNN<sep>text`` into (code, continued, text), or None if malformed."""
    if len(line) < 3 or not line[:3].isdigit():
        return None
    if len(line) > 3 and line[3] not in (" ", "-"):
        return None
    continued = len(line) > 3 and line[3] == "-"
    return int(line[:3]), continued, line[4:]


class ControlStream:
    """Line-oriented command/reply channel over a connected socket."""

    def __init__(self, sock: socket.socket, logger: Optional[logging.Logger] = None):
        """
        Initialize the control stream.

        Args:
            sock: Connected control socket (ownership is taken)
            logger: Logger for the command/reply trace
        """
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._logger = logger or logging.getLogger("ftplink.control")

    @property
    def closed(self) -> bool:
        """True once the stream was closed."""
        return self._sock is None

    @property
    def peer_host(self) -> str:
        """Numeric address of the remote end."""
        self._ensure_open("peer_host")
        return self._sock.getpeername()[0]

    def _ensure_open(self, operation: str) -> None:
        if self._sock is None:
            raise FTPNotConnectedError(operation)

    def send(self, fmt: str, *args) -> None:
        """
        Send one command line.

        Args:
            fmt: %-style format of the command line
            *args: Format arguments
        """
        self._ensure_open("Sending a command")
        line = fmt % args if args else fmt
        self._logger.debug("--> %s", line)
        self._sock.sendall((line + "\r\n").encode(ENCODING))

    def _read_line(self) -> str:
        raw = self._reader.readline()
        if not raw:
            raise FTPConnectionClosedError()
        return raw.decode(ENCODING, errors="replace").rstrip("\r\n")

    def read_reply(self, expected: Optional[int] = None) -> Reply:
        """
        Read one reply.

        Args:
            expected: Code the caller requires (see Reply.matches), or None

        Returns:
            The reply

        Raises:
            FTPConnectionClosedError: If the peer closed the connection
            FTPProtocolError: If the first line carries no reply code
            FTPReplyError: If the code does not match ``expected``
        """
        self._ensure_open("Reading a reply")
        first = self._read_line()
        parsed = _split_code_line(first)
        if parsed is None:
            raise FTPProtocolError(f"Malformed reply line: {first!r}")

        code, continued, message = parsed
        while continued:
            line = self._read_line()
            more = _split_code_line(line)
            if more is None or more[0] != code:
                # Continuation text (e.g. indented FEAT lines) is kept verbatim
                message += "\n" + line
                continue
            _, continued, text = more
            message += "\n" + text

        reply = Reply(code, message)
        self._logger.debug("<-- %d %s", code, message)
        if not reply.matches(expected):
            raise FTPReplyError(code, message)
        return reply

    def command(self, expected: Optional[int], fmt: str, *args) -> Reply:
        """
        Send a command and read its reply.

        Args:
            expected: Required reply code, or None to accept any
            fmt: %-style format of the command line
            *args: Format arguments

        Returns:
            The reply
        """
        self.send(fmt, *args)
        return self.read_reply(expected)

    def close(self) -> None:
        """Close the control socket."""
        if self._sock is None:
            return
        try:
            self._reader.close()
        finally:
            self._sock.close()
            self._sock = None

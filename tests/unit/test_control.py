"""Unit tests for the control connection stream.

Uses a real loopback socket pair: the test plays the server and writes
raw reply bytes, the ControlStream under test reads them.
"""

import pytest

from src.ftp.control import ControlStream, Reply
from src.ftp.exceptions import (
    FTPConnectionClosedError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPReplyError,
)


@pytest.fixture
def peer_and_stream(socket_pair):
    """Provide (server socket, ControlStream over the client socket)."""
    server, client = socket_pair
    stream = ControlStream(client)
    yield server, stream
    stream.close()


class TestReply:
    """Tests for Reply matching."""

    def test_none_matches_anything(self):
        """Test that no expectation accepts any code."""
        assert Reply(550, "nope").matches(None) is True

    def test_exact_code(self):
        """Test three digit expectations must match exactly."""
        assert Reply(226, "ok").matches(226) is True
        assert Reply(226, "ok").matches(250) is False

    def test_class_prefix(self):
        """Test one and two digit expectations match by prefix."""
        reply = Reply(226, "ok")
        assert reply.matches(2) is True
        assert reply.matches(22) is True
        assert reply.matches(21) is False
        assert reply.matches(3) is False

    def test_lines(self):
        """Test multi-line messages split into lines."""
        assert Reply(211, "Features:\n UTF8\nEnd").lines == ["Features:", " UTF8", "End"]


class TestControlStream:
    """Tests for ControlStream command/reply exchange."""

    def test_read_single_line_reply(self, peer_and_stream):
        """Test reading a plain reply."""
        server, stream = peer_and_stream
        server.sendall(b"220 Service ready\r\n")

        reply = stream.read_reply(220)

        assert reply == Reply(220, "Service ready")

    def test_read_multiline_reply(self, peer_and_stream):
        """Test reading a FEAT-style multi-line reply."""
        server, stream = peer_and_stream
        server.sendall(
            b"211-Features supported:\r\n"
            b" EPSV\r\n"
            b" REST STREAM\r\n"
            b" UTF8\r\n"
            b"211 End FEAT.\r\n"
        )

        reply = stream.read_reply()

        assert reply.code == 211
        assert reply.lines == ["Features supported:", " EPSV", " REST STREAM", " UTF8", "End FEAT."]

    def test_multiline_with_coded_continuations(self, peer_and_stream):
        """Test continuation lines carrying the same code are unprefixed."""
        server, stream = peer_and_stream
        server.sendall(b"230-Welcome\r\n230-Be nice\r\n230 Logged in\r\n")

        reply = stream.read_reply(230)

        assert reply.message == "Welcome\nBe nice\nLogged in"

    def test_unexpected_code_raises(self, peer_and_stream):
        """Test a mismatching code raises FTPReplyError with the server text."""
        server, stream = peer_and_stream
        server.sendall(b"550 No such file\r\n")

        with pytest.raises(FTPReplyError) as exc_info:
            stream.read_reply(250)

        assert exc_info.value.code == 550
        assert exc_info.value.reply_message == "No such file"

    def test_malformed_reply_raises(self, peer_and_stream):
        """Test a reply without a code raises FTPProtocolError."""
        server, stream = peer_and_stream
        server.sendall(b"hello there\r\n")

        with pytest.raises(FTPProtocolError, match="Malformed reply"):
            stream.read_reply()

    def test_eof_raises(self, peer_and_stream):
        """Test EOF while reading raises FTPConnectionClosedError."""
        server, stream = peer_and_stream
        server.close()

        with pytest.raises(FTPConnectionClosedError):
            stream.read_reply()

    def test_send_appends_crlf(self, peer_and_stream):
        """Test commands are formatted and CRLF terminated."""
        server, stream = peer_and_stream

        stream.send("RETR %s", "my file.txt")

        assert server.recv(1024) == b"RETR my file.txt\r\n"

    def test_command_round_trip(self, peer_and_stream):
        """Test command() sends and reads the reply."""
        server, stream = peer_and_stream
        server.sendall(b"200 Command okay.\r\n")

        reply = stream.command(200, "NOOP")

        assert reply.code == 200
        assert server.recv(1024) == b"NOOP\r\n"

    def test_closed_stream_raises(self, peer_and_stream):
        """Test using a closed stream raises FTPNotConnectedError."""
        _, stream = peer_and_stream
        stream.close()

        assert stream.closed is True
        with pytest.raises(FTPNotConnectedError):
            stream.send("NOOP")
        with pytest.raises(FTPNotConnectedError):
            stream.read_reply()

    def test_close_is_idempotent(self, peer_and_stream):
        """Test closing twice is harmless."""
        _, stream = peer_and_stream
        stream.close()
        stream.close()
        assert stream.closed is True

    def test_peer_host(self, peer_and_stream):
        """Test the numeric peer address is exposed."""
        _, stream = peer_and_stream
        assert stream.peer_host == "127.0.0.1"

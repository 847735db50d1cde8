"""FTP client connection for FTPLink.

Provides ConnectionState enum, FTPConnectionConfig dataclass, the
FTPClient control-channel engine and the DataResponse wrapper returned
by transfers that stream from the server.
"""

import io
import logging
import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import BinaryIO, Dict, List, Mapping, Optional

from src.ftp.control import ControlStream, Reply
from src.ftp.dataconn import DataChannel, OutboundDataChannel
from src.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPReplyError,
    FTPTimeoutError,
)
from src.ftp.listing import Entry, parse_listing
from src.ftp.status import StatusCode
from src.utils.validators import validate_host, validate_port, validate_timeout

DEFAULT_PORT = 21


class ConnectionState(Enum):
    """FTP connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class FTPConnectionConfig:
    """FTP connection configuration."""
    host: str
    port: int = DEFAULT_PORT
    username: str = "anonymous"
    timeout: int = 30

    def __post_init__(self):
        """Validate configuration after initialization."""
        for is_valid, error in (
            validate_host(self.host),
            validate_port(self.port),
            validate_timeout(self.timeout),
        ):
            if not is_valid:
                raise ValueError(error)


class DataResponse:
    """
    Readable stream over an open data connection.

    The transfer only counts as finished once the socket is closed and the
    server confirmed it on the control connection, so close() must always
    be called (or the response used as a context manager).
    """

    def __init__(self, channel: DataChannel, control: ControlStream):
        self._channel = channel
        self._control = control
        self._reader = io.BufferedReader(channel)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        return self._reader.read(size)

    def readline(self) -> bytes:
        return self._reader.readline()

    def __iter__(self):
        return iter(self._reader)

    def close(self) -> None:
        """
        Close the data connection and read the closing confirmation.

        Raises:
            FTPError: If the confirmation is missing or unexpected; this takes
                precedence over a failure to close the socket
            OSError: If only closing the socket failed
        """
        if self._closed:
            return
        self._closed = True

        error: Optional[Exception] = None
        try:
            self._reader.close()
        except OSError as e:
            error = e
        try:
            self._control.read_reply(StatusCode.CLOSING_DATA_CONNECTION)
        except FTPError as e:
            error = e
        if error is not None:
            raise error

    def __enter__(self) -> "DataResponse":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class FTPClient:
    """Client side of one FTP control connection."""

    # Block size for STOR transfers (8KB)
    BLOCK_SIZE = 8192

    def __init__(
        self,
        control: ControlStream,
        host: str,
        timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Wrap an already connected control stream.

        Most callers want FTPClient.dial() instead.

        Args:
            control: Control stream, positioned before the greeting
            host: Resolved numeric address of the server
            timeout: Timeout for establishing data connections
            logger: Logger for session events
        """
        self._control: Optional[ControlStream] = control
        self._host = host
        self._timeout = timeout
        self._logger = logger or logging.getLogger("ftplink.client")
        self._features: Dict[str, str] = {}
        self._state = ConnectionState.CONNECTING
        self._connected_at: Optional[datetime] = None
        self._last_activity: Optional[datetime] = None

    @classmethod
    def dial(
        cls,
        host: str,
        port: int = DEFAULT_PORT,
        timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ) -> "FTPClient":
        """
        Open a control connection and perform the handshake.

        Reads the greeting, discovers features with FEAT and switches to
        UTF-8 when the server advertises it.

        Args:
            host: Server host name or address
            port: Server control port
            timeout: Connection establishment timeout in seconds (None = blocking)
            logger: Logger for session events

        Returns:
            Connected (not yet logged in) client

        Raises:
            FTPTimeoutError: If the connection timed out
            FTPConnectionError: If the connection failed
            FTPError: If the greeting or UTF-8 activation was rejected
        """
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except socket.timeout:
            raise FTPTimeoutError(host, port, timeout)
        except OSError as e:
            raise FTPConnectionError(host, port, e)
        sock.settimeout(None)

        control = ControlStream(sock, logger=logger)
        # Data connections dial the resolved address, not the name
        client = cls(control, control.peer_host, timeout=timeout, logger=logger)
        try:
            client._handshake()
        except (FTPError, OSError):
            client._state = ConnectionState.ERROR
            client.close()
            raise
        return client

    def _handshake(self) -> None:
        reply = self._control.read_reply(StatusCode.READY)
        self._logger.info("Connected to %s: %s", self._host, reply.message)
        self._feat()
        self._set_utf8()
        self._state = ConnectionState.CONNECTED
        self._connected_at = datetime.now()
        self._last_activity = self._connected_at

    def _feat(self) -> None:
        """Issue FEAT (RFC 2389) and record the advertised features."""
        reply = self._control.command(None, "FEAT")
        if reply.code != StatusCode.SYSTEM:
            # No FEAT support means no extra features, not an error
            return

        for line in reply.lines:
            if not line.startswith(" "):
                continue
            feature, _, description = line.strip().partition(" ")
            self._features[feature] = description

    def _set_utf8(self) -> None:
        if "UTF8" not in self._features:
            return
        reply = self._control.command(None, "OPTS UTF8 ON")
        if reply.code != StatusCode.COMMAND_OK:
            raise FTPReplyError(reply.code, reply.message)
        self._logger.debug("UTF-8 enabled")

    @property
    def host(self) -> str:
        """Resolved numeric address of the server."""
        return self._host

    @property
    def timeout(self) -> Optional[float]:
        """Timeout used when establishing connections."""
        return self._timeout

    @property
    def features(self) -> Mapping[str, str]:
        """Features advertised by FEAT, feature name to description."""
        return MappingProxyType(self._features)

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True if currently connected."""
        return self._state == ConnectionState.CONNECTED

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when connection was established."""
        return self._connected_at

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of last successful operation."""
        return self._last_activity

    def _stream(self, operation: str) -> ControlStream:
        if self._control is None or self._control.closed:
            raise FTPNotConnectedError(operation)
        return self._control

    def execute(self, expected: Optional[int], fmt: str, *args) -> Reply:
        """
        Send one command and read its reply.

        Args:
            expected: Required reply code, or None to accept any
            fmt: %-style format of the command line
            *args: Format arguments

        Returns:
            The reply

        Raises:
            FTPReplyError: If the reply code differs from ``expected``
            FTPNotConnectedError: If the client was closed
        """
        reply = self._stream(fmt.split(" ", 1)[0]).command(expected, fmt, *args)
        self._last_activity = datetime.now()
        return reply

    def login(self, user: str, password: str) -> None:
        """
        Authenticate and switch to binary transfers.

        "anonymous"/"anonymous" is the usual scheme for read-only accounts.

        Args:
            user: User name
            password: Password

        Raises:
            FTPAuthenticationError: If the server rejected the credentials
            FTPReplyError: If binary mode could not be set
        """
        reply = self.execute(None, "USER %s", user)
        if reply.code == StatusCode.USER_OK:
            try:
                self.execute(StatusCode.LOGGED_IN, "PASS %s", password)
            except FTPReplyError as e:
                raise FTPAuthenticationError(user, e)
        elif reply.code != StatusCode.LOGGED_IN:
            raise FTPAuthenticationError(user, FTPReplyError(reply.code, reply.message))

        self.execute(StatusCode.COMMAND_OK, "TYPE I")
        self._logger.info("User %s logged in", user)

    def logout(self) -> None:
        """Log the current user out with REIN."""
        self.execute(StatusCode.READY, "REIN")

    def quit(self) -> None:
        """Send QUIT and close the control connection."""
        if self._control is None or self._control.closed:
            self.close()
            return
        try:
            self._control.command(None, "QUIT")
        except (FTPError, OSError) as e:
            # Servers may hang up without answering QUIT
            self._logger.debug("QUIT not acknowledged: %s", e)
        finally:
            self.close()

    def close(self) -> None:
        """Close the control connection without saying goodbye."""
        if self._control is not None:
            self._control.close()
            self._control = None
        if self._state != ConnectionState.ERROR:
            self._state = ConnectionState.DISCONNECTED

    def __enter__(self) -> "FTPClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.quit()

    # Data connections

    def _epsv(self) -> int:
        """Negotiate extended passive mode, returning the data port."""
        # 229 Entering Extended Passive Mode (|||65202|)
        reply = self.execute(StatusCode.EXTENDED_PASSIVE_MODE, "EPSV")
        start = reply.message.find("|||")
        end = reply.message.rfind("|")
        if start == -1 or end <= start + 2:
            raise FTPProtocolError(f"Invalid EPSV response format: {reply.message!r}")
        try:
            return int(reply.message[start + 3:end])
        except ValueError as e:
            raise FTPProtocolError(f"Invalid EPSV response format: {reply.message!r}", e)

    def _pasv(self) -> int:
        """Negotiate legacy passive mode, returning the data port."""
        # 227 Entering Passive Mode (172,17,66,241,254,179)
        reply = self.execute(StatusCode.PASSIVE_MODE, "PASV")
        start = reply.message.find("(")
        end = reply.message.rfind(")")
        if start == -1 or end <= start:
            raise FTPProtocolError(f"Invalid PASV response format: {reply.message!r}")
        fields = reply.message[start + 1:end].split(",")
        if len(fields) < 6:
            raise FTPProtocolError(f"Invalid PASV response format: {reply.message!r}")
        try:
            high, low = int(fields[-2]), int(fields[-1])
        except ValueError as e:
            raise FTPProtocolError(f"Invalid PASV response format: {reply.message!r}", e)
        return high * 256 + low

    def _open_data_channel(self) -> OutboundDataChannel:
        try:
            port = self._epsv()
        except FTPError as epsv_error:
            self._logger.debug("EPSV failed, falling back to PASV: %s", epsv_error)
            try:
                port = self._pasv()
            except FTPError as pasv_error:
                raise pasv_error from epsv_error
        return OutboundDataChannel(self._host, port, self._timeout)

    def _open_data_command(self, offset: int, fmt: str, *args) -> DataChannel:
        """
        Run a command that transfers bytes over a data connection.

        Args:
            offset: Byte offset to restart from (0 = none)
            fmt: %-style format of the transfer command
            *args: Format arguments

        Returns:
            Open data channel, ready for streaming

        Raises:
            FTPReplyError: If the server refused the restart or the command
        """
        channel = self._open_data_channel()
        try:
            if offset:
                self.execute(StatusCode.REQUEST_FILE_PENDING, "REST %d", offset)
            reply = self.execute(None, fmt, *args)
            if reply.code not in (StatusCode.ALREADY_OPEN, StatusCode.ABOUT_TO_SEND):
                raise FTPReplyError(reply.code, reply.message)
        except Exception:
            channel.close()
            raise
        return channel

    @staticmethod
    def _with_path(command: str, path: str) -> str:
        return f"{command} {path}" if path else command

    def name_list(self, path: str = "") -> List[str]:
        """
        List names with NLST.

        Args:
            path: Directory to list (default: current directory)

        Returns:
            One name per line of the reply
        """
        channel = self._open_data_command(0, self._with_path("NLST", path))
        with DataResponse(channel, self._stream("NLST")) as response:
            return [line.decode("utf-8", errors="replace").rstrip("\r\n") for line in response]

    def list(self, path: str = "") -> List[Entry]:
        """
        List a directory with LIST.

        Lines that cannot be parsed are skipped.

        Args:
            path: Directory to list (default: current directory)

        Returns:
            Parsed entries
        """
        channel = self._open_data_command(0, self._with_path("LIST", path))
        with DataResponse(channel, self._stream("LIST")) as response:
            lines = [line.decode("utf-8", errors="replace") for line in response]
        return parse_listing(lines)

    def retrieve(self, path: str, offset: int = 0) -> DataResponse:
        """
        Start downloading a file with RETR.

        The returned response must be closed when done.

        Args:
            path: Remote file
            offset: Number of leading bytes the server should skip

        Returns:
            Readable response over the data connection
        """
        channel = self._open_data_command(offset, "RETR %s", path)
        return DataResponse(channel, self._stream("RETR"))

    def store(self, path: str, source: BinaryIO, offset: int = 0) -> int:
        """
        Upload a file with STOR.

        Args:
            path: Remote file to create or replace
            source: Binary stream with the file contents
            offset: Remote file offset to start writing at

        Returns:
            Number of bytes sent

        Raises:
            FTPReplyError: If the server did not confirm the transfer
        """
        channel = self._open_data_command(offset, "STOR %s", path)
        bytes_sent = 0
        try:
            while True:
                block = source.read(self.BLOCK_SIZE)
                if not block:
                    break
                channel.write(block)
                bytes_sent += len(block)
        finally:
            channel.close()

        self._stream("STOR").read_reply(StatusCode.CLOSING_DATA_CONNECTION)
        self._last_activity = datetime.now()
        return bytes_sent

    # Simple commands

    def change_dir(self, path: str) -> None:
        """Change the working directory."""
        self.execute(StatusCode.REQUESTED_FILE_ACTION_OK, "CWD %s", path)

    def change_dir_to_parent(self) -> None:
        """Change to the parent of the working directory."""
        self.execute(StatusCode.REQUESTED_FILE_ACTION_OK, "CDUP")

    def current_dir(self) -> str:
        """
        Get the working directory.

        Returns:
            Path quoted in the PWD reply

        Raises:
            FTPProtocolError: If the reply holds no quoted path
        """
        reply = self.execute(StatusCode.PATH_CREATED, "PWD")
        start = reply.message.find('"')
        end = reply.message.rfind('"')
        if start == -1 or end <= start:
            raise FTPProtocolError(f"Unsupported PWD response format: {reply.message!r}")
        return reply.message[start + 1:end]

    def size(self, path: str) -> int:
        """
        Get the size of a remote file with SIZE.

        Raises:
            FTPProtocolError: If the reply is not a number
        """
        reply = self.execute(StatusCode.FILE, "SIZE %s", path)
        try:
            return int(reply.message.strip())
        except ValueError as e:
            raise FTPProtocolError(f"Unsupported SIZE response format: {reply.message!r}", e)

    def rename(self, from_path: str, to_path: str) -> None:
        """Rename a remote file or directory."""
        self.execute(StatusCode.REQUEST_FILE_PENDING, "RNFR %s", from_path)
        self.execute(StatusCode.REQUESTED_FILE_ACTION_OK, "RNTO %s", to_path)

    def make_dir(self, path: str) -> None:
        """Create a remote directory."""
        self.execute(StatusCode.PATH_CREATED, "MKD %s", path)

    def remove_dir(self, path: str) -> None:
        """Remove a remote directory."""
        self.execute(StatusCode.REQUESTED_FILE_ACTION_OK, "RMD %s", path)

    def delete(self, path: str) -> None:
        """Delete a remote file."""
        self.execute(StatusCode.REQUESTED_FILE_ACTION_OK, "DELE %s", path)

    def noop(self) -> None:
        """Send NOOP, usually to keep the connection from timing out."""
        self.execute(StatusCode.COMMAND_OK, "NOOP")


def connect(
    host: str,
    port: int,
    user: str,
    password: str,
    timeout: Optional[float] = None,
    logger: Optional[logging.Logger] = None
) -> FTPClient:
    """
    Dial a server and log in.

    Args:
        host: Server host
        port: Server control port
        user: User name
        password: Password
        timeout: Connection establishment timeout in seconds
        logger: Logger for session events

    Returns:
        Logged-in client

    Raises:
        FTPConnectionError: If the server could not be reached
        FTPAuthenticationError: If login failed (the connection is closed)
    """
    client = FTPClient.dial(host, port, timeout=timeout, logger=logger)
    try:
        client.login(user, password)
    except (FTPError, OSError):
        client.quit()
        raise
    return client


def connect_anonymous(
    host: str,
    port: int = DEFAULT_PORT,
    timeout: Optional[float] = None,
    logger: Optional[logging.Logger] = None
) -> FTPClient:
    """Dial a server and log in as anonymous."""
    return connect(host, port, "anonymous", "anonymous", timeout=timeout, logger=logger)

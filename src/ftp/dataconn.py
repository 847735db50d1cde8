"""Data channel variants for FTPLink.

A data channel carries the bytes of exactly one transfer (a listing, a
retrieved file or a stored file) and is never reused. The client dials
out to the port the server advertised; the server listens on an ephemeral
port and accepts a single inbound connection in the background, so the
passive-mode reply can be sent before the client has connected.
"""

import io
import logging
import socket
from abc import abstractmethod
from typing import Optional

from src.ftp.exceptions import FTPConnectionError, FTPTimeoutError
from src.utils.threading import ThreadedTask

logger = logging.getLogger("ftplink.dataconn")

# Seconds close() waits for an aborted accept to unwind
ACCEPT_ABORT_TIMEOUT = 2.0


def _shutdown_and_close(sock: Optional[socket.socket]) -> None:
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Peer already gone or never connected
        pass
    sock.close()


class DataChannel(io.RawIOBase):
    """One-shot byte stream between client and server."""

    @property
    @abstractmethod
    def host(self) -> str:
        """Address of the listening end."""

    @property
    @abstractmethod
    def port(self) -> int:
        """Port of the listening end."""

    @abstractmethod
    def _connection(self) -> socket.socket:
        """Return the connected socket, waiting for it if needed."""

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        return self._connection().recv_into(buffer)

    def write(self, data) -> int:
        self._connection().sendall(data)
        return len(data)


class OutboundDataChannel(DataChannel):
    """Client side: connection dialed to a server-advertised port."""

    def __init__(self, host: str, port: int, timeout: Optional[float] = None):
        """
        Dial the data connection.

        Args:
            host: Resolved server address
            port: Port negotiated with EPSV/PASV
            timeout: Connection establishment timeout (None = blocking)

        Raises:
            FTPTimeoutError: If the dial timed out
            FTPConnectionError: If the dial failed
        """
        super().__init__()
        self._host = host
        self._port = port
        self._sock: Optional[socket.socket] = None
        try:
            self._sock = socket.create_connection((host, port), timeout=timeout)
        except socket.timeout:
            raise FTPTimeoutError(host, port, timeout)
        except OSError as e:
            raise FTPConnectionError(host, port, e)
        # Timeouts only bound connection establishment, not the transfer
        self._sock.settimeout(None)
        logger.debug("Data connection open to %s:%d", host, port)

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    def _connection(self) -> socket.socket:
        if self._sock is None:
            raise ValueError("I/O operation on closed data channel")
        return self._sock

    def close(self) -> None:
        if not self.closed:
            _shutdown_and_close(self._sock)
            self._sock = None
            logger.debug("Data connection to %s:%d closed", self._host, self._port)
        super().close()


class PassiveDataChannel(DataChannel):
    """Server side: ephemeral listener accepting one inbound connection."""

    def __init__(self, host: str):
        """
        Bind the listener and start accepting in the background.

        Args:
            host: Local address to listen on (also advertised to the client)

        Raises:
            OSError: If the listener cannot be created
        """
        super().__init__()
        self._host = host
        self._port = 0
        self._conn: Optional[socket.socket] = None
        self._accept: Optional[ThreadedTask] = None
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._listener.bind((host, 0))
            self._listener.listen(1)
        except OSError:
            self.close()
            raise
        self._host, self._port = self._listener.getsockname()[:2]

        self._accept = ThreadedTask(self._accept_one, name=f"pasv-accept-{self._port}")
        self._accept.start()
        logger.debug("Passive data connection listening on %s:%d", self._host, self._port)

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    def _accept_one(self) -> socket.socket:
        conn, addr = self._listener.accept()
        logger.debug("Passive data connection on port %d accepted from %s", self._port, addr)
        return conn

    def _ready(self) -> socket.socket:
        """Block until the accept finished; the outcome is cached by the task."""
        outcome = self._accept.get_result()
        if not outcome.ok:
            raise FTPConnectionError(self._host, self._port, outcome.error)
        self._conn = outcome.result
        return self._conn

    def _connection(self) -> socket.socket:
        if self.closed:
            raise ValueError("I/O operation on closed data channel")
        return self._conn or self._ready()

    def close(self) -> None:
        if not self.closed:
            # Shutting down the listener also aborts an accept still pending
            _shutdown_and_close(self._listener)
            if self._accept is not None:
                try:
                    outcome = self._accept.get_result(timeout=ACCEPT_ABORT_TIMEOUT)
                except TimeoutError:
                    logger.warning("Accept on port %d did not stop after close", self._port)
                else:
                    if outcome.ok:
                        _shutdown_and_close(outcome.result)
            self._conn = None
            logger.debug("Passive data connection on port %d closed", self._port)
        super().close()

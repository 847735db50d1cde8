"""FTP listener for the FTPLink server.

Accepts control connections and serves each one in its own daemon
thread with an independent ServerSession.
"""

import logging
import socket
import threading
from pathlib import Path
from typing import Optional, Set, Tuple, Union

from src.local.storage import LocalStorage
from src.server.session import ServerSession
from src.utils.threading import ThreadedTask

DEFAULT_BACKLOG = 5


class FTPServer:
    """Listening socket plus one session thread per client."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 2121,
        root_dir: Union[str, Path] = ".",
        backlog: int = DEFAULT_BACKLOG,
        logger: Optional[logging.Logger] = None
    ):
        """
        Bind and start listening.

        Args:
            host: IPv4 address to listen on
            port: Port to listen on (0 = let the OS pick)
            root_dir: Local directory served as "/"
            backlog: Listen backlog
            logger: Logger for server and session events

        Raises:
            NotADirectoryError: If root_dir is not a directory
            OSError: If the address cannot be bound
        """
        self._storage = LocalStorage(root_dir)
        self._logger = logger or logging.getLogger("ftplink.server")
        self._stopping = threading.Event()
        self._sessions: Set[ServerSession] = set()
        self._lock = threading.Lock()
        self._background: Optional[ThreadedTask] = None

        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._listener.bind((host, port))
            self._listener.listen(backlog)
        except OSError:
            self._listener.close()
            raise
        self._logger.info(
            "Listening on %s:%d, serving %s", *self.address, self._storage.root
        )

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port) of the listener."""
        return self._listener.getsockname()[:2]

    @property
    def root(self) -> Path:
        """Local directory served as "/"."""
        return self._storage.root

    def serve_forever(self) -> None:
        """Accept connections until stop() is called."""
        while not self._stopping.is_set():
            try:
                conn, addr = self._listener.accept()
            except OSError as e:
                if self._stopping.is_set():
                    break
                self._logger.error("Error accepting connection: %s", e)
                continue

            self._logger.info("Accepted connection from %s:%d", *addr[:2])
            try:
                session = ServerSession(conn, self._storage, logger=self._logger.getChild("session"))
            except OSError as e:
                self._logger.warning("Dropping connection from %s: %s", addr[0], e)
                conn.close()
                continue
            thread = threading.Thread(
                target=self._run_session,
                args=(session,),
                name=f"ftp-session-{addr[0]}:{addr[1]}",
                daemon=True,
            )
            thread.start()
        self._logger.info("Server stopped")

    def _run_session(self, session: ServerSession) -> None:
        with self._lock:
            self._sessions.add(session)
        try:
            session.serve()
        finally:
            with self._lock:
                self._sessions.discard(session)

    def start_background(self) -> ThreadedTask:
        """
        Run serve_forever() in a daemon thread.

        Returns:
            Task running the accept loop
        """
        if self._background is not None:
            raise RuntimeError("Server already started")
        self._background = ThreadedTask(self.serve_forever, name="ftp-server")
        self._background.start()
        return self._background

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop accepting and close every open session.

        Args:
            timeout: Seconds to wait for the background accept loop to exit
        """
        if self._stopping.is_set():
            return
        self._stopping.set()
        try:
            self._listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Not connected; close() below still releases the port
            pass
        self._listener.close()

        with self._lock:
            sessions = list(self._sessions)
        for session in sessions:
            session.close()

        if self._background is not None:
            try:
                self._background.get_result(timeout=timeout)
            except TimeoutError:
                self._logger.warning("Accept loop did not stop within %s seconds", timeout)

    def __enter__(self) -> "FTPServer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

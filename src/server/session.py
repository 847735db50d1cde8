"""Per-connection FTP command dispatcher for the FTPLink server.

A ServerSession owns one accepted control connection. It reads command
lines one at a time, answers each one completely before reading the next,
and keeps the small amount of state a client builds up: the working
directory, a pending rename source, a restart offset and at most one
passive data channel.
"""

import logging
import socket
from pathlib import Path
from typing import List, Optional, Tuple

from src.ftp.control import ENCODING
from src.ftp.dataconn import PassiveDataChannel
from src.ftp.exceptions import FTPError
from src.ftp.listing import format_list_detailed, format_list_short
from src.ftp.status import StatusCode, status_text
from src.local.storage import LocalStorage

# Size reported by SIZE for directories
DIRECTORY_SIZE_PLACEHOLDER = 1024

# Block size for STOR transfers (8KB)
BLOCK_SIZE = 8192

FEATURES = ("EPSV", "PASV", "REST STREAM", "SIZE", "UTF8")

# Alternative command names handled by another command's handler
_ALIASES = {
    "XRMD": "RMD",
}


def _error_text(error: OSError) -> str:
    """Error description without the local filesystem path."""
    return error.strerror or str(error)


class ServerSession:
    """State and command loop of one client connection."""

    def __init__(
        self,
        conn: socket.socket,
        storage: LocalStorage,
        host: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the session.

        Args:
            conn: Accepted control connection (ownership is taken)
            storage: Directory tree served to the client
            host: Address passive data channels listen on and advertise
                (default: the local address of the control connection)
            logger: Logger for session events
        """
        self._conn = conn
        self._reader = conn.makefile("rb")
        self._storage = storage
        self._logger = logger or logging.getLogger("ftplink.session")
        self._running = False

        self.host = host or conn.getsockname()[0]
        self.working_path = "/"
        self.rename_pending_source: Optional[Path] = None
        self.data_channel: Optional[PassiveDataChannel] = None
        self.restart_offset = 0

        try:
            self._peer = "%s:%d" % conn.getpeername()[:2]
        except OSError:
            self._peer = "unknown"

    # Replies

    def _reply(self, code: int, message: Optional[str] = None) -> None:
        line = f"{int(code)} {message if message is not None else status_text(code)}"
        self._logger.debug("[%s] --> %s", self._peer, line)
        self._conn.sendall((line + "\r\n").encode(ENCODING))

    def _reply_multiline(self, code: int, first: str, lines: List[str], last: str) -> None:
        body = [f"{int(code)}-{first}"] + [f" {line}" for line in lines] + [f"{int(code)} {last}"]
        self._logger.debug("[%s] --> %s", self._peer, " | ".join(body))
        self._conn.sendall("".join(line + "\r\n" for line in body).encode(ENCODING))

    # Loop

    def serve(self) -> None:
        """
        Run the command loop until the client quits or disconnects.

        The connection is always closed on return.
        """
        self._logger.info("[%s] Session started", self._peer)
        self._running = True
        try:
            self._reply(StatusCode.READY)
            while self._running:
                raw = self._reader.readline()
                if not raw:
                    # Client closed the connection
                    break
                self._dispatch(raw.decode(ENCODING, errors="replace").strip())
        except OSError as e:
            self._logger.warning("[%s] Connection error: %s", self._peer, e)
        finally:
            self.close()
            self._logger.info("[%s] Session ended", self._peer)

    def _dispatch(self, line: str) -> None:
        params = line.split()
        if not params:
            return
        self._logger.debug("[%s] <-- %s", self._peer, line)

        command = params[0].upper()
        command = _ALIASES.get(command, command)
        if command != "RNTO":
            self.rename_pending_source = None

        handler = getattr(self, f"_handle_{command.lower()}", None) if command.isalpha() else None
        if handler is None:
            self._reply(StatusCode.COMMAND_NOT_IMPLEMENTED)
            return
        handler(params[1:])

    def close(self) -> None:
        """Close the data channel (if any) and the control connection."""
        self._running = False
        self._close_data_channel()
        try:
            # Wakes a serve() loop blocked in readline on another thread
            self._conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self._reader.close()
        finally:
            self._conn.close()

    # Helpers

    def _resolve(self, args: List[str]) -> Optional[Tuple[str, Path]]:
        """
        Resolve arguments (rejoined with single spaces) to (virtual, real).

        Answers 550 and returns None if the argument cannot name a path.
        """
        try:
            return self._storage.resolve(self.working_path, " ".join(args))
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return None

    def _take_restart_offset(self) -> int:
        offset, self.restart_offset = self.restart_offset, 0
        return offset

    def _close_data_channel(self) -> None:
        channel, self.data_channel = self.data_channel, None
        if channel is not None:
            channel.close()

    def _send_data(self, data: bytes) -> None:
        """Write a transfer body to the data channel, then close it."""
        channel = self.data_channel
        if channel is None:
            self._reply(StatusCode.TRANSFER_ABORTED)
            return
        try:
            channel.write(data)
        except (FTPError, OSError) as e:
            self._logger.warning("[%s] Data transfer failed: %s", self._peer, e)
            self._close_data_channel()
            self._reply(StatusCode.TRANSFER_ABORTED)
            return
        self._close_data_channel()
        self._reply(
            StatusCode.CLOSING_DATA_CONNECTION,
            f"Closing data connection, sent {len(data)} bytes.",
        )

    def _open_passive(self) -> Optional[PassiveDataChannel]:
        self._close_data_channel()
        try:
            self.data_channel = PassiveDataChannel(self.host)
        except OSError as e:
            self._logger.warning("[%s] Cannot open passive listener: %s", self._peer, e)
            self._reply(StatusCode.CAN_NOT_OPEN_DATA_CONNECTION)
            return None
        return self.data_channel

    # Access control

    def _handle_user(self, args: List[str]) -> None:
        self._reply(StatusCode.USER_OK)

    def _handle_pass(self, args: List[str]) -> None:
        self._reply(StatusCode.LOGGED_IN)

    def _handle_rein(self, args: List[str]) -> None:
        self._close_data_channel()
        self.working_path = "/"
        self.restart_offset = 0
        self._reply(StatusCode.READY)

    def _handle_quit(self, args: List[str]) -> None:
        self._reply(StatusCode.CLOSING, "Goodbye.")
        self._running = False

    # Navigation

    def _handle_pwd(self, args: List[str]) -> None:
        self._reply(StatusCode.PATH_CREATED, f'"{self.working_path}" is current directory.')

    def _handle_cwd(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        virtual, real = resolved
        if not self._storage.is_dir(real):
            self._reply(StatusCode.FILE_UNAVAILABLE)
            return
        self.working_path = virtual
        self._reply(StatusCode.REQUESTED_FILE_ACTION_OK, f"Directory changed to {virtual}")

    def _handle_cdup(self, args: List[str]) -> None:
        self._handle_cwd([".."])

    # Information

    def _handle_syst(self, args: List[str]) -> None:
        self._reply(StatusCode.NAME)

    def _handle_feat(self, args: List[str]) -> None:
        self._reply_multiline(StatusCode.SYSTEM, "Features:", list(FEATURES), "End")

    def _handle_opts(self, args: List[str]) -> None:
        if " ".join(args).upper() == "UTF8 ON":
            self._reply(StatusCode.COMMAND_OK, "UTF8 mode enabled.")
        else:
            self._reply(StatusCode.BAD_ARGUMENTS)

    def _handle_noop(self, args: List[str]) -> None:
        self._reply(StatusCode.COMMAND_OK)

    def _handle_type(self, args: List[str]) -> None:
        kind = args[0].upper() if args else ""
        if kind == "A":
            self._reply(StatusCode.COMMAND_OK, "Type set to ASCII.")
        elif kind == "I":
            self._reply(StatusCode.COMMAND_OK, "Type set to binary.")
        else:
            self._reply(StatusCode.BAD_ARGUMENTS, "Invalid type.")

    def _handle_size(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        _, real = resolved
        try:
            if self._storage.is_dir(real):
                size = DIRECTORY_SIZE_PLACEHOLDER
            else:
                size = self._storage.stat(real).st_size
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return
        self._reply(StatusCode.FILE, str(size))

    # Data channel

    def _handle_epsv(self, args: List[str]) -> None:
        channel = self._open_passive()
        if channel is not None:
            self._reply(
                StatusCode.EXTENDED_PASSIVE_MODE,
                f"Entering Extended Passive Mode (|||{channel.port}|)",
            )

    def _handle_pasv(self, args: List[str]) -> None:
        channel = self._open_passive()
        if channel is not None:
            high, low = channel.port // 256, channel.port % 256
            quad = channel.host.replace(".", ",")
            self._reply(StatusCode.PASSIVE_MODE, f"Entering Passive Mode ({quad},{high},{low})")

    def _handle_rest(self, args: List[str]) -> None:
        if len(args) != 1 or not args[0].isdecimal():
            self._reply(StatusCode.BAD_ARGUMENTS)
            return
        self.restart_offset = int(args[0])
        self._reply(StatusCode.REQUEST_FILE_PENDING, f"Restarting at {self.restart_offset}.")

    # Transfers

    def _list(self, args: List[str], formatter) -> None:
        # Options such as "-la" are accepted and ignored
        paths = [arg for arg in args if not arg.startswith("-")]
        resolved = self._resolve(paths)
        if resolved is None:
            return
        _, real = resolved
        try:
            items = self._storage.list_items(real)
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return
        self._reply(StatusCode.ABOUT_TO_SEND, "Opening ASCII mode data connection for file list")
        self._send_data(formatter(items))

    def _handle_list(self, args: List[str]) -> None:
        self._list(args, format_list_detailed)

    def _handle_nlst(self, args: List[str]) -> None:
        self._list(args, format_list_short)

    def _handle_retr(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        _, real = resolved
        offset = self._take_restart_offset()
        try:
            data = self._storage.read_bytes(real, offset)
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return
        self._reply(StatusCode.ABOUT_TO_SEND, f"Data transfer starting {len(data)} bytes.")
        self._send_data(data)

    def _handle_stor(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        _, real = resolved
        offset = self._take_restart_offset()
        self._reply(StatusCode.ABOUT_TO_SEND, "Data transfer starting.")

        channel = self.data_channel
        if channel is None:
            self._reply(StatusCode.TRANSFER_ABORTED)
            return
        try:
            f = self._storage.open_for_write(real, offset)
        except OSError as e:
            self._logger.warning("[%s] Cannot open %s for writing: %s", self._peer, real, e)
            self._close_data_channel()
            self._reply(StatusCode.FILE_ACTION_IGNORED)
            return

        received = 0
        try:
            with f:
                while True:
                    block = channel.read(BLOCK_SIZE)
                    if not block:
                        break
                    f.write(block)
                    received += len(block)
        except (FTPError, OSError) as e:
            self._logger.warning("[%s] Upload failed after %d bytes: %s", self._peer, received, e)
            self._reply(StatusCode.TRANSFER_ABORTED)
            return
        finally:
            self._close_data_channel()
        self._reply(StatusCode.CLOSING_DATA_CONNECTION, f"OK, received {received} bytes.")

    # File management

    def _handle_dele(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        _, real = resolved
        if not self._storage.exists(real):
            self._reply(StatusCode.FILE_UNAVAILABLE)
            return
        try:
            self._storage.delete(real)
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return
        self._reply(StatusCode.REQUESTED_FILE_ACTION_OK, "File deleted.")

    def _handle_mkd(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        virtual, real = resolved
        try:
            self._storage.make_dir(real)
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return
        self._reply(StatusCode.PATH_CREATED, f'"{virtual}" created.')

    def _handle_rmd(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        _, real = resolved
        if not self._storage.is_dir(real) or real == self._storage.root:
            self._reply(StatusCode.FILE_UNAVAILABLE)
            return
        try:
            self._storage.remove_tree(real)
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return
        self._reply(StatusCode.REQUESTED_FILE_ACTION_OK, "Directory deleted.")

    def _handle_rnfr(self, args: List[str]) -> None:
        resolved = self._resolve(args)
        if resolved is None:
            return
        self.rename_pending_source = resolved[1]
        self._reply(StatusCode.REQUEST_FILE_PENDING)

    def _handle_rnto(self, args: List[str]) -> None:
        source, self.rename_pending_source = self.rename_pending_source, None
        if source is None:
            self._reply(StatusCode.BAD_SEQUENCE, "RNFR required first.")
            return
        resolved = self._resolve(args)
        if resolved is None:
            return
        _, target = resolved
        try:
            self._storage.rename(source, target)
        except OSError as e:
            self._reply(StatusCode.FILE_UNAVAILABLE, _error_text(e))
            return
        self._reply(StatusCode.REQUESTED_FILE_ACTION_OK, "File renamed.")

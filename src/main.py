"""Command-line entry point for FTPLink.

Runs the FTP server on a local directory, or performs a single client
operation (list, download, upload) against a remote server.

Usage:
    python -m src.main serve --root ./share --port 2121
    python -m src.main ls ftp.example.com /pub
    python -m src.main get ftp.example.com /pub/file.iso
    python -m src.main put ftp.example.com ./notes.txt /incoming/notes.txt
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config.credentials import CredentialManager
from .config.paths import get_log_file_path
from .config.settings import AppSettings, SettingsManager
from .ftp.connection import FTPClient, FTPConnectionConfig, connect
from .ftp.listing import EntryType
from .ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPTimeoutError,
)
from .server.server import FTPServer
from .utils.logging import get_logger, setup_logging
from .utils.validators import validate_directory, validate_file_path, validate_port

# Block size for local file copies (64KB)
COPY_BLOCK_SIZE = 65536

_TYPE_MARKERS = {
    EntryType.FILE: "-",
    EntryType.DIRECTORY: "d",
    EntryType.LINK: "l",
}


class Application:
    """
    Command dispatcher.

    Owns settings and credentials and turns parsed arguments into server
    or client operations.
    """

    def __init__(
        self,
        settings_manager: Optional[SettingsManager] = None,
        credential_manager: Optional[CredentialManager] = None
    ):
        self._settings_manager = settings_manager or SettingsManager()
        self._settings = self._settings_manager.load()
        self._credential_manager = credential_manager or CredentialManager()
        self._logger = get_logger("ftplink.app")

    @property
    def settings(self) -> AppSettings:
        return self._settings

    # Server

    def serve(self, args: argparse.Namespace) -> int:
        """Run the FTP server until interrupted."""
        root = args.root or self._settings.server_root or "."
        is_valid, error = validate_directory(Path(root))
        if not is_valid:
            print(error, file=sys.stderr)
            return 1
        is_valid, error = validate_port(args.port, allow_ephemeral=True)
        if not is_valid:
            print(error, file=sys.stderr)
            return 1

        server = FTPServer(args.host, args.port, root, logger=logging.getLogger("ftplink.server"))
        host, port = server.address
        print(f"Serving {server.root} on {host}:{port}")
        with server:
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                self._logger.info("Interrupted, shutting down")
        return 0

    # Client

    def _connect(self, args: argparse.Namespace) -> FTPClient:
        host = args.host or self._settings.last_host
        config = FTPConnectionConfig(
            host=host,
            port=args.port if args.port is not None else self._settings.last_port,
            username=args.user or self._settings.last_username,
            timeout=args.timeout if args.timeout is not None else self._settings.timeout,
        )
        password = self._credential_manager.resolve_password(
            config.host, config.username, args.password
        )

        self._logger.info("Connecting to %s:%d as %s", config.host, config.port, config.username)
        client = connect(
            config.host,
            config.port,
            config.username,
            password,
            timeout=config.timeout,
            logger=logging.getLogger("ftplink.client"),
        )
        self._save_connection_settings(config, password, args.save_password)
        return client

    def _save_connection_settings(
        self,
        config: FTPConnectionConfig,
        password: str,
        save_password: bool
    ) -> None:
        """Remember a successful connection."""
        self._settings_manager.update(
            last_host=config.host,
            last_port=config.port,
            last_username=config.username,
        )
        if save_password and password:
            self._credential_manager.save_password(config.host, config.username, password)
        self._logger.info("Saved connection settings for %s", config.host)

    def ls(self, args: argparse.Namespace) -> int:
        """Print a remote directory listing."""
        with self._connect(args) as client:
            if args.names:
                for name in client.name_list(args.path):
                    print(name)
                return 0
            for entry in client.list(args.path):
                kind = _TYPE_MARKERS[entry.type]
                print(f"{kind} {entry.size:>12d} {entry.time:%Y-%m-%d %H:%M} {entry.name}")
        return 0

    def get(self, args: argparse.Namespace) -> int:
        """Download a remote file."""
        local = Path(args.local or Path(args.remote).name)
        if args.offset:
            size = local.stat().st_size if local.is_file() else 0
            if size < args.offset:
                print(f"Cannot resume: {local} has only {size} of {args.offset} bytes", file=sys.stderr)
                return 1
        mode = "r+b" if args.offset else "wb"
        received = 0
        with self._connect(args) as client:
            with client.retrieve(args.remote, offset=args.offset) as response, open(local, mode) as f:
                # Bytes past the offset are replaced by what the server sends
                f.seek(args.offset)
                f.truncate()
                while True:
                    block = response.read(COPY_BLOCK_SIZE)
                    if not block:
                        break
                    f.write(block)
                    received += len(block)
        print(f"Downloaded {args.remote} -> {local} ({received} bytes)")
        return 0

    def put(self, args: argparse.Namespace) -> int:
        """Upload a local file."""
        local = Path(args.local)
        is_valid, error = validate_file_path(local)
        if not is_valid:
            print(error, file=sys.stderr)
            return 1

        remote = args.remote or local.name
        with self._connect(args) as client, open(local, "rb") as f:
            if args.offset:
                f.seek(args.offset)
            sent = client.store(remote, f, offset=args.offset)
        print(f"Uploaded {local} -> {remote} ({sent} bytes)")
        return 0


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("host", nargs="?", default="",
                        help="Server host (default: last used host)")
    parser.add_argument("-P", "--port", type=int, default=None,
                        help="Server port (default: last used port)")
    parser.add_argument("-u", "--user", default=None,
                        help="User name (default: last used user)")
    parser.add_argument("-p", "--password", default=None,
                        help="Password (default: saved password, else anonymous)")
    parser.add_argument("-t", "--timeout", type=int, default=None,
                        help="Connection timeout in seconds")
    parser.add_argument("--save-password", action="store_true",
                        help="Store the password in the system keyring")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(prog="ftplink", description="FTP client and server")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log protocol traffic")
    parser.add_argument("--log-file", type=Path, default=None,
                        help="Log file (default: the application log directory)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Serve a local directory")
    serve.add_argument("--host", default="127.0.0.1", help="Address to listen on")
    serve.add_argument("--port", type=int, default=2121, help="Port to listen on")
    serve.add_argument("--root", default=None, help="Directory to serve")

    ls = subparsers.add_parser("ls", help="List a remote directory")
    _add_connection_arguments(ls)
    ls.add_argument("path", nargs="?", default="", help="Remote directory")
    ls.add_argument("-n", "--names", action="store_true", help="Only print names (NLST)")

    get = subparsers.add_parser("get", help="Download a file")
    _add_connection_arguments(get)
    get.add_argument("remote", help="Remote file")
    get.add_argument("local", nargs="?", default=None, help="Local destination")
    get.add_argument("--offset", type=int, default=0, help="Resume from this byte offset")

    put = subparsers.add_parser("put", help="Upload a file")
    _add_connection_arguments(put)
    put.add_argument("local", help="Local file")
    put.add_argument("remote", nargs="?", default=None, help="Remote destination")
    put.add_argument("--offset", type=int, default=0, help="Resume from this byte offset")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Application entry point.

    Returns:
        Exit code (0 for success)
    """
    args = build_parser().parse_args(argv)
    logger = setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file or get_log_file_path(),
        console=args.verbose,
    )

    app = Application()
    handler = getattr(app, args.command)
    try:
        return handler(args)
    except FTPAuthenticationError as e:
        message = f"Authentication failed: {e}"
    except FTPTimeoutError as e:
        message = f"Connection timed out: {e}"
    except FTPConnectionError as e:
        message = f"Could not connect: {e}"
    except (FTPError, ValueError, OSError) as e:
        message = str(e)
    logger.error(message)
    print(message, file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())

"""Pytest configuration and shared fixtures for FTPLink tests."""

import socket
from pathlib import Path
from typing import Generator, Tuple

import pytest

from src.local.storage import LocalStorage
from src.server.server import FTPServer


# Test constants
TEST_FTP_HOST = "127.0.0.1"


@pytest.fixture
def temp_settings_file(tmp_path: Path) -> Path:
    """Provide a temporary settings file path for testing."""
    return tmp_path / "settings.json"


@pytest.fixture
def served_root(tmp_path: Path) -> Path:
    """Directory tree served by test servers."""
    root = tmp_path / "served"
    root.mkdir()
    (root / "hello.txt").write_bytes(b"Hello, FTP!\n")
    (root / "docs").mkdir()
    (root / "docs" / "readme.md").write_text("# Readme\n")
    (root / "empty").mkdir()
    return root


@pytest.fixture
def storage(served_root: Path) -> LocalStorage:
    """LocalStorage over the served tree."""
    return LocalStorage(served_root)


@pytest.fixture
def ftplink_server(served_root: Path) -> Generator[FTPServer, None, None]:
    """Running FTPLink server on an ephemeral port."""
    server = FTPServer(TEST_FTP_HOST, 0, served_root)
    server.start_background()
    yield server
    server.stop()


@pytest.fixture
def socket_pair() -> Generator[Tuple[socket.socket, socket.socket], None, None]:
    """Connected TCP socket pair on the loopback interface (server, client)."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind((TEST_FTP_HOST, 0))
    listener.listen(1)
    client = socket.create_connection(listener.getsockname())
    server, _ = listener.accept()
    listener.close()
    yield server, client
    server.close()
    client.close()

"""Integration tests for FTP workflows.

Runs the FTPLink client against the FTPLink server and against a
pyftpdlib reference server, over real loopback connections.
"""

import io
import os
from dataclasses import dataclass
from pathlib import Path

import pytest

from src.ftp.connection import ConnectionState, FTPClient, connect
from src.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPReplyError,
)
from src.server.server import FTPServer

from mock_ftp_server import MockFTPServer


@dataclass
class Endpoint:
    """A running server and where its files live."""
    name: str
    host: str
    port: int
    username: str
    password: str
    root: Path
    base: str

    def local(self, remote: str) -> Path:
        """Local path of a remote path under the base directory."""
        return self.root / self.base.strip("/") / remote

    def remote(self, name: str) -> str:
        return f"{self.base.rstrip('/')}/{name}"


@pytest.fixture(params=["ftplink", "pyftpdlib"])
def endpoint(request, tmp_path):
    """Provide each server kind with a writable base directory."""
    if request.param == "ftplink":
        root = tmp_path / "served"
        (root / "pub").mkdir(parents=True)
        (root / "pub" / "hello.txt").write_bytes(b"Hello from FTPLink\n")
        server = FTPServer("127.0.0.1", 0, root)
        server.start_background()
        host, port = server.address
        yield Endpoint("ftplink", host, port, "anyone", "anything", server.root, "/pub")
        server.stop()
    else:
        with MockFTPServer() as server:
            yield Endpoint(
                "pyftpdlib", server.host, server.port,
                server.username, server.password, server.root_dir, "/pub",
            )


@pytest.fixture
def client(endpoint):
    """Provide a logged-in client."""
    with connect(endpoint.host, endpoint.port, endpoint.username, endpoint.password, timeout=5) as c:
        yield c


class TestSession:
    """Connection, login and navigation."""

    def test_connect_and_quit(self, endpoint):
        """Test the handshake negotiates features and QUIT closes."""
        client = connect(endpoint.host, endpoint.port, endpoint.username, endpoint.password, timeout=5)

        assert client.is_connected is True
        assert client.host == "127.0.0.1"
        assert "UTF8" in client.features
        assert "EPSV" in client.features

        client.quit()
        assert client.state == ConnectionState.DISCONNECTED

    def test_navigation(self, client, endpoint):
        """Test PWD, CWD and CDUP."""
        assert client.current_dir() == "/"
        client.change_dir(endpoint.base)
        assert client.current_dir() == endpoint.base
        client.change_dir_to_parent()
        assert client.current_dir() == "/"

    def test_change_to_missing_directory(self, client):
        """Test CWD to a missing directory fails with 550 and keeps the path."""
        with pytest.raises(FTPReplyError) as exc_info:
            client.change_dir("/does/not/exist")

        assert exc_info.value.code == 550
        assert client.current_dir() == "/"

    def test_noop(self, client):
        """Test NOOP keeps the session alive."""
        client.noop()
        assert client.last_activity is not None


class TestTransfers:
    """Store, retrieve and list."""

    def test_store_then_retrieve(self, client, endpoint):
        """Test a stored byte sequence is retrieved unchanged."""
        payload = os.urandom(200 * 1024)
        path = endpoint.remote("random.bin")

        assert client.store(path, io.BytesIO(payload)) == len(payload)
        with client.retrieve(path) as response:
            assert response.read() == payload

        assert endpoint.local("random.bin").read_bytes() == payload

    def test_retrieve_with_offset(self, client, endpoint):
        """Test REST skips the leading bytes."""
        expected = endpoint.local("hello.txt").read_bytes()

        with client.retrieve(endpoint.remote("hello.txt"), offset=6) as response:
            assert response.read() == expected[6:]

    def test_store_with_offset(self, client, endpoint):
        """Test resuming an upload keeps the bytes before the offset."""
        path = endpoint.remote("resume.txt")
        client.store(path, io.BytesIO(b"0123"))

        client.store(path, io.BytesIO(b"abc"), offset=4)

        assert endpoint.local("resume.txt").read_bytes() == b"0123abc"

    def test_retrieve_missing_file(self, client, endpoint):
        """Test RETR of a missing file fails with 550."""
        with pytest.raises(FTPReplyError) as exc_info:
            client.retrieve(endpoint.remote("missing.bin"))
        assert exc_info.value.code == 550

        # The session is still usable afterwards
        client.noop()

    def test_list(self, client, endpoint):
        """Test LIST returns parsed entries."""
        client.make_dir(endpoint.remote("sub"))

        entries = {e.name: e for e in client.list(endpoint.base)}

        assert entries["hello.txt"].size == endpoint.local("hello.txt").stat().st_size
        assert entries["hello.txt"].is_dir is False
        assert entries["sub"].is_dir is True

    def test_name_list(self, client, endpoint):
        """Test NLST of the working directory."""
        client.change_dir(endpoint.base)
        names = client.name_list()
        assert "hello.txt" in [name.rsplit("/", 1)[-1] for name in names]

    def test_size(self, client, endpoint):
        """Test SIZE matches the file on disk."""
        expected = endpoint.local("hello.txt").stat().st_size
        assert client.size(endpoint.remote("hello.txt")) == expected


class TestFileManagement:
    """Rename, directories and deletion."""

    def test_rename(self, client, endpoint):
        """Test the source disappears and the target appears."""
        client.rename(endpoint.remote("hello.txt"), endpoint.remote("renamed.txt"))

        assert not endpoint.local("hello.txt").exists()
        assert endpoint.local("renamed.txt").exists()

    def test_make_and_remove_dir(self, client, endpoint):
        """Test MKD then RMD."""
        client.make_dir(endpoint.remote("newdir"))
        assert endpoint.local("newdir").is_dir()

        client.remove_dir(endpoint.remote("newdir"))
        assert not endpoint.local("newdir").exists()

    def test_delete(self, client, endpoint):
        """Test DELE removes the file."""
        client.delete(endpoint.remote("hello.txt"))
        assert not endpoint.local("hello.txt").exists()

        with pytest.raises(FTPReplyError) as exc_info:
            client.delete(endpoint.remote("hello.txt"))
        assert exc_info.value.code == 550


class TestFTPLinkServerOnly:
    """Behaviour specific to the FTPLink server."""

    @pytest.fixture
    def server(self, served_root):
        server = FTPServer("127.0.0.1", 0, served_root)
        server.start_background()
        yield server
        server.stop()

    def test_empty_directory_lists_dot_entries(self, server):
        """Test an empty directory lists exactly "." and ".."."""
        host, port = server.address
        with connect(host, port, "anonymous", "anonymous", timeout=5) as client:
            entries = client.list("/empty")
            names = client.name_list("/empty")

        assert [e.name for e in entries] == [".", ".."]
        assert names == [".", ".."]

    def test_logout(self, server):
        """Test REIN resets the session."""
        host, port = server.address
        with connect(host, port, "anonymous", "anonymous", timeout=5) as client:
            client.change_dir("/docs")
            client.logout()
            assert client.current_dir() == "/"

    def test_concurrent_sessions(self, server, served_root):
        """Test two clients keep independent working directories."""
        host, port = server.address
        with connect(host, port, "a", "a", timeout=5) as first, \
                connect(host, port, "b", "b", timeout=5) as second:
            first.change_dir("/docs")
            assert second.current_dir() == "/"
            assert [e.name for e in first.list()] == ["readme.md"]


class TestReferenceServerOnly:
    """Behaviour checked against pyftpdlib only."""

    def test_wrong_password(self):
        """Test a rejected password raises FTPAuthenticationError."""
        with MockFTPServer() as server:
            with pytest.raises(FTPAuthenticationError) as exc_info:
                connect(server.host, server.port, server.username, "wrong", timeout=5)
        assert exc_info.value.code == 530

    def test_pasv_fallback(self):
        """Test transfers fall back to PASV when EPSV is refused."""
        with MockFTPServer(epsv=False) as server:
            with connect(server.host, server.port, server.username, server.password, timeout=5) as client:
                with client.retrieve("/pub/hello.txt") as response:
                    assert response.read() == b"Hello from pyftpdlib\n"


def test_connection_refused():
    """Test dialing a port nobody listens on fails cleanly."""
    with FTPServer("127.0.0.1", 0, ".") as server:
        host, port = server.address

    with pytest.raises(FTPConnectionError):
        FTPClient.dial(host, port, timeout=5)

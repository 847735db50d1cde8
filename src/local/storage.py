"""Local filesystem backing store for the FTPLink server.

Maps the virtual paths a client sees ("/", "/music/a.mp3") onto a real
directory tree and performs the file operations server commands need.
"""

import errno
import logging
import os
import posixpath
import shutil
from pathlib import Path
from typing import BinaryIO, List, Tuple, Union

from src.ftp.listing import FileItem

logger = logging.getLogger("ftplink.storage")


class LocalStorage:
    """Directory tree served to clients, rooted at a local directory."""

    def __init__(self, root: Union[str, Path]):
        """
        Initialize the store.

        Args:
            root: Local directory exposed as "/"

        Raises:
            NotADirectoryError: If root is not an existing directory
        """
        self._root = Path(root).resolve()
        if not self._root.is_dir():
            raise NotADirectoryError(f"Not a directory: {self._root}")

    @property
    def root(self) -> Path:
        """Resolved local root directory."""
        return self._root

    def resolve(self, working_path: str, argument: str) -> Tuple[str, Path]:
        """
        Resolve a command argument against the working path.

        A leading "/" makes the argument relative to the root; anything else
        is relative to the working path. ".." never climbs above the root.

        Args:
            working_path: Virtual working directory of the session
            argument: Path argument as sent by the client

        Returns:
            Tuple of (virtual_path, real_path)

        Raises:
            OSError: If the argument contains a NUL byte
        """
        if "\x00" in argument:
            raise OSError(errno.EINVAL, "Invalid path", argument)
        # join() discards the working path when the argument is absolute, and
        # normpath() drops any ".." that would climb above "/"
        virtual = posixpath.normpath(posixpath.join("/", working_path, argument))
        relative = virtual.lstrip("/")
        virtual = "/" + relative
        real = self._root.joinpath(*relative.split("/")) if relative else self._root
        return virtual, real

    def exists(self, real: Path) -> bool:
        return os.path.lexists(real)

    def is_dir(self, real: Path) -> bool:
        return real.is_dir()

    def stat(self, real: Path) -> os.stat_result:
        return real.stat()

    def list_items(self, real: Path) -> List[FileItem]:
        """
        Describe the entries of a directory, sorted by name.

        Raises:
            OSError: If the directory cannot be read
        """
        with os.scandir(real) as it:
            names = sorted(entry.name for entry in it)
        items = []
        for name in names:
            try:
                items.append(FileItem.from_path(real / name))
            except OSError as e:
                # Entry vanished between scandir and lstat
                logger.debug("Skipping %s: %s", name, e)
        return items

    def read_bytes(self, real: Path, offset: int = 0) -> bytes:
        """Read a whole file, skipping the first ``offset`` bytes."""
        with open(real, "rb") as f:
            if offset:
                f.seek(offset)
            return f.read()

    def open_for_write(self, real: Path, offset: int = 0) -> BinaryIO:
        """
        Open a file for writing.

        Without an offset the file is created or truncated; with one, the
        existing contents up to ``offset`` are kept and the rest replaced.
        """
        if offset and real.is_file():
            f = open(real, "r+b")
            f.seek(offset)
            f.truncate()
            return f
        return open(real, "wb")

    def delete(self, real: Path) -> None:
        os.remove(real)

    def make_dir(self, real: Path) -> None:
        os.mkdir(real)

    def remove_tree(self, real: Path) -> None:
        shutil.rmtree(real)

    def rename(self, source: Path, target: Path) -> None:
        os.rename(source, target)

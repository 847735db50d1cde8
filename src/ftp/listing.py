"""Directory listing codec for FTPLink.

Converts between the classic Unix ``ls -l`` style lines sent over a LIST
data connection and structured entries. Parsing is lenient about column
spacing, because servers vary in how they pad columns.
"""

import logging
import os
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from src.ftp.exceptions import FTPListingError

logger = logging.getLogger("ftplink.listing")

# Largest size an entry may report (unsigned 64-bit)
MAX_ENTRY_SIZE = 2 ** 64

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_MONTH_NUMBERS = {name.lower(): number for number, name in enumerate(_MONTHS, start=1)}

# Sent instead of an empty body; real listings always carry the pseudo-entries
EMPTY_LISTING_DETAILED = (
    b"drwxrwxrwx 1 user group 0 Apr  1 00:00 .\r\n"
    b"drwxrwxrwx 1 user group 0 Apr  1 00:00 ..\r\n"
)
EMPTY_LISTING_SHORT = b".\r\n..\r\n"


class EntryType(Enum):
    """Kind of a listed directory entry."""
    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"


_TYPE_CHARS = {
    "-": EntryType.FILE,
    "d": EntryType.DIRECTORY,
    "l": EntryType.LINK,
}


@dataclass(frozen=True)
class Entry:
    """One parsed line of a LIST reply."""
    name: str
    type: EntryType
    size: int
    time: datetime

    @property
    def is_dir(self) -> bool:
        """True if the entry is a directory."""
        return self.type == EntryType.DIRECTORY


@dataclass(frozen=True)
class FileItem:
    """Filesystem metadata of one item to be listed."""
    name: str
    size: int
    modified: datetime
    is_dir: bool = False
    mode: Optional[int] = None

    @classmethod
    def from_path(cls, path: Path) -> "FileItem":
        """
        Create a FileItem from a local path.

        Symlinks are described, not followed.

        Args:
            path: Local filesystem path

        Returns:
            FileItem instance

        Raises:
            OSError: If the path cannot be stat'ed
        """
        st = os.lstat(path)
        return cls(
            name=Path(path).name,
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            is_dir=stat.S_ISDIR(st.st_mode),
            mode=st.st_mode,
        )

    @property
    def permissions(self) -> str:
        """Unix permission string, e.g. ``drwxr-xr-x``."""
        if self.mode is not None:
            return stat.filemode(self.mode)
        return "drwxr-xr-x" if self.is_dir else "-rw-r--r--"


def _number(text: str, max_digits: int) -> int:
    """Parse a short run of decimal digits."""
    if not text.isdecimal() or len(text) > max_digits:
        raise ValueError(f"invalid number {text!r}")
    return int(text)


def _parse_time(month: str, day: str, year_or_time: str, now: Optional[datetime]) -> datetime:
    """
    Build the UTC timestamp of a listing line from its date fields.

    Raises:
        ValueError: If a field is malformed or the date does not exist
    """
    month_number = _MONTH_NUMBERS.get(month.lower())
    if month_number is None:
        raise ValueError(f"unknown month {month!r}")

    if ":" in year_or_time:
        # Recent entries carry a time of day instead of the year
        year = (now or datetime.now(timezone.utc)).year
        hour_str, _, minute_str = year_or_time.partition(":")
        hour, minute = _number(hour_str, 2), _number(minute_str, 2)
    elif len(year_or_time) == 4:
        year, hour, minute = _number(year_or_time, 4), 0, 0
    else:
        # 69-99 -> 19xx, 00-68 -> 20xx
        year = _number(year_or_time, 2)
        year += 1900 if year >= 69 else 2000
        hour, minute = 0, 0

    return datetime(year, month_number, _number(day, 2), hour, minute, tzinfo=timezone.utc)


def parse_list_line(line: str, now: Optional[datetime] = None) -> Entry:
    """
    Parse one line of a LIST reply.

    Args:
        line: Listing line, with or without its line terminator
        now: Reference time for lines that omit the year (default: current UTC time)

    Returns:
        Parsed Entry

    Raises:
        FTPListingError: If the line is not in a supported format
    """
    fields = line.split()
    if len(fields) < 9:
        raise FTPListingError(line, "expected at least 9 fields")

    entry_type = _TYPE_CHARS.get(fields[0][0])
    if entry_type is None:
        raise FTPListingError(line, f"unknown entry type {fields[0][0]!r}")

    size = 0
    if entry_type == EntryType.FILE:
        if not fields[4].isdecimal():
            raise FTPListingError(line, f"invalid size {fields[4]!r}")
        size = int(fields[4])
        if size >= MAX_ENTRY_SIZE:
            raise FTPListingError(line, f"size out of range {fields[4]!r}")

    try:
        parsed = _parse_time(fields[5], fields[6], fields[7], now)
    except ValueError as e:
        raise FTPListingError(line, "invalid date", e)

    return Entry(
        name=" ".join(fields[8:]),
        type=entry_type,
        size=size,
        time=parsed,
    )


def parse_listing(lines: Iterable[str], now: Optional[datetime] = None) -> List[Entry]:
    """
    Parse a full LIST reply, skipping lines that cannot be parsed.

    Args:
        lines: Listing lines
        now: Reference time for lines that omit the year

    Returns:
        Entries for every line that parsed
    """
    entries = []
    for line in lines:
        try:
            entries.append(parse_list_line(line, now=now))
        except FTPListingError as e:
            logger.debug("Skipping listing line: %s", e)
    return entries


def _format_time(modified: datetime) -> str:
    """Render ``Mon _2 HH:MM`` in UTC, independent of the process locale."""
    if modified.tzinfo is not None:
        modified = modified.astimezone(timezone.utc)
    return f"{_MONTHS[modified.month - 1]} {modified.day:2d} {modified:%H:%M}"


def format_list_detailed(items: Iterable[FileItem]) -> bytes:
    """
    Format items as a LIST reply body.

    Args:
        items: Items to list

    Returns:
        CRLF-terminated listing bytes (synthetic "." and ".." when empty)
    """
    lines = [
        f"{item.permissions}\t1 user\tgroup\t{item.size:8d} "
        f"{_format_time(item.modified)} {item.name}\r\n"
        for item in items
    ]
    if not lines:
        return EMPTY_LISTING_DETAILED
    return "".join(lines).encode("utf-8")


def format_list_short(items: Iterable[FileItem]) -> bytes:
    """
    Format items as an NLST reply body.

    Args:
        items: Items to list

    Returns:
        CRLF-terminated names (synthetic "." and ".." when empty)
    """
    lines = [f"{item.name}\r\n" for item in items]
    if not lines:
        return EMPTY_LISTING_SHORT
    return "".join(lines).encode("utf-8")

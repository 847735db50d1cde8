"""Input validators for FTPLink.

Provides validation functions for connection settings like hosts,
ports, timeouts and local file paths.
"""

import ipaddress
import re
from pathlib import Path
from typing import Optional, Tuple, Union


# Hostname pattern (simplified)
HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$'
)

# Connection timeout bounds, in seconds
MIN_TIMEOUT = 1
MAX_TIMEOUT = 300


def validate_ip_address(ip: str) -> Tuple[bool, Optional[str]]:
    """
    Validate an IPv4 or IPv6 address.

    Args:
        ip: IP address string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not ip or not ip.strip():
        return False, "IP address is required"

    try:
        ipaddress.ip_address(ip.strip())
    except ValueError:
        return False, f"Invalid IP address format: {ip.strip()}"

    return True, None


def validate_host(host: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a host (IP address or hostname).

    Args:
        host: Host string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not host or not host.strip():
        return False, "Host is required"

    host = host.strip()

    is_valid_ip, _ = validate_ip_address(host)
    if is_valid_ip or HOSTNAME_PATTERN.match(host):
        return True, None

    return False, f"Invalid host: {host}. Must be a valid IP address or hostname."


def validate_port(port: int, allow_ephemeral: bool = False) -> Tuple[bool, Optional[str]]:
    """
    Validate a port number.

    Args:
        port: Port number to validate
        allow_ephemeral: Accept 0, meaning "let the OS pick" for listeners

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(port, int):
        try:
            port = int(port)
        except (ValueError, TypeError):
            return False, "Port must be a number"

    lowest = 0 if allow_ephemeral else 1
    if port < lowest or port > 65535:
        return False, f"Port must be between {lowest} and 65535, got {port}"

    return True, None


def validate_timeout(timeout: Union[int, float]) -> Tuple[bool, Optional[str]]:
    """
    Validate a connection timeout value in seconds.

    Args:
        timeout: Timeout in seconds

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(timeout, (int, float)):
        try:
            timeout = float(timeout)
        except (ValueError, TypeError):
            return False, "Timeout must be a number"

    if timeout < MIN_TIMEOUT or timeout > MAX_TIMEOUT:
        return False, (
            f"Timeout must be between {MIN_TIMEOUT} and {MAX_TIMEOUT} seconds, got {timeout}"
        )

    return True, None


def validate_file_path(path: Path, must_exist: bool = True) -> Tuple[bool, Optional[str]]:
    """
    Validate a local file path.

    Args:
        path: Path to validate
        must_exist: If True, file must exist

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not path:
        return False, "File path is required"

    if isinstance(path, str):
        path = Path(path)

    if must_exist:
        if not path.exists():
            return False, f"File does not exist: {path}"
        if not path.is_file():
            return False, f"Path is not a file: {path}"

    return True, None


def validate_directory(path: Path) -> Tuple[bool, Optional[str]]:
    """
    Validate that a local path is an existing directory.

    Args:
        path: Path to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not path:
        return False, "Directory path is required"

    path = Path(path)
    if not path.is_dir():
        return False, f"Not a directory: {path}"

    return True, None

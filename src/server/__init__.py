"""FTP server module.

This module provides:
- FTPServer: Listener serving each client connection in its own thread
- ServerSession: Per-connection command dispatcher
"""

from src.server.server import FTPServer
from src.server.session import ServerSession

__all__ = ["FTPServer", "ServerSession"]

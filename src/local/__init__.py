"""Local filesystem module.

This module provides:
- LocalStorage: Rooted directory tree served by the FTP server
"""

from src.local.storage import LocalStorage

__all__ = ["LocalStorage"]

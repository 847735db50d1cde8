"""Secure credential storage for FTPLink.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) to store FTP passwords per host and user.
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger("ftplink.credentials")

ANONYMOUS_USER = "anonymous"


class CredentialManager:
    """FTP password storage backed by the system keyring."""

    SERVICE_NAME = "ftplink"

    def _make_key(self, host: str, username: str) -> str:
        """Key under which the password of ``username`` at ``host`` is stored."""
        return f"{host}:{username}"

    def save_password(self, host: str, username: str, password: str) -> bool:
        """
        Save an FTP password.

        Args:
            host: FTP host
            username: FTP username
            password: Password to save

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self.SERVICE_NAME, self._make_key(host, username), password)
            return True
        except KeyringError as e:
            logger.warning("Could not store password for %s@%s: %s", username, host, e)
            return False

    def get_password(self, host: str, username: str) -> Optional[str]:
        """
        Retrieve a saved password.

        Returns:
            Password string or None if not found or the keyring is unavailable
        """
        try:
            return keyring.get_password(self.SERVICE_NAME, self._make_key(host, username))
        except KeyringError as e:
            logger.debug("Keyring unavailable: %s", e)
            return None

    def delete_password(self, host: str, username: str) -> bool:
        """
        Remove a saved password.

        Returns:
            True if deleted successfully, False otherwise
        """
        try:
            keyring.delete_password(self.SERVICE_NAME, self._make_key(host, username))
            return True
        except KeyringError:
            return False

    def has_password(self, host: str, username: str) -> bool:
        """True if a password is saved for the user at the host."""
        return self.get_password(host, username) is not None

    def resolve_password(self, host: str, username: str, password: Optional[str] = None) -> str:
        """
        Pick the password to log in with.

        Args:
            host: FTP host
            username: FTP username
            password: Password given explicitly, if any

        Returns:
            The explicit password, else the saved one, else "anonymous"
            for the anonymous user and an empty string for anyone else
        """
        if password is not None:
            return password
        saved = self.get_password(host, username)
        if saved is not None:
            return saved
        return ANONYMOUS_USER if username == ANONYMOUS_USER else ""

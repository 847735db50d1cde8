"""Configuration module for FTPLink.

This module handles application settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Application data locations
- AppSettings: Settings dataclass
"""

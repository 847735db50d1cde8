"""Utility module for FTPLink.

This module provides cross-cutting utilities:
- Logging: Configured logging with secret redaction
- Validators: Input validation for hosts, ports, timeouts and paths
- Threading: One-shot background task with a cached outcome
"""

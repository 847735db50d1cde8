"""FTP protocol module for FTPLink.

This module handles the protocol core shared by client and server:
- StatusCode: Reply codes and their canonical texts
- ControlStream: Command/reply exchange on the control connection
- DataChannel: Outbound and passive data connections
- Listing codec: LIST line parsing and formatting
- FTPClient: Client control-channel engine
- Exceptions: FTP-specific error types
"""

"""FTP reply codes used by FTPLink.

Covers the RFC 959 / RFC 2428 replies the client expects and the server
emits, with the canonical text sent when no more specific message applies.
"""

from enum import IntEnum


class StatusCode(IntEnum):
    """Three-digit FTP reply codes."""
    ALREADY_OPEN = 125
    ABOUT_TO_SEND = 150

    COMMAND_OK = 200
    SYSTEM = 211
    FILE = 213
    NAME = 215
    READY = 220
    CLOSING = 221
    CLOSING_DATA_CONNECTION = 226
    PASSIVE_MODE = 227
    EXTENDED_PASSIVE_MODE = 229
    LOGGED_IN = 230
    REQUESTED_FILE_ACTION_OK = 250
    PATH_CREATED = 257

    USER_OK = 331
    REQUEST_FILE_PENDING = 350

    CAN_NOT_OPEN_DATA_CONNECTION = 425
    TRANSFER_ABORTED = 426
    FILE_ACTION_IGNORED = 450

    BAD_ARGUMENTS = 501
    COMMAND_NOT_IMPLEMENTED = 502
    BAD_SEQUENCE = 503
    FILE_UNAVAILABLE = 550


STATUS_TEXT = {
    StatusCode.ALREADY_OPEN: "Data connection already open. Transfer starting.",
    StatusCode.ABOUT_TO_SEND: "File status okay. About to open data connection.",
    StatusCode.COMMAND_OK: "Command okay.",
    StatusCode.SYSTEM: "System status, or system help reply.",
    StatusCode.FILE: "File status.",
    StatusCode.NAME: "UNIX Type: L8",
    StatusCode.READY: "Service ready for new user.",
    StatusCode.CLOSING: "Service closing control connection.",
    StatusCode.CLOSING_DATA_CONNECTION: "Closing data connection. Requested file action successful.",
    StatusCode.PASSIVE_MODE: "Entering Passive Mode.",
    StatusCode.EXTENDED_PASSIVE_MODE: "Entering Extended Passive Mode.",
    StatusCode.LOGGED_IN: "User logged in, proceed.",
    StatusCode.REQUESTED_FILE_ACTION_OK: "Requested file action okay, completed.",
    StatusCode.PATH_CREATED: "Pathname created.",
    StatusCode.USER_OK: "User name okay, need password.",
    StatusCode.REQUEST_FILE_PENDING: "Requested file action pending further information.",
    StatusCode.CAN_NOT_OPEN_DATA_CONNECTION: "Can't open data connection.",
    StatusCode.TRANSFER_ABORTED: "Connection closed; transfer aborted.",
    StatusCode.FILE_ACTION_IGNORED: "Requested file action not taken.",
    StatusCode.BAD_ARGUMENTS: "Syntax error in parameters or arguments.",
    StatusCode.COMMAND_NOT_IMPLEMENTED: "Command not implemented.",
    StatusCode.BAD_SEQUENCE: "Bad sequence of commands.",
    StatusCode.FILE_UNAVAILABLE: "Requested action not taken. File unavailable.",
}


def status_text(code: int) -> str:
    """
    Get the canonical reply text for a status code.

    Args:
        code: Three-digit reply code

    Returns:
        Reply text, or an empty string for unknown codes
    """
    return STATUS_TEXT.get(code, "")

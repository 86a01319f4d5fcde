"""
Error Taxonomy

Every failure the transfer engine can signal derives from DropshareError so the
CLI can report it in one place. Plain I/O failures (OSError) are not wrapped.
"""


class DropshareError(Exception):
    """Base class for all dropshare errors."""


class ConfigurationError(DropshareError):
    """No usable paths or invalid settings; raised before any socket is bound."""


class EmptyArchiveError(DropshareError):
    """An archive was built but nothing could be added to it."""


# Name used by the archive builder contract
NoContentError = EmptyArchiveError


class ProtocolFramingError(DropshareError):
    """The peer sent bytes that do not match the expected framing."""


class FileConflictError(DropshareError):
    """An uploaded file would overwrite an existing file."""

    def __init__(self, filename: str):
        super().__init__(f"{filename} already exists, refusing to overwrite")
        self.filename = filename

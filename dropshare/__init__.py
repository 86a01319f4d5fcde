"""
dropshare - serve files (or accept one upload) over a single HTTP exchange.
"""

__version__ = "0.1.0"

from .config import Config, load_config
from .errors import (
    DropshareError, ConfigurationError, EmptyArchiveError, NoContentError,
    ProtocolFramingError, FileConflictError,
)
from .session import TransferSession

__all__ = [
    'Config',
    'load_config',
    'DropshareError',
    'ConfigurationError',
    'EmptyArchiveError',
    'NoContentError',
    'ProtocolFramingError',
    'FileConflictError',
    'TransferSession',
]

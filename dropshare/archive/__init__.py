"""
Archive Module - Packing, Copying, and Artifact Selection

This module turns a list of local paths into the single file that gets sent.
"""

from .copier import StreamCopier, COPY_CHUNK_SIZE, copy
from .builder import ArchiveBuilder, ArchiveSpec, Encoding, PathEntry, PathKind
from .prepare import ArtifactRef, TransferPreparer, archive_name

__all__ = [
    'StreamCopier',
    'COPY_CHUNK_SIZE',
    'copy',
    'ArchiveBuilder',
    'ArchiveSpec',
    'Encoding',
    'PathEntry',
    'PathKind',
    'ArtifactRef',
    'TransferPreparer',
    'archive_name',
]

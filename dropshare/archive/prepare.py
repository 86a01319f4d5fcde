"""
Transfer Preparation

Decides what single file will be served: the caller's file as-is, or a
freshly built archive that is deleted once the exchange is over.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

from .builder import ArchiveBuilder, ArchiveSpec, Encoding, PathKind, ProgressCallback
from .copier import COPY_CHUNK_SIZE
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

# Fixed name of the temporary archive, suffix added per encoding
ARCHIVE_BASENAME = "dropshare"


def archive_name(encoding: Encoding) -> str:
    return f"{ARCHIVE_BASENAME}{encoding.suffix}"


@dataclass
class ArtifactRef:
    """
    The single file offered to the peer.
    
    Owns the temporary archive: cleanup() deletes it at most once and
    never touches a caller-supplied file.
    """
    path: Path
    is_temporary: bool = False
    _cleaned: bool = field(default=False, init=False, repr=False)
    
    @property
    def name(self) -> str:
        """Filename advertised in Content-Disposition."""
        return self.path.name
    
    @property
    def size(self) -> int:
        return self.path.stat().st_size
    
    def cleanup(self):
        """Remove the artifact if it was synthesized for this transfer."""
        if not self.is_temporary or self._cleaned:
            return
        self._cleaned = True
        self.path.unlink(missing_ok=True)
        logger.info(f"Removed temporary archive {self.path.name}")
    
    def __enter__(self) -> 'ArtifactRef':
        return self
    
    def __exit__(self, exc_type, exc, tb):
        self.cleanup()


class TransferPreparer:
    """Turns the caller's path list into an ArtifactRef."""
    
    def __init__(self, work_dir: Union[str, Path] = '.',
                 chunk_size: int = COPY_CHUNK_SIZE,
                 progress: Optional[ProgressCallback] = None):
        self.work_dir = Path(work_dir)
        self.chunk_size = chunk_size
        self.progress = progress
    
    def prepare(self, paths: Sequence[Union[str, Path]],
                encoding: Encoding = Encoding.TAR_GZ) -> ArtifactRef:
        """
        Pick or build the artifact.
        
        Args:
            paths: Files/directories in the order the user gave them
            encoding: Container format used when an archive is needed
        
        Returns:
            ArtifactRef; is_temporary is True only for a built archive
        
        Raises:
            ConfigurationError: no paths, or a single path that is neither
                a file nor a directory
            EmptyArchiveError: an archive was needed but nothing was added
        """
        if not paths:
            raise ConfigurationError("No paths found")
        
        spec = ArchiveSpec.from_paths(paths, encoding)
        first = spec.entries[0]
        
        if len(spec.entries) == 1:
            if first.kind is PathKind.FILE:
                return ArtifactRef(path=first.path, is_temporary=False)
            if first.kind is PathKind.INVALID:
                raise ConfigurationError(f"{first.path} is not a valid path")
        
        destination = self.work_dir / archive_name(encoding)
        logger.info(f"Adding {len(spec.entries)} path(s) to {destination.name}...")
        
        builder = ArchiveBuilder(chunk_size=self.chunk_size, progress=self.progress)
        builder.build(spec, destination)
        
        return ArtifactRef(path=destination, is_temporary=True)

"""
Archive Builder

Design Decision: Container Formats
==================================

Options Considered:
1. tar + gzip
   - Single compressed stream, fast to write
   - No random access to individual entries
   
2. zip (deflate per entry)
   - Each entry compressed independently
   - Unpacking tools can extract single entries
   
3. Uncompressed tar
   - Fastest, but wastes bandwidth on text-heavy trees

Decision: Support tar+gzip (default) and zip, chosen by configuration
- tar+gzip uses the fastest compression level; LAN bandwidth is rarely the bottleneck
- zip uses deflate per entry and stores every directory explicitly

Archive Layout:
```
report.txt            # file entries keep only their base name
photos-1/             # directory entries become <dirname>-<index>
photos-1/2023/a.jpg
photos-2/b.jpg        # a second "photos" directory does not collide
```
"""

import logging
import os
import tarfile
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set, Tuple, Union

from .copier import COPY_CHUNK_SIZE, StreamCopier
from ..errors import EmptyArchiveError

logger = logging.getLogger(__name__)

# gzip level used for tar output
FAST_COMPRESSION = 1


class Encoding(Enum):
    """Container format for multi-path transfers."""
    TAR_GZ = "tar.gz"
    ZIP = "zip"
    
    @property
    def suffix(self) -> str:
        return f".{self.value}"


class PathKind(Enum):
    """What a path pointed at when it was first inspected."""
    FILE = "file"
    DIRECTORY = "directory"
    INVALID = "invalid"


@dataclass(frozen=True)
class PathEntry:
    """A caller-supplied path, classified once."""
    path: Path
    kind: PathKind
    
    @classmethod
    def resolve(cls, path: Union[str, Path]) -> 'PathEntry':
        path = Path(path)
        if path.is_file():
            kind = PathKind.FILE
        elif path.is_dir():
            kind = PathKind.DIRECTORY
        else:
            kind = PathKind.INVALID
        return cls(path=path, kind=kind)
    
    @property
    def name(self) -> str:
        """Last path component ('.' and '..' resolve to the real directory name)."""
        return self.path.name or self.path.resolve().name or "root"


@dataclass
class ArchiveSpec:
    """Ordered paths plus the container format to pack them into."""
    entries: List[PathEntry]
    encoding: Encoding = Encoding.TAR_GZ
    
    @classmethod
    def from_paths(cls, paths: Sequence[Union[str, Path]],
                   encoding: Encoding = Encoding.TAR_GZ) -> 'ArchiveSpec':
        return cls(entries=[PathEntry.resolve(p) for p in paths], encoding=encoding)


# Progress sink: (index, entry) once per path
ProgressCallback = Callable[[int, PathEntry], None]


@dataclass
class BuildStats:
    """What ended up in the container."""
    files: int = 0
    directories: int = 0
    skipped: List[Path] = field(default_factory=list)
    
    @property
    def has_content(self) -> bool:
        return self.files + self.directories > 0


class ArchiveBuilder:
    """
    Packs an ArchiveSpec into a single tar.gz or zip file.
    
    Features:
    - Caller order is preserved; directories get their input index appended
    - Invalid entries are skipped with a warning
    - An archive with nothing in it is deleted and reported as an error
    """
    
    def __init__(self, chunk_size: int = COPY_CHUNK_SIZE,
                 progress: Optional[ProgressCallback] = None):
        self.copier = StreamCopier(chunk_size)
        self.progress = progress
        self.stats = BuildStats()
    
    def build(self, spec: ArchiveSpec, destination: Union[str, Path]) -> bool:
        """
        Write the archive described by spec to destination.
        
        Returns:
            True when at least one entry was added
        
        Raises:
            EmptyArchiveError: nothing could be added; destination is removed
        """
        destination = Path(destination)
        self.stats = BuildStats()
        
        try:
            if spec.encoding is Encoding.ZIP:
                self._build_zip(spec, destination)
            else:
                self._build_tar(spec, destination)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
        
        if not self.stats.has_content:
            destination.unlink(missing_ok=True)
            raise EmptyArchiveError("Archive does not contain any files")
        
        logger.info(f"{destination.name} written: {self.stats.files} files, "
                    f"{self.stats.directories} directories")
        return True
    
    # === Naming ===
    
    def _arcnames(self, spec: ArchiveSpec) -> List[Tuple[int, PathEntry, str]]:
        """Archive name for every entry, in input order, never reusing a name."""
        used: Set[str] = set()
        names = []
        for index, entry in enumerate(spec.entries):
            if entry.kind is PathKind.DIRECTORY:
                arcname = f"{entry.name}-{index}"
                while arcname in used:
                    arcname = f"{arcname}-{index}"
            else:
                arcname = entry.name
                while arcname in used:
                    stem, suffix = os.path.splitext(arcname)
                    arcname = f"{stem}-{index}{suffix}"
            used.add(arcname)
            names.append((index, entry, arcname))
        return names
    
    def _report(self, index: int, entry: PathEntry):
        if self.progress:
            self.progress(index, entry)
    
    def _skip(self, path: Path):
        logger.warning(f"{path} is not a valid path, skipping")
        self.stats.skipped.append(path)
    
    def _walk(self, root: Path, arcname: str):
        """
        Yield (path, arcname, kind) for everything below root, sorted.
        
        Symlinks are classified by their target, like top-level entries.
        """
        for dirpath, dirs, files in os.walk(root):
            dirs.sort()
            current = Path(dirpath)
            prefix = current.relative_to(root).as_posix()
            base = arcname if prefix == '.' else f"{arcname}/{prefix}"
            
            for name in dirs:
                yield current / name, f"{base}/{name}", PathKind.DIRECTORY
            
            for name in sorted(files):
                path = current / name
                kind = PathKind.FILE if path.is_file() else PathKind.INVALID
                yield path, f"{base}/{name}", kind
    
    # === tar.gz ===
    
    def _build_tar(self, spec: ArchiveSpec, destination: Path):
        # dereference: symlinked inputs are stored as their content
        with tarfile.open(destination, 'w:gz', compresslevel=FAST_COMPRESSION,
                          dereference=True) as tar:
            for index, entry, arcname in self._arcnames(spec):
                self._report(index, entry)
                
                if entry.kind is PathKind.FILE:
                    self._tar_entry(tar, entry.path, arcname, PathKind.FILE)
                elif entry.kind is PathKind.DIRECTORY:
                    self._tar_entry(tar, entry.path, arcname, PathKind.DIRECTORY)
                    for path, name, kind in self._walk(entry.path, arcname):
                        self._tar_entry(tar, path, name, kind)
                else:
                    self._skip(entry.path)
    
    def _tar_entry(self, tar: tarfile.TarFile, path: Path, arcname: str, kind: PathKind):
        if kind is PathKind.INVALID:
            self._skip(path)
            return
        tar.add(path, arcname=arcname, recursive=False)
        if kind is PathKind.FILE:
            self.stats.files += 1
        else:
            self.stats.directories += 1
    
    # === zip ===
    
    def _build_zip(self, spec: ArchiveSpec, destination: Path):
        with zipfile.ZipFile(destination, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
            for index, entry, arcname in self._arcnames(spec):
                self._report(index, entry)
                
                if entry.kind is PathKind.FILE:
                    self._zip_file(zf, entry.path, arcname)
                elif entry.kind is PathKind.DIRECTORY:
                    self._zip_directory(zf, entry.path, arcname)
                else:
                    self._skip(entry.path)
    
    def _zip_file(self, zf: zipfile.ZipFile, path: Path, arcname: str):
        info = zipfile.ZipInfo.from_file(path, arcname)
        info.compress_type = zipfile.ZIP_DEFLATED
        with open(path, 'rb') as src, zf.open(info, 'w') as dst:
            self.copier.copy(src, dst)
        self.stats.files += 1
    
    def _zip_directory(self, zf: zipfile.ZipFile, root: Path, arcname: str):
        # Top-level directory is stored explicitly, even when empty
        zf.write(root, arcname)
        self.stats.directories += 1
        
        for path, name, kind in self._walk(root, arcname):
            if kind is PathKind.DIRECTORY:
                zf.write(path, name)
                self.stats.directories += 1
            elif kind is PathKind.FILE:
                self._zip_file(zf, path, name)
            else:
                self._skip(path)

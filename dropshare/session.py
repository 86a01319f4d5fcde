"""
Transfer Session - Main Controller

Orchestrates one transfer from start to finish:
- Artifact preparation (single file or temporary archive)
- The request handler for the single HTTP exchange
- Cleanup of the temporary archive, exactly once, whatever the outcome
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from .archive import ArtifactRef, Encoding, TransferPreparer
from .archive.builder import ProgressCallback
from .config import Config
from .transfer import ExchangeResult, RequestHandler
from .transfer.handler import ReadyCallback

logger = logging.getLogger(__name__)


class TransferSession:
    """
    A single send or receive.
    
    Combines the components into one interface:
    - prepare(paths): pick or build the artifact
    - serve(): offer the prepared artifact to one peer
    - send(paths): prepare, serve it once, clean up
    - receive(): accept one upload
    """
    
    def __init__(self, config: Optional[Config] = None):
        """
        Initialize a session.
        
        Args:
            config: Session configuration (uses defaults if not provided)
        """
        self.config = (config or Config()).validate()
        self.artifact: Optional[ArtifactRef] = None
        self.handler: Optional[RequestHandler] = None
    
    @property
    def encoding(self) -> Encoding:
        return Encoding(self.config.encoding)
    
    def prepare(self, paths: Sequence[Union[str, Path]],
                progress: Optional[ProgressCallback] = None) -> ArtifactRef:
        """Pick the file to serve, building an archive when needed."""
        preparer = TransferPreparer(
            work_dir=self.config.work_dir,
            chunk_size=self.config.chunk_size,
            progress=progress,
        )
        self.artifact = preparer.prepare(paths, self.encoding)
        return self.artifact
    
    async def send(self, paths: Sequence[Union[str, Path]],
                   progress: Optional[ProgressCallback] = None,
                   ready: Optional[ReadyCallback] = None) -> ExchangeResult:
        """
        Serve paths to the first peer that connects.
        
        Archive building runs in a worker thread so the event loop stays free.
        """
        artifact = await asyncio.to_thread(self.prepare, paths, progress)
        with artifact:
            return await self.serve(ready)

    async def serve(self, ready: Optional[ReadyCallback] = None) -> ExchangeResult:
        """
        Serve the already prepared artifact once.

        Cleanup stays with the caller that owns the ArtifactRef.
        """
        if self.artifact is None:
            raise RuntimeError("prepare() must be called before serve()")
        self.handler = RequestHandler(
            host=self.config.host,
            port=self.config.port,
            artifact=self.artifact,
            chunk_size=self.config.chunk_size,
        )
        return await self.handler.run(ready)
    
    async def receive(self, ready: Optional[ReadyCallback] = None) -> ExchangeResult:
        """Accept a single upload into the configured upload directory."""
        upload_dir = Path(self.config.upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)
        
        self.handler = RequestHandler(
            host=self.config.host,
            port=self.config.port,
            upload_dir=upload_dir,
            chunk_size=self.config.chunk_size,
        )
        return await self.handler.run(ready)
    
    async def run(self, paths: Sequence[Union[str, Path]] = (),
                  progress: Optional[ProgressCallback] = None,
                  ready: Optional[ReadyCallback] = None) -> ExchangeResult:
        """Send or receive depending on the configured mode."""
        if self.config.receive:
            return await self.receive(ready)
        return await self.send(paths, progress, ready)

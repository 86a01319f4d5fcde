"""
Multipart Upload Ingestion

Design Decision: Length Arithmetic Instead of a MIME Parser
===========================================================

Options Considered:
1. email / multipart parser libraries
   - Handle every edge case, but scan the whole body for the delimiter
   
2. Scanning the stream for the closing boundary
   - Needs lookahead buffering across chunk edges
   
3. Content-Length arithmetic
   - Read the part headers line by line, then compute the payload size
   - The payload is read with exact-size reads, no scanning at all

Decision: Content-Length arithmetic, single part only
- Exact byte accounting, bounded memory
- Only one file per upload (browsers send exactly this for one <input type=file>)

Body Layout:
```
--<boundary>\r\n                                   \
Content-Disposition: form-data; name=..; filename="x"\r\n   > header_bytes
Content-Type: ...\r\n                               |
\r\n                                               /
<payload>                                            payload_length
\r\n--<boundary>--\r\n                               BOUNDARY_OVERHEAD + len(boundary)
```
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import aiofiles
import aiofiles.os

from .protocol import read_line, strip_line
from ..archive.copier import COPY_CHUNK_SIZE
from ..errors import FileConflictError, ProtocolFramingError

logger = logging.getLogger(__name__)

# "\r\n--" before and "--\r\n" after the closing boundary token
BOUNDARY_OVERHEAD = 8


def payload_length(content_length: int, header_bytes: int, boundary: str) -> int:
    """
    Exact payload size of a single-part multipart body.
    
    Args:
        content_length: Declared Content-Length of the whole body
        header_bytes: Bytes consumed by the opening delimiter line, the
            part headers and the blank line after them
        boundary: Boundary token from the Content-Type header
    
    Raises:
        ProtocolFramingError: the declared length cannot hold the framing
    """
    length = content_length - header_bytes - BOUNDARY_OVERHEAD - len(boundary)
    if length < 0:
        raise ProtocolFramingError(
            f"Content-Length {content_length} too small for {header_bytes} header "
            f"bytes and boundary {boundary!r}"
        )
    return length


def parse_filename(disposition: str) -> Optional[str]:
    """Value of the filename parameter in a Content-Disposition line."""
    marker = 'filename='
    index = disposition.find(marker)
    if index < 0:
        return None
    value = disposition[index + len(marker):].strip()
    if value.startswith('"'):
        end = value.find('"', 1)
        return value[1:end] if end > 0 else value[1:]
    return value.split(';', 1)[0].strip()


def safe_filename(name: str) -> str:
    """Reduce a client-supplied filename to its last path component."""
    base = Path(name.replace('\\', '/')).name
    if base in ('', '.', '..'):
        raise ProtocolFramingError(f"Unusable upload filename: {name!r}")
    return base


@dataclass
class MultipartUpload:
    """Framing facts of one parsed POST body."""
    content_length: int
    boundary: str
    filename: str
    header_bytes: int
    
    @property
    def payload_length(self) -> int:
        return payload_length(self.content_length, self.header_bytes, self.boundary)
    
    @property
    def trailer_length(self) -> int:
        return BOUNDARY_OVERHEAD + len(self.boundary)


class MultipartIngestor:
    """
    Receives one multipart/form-data file and writes it to disk.
    
    Never overwrites: the target is created exclusively, and on conflict the
    payload is read and discarded so the exchange can still be answered.
    """
    
    def __init__(self, upload_dir: Union[str, Path] = '.',
                 chunk_size: int = COPY_CHUNK_SIZE):
        self.upload_dir = Path(upload_dir)
        self.chunk_size = chunk_size
    
    async def read_part_headers(self, reader: asyncio.StreamReader,
                                content_length: int, boundary: str) -> MultipartUpload:
        """Consume the opening delimiter and part headers, counting every byte."""
        header_bytes = 0
        filename = None
        
        raw = await read_line(reader)
        header_bytes += len(raw)
        if strip_line(raw) != f"--{boundary}":
            raise ProtocolFramingError(f"Body does not start with boundary {boundary!r}")
        
        while True:
            raw = await read_line(reader)
            if not raw:
                raise ProtocolFramingError("Connection closed inside part headers")
            header_bytes += len(raw)
            if header_bytes > content_length:
                raise ProtocolFramingError("Part headers exceed Content-Length")
            
            line = strip_line(raw)
            if not line:
                break
            if line.lower().startswith('content-disposition:'):
                filename = parse_filename(line)
        
        if not filename:
            raise ProtocolFramingError("No filename in Content-Disposition")
        
        return MultipartUpload(
            content_length=content_length,
            boundary=boundary,
            filename=safe_filename(filename),
            header_bytes=header_bytes,
        )
    
    async def ingest(self, reader: asyncio.StreamReader, content_length: int,
                     boundary: Optional[str]) -> Tuple[str, int]:
        """
        Parse the body and persist its single file.
        
        Returns:
            (filename, byte_count); ('', 0) when content_length is 0
        
        Raises:
            ProtocolFramingError: bad framing or a short read
            FileConflictError: the file already exists (payload discarded)
        """
        if content_length == 0:
            logger.info("Empty upload, nothing to receive")
            return '', 0
        if not boundary:
            raise ProtocolFramingError("Missing multipart boundary in Content-Type")
        
        upload = await self.read_part_headers(reader, content_length, boundary)
        length = upload.payload_length
        target = self.upload_dir / upload.filename
        
        try:
            f = await aiofiles.open(target, 'xb')
        except FileExistsError:
            await self._discard(reader, length)
            await self._read_trailer(reader, upload)
            logger.warning(f"{upload.filename} already exists, upload discarded")
            raise FileConflictError(upload.filename)
        
        try:
            try:
                await self._stream_to(reader, f, length)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            finally:
                await f.close()
        except BaseException:
            await aiofiles.os.remove(target)
            raise
        
        await self._read_trailer(reader, upload)
        logger.info(f"Received {upload.filename} ({length:,} bytes)")
        return upload.filename, length
    
    async def _read_exactly(self, reader: asyncio.StreamReader, size: int) -> bytes:
        try:
            return await reader.readexactly(size)
        except asyncio.IncompleteReadError as e:
            raise ProtocolFramingError(
                f"Short read: expected {size} bytes, got {len(e.partial)}"
            )
    
    async def _stream_to(self, reader: asyncio.StreamReader, f, length: int):
        remaining = length
        while remaining > 0:
            chunk = await self._read_exactly(reader, min(self.chunk_size, remaining))
            await f.write(chunk)
            remaining -= len(chunk)
    
    async def _discard(self, reader: asyncio.StreamReader, length: int):
        remaining = length
        while remaining > 0:
            chunk = await self._read_exactly(reader, min(self.chunk_size, remaining))
            remaining -= len(chunk)
    
    async def _read_trailer(self, reader: asyncio.StreamReader, upload: MultipartUpload):
        """Consume the closing delimiter so the socket closes cleanly."""
        try:
            trailer = await reader.readexactly(upload.trailer_length)
        except asyncio.IncompleteReadError as e:
            trailer = e.partial
        if trailer != f"\r\n--{upload.boundary}--\r\n".encode('latin-1'):
            logger.debug(f"Unexpected multipart trailer: {trailer!r}")

"""
Stream Copier

Design Decision: Copy Granularity
=================================

Options Considered:
| Approach             | Pros                       | Cons                            |
|----------------------|----------------------------|---------------------------------|
| Read whole file      | Simplest                   | Memory grows with file size     |
| Fixed-size chunks    | Bounded memory, predictable| Slightly more syscalls          |
| sendfile()           | Zero-copy                  | Not portable to asyncio streams |

Decision: Fixed-size chunks (64KB default)
- At most one chunk is held in memory at any time
- Same primitive for archive entries and for socket output
- A zero-length read marks the end of the source
- Failures propagate immediately; a half-sent stream is never retried
"""

import asyncio
from typing import BinaryIO

import aiofiles

# Default chunk size: 64KB
COPY_CHUNK_SIZE = 64 * 1024


class StreamCopier:
    """
    Copies bytes from a source to a sink one chunk at a time.
    
    Features:
    - Bounded memory (one chunk)
    - Sync copy for file-like objects
    - Async copy from a file on disk onto an asyncio stream
    """
    
    def __init__(self, chunk_size: int = COPY_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size
    
    def copy(self, source: BinaryIO, sink: BinaryIO) -> int:
        """
        Copy everything from source to sink.
        
        Returns:
            Total number of bytes written
        """
        total = 0
        while True:
            chunk = source.read(self.chunk_size)
            if not chunk:
                break
            sink.write(chunk)
            total += len(chunk)
        return total
    
    async def copy_file_to_stream(self, file_path, writer: asyncio.StreamWriter) -> int:
        """
        Stream a file on disk onto an asyncio writer.
        
        Drains after every chunk so the transport buffer never holds more
        than one chunk.
        
        Returns:
            Total number of bytes written
        """
        total = 0
        async with aiofiles.open(file_path, 'rb') as f:
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                writer.write(chunk)
                await writer.drain()
                total += len(chunk)
        return total


def copy(source: BinaryIO, sink: BinaryIO, chunk_size: int = COPY_CHUNK_SIZE) -> int:
    """Copy source to sink in chunks, returning the byte count."""
    return StreamCopier(chunk_size).copy(source, sink)

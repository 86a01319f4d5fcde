"""
Request Handler

One listening socket, one exchange. Connections are processed strictly one
at a time; the handler reaches DONE after the first completed exchange and
refuses everything after that.

State Machine:
```
AWAIT_CONNECTION -> AWAIT_REQUEST_LINE -> SERVING   (send mode, GET)    -> DONE
                                       -> RECEIVING (receive mode, POST) -> DONE
```
Send mode reaches DONE after the first accepted connection whatever it
asked for. Receive mode answers GET with the upload form and goes back to
AWAIT_CONNECTION, as it does for any unrecognised request line.

There are no timeouts: the handler waits for a peer, and for every byte a
peer has announced, for as long as it takes.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from .multipart import MultipartIngestor
from .protocol import (
    RequestHeaders, RequestKind, ResponseHeaders, STATUS_CONFLICT,
    read_request_line,
)
from .. import templates
from ..archive.copier import COPY_CHUNK_SIZE, StreamCopier
from ..archive.prepare import ArtifactRef
from ..errors import FileConflictError

logger = logging.getLogger(__name__)


class HandlerState(Enum):
    AWAIT_CONNECTION = "AWAIT_CONNECTION"
    AWAIT_REQUEST_LINE = "AWAIT_REQUEST_LINE"
    SERVING = "SERVING"
    RECEIVING = "RECEIVING"
    DONE = "DONE"


@dataclass
class ExchangeResult:
    """Outcome of the single exchange."""
    request: RequestKind = RequestKind.OTHER
    peer: Optional[Tuple[str, int]] = None
    
    # Send mode
    artifact_name: str = ''
    bytes_sent: int = 0
    
    # Receive mode
    filename: str = ''
    bytes_received: int = 0
    conflict: bool = False
    
    @property
    def completed(self) -> bool:
        """True when a GET was served or a POST was answered."""
        return self.request is not RequestKind.OTHER


# Called once the socket is listening: (host, port)
ReadyCallback = Callable[[str, int], None]


class RequestHandler:
    """
    Serves one artifact (send mode) or accepts one upload (receive mode).
    
    Usage:
        handler = RequestHandler('127.0.0.1', 7878, artifact=artifact)
        result = await handler.run()
    """
    
    def __init__(self, host: str = '127.0.0.1', port: int = 7878,
                 artifact: Optional[ArtifactRef] = None,
                 upload_dir: Union[str, Path] = '.',
                 chunk_size: int = COPY_CHUNK_SIZE):
        self.host = host
        self.port = port
        self.artifact = artifact
        self.copier = StreamCopier(chunk_size)
        self.ingestor = MultipartIngestor(upload_dir=upload_dir, chunk_size=chunk_size)
        
        self.server: Optional[asyncio.AbstractServer] = None
        self.state = HandlerState.AWAIT_CONNECTION
        self.result = ExchangeResult()
        
        self._lock = asyncio.Lock()
        self._done = asyncio.Event()
        self._error: Optional[BaseException] = None
    
    @property
    def receive_mode(self) -> bool:
        return self.artifact is None
    
    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the port is real even when 0 was requested."""
        if not self.server or not self.server.sockets:
            return self.host, self.port
        sockname = self.server.sockets[0].getsockname()
        return sockname[0], sockname[1]
    
    async def start(self):
        """Bind the listening socket."""
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port
        )
        host, port = self.address
        logger.debug(f"Listening on {host}:{port}")
    
    async def stop(self):
        """Close the listening socket."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
    
    async def wait(self) -> ExchangeResult:
        """
        Block until DONE, then stop listening.
        
        Raises:
            Whatever aborted the exchange (ProtocolFramingError, OSError, ...)
        """
        try:
            await self._done.wait()
        finally:
            await self.stop()
        if self._error is not None:
            raise self._error
        return self.result
    
    async def run(self, ready: Optional[ReadyCallback] = None) -> ExchangeResult:
        """Start, report the address, and wait for the exchange."""
        await self.start()
        if ready:
            ready(*self.address)
        return await self.wait()
    
    # === Connection handling ===
    
    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Handle an incoming connection."""
        peer = writer.get_extra_info('peername')
        
        async with self._lock:
            if self.state is HandlerState.DONE:
                logger.debug(f"Refusing connection from {peer}: exchange already done")
                await self._close(writer)
                return
            
            logger.debug(f"New connection from {peer}")
            self.state = HandlerState.AWAIT_REQUEST_LINE
            
            try:
                finished = await self._exchange(reader, writer)
            except Exception as e:
                logger.error(f"Exchange with {peer} aborted: {e}")
                writer.transport.abort()
                self._finish(error=e)
                return
            
            if finished:
                self.result.peer = peer
            else:
                self.state = HandlerState.AWAIT_CONNECTION
            await self._close(writer)
            if finished:
                self._finish()
    
    async def _exchange(self, reader: asyncio.StreamReader,
                        writer: asyncio.StreamWriter) -> bool:
        """Run one request; True when the handler should move to DONE."""
        kind = await read_request_line(reader)
        
        if not self.receive_mode:
            if kind is RequestKind.GET:
                await self._serve(writer)
            else:
                logger.warning("Unexpected request, nothing was sent")
            return True
        
        if kind is RequestKind.GET:
            await self._send_page(writer, ResponseHeaders.html(),
                                  templates.UPLOAD_FORM.encode('utf-8'))
            logger.info("Upload form served, waiting for upload...")
            return False
        if kind is RequestKind.POST:
            await self._receive(reader, writer)
            return True
        return False
    
    async def _serve(self, writer: asyncio.StreamWriter):
        self.state = HandlerState.SERVING
        self.result.request = RequestKind.GET
        self.result.artifact_name = self.artifact.name
        
        writer.write(ResponseHeaders.attachment(self.artifact.name).to_bytes())
        await writer.drain()
        
        sent = await self.copier.copy_file_to_stream(self.artifact.path, writer)
        self.result.bytes_sent = sent
        logger.info(f"Sent {self.artifact.name} ({sent:,} bytes)")
    
    async def _receive(self, reader: asyncio.StreamReader,
                       writer: asyncio.StreamWriter):
        self.state = HandlerState.RECEIVING
        self.result.request = RequestKind.POST
        
        headers = await RequestHeaders.from_reader(reader)
        try:
            filename, count = await self.ingestor.ingest(
                reader, headers.content_length, headers.boundary
            )
        except FileConflictError as e:
            self.result.filename = e.filename
            self.result.conflict = True
            await self._send_page(writer, ResponseHeaders.bare(STATUS_CONFLICT),
                                  templates.render(templates.CONFLICT, e.filename))
            return
        
        self.result.filename = filename
        self.result.bytes_received = count
        if not filename:
            await self._send_page(writer, ResponseHeaders.bare(), b'')
            return
        await self._send_page(writer, ResponseHeaders.bare(),
                              templates.render(templates.RECEIPT, filename, count))
    
    async def _send_page(self, writer: asyncio.StreamWriter,
                         headers: ResponseHeaders, body: bytes):
        writer.write(headers.to_bytes() + body)
        await writer.drain()
    
    async def _close(self, writer: asyncio.StreamWriter):
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError as e:
            logger.debug(f"Peer went away while closing: {e}")
    
    def _finish(self, error: Optional[BaseException] = None):
        self.state = HandlerState.DONE
        self._error = error
        self._done.set()

"""
Wire Protocol

Design Decision: HTTP Subset
============================

Options Considered:
1. Full HTTP server (http.server, aiohttp)
   - Complete, but parses far more than one exchange needs
   
2. Raw TCP with custom framing
   - Requires a custom client; browsers cannot use it
   
3. Hand-framed HTTP/1.1 subset over asyncio streams
   - Any browser or curl is a valid peer
   - Every byte read and written is accounted for

Decision: Hand-framed HTTP/1.1 subset
- Exactly two request lines are recognised: `GET / HTTP/1.1` and `POST / HTTP/1.1`
- GET requests are not parsed beyond the request line
- POST requests are parsed only for Content-Length and Content-Type

Response Format:
```
HTTP/1.1 200 OK\r\n
Content-Type: application/octet-stream\r\n
Content-Disposition: attachment; filename="<name>"\r\n
\r\n
<raw artifact bytes>
```
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..errors import ProtocolFramingError

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
GET_LINE = "GET / HTTP/1.1"
POST_LINE = "POST / HTTP/1.1"

STATUS_OK = "HTTP/1.1 200 OK"
STATUS_CONFLICT = "HTTP/1.1 409 Conflict"


class RequestKind(Enum):
    """Classification of an inbound request line."""
    GET = "GET"
    POST = "POST"
    OTHER = "OTHER"


def classify_request_line(line: str) -> RequestKind:
    """Match a request line (without its line ending) against the root endpoint."""
    if line == GET_LINE:
        return RequestKind.GET
    if line == POST_LINE:
        return RequestKind.POST
    return RequestKind.OTHER


async def read_line(reader: asyncio.StreamReader) -> bytes:
    """
    Read one raw line including its terminator.
    
    Returns b'' when the peer closed the connection first.
    """
    try:
        return await reader.readuntil(b"\n")
    except asyncio.IncompleteReadError as e:
        return e.partial
    except asyncio.LimitOverrunError as e:
        raise ProtocolFramingError(f"Line too long ({e.consumed} bytes)")


def strip_line(raw: bytes) -> str:
    """Decode a raw line and drop its CRLF/LF ending."""
    return raw.rstrip(b"\r\n").decode('latin-1')


async def read_request_line(reader: asyncio.StreamReader) -> RequestKind:
    raw = await read_line(reader)
    line = strip_line(raw)
    kind = classify_request_line(line)
    if kind is RequestKind.OTHER:
        logger.debug(f"Rejected request line: {line!r}")
    return kind


@dataclass
class RequestHeaders:
    """The header block following a POST request line."""
    fields: Dict[str, str] = field(default_factory=dict)
    
    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.fields.get(name.lower(), default)
    
    @property
    def content_length(self) -> int:
        value = self.get('content-length')
        if value is None:
            raise ProtocolFramingError("Missing Content-Length header")
        try:
            length = int(value.strip())
        except ValueError:
            raise ProtocolFramingError(f"Invalid Content-Length: {value!r}")
        if length < 0:
            raise ProtocolFramingError(f"Negative Content-Length: {length}")
        return length
    
    @property
    def boundary(self) -> Optional[str]:
        """Boundary token: the text after the last '=' of a multipart Content-Type."""
        content_type = self.get('content-type')
        if not content_type or not content_type.lower().startswith('multipart/form-data'):
            return None
        if '=' not in content_type:
            return None
        token = content_type.rsplit('=', 1)[1].strip().strip('"')
        return token or None
    
    @classmethod
    async def from_reader(cls, reader: asyncio.StreamReader) -> 'RequestHeaders':
        """Read header lines until the blank line that ends the block."""
        headers = cls()
        while True:
            raw = await read_line(reader)
            if not raw:
                raise ProtocolFramingError("Connection closed inside request headers")
            line = strip_line(raw)
            if not line:
                return headers
            name, sep, value = line.partition(':')
            if not sep:
                raise ProtocolFramingError(f"Malformed header line: {line!r}")
            headers.fields[name.strip().lower()] = value.strip()


@dataclass
class ResponseHeaders:
    """Status line plus header lines, terminated by an empty line."""
    status: str = STATUS_OK
    lines: List[str] = field(default_factory=list)
    
    def to_bytes(self) -> bytes:
        head = [self.status, *self.lines]
        return CRLF.join(line.encode('latin-1') for line in head) + CRLF + CRLF
    
    @classmethod
    def attachment(cls, filename: str) -> 'ResponseHeaders':
        """Headers for streaming a file download."""
        # Content-Disposition is latin-1 framed; replace anything that does not fit
        safe = filename.replace('"', "'").encode('latin-1', 'replace').decode('latin-1')
        return cls(lines=[
            "Content-Type: application/octet-stream",
            f'Content-Disposition: attachment; filename="{safe}"',
        ])
    
    @classmethod
    def html(cls, status: str = STATUS_OK) -> 'ResponseHeaders':
        return cls(status=status, lines=["Content-Type: text/html; charset=utf-8"])
    
    @classmethod
    def bare(cls, status: str = STATUS_OK) -> 'ResponseHeaders':
        """Status line and the terminating empty line, nothing else."""
        return cls(status=status)

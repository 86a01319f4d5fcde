import asyncio
from typing import Tuple


def multipart_body(boundary: str, filename: str, payload: bytes,
                   content_type: str = 'application/octet-stream') -> Tuple[bytes, int]:
    """Single-part form body as a browser sends it, plus its header byte count."""
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="upload-file"; filename="{filename}"\r\n'
        f"Content-Type: {content_type}\r\n"
        "\r\n"
    ).encode('latin-1')
    tail = f"\r\n--{boundary}--\r\n".encode('latin-1')
    return head + payload + tail, len(head)


def post_request(boundary: str, body: bytes, content_length: int = None) -> bytes:
    if content_length is None:
        content_length = len(body)
    return (
        "POST / HTTP/1.1\r\n"
        "Host: localhost\r\n"
        f"Content-Type: multipart/form-data; boundary={boundary}\r\n"
        f"Content-Length: {content_length}\r\n"
        "\r\n"
    ).encode('latin-1') + body


async def exchange(port: int, data: bytes, half_close: bool = False) -> bytes:
    """Send raw bytes to the handler and read until it closes the connection."""
    reader, writer = await asyncio.open_connection('127.0.0.1', port)
    try:
        writer.write(data)
        await writer.drain()
        if half_close:
            writer.write_eof()
        return await reader.read()
    except ConnectionError:
        return b''
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError:
            pass


def split_response(response: bytes) -> Tuple[bytes, bytes]:
    head, _, body = response.partition(b"\r\n\r\n")
    return head, body

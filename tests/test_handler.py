import asyncio

import pytest

from helpers import exchange, multipart_body, post_request, split_response

from dropshare.archive import ArtifactRef
from dropshare.errors import ProtocolFramingError
from dropshare.transfer import HandlerState, RequestHandler, RequestKind


async def started(**kwargs) -> RequestHandler:
    handler = RequestHandler('127.0.0.1', 0, **kwargs)
    await handler.start()
    return handler


@pytest.mark.asyncio
async def test_get_serves_single_file(tmp_path):
    report = tmp_path / 'report.txt'
    report.write_bytes(b'hello world!')
    handler = await started(artifact=ArtifactRef(path=report), chunk_size=5)

    response = await exchange(handler.address[1], b'GET / HTTP/1.1\r\nHost: x\r\n\r\n')
    result = await handler.wait()

    head, body = split_response(response)
    assert head == (
        b'HTTP/1.1 200 OK\r\n'
        b'Content-Type: application/octet-stream\r\n'
        b'Content-Disposition: attachment; filename="report.txt"'
    )
    assert body == b'hello world!'
    assert result.completed
    assert result.bytes_sent == 12
    assert result.artifact_name == 'report.txt'
    assert handler.state is HandlerState.DONE
    assert report.exists()


@pytest.mark.asyncio
async def test_send_mode_stops_after_unexpected_request(tmp_path):
    report = tmp_path / 'report.txt'
    report.write_bytes(b'hello world!')
    handler = await started(artifact=ArtifactRef(path=report))

    response = await exchange(handler.address[1], b'GET /favicon.ico HTTP/1.1\r\n\r\n')
    result = await handler.wait()

    assert response == b''
    assert result.request is RequestKind.OTHER
    assert not result.completed
    assert handler.server is None


@pytest.mark.asyncio
async def test_receive_mode_upload(tmp_path):
    payload = bytes(range(100))
    body, _ = multipart_body('X', 'photo.png', payload, 'image/png')
    handler = await started(upload_dir=tmp_path)

    response = await exchange(handler.address[1], post_request('X', body))
    result = await handler.wait()

    head, page = split_response(response)
    assert head == b'HTTP/1.1 200 OK'
    assert b'photo.png' in page
    assert b'100' in page
    assert (tmp_path / 'photo.png').read_bytes() == payload
    assert result.filename == 'photo.png'
    assert result.bytes_received == 100


@pytest.mark.asyncio
async def test_receive_mode_keeps_waiting_after_form_and_rejects(tmp_path):
    handler = await started(upload_dir=tmp_path)
    port = handler.address[1]

    form = await exchange(port, b'GET / HTTP/1.1\r\n\r\n')
    rejected = await exchange(port, b'DELETE / HTTP/1.1\r\n\r\n')
    assert handler.state is HandlerState.AWAIT_CONNECTION

    body, _ = multipart_body('----WebKitFormBoundaryQ', 'notes.txt', b'notes')
    response = await exchange(port, post_request('----WebKitFormBoundaryQ', body))
    result = await handler.wait()

    assert form.startswith(b'HTTP/1.1 200 OK\r\nContent-Type: text/html')
    assert b'enctype="multipart/form-data"' in form
    assert rejected == b''
    assert response.startswith(b'HTTP/1.1 200 OK\r\n\r\n')
    assert result.filename == 'notes.txt'
    assert (tmp_path / 'notes.txt').read_bytes() == b'notes'


@pytest.mark.asyncio
async def test_receive_conflict_keeps_existing_file(tmp_path):
    existing = tmp_path / 'photo.png'
    existing.write_bytes(b'original')
    body, _ = multipart_body('X', 'photo.png', b'new content')
    handler = await started(upload_dir=tmp_path)

    response = await exchange(handler.address[1], post_request('X', body))
    result = await handler.wait()

    head, page = split_response(response)
    assert head == b'HTTP/1.1 409 Conflict'
    assert b'photo.png' in page
    assert result.conflict
    assert result.completed
    assert existing.read_bytes() == b'original'


@pytest.mark.asyncio
async def test_receive_zero_length_post(tmp_path):
    handler = await started(upload_dir=tmp_path)

    response = await exchange(
        handler.address[1], b'POST / HTTP/1.1\r\nContent-Length: 0\r\n\r\n'
    )
    result = await handler.wait()

    assert response == b'HTTP/1.1 200 OK\r\n\r\n'
    assert result.bytes_received == 0
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_receive_truncated_body_aborts(tmp_path):
    body, _ = multipart_body('X', 'photo.png', b'p' * 1000)
    request = post_request('X', body[:200], content_length=len(body))
    handler = await started(upload_dir=tmp_path)

    response = await exchange(handler.address[1], request, half_close=True)

    with pytest.raises(ProtocolFramingError):
        await handler.wait()
    assert response == b''
    assert not (tmp_path / 'photo.png').exists()
    assert handler.state is HandlerState.DONE


@pytest.mark.asyncio
async def test_connections_are_handled_one_at_a_time(tmp_path):
    report = tmp_path / 'report.txt'
    report.write_bytes(b'x' * 10000)
    handler = await started(artifact=ArtifactRef(path=report))
    port = handler.address[1]

    first, second = await asyncio.gather(
        exchange(port, b'GET / HTTP/1.1\r\n\r\n'),
        exchange(port, b'GET / HTTP/1.1\r\n\r\n'),
    )
    result = await handler.wait()

    bodies = sorted([split_response(first)[1], split_response(second)[1]])
    assert bodies == [b'', b'x' * 10000]
    assert result.bytes_sent == 10000

import io

import pytest

from dropshare.archive.copier import StreamCopier, copy

CHUNK = 16


@pytest.mark.parametrize('size', [0, 1, CHUNK, CHUNK + 1, CHUNK * 5 + 3])
def test_copy_reproduces_bytes(size):
    data = bytes(i % 251 for i in range(size))
    sink = io.BytesIO()

    total = copy(io.BytesIO(data), sink, chunk_size=CHUNK)

    assert total == size
    assert sink.getvalue() == data


class RecordingSource(io.BytesIO):
    def __init__(self, data):
        super().__init__(data)
        self.requested = []

    def read(self, size=-1):
        self.requested.append(size)
        return super().read(size)


def test_copy_reads_fixed_chunks():
    source = RecordingSource(b'x' * (CHUNK * 2))
    StreamCopier(CHUNK).copy(source, io.BytesIO())

    assert source.requested == [CHUNK, CHUNK, CHUNK]


class FailingSink(io.BytesIO):
    def write(self, data):
        raise OSError("disk full")


def test_copy_propagates_write_failure():
    with pytest.raises(OSError, match="disk full"):
        copy(io.BytesIO(b'abc'), FailingSink(), chunk_size=CHUNK)


def test_chunk_size_must_be_positive():
    with pytest.raises(ValueError):
        StreamCopier(0)


class FakeWriter:
    def __init__(self):
        self.buffer = bytearray()
        self.drains = 0

    def write(self, data):
        self.buffer.extend(data)

    async def drain(self):
        self.drains += 1


@pytest.mark.asyncio
async def test_copy_file_to_stream(tmp_path):
    data = bytes(range(256)) * 3
    path = tmp_path / 'blob.bin'
    path.write_bytes(data)
    writer = FakeWriter()

    total = await StreamCopier(100).copy_file_to_stream(path, writer)

    assert total == len(data)
    assert bytes(writer.buffer) == data
    assert writer.drains == 8


@pytest.mark.asyncio
async def test_copy_empty_file_to_stream(tmp_path):
    path = tmp_path / 'empty'
    path.write_bytes(b'')
    writer = FakeWriter()

    assert await StreamCopier().copy_file_to_stream(path, writer) == 0
    assert writer.buffer == b''

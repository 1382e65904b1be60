from __future__ import annotations

from email.message import Message
from email.parser import HeaderParser
from email.utils import collapse_rfc2231_value
from typing import BinaryIO, Iterator, Optional, Tuple

from .errors import BadRequest

CHUNK_SIZE = 64 * 1024
MAX_HEADER_SIZE = 16 * 1024


def parse_content_type(value: Optional[str]) -> Tuple[str, Optional[str]]:
    """Return (mime type, boundary) from a Content-Type header value."""
    msg = Message()
    if value:
        msg["Content-Type"] = value
    boundary = msg.get_param("boundary")
    if boundary is not None:
        boundary = collapse_rfc2231_value(boundary)
    return msg.get_content_type(), boundary


class MultipartPart:
    """One body part; its data must be consumed before the next part is read."""

    def __init__(self, reader: "MultipartReader", headers: Message) -> None:
        self._reader = reader
        self.headers = headers
        self.done = False

    def _disposition_param(self, key: str) -> Optional[str]:
        value = self.headers.get_param(key, header="content-disposition")
        if value is None:
            return None
        return collapse_rfc2231_value(value)

    @property
    def name(self) -> Optional[str]:
        return self._disposition_param("name")

    @property
    def filename(self) -> Optional[str]:
        return self._disposition_param("filename")

    @property
    def content_type(self) -> str:
        return self.headers.get_content_type()

    def iter_chunks(self) -> Iterator[bytes]:
        while True:
            chunk = self._reader._read_body_chunk(self)
            if chunk is None:
                return
            if chunk:
                yield chunk

    def read(self) -> bytes:
        return b"".join(self.iter_chunks())

    def drain(self) -> None:
        for _ in self.iter_chunks():
            pass


class MultipartReader:
    """
    Incremental multipart/form-data reader.

    Reads at most `length` bytes from `stream` in chunks of `chunk_size`, so part
    payloads are never held in memory as a whole. Parts are returned in order by
    next_part() / parts(); a part left partly unread is skipped automatically.
    """

    def __init__(
        self,
        stream: BinaryIO,
        boundary: str | bytes,
        length: int,
        chunk_size: int = CHUNK_SIZE,
        max_header_size: int = MAX_HEADER_SIZE,
    ) -> None:
        if isinstance(boundary, str):
            boundary = boundary.encode("latin-1")
        if not boundary or len(boundary) > 200:
            raise BadRequest("invalid multipart boundary")
        self._stream = stream
        self._remaining = length
        self._chunk_size = chunk_size
        self._max_header_size = max_header_size
        self._delim = b"--" + boundary
        self._body_delim = b"\r\n" + self._delim
        self._buf = b""
        self._started = False
        self._finished = False
        self._current: Optional[MultipartPart] = None

    def _fill(self) -> bool:
        if self._remaining <= 0:
            return False
        data = self._stream.read(min(self._chunk_size, self._remaining))
        if not data:
            raise BadRequest("request body ended early")
        self._remaining -= len(data)
        self._buf += data
        return True

    def _skip_preamble(self) -> None:
        keep = len(self._delim) - 1
        while True:
            pos = self._buf.find(self._delim)
            if pos != -1:
                self._buf = self._buf[pos + len(self._delim):]
                return
            if len(self._buf) > keep:
                self._buf = self._buf[-keep:]
            if not self._fill():
                raise BadRequest("multipart boundary not found")

    def _at_close_delimiter(self) -> bool:
        while len(self._buf) < 2:
            if not self._fill():
                raise BadRequest("multipart body truncated")
        if self._buf.startswith(b"--"):
            self._buf = b""
            return True
        # rest of the delimiter line is transport padding
        while True:
            idx = self._buf.find(b"\r\n")
            if idx != -1:
                self._buf = self._buf[idx + 2:]
                return False
            if len(self._buf) > self._max_header_size:
                raise BadRequest("malformed multipart delimiter line")
            if not self._fill():
                raise BadRequest("multipart body truncated")

    def _read_headers(self) -> Message:
        while True:
            if self._buf.startswith(b"\r\n"):
                raw, self._buf = b"", self._buf[2:]
                break
            idx = self._buf.find(b"\r\n\r\n")
            if idx != -1:
                raw, self._buf = self._buf[:idx], self._buf[idx + 4:]
                break
            if len(self._buf) > self._max_header_size:
                raise BadRequest("multipart part headers too large")
            if not self._fill():
                raise BadRequest("multipart body truncated")
        if len(raw) > self._max_header_size:
            raise BadRequest("multipart part headers too large")
        # browsers send raw UTF-8 file names; keep undecodable bytes as surrogates
        return HeaderParser().parsestr(raw.decode("utf-8", errors="surrogateescape"))

    def _read_body_chunk(self, part: MultipartPart) -> Optional[bytes]:
        if part.done:
            return None
        keep = len(self._body_delim) - 1
        while True:
            idx = self._buf.find(self._body_delim)
            if idx != -1:
                data, self._buf = self._buf[:idx], self._buf[idx + len(self._body_delim):]
                part.done = True
                return data
            if len(self._buf) > keep:
                data, self._buf = self._buf[:-keep], self._buf[-keep:]
                return data
            if not self._fill():
                raise BadRequest("multipart body ended before the closing boundary")

    def next_part(self) -> Optional[MultipartPart]:
        if self._finished:
            return None
        if self._current is not None:
            self._current.drain()
            self._current = None
        elif not self._started:
            self._skip_preamble()
            self._started = True
        if self._at_close_delimiter():
            self._finished = True
            return None
        self._current = MultipartPart(self, self._read_headers())
        return self._current

    def parts(self) -> Iterator[MultipartPart]:
        while True:
            part = self.next_part()
            if part is None:
                return
            yield part

    def drain(self) -> None:
        """Consume everything left of the body, including the epilogue."""
        while self.next_part() is not None:
            pass
        self._buf = b""
        while self._remaining > 0:
            data = self._stream.read(min(self._chunk_size, self._remaining))
            if not data:
                break
            self._remaining -= len(data)

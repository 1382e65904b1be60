from __future__ import annotations

import logging
import mimetypes
import os
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from .errors import FsError, NotFound

LOG = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
TEXT_FALLBACK = "text/plain; charset=utf-8"
BINARY_FALLBACK = "application/octet-stream"

# compressed files are typed by the outer encoding, not the inner extension
COMPRESSED_TYPES = {
    ".gz": "application/gzip",
    ".Z": "application/octet-stream",
    ".bz2": "application/x-bzip2",
    ".xz": "application/x-xz",
}


def guess_content_type(name: str) -> str:
    """
    Content type from the file extension.

    An unknown extension is served as UTF-8 text; a name without any extension
    as an octet stream.
    """
    _, ext = os.path.splitext(name)
    if not ext:
        return BINARY_FALLBACK
    if ext in COMPRESSED_TYPES:
        return COMPRESSED_TYPES[ext]
    ctype, _ = mimetypes.guess_type(name, strict=False)
    return ctype or TEXT_FALLBACK


def stream_file(
    path: str | Path,
    send_headers: Callable[[str, int], None],
    wfile: BinaryIO,
    logger: Optional[logging.Logger] = None,
) -> int:
    """
    Send a regular file: headers first (via send_headers(content_type, length)),
    then the full content.

    Returns the number of bytes written. Failures before the headers are raised;
    a failure while copying is logged and leaves the body truncated.
    """
    log = logger or LOG
    path = Path(path)
    try:
        f = open(path, "rb")
    except FileNotFoundError as exc:
        raise NotFound(f"{path.name} not found") from exc
    except OSError as exc:
        raise FsError(f"cannot open {path.name}: {exc.strerror or exc}") from exc
    with f:
        try:
            size = os.fstat(f.fileno()).st_size
        except OSError as exc:
            raise FsError(f"cannot stat {path.name}: {exc.strerror or exc}") from exc
        send_headers(guess_content_type(path.name), size)
        sent = 0
        try:
            while sent < size:
                chunk = f.read(min(CHUNK_SIZE, size - sent))
                if not chunk:
                    break
                wfile.write(chunk)
                sent += len(chunk)
        except OSError as exc:
            log.warning("transfer of %s stopped after %d of %d bytes: %s", path.name, sent, size, exc)
        else:
            if sent < size:
                # file shrank after fstat
                log.warning("short transfer of %s: %d of %d bytes", path.name, sent, size)
        return sent

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Mapping, Optional

from .config import ServerConfig
from .errors import AlreadyExists, BadRequest, FsError, RequestTooLarge
from .multipart import MultipartReader, parse_content_type

LOG = logging.getLogger(__name__)

UPLOAD_FIELD = "upload"


@dataclass
class UploadRequest:
    target_directory: Path
    file_name: str
    content: Iterable[bytes]

    @property
    def destination(self) -> Path:
        # plain concatenation: an absolute file_name still lands under target_directory
        return Path(f"{self.target_directory}/{self.file_name}")


def _check_confined(root: Path, destination: Path, file_name: str) -> None:
    normalized = os.path.normpath(destination)
    if os.path.commonpath([str(root), normalized]) != str(root) or normalized == str(root):
        raise BadRequest(f"refusing upload name {file_name!r}")


def save_upload(request: UploadRequest, root: Optional[Path] = None) -> Path:
    """
    Write the uploaded content to target_directory/file_name.

    The file is created exclusively: an existing destination raises AlreadyExists
    and is left untouched. If root is given the destination must stay inside it.
    A write failure removes the partial file and raises FsError.
    """
    if not request.file_name:
        raise BadRequest(f"no file given in form field {UPLOAD_FIELD!r}")
    dest = request.destination
    if root is not None:
        _check_confined(Path(root), dest, request.file_name)
    try:
        fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
    except FileExistsError as exc:
        raise AlreadyExists(f"{request.file_name} already exists") from exc
    except OSError as exc:
        raise FsError(f"cannot create {request.file_name}: {exc.strerror or exc}") from exc
    try:
        with os.fdopen(fd, "wb") as dst:
            for chunk in request.content:
                dst.write(chunk)
    except Exception as exc:
        try:
            os.unlink(dest)
        except OSError:
            LOG.warning("could not remove partial upload %s", dest)
        if isinstance(exc, OSError):
            raise FsError(f"cannot write {request.file_name}: {exc.strerror or exc}") from exc
        raise
    return dest


def receive_upload(
    rfile: BinaryIO,
    headers: Mapping[str, str],
    target_dir: Path,
    config: ServerConfig,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Read a multipart/form-data request body and store its "upload" file in target_dir.

    The whole body is consumed on success so the connection can be reused.
    """
    log = logger or LOG
    ctype, boundary = parse_content_type(headers.get("Content-Type"))
    if ctype != "multipart/form-data":
        raise BadRequest(f"expected multipart/form-data, got {ctype}")
    if not boundary:
        raise BadRequest("multipart/form-data without boundary")
    raw_length = headers.get("Content-Length")
    if raw_length is None:
        raise BadRequest("Content-Length required")
    try:
        length = int(raw_length)
    except ValueError:
        raise BadRequest(f"invalid Content-Length {raw_length!r}") from None
    if length < 0:
        raise BadRequest(f"invalid Content-Length {raw_length!r}")
    if length > config.max_form_size:
        raise RequestTooLarge(f"request body of {length} bytes exceeds limit of {config.max_form_size}")

    reader = MultipartReader(rfile, boundary, length)
    for part in reader.parts():
        if part.name != UPLOAD_FIELD or part.filename is None:
            log.debug("skipping form field %r", part.name)
            continue
        request = UploadRequest(target_directory=target_dir, file_name=part.filename, content=part.iter_chunks())
        dest = save_upload(request, root=config.root_dir if config.confine_to_root else None)
        reader.drain()
        return dest
    raise BadRequest(f"no file given in form field {UPLOAD_FIELD!r}")

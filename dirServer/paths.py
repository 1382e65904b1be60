from __future__ import annotations

import enum
import os
import re
import stat
from pathlib import Path
from typing import Tuple
from urllib.parse import unquote

from .errors import BadRequest, FsError, NotFound

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class PathKind(enum.Enum):
    NOT_FOUND = "not-found"
    DIRECTORY = "directory"
    REGULAR_FILE = "file"
    # devices, fifos, sockets; answered like NOT_FOUND
    OTHER = "other"


def decode_request_path(raw: str) -> str:
    """
    Turn a raw request target into the decoded path used for resolution.

    The query string is dropped, percent escapes are decoded and trailing slashes
    are stripped so that "/dir/" and "/dir" resolve identically. The root is "".
    """
    path = raw.split("?", 1)[0].split("#", 1)[0]
    if _BAD_ESCAPE.search(path):
        raise BadRequest(f"invalid URL escape in {path!r}")
    # undecodable bytes survive as surrogates so os functions see the raw name
    return unquote(path, errors="surrogateescape").rstrip("/")


def resolve(root: str | Path, request_path: str, confine: bool = True) -> Path:
    """
    Join a decoded request path onto the served root.

    With confine=False the path is joined verbatim and ".." segments are honoured.
    With confine=True a path that lexically leaves the root is reported as NotFound.
    """
    root = Path(root)
    if not confine:
        return root / ("." + request_path)
    candidate = Path(os.path.normpath(os.path.join(root, "." + request_path)))
    if os.path.commonpath([str(root), str(candidate)]) != str(root):
        raise NotFound(f"{request_path} not found")
    return candidate


def classify(path: Path, request_path: str = "") -> PathKind:
    shown = request_path or "/"
    try:
        st = os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return PathKind.NOT_FOUND
    except OSError as exc:
        raise FsError(f"{shown}: {exc.strerror or exc}") from exc
    if stat.S_ISDIR(st.st_mode):
        return PathKind.DIRECTORY
    if stat.S_ISREG(st.st_mode):
        return PathKind.REGULAR_FILE
    return PathKind.OTHER


def resolve_and_classify(root: str | Path, request_path: str, confine: bool = True) -> Tuple[Path, PathKind]:
    path = resolve(root, request_path, confine=confine)
    return path, classify(path, request_path)

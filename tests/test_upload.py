from __future__ import annotations

import io
from pathlib import Path

import pytest

from dirServer.config import ServerConfig
from dirServer.errors import AlreadyExists, BadRequest, FsError, RequestTooLarge
from dirServer.upload import UploadRequest, receive_upload, save_upload

BOUNDARY = "xYzUploadBoundary"


def _multipart(filename: str, data: bytes, field: str = "upload") -> bytes:
    return (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
        "Content-Type: application/octet-stream\r\n\r\n"
    ).encode("utf-8") + data + f"\r\n--{BOUNDARY}--\r\n".encode()


def _headers(body: bytes, ctype: str | None = None) -> dict:
    return {
        "Content-Type": ctype or f"multipart/form-data; boundary={BOUNDARY}",
        "Content-Length": str(len(body)),
    }


def test_save_upload_writes_content(tmp_path: Path):
    req = UploadRequest(target_directory=tmp_path, file_name="b.txt", content=[b"h", b"i"])
    dest = save_upload(req, root=tmp_path)
    assert dest == tmp_path / "b.txt"
    assert dest.read_bytes() == b"hi"


def test_save_upload_refuses_overwrite(tmp_path: Path):
    existing = tmp_path / "b.txt"
    existing.write_bytes(b"hi")
    consumed = []

    def _content():
        consumed.append(True)
        yield b"other"

    with pytest.raises(AlreadyExists):
        save_upload(UploadRequest(tmp_path, "b.txt", _content()))
    assert existing.read_bytes() == b"hi"
    assert consumed == []


def test_save_upload_rejects_escape_when_confined(tmp_path: Path):
    root = tmp_path / "root"
    root.mkdir()
    with pytest.raises(BadRequest):
        save_upload(UploadRequest(root, "../evil.txt", [b"x"]), root=root)
    assert not (tmp_path / "evil.txt").exists()


def test_save_upload_unconfined_uses_name_verbatim(tmp_path: Path):
    root = tmp_path / "root"
    root.mkdir()
    dest = save_upload(UploadRequest(root, "../free.txt", [b"x"]))
    assert (tmp_path / "free.txt").read_bytes() == b"x"
    assert dest.name == "free.txt"


def test_save_upload_absolute_name_stays_in_target(tmp_path: Path):
    """A leading slash in the client's name is joined, not treated as absolute."""
    root = tmp_path / "root"
    root.mkdir()
    dest = save_upload(UploadRequest(root, "/abs.txt", [b"hi"]))
    assert dest == root / "abs.txt"
    assert (root / "abs.txt").read_bytes() == b"hi"

    sub = root / "Sub"
    sub.mkdir()
    dest = save_upload(UploadRequest(sub, "/abs.txt", [b"yo"]), root=root)
    assert dest == sub / "abs.txt"
    assert (sub / "abs.txt").read_bytes() == b"yo"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["root"]



def test_save_upload_empty_name(tmp_path: Path):
    with pytest.raises(BadRequest):
        save_upload(UploadRequest(tmp_path, "", [b"x"]))


def test_save_upload_removes_partial_file(tmp_path: Path):
    def _content():
        yield b"partial"
        raise BadRequest("client went away")

    with pytest.raises(BadRequest):
        save_upload(UploadRequest(tmp_path, "half.bin", _content()))
    assert not (tmp_path / "half.bin").exists()


def test_save_upload_write_error_is_fs_error(tmp_path: Path):
    def _content():
        yield b"x"
        raise OSError(28, "No space left on device")

    with pytest.raises(FsError):
        save_upload(UploadRequest(tmp_path, "full.bin", _content()))
    assert not (tmp_path / "full.bin").exists()


def test_save_upload_missing_directory(tmp_path: Path):
    with pytest.raises(FsError):
        save_upload(UploadRequest(tmp_path / "nope", "a.txt", [b"x"]))


def test_receive_upload(tmp_path: Path):
    data = b"\x00\x01binary\r\n--payload\r\n" * 100
    body = _multipart("data.bin", data)
    dest = receive_upload(io.BytesIO(body), _headers(body), tmp_path, ServerConfig(root_dir=tmp_path))
    assert dest.read_bytes() == data


def test_receive_upload_too_large(tmp_path: Path):
    body = _multipart("big.bin", b"x" * 100)
    config = ServerConfig(root_dir=tmp_path, max_form_size=50)
    with pytest.raises(RequestTooLarge):
        receive_upload(io.BytesIO(body), _headers(body), tmp_path, config)
    assert not (tmp_path / "big.bin").exists()


def test_receive_upload_requires_multipart(tmp_path: Path):
    body = b"upload=x"
    with pytest.raises(BadRequest):
        receive_upload(io.BytesIO(body), _headers(body, "application/x-www-form-urlencoded"), tmp_path, ServerConfig(root_dir=tmp_path))


def test_receive_upload_requires_length(tmp_path: Path):
    body = _multipart("a.txt", b"x")
    headers = {"Content-Type": f"multipart/form-data; boundary={BOUNDARY}"}
    with pytest.raises(BadRequest):
        receive_upload(io.BytesIO(body), headers, tmp_path, ServerConfig(root_dir=tmp_path))


def test_receive_upload_without_upload_field(tmp_path: Path):
    body = _multipart("a.txt", b"x", field="other")
    with pytest.raises(BadRequest):
        receive_upload(io.BytesIO(body), _headers(body), tmp_path, ServerConfig(root_dir=tmp_path))
    assert list(tmp_path.iterdir()) == []


def test_receive_upload_no_file_chosen(tmp_path: Path):
    """Browsers send an empty filename when the file input is left blank."""
    body = _multipart("", b"")
    with pytest.raises(BadRequest):
        receive_upload(io.BytesIO(body), _headers(body), tmp_path, ServerConfig(root_dir=tmp_path))


def test_receive_upload_conflict(tmp_path: Path):
    (tmp_path / "b.txt").write_bytes(b"hi")
    body = _multipart("b.txt", b"changed")
    with pytest.raises(AlreadyExists):
        receive_upload(io.BytesIO(body), _headers(body), tmp_path, ServerConfig(root_dir=tmp_path))
    assert (tmp_path / "b.txt").read_bytes() == b"hi"

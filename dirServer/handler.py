from __future__ import annotations

import logging
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from typing import Any, Callable, Optional

from ._version import __version__
from .config import ServerConfig
from .errors import DirServerError, NotFound
from .favicon import FAVICON_PATH, FAVICON_SVG, FAVICON_TYPE
from .listing import render_directory
from .paths import PathKind, decode_request_path, resolve_and_classify
from .streamer import stream_file
from .upload import receive_upload

LOG = logging.getLogger(__name__)

ALLOWED_METHODS = "GET, POST"


class DirRequestHandler(BaseHTTPRequestHandler):
    """
    Maps each request onto the served directory tree.

    GET lists a directory or streams a file, POST stores a multipart upload and
    answers with the refreshed listing, every other method gets 405.
    Component errors are turned into a status code and a plain-text body here.
    """

    server_version = f"dirServer/{__version__}"
    protocol_version = "HTTP/1.1"

    def __init__(self, *args: Any, config: ServerConfig, logger: Optional[logging.Logger] = None, **kwargs: Any) -> None:
        # the base constructor handles the request, so state must exist first
        self.config = config
        self.logger = logger or LOG
        self._headers_sent = False
        self._file_length = 0
        super().__init__(*args, **kwargs)

    def log_message(self, format: str, *args: Any) -> None:
        self.logger.info("%s - - %s", self.client_address[0], format % args)

    def end_headers(self) -> None:
        self._headers_sent = True
        super().end_headers()

    def send_error(self, code: int, message: Optional[str] = None, explain: Optional[str] = None) -> None:
        # verbs without a do_ method are answered with 405 instead of 501
        if code == HTTPStatus.NOT_IMPLEMENTED and self.command:
            self._method_not_allowed()
            return
        super().send_error(code, message, explain)

    def do_GET(self) -> None:
        self._dispatch(self._handle_get)

    def do_POST(self) -> None:
        self._dispatch(self._handle_post, close_on_error=True)

    def _dispatch(self, handler: Callable[[str], None], close_on_error: bool = False) -> None:
        self._headers_sent = False
        try:
            handler(decode_request_path(self.path))
        except DirServerError as err:
            if close_on_error:
                self.close_connection = True
            self._send_error_response(err)
        except Exception:
            self.logger.exception("Unhandled error serving %s %s", self.command, self.path)
            self.close_connection = True
            self._send_error_response(DirServerError("internal server error"))

    def _resolve(self, request_path: str) -> tuple[Path, PathKind]:
        return resolve_and_classify(self.config.root_dir, request_path, confine=self.config.confine_to_root)

    def _handle_get(self, request_path: str) -> None:
        if request_path == FAVICON_PATH:
            self._send_bytes(FAVICON_SVG, FAVICON_TYPE)
            return
        target, kind = self._resolve(request_path)
        if kind is PathKind.DIRECTORY:
            self._send_listing(target, request_path)
        elif kind is PathKind.REGULAR_FILE:
            sent = stream_file(target, self._start_file_response, self.wfile, logger=self.logger)
            if sent != self._file_length:
                # body is shorter than the Content-Length already sent
                self.close_connection = True
        else:
            raise NotFound(f"{request_path or '/'} not found")

    def _handle_post(self, request_path: str) -> None:
        target, kind = self._resolve(request_path)
        if kind is not PathKind.DIRECTORY:
            raise NotFound(f"{request_path or '/'} not found")
        dest = receive_upload(self.rfile, self.headers, target, self.config, logger=self.logger)
        self.logger.info("%s uploaded %s into %s", self.client_address[0], dest.name, request_path or "/")
        self._send_listing(target, request_path)

    def _method_not_allowed(self) -> None:
        # request body, if any, is left unread
        self.close_connection = True
        self.send_response(HTTPStatus.METHOD_NOT_ALLOWED)
        self.send_header("Allow", ALLOWED_METHODS)
        self.send_header("Content-Length", "0")
        self.end_headers()

    do_HEAD = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = do_TRACE = do_CONNECT = _method_not_allowed

    def _start_file_response(self, content_type: str, length: int) -> None:
        self._file_length = length
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(length))
        self.end_headers()

    def _send_listing(self, target: Path, request_path: str) -> None:
        self._send_bytes(render_directory(target, request_path), "text/html; charset=utf-8")

    def _send_bytes(self, body: bytes, content_type: str, status: HTTPStatus = HTTPStatus.OK) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_error_response(self, err: DirServerError) -> None:
        status = HTTPStatus(err.status)
        level = logging.ERROR if status >= 500 else logging.WARNING
        self.logger.log(level, "%s %s -> %d %s", self.command, self.path, status, err)
        if self._headers_sent:
            # response already under way; cut the connection instead
            self.close_connection = True
            return
        self._send_bytes(str(err).encode("utf-8", errors="replace"), "text/plain; charset=utf-8", status=status)


def handler_factory(config: ServerConfig, logger: Optional[logging.Logger] = None) -> Callable[..., DirRequestHandler]:
    return lambda *args, **kwargs: DirRequestHandler(*args, config=config, logger=logger, **kwargs)

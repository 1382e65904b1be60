from __future__ import annotations

import logging
import ssl
import threading
from http.server import ThreadingHTTPServer
from typing import Optional

from .config import ServerConfig
from .handler import handler_factory

LOG = logging.getLogger(__name__)


def build_ssl_context(certfile: str, keyfile: str) -> ssl.SSLContext:
    # server-side context with reasonable defaults, require TLS >= 1.2
    ctx = ssl.create_default_context(purpose=ssl.Purpose.CLIENT_AUTH)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.load_cert_chain(certfile=certfile, keyfile=keyfile)
    return ctx


class HttpFileServer:
    """
    Serves config.root_dir over HTTP, or HTTPS when config.enable_tls is set.

    Requests are handled on one thread each; the accept loop runs on a daemon
    thread between start() and stop().
    """

    def __init__(self, config: ServerConfig, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.logger = logger or LOG
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self.sock_port: Optional[int] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    def start(self) -> None:
        if self._server:
            return
        self.config.validate()
        ctx = None
        if self.config.enable_tls:
            ctx = build_ssl_context(self.config.certfile, self.config.keyfile)  # type: ignore[arg-type]
        server = ThreadingHTTPServer(
            (self.config.host, self.config.effective_port), handler_factory(self.config, self.logger)
        )
        if ctx is not None:
            # wrap the listening socket so accepted connections speak TLS
            server.socket = ctx.wrap_socket(server.socket, server_side=True)
        self._server = server
        self.sock_port = server.server_address[1]
        self.logger.info(
            "%s server serving %s on %s:%d", self.config.scheme.upper(), self.config.root_dir, self.config.host, self.sock_port
        )
        thr = threading.Thread(target=server.serve_forever, daemon=True)
        self._thread = thr
        thr.start()

    def stop(self) -> None:
        if self._server:
            try:
                self._server.shutdown()
            except Exception:
                self.logger.exception("Error shutting down %s server", self.config.scheme.upper())
            try:
                self._server.server_close()
            except Exception:
                self.logger.exception("Error closing %s server", self.config.scheme.upper())
            self._server = None
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
            self._thread = None
        self.sock_port = None

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from . import HttpFileServer, ServerConfig
from ._version import __version__
from .config import MAX_FORM_SIZE

LOG = logging.getLogger("dirServer.cli")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dirserver", description="Browse, download and upload files in a directory over HTTP(S)")
    p.add_argument("--dir", "-d", dest="root_dir", default=".", help="Directory to serve files from")
    p.add_argument("--host", default="0.0.0.0", help="Host/interface to bind")
    p.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default 80, or 443 with --tls; 0 for ephemeral)")
    # HTTPS options
    p.add_argument("--tls", dest="enable_tls", action="store_true", help="Serve HTTPS instead of HTTP")
    p.add_argument("--certfile", type=str, default=None, help="Path to SSL certificate file (PEM)")
    p.add_argument("--keyfile", type=str, default=None, help="Path to SSL private key file (PEM)")
    p.add_argument("--max-form-size", type=int, default=MAX_FORM_SIZE, help="Largest accepted upload request body in bytes")
    p.add_argument(
        "--no-confine",
        dest="confine_to_root",
        action="store_false",
        help="Allow request paths and upload names that resolve outside the served directory",
    )
    p.add_argument("--log-level", default="INFO", help="Logging level")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    root = Path(args.root_dir).resolve()
    if not root.is_dir():
        LOG.error("root directory does not exist: %s", root)
        return 2

    # If TLS requested, ensure cert/key provided
    if args.enable_tls and (not args.certfile or not args.keyfile):
        LOG.error("--tls requires both --certfile and --keyfile")
        return 2

    if args.max_form_size <= 0:
        LOG.error("--max-form-size must be positive")
        return 2

    config = ServerConfig(
        root_dir=root,
        host=args.host,
        port=args.port,
        enable_tls=bool(args.enable_tls),
        certfile=args.certfile,
        keyfile=args.keyfile,
        max_form_size=args.max_form_size,
        confine_to_root=bool(args.confine_to_root),
    )
    if not config.confine_to_root:
        LOG.warning("path confinement disabled; clients may reach files outside %s", root)

    server = HttpFileServer(config, logger=LOG)

    # graceful shutdown handling
    stop_requested = False

    def _on_signal(signum, frame):
        nonlocal stop_requested
        LOG.info("Received signal %s, stopping...", signum)
        stop_requested = True

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        server.start()
        LOG.info("Server started: %s://%s:%s/", config.scheme, config.host, server.sock_port)
        # wait until signal
        while not stop_requested:
            signal.pause()
    except KeyboardInterrupt:
        LOG.info("Keyboard interrupt received, stopping server")
    except Exception:
        LOG.exception("Server failed")
        try:
            server.stop()
        except Exception:
            LOG.exception("Error during stop")
        return 1
    finally:
        server.stop()
        LOG.info("Server stopped")

    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# ceiling for a whole multipart request body
MAX_FORM_SIZE = 10 << 30

HTTP_PORT = 80
HTTPS_PORT = 443


@dataclass(frozen=True)
class ServerConfig:
    """
    Settings for one server instance, built once at startup and shared read-only
    by every request handler.

    port=None picks the scheme default (80, or 443 with TLS); port=0 lets the OS
    assign an ephemeral port.
    """

    root_dir: Path = field(default_factory=lambda: Path(".").resolve())
    host: str = "0.0.0.0"
    port: Optional[int] = None
    enable_tls: bool = False
    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    max_form_size: int = MAX_FORM_SIZE
    confine_to_root: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "root_dir", Path(self.root_dir).resolve())

    @property
    def effective_port(self) -> int:
        if self.port is not None:
            return self.port
        return HTTPS_PORT if self.enable_tls else HTTP_PORT

    @property
    def scheme(self) -> str:
        return "https" if self.enable_tls else "http"

    def validate(self) -> None:
        if not self.root_dir.is_dir():
            raise ValueError(f"root directory does not exist: {self.root_dir}")
        if self.enable_tls and (not self.certfile or not self.keyfile):
            raise ValueError("Both certfile and keyfile are required for HTTPS")
        if self.max_form_size <= 0:
            raise ValueError("max_form_size must be positive")

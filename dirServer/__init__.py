from ._version import __version__
from .config import ServerConfig
from .http_server import HttpFileServer

__all__ = ["__version__", "HttpFileServer", "ServerConfig"]

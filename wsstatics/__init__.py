"""
Wsstatics - embedded static assets, served next to websockets

Compile a directory of static files into a Python module, and serve those
assets over HTTP from the same port that accepts websocket connections.
Assets are gzipped at compile time, and served with an etag so that
clients can validate their cache.
"""

from ._assets import Asset, AssetTable, CompileError
from ._registry import AssetRegistry
from ._http import serve_static_http, looks_like_ws_upgrade, ResponseTooLargeError
from ._websocket import WebsocketConnection, DisconnectedError
from ._server import ConnectionHandler
from ._compiler import compile_directory, compile_to_file, load_compiled
from ._run import run, serve, start_server
from ._logging import logger, set_log_level


__all__ = [
    "Asset",
    "AssetTable",
    "AssetRegistry",
    "CompileError",
    "ResponseTooLargeError",
    "WebsocketConnection",
    "DisconnectedError",
    "ConnectionHandler",
    "serve_static_http",
    "looks_like_ws_upgrade",
    "compile_directory",
    "compile_to_file",
    "load_compiled",
    "run",
    "serve",
    "start_server",
    "logger",
    "set_log_level",
]


__version__ = "0.1.0"

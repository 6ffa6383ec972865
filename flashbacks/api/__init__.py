"""HTTP surface for the display client."""

from flashbacks.api.context import BackendContext, build_context
from flashbacks.api.web_server import WebServer

__all__ = ["BackendContext", "WebServer", "build_context"]

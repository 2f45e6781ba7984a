"""Request boundary: payload models, the operation dispatcher and the stdio transport."""

from .dispatcher import RequestDispatcher
from .requests import IdPayload, ObjectsPayload, StatementPayload, TablePayload
from .stdio import StdioServer, serve_stdio

__all__ = [
    "RequestDispatcher",
    "StdioServer",
    "serve_stdio",
    "IdPayload",
    "ObjectsPayload",
    "StatementPayload",
    "TablePayload",
]

"""A2A protocol client for invoking workers using JSON-RPC 2.0."""

from .protocol import (
    A2ARequest,
    A2AResponse,
    A2AClient,
    A2AException,
    WorkerReply,
    parse_worker_reply,
    PARSE_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
    INTERNAL_ERROR,
)

__all__ = [
    "A2ARequest",
    "A2AResponse",
    "A2AClient",
    "A2AException",
    "WorkerReply",
    "parse_worker_reply",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
]

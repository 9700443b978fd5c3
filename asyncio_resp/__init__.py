"""Redis protocol (RESP) client for asyncio
"""
from .client import Client
from .commands import ZAggregate, ZScoreBoundary
from .connection import Connection, ConnectionState
from .dispatcher import Dispatcher
from .exceptions import (
    CommandError,
    ConnectError,
    ConnectionClosedError,
    Error,
    NotConnectedError,
    ProtocolError,
    ServerRejectedError,
    TimeoutError,
    TransportError,
)
from .protocol import INCOMPLETE, Reader, decode, encode_command
from .replies import (
    BulkReply,
    ErrorReply,
    IntegerReply,
    MultiBulkReply,
    Nil,
    StatusReply,
)

__all__ = (
    "Client",
    "Connection",
    "ConnectionState",
    "Dispatcher",
    "ZAggregate",
    "ZScoreBoundary",
    # Codec
    "INCOMPLETE",
    "Reader",
    "decode",
    "encode_command",
    # Replies
    "BulkReply",
    "ErrorReply",
    "IntegerReply",
    "MultiBulkReply",
    "Nil",
    "StatusReply",
    # Exceptions
    "CommandError",
    "ConnectError",
    "ConnectionClosedError",
    "Error",
    "NotConnectedError",
    "ProtocolError",
    "ServerRejectedError",
    "TimeoutError",
    "TransportError",
)

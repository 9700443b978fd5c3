"""
Turn the outcomes of the lower layers into the exceptions of
:mod:`asyncio_resp.exceptions`.

Three different things can go wrong and they should never be confused:

- The server rejected the command (error reply). The connection is fine.
- The transport failed (reset, closed, timeout). The connection is faulted.
- The server sent something that isn't RESP. The connection is faulted.
"""
import asyncio
import socket

from .exceptions import (
        ConnectError,
        ConnectionClosedError,
        Error,
        ServerRejectedError,
        TimeoutError,
        TransportError,
)
from .replies import ErrorReply

__all__ = (
    'check_reply',
    'classify_connect_error',
    'classify_io_error',
)


def check_reply(reply):
    """
    Raise :class:`ServerRejectedError` for error replies, return any other
    reply unchanged.
    """
    if isinstance(reply, ErrorReply):
        raise ServerRejectedError(reply.kind, reply.message)
    return reply


def classify_io_error(exc):
    """
    Map an exception raised while reading or writing the stream to a
    :class:`TransportError`. Exceptions of our own hierarchy (like
    ``ProtocolError``) are returned as-is.
    """
    if isinstance(exc, Error):
        return exc

    if isinstance(exc, asyncio.TimeoutError):
        return TimeoutError()

    if isinstance(exc, asyncio.IncompleteReadError):
        return ConnectionClosedError('Connection closed by peer')

    if isinstance(exc, (ConnectionResetError, BrokenPipeError, ConnectionAbortedError)):
        return ConnectionClosedError('Connection lost: %s' % exc)

    if isinstance(exc, OSError):
        return TransportError('I/O error: %s' % exc)

    return TransportError('Unexpected error: %r' % exc)


def classify_connect_error(exc, host, port):
    """ Map an exception raised while opening the stream to :class:`ConnectError`. """
    if isinstance(exc, ConnectError):
        return exc

    address = host if not port else '%s:%s' % (host, port)

    if isinstance(exc, asyncio.TimeoutError):
        message = 'Timeout while connecting to %s' % address
    elif isinstance(exc, socket.gaierror):
        message = 'Could not resolve %s: %s' % (host, exc)
    elif isinstance(exc, ConnectionRefusedError):
        message = 'Connection refused by %s' % address
    else:
        message = 'Could not connect to %s: %s' % (address, exc)

    return ConnectError(message, host=host, port=port)

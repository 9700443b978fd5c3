__all__ = (
        'CommandError',
        'ConnectError',
        'ConnectionClosedError',
        'Error',
        'NotConnectedError',
        'ProtocolError',
        'ServerRejectedError',
        'TimeoutError',
        'TransportError',
)


# See following link for the proper way to create user defined exceptions:
# http://docs.python.org/3.3/tutorial/errors.html#user-defined-exceptions


class Error(Exception):
    """ Base exception. """


class ConnectError(Error):
    """
    Opening the connection failed. (Host unreachable, connection refused,
    DNS failure or connect timeout.)
    """
    def __init__(self, message, host=None, port=None):
        super().__init__(message)
        self.host = host
        self.port = port


class CommandError(Error):
    """ Base class for everything that can go wrong while executing a command. """


class ServerRejectedError(CommandError):
    """
    The server processed the request, but answered with an error reply.
    (e.g. WRONGTYPE.) The connection is still usable.
    """
    def __init__(self, kind, message):
        super().__init__(kind, message)
        self.kind = kind
        self.message = message

    def __str__(self):
        if not self.message:
            return self.kind
        return '%s %s' % (self.kind, self.message)


class TransportError(CommandError):
    """
    The stream failed. The connection has been faulted and has to be opened
    again.
    """
    def __init__(self, reason='Transport failure'):
        super().__init__(reason)
        self.reason = reason


class ConnectionClosedError(TransportError):
    """
    Connection closed, either by the peer or by calling ``close()``.
    (Special case of ``TransportError``.)
    """
    def __init__(self, reason='Connection closed'):
        super().__init__(reason)


class TimeoutError(TransportError):
    """ No reply arrived within the read timeout. """
    def __init__(self, reason='Timeout while reading reply'):
        super().__init__(reason)


class NotConnectedError(TransportError):
    """ Connection was never opened. """
    def __init__(self, reason='Not connected'):
        super().__init__(reason)


class ProtocolError(CommandError):
    """
    Received bytes that don't parse as RESP. The stream can't be trusted
    anymore, so this is fatal for the connection.
    """

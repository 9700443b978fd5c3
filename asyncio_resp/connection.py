import asyncio
import enum
import logging

from .classifier import classify_connect_error, classify_io_error
from .exceptions import (
        ConnectError,
        ConnectionClosedError,
        Error,
        NotConnectedError,
)
from .log import logger
from .protocol import Reader

__all__ = (
    'Connection',
    'ConnectionState',
)

#: Number of bytes we try to read from the socket at once.
READ_CHUNK_SIZE = 64 * 1024


class ConnectionState(enum.Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    FAULTED = 'faulted'


class Connection:
    """
    One stream connection to a Redis server. Owns the socket, the read buffer
    and the connection state.

    This object is not safe for concurrent use: at most one coroutine should
    be sending/receiving at a time. Use :class:`~asyncio_resp.dispatcher.Dispatcher`
    to share it.

    ::
        connection = Connection('localhost', 6379, connect_timeout=2)
        await connection.open()
        await connection.send(encode_command([b'PING']))
        reply = await connection.receive_reply()

    :param str host:
        Address, either host or unix domain socket path
    :param int port:
        TCP port. If port is 0 then host assumed to be unix socket path
    :param float connect_timeout:
        Seconds to wait for the connection to be established. ``None`` for
        no timeout.
    :param float read_timeout:
        Seconds to wait for every reply. ``None`` for no timeout. When it
        expires, the connection is faulted.
    """
    def __init__(self, host='localhost', port=6379, *, connect_timeout=None, read_timeout=None):
        assert port >= 0, "Unexpected port value: %r" % (port,)

        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

        self._state = ConnectionState.DISCONNECTED
        self._fault = None
        self._reader = None
        self._writer = None
        self._parser = Reader()

    def __repr__(self):
        return 'Connection(host=%r, port=%r, state=%s)' % (self.host, self.port, self._state.name)

    @property
    def state(self):
        return self._state

    @property
    def fault(self):
        """ The exception that faulted this connection (or ``None``). """
        return self._fault

    @property
    def is_connected(self):
        """ True when the underlying stream is connected. """
        return self._state == ConnectionState.CONNECTED

    async def open(self):
        """
        Set up the stream. Raises :class:`~asyncio_resp.exceptions.ConnectError`
        on failure, in which case the connection becomes faulted.
        """
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            raise Error('Connection is already %s.' % self._state.value)

        self._state = ConnectionState.CONNECTING
        self._fault = None
        self._parser.clear()

        logger.log(logging.INFO, 'Connecting to redis at %r:%r', self.host, self.port)
        try:
            if self.port:
                coro = asyncio.open_connection(self.host, self.port)
            else:
                coro = asyncio.open_unix_connection(self.host)
            reader, writer = await asyncio.wait_for(coro, self.connect_timeout)
        except (OSError, asyncio.TimeoutError) as e:
            exc = classify_connect_error(e, self.host, self.port)
            self._set_fault(exc)
            logger.info('Connecting to redis failed: %s', exc)
            raise exc from e
        except asyncio.CancelledError:
            if self._state == ConnectionState.CONNECTING:
                self._set_fault(ConnectError('Connecting was cancelled', self.host, self.port))
            raise

        if self._state != ConnectionState.CONNECTING:
            # `close` was called while connecting.
            writer.close()
            raise self._fault

        self._reader, self._writer = reader, writer
        self._state = ConnectionState.CONNECTED
        logger.log(logging.INFO, 'Redis connection made')

    def _check_connected(self):
        if self._state != ConnectionState.CONNECTED:
            raise self._fault or NotConnectedError()

    def _set_fault(self, exc):
        """ Move to the faulted state and release the stream. """
        self._state = ConnectionState.FAULTED
        self._fault = exc

        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None
        self._parser.clear()

    def fail(self, exc):
        """
        Fault the connection because of `exc` (anything that went wrong while
        the stream was in use). Returns the exception to raise to the caller.
        """
        if self._state != ConnectionState.CONNECTED:
            # Already faulted (e.g. closed while reading), keep the first reason.
            return self._fault or classify_io_error(exc)

        exc = classify_io_error(exc)
        logger.info('Redis connection lost: %s', exc)
        self._set_fault(exc)
        return exc

    async def send(self, data):
        """
        Write `data` to the stream. Returns when everything has been handed
        to the transport.
        """
        self._check_connected()
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, asyncio.TimeoutError) as e:
            raise self.fail(e) from e

    async def receive_reply(self):
        """
        Read the next reply from the stream. Bytes following the reply stay in
        the buffer for the next call.
        """
        self._check_connected()

        try:
            return await asyncio.wait_for(self._receive_reply(), self.read_timeout)
        except asyncio.CancelledError:
            # Part of the reply may have been consumed. We can't resume
            # reading at a frame boundary anymore.
            self.fail(ConnectionClosedError('Read cancelled'))
            raise
        except Exception as e:
            # Whatever it was, the read position in the stream is lost.
            exc = self.fail(e)
            if exc is e:
                raise
            raise exc from e

    async def _receive_reply(self):
        reader = self._reader
        while True:
            item = self._parser.gets()
            if item is not False:
                return item

            data = await reader.read(READ_CHUNK_SIZE)
            if self._state != ConnectionState.CONNECTED:
                raise self._fault
            if not data:
                logger.log(logging.INFO, 'EOF received from redis')
                raise ConnectionClosedError('Connection closed by peer')

            self._parser.feed(data)

    def close(self):
        """
        Close the stream. Pending and future calls fail with
        :class:`~asyncio_resp.exceptions.ConnectionClosedError`.
        """
        if self._state == ConnectionState.CONNECTED:
            logger.log(logging.INFO, 'Closing redis connection')
            self._set_fault(ConnectionClosedError('Connection closed by client'))
        elif self._state in (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING):
            # When connecting, `open` sees this and drops the new stream.
            self._state = ConnectionState.FAULTED
            self._fault = ConnectionClosedError('Connection closed by client')

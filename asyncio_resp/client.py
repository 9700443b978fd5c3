import logging

from .classifier import check_reply
from .commands import Commands
from .connection import Connection
from .dispatcher import Dispatcher
from .encoders import BaseEncoder, UTF8Encoder
from .log import logger

__all__ = (
    'Client',
)


class Client(Commands):
    """
    A Redis client on top of one connection.

    Any number of coroutines can use the same client; commands are sent one
    at a time and every caller receives its own reply.

    ::
        client = await Client.create(host='localhost', port=6379)
        await client.set('key', 'value')
        reply = await client.execute('GET', b'key')   # BulkReply(data=b'value')

    Nothing is retried automatically. When the connection fails, every
    command raises the reason until :meth:`reopen` is called.
    """
    def __init__(self, connection, *, password=None, db=0, encoder=None, enable_typechecking=True):
        if encoder is None:
            encoder = UTF8Encoder()

        assert isinstance(encoder, BaseEncoder)
        assert encoder.native_type, 'Encoder.native_type not defined'

        self.connection = connection
        self.encoder = encoder
        self.enable_typechecking = enable_typechecking
        self._password = password
        self._db = db
        self._dispatcher = Dispatcher(connection)

    @classmethod
    async def create(
        cls,
        host="localhost",
        port=6379,
        *,
        connect_timeout=None,
        read_timeout=None,
        password=None,
        db=0,
        encoder=None,
        enable_typechecking=True,
    ):
        """
        Open a connection and return a client for it.

        :param str host:
            Address, either host or unix domain socket path
        :param int port:
            TCP port. If port is 0 then host assumed to be unix socket path
        :param float connect_timeout:
            Seconds to wait for the TCP handshake. (``None``: no limit.)
        :param float read_timeout:
            Seconds to wait for each reply. (``None``: no limit.)
        :param password:
            Redis database password (native type of the encoder)
        :param int db:
            Redis database
        :param encoder:
            Encoder to use for encoding to or decoding from redis bytes to a native type
        :type encoder:
            :class:`~asyncio_resp.encoders.BaseEncoder`
        :param bool enable_typechecking:
            Check argument types of the convenience commands.

        :raises: :class:`~asyncio_resp.exceptions.ConnectError`
        """
        assert isinstance(db, int)

        connection = Connection(host, port,
                                connect_timeout=connect_timeout,
                                read_timeout=read_timeout)
        client = cls(connection, password=password, db=db, encoder=encoder,
                     enable_typechecking=enable_typechecking)

        await client.reopen()
        return client

    async def reopen(self):
        """
        Open the connection (again). Only valid when it's not connected: after
        a failure or after :meth:`close`.
        """
        await self.connection.open()

        try:
            # If a password or database was been given, first connect to that one.
            if self._password:
                await self.auth(self._password)

            if self._db:
                await self.select(self._db)
        except Exception:
            self.connection.close()
            raise

    @property
    def is_connected(self):
        """ True when the underlying stream is connected. """
        return self.connection.is_connected

    @property
    def pending_count(self):
        """ Number of commands that are waiting for a reply. """
        return self._dispatcher.pending_count

    async def execute(self, name, *args):
        """
        Send one command and return the reply. Arguments are byte strings;
        `name` can be given as ``str`` or ``bytes``.

        :returns: A :class:`~asyncio_resp.replies.Reply`. (Never an
            ``ErrorReply``, those are raised.)
        :raises: :class:`~asyncio_resp.exceptions.ServerRejectedError`,
            :class:`~asyncio_resp.exceptions.TransportError` or
            :class:`~asyncio_resp.exceptions.ProtocolError`
        """
        if isinstance(name, str):
            name = name.encode('ascii')

        reply = await self._dispatcher.execute((name, ) + args)
        return check_reply(reply)

    def close(self):
        """
        Close the connection. Queued commands fail with
        :class:`~asyncio_resp.exceptions.ConnectionClosedError`.
        """
        logger.log(logging.INFO, 'Closing %r', self)
        self.connection.close()

    def __repr__(self):
        return 'Client(host=%r, port=%r)' % (self.connection.host, self.connection.port)

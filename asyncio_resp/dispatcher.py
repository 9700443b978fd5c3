import asyncio
from collections import deque

from .exceptions import ConnectionClosedError, Error, NotConnectedError
from .log import logger
from .protocol import encode_command

__all__ = (
    'Dispatcher',
    'PendingRequest',
)


class PendingRequest:
    """ Track record for a command that has been queued, but not answered yet. """
    __slots__ = ('name', 'data', 'future')

    def __init__(self, name, data, future):
        self.name = name
        self.data = data
        self.future = future

    def __repr__(self):
        return 'PendingRequest(name=%r, done=%r)' % (self.name, self.future.done())


class Dispatcher:
    """
    Serializes commands from any number of coroutines on one
    :class:`~asyncio_resp.connection.Connection`.

    Redis answers the requests on a connection in order, and replies don't
    carry any request identifier. So, we keep a FIFO queue and make sure that
    only one request is on the wire at any time.

    ::

        dispatcher = Dispatcher(connection)
        reply = await dispatcher.execute([b'GET', b'key'])

    A caller that gets cancelled while its request is still queued is dropped.
    When its bytes were already sent, the reply is still read (and thrown
    away) before the next request goes out.
    """
    def __init__(self, connection):
        self.connection = connection

        self._queue = deque() # Queued `PendingRequest` instances.
        self._in_flight = None
        self._worker = None

    def __repr__(self):
        return 'Dispatcher(connection=%r, pending=%r)' % (self.connection, self.pending_count)

    @property
    def pending_count(self):
        """ Number of requests queued or in flight. """
        return len(self._queue) + (1 if self._in_flight else 0)

    @property
    def in_flight(self):
        """ The request that's currently waiting for its reply (or ``None``). """
        return self._in_flight

    async def execute(self, command):
        """
        Send `command` (a sequence of byte strings) and return its reply.

        Error replies are returned as :class:`~asyncio_resp.replies.ErrorReply`,
        transport and protocol failures are raised.
        """
        data = encode_command(command)

        connection = self.connection
        if not connection.is_connected:
            raise connection.fault or NotConnectedError()

        loop = asyncio.get_running_loop()
        request = PendingRequest(bytes(command[0]), data, loop.create_future())
        self._queue.append(request)

        if self._worker is None:
            self._worker = loop.create_task(self._dispatch_coroutine())

        return await request.future

    async def _dispatch_coroutine(self):
        """
        Coroutine which sends the queued requests one by one, and delivers the
        replies.
        """
        try:
            while self._queue:
                request = self._queue.popleft()

                # Cancelled before anything was written. Nothing to drain.
                if request.future.cancelled():
                    continue

                self._in_flight = request
                try:
                    logger.debug('Sending %r', request.name)
                    await self.connection.send(request.data)
                    reply = await self.connection.receive_reply()
                except Exception as e:
                    if not isinstance(e, Error):
                        # Not a failure the connection knows about. Fault it
                        # anyway: the stream position is unknown.
                        e = self.connection.fail(e)

                    self._in_flight = None
                    if not request.future.done():
                        request.future.set_exception(e)
                    self._fail_pending(e)
                    return

                self._in_flight = None

                if request.future.cancelled():
                    # Received an answer from Redis, for a query which
                    # `Future` got already cancelled. Don't call set_result,
                    # that would raise an `InvalidStateError` otherwise.
                    logger.debug('Dropped reply for cancelled %r', request.name)
                else:
                    request.future.set_result(reply)

        except asyncio.CancelledError:
            # The worker itself got cancelled (e.g. the loop is shutting down).
            self._in_flight = None
            self._fail_pending(ConnectionClosedError('Dispatcher cancelled'))
            raise
        finally:
            self._worker = None

    def _fail_pending(self, exc):
        """ Raise exception on all waiting futures. """
        if self._in_flight is not None:
            self._queue.appendleft(self._in_flight)
            self._in_flight = None

        while self._queue:
            f = self._queue.popleft().future
            if not f.done():
                f.set_exception(exc)

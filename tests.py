#!/usr/bin/env python

import asyncio
import gc
import os
import random
import socket
import unittest
from collections import deque

from asyncio_resp import (
        BulkReply,
        Client,
        ConnectError,
        Connection,
        ConnectionClosedError,
        ConnectionState,
        Dispatcher,
        Error,
        ErrorReply,
        INCOMPLETE,
        IntegerReply,
        MultiBulkReply,
        Nil,
        NotConnectedError,
        ProtocolError,
        Reader,
        ServerRejectedError,
        StatusReply,
        TimeoutError,
        TransportError,
        ZAggregate,
        ZScoreBoundary,
        decode,
        encode_command,
)
from asyncio_resp.classifier import check_reply, classify_connect_error, classify_io_error
from asyncio_resp.commands import _all_commands
from asyncio_resp.encoders import BytesEncoder, UTF8Encoder

PORT = int(os.environ.get('REDIS_PORT', 0))
HOST = os.environ.get('REDIS_HOST', 'localhost')


def async_test(function):
    """Decorator for async test methods
    """
    def wrapper(self):
        asyncio.run(function(self))

    return wrapper


class TestCase(unittest.TestCase):
    def tearDown(self):
        # Collect garbage on tearDown. (This can print ResourceWarnings.)
        gc.collect()


# Markers for the scripted stub server.
CLOSE = object()    # Close the connection instead of replying.
SILENT = object()   # Never reply.


class Delayed:
    """ Send `reply` after `seconds`. """
    def __init__(self, seconds, reply):
        self.seconds = seconds
        self.reply = reply


class Truncated:
    """ Send `data`, then close the connection. """
    def __init__(self, data):
        self.data = data


def echo_bulk(args):
    """ Reply with the last argument of the command as bulk string. """
    data = args[-1]
    return b'$%i\r\n%s\r\n' % (len(data), data)


def echo_command(args):
    """ Reply with the whole command, as multi bulk. """
    return encode_command(args)


class StubServer:
    """
    Scripted RESP server. For every received command, the next entry of
    `replies` is used. An entry is either raw bytes, a callable that receives
    the command arguments, ``CLOSE``, ``SILENT``, a ``Delayed`` or a
    ``Truncated`` entry.
    When the script is exhausted, `default` is used.
    """
    def __init__(self, *replies, default=SILENT):
        self.replies = deque(replies)
        self.default = default
        self.commands = [] # Received commands, as lists of bytes.
        self.max_unanswered = 0
        self._writers = []

    async def __aenter__(self):
        self.server = await asyncio.start_server(self._handle, '127.0.0.1', 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, *exc_info):
        for writer in self._writers:
            writer.close()
        self.server.close()
        await asyncio.sleep(0)

    async def client(self, **kw):
        return await Client.create('127.0.0.1', self.port, **kw)

    async def _handle(self, reader, writer):
        self._writers.append(writer)
        parser = Reader()

        while True:
            data = await reader.read(1024)
            if not data:
                writer.close()
                return

            parser.feed(data)
            received = []
            while True:
                command = parser.gets()
                if command is False:
                    break
                received.append([ item.data for item in command ])

            # Commands that arrived before we replied to any of them.
            self.max_unanswered = max(self.max_unanswered, len(received))

            for args in received:
                self.commands.append(args)
                reply = self.replies.popleft() if self.replies else self.default

                if isinstance(reply, Delayed):
                    await asyncio.sleep(reply.seconds)
                    reply = reply.reply

                if reply is CLOSE:
                    writer.close()
                    return
                if isinstance(reply, Truncated):
                    writer.write(reply.data)
                    await writer.drain()
                    writer.close()
                    return
                if reply is SILENT:
                    continue
                if callable(reply):
                    reply = reply(args)

                try:
                    writer.write(reply)
                    await writer.drain()
                except ConnectionError:
                    return


def free_port():
    """ Return a TCP port on which nothing is listening. """
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('127.0.0.1', 0))
    port = s.getsockname()[1]
    s.close()
    return port


class EncodeTest(TestCase):
    def test_encode_command(self):
        self.assertEqual(encode_command([b'SET', b'k', b'v']),
                         b'*3\r\n$3\r\nSET\r\n$1\r\nk\r\n$1\r\nv\r\n')

    def test_binary_safe(self):
        data = b'a\r\nb\x00c$*'
        self.assertEqual(encode_command([b'SET', data]),
                         b'*2\r\n$3\r\nSET\r\n$8\r\n' + data + b'\r\n')

    def test_empty_argument(self):
        self.assertEqual(encode_command([b'GET', b'']), b'*2\r\n$3\r\nGET\r\n$0\r\n\r\n')

    def test_large_argument(self):
        data = b'x' * 5000
        self.assertTrue(encode_command([b'SET', data]).startswith(b'*2\r\n$3\r\nSET\r\n$5000\r\n'))

    def test_bytearray_and_memoryview(self):
        self.assertEqual(encode_command([bytearray(b'GET'), memoryview(b'k')]),
                         b'*2\r\n$3\r\nGET\r\n$1\r\nk\r\n')

    def test_invalid_arguments(self):
        with self.assertRaises(TypeError):
            encode_command([b'GET', 'key'])
        with self.assertRaises(TypeError):
            encode_command([b'INCRBY', b'key', 1])
        with self.assertRaises(ValueError):
            encode_command([])


class DecodeTest(TestCase):
    def decode_one(self, data):
        result = decode(data)
        self.assertIsNot(result, INCOMPLETE)
        self.assertEqual(result.consumed, len(data))
        return result.reply

    def test_status(self):
        self.assertEqual(self.decode_one(b'+OK\r\n'), StatusReply('OK'))
        self.assertEqual(repr(StatusReply('OK')), "StatusReply(status='OK')")

    def test_integer(self):
        self.assertEqual(self.decode_one(b':123\r\n'), IntegerReply(123))
        self.assertEqual(self.decode_one(b':-1\r\n'), IntegerReply(-1))
        self.assertEqual(self.decode_one(b':9223372036854775807\r\n'), IntegerReply(2 ** 63 - 1))
        self.assertEqual(self.decode_one(b':-9223372036854775808\r\n'), IntegerReply(-2 ** 63))

        # -1 as integer is not the same as a Nil reply.
        self.assertNotEqual(self.decode_one(b':-1\r\n'), Nil)
        self.assertNotEqual(self.decode_one(b':-1\r\n'), self.decode_one(b'$-1\r\n'))

    def test_nil(self):
        self.assertIs(self.decode_one(b'$-1\r\n'), Nil)
        self.assertIs(self.decode_one(b'*-1\r\n'), Nil)
        self.assertFalse(Nil)

    def test_bulk(self):
        self.assertEqual(self.decode_one(b'$1\r\nv\r\n'), BulkReply(b'v'))
        self.assertEqual(self.decode_one(b'$0\r\n\r\n'), BulkReply(b''))
        self.assertEqual(self.decode_one(b'$4\r\n\r\n\x00\n\r\n'), BulkReply(b'\r\n\x00\n'))

    def test_multi_bulk(self):
        self.assertEqual(self.decode_one(b'*0\r\n'), MultiBulkReply([]))
        self.assertEqual(
            self.decode_one(b'*3\r\n$1\r\na\r\n$-1\r\n:5\r\n'),
            MultiBulkReply([ BulkReply(b'a'), Nil, IntegerReply(5) ]))

    def test_nested_multi_bulk(self):
        reply = self.decode_one(b'*2\r\n$1\r\n0\r\n*2\r\n*-1\r\n+OK\r\n')
        self.assertEqual(reply, MultiBulkReply([
            BulkReply(b'0'),
            MultiBulkReply([ Nil, StatusReply('OK') ]),
        ]))
        self.assertEqual(len(reply), 2)
        self.assertIs(reply[1][0], Nil)

    def test_error(self):
        reply = self.decode_one(b'-WRONGTYPE Operation against a key holding the wrong kind of value\r\n')
        self.assertEqual(reply.kind, 'WRONGTYPE')
        self.assertEqual(reply.message, 'Operation against a key holding the wrong kind of value')

        reply = self.decode_one(b'-ERR unknown command\r\n')
        self.assertEqual(reply, ErrorReply('ERR', 'unknown command'))

    def test_error_without_kind(self):
        self.assertEqual(self.decode_one(b'-something went wrong\r\n'),
                         ErrorReply('ERR', 'something went wrong'))
        self.assertEqual(self.decode_one(b'-oops\r\n'), ErrorReply('ERR', 'oops'))

    def test_error_kind_without_message(self):
        reply = self.decode_one(b'-NOAUTH\r\n')
        self.assertEqual(reply, ErrorReply('NOAUTH', ''))
        self.assertEqual(str(ServerRejectedError(reply.kind, reply.message)), 'NOAUTH')

    def test_error_inside_multi_bulk(self):
        reply = self.decode_one(b'*2\r\n+OK\r\n-ERR no\r\n')
        self.assertEqual(reply[1], ErrorReply('ERR', 'no'))

    def test_incomplete(self):
        for data in [b'', b'+OK', b'+OK\r', b':12', b'$5\r\nab', b'$5\r\nabcde', b'$5\r\nabcde\r',
                     b'*2\r\n', b'*2\r\n$1\r\na\r\n', b'*2\r\n*1\r\n:1\r\n*1\r\n', b'$']:
            self.assertIs(decode(data), INCOMPLETE, data)

    def test_consumed_leaves_next_frame(self):
        result = decode(b'+OK\r\n:1\r\n')
        self.assertEqual(result.reply, StatusReply('OK'))
        self.assertEqual(result.consumed, 5)
        self.assertEqual(decode(b'+OK\r\n:1\r\n', result.consumed).reply, IntegerReply(1))

    def test_protocol_errors(self):
        for data in [b'?what\r\n', b':abc\r\n', b'$x\r\n', b'$-2\r\n', b'*-5\r\n',
                     b'$1\r\nabc\r\n', b'*1\r\n!\r\n', b'+\xff\xfe\r\n',
                     # Not RESP integers, although Python's int() takes them.
                     b':1_000\r\n', b': 12 \r\n', b':+5\r\n', b':\r\n', b':-\r\n',
                     b'$1_0\r\n0123456789\r\n', b'$ 1\r\na\r\n', b'*+1\r\n:1\r\n',
                     # Outside of the 64 bit range.
                     b':9223372036854775808\r\n', b':-9223372036854775809\r\n']:
            with self.assertRaises(ProtocolError, msg=data):
                decode(data)

    def test_deep_nesting(self):
        reply = self.decode_one(b'*1\r\n' * 5000 + b':1\r\n')
        for _ in range(5000):
            self.assertIsInstance(reply, MultiBulkReply)
            self.assertEqual(len(reply), 1)
            reply = reply[0]
        self.assertEqual(reply, IntegerReply(1))


class ReaderTest(TestCase):
    STREAM = (b'+OK\r\n'
              b':-1\r\n'
              b'$-1\r\n'
              b'$7\r\nab\r\n\x00cd\r\n'
              b'*3\r\n$1\r\na\r\n*2\r\n:1\r\n$-1\r\n*0\r\n'
              b'-WRONGTYPE bad type\r\n'
              b'*-1\r\n')

    def read_all(self, chunks):
        reader = Reader()
        replies = []
        for chunk in chunks:
            reader.feed(chunk)
            while True:
                reply = reader.gets()
                if reply is False:
                    break
                replies.append(reply)
        self.assertEqual(reader.buffered, 0)
        return replies

    def test_whole_stream(self):
        self.assertEqual(self.read_all([self.STREAM]), [
            StatusReply('OK'),
            IntegerReply(-1),
            Nil,
            BulkReply(b'ab\r\n\x00cd'),
            MultiBulkReply([ BulkReply(b'a'), MultiBulkReply([ IntegerReply(1), Nil ]), MultiBulkReply([]) ]),
            ErrorReply('WRONGTYPE', 'bad type'),
            Nil,
        ])

    def test_split_at_any_boundary(self):
        expected = self.read_all([self.STREAM])

        for i in range(len(self.STREAM) + 1):
            self.assertEqual(self.read_all([self.STREAM[:i], self.STREAM[i:]]), expected)

    def test_byte_by_byte(self):
        expected = self.read_all([self.STREAM])
        chunks = [ self.STREAM[i:i+1] for i in range(len(self.STREAM)) ]
        self.assertEqual(self.read_all(chunks), expected)

    def test_random_chunks(self):
        expected = self.read_all([self.STREAM])
        rnd = random.Random(1234)

        for _ in range(50):
            chunks = []
            pos = 0
            while pos < len(self.STREAM):
                size = rnd.randint(1, 12)
                chunks.append(self.STREAM[pos:pos + size])
                pos += size
            self.assertEqual(self.read_all(chunks), expected)

    def test_leftover_is_kept(self):
        reader = Reader()
        reader.feed(b'+OK\r\n$3\r\nab')
        self.assertEqual(reader.gets(), StatusReply('OK'))
        self.assertIs(reader.gets(), False)
        self.assertEqual(reader.buffered, 6)
        reader.feed(b'c\r\n')
        self.assertEqual(reader.gets(), BulkReply(b'abc'))

    def test_partial_multi_bulk_keeps_decoded_items(self):
        reader = Reader()
        reader.feed(b'*3\r\n$1\r\na\r\n$1\r\nb')
        self.assertIs(reader.gets(), False)

        # Header and first item are decoded and gone from the buffer.
        self.assertEqual(reader.buffered, len(b'$1\r\nb'))
        self.assertEqual(reader.depth, 1)

        reader.feed(b'\r\n:3\r\n+OK\r\n')
        self.assertEqual(reader.gets(), MultiBulkReply([ BulkReply(b'a'), BulkReply(b'b'), IntegerReply(3) ]))
        self.assertEqual(reader.depth, 0)
        self.assertEqual(reader.gets(), StatusReply('OK'))

    def test_large_multi_bulk_in_chunks(self):
        count = 20000
        data = b'*%i\r\n' % count + b'$3\r\nabc\r\n' * count
        reader = Reader()
        chunks = 0

        for pos in range(0, len(data), 4096):
            reader.feed(data[pos:pos + 4096])
            reply = reader.gets()
            chunks += 1

            # Only the unfinished item stays in the buffer.
            self.assertLess(reader.buffered, len(b'$3\r\nabc\r\n'))

        self.assertGreater(chunks, 1)
        self.assertEqual(len(reply), count)
        self.assertEqual(reply[-1], BulkReply(b'abc'))

    def test_clear(self):
        reader = Reader()
        reader.feed(b'*2\r\n:1\r\n')
        self.assertIs(reader.gets(), False)
        reader.clear()
        self.assertEqual((reader.buffered, reader.depth), (0, 0))

        reader.feed(b':2\r\n')
        self.assertEqual(reader.gets(), IntegerReply(2))


class ClassifierTest(TestCase):
    def test_check_reply(self):
        self.assertEqual(check_reply(StatusReply('OK')), StatusReply('OK'))
        self.assertIs(check_reply(Nil), Nil)

        with self.assertRaises(ServerRejectedError) as e:
            check_reply(ErrorReply('WRONGTYPE', 'Operation against a key'))
        self.assertEqual(e.exception.kind, 'WRONGTYPE')
        self.assertEqual(e.exception.message, 'Operation against a key')
        self.assertEqual(str(e.exception), 'WRONGTYPE Operation against a key')

    def test_classify_io_error(self):
        self.assertIsInstance(classify_io_error(asyncio.TimeoutError()), TimeoutError)
        self.assertIsInstance(classify_io_error(ConnectionResetError()), ConnectionClosedError)
        self.assertIsInstance(classify_io_error(BrokenPipeError()), ConnectionClosedError)
        self.assertIsInstance(classify_io_error(asyncio.IncompleteReadError(b'', 2)), ConnectionClosedError)
        self.assertIsInstance(classify_io_error(OSError('boom')), TransportError)

        exc = ProtocolError('garbage')
        self.assertIs(classify_io_error(exc), exc)

    def test_classify_connect_error(self):
        for exc in [ConnectionRefusedError(), asyncio.TimeoutError(), socket.gaierror(), OSError()]:
            result = classify_connect_error(exc, 'localhost', 6379)
            self.assertIsInstance(result, ConnectError)
            self.assertEqual(result.port, 6379)

    def test_hierarchy(self):
        self.assertTrue(issubclass(ServerRejectedError, Error))
        self.assertTrue(issubclass(ConnectionClosedError, TransportError))
        self.assertTrue(issubclass(TimeoutError, TransportError))
        self.assertFalse(issubclass(ProtocolError, TransportError))
        self.assertFalse(issubclass(ConnectError, TransportError))


class ConnectionTest(TestCase):
    @async_test
    async def test_send_and_receive(self):
        async with StubServer(b'+OK\r\n$1\r\nv\r\n') as server:
            connection = Connection('127.0.0.1', server.port, connect_timeout=1)
            self.assertEqual(connection.state, ConnectionState.DISCONNECTED)

            await connection.open()
            self.assertEqual(connection.state, ConnectionState.CONNECTED)

            # The first reply comes in with the start of the second one.
            await connection.send(encode_command([b'SET', b'k', b'v']))
            self.assertEqual(await connection.receive_reply(), StatusReply('OK'))
            self.assertEqual(await connection.receive_reply(), BulkReply(b'v'))

            connection.close()
            self.assertEqual(connection.state, ConnectionState.FAULTED)
            self.assertIsInstance(connection.fault, ConnectionClosedError)

    @async_test
    async def test_not_opened(self):
        connection = Connection('127.0.0.1', 6379)
        with self.assertRaises(NotConnectedError):
            await connection.send(b'*1\r\n$4\r\nPING\r\n')

    @async_test
    async def test_connect_refused(self):
        connection = Connection('127.0.0.1', free_port(), connect_timeout=1)
        with self.assertRaises(ConnectError):
            await connection.open()
        self.assertEqual(connection.state, ConnectionState.FAULTED)
        self.assertIsInstance(connection.fault, ConnectError)

    @async_test
    async def test_reopen_after_fault(self):
        async with StubServer(CLOSE, b'+PONG\r\n') as server:
            connection = Connection('127.0.0.1', server.port)
            await connection.open()

            await connection.send(encode_command([b'PING']))
            with self.assertRaises(ConnectionClosedError):
                await connection.receive_reply()
            self.assertEqual(connection.state, ConnectionState.FAULTED)

            # Faulted is terminal until open() is called again.
            with self.assertRaises(ConnectionClosedError):
                await connection.send(encode_command([b'PING']))

            await connection.open()
            await connection.send(encode_command([b'PING']))
            self.assertEqual(await connection.receive_reply(), StatusReply('PONG'))
            connection.close()

    @async_test
    async def test_open_twice(self):
        async with StubServer() as server:
            connection = Connection('127.0.0.1', server.port)
            await connection.open()
            with self.assertRaises(Error):
                await connection.open()
            connection.close()

    @async_test
    async def test_cancel_while_connecting(self):
        async with StubServer(b'+PONG\r\n') as server:
            connection = Connection('127.0.0.1', server.port)

            task = asyncio.ensure_future(connection.open())
            await asyncio.sleep(0)
            self.assertEqual(connection.state, ConnectionState.CONNECTING)
            task.cancel()

            with self.assertRaises(asyncio.CancelledError):
                await task
            self.assertEqual(connection.state, ConnectionState.FAULTED)
            self.assertIsInstance(connection.fault, ConnectError)

            # Not stuck in the connecting state.
            await connection.open()
            await connection.send(encode_command([b'PING']))
            self.assertEqual(await connection.receive_reply(), StatusReply('PONG'))
            connection.close()

    @async_test
    async def test_close_while_connecting(self):
        async with StubServer() as server:
            connection = Connection('127.0.0.1', server.port)

            task = asyncio.ensure_future(connection.open())
            await asyncio.sleep(0)
            connection.close()

            with self.assertRaises(ConnectionClosedError):
                await task
            self.assertEqual(connection.state, ConnectionState.FAULTED)
            self.assertFalse(connection.is_connected)


class DispatcherTest(TestCase):
    @async_test
    async def test_set_and_get(self):
        async with StubServer(b'+OK\r\n', b'$1\r\nv\r\n') as server:
            client = await server.client()

            self.assertEqual(await client.execute('SET', b'k', b'v'), StatusReply('OK'))
            self.assertEqual(await client.execute('GET', b'k'), BulkReply(b'v'))
            self.assertEqual(server.commands, [[b'SET', b'k', b'v'], [b'GET', b'k']])
            client.close()

    @async_test
    async def test_get_missing(self):
        async with StubServer(b'$-1\r\n') as server:
            client = await server.client()
            self.assertIs(await client.execute('GET', b'missing'), Nil)
            client.close()

    @async_test
    async def test_server_rejected(self):
        async with StubServer(
                b'-WRONGTYPE Operation against a key holding the wrong kind of value\r\n',
                b':1\r\n') as server:
            client = await server.client()

            with self.assertRaises(ServerRejectedError) as e:
                await client.execute('LPUSH', b'k', b'v')
            self.assertEqual(e.exception.kind, 'WRONGTYPE')
            self.assertEqual(e.exception.message, 'Operation against a key holding the wrong kind of value')

            # The connection is still fine.
            self.assertTrue(client.is_connected)
            self.assertEqual(await client.execute('EXISTS', b'k'), IntegerReply(1))
            client.close()

    @async_test
    async def test_raw_dispatcher_returns_error_reply(self):
        async with StubServer(b'-ERR nope\r\n') as server:
            connection = Connection('127.0.0.1', server.port)
            await connection.open()
            dispatcher = Dispatcher(connection)

            self.assertEqual(await dispatcher.execute([b'FOO']), ErrorReply('ERR', 'nope'))
            connection.close()

    @async_test
    async def test_round_trip_binary_arguments(self):
        async with StubServer(default=echo_command) as server:
            client = await server.client()
            rnd = random.Random(42)

            commands = [
                [b'SET', b'k\r\n', b'\r\n\r\n'],
                [b'SET', b'\x00', b'$-1\r\n*3\r\n'],
                [b'ECHO', b''],
            ]
            for _ in range(20):
                commands.append([b'ECHO'] + [ bytes(rnd.randrange(256) for _ in range(rnd.randrange(40)))
                                              for _ in range(rnd.randrange(1, 5)) ])

            for command in commands:
                reply = await client.execute(*command)
                self.assertEqual([ item.data for item in reply ], command)

            client.close()

    @async_test
    async def test_fifo_ordering(self):
        rnd = random.Random(7)

        def delayed_echo():
            return Delayed(rnd.random() * 0.005, echo_bulk)

        async with StubServer(*[ delayed_echo() for _ in range(30) ]) as server:
            client = await server.client()

            values = [ str(i).encode('ascii') for i in range(30) ]
            results = await asyncio.gather(*[ client.execute('ECHO', v) for v in values ])

            self.assertEqual(results, [ BulkReply(v) for v in values ])
            self.assertEqual([ c[1] for c in server.commands ], values)

            # Never more than one request on the wire.
            self.assertEqual(server.max_unanswered, 1)
            client.close()

    @async_test
    async def test_peer_close(self):
        async with StubServer(Delayed(.05, CLOSE)) as server:
            client = await server.client()

            results = await asyncio.gather(
                client.execute('GET', b'a'),
                client.execute('GET', b'b'),
                client.execute('GET', b'c'),
                return_exceptions=True)

            for r in results:
                self.assertIsInstance(r, ConnectionClosedError)

            self.assertEqual(client.connection.state, ConnectionState.FAULTED)
            self.assertEqual(client.pending_count, 0)

            # New calls fail immediately, with the original reason.
            with self.assertRaises(ConnectionClosedError) as e:
                await asyncio.wait_for(client.execute('GET', b'd'), .5)
            self.assertIs(e.exception, results[0])

    @async_test
    async def test_read_timeout(self):
        async with StubServer(SILENT) as server:
            client = await server.client(read_timeout=.1)

            with self.assertRaises(TimeoutError):
                await client.execute('BLPOP', b'list', b'0')

            self.assertEqual(client.connection.state, ConnectionState.FAULTED)
            with self.assertRaises(TimeoutError):
                await client.execute('PING')

    @async_test
    async def test_protocol_error_is_fatal(self):
        async with StubServer(b'!garbage\r\n') as server:
            client = await server.client()

            with self.assertRaises(ProtocolError):
                await client.execute('PING')

            self.assertEqual(client.connection.state, ConnectionState.FAULTED)
            with self.assertRaises(ProtocolError):
                await client.execute('PING')

    @async_test
    async def test_cancel_after_send_keeps_alignment(self):
        async with StubServer(Delayed(.1, b'$5\r\nfirst\r\n'), b'$6\r\nsecond\r\n') as server:
            client = await server.client()

            task = asyncio.ensure_future(client.execute('GET', b'first'))
            await asyncio.sleep(.02)
            self.assertEqual(len(server.commands), 1) # Already on the wire.
            task.cancel()

            # The reply for 'first' is drained, not delivered to us.
            self.assertEqual(await client.execute('GET', b'second'), BulkReply(b'second'))
            self.assertTrue(task.cancelled())
            self.assertTrue(client.is_connected)
            client.close()

    @async_test
    async def test_cancel_before_send(self):
        async with StubServer(Delayed(.1, b'+first\r\n'), b'+third\r\n') as server:
            client = await server.client()

            first = asyncio.ensure_future(client.execute('ECHO', b'first'))
            second = asyncio.ensure_future(client.execute('ECHO', b'second'))
            await asyncio.sleep(.02)
            second.cancel()

            self.assertEqual(await client.execute('ECHO', b'third'), StatusReply('third'))
            self.assertEqual(await first, StatusReply('first'))
            self.assertEqual([ c[1] for c in server.commands ], [b'first', b'third'])
            client.close()

    @async_test
    async def test_close_fails_queued_requests(self):
        async with StubServer(SILENT) as server:
            client = await server.client()

            tasks = [ asyncio.ensure_future(client.execute('GET', b'k')) for _ in range(3) ]
            await asyncio.sleep(.02)
            client.close()

            results = await asyncio.gather(*tasks, return_exceptions=True)
            for r in results:
                self.assertIsInstance(r, ConnectionClosedError)

    @async_test
    async def test_connect_error(self):
        with self.assertRaises(ConnectError):
            await Client.create('127.0.0.1', free_port(), connect_timeout=1)

    @async_test
    async def test_auth_and_select(self):
        async with StubServer(b'+OK\r\n', b'+OK\r\n', b'+PONG\r\n') as server:
            client = await server.client(password='secret', db=2)
            self.assertEqual(await client.ping(), StatusReply('PONG'))
            self.assertEqual(server.commands[:2], [[b'AUTH', b'secret'], [b'SELECT', b'2']])
            client.close()

    @async_test
    async def test_auth_rejected(self):
        async with StubServer(b'-WRONGPASS invalid username-password pair\r\n') as server:
            with self.assertRaises(ServerRejectedError):
                await server.client(password='wrong')

    @async_test
    async def test_in_flight(self):
        async with StubServer(Delayed(.1, b'+PONG\r\n')) as server:
            connection = Connection('127.0.0.1', server.port)
            await connection.open()
            dispatcher = Dispatcher(connection)

            first = asyncio.ensure_future(dispatcher.execute([b'PING']))
            second = asyncio.ensure_future(dispatcher.execute([b'ECHO', b'x']))
            await asyncio.sleep(.02)

            self.assertEqual(dispatcher.in_flight.name, b'PING')
            self.assertEqual(dispatcher.pending_count, 2)

            self.assertEqual(await first, StatusReply('PONG'))
            connection.close()
            with self.assertRaises(ConnectionClosedError):
                await second
            self.assertIsNone(dispatcher.in_flight)
            self.assertEqual(dispatcher.pending_count, 0)

    @async_test
    async def test_deeply_nested_reply(self):
        async with StubServer(b'*1\r\n' * 5000 + b':1\r\n', b'+PONG\r\n') as server:
            client = await server.client()

            reply = await asyncio.wait_for(client.execute('GET', b'x'), 2)
            for _ in range(5000):
                reply = reply[0]
            self.assertEqual(reply, IntegerReply(1))

            # The stream is still aligned.
            self.assertEqual(await client.execute('PING'), StatusReply('PONG'))
            client.close()

    @async_test
    async def test_multi_bulk_cut_off_by_close(self):
        async with StubServer(Truncated(b'*3\r\n$1\r\na\r\n')) as server:
            client = await server.client()

            with self.assertRaises(ConnectionClosedError):
                await asyncio.wait_for(client.execute('LRANGE', b'l', b'0', b'-1'), 2)

            self.assertEqual(client.connection.state, ConnectionState.FAULTED)
            self.assertEqual(client.pending_count, 0)

    @async_test
    async def test_unexpected_exception_fails_all_callers(self):
        async with StubServer(SILENT) as server:
            client = await server.client()

            async def broken_receive_reply():
                raise RuntimeError('broken')
            client.connection.receive_reply = broken_receive_reply

            results = await asyncio.wait_for(asyncio.gather(
                client.execute('GET', b'a'),
                client.execute('GET', b'b'),
                return_exceptions=True), 2)

            for r in results:
                self.assertIsInstance(r, TransportError)
            self.assertEqual(client.connection.state, ConnectionState.FAULTED)
            self.assertIs(client.connection.fault, results[0])


class EncoderTest(TestCase):
    def test_decode_reply(self):
        encoder = UTF8Encoder()
        self.assertEqual(encoder.decode_reply(BulkReply(b'caf\xc3\xa9')), 'café')
        self.assertIsNone(encoder.decode_reply(Nil))
        with self.assertRaises(TypeError):
            encoder.decode_reply(IntegerReply(1))

    def test_decode_multi_bulk(self):
        encoder = BytesEncoder()
        self.assertEqual(encoder.decode_multi_bulk(MultiBulkReply([ BulkReply(b'a'), Nil ])), [b'a', None])
        with self.assertRaises(TypeError):
            encoder.decode_multi_bulk(BulkReply(b'a'))

    def test_encode_all(self):
        self.assertEqual(BytesEncoder().encode_all([b'a', bytearray(b'b'), memoryview(b'c')]),
                         [b'a', b'b', b'c'])
        self.assertEqual(UTF8Encoder().encode_all(['a', 'café']), [b'a', b'caf\xc3\xa9'])

    def test_errors_handler(self):
        with self.assertRaises(UnicodeDecodeError):
            UTF8Encoder().decode_to_native(b'\xff')

        encoder = UTF8Encoder(errors='surrogateescape')
        self.assertEqual(encoder.encode_from_native(encoder.decode_to_native(b'\xff')), b'\xff')
        self.assertEqual(repr(encoder), "UTF8Encoder(errors='surrogateescape')")


class CommandsTest(TestCase):
    async def run_commands(self, replies, calls, **kw):
        """
        Run `calls` (a function that receives the client) against a stub that
        answers with `replies`. Return (results, received commands).
        """
        async with StubServer(*replies) as server:
            client = await server.client(**kw)
            try:
                result = await calls(client)
            finally:
                client.close()
            return result, server.commands

    @async_test
    async def test_strings(self):
        async def calls(c):
            return [
                await c.set('my_key', 'my_value'),
                await c.get('my_key'),
                await c.get('missing'),
                await c.setnx('my_key', 'other'),
                await c.incrby('counter', 5),
                await c.mget(['my_key', 'missing']),
                await c.getrange('my_key', 0, 1),
            ]

        results, commands = await self.run_commands(
            [b'+OK\r\n', b'$8\r\nmy_value\r\n', b'$-1\r\n', b':0\r\n', b':5\r\n',
             b'*2\r\n$8\r\nmy_value\r\n$-1\r\n', b'$2\r\nmy\r\n'], calls)

        self.assertEqual(results, [StatusReply('OK'), 'my_value', None, False, 5,
                                   ['my_value', None], 'my'])
        self.assertEqual(commands[4], [b'INCRBY', b'counter', b'5'])
        self.assertEqual(commands[6], [b'GETRANGE', b'my_key', b'0', b'1'])

    @async_test
    async def test_keys(self):
        async def calls(c):
            return [
                await c.exists('k'),
                await c.exists('missing'),
                await c.type('k'),
                await c.expire('missing', 10),
                await c.ttl('missing'),
                await c.move('k', 1),
                await c.delete(['a', 'b']),
                await c.keys('*'),
            ]

        results, commands = await self.run_commands(
            [b':1\r\n', b':0\r\n', b'+string\r\n', b':0\r\n', b':-2\r\n', b':1\r\n',
             b':2\r\n', b'*1\r\n$1\r\nk\r\n'], calls)

        self.assertEqual(results, [True, False, 'string', False, -2, True, 2, ['k']])
        self.assertEqual(commands[3], [b'EXPIRE', b'missing', b'10'])
        self.assertEqual(commands[6], [b'DEL', b'a', b'b'])

    @async_test
    async def test_lists_and_sets(self):
        async def calls(c):
            return [
                await c.rpush('l', ['a', 'b']),
                await c.lrange('l'),
                await c.lpop('empty'),
                await c.lrem('l', 'a', count=-1),
                await c.smembers('s'),
                await c.sismember('s', 'x'),
            ]

        results, commands = await self.run_commands(
            [b':2\r\n', b'*2\r\n$1\r\na\r\n$1\r\nb\r\n', b'$-1\r\n', b':1\r\n',
             b'*2\r\n$1\r\nx\r\n$1\r\ny\r\n', b':1\r\n'], calls)

        self.assertEqual(results, [2, ['a', 'b'], None, 1, {'x', 'y'}, True])
        self.assertEqual(commands[1], [b'LRANGE', b'l', b'0', b'-1'])
        self.assertEqual(commands[3], [b'LREM', b'l', b'-1', b'a'])

    @async_test
    async def test_sorted_sets(self):
        async def calls(c):
            return [
                await c.zadd('z', {'a': 1}),
                await c.zscore('z', 'a'),
                await c.zscore('z', 'missing'),
                await c.zrank('z', 'missing'),
                await c.zrange('z', withscores=True),
                await c.zunionstore('dest', ['z1', 'z2'], weights=[2, 3], aggregate=ZAggregate.MAX),
                await c.zremrangebyscore('z', ZScoreBoundary(1, exclude_boundary=True)),
            ]

        results, commands = await self.run_commands(
            [b':1\r\n', b'$1\r\n1\r\n', b'$-1\r\n', b'$-1\r\n',
             b'*4\r\n$1\r\na\r\n$1\r\n1\r\n$1\r\nb\r\n$3\r\n2.5\r\n', b':2\r\n', b':0\r\n'], calls)

        self.assertEqual(results, [1, 1.0, None, None, [('a', 1.0), ('b', 2.5)], 2, 0])
        self.assertEqual(commands[0], [b'ZADD', b'z', b'1.0', b'a'])
        self.assertEqual(commands[5], [b'ZUNIONSTORE', b'dest', b'2', b'z1', b'z2',
                                       b'WEIGHTS', b'2.0', b'3.0', b'AGGREGATE', b'MAX'])
        self.assertEqual(commands[6], [b'ZREMRANGEBYSCORE', b'z', b'(1.0', b'+inf'])

    @async_test
    async def test_server_error_is_raised(self):
        async def calls(c):
            with self.assertRaises(ServerRejectedError) as e:
                await c.lpush('string_key', ['a'])
            return e.exception.kind

        kind, _ = await self.run_commands(
            [b'-WRONGTYPE Operation against a key holding the wrong kind of value\r\n'], calls)
        self.assertEqual(kind, 'WRONGTYPE')

    @async_test
    async def test_bytes_encoder(self):
        async def calls(c):
            await c.set(b'k', b'\x00\xff')
            return await c.get(b'k')

        result, commands = await self.run_commands(
            [b'+OK\r\n', b'$2\r\n\x00\xff\r\n'], calls, encoder=BytesEncoder())
        self.assertEqual(result, b'\x00\xff')
        self.assertEqual(commands[0], [b'SET', b'k', b'\x00\xff'])

    @async_test
    async def test_typechecking(self):
        async def calls(c):
            with self.assertRaises(TypeError):
                await c.get(1)
            with self.assertRaises(TypeError):
                await c.delete('not a list')
            with self.assertRaises(TypeError):
                await c.expire('k', 'ten')

        _, commands = await self.run_commands([], calls)
        self.assertEqual(commands, [])

    def test_all_commands_registered(self):
        for name in ['get', 'set', 'exists', 'zunionstore', 'smembers', 'lrange']:
            self.assertIn(name, _all_commands)


@unittest.skipUnless(PORT, 'Set REDIS_PORT to run against a live Redis server.')
class RedisServerTest(TestCase):
    @async_test
    async def test_set_get_and_types(self):
        client = await Client.create(HOST, PORT, connect_timeout=2, read_timeout=5)
        try:
            await client.delete(['asyncio_resp_key', 'asyncio_resp_list'])
            self.assertEqual(await client.set('asyncio_resp_key', 'value'), StatusReply('OK'))
            self.assertEqual(await client.get('asyncio_resp_key'), 'value')
            self.assertIsNone(await client.get('asyncio_resp_missing'))

            with self.assertRaises(ServerRejectedError) as e:
                await client.lpush('asyncio_resp_key', ['x'])
            self.assertEqual(e.exception.kind, 'WRONGTYPE')

            self.assertEqual(await client.rpush('asyncio_resp_list', ['a', 'b']), 2)
            self.assertEqual(await client.lrange('asyncio_resp_list'), ['a', 'b'])
            await client.delete(['asyncio_resp_key', 'asyncio_resp_list'])
        finally:
            client.close()


if __name__ == '__main__':
    unittest.main()

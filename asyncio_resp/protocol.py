"""
RESP framing.

Requests are always sent as a multi bulk of bulk strings::

    *<argc>\\r\\n
    $<len>\\r\\n<raw bytes>\\r\\n  (for every argument)

Replies are decoded by looking at the first byte of the frame.
"""
import re
from collections import namedtuple

from .exceptions import ProtocolError
from .replies import (
        BulkReply,
        ErrorReply,
        IntegerReply,
        MultiBulkReply,
        Nil,
        StatusReply,
)

__all__ = (
    'DecodeResult',
    'INCOMPLETE',
    'Reader',
    'decode',
    'encode_command',
)

_SMALL_INTS = list(str(i).encode('ascii') for i in range(1000))

_CRLF = b'\r\n'


class _IncompleteType:
    """
    Returned by `decode` when the buffer ends in the middle of a frame.
    This is not an error: feed more bytes and try again.
    """
    def __bool__(self):
        return False

    def __repr__(self):
        return 'INCOMPLETE'

INCOMPLETE = _IncompleteType()


#: A decoded reply, and the number of bytes of the buffer it used.
DecodeResult = namedtuple('DecodeResult', ['reply', 'consumed'])


class _NeedMoreData(Exception):
    """ Internal: raised while walking a frame that isn't complete yet. """


def _encode_int(value):
    """ Encodes an integer to bytes. (always ascii) """
    if 0 <= value < 1000: # For small values, take pre-encoded string.
        return _SMALL_INTS[value]
    else:
        return str(value).encode('ascii')


def encode_command(args):
    """
    Serialize a command (a sequence of byte strings, the command name being
    the first one) into a RESP request.
    """
    if not args:
        raise ValueError('Cannot encode an empty command.')

    # Serialize header (number of arguments.)
    data = [ b'*', _encode_int(len(args)), _CRLF ]

    for arg in args:
        if not isinstance(arg, (bytes, bytearray, memoryview)):
            raise TypeError('Command arguments should be bytes, got %r' % type(arg).__name__)
        if isinstance(arg, memoryview):
            arg = arg.tobytes()
        data += [ b'$', _encode_int(len(arg)), _CRLF, arg, _CRLF ]

    return b''.join(data)


#: Integers on the wire: optional minus sign, then ASCII digits. (No '+',
#: whitespace or underscores, which `int()` would accept.)
_INTEGER_RE = re.compile(rb'-?[0-9]+')

_INT64_MIN = -2 ** 63
_INT64_MAX = 2 ** 63 - 1


def _read_line(buffer, pos):
    """ Return (line, position after the CRLF). """
    end = buffer.find(_CRLF, pos)
    if end == -1:
        raise _NeedMoreData
    return bytes(buffer[pos:end]), end + 2


def _parse_integer(line, what):
    if _INTEGER_RE.fullmatch(line) is None:
        raise ProtocolError('Invalid %s: %r' % (what, line))

    value = int(line)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ProtocolError('%s out of range: %r' % (what.capitalize(), line))
    return value


def _parse_length(line, what):
    length = _parse_integer(line, '%s length' % what)
    if length < -1:
        raise ProtocolError('Invalid %s length: %r' % (what, line))
    return length


def _decode_text(line):
    try:
        return line.decode('utf-8')
    except UnicodeDecodeError:
        raise ProtocolError('Reply line is not valid utf-8: %r' % line)


class _PartialMultiBulk:
    """ A multi bulk for which we received the header, but not all items. """
    __slots__ = ('count', 'items')

    def __init__(self, count):
        self.count = count
        self.items = []


def _handle_status_reply(buffer, pos):
    line, pos = _read_line(buffer, pos)
    return StatusReply(_decode_text(line)), pos


def _handle_error_reply(buffer, pos):
    line, pos = _read_line(buffer, pos)
    return ErrorReply.from_line(_decode_text(line)), pos


def _handle_int_reply(buffer, pos):
    line, pos = _read_line(buffer, pos)
    return IntegerReply(_parse_integer(line, 'integer reply')), pos


def _handle_bulk_reply(buffer, pos):
    line, pos = _read_line(buffer, pos)
    length = _parse_length(line, 'bulk')

    # None bulk reply
    if length == -1:
        return Nil, pos

    end = pos + length
    if len(buffer) < end + 2:
        raise _NeedMoreData

    if buffer[end:end + 2] != _CRLF:
        raise ProtocolError('Bulk reply of length %i not terminated by CRLF' % length)

    return BulkReply(buffer[pos:end]), end + 2


def _handle_multi_bulk_reply(buffer, pos):
    """
    Only parses the header. The items are collected by `_walk`, so that
    nesting depth doesn't grow the Python stack.
    """
    line, pos = _read_line(buffer, pos)
    count = _parse_length(line, 'multi bulk')

    # Handle multi-bulk none.
    # (Used when a transaction exec fails.)
    if count == -1:
        return Nil, pos

    if count == 0:
        return MultiBulkReply([]), pos

    return _PartialMultiBulk(count), pos


_line_received_handlers = {
    ord(b'+'): _handle_status_reply,
    ord(b'-'): _handle_error_reply,
    ord(b':'): _handle_int_reply,
    ord(b'$'): _handle_bulk_reply,
    ord(b'*'): _handle_multi_bulk_reply,
}


def _handle_item(buffer, pos):
    if pos >= len(buffer):
        raise _NeedMoreData

    c = buffer[pos]
    try:
        handler = _line_received_handlers[c]
    except KeyError:
        raise ProtocolError('Unknown reply type: %r' % bytes([c]))

    return handler(buffer, pos + 1)


def _walk(buffer, pos, stack):
    """
    Decode items from `buffer`, starting at `pos`, until one top level reply
    is complete. Multi bulks that are still being filled are kept on `stack`.

    Returns ``(reply, position)``. When the buffer runs out, `reply` is
    :data:`INCOMPLETE`, `position` is where the first unfinished item starts
    and `stack` holds everything decoded so far. Calling `_walk` again with
    the same stack and more bytes resumes there.
    """
    while True:
        try:
            item, pos = _handle_item(buffer, pos)
        except _NeedMoreData:
            return INCOMPLETE, pos

        if isinstance(item, _PartialMultiBulk):
            stack.append(item)
            continue

        # Hand the item to its parent. A parent that got its last item is
        # complete itself, and goes to the grandparent.
        while stack:
            parent = stack[-1]
            parent.items.append(item)
            if len(parent.items) < parent.count:
                break
            stack.pop()
            item = MultiBulkReply(parent.items)
        else:
            return item, pos


def decode(buffer, offset=0):
    """
    Decode one reply from `buffer`, starting at `offset`.

    Returns a :class:`DecodeResult` of the reply and the number of bytes
    consumed, or :data:`INCOMPLETE` when the buffer ends in the middle of the
    frame. Raises :class:`~asyncio_resp.exceptions.ProtocolError` for bytes
    that aren't valid RESP.
    """
    reply, end = _walk(buffer, offset, [])
    if reply is INCOMPLETE:
        return INCOMPLETE
    return DecodeResult(reply, end - offset)


class Reader:
    """
    Incremental reply parser. Bytes can be fed in arbitrary chunks; `gets`
    returns complete replies in the order they arrived.

    ::

        reader = Reader()
        reader.feed(b'$1\\r\\nv')
        reader.gets()   # False
        reader.feed(b'\\r\\n')
        reader.gets()   # BulkReply(data=b'v')

    Items of a multi bulk that are complete are decoded only once, even when
    the rest of the multi bulk arrives in many chunks. Only the unfinished
    item is looked at again after every `feed`.
    """
    def __init__(self):
        self._buffer = bytearray()
        self._stack = [] # Multi bulks under construction, outermost first.

    def feed(self, data):
        """ Append received bytes to the read buffer. """
        self._buffer += data

    def gets(self):
        """
        Return the next reply, or ``False`` when the buffer doesn't contain a
        complete reply yet.
        """
        reply, pos = _walk(self._buffer, 0, self._stack)

        # Drop what has been decoded. Whatever follows is the start of the
        # next item.
        del self._buffer[:pos]

        if reply is INCOMPLETE:
            return False
        return reply

    @property
    def buffered(self):
        """ Number of bytes waiting in the buffer, not decoded yet. """
        return len(self._buffer)

    @property
    def depth(self):
        """ Number of multi bulks that are partially received. """
        return len(self._stack)

    def clear(self):
        self._buffer.clear()
        self._stack.clear()

"""
The wire only carries bytes. The convenience commands of
:class:`~asyncio_resp.client.Client` accept and return a native Python type
instead; an encoder does the translation for keys, values and members, in
both directions: native arguments to request bytes, and bulk replies back to
native values.

The core (`execute`) never uses an encoder: it takes and returns bytes.
"""
from .replies import BulkReply, MultiBulkReply, Nil

__all__ = (
        'BaseEncoder',
        'BytesEncoder',
        'StringEncoder',
        'UTF8Encoder',
)


class BaseEncoder:
    """
    Abstract base class for all encoders.

    Subclasses implement `encode_from_native` and `decode_to_native`; the
    reply helpers are built on top of those two.
    """
    #: The native Python type from which we encode, or to which we decode.
    native_type = None

    def encode_from_native(self, data):
        """ Native value to bytes for the wire. """
        raise NotImplementedError

    def decode_to_native(self, data):
        """
        Bytes from a bulk reply to a native value.
        It should always be the reverse operation of `encode_from_native`.
        """
        raise NotImplementedError

    def encode_all(self, values):
        """ Encode every value of an iterable, for multi-argument commands. """
        return [ self.encode_from_native(v) for v in values ]

    def decode_reply(self, reply):
        """
        Turn a bulk reply into a native value. ``Nil`` (missing key) becomes
        ``None``. Any other reply is a :class:`TypeError`: the command
        answered with something we didn't ask for.
        """
        if reply is Nil:
            return None
        if not isinstance(reply, BulkReply):
            raise TypeError('Expected a bulk reply, got %r' % (reply, ))
        return self.decode_to_native(reply.data)

    def decode_multi_bulk(self, reply):
        """ Multi bulk of bulk replies to a list of native values. """
        if not isinstance(reply, MultiBulkReply):
            raise TypeError('Expected a multi bulk reply, got %r' % (reply, ))
        return [ self.decode_reply(item) for item in reply ]

    def __repr__(self):
        return '%s()' % self.__class__.__name__


class BytesEncoder(BaseEncoder):
    """
    No translation at all. Keys and values are ``bytes``; ``bytearray`` and
    ``memoryview`` arguments are accepted too.
    """
    native_type = bytes

    def encode_from_native(self, data):
        return bytes(data)

    def decode_to_native(self, data):
        return data


class StringEncoder(BaseEncoder):
    """
    Abstract base class for encoders that map ``str`` to bytes using a
    character encoding.
    """
    #: Codec name, set by subclasses.
    encoding = None

    #: Error handler passed to ``str.encode`` / ``bytes.decode``. With
    #: 'surrogateescape', binary values survive a round trip through ``str``.
    errors = 'strict'

    native_type = str

    def __init__(self, errors=None):
        if errors is not None:
            self.errors = errors

    def encode_from_native(self, data):
        return data.encode(self.encoding, self.errors)

    def decode_to_native(self, data):
        return data.decode(self.encoding, self.errors)

    def __repr__(self):
        return '%s(errors=%r)' % (self.__class__.__name__, self.errors)


class UTF8Encoder(StringEncoder):
    """
    Encode strings to and from utf-8 bytes. (The default.)
    """
    encoding = 'utf-8'

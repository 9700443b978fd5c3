"""
The reply model. Every command answers with exactly one of these.

At the protocol level a reply is one of: ``Nil``, a status line, an integer,
a bulk string, a multi bulk (array of replies) or an error reply.
"""

__all__ = (
    'BulkReply',
    'ErrorReply',
    'IntegerReply',
    'MultiBulkReply',
    'Nil',
    'NilReply',
    'Reply',
    'StatusReply',
)


class Reply:
    """
    Base class for all replies.
    """
    __slots__ = ()

    def _key(self):
        raise NotImplementedError

    def __eq__(self, other):
        return type(self) is type(other) and self._key() == other._key()

    def __ne__(self, other):
        return not self == other

    def __hash__(self):
        return hash((type(self), self._key()))


class NilReply(Reply):
    """
    Absent value. (Null bulk ``$-1`` or null multi bulk ``*-1``.)
    Use the ``Nil`` singleton.
    """
    __slots__ = ()
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _key(self):
        return None

    def __bool__(self):
        return False

    def __repr__(self):
        return 'Nil'

Nil = NilReply()


class StatusReply(Reply):
    """
    Wrapper for Redis status replies.
    (for messages like OK, QUEUED, etc...)
    """
    __slots__ = ('status', )

    def __init__(self, status):
        self.status = status

    def _key(self):
        return self.status

    def __repr__(self):
        return 'StatusReply(status=%r)' % self.status


class IntegerReply(Reply):
    __slots__ = ('value', )

    def __init__(self, value):
        self.value = value

    def _key(self):
        return self.value

    def __int__(self):
        return self.value

    def __repr__(self):
        return 'IntegerReply(value=%r)' % self.value


class BulkReply(Reply):
    """ Binary safe string. """
    __slots__ = ('data', )

    def __init__(self, data):
        self.data = bytes(data)

    def _key(self):
        return self.data

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        return 'BulkReply(data=%r)' % self.data


class MultiBulkReply(Reply):
    """
    Container for a multi bulk reply. The number of items is known up front;
    items can be nested multi bulk replies or ``Nil``.
    """
    __slots__ = ('items', )

    def __init__(self, items):
        self.items = tuple(items)

    def _key(self):
        return self.items

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def __repr__(self):
        return 'MultiBulkReply(items=%r)' % (self.items, )


class ErrorReply(Reply):
    """
    The server returned an error line. ``kind`` is the leading error token,
    like ``ERR`` or ``WRONGTYPE``.
    """
    __slots__ = ('kind', 'message')

    #: Kind used when the server didn't send an error token.
    GENERIC_KIND = 'ERR'

    def __init__(self, kind, message):
        self.kind = kind
        self.message = message

    @classmethod
    def from_line(cls, line):
        """
        Split an error line (without the leading '-') into kind and message.
        A line that consists of only an upper case token, like ``NOAUTH``, is
        a kind without message.
        """
        token, _, rest = line.partition(' ')
        if token.isupper():
            return cls(token, rest)
        else:
            return cls(cls.GENERIC_KIND, line)

    def _key(self):
        return (self.kind, self.message)

    def __repr__(self):
        return 'ErrorReply(kind=%r, message=%r)' % (self.kind, self.message)

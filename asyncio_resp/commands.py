"""
Convenience methods: one method per Redis command.

These are thin wrappers around ``execute``. They encode native arguments
through the encoder of the client and turn the reply into a Python value.
Server error replies are raised as
:class:`~asyncio_resp.exceptions.ServerRejectedError` by ``execute``.
"""
import types
from functools import wraps
from inspect import signature

from .replies import BulkReply, IntegerReply, MultiBulkReply, Nil, StatusReply

__all__ = (
    'Commands',
    'ZAggregate',
    'ZScoreBoundary',
)

NoneType = type(None)


class ZScoreBoundary:
    """
    Score boundary for a sorted set.
    for queries like zremrangebyscore

    :param value: Value for the boundary.
    :type value: float
    :param exclude_boundary: Exclude the boundary.
    :type exclude_boundary: bool
    """
    def __init__(self, value, exclude_boundary=False):
        assert isinstance(value, (int, float)) or value in ('+inf', '-inf')
        self.value = value
        self.exclude_boundary = exclude_boundary

    def __repr__(self):
        return 'ZScoreBoundary(value=%r, exclude_boundary=%r)' % (
                    self.value, self.exclude_boundary)

ZScoreBoundary.MIN_VALUE = ZScoreBoundary('-inf')
ZScoreBoundary.MAX_VALUE = ZScoreBoundary('+inf')


class ZAggregate:
    """
    Aggregation method for zinterstore and zunionstore.
    """
    #: Sum aggregation.
    SUM = 'SUM'

    #: Min aggregation.
    MIN = 'MIN'

    #: Max aggregation.
    MAX = 'MAX'


class ListOf:
    """ Annotation helper for command methods. """
    def __init__(self, type_):
        self.type = type_

    def __repr__(self):
        return 'ListOf(%r)' % self.type


class NativeType:
    """
    Constant which represents the native Python type of the encoder.
    """
    def __new__(cls):
        raise Exception('NativeType is not meant to be initialized.')


# List of all command methods.
_all_commands = []


def _get_real_type(client, type_):
    """
    Given a client instance, and type annotation, return something that
    we can pass to isinstance for the typechecking.
    """
    if isinstance(type_, tuple):
        return tuple(_get_real_type(client, t) for t in type_)

    if type_ is NativeType:
        return client.encoder.native_type
    elif isinstance(type_, ListOf):
        return (list, tuple, types.GeneratorType) # We don't check the content of the list.
    else:
        return type_


def _command(method):
    """
    Register `method` as command and check the argument types against its
    annotations before running it.
    """
    sig = signature(method)
    params = { name: p.annotation for name, p in sig.parameters.items()
               if p.annotation is not p.empty }

    @wraps(method)
    async def wrapper(self, *a, **kw):
        if self.enable_typechecking:
            for name, value in sig.bind(self, *a, **kw).arguments.items():
                if name in params:
                    real_type = _get_real_type(self, params[name])
                    if not isinstance(value, real_type):
                        raise TypeError('%s received %r, expected %r' %
                                        (method.__name__, type(value).__name__, real_type))
        return await method(self, *a, **kw)

    _all_commands.append(method.__name__)
    return wrapper


def _expect(reply, *types_):
    if not isinstance(reply, types_):
        raise TypeError('Got unexpected reply %r, expected %r' % (reply, types_))
    return reply


def _encode_int(value):
    """ Encodes an integer to bytes. (always ascii) """
    return str(int(value)).encode('ascii')


def _encode_float(value):
    """ Encodes a float to bytes. (always ascii) """
    return repr(float(value)).encode('ascii')


def _encode_zscore_boundary(value):
    """ Encodes a zscore boundary. (always ascii) """
    if not isinstance(value, ZScoreBoundary):
        value = ZScoreBoundary(value)

    if isinstance(value.value, str):
        return value.value.encode('ascii') # +inf and -inf
    elif value.exclude_boundary:
        return ('(%r' % float(value.value)).encode('ascii')
    else:
        return _encode_float(value.value)


class Commands:
    """
    Mixin with the per-command methods. Expects ``execute``, ``encoder`` and
    ``enable_typechecking`` on the class it's mixed into.
    """
    # === Reply post processing. ===

    def _encode(self, value):
        return self.encoder.encode_from_native(value)

    def _encode_all(self, values):
        return self.encoder.encode_all(values)

    def _to_native(self, reply):
        """ Bulk reply to native type, Nil to None. """
        return self.encoder.decode_reply(reply)

    def _to_list(self, reply):
        return self.encoder.decode_multi_bulk(reply)

    def _to_set(self, reply):
        return set(self._to_list(reply))

    @staticmethod
    def _to_int(reply):
        return _expect(reply, IntegerReply).value

    @staticmethod
    def _to_int_or_none(reply):
        if reply is Nil:
            return None
        return _expect(reply, IntegerReply).value

    @staticmethod
    def _to_bool(reply):
        return bool(_expect(reply, IntegerReply).value)

    @staticmethod
    def _to_float_or_none(reply):
        if reply is Nil:
            return None
        return float(_expect(reply, BulkReply).data)

    @staticmethod
    def _to_status(reply):
        return _expect(reply, StatusReply)

    # === Connection ===

    @_command
    async def ping(self) -> StatusReply:
        """ Ping the server (Returns PONG) """
        return self._to_status(await self.execute(b'PING'))

    @_command
    async def echo(self, string:NativeType) -> NativeType:
        """ Echo the given string """
        return self._to_native(await self.execute(b'ECHO', self._encode(string)))

    @_command
    async def auth(self, password:NativeType) -> StatusReply:
        """ Authenticate to the server """
        return self._to_status(await self.execute(b'AUTH', self._encode(password)))

    @_command
    async def select(self, db:int) -> StatusReply:
        """ Change the selected database for the current connection """
        return self._to_status(await self.execute(b'SELECT', _encode_int(db)))

    # === Keys ===

    @_command
    async def exists(self, key:NativeType) -> bool:
        """ Determine if a key exists """
        return self._to_bool(await self.execute(b'EXISTS', self._encode(key)))

    @_command
    async def delete(self, keys:ListOf(NativeType)) -> int:
        """ Delete a key """
        return self._to_int(await self.execute(b'DEL', *self._encode_all(keys)))

    @_command
    async def type(self, key:NativeType) -> str:
        """ Determine the type stored at key ('string', 'list', 'none', ...) """
        return self._to_status(await self.execute(b'TYPE', self._encode(key))).status

    @_command
    async def keys(self, pattern:NativeType) -> list:
        """ Find all keys matching the given pattern. """
        return self._to_list(await self.execute(b'KEYS', self._encode(pattern)))

    @_command
    async def randomkey(self) -> (NativeType, NoneType):
        """ Return a random key from the keyspace """
        return self._to_native(await self.execute(b'RANDOMKEY'))

    @_command
    async def rename(self, key:NativeType, newkey:NativeType) -> StatusReply:
        """ Rename a key """
        return self._to_status(await self.execute(b'RENAME', self._encode(key), self._encode(newkey)))

    @_command
    async def renamenx(self, key:NativeType, newkey:NativeType) -> bool:
        """ Rename a key, only if the new key does not exist """
        return self._to_bool(await self.execute(b'RENAMENX', self._encode(key), self._encode(newkey)))

    @_command
    async def dbsize(self) -> int:
        """ Return the number of keys in the currently-selected database. """
        return self._to_int(await self.execute(b'DBSIZE'))

    @_command
    async def expire(self, key:NativeType, seconds:int) -> bool:
        """
        Set a key's time to live in seconds.
        Returns False when the key does not exist.
        """
        return self._to_bool(await self.execute(b'EXPIRE', self._encode(key), _encode_int(seconds)))

    @_command
    async def ttl(self, key:NativeType) -> int:
        """
        Get the time to live for a key.
        (-1 when the key has no expire, -2 when the key does not exist.)
        """
        return self._to_int(await self.execute(b'TTL', self._encode(key)))

    @_command
    async def move(self, key:NativeType, database:int) -> bool:
        """
        Move a key to another database.
        Returns False when the key wasn't moved (missing here, or present there).
        """
        return self._to_bool(await self.execute(b'MOVE', self._encode(key), _encode_int(database)))

    @_command
    async def flushdb(self) -> StatusReply:
        """ Delete all the keys of the currently selected DB. This command never fails. """
        return self._to_status(await self.execute(b'FLUSHDB'))

    @_command
    async def flushall(self) -> StatusReply:
        """ Remove all keys from all databases """
        return self._to_status(await self.execute(b'FLUSHALL'))

    # === Strings ===

    @_command
    async def set(self, key:NativeType, value:NativeType) -> StatusReply:
        """ Set the string value of a key """
        return self._to_status(await self.execute(b'SET', self._encode(key), self._encode(value)))

    @_command
    async def get(self, key:NativeType) -> (NativeType, NoneType):
        """ Get the value of a key """
        return self._to_native(await self.execute(b'GET', self._encode(key)))

    @_command
    async def getset(self, key:NativeType, value:NativeType) -> (NativeType, NoneType):
        """ Set the string value of a key and return its old value """
        return self._to_native(await self.execute(b'GETSET', self._encode(key), self._encode(value)))

    @_command
    async def mget(self, keys:ListOf(NativeType)) -> list:
        """ Returns the values of all specified keys. (None for missing keys.) """
        return self._to_list(await self.execute(b'MGET', *self._encode_all(keys)))

    @_command
    async def setnx(self, key:NativeType, value:NativeType) -> bool:
        """ Set the string value of a key if it does not exist.
        Returns True if value is successfully set """
        return self._to_bool(await self.execute(b'SETNX', self._encode(key), self._encode(value)))

    @_command
    async def incr(self, key:NativeType) -> int:
        """ Increment the integer value of a key by one """
        return self._to_int(await self.execute(b'INCR', self._encode(key)))

    @_command
    async def incrby(self, key:NativeType, increment:int) -> int:
        """ Increment the integer value of a key by the given amount """
        return self._to_int(await self.execute(b'INCRBY', self._encode(key), _encode_int(increment)))

    @_command
    async def decr(self, key:NativeType) -> int:
        """ Decrement the integer value of a key by one """
        return self._to_int(await self.execute(b'DECR', self._encode(key)))

    @_command
    async def decrby(self, key:NativeType, increment:int) -> int:
        """ Decrement the integer value of a key by the given number """
        return self._to_int(await self.execute(b'DECRBY', self._encode(key), _encode_int(increment)))

    @_command
    async def append(self, key:NativeType, value:NativeType) -> int:
        """ Append a value to a key. Returns the new length. """
        return self._to_int(await self.execute(b'APPEND', self._encode(key), self._encode(value)))

    @_command
    async def getrange(self, key:NativeType, start:int=0, end:int=-1) -> NativeType:
        """ Get a substring of the string stored at a key (both offsets inclusive) """
        return self._to_native(await self.execute(b'GETRANGE', self._encode(key),
                                                  _encode_int(start), _encode_int(end)))

    # === Lists ===

    @_command
    async def rpush(self, key:NativeType, values:ListOf(NativeType)) -> int:
        """ Append one or multiple values to a list. Returns the new length. """
        return self._to_int(await self.execute(b'RPUSH', self._encode(key), *self._encode_all(values)))

    @_command
    async def lpush(self, key:NativeType, values:ListOf(NativeType)) -> int:
        """ Prepend one or multiple values to a list. Returns the new length. """
        return self._to_int(await self.execute(b'LPUSH', self._encode(key), *self._encode_all(values)))

    @_command
    async def llen(self, key:NativeType) -> int:
        """ Returns the length of the list stored at key. """
        return self._to_int(await self.execute(b'LLEN', self._encode(key)))

    @_command
    async def lrange(self, key:NativeType, start:int=0, stop:int=-1) -> list:
        """ Get a range of elements from a list. """
        return self._to_list(await self.execute(b'LRANGE', self._encode(key),
                                                _encode_int(start), _encode_int(stop)))

    @_command
    async def ltrim(self, key:NativeType, start:int=0, stop:int=-1) -> StatusReply:
        """ Trim a list to the specified range """
        return self._to_status(await self.execute(b'LTRIM', self._encode(key),
                                                  _encode_int(start), _encode_int(stop)))

    @_command
    async def lindex(self, key:NativeType, index:int) -> (NativeType, NoneType):
        """ Get an element from a list by its index """
        return self._to_native(await self.execute(b'LINDEX', self._encode(key), _encode_int(index)))

    @_command
    async def lset(self, key:NativeType, index:int, value:NativeType) -> StatusReply:
        """ Set the value of an element in a list by its index. """
        return self._to_status(await self.execute(b'LSET', self._encode(key),
                                                  _encode_int(index), self._encode(value)))

    @_command
    async def lrem(self, key:NativeType, value:NativeType, count:int=0) -> int:
        """
        Remove elements from a list.
        count > 0 removes from head to tail, count < 0 from tail to head,
        count == 0 removes all occurrences.
        """
        return self._to_int(await self.execute(b'LREM', self._encode(key),
                                               _encode_int(count), self._encode(value)))

    @_command
    async def lpop(self, key:NativeType) -> (NativeType, NoneType):
        """ Remove and get the first element in a list """
        return self._to_native(await self.execute(b'LPOP', self._encode(key)))

    @_command
    async def rpop(self, key:NativeType) -> (NativeType, NoneType):
        """ Remove and get the last element in a list """
        return self._to_native(await self.execute(b'RPOP', self._encode(key)))

    # === Sets ===

    @_command
    async def sadd(self, key:NativeType, members:ListOf(NativeType)) -> int:
        """ Add one or more members to a set """
        return self._to_int(await self.execute(b'SADD', self._encode(key), *self._encode_all(members)))

    @_command
    async def srem(self, key:NativeType, members:ListOf(NativeType)) -> int:
        """ Remove one or more members from a set """
        return self._to_int(await self.execute(b'SREM', self._encode(key), *self._encode_all(members)))

    @_command
    async def spop(self, key:NativeType) -> (NativeType, NoneType):
        """ Removes and returns a random element from the set value stored at key. """
        return self._to_native(await self.execute(b'SPOP', self._encode(key)))

    @_command
    async def smove(self, source:NativeType, destination:NativeType, member:NativeType) -> bool:
        """ Move a member from one set to another """
        return self._to_bool(await self.execute(b'SMOVE', self._encode(source),
                                                self._encode(destination), self._encode(member)))

    @_command
    async def scard(self, key:NativeType) -> int:
        """ Get the number of members in a set """
        return self._to_int(await self.execute(b'SCARD', self._encode(key)))

    @_command
    async def sismember(self, key:NativeType, value:NativeType) -> bool:
        """ Determine if a given value is a member of a set """
        return self._to_bool(await self.execute(b'SISMEMBER', self._encode(key), self._encode(value)))

    @_command
    async def smembers(self, key:NativeType) -> 'set':
        """ Get all the members in a set """
        return self._to_set(await self.execute(b'SMEMBERS', self._encode(key)))

    @_command
    async def sinter(self, keys:ListOf(NativeType)) -> 'set':
        """ Intersect multiple sets """
        return self._to_set(await self.execute(b'SINTER', *self._encode_all(keys)))

    @_command
    async def sinterstore(self, destination:NativeType, keys:ListOf(NativeType)) -> int:
        """ Intersect multiple sets and store the resulting set in a key """
        return self._to_int(await self.execute(b'SINTERSTORE', self._encode(destination),
                                               *self._encode_all(keys)))

    @_command
    async def sunion(self, keys:ListOf(NativeType)) -> 'set':
        """ Add multiple sets """
        return self._to_set(await self.execute(b'SUNION', *self._encode_all(keys)))

    @_command
    async def sunionstore(self, destination:NativeType, keys:ListOf(NativeType)) -> int:
        """ Add multiple sets and store the resulting set in a key """
        return self._to_int(await self.execute(b'SUNIONSTORE', self._encode(destination),
                                               *self._encode_all(keys)))

    @_command
    async def sdiff(self, keys:ListOf(NativeType)) -> 'set':
        """ Subtract multiple sets """
        return self._to_set(await self.execute(b'SDIFF', *self._encode_all(keys)))

    @_command
    async def sdiffstore(self, destination:NativeType, keys:ListOf(NativeType)) -> int:
        """ Subtract multiple sets and store the resulting set in a key """
        return self._to_int(await self.execute(b'SDIFFSTORE', self._encode(destination),
                                               *self._encode_all(keys)))

    # === Sorted sets ===

    @_command
    async def zadd(self, key:NativeType, values:dict) -> int:
        """
        Add one or more members to a sorted set, or update its score if it
        already exists

        ::

            await client.zadd('myzset', { 'key': 4, 'key2': 5 })
        """
        data = [ ]
        for member, score in values.items():
            data.append(_encode_float(score))
            data.append(self._encode(member))

        return self._to_int(await self.execute(b'ZADD', self._encode(key), *data))

    @_command
    async def zrem(self, key:NativeType, members:ListOf(NativeType)) -> int:
        """ Remove one or more members from a sorted set """
        return self._to_int(await self.execute(b'ZREM', self._encode(key), *self._encode_all(members)))

    @_command
    async def zincrby(self, key:NativeType, increment:(int, float), member:NativeType) -> float:
        """ Increment the score of a member in a sorted set. Returns the new score. """
        reply = await self.execute(b'ZINCRBY', self._encode(key),
                                   _encode_float(increment), self._encode(member))
        return float(_expect(reply, BulkReply).data)

    @_command
    async def zrank(self, key:NativeType, member:NativeType) -> (int, NoneType):
        """ Determine the index of a member in a sorted set (None if not a member) """
        return self._to_int_or_none(await self.execute(b'ZRANK', self._encode(key), self._encode(member)))

    @_command
    async def zrevrank(self, key:NativeType, member:NativeType) -> (int, NoneType):
        """ Determine the index of a member in a sorted set, with scores ordered from high to low """
        return self._to_int_or_none(await self.execute(b'ZREVRANK', self._encode(key), self._encode(member)))

    async def _zrange(self, name, key, start, stop, withscores):
        args = [ self._encode(key), _encode_int(start), _encode_int(stop) ]
        if withscores:
            args.append(b'WITHSCORES')

        reply = _expect(await self.execute(name, *args), MultiBulkReply)

        if withscores:
            # Flat list of member, score pairs.
            items = reply.items
            return [ (self._to_native(m), float(_expect(s, BulkReply).data))
                     for m, s in zip(items[::2], items[1::2]) ]
        else:
            return self._to_list(reply)

    @_command
    async def zrange(self, key:NativeType, start:int=0, stop:int=-1, withscores:bool=False) -> list:
        """
        Return a range of members in a sorted set, by index.
        With `withscores`, a list of (member, score) tuples is returned.
        """
        return await self._zrange(b'ZRANGE', key, start, stop, withscores)

    @_command
    async def zrevrange(self, key:NativeType, start:int=0, stop:int=-1, withscores:bool=False) -> list:
        """
        Return a range of members in a reversed sorted set, by index.
        With `withscores`, a list of (member, score) tuples is returned.
        """
        return await self._zrange(b'ZREVRANGE', key, start, stop, withscores)

    @_command
    async def zcard(self, key:NativeType) -> int:
        """ Get the number of members in a sorted set """
        return self._to_int(await self.execute(b'ZCARD', self._encode(key)))

    @_command
    async def zscore(self, key:NativeType, member:NativeType) -> (float, NoneType):
        """ Get the score associated with the given member in a sorted set """
        return self._to_float_or_none(await self.execute(b'ZSCORE', self._encode(key), self._encode(member)))

    @_command
    async def zremrangebyscore(self, key:NativeType,
                               min:(ZScoreBoundary, int, float)=ZScoreBoundary.MIN_VALUE,
                               max:(ZScoreBoundary, int, float)=ZScoreBoundary.MAX_VALUE) -> int:
        """ Remove all members in a sorted set within the given scores """
        return self._to_int(await self.execute(b'ZREMRANGEBYSCORE', self._encode(key),
                                               _encode_zscore_boundary(min),
                                               _encode_zscore_boundary(max)))

    @_command
    async def zremrangebyrank(self, key:NativeType, start:int=0, stop:int=-1) -> int:
        """ Remove all members in a sorted set within the given indexes """
        return self._to_int(await self.execute(b'ZREMRANGEBYRANK', self._encode(key),
                                               _encode_int(start), _encode_int(stop)))

    async def _zstore(self, name, destination, keys, weights, aggregate):
        """ Common part for zunionstore and zinterstore. """
        keys = list(keys)
        args = [ self._encode(destination), _encode_int(len(keys)) ] + self._encode_all(keys)

        if weights is not None:
            weights = list(weights)
            if len(weights) != len(keys):
                raise ValueError('Expected %i weights, got %i' % (len(keys), len(weights)))
            args.append(b'WEIGHTS')
            args += [ _encode_float(w) for w in weights ]

        if aggregate:
            assert aggregate in (ZAggregate.SUM, ZAggregate.MIN, ZAggregate.MAX)
            args += [ b'AGGREGATE', aggregate.encode('ascii') ]

        return self._to_int(await self.execute(name, *args))

    @_command
    async def zunionstore(self, destination:NativeType, keys:ListOf(NativeType),
                          weights:(ListOf(int), NoneType)=None, aggregate=ZAggregate.SUM) -> int:
        """ Add multiple sorted sets and store the resulting sorted set in a new key """
        return await self._zstore(b'ZUNIONSTORE', destination, keys, weights, aggregate)

    @_command
    async def zinterstore(self, destination:NativeType, keys:ListOf(NativeType),
                          weights:(ListOf(int), NoneType)=None, aggregate=ZAggregate.SUM) -> int:
        """ Intersect multiple sorted sets and store the resulting sorted set in a new key """
        return await self._zstore(b'ZINTERSTORE', destination, keys, weights, aggregate)

import fnmatch
import json
from dataclasses import dataclass, field

import pytest
import redis

from orimod.redis_module import RedisConfig, RedisError, RedisModule


def _enc(value):
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value).encode()
    raise redis.exceptions.DataError("invalid input")


class FakePipeline:
    def __init__(self, store):
        self._store = store
        self._ops = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self._ops.clear()

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self

        return queue

    def execute(self):
        results = [getattr(self._store, name)(*a, **k) for name, a, k in self._ops]
        self._ops.clear()
        return results


class FakeRedis:
    def __init__(self):
        self.strings = {}
        self.hashes = {}
        self.ttl = {}
        self.closed = False

    def ping(self):
        return True

    def close(self):
        self.closed = True

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def set(self, name, value, ex=None):
        key = _enc(name)
        self.strings[key] = _enc(value)
        if ex is not None:
            self.ttl[key] = ex
        return True

    def get(self, name):
        return self.strings.get(_enc(name))

    def exists(self, *names):
        return sum(1 for n in names if _enc(n) in self.strings or _enc(n) in self.hashes)

    def delete(self, *names):
        removed = 0
        for n in names:
            key = _enc(n)
            if self.strings.pop(key, None) is not None or self.hashes.pop(key, None) is not None:
                removed += 1
        return removed

    def hset(self, name, key=None, value=None, mapping=None):
        h = self.hashes.setdefault(_enc(name), {})
        items = dict(mapping or {})
        if key is not None:
            items[key] = value
        added = 0
        for k, v in items.items():
            if _enc(k) not in h:
                added += 1
            h[_enc(k)] = _enc(v)
        return added

    def hgetall(self, name):
        return dict(self.hashes.get(_enc(name), {}))

    def hget(self, name, key):
        return self.hashes.get(_enc(name), {}).get(_enc(key))

    def hmget(self, name, keys):
        h = self.hashes.get(_enc(name), {})
        return [h.get(_enc(k)) for k in keys]

    def hdel(self, name, *keys):
        h = self.hashes.get(_enc(name), {})
        return sum(1 for k in keys if h.pop(_enc(k), None) is not None)

    def hincrby(self, name, key, amount=1):
        h = self.hashes.setdefault(_enc(name), {})
        try:
            current = int(h.get(_enc(key), b"0"))
        except ValueError:
            raise redis.exceptions.ResponseError("hash value is not an integer")
        h[_enc(key)] = _enc(current + amount)
        return current + amount

    def expire(self, name, time):
        key = _enc(name)
        if key in self.strings or key in self.hashes:
            self.ttl[key] = time
            return True
        return False

    def _all_keys(self):
        return sorted(set(self.strings) | set(self.hashes))

    def scan(self, cursor=0, match=None, count=None):
        found = [k for k in self._all_keys() if fnmatch.fnmatchcase(k.decode(), match or "*")]
        return 0, found

    def keys(self, pattern="*"):
        return [k for k in self._all_keys() if fnmatch.fnmatchcase(k.decode(), pattern)]


@pytest.fixture
def fake():
    return FakeRedis()


@pytest.fixture
def module(fake):
    return RedisModule(client=fake)


def test_source_example_strings(module, fake):
    module.set_string("key1", "value1")
    module.set_string(1000, 2 * 1000)
    module.set_string_expire("key2", "value2", "60")
    assert module.get_string("key1") == "value1"
    assert module.get_string(1000) == "2000"
    assert module.get_string("key2") == "value2"
    assert fake.ttl[b"key2"] == 60
    assert b"key1" not in fake.ttl


def test_set_string_empty_key_raises(module):
    with pytest.raises(RedisError, match="key is empty"):
        module.set_string("", "v")


def test_set_string_expire_invalid_raises(module):
    with pytest.raises(RedisError):
        module.set_string_expire("k", "v", "soon")


def test_string_json_round_trip(module, fake):
    module.set_string_json("key3", {"A": "Aaaa", "B": "Bbbb"})
    assert fake.strings[b"key3"] == b'{"A":"Aaaa","B":"Bbbb"}'
    assert module.get_string_json("key3") == {"A": "Aaaa", "B": "Bbbb"}


def test_string_json_dataclass(module):
    @dataclass
    class Pair:
        A: str
        B: str

    module.set_string_json_expire("key3", Pair("Aaaa", "Bbbb"), 30)
    assert module.get_string_json("key3") == {"A": "Aaaa", "B": "Bbbb"}


def test_get_string_json_missing_and_invalid(module):
    with pytest.raises(RedisError, match="not exist"):
        module.get_string_json("nope")
    module.set_string("bad", "not json")
    with pytest.raises(RedisError):
        module.get_string_json("bad")


def test_hset_struct_round_trip(module):
    module.hset_struct("skey", {"a": "ccc", "b": 1})
    assert module.hget_struct("skey") == {"a": "ccc", "b": "1"}


def test_hset_struct_dataclass_uses_redis_names(module):
    @dataclass
    class Item:
        A: str = field(metadata={"redis": "a"})
        B: int = field(metadata={"redis": "b"})
        C: bool = False

    module.hset_struct("skey", Item("ccc", 1, True))
    assert module.hget_struct("skey") == {"a": "ccc", "b": "1", "C": "1"}


def test_set_string_map_and_read_back(module):
    module.set_string_map({"key4": "value4", "key5": "value5", 1: 4})
    assert module.get_string(1) == "4"
    assert module.get_string("key5") == "value5"


def test_set_much_string_expire(module, fake):
    module.set_much_string_expire({"a": "1", "b": "2"}, "10")
    assert module.get_string("a") == "1"
    assert module.get_string("b") == "2"
    assert fake.ttl[b"a"] == 10
    assert fake.ttl[b"b"] == 10


def test_set_string_map_empty_raises(module):
    with pytest.raises(RedisError):
        module.set_string_map({})


def test_get_string_missing_raises(module):
    with pytest.raises(RedisError, match="not exist"):
        module.get_string("missing")


def test_get_string_map(module):
    module.set_string("key1", "value1")
    module.set_string("key2", "value2")
    result = module.get_string_map(["key1", "key2", "key3"])
    assert result == {"key1": "value1", "key2": "value2", "key3": ""}
    with pytest.raises(RedisError):
        module.get_string_map([])


def test_exists_key(module):
    module.set_string(1, 4)
    assert module.exists_key(1) is True
    assert module.exists_key(2) is False


def test_del_string(module):
    module.set_string("k", "v")
    module.del_string("k")
    assert module.exists_key("k") is False
    with pytest.raises(RedisError, match="not exists"):
        module.del_string("k")


def test_del_string_key_list(module):
    module.set_string("key3", "v")
    assert module.del_string_key_list(["key3", "key9"]) == {"key3": True, "key9": False}
    with pytest.raises(RedisError):
        module.del_string_key_list([])


def test_hash_operations(module):
    module.set_hash("rediskey", "field", 33)
    assert module.get_hash("rediskey", "field") == "33"
    module.set_hash_map_json("rediskey", {"key4": "value4", "key5": "value5", 1: 4})
    assert module.get_all_hash_json("rediskey") == {
        "field": "33",
        "key4": '"value4"',
        "key5": '"value5"',
        "1": "4",
    }


def test_set_hash_map_json_skips_unencodable(module):
    module.set_hash_map_json("h", {"ok": [1, 2], "bad": object()})
    assert module.get_all_hash_json("h") == {"ok": "[1,2]"}


def test_hash_empty_keys_raise(module):
    with pytest.raises(RedisError):
        module.set_hash("", "f", 1)
    with pytest.raises(RedisError):
        module.get_hash("k", "")
    with pytest.raises(RedisError):
        module.get_all_hash_json("")
    with pytest.raises(RedisError):
        module.set_hash_map_json("k", {})


def test_get_hash_missing_raises(module):
    with pytest.raises(RedisError, match="nil"):
        module.get_hash("rediskey", "nofield")


def test_get_much_hash(module):
    module.set_hash("rediskey", "field", 33)
    assert module.get_much_hash("rediskey", "field1", "field2") == ["", ""]
    assert module.get_much_hash("rediskey", "field", "x") == ["33", ""]
    with pytest.raises(RedisError):
        module.get_much_hash("rediskey")


def test_del_hash(module):
    module.set_hash("rediskey", "field1", 1)
    module.set_hash("rediskey", "field2", 2)
    assert module.del_hash("rediskey", "field1", "field2") == 2
    assert module.get_much_hash("rediskey", "field1", "field2") == ["", ""]


def test_scan_match_keys(module):
    module.set_string("user:1", "a")
    module.set_string("user:2", "b")
    module.set_string("other", "c")
    assert module.scan_match_keys(0, "user:*", 10) == (0, ["user:1", "user:2"])
    with pytest.raises(RedisError):
        module.scan_match_keys(0, "", 10)


def test_hincrby_hash_int(module):
    module.hincrby_hash_int("h", "n", 5)
    module.hincrby_hash_int("h", "n", 2)
    assert module.get_hash("h", "n") == "7"


def test_hincrby_wraps_server_error(module):
    module.set_hash("h", "s", "text")
    with pytest.raises(RedisError) as info:
        module.hincrby_hash_int("h", "s", 1)
    assert isinstance(info.value.__cause__, redis.exceptions.ResponseError)


def test_expire_and_keys(module, fake):
    module.set_string("b", "1")
    module.set_string("a", "2")
    module.expire("a", 120)
    assert fake.ttl[b"a"] == 120
    assert module.keys("*") == ["a", "b"]


def test_ping(module):
    assert module.test_ping() is True


def test_uninitialised_module_raises():
    module = RedisModule()
    with pytest.raises(RedisError, match="not Init"):
        module.get_string("k")


def test_close_closes_client(fake):
    with RedisModule(client=fake) as module:
        module.set_string("k", "v")
    assert fake.closed is True


def test_client_built_from_config():
    module = RedisModule(RedisConfig(ip="127.0.0.1", port=6380, db_index=2))
    kwargs = module.client.connection_pool.connection_kwargs
    assert kwargs["port"] == 6380
    assert kwargs["db"] == 2
    assert kwargs["host"] == "127.0.0.1"


def test_client_with_max_active_uses_blocking_pool():
    module = RedisModule(RedisConfig(max_active=5))
    pool = module.client.connection_pool
    assert isinstance(pool, redis.BlockingConnectionPool)
    assert pool.max_connections == 5


def test_json_value_is_compact(module, fake):
    module.set_string_json("j", [1, {"x": "é"}])
    assert module.get_string_json("j") == [1, {"x": "é"}]
    assert module.get_string("j") == '[1,{"x":"é"}]'
    assert json.loads(fake.strings[b"j"]) == [1, {"x": "é"}]
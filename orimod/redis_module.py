"""Redis access for strings, hashes and keys over a shared connection pool."""

from __future__ import annotations

import dataclasses
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

import redis

log = logging.getLogger(__name__)

_HEALTH_CHECK_SECONDS = 60
_NO_EXPIRE = "-1"

Expire = Union[str, int]


class RedisError(Exception):
    """Raised when a Redis operation fails or returns unexpected data."""


@dataclass
class RedisConfig:
    """Connection settings for a Redis server."""

    ip: str = "127.0.0.1"
    port: int = 6379
    password: str = ""
    db_index: int = 0
    max_idle: int = 0
    max_active: int = 0
    idle_timeout: int = 0


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _expire_seconds(expire: Expire) -> Optional[int]:
    if str(expire) == _NO_EXPIRE:
        return None
    try:
        return int(expire)
    except (TypeError, ValueError):
        raise RedisError(f"invalid expire value {expire!r}") from None


def _flatten(value: Any) -> dict[Any, Any]:
    if isinstance(value, Mapping):
        items = dict(value)
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        items = {
            f.metadata.get("redis", f.name): getattr(value, f.name)
            for f in dataclasses.fields(value)
        }
    else:
        raise TypeError("value must be a mapping or a dataclass instance")
    return {key: int(v) if isinstance(v, bool) else v for key, v in items.items()}


def _build_client(config: RedisConfig) -> redis.Redis:
    kwargs = dict(
        host=config.ip,
        port=config.port,
        db=config.db_index,
        password=config.password or None,
        health_check_interval=_HEALTH_CHECK_SECONDS,
    )
    if config.max_active > 0:
        pool: redis.ConnectionPool = redis.BlockingConnectionPool(
            max_connections=config.max_active, timeout=None, **kwargs
        )
    else:
        pool = redis.ConnectionPool(**kwargs)
    return redis.Redis(connection_pool=pool)


@contextmanager
def _command(name: str) -> Iterator[None]:
    try:
        yield
    except redis.exceptions.RedisError as exc:
        log.error("%s fail,err:%s", name, exc)
        raise RedisError(f"{name} fail: {exc}") from exc


class RedisModule:
    """String, hash and key commands against one Redis database."""

    def __init__(self, config: Optional[RedisConfig] = None, client: Any = None) -> None:
        self._owns_client = client is None and config is not None
        if client is not None:
            self._client = client
        elif config is not None:
            self._client = _build_client(config)
        else:
            self._client = None

    @property
    def client(self) -> Any:
        return self._conn()

    def _conn(self) -> Any:
        if self._client is None:
            log.error("Not Init RedisModule")
            raise RedisError("not Init RedisModule")
        return self._client

    def test_ping(self) -> bool:
        conn = self._conn()
        with _command("PING"):
            return bool(conn.ping())

    def _set_string_by_expire(self, key: Any, value: Any, expire: Expire) -> None:
        if key == "":
            raise RedisError("key is empty")
        conn = self._conn()
        ex = _expire_seconds(expire)
        with _command("setStringByExpire"):
            ret = conn.set(key, value, ex=ex)
        if not ret:
            log.error("setStringByExpire redis data is error")
            raise RedisError("setStringByExpire redis data is error")

    def set_string(self, key: Any, value: Any) -> None:
        self._set_string_by_expire(key, value, _NO_EXPIRE)

    def set_string_expire(self, key: Any, value: Any, expire: Expire) -> None:
        """Set a value that expires after ``expire`` seconds; "-1" means never."""
        self._set_string_by_expire(key, value, expire)

    def set_string_json(self, key: Any, value: Any) -> None:
        self.set_string_json_expire(key, value, _NO_EXPIRE)

    def set_string_json_expire(self, key: Any, value: Any, expire: Expire) -> None:
        self._set_string_by_expire(key, _to_json(value), expire)

    def hset_struct(self, key: str, value: Any) -> None:
        """Store the fields of a mapping or dataclass as a hash."""
        fields = _flatten(value)
        if not fields:
            raise RedisError("no fields to store")
        conn = self._conn()
        with _command("HSET"):
            conn.hset(key, mapping=fields)

    def hget_struct(self, key: str) -> dict[str, str]:
        """Return every field of a hash as text."""
        conn = self._conn()
        with _command("HGETALL"):
            raw = conn.hgetall(key)
        return {_text(k): _text(v) for k, v in raw.items()}

    def _set_much_string_by_expire(self, mapping: Mapping[Any, Any], expire: Expire) -> None:
        if not mapping:
            log.error("setMuchStringByExpire  Info Is Empty")
            raise RedisError("setMuchStringByExpire  Info Is Empty")
        conn = self._conn()
        ex = _expire_seconds(expire)
        with _command("setMuchStringByExpire"), conn.pipeline(transaction=True) as pipe:
            for key, value in mapping.items():
                pipe.set(key, value, ex=ex)
            pipe.execute()

    def set_string_map(self, mapping: Mapping[Any, Any]) -> None:
        self._set_much_string_by_expire(mapping, _NO_EXPIRE)

    def set_much_string_expire(self, mapping: Mapping[Any, Any], expire: Expire) -> None:
        self._set_much_string_by_expire(mapping, expire)

    def get_string(self, key: Any) -> str:
        conn = self._conn()
        with _command("GetString"):
            ret = conn.get(key)
        if ret is None:
            raise RedisError("GetString key is not exist!")
        return _text(ret)

    def get_string_json(self, key: str) -> Any:
        conn = self._conn()
        with _command("GetStringJSON"):
            ret = conn.get(key)
        if ret is None:
            raise RedisError("GetStringJSON Key is not exist")
        if not isinstance(ret, bytes):
            log.error("GetStringJSON redis data is error!")
            raise RedisError("GetStringJSON redis data is error!")
        try:
            return json.loads(ret)
        except ValueError as exc:
            log.error("GetStringJSON fail json.Unmarshal is error:%s,%r,reason:%s", key, ret, exc)
            raise RedisError(f"GetStringJSON cannot decode {key}: {exc}") from exc

    def get_string_map(self, keys: Sequence[str]) -> dict[str, str]:
        """Read several keys at once; missing keys map to an empty string."""
        if not keys:
            raise RedisError("Func[GetMuchRedisString] Keys Is Empty")
        conn = self._conn()
        with _command("GetMuchString"), conn.pipeline(transaction=True) as pipe:
            for key in keys:
                pipe.get(key)
            results = pipe.execute()
        return {
            key: _text(value) if isinstance(value, bytes) else ""
            for key, value in zip(keys, results)
        }

    def exists_key(self, key: Any) -> bool:
        conn = self._conn()
        with _command("ExistsKey"):
            ret = conn.exists(key)
        if not isinstance(ret, int):
            raise RedisError("Func[ExistsKey] Redis Data Error")
        return ret != 0

    def del_string(self, key: Any) -> None:
        conn = self._conn()
        with _command("DelString"):
            ret = conn.delete(key)
        if not isinstance(ret, int):
            raise RedisError("Func[DelRedisString] Redis Data Error")
        if ret == 0:
            raise RedisError(f"Func[DelRedisString] Delete Key({key}) not exists")

    def del_string_key_list(self, keys: Sequence[Any]) -> dict[Any, bool]:
        """Delete several keys; map each key to whether it existed."""
        if not keys:
            raise RedisError("Func[DelMuchRedisString] Keys Is Empty")
        conn = self._conn()
        with _command("DelMuchString"), conn.pipeline(transaction=True) as pipe:
            for key in keys:
                pipe.delete(key)
            results = pipe.execute()
        return {
            key: isinstance(value, int) and value != 0
            for key, value in zip(keys, results)
        }

    def set_hash(self, redis_key: Any, hash_key: Any, value: Any) -> None:
        if redis_key == "" or hash_key == "":
            raise RedisError("key is empty")
        conn = self._conn()
        with _command("SetHash"):
            conn.hset(redis_key, hash_key, value)

    def get_all_hash_json(self, redis_key: str) -> dict[str, str]:
        if redis_key == "":
            raise RedisError("key is empty")
        return self.hget_struct(redis_key)

    def get_hash(self, redis_key: Any, field_key: Any) -> str:
        if redis_key == "" or field_key == "":
            log.error("GetHashValueByKey key is empty!")
            raise RedisError("key is empty")
        conn = self._conn()
        with _command("GetHashValueByKey"):
            value = conn.hget(redis_key, field_key)
        if value is None:
            raise RedisError("redis get hash nil")
        return _text(value)

    def get_much_hash(self, *args: Any) -> list[str]:
        """Read fields ``args[1:]`` of hash ``args[0]``; missing fields give ""."""
        if len(args) < 2:
            log.error("GetHashValueByHashKeyList key len less than two!")
            raise RedisError("key is empty")
        conn = self._conn()
        with _command("GetHashValueByKey"):
            values = conn.hmget(args[0], list(args[1:]))
        if values is None:
            raise RedisError("redis get hash nil")
        return [_text(v) if isinstance(v, bytes) else "" for v in values]

    def scan_match_keys(self, cursor: int, pattern: str, count: int) -> tuple[int, list[str]]:
        """Run one SCAN step; return the next cursor and the keys found."""
        if pattern == "":
            log.error("ScanMatchKeys key is empty!")
            raise RedisError("key is empty")
        conn = self._conn()
        with _command("ScanMatchKeys"):
            reply = conn.scan(cursor=cursor, match=pattern, count=count)
        if reply is None:
            raise RedisError("redis get hash nil")
        next_cursor, found = reply
        return int(next_cursor), [_text(k) for k in found]

    def set_hash_map_json(self, redis_key: str, mapping: Mapping[Any, Any]) -> None:
        """Store each value as JSON under its field; unencodable values are skipped."""
        if not mapping:
            raise RedisError("Func[SetMuchRedisHashJSON] value Is Empty")
        conn = self._conn()
        with _command("SetMuchHashJSON"), conn.pipeline(transaction=True) as pipe:
            for field_name, value in mapping.items():
                try:
                    encoded = _to_json(value)
                except (TypeError, ValueError):
                    continue
                pipe.hset(redis_key, field_name, encoded)
            pipe.execute()

    def del_hash(self, *args: Any) -> int:
        """Delete fields ``args[1:]`` of hash ``args[0]``; return how many existed."""
        if len(args) < 2:
            raise RedisError("DelMuchHash needs a key and at least one field")
        conn = self._conn()
        with _command("DelMuchHash"):
            return int(conn.hdel(args[0], *args[1:]))

    def hincrby_hash_int(self, redis_key: str, hash_key: str, value: int) -> None:
        if redis_key == "" or hash_key == "":
            raise RedisError("key is empty")
        conn = self._conn()
        with _command("HincrbyHashInt"):
            conn.hincrby(redis_key, hash_key, value)

    def expire(self, key: str, ttl: int) -> None:
        conn = self._conn()
        with _command("expire"):
            conn.expire(key, ttl)

    def keys(self, pattern: str) -> list[str]:
        conn = self._conn()
        with _command("KEYS"):
            reply = conn.keys(pattern=pattern)
        if not isinstance(reply, list):
            raise RedisError("Func[KEYS] Redis Data Error")
        if not all(isinstance(k, bytes) for k in reply):
            raise RedisError("value not string")
        return [k.decode("utf-8") for k in reply]

    def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        if self._owns_client:
            self._client.connection_pool.disconnect()

    def __enter__(self) -> "RedisModule":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
"""Redis list and sorted-set commands, with JSON helpers for their replies."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from orimod.redis_module import RedisError, RedisModule, _command, _text, _to_json

log = logging.getLogger(__name__)

_PUSH_COMMANDS = frozenset({"LPUSH", "RPUSH"})


def make_list_json(reply: Iterable[Any], with_scores: bool) -> bytes:
    """Join raw reply items into a JSON array.

    Without scores each item is written as it is. With scores the items
    alternate member and score and become ``{"data":member,"score":score}``.
    """
    pieces = []
    for index, value in enumerate(reply):
        text = _text(value)
        if not with_scores:
            pieces.append(text)
        elif index % 2 == 0:
            pieces.append('{"data":' + text)
        else:
            pieces.append('"score":' + text + "}")
    return ("[" + ",".join(pieces) + "]").encode("utf-8")


@dataclass
class ZSetDataWithScore:
    """A sorted-set member decoded from JSON, together with its score."""

    data: Any
    score: float


def _decode(raw: bytes, name: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise RedisError(f"{name} cannot decode reply: {exc}") from exc


def _as_int(reply: Any, name: str) -> int:
    if reply is None:
        raise RedisError(f"{name} returned nil")
    try:
        return int(reply)
    except (TypeError, ValueError):
        raise RedisError(f"{name} redis data is error") from None


def _as_float(reply: Any, name: str) -> float:
    if reply is None:
        raise RedisError(f"{name} returned nil")
    try:
        return float(_text(reply))
    except (TypeError, ValueError):
        raise RedisError(f"{name} redis data is error") from None


def _as_list(reply: Any, name: str) -> list[Any]:
    if not isinstance(reply, (list, tuple)):
        raise RedisError(f"{name} redis data is error")
    return list(reply)


class RedisCollections(RedisModule):
    """List and sorted-set commands on top of the string and hash commands."""

    def _do(self, name: str, *args: Any) -> Any:
        conn = self._conn()
        with _command(name):
            return conn.execute_command(*args)

    def _push(self, command: str, *args: Any) -> None:
        if command not in _PUSH_COMMANDS:
            raise RedisError("redis list push type error,must be LPUSH or RPUSH")
        self._do("setList", command, *args)

    def _push_json(self, command: str, key: Any, values: Iterable[Any]) -> None:
        self._push(command, key, *(_to_json(value) for value in values))

    def lpush_list(self, *args: Any) -> None:
        """LPUSH: ``args[0]`` is the key, the rest are the values."""
        self._push("LPUSH", *args)

    def lpush_list_json(self, key: Any, *args: Any) -> None:
        self._push_json("LPUSH", key, args)

    def rpush_list(self, *args: Any) -> None:
        """RPUSH: ``args[0]`` is the key, the rest are the values."""
        self._push("RPUSH", *args)

    def rpush_list_json(self, key: Any, *args: Any) -> None:
        self._push_json("RPUSH", key, args)

    def lrange_list(self, key: str, start: int, end: int) -> list[str]:
        reply = self._do("LRANGE", "LRANGE", key, start, end)
        return [_text(v) if v is not None else "" for v in _as_list(reply, "LRANGE")]

    def get_list_len(self, key: str) -> int:
        return _as_int(self._do("GetListLen", "LLEN", key), "LLEN")

    def rpop_list_value(self, key: str) -> str:
        """Pop the last element of a list."""
        reply = self._do("RPOP", "RPOP", key)
        if reply is None:
            raise RedisError("RPOP key is not exist!")
        return _text(reply)

    def ltrim_list(self, key: str, start: int, end: int) -> None:
        self._do("LtrimListValue", "LTRIM", key, start, end)

    def lrange(self, key: str, start: int, stop: int) -> bytes:
        """Return a range of a list as a JSON array of its raw elements."""
        reply = self._do("LRANGE", "LRANGE", key, start, stop)
        return make_list_json(_as_list(reply, "LRANGE"), False)

    def lrange_json(self, key: str, start: int, stop: int) -> Any:
        return _decode(self.lrange(key, start, stop), "LRANGE")

    def list_pop(self, key: str, from_left: bool, block: bool, timeout: int) -> bytes:
        """Pop one element from either end, optionally blocking up to ``timeout`` seconds."""
        side = "L" if from_left else "R"
        if block:
            command = f"B{side}POP"
            reply = self._do(command, command, key, timeout)
            if isinstance(reply, (list, tuple)) and len(reply) == 2:
                reply = reply[1]
        else:
            command = f"{side}POP"
            reply = self._do(command, command, key)
        if reply is None:
            raise RedisError("ListPop key is not exist!")
        if not isinstance(reply, bytes):
            raise RedisError("ListPop redis data is error")
        return reply

    def list_pop_json(self, key: str, from_left: bool, block: bool, timeout: int) -> Any:
        return _decode(self.list_pop(key, from_left, block, timeout), "ListPop")

    def zadd_insert_json(self, key: str, score: float, value: Any) -> None:
        self._do("ZADDInsertJson", "ZADD", key, score, _to_json(value))

    def zadd_insert(self, key: str, score: float, data: Any) -> None:
        self._do("ZADDInsert", "ZADD", key, score, data)

    def _range(self, command: str, key: str, start: Any, stop: Any, with_scores: bool) -> bytes:
        args = [command, key, start, stop]
        if with_scores:
            args.append("WITHSCORES")
        reply = self._do(command, *args)
        return make_list_json(_as_list(reply, command), with_scores)

    @staticmethod
    def _decode_range(raw: bytes, with_scores: bool) -> Any:
        items = _decode(raw, "ZRANGE")
        if not with_scores:
            return items
        return [ZSetDataWithScore(data=item["data"], score=float(item["score"])) for item in items]

    def zrange(self, key: str, start: int, stop: int, ascend: bool, with_scores: bool) -> bytes:
        """Return members by rank as JSON; descending unless ``ascend``."""
        command = "ZRANGE" if ascend else "ZREVRANGE"
        return self._range(command, key, start, stop, with_scores)

    def zrange_json(self, key: str, start: int, stop: int, ascend: bool, with_scores: bool) -> Any:
        """Decoded members by rank; a list of ZSetDataWithScore when ``with_scores``."""
        return self._decode_range(self.zrange(key, start, stop, ascend, with_scores), with_scores)

    def zrange_by_score(
        self, key: str, start: float, stop: float, ascend: bool, with_scores: bool
    ) -> bytes:
        command = "ZRANGEBYSCORE" if ascend else "ZREVRANGEBYSCORE"
        return self._range(command, key, start, stop, with_scores)

    def zrange_by_score_json(
        self, key: str, start: float, stop: float, ascend: bool, with_scores: bool
    ) -> Any:
        return self._decode_range(
            self.zrange_by_score(key, start, stop, ascend, with_scores), with_scores
        )

    def zcard(self, key: str) -> int:
        return _as_int(self._do("ZCARD", "ZCARD", key), "ZCARD")

    def zscore(self, key: str, member: Any) -> float:
        return _as_float(self._do("ZSCORE", "ZSCORE", key, member), "ZSCORE")

    def zrank(self, key: str, member: Any, ascend: bool) -> int:
        command = "ZRANK" if ascend else "ZREVRANK"
        return _as_int(self._do(command, command, key, member), command)

    def zrem_range_by_score(self, key: str, start: Any, stop: Any) -> None:
        self._do("ZREMRANGEBYSCORE", "ZREMRANGEBYSCORE", key, start, stop)

    def zrem(self, key: str, member: Any) -> int:
        return _as_int(self._do("ZREM", "ZREM", key, member), "ZREM")

    def zrem_multi(self, key: str, *args: Any) -> int:
        return _as_int(self._do("ZREM", "ZREM", key, *args), "ZREM")

    def zrem_range_by_rank(self, key: str, start: Any, end: Any) -> int:
        reply = self._do("ZREMRANGEBYRANK", "ZREMRANGEBYRANK", key, start, end)
        return _as_int(reply, "ZREMRANGEBYRANK")
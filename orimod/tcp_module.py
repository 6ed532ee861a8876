"""TCP client bookkeeping: connection events, message routing and sending."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional, Protocol

log = logging.getLogger(__name__)

Recycler = Callable[[bytes], None]


@dataclass
class TcpConfig:
    """Listening and framing settings of a TCP server."""

    listen_addr: str = ""
    max_conn_num: int = 0
    pending_write_num: int = 0
    little_endian: bool = False
    len_msg_len: int = 2
    min_msg_len: int = 0
    max_msg_len: int = 0
    read_deadline_second: float = 0
    write_deadline_second: float = 0


class PackType(IntEnum):
    """Kind of event produced for a client."""

    CONNECTED = 0
    DISCONNECTED = 1
    PACK = 2
    UNKNOWN_PACK = 3


@dataclass
class TcpPack:
    """An event about one client, queued for the service to handle."""

    type: PackType
    client_id: str
    data: Any = None
    recycler_reader_bytes: Optional[Recycler] = None


class RawProcessor(Protocol):
    def set_byte_order(self, little_endian: bool) -> None: ...

    def marshal(self, client_id: str, msg: Any) -> bytes: ...

    def unmarshal(self, client_id: str, data: bytes) -> Any: ...

    def connected_route(self, client_id: str) -> None: ...

    def disconnected_route(self, client_id: str) -> None: ...

    def msg_route(self, client_id: str, msg: Any, recycler: Optional[Recycler]) -> None: ...

    def unknown_msg_route(self, client_id: str, msg: Any, recycler: Optional[Recycler]) -> None: ...


class Connection(Protocol):
    def set_read_deadline(self, seconds: float) -> None: ...

    def read_msg(self) -> bytes: ...

    def write_msg(self, data: bytes) -> None: ...

    def close(self) -> None: ...

    def get_remote_ip(self) -> str: ...

    def get_recycler_reader_bytes(self) -> Optional[Recycler]: ...


def _new_client_id() -> str:
    return os.urandom(12).hex()


class Client:
    """One connected peer; reads messages and turns them into events."""

    def __init__(self, client_id: str, conn: Optional[Connection], module: "TcpModule") -> None:
        self.id = client_id
        self.conn = conn
        self.module = module

    def run(self) -> None:
        """Read messages until the connection fails, reporting each as an event."""
        try:
            self.module.notify(TcpPack(PackType.CONNECTED, self.id))
            while self.conn is not None:
                self.conn.set_read_deadline(self.module.read_deadline)
                try:
                    raw = self.conn.read_msg()
                except Exception as exc:
                    log.debug("read client failed,error:%s,clientId:%s", exc, self.id)
                    break
                recycler = self.conn.get_recycler_reader_bytes()
                try:
                    data = self.module.processor.unmarshal(self.id, raw)
                except Exception:
                    self.module.notify(TcpPack(PackType.UNKNOWN_PACK, self.id, raw, recycler))
                    continue
                self.module.notify(TcpPack(PackType.PACK, self.id, data, recycler))
        except Exception:
            log.exception("client %s stopped with an error", self.id)

    def on_close(self) -> None:
        """Report the disconnection and forget the client."""
        self.module.notify(TcpPack(PackType.DISCONNECTED, self.id))
        self.module._remove_client(self.id)


class TcpModule:
    """Tracks TCP clients and routes their events to a message processor."""

    def __init__(
        self,
        config: Optional[TcpConfig],
        processor: Optional[RawProcessor],
        notify: Callable[[TcpPack], None],
    ) -> None:
        if config is None or processor is None:
            raise ValueError("please call the Init function correctly")
        self.config = config
        self.processor = processor
        self.notify = notify
        self._clients: dict[str, Client] = {}
        self._lock = threading.RLock()
        processor.set_byte_order(config.little_endian)

    @property
    def read_deadline(self) -> float:
        return self.config.read_deadline_second

    @property
    def write_deadline(self) -> float:
        return self.config.write_deadline_second

    def new_client(self, conn: Connection) -> Client:
        """Register a new connection under a fresh client id."""
        with self._lock:
            client = Client(_new_client_id(), conn, self)
            self._clients[client.id] = client
            return client

    def _remove_client(self, client_id: str) -> None:
        with self._lock:
            self._clients.pop(client_id, None)

    def _client(self, client_id: str) -> Client:
        with self._lock:
            client = self._clients.get(client_id)
        if client is None:
            raise ConnectionError(f"client {client_id} is disconnect")
        return client

    def handle_event(self, pack: TcpPack) -> None:
        """Dispatch a queued event to the matching processor route."""
        if pack.type is PackType.CONNECTED:
            self.processor.connected_route(pack.client_id)
        elif pack.type is PackType.DISCONNECTED:
            self.processor.disconnected_route(pack.client_id)
        elif pack.type is PackType.UNKNOWN_PACK:
            self.processor.unknown_msg_route(pack.client_id, pack.data, pack.recycler_reader_bytes)
        elif pack.type is PackType.PACK:
            self.processor.msg_route(pack.client_id, pack.data, pack.recycler_reader_bytes)

    def send_msg(self, client_id: str, msg: Any) -> None:
        client = self._client(client_id)
        data = self.processor.marshal(client_id, msg)
        client.conn.write_msg(data)

    def send_raw_msg(self, client_id: str, msg: bytes) -> None:
        self._client(client_id).conn.write_msg(msg)

    def close(self, client_id: str) -> None:
        """Close a client's connection; unknown ids are ignored."""
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return
            if client.conn is not None:
                client.conn.close()
        log.warning("close client:%s", client_id)

    def get_client_ip(self, client_id: str) -> str:
        with self._lock:
            client = self._clients.get(client_id)
            if client is None or client.conn is None:
                return ""
            return client.conn.get_remote_ip()

    def get_conn_num(self) -> int:
        with self._lock:
            return len(self._clients)
"""Live connection registry and broadcast fan-out.

The registry is the only owner of channel handles. Fan-out copies the
recipient list under the lock and sends outside it; a channel that is
closed or whose send raises is dropped from the registry, never retried.
Last activity moves on inbound messages and heartbeat pings; the idle
timeout of the sweep only looks at inbound traffic, so a client that stops
answering pings ages out even while pings are still accepted.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from rendezvous.messages import ENVELOPE_EVENT
from rendezvous.utils import generate_connection_id, now_ms

log = logging.getLogger(__name__)


class Channel:
    """A bidirectional handle to one live participant."""

    def send(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError

    def is_open(self) -> bool:
        raise NotImplementedError


class SocketIOChannel(Channel):
    def __init__(self, socketio, sid: str, namespace: str):
        self.socketio = socketio
        self.sid = sid
        self.namespace = namespace

    def send(self, message: Dict[str, Any]) -> None:
        self.socketio.emit(ENVELOPE_EVENT, message, to=self.sid, namespace=self.namespace)

    def is_open(self) -> bool:
        server = self.socketio.server
        if server is None:
            return False
        return bool(server.manager.is_connected(self.sid, self.namespace))

    def __repr__(self) -> str:
        return f"<SocketIOChannel sid={self.sid} namespace={self.namespace}>"


@dataclass
class ConnectionRecord:
    connection_id: str
    channel: Channel
    connected_at: int
    last_activity: int
    last_inbound: int

    def to_dict(self, now: Optional[int] = None) -> Dict[str, Any]:
        now = now if now is not None else now_ms()
        return {
            'id': self.connection_id,
            'connected_at': self.connected_at,
            'last_activity': self.last_activity,
            'connection_duration_ms': now - self.connected_at,
            'idle_duration_ms': now - self.last_activity,
            'inbound_idle_ms': now - self.last_inbound,
        }


@dataclass(frozen=True)
class FanoutReport:
    delivered: int = 0
    dropped: int = 0

    @property
    def total(self) -> int:
        return self.delivered + self.dropped


class ConnectionRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, ConnectionRecord] = {}

    def register(self, channel: Channel) -> str:
        now = now_ms()
        record = ConnectionRecord(generate_connection_id(), channel, now, now, now)
        with self._lock:
            self._records[record.connection_id] = record
            total = len(self._records)
        log.info(f"[connect] id={record.connection_id} total={total}")
        return record.connection_id

    def unregister(self, connection_id: str, reason: str = 'closed') -> Optional[ConnectionRecord]:
        with self._lock:
            record = self._records.pop(connection_id, None)
            remaining = len(self._records)
        if record is not None:
            log.info(
                f"[disconnect] id={connection_id} reason={reason} "
                f"duration_ms={now_ms() - record.connected_at} remaining={remaining}"
            )
        return record

    def mark_activity(self, connection_id: str, inbound: bool = True) -> bool:
        now = now_ms()
        with self._lock:
            record = self._records.get(connection_id)
            if record is None:
                return False
            record.last_activity = now
            if inbound:
                record.last_inbound = now
            return True

    def get(self, connection_id: str) -> Optional[ConnectionRecord]:
        with self._lock:
            return self._records.get(connection_id)

    def records(self) -> List[ConnectionRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def for_each_live(self, fn: Callable[[ConnectionRecord], None]) -> FanoutReport:
        """Call ``fn`` once per open connection.

        Connections that are not open, or for which ``fn`` raises, are
        unregistered. Exceptions never escape to the caller. Delivery does
        not count as activity; callers that want it call ``mark_activity``.
        """
        delivered = dropped = 0
        for record in self.records():
            if not record.channel.is_open():
                log.warning(f"[fanout-skip] id={record.connection_id} channel not open")
                self.unregister(record.connection_id, reason='not open')
                dropped += 1
                continue
            try:
                fn(record)
            except Exception as exc:
                log.warning(f"[fanout-fail] id={record.connection_id} error={exc!r}")
                self.unregister(record.connection_id, reason='send failed')
                dropped += 1
                continue
            delivered += 1
        return FanoutReport(delivered, dropped)

    def sweep(self, idle_timeout_ms: int = 0) -> int:
        """Remove closed connections, and ones silent longer than ``idle_timeout_ms``."""
        now = now_ms()
        removed = 0
        for record in self.records():
            if not record.channel.is_open():
                reason = 'not open'
            elif idle_timeout_ms and now - record.last_inbound > idle_timeout_ms:
                reason = 'idle'
            else:
                continue
            if self.unregister(record.connection_id, reason=reason) is not None:
                removed += 1
        if removed:
            log.info(f"[cleanup] removed={removed} remaining={len(self)}")
        return removed


class Broadcaster:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def broadcast(self, message: Dict[str, Any]) -> FanoutReport:
        def _send(record: ConnectionRecord) -> None:
            record.channel.send(message)

        report = self.registry.for_each_live(_send)
        log.info(
            f"[broadcast] type={message.get('type')} sent={report.delivered} dropped={report.dropped}"
        )
        return report

    def send_to(self, connection_id: str, message: Dict[str, Any]) -> bool:
        """Deliver to a single connection; a dead channel is unregistered."""
        record = self.registry.get(connection_id)
        if record is None:
            return False
        if not record.channel.is_open():
            self.registry.unregister(connection_id, reason='not open')
            return False
        try:
            record.channel.send(message)
        except Exception as exc:
            log.warning(f"[send-fail] id={connection_id} type={message.get('type')} error={exc!r}")
            self.registry.unregister(connection_id, reason='send failed')
            return False
        return True

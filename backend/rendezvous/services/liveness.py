import logging
import threading

from rendezvous.messages import LIVENESS_PING, envelope

log = logging.getLogger(__name__)


class LivenessMonitor:
    """Heartbeat pings plus a periodic sweep of dead connections."""

    def __init__(self, registry, heartbeat_interval_sec: int = 30,
                 cleanup_interval_sec: int = 60, idle_timeout_sec: int = 0):
        self.registry = registry
        self.heartbeat_interval_sec = heartbeat_interval_sec
        self.cleanup_interval_sec = cleanup_interval_sec
        self.idle_timeout_sec = idle_timeout_sec
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._loops = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._loops > 0

    def ping_all(self):
        message = envelope(LIVENESS_PING)

        def _ping(record):
            record.channel.send(message)
            self.registry.mark_activity(record.connection_id, inbound=False)

        report = self.registry.for_each_live(_ping)
        log.debug(f"[heartbeat] pinged={report.delivered} dropped={report.dropped}")
        return report

    def sweep(self) -> int:
        return self.registry.sweep(idle_timeout_ms=self.idle_timeout_sec * 1000)

    def start(self, socketio) -> None:
        """Spawn the heartbeat and cleanup loops.

        A no-op while loops from an earlier start are still alive, even
        if ``stop`` was called and they have not woken up yet.
        """
        loops = []
        if self.heartbeat_interval_sec > 0:
            loops.append((self.heartbeat_interval_sec, self.ping_all))
        if self.cleanup_interval_sec > 0:
            loops.append((self.cleanup_interval_sec, self.sweep))
        with self._lock:
            if self._loops:
                return
            self._loops = len(loops)
            self._stopped.clear()
        for interval, task in loops:
            socketio.start_background_task(self._every, socketio, interval, task)

    def stop(self) -> None:
        self._stopped.set()

    def _every(self, socketio, interval, task) -> None:
        try:
            while not self._stopped.is_set():
                socketio.sleep(interval)
                if self._stopped.is_set():
                    break
                try:
                    task()
                except Exception:
                    log.exception(f"[maintenance] {task.__name__} failed")
        finally:
            with self._lock:
                self._loops -= 1

"""Game domain services: locations, connections, selection, scoring.

Each shared singleton is an object with its own lock, built once per app in
``build_services`` and reached from handlers through
``current_app.extensions['rendezvous']``. Transport code (HTTP routes,
Socket.IO handlers) stays outside this package.
"""

from dataclasses import dataclass

from .ledger import PointsLedger
from .live import LiveChannelHandler
from .liveness import LivenessMonitor
from .locations import LocationStore
from .profiles import ProfileStore
from .registry import Broadcaster, ConnectionRegistry
from .selection import SelectionState, TargetScheduler
from .verifier import ProximityVerifier


@dataclass
class Services:
    registry: ConnectionRegistry
    broadcaster: Broadcaster
    locations: LocationStore
    selection: SelectionState
    profiles: ProfileStore
    ledger: PointsLedger
    verifier: ProximityVerifier
    scheduler: TargetScheduler
    liveness: LivenessMonitor
    live: LiveChannelHandler

    def start_background_tasks(self, app, socketio) -> None:
        self.scheduler.start(app, socketio)
        self.liveness.start(socketio)

    def stop_background_tasks(self) -> None:
        self.scheduler.stop()
        self.liveness.stop()


def build_services(config, rng=None) -> Services:
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry)
    locations = LocationStore()
    selection = SelectionState()
    profiles = ProfileStore()
    ledger = PointsLedger()
    verifier = ProximityVerifier(
        locations,
        selection,
        profiles,
        ledger,
        threshold_m=float(config.get('PROXIMITY_THRESHOLD_M', 100)),
        require_proximity_on_scan=bool(config.get('SCAN_REQUIRES_PROXIMITY', False)),
    )
    scheduler = TargetScheduler(
        selection,
        profiles,
        locations,
        broadcaster,
        interval_sec=int(config.get('SELECTION_INTERVAL_SEC', 300)),
        initial_delay_sec=int(config.get('SELECTION_INITIAL_DELAY_SEC', 5)),
        rng=rng,
    )
    liveness = LivenessMonitor(
        registry,
        heartbeat_interval_sec=int(config.get('HEARTBEAT_INTERVAL_SEC', 30)),
        cleanup_interval_sec=int(config.get('CLEANUP_INTERVAL_SEC', 60)),
        idle_timeout_sec=int(config.get('CONNECTION_IDLE_TIMEOUT_SEC', 0)),
    )
    live = LiveChannelHandler(
        registry,
        broadcaster,
        locations,
        selection,
        verifier,
        validate_coordinate_ranges=bool(config.get('VALIDATE_COORDINATE_RANGES', True)),
    )
    return Services(registry, broadcaster, locations, selection, profiles, ledger,
                    verifier, scheduler, liveness, live)

"""Target selection: the active selection record and the scheduler that renews it.

The scheduler cycles idle -> selecting -> published -> idle for the life of
the process. Timer ticks and manual triggers share ``run_once``; a run lock
makes concurrent triggers wait for the run in flight instead of
interleaving writes to the selection.
"""

import logging
import random
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from rendezvous.errors import RendezvousError
from rendezvous.messages import SELECTION_BROADCAST, TARGET_BROADCAST, envelope
from rendezvous.models import CATEGORIES, CATEGORY_A, CATEGORY_B
from rendezvous.utils import now_ms

log = logging.getLogger(__name__)

IDLE = 'idle'
SELECTING = 'selecting'
PUBLISHED = 'published'


def opposite_category(category: str) -> str:
    return CATEGORY_B if category == CATEGORY_A else CATEGORY_A


@dataclass(frozen=True)
class Selection:
    a: Optional[str] = None
    b: Optional[str] = None
    selected_at: int = 0

    def target_for(self, category: str) -> Optional[str]:
        return self.a if category == CATEGORY_A else self.b if category == CATEGORY_B else None

    def category_of(self, participant_id: str) -> Optional[str]:
        if participant_id is None:
            return None
        if participant_id == self.a:
            return CATEGORY_A
        if participant_id == self.b:
            return CATEGORY_B
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {CATEGORY_A: self.a, CATEGORY_B: self.b, 'selected_at': self.selected_at}


class SelectionState:
    """Holder of the single active selection; readers get an immutable value."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = Selection()

    def current(self) -> Selection:
        with self._lock:
            return self._current

    def replace(self, selection: Selection) -> Selection:
        with self._lock:
            previous, self._current = self._current, selection
        return previous


def target_message(participant_id: str, category: str, location) -> Dict[str, Any]:
    return envelope(
        TARGET_BROADCAST,
        participant_id,
        {'category': category, 'location': location.to_dict()},
    )


class TargetScheduler:
    def __init__(self, selection, profiles, locations, broadcaster,
                 interval_sec: int = 300, initial_delay_sec: int = 5,
                 rng: Optional[random.Random] = None):
        self.selection = selection
        self.profiles = profiles
        self.locations = locations
        self.broadcaster = broadcaster
        self.interval_sec = interval_sec
        self.initial_delay_sec = initial_delay_sec
        self.rng = rng or random.Random()
        self.state = IDLE
        self.runs = 0
        self.last_run_at: Optional[int] = None
        self.last_error: Optional[str] = None
        self._run_lock = threading.Lock()
        self._stopped = threading.Event()
        self._started = False

    def run_once(self) -> Selection:
        with self._run_lock:
            self.state = SELECTING
            try:
                population = self.profiles.population()
                pools: Dict[str, List[str]] = {category: [] for category in CATEGORIES}
                for participant_id, category in sorted(population.items()):
                    if category in pools:
                        pools[category].append(participant_id)
                chosen = {
                    category: self.rng.choice(members) if members else None
                    for category, members in pools.items()
                }
                selection = Selection(a=chosen[CATEGORY_A], b=chosen[CATEGORY_B], selected_at=now_ms())
                previous = self.selection.replace(selection)
                self.state = PUBLISHED
                log.info(
                    f"[selection-publish] a={selection.a} b={selection.b} "
                    f"pool_a={len(pools[CATEGORY_A])} pool_b={len(pools[CATEGORY_B])} "
                    f"a_changed={previous.a != selection.a} b_changed={previous.b != selection.b}"
                )
                self._publish(selection)
                self.runs += 1
                self.last_run_at = selection.selected_at
                self.last_error = None
                return selection
            except RendezvousError as exc:
                self.last_error = exc.reason
                log.error(f"[selection-fail] code={exc.code} reason={exc.reason}")
                raise
            finally:
                self.state = IDLE

    def _publish(self, selection: Selection) -> None:
        self.broadcaster.broadcast(envelope(SELECTION_BROADCAST, data=selection.to_dict()))
        for category in CATEGORIES:
            participant_id = selection.target_for(category)
            if participant_id is None:
                continue
            location = self.locations.get(participant_id)
            if location is None:
                log.debug(f"[selection-publish] target={participant_id} has no known location")
                continue
            self.broadcaster.broadcast(target_message(participant_id, category, location))

    def status(self) -> Dict[str, Any]:
        return {
            'state': self.state,
            'runs': self.runs,
            'last_run_at': self.last_run_at,
            'last_error': self.last_error,
            'interval_sec': self.interval_sec,
        }

    def start(self, app, socketio) -> None:
        """Start the timer loop as a Socket.IO background task."""
        if self._started:
            return
        self._started = True
        self._stopped.clear()
        socketio.start_background_task(self._loop, app, socketio)

    def stop(self) -> None:
        self._stopped.set()

    def _loop(self, app, socketio) -> None:
        socketio.sleep(self.initial_delay_sec)
        while not self._stopped.is_set():
            with app.app_context():
                try:
                    self.run_once()
                except RendezvousError:
                    # already logged; the next tick runs regardless
                    pass
                except Exception:
                    self.last_error = 'unexpected error'
                    log.exception('[selection-fail] unexpected error during selection run')
            socketio.sleep(self.interval_sec)
        self._started = False

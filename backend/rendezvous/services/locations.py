"""Last known position of every participant.

Nothing here is persisted: a restart forgets every location. A new fix
replaces the previous one for the same participant, last arrival wins.
"""

import math
import threading
from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional

from rendezvous.errors import InvalidInput
from rendezvous.utils import now_ms
from .geo import GeoPoint


def _number(data: Mapping[str, Any], key: str, required: bool = True) -> Optional[float]:
    value = data.get(key)
    if value is None:
        if required:
            raise InvalidInput(f"{key} is required", code='missing_field', field=key)
        return None
    # bool is a Real subclass; a JSON true is never a coordinate
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidInput(f"{key} must be a number", code='invalid_field', field=key)
    try:
        finite = math.isfinite(value)
    except OverflowError:
        # an integer too large for a float
        finite = False
    if not finite:
        raise InvalidInput(f"{key} must be finite", code='invalid_field', field=key)
    return value


@dataclass(frozen=True)
class Fix:
    latitude: float
    longitude: float
    timestamp: int
    accuracy: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Any, validate_range: bool = True) -> 'Fix':
        if not isinstance(data, Mapping):
            raise InvalidInput('coordinates must be an object', code='invalid_fix')
        latitude = _number(data, 'latitude')
        longitude = _number(data, 'longitude')
        accuracy = _number(data, 'accuracy', required=False)
        timestamp = _number(data, 'timestamp', required=False)
        if validate_range:
            if not -90 <= latitude <= 90:
                raise InvalidInput('latitude out of range', code='invalid_field', field='latitude')
            if not -180 <= longitude <= 180:
                raise InvalidInput('longitude out of range', code='invalid_field', field='longitude')
            if accuracy is not None and accuracy < 0:
                raise InvalidInput('accuracy must not be negative', code='invalid_field', field='accuracy')
        return cls(
            latitude=latitude,
            longitude=longitude,
            timestamp=int(timestamp) if timestamp is not None else now_ms(),
            accuracy=accuracy,
        )

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'timestamp': self.timestamp,
        }
        if self.accuracy is not None:
            data['accuracy'] = self.accuracy
        return data


@dataclass(frozen=True)
class ParticipantLocation:
    participant_id: str
    fix: Fix
    last_updated: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'participant_id': self.participant_id,
            'coordinates': self.fix.to_dict(),
            'last_updated': self.last_updated,
        }


class LocationStore:
    """Thread-safe participant -> ParticipantLocation map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locations: Dict[str, ParticipantLocation] = {}

    def update(self, participant_id: str, fix: Fix) -> Optional[ParticipantLocation]:
        """Store ``fix`` and return the location it replaced, if any."""
        location = ParticipantLocation(participant_id, fix, now_ms())
        with self._lock:
            previous = self._locations.get(participant_id)
            self._locations[participant_id] = location
        return previous

    def get(self, participant_id: str) -> Optional[ParticipantLocation]:
        with self._lock:
            return self._locations.get(participant_id)

    def snapshot(self) -> List[ParticipantLocation]:
        with self._lock:
            return list(self._locations.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._locations)

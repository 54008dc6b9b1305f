"""Envelope format spoken on the live channel.

Every frame, in either direction, travels as the Socket.IO event
``envelope`` carrying ``{type, participantId?, data?}``.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from rendezvous.errors import InvalidInput

ENVELOPE_EVENT = 'envelope'

LOCATION_UPDATE = 'location_update'
SELECTION_REQUEST = 'selection_request'
SELECTION_BROADCAST = 'selection_broadcast'
TARGET_BROADCAST = 'target_broadcast'
LIVENESS_PING = 'liveness_ping'
LIVENESS_PONG = 'liveness_pong'

MESSAGE_TYPES = frozenset({
    LOCATION_UPDATE,
    SELECTION_REQUEST,
    SELECTION_BROADCAST,
    TARGET_BROADCAST,
    LIVENESS_PING,
    LIVENESS_PONG,
})


@dataclass(frozen=True)
class Envelope:
    type: str
    participant_id: Optional[str] = None
    data: Any = None

    @classmethod
    def parse(cls, raw: Any) -> 'Envelope':
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise InvalidInput('envelope is not valid JSON', code='malformed_envelope') from exc
        if not isinstance(raw, dict):
            raise InvalidInput('envelope must be an object', code='malformed_envelope')
        message_type = raw.get('type')
        if not isinstance(message_type, str) or not message_type:
            raise InvalidInput('envelope type is required', code='malformed_envelope', field='type')
        participant_id = raw.get('participantId', raw.get('participant_id'))
        if participant_id is not None and not isinstance(participant_id, str):
            participant_id = str(participant_id)
        return cls(type=message_type, participant_id=participant_id, data=raw.get('data'))

    def to_dict(self) -> Dict[str, Any]:
        return envelope(self.type, self.participant_id, self.data)


def envelope(message_type: str, participant_id: Optional[str] = None, data: Any = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {'type': message_type}
    if participant_id is not None:
        message['participantId'] = participant_id
    if data is not None:
        message['data'] = data
    return message

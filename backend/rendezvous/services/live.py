"""Handling of envelopes arriving on the live channel.

Nothing raised while handling one envelope reaches the transport: bad
frames are logged and dropped, the connection stays open.
"""

import logging
from typing import Optional

from rendezvous.errors import RendezvousError
from rendezvous.messages import (
    LIVENESS_PING,
    LIVENESS_PONG,
    LOCATION_UPDATE,
    SELECTION_BROADCAST,
    SELECTION_REQUEST,
    Envelope,
    envelope,
)
from .locations import Fix
from .selection import target_message

log = logging.getLogger(__name__)


class LiveChannelHandler:
    def __init__(self, registry, broadcaster, locations, selection, verifier,
                 validate_coordinate_ranges: bool = True):
        self.registry = registry
        self.broadcaster = broadcaster
        self.locations = locations
        self.selection = selection
        self.verifier = verifier
        self.validate_coordinate_ranges = validate_coordinate_ranges
        self._handlers = {
            LOCATION_UPDATE: self._on_location_update,
            SELECTION_REQUEST: self._on_selection_request,
            LIVENESS_PING: self._on_ping,
            LIVENESS_PONG: self._on_pong,
        }

    def welcome(self, connection_id: str) -> None:
        """Bring a newcomer up to date with the selection and every location."""
        self.broadcaster.send_to(
            connection_id,
            envelope(SELECTION_BROADCAST, data=self.selection.current().to_dict()),
        )
        snapshot = [location.to_dict() for location in self.locations.snapshot()]
        self.broadcaster.send_to(connection_id, envelope(LOCATION_UPDATE, data=snapshot))
        log.debug(f"[welcome] id={connection_id} locations={len(snapshot)}")

    def handle(self, connection_id: Optional[str], raw) -> None:
        if connection_id is not None:
            self.registry.mark_activity(connection_id)
        try:
            message = Envelope.parse(raw)
        except RendezvousError as exc:
            log.warning(f"[message-in] id={connection_id} malformed envelope: {exc.reason}")
            return
        handler = self._handlers.get(message.type)
        if handler is None:
            log.warning(f"[message-in] id={connection_id} ignoring message type={message.type}")
            return
        try:
            handler(connection_id, message)
        except RendezvousError as exc:
            log.warning(
                f"[message-in] id={connection_id} type={message.type} rejected code={exc.code} reason={exc.reason}"
            )
        except Exception:
            log.exception(f"[message-in] id={connection_id} type={message.type} handler failed")

    def _on_location_update(self, connection_id, message: Envelope) -> None:
        if not message.participant_id or message.data is None:
            log.warning(
                f"[location-update] id={connection_id} missing participantId or data "
                f"participant={message.participant_id}"
            )
            return
        fix = Fix.from_dict(message.data, validate_range=self.validate_coordinate_ranges)
        previous = self.locations.update(message.participant_id, fix)
        location = self.locations.get(message.participant_id)
        log.info(
            f"[location-update] participant={message.participant_id} lat={fix.latitude} lon={fix.longitude} "
            f"first={previous is None} total={len(self.locations)}"
        )
        self.broadcaster.broadcast(envelope(LOCATION_UPDATE, message.participant_id, location.to_dict()))

        category = self.selection.current().category_of(message.participant_id)
        if category is not None:
            self.broadcaster.broadcast(target_message(message.participant_id, category, location))

    def _on_selection_request(self, connection_id, message: Envelope) -> None:
        data = message.data if isinstance(message.data, dict) else {}
        selected_id = data.get('selected_id') or data.get('selectedId')
        if not message.participant_id or not selected_id:
            log.warning(f"[selection-request] id={connection_id} missing participantId or selected_id")
            return
        try:
            result = self.verifier.verify_proximity(message.participant_id, selected_id)
        except RendezvousError as exc:
            self._reply(connection_id, message.participant_id, {
                'selected_id': selected_id,
                'confirmed': False,
                'reason': exc.code,
            })
            return

        if result.verified:
            log.info(
                f"[selection-request] confirmed selector={message.participant_id} selected={selected_id} "
                f"distance={result.distance:.2f}"
            )
            self.broadcaster.broadcast(envelope(SELECTION_REQUEST, message.participant_id, {
                'selected_id': selected_id,
                'confirmed': True,
                'distance': round(result.distance, 2),
            }))
        else:
            log.info(
                f"[selection-request] rejected selector={message.participant_id} selected={selected_id} "
                f"distance={result.distance:.2f} threshold={result.threshold}"
            )
            self._reply(connection_id, message.participant_id, {
                'selected_id': selected_id,
                'confirmed': False,
                'reason': 'too_far',
                'distance': round(result.distance, 2),
                'threshold': result.threshold,
            })

    def _on_ping(self, connection_id, message: Envelope) -> None:
        self._reply_raw(connection_id, envelope(LIVENESS_PONG, message.participant_id, message.data))

    def _on_pong(self, connection_id, message: Envelope) -> None:
        log.debug(f"[heartbeat] pong id={connection_id}")

    def _reply(self, connection_id, participant_id, data) -> None:
        self._reply_raw(connection_id, envelope(SELECTION_REQUEST, participant_id, data))

    def _reply_raw(self, connection_id, message) -> None:
        if connection_id is not None:
            self.broadcaster.send_to(connection_id, message)

import logging
import threading
from typing import Dict

from flask import request

from rendezvous import socketio
from rendezvous.messages import ENVELOPE_EVENT
from rendezvous.services.registry import SocketIOChannel

log = logging.getLogger(__name__)


def register_socketio_handlers(services, namespace: str = '/ws') -> None:
    """Register live channel handlers on ``namespace``.

    Each Socket.IO session maps to one registry connection; the mapping
    lives here so the registry never has to know about sids.
    """
    sid_to_connection: Dict[str, str] = {}
    lock = threading.Lock()

    def _connection_id():
        with lock:
            return sid_to_connection.get(request.sid)

    def handle_connect(auth=None):
        channel = SocketIOChannel(socketio, request.sid, namespace)
        connection_id = services.registry.register(channel)
        with lock:
            sid_to_connection[request.sid] = connection_id
        services.live.welcome(connection_id)

    def handle_disconnect(*args):
        with lock:
            connection_id = sid_to_connection.pop(request.sid, None)
        if connection_id:
            services.registry.unregister(connection_id)

    def handle_envelope(data=None):
        connection_id = _connection_id()
        if connection_id is None:
            log.warning(f"[message-in] sid={request.sid} message from unregistered session")
        services.live.handle(connection_id, data)

    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event(ENVELOPE_EVENT, handle_envelope, namespace=namespace)

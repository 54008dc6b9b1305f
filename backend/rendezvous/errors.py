"""Error taxonomy shared by the control surface and the live channel.

Each error carries a stable machine-readable ``code`` next to the human
readable ``reason`` so clients can branch without parsing text.
"""

from typing import Any, Dict, Optional

from flask import jsonify


class RendezvousError(Exception):
    kind = 'error'
    status_code = 500
    default_code = 'error'

    def __init__(self, reason: str, code: Optional[str] = None, **details: Any):
        super().__init__(reason)
        self.reason = reason
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.code, 'kind': self.kind, 'reason': self.reason}
        payload.update(self.details)
        return payload


class NotFound(RendezvousError):
    kind = 'not_found'
    status_code = 404
    default_code = 'not_found'


class InvalidInput(RendezvousError):
    kind = 'invalid_input'
    status_code = 400
    default_code = 'invalid_input'


class Conflict(RendezvousError):
    kind = 'conflict'
    status_code = 409
    default_code = 'conflict'


class Unavailable(RendezvousError):
    kind = 'unavailable'
    status_code = 503
    default_code = 'unavailable'


def register_error_handlers(flask_app) -> None:
    @flask_app.errorhandler(RendezvousError)
    def handle_rendezvous_error(exc):
        if exc.status_code >= 500:
            flask_app.logger.error(f"[api-error] code={exc.code} reason={exc.reason}")
        return jsonify(exc.to_dict()), exc.status_code

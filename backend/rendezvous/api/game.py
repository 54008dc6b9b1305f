from flask import Blueprint, jsonify, request, current_app

from rendezvous.errors import InvalidInput
from rendezvous.services.verifier import DUPLICATE_REDEMPTION, NO_TARGET_SELECTED, TOO_FAR, WRONG_TARGET
from rendezvous.utils import now_ms

game = Blueprint('game', __name__)

# HTTP status per scan rejection
SCAN_REJECTION_STATUS = {
    WRONG_TARGET: 400,
    TOO_FAR: 400,
    NO_TARGET_SELECTED: 404,
    DUPLICATE_REDEMPTION: 409,
}


def _services():
    return current_app.extensions['rendezvous']


@game.route('/status', methods=['GET'])
def status():
    """
    Returns connection, location and selection state of the live server.
    """
    svc = _services()
    now = now_ms()
    records = svc.registry.records()
    locations = svc.locations.snapshot()
    return jsonify({
        'server': {
            'status': 'running',
            'port': current_app.config.get('PORT'),
            'namespace': current_app.config.get('LIVE_NAMESPACE'),
        },
        'connections': {
            'total': len(records),
            'clients': [r.to_dict(now) for r in records],
        },
        'locations': {
            'active': len(locations),
            'participants': [loc.participant_id for loc in locations],
        },
        'selection': svc.selection.current().to_dict(),
        'scheduler': svc.scheduler.status(),
        'proximity_threshold_m': svc.verifier.threshold_m,
    }), 200


@game.route('/selection', methods=['GET'])
def get_selection():
    return jsonify(_services().selection.current().to_dict()), 200


@game.route('/selection/refresh', methods=['POST'])
def refresh_selection():
    """
    Runs a selection cycle out of band and returns the new selection.
    """
    current_app.logger.info('[selection-manual] manual selection triggered')
    selection = _services().scheduler.run_once()
    return jsonify({'message': 'New targets selected', 'selection': selection.to_dict()}), 200


@game.route('/locations', methods=['GET'])
def list_locations():
    locations = [loc.to_dict() for loc in _services().locations.snapshot()]
    return jsonify({'count': len(locations), 'locations': locations}), 200


@game.route('/proximity/<string:participant_id>/<string:other_id>', methods=['GET'])
def verify_proximity(participant_id, other_id):
    result = _services().verifier.verify_proximity(participant_id, other_id)
    return jsonify(result.to_dict()), 200


@game.route('/target/<string:identity>', methods=['GET'])
def lookup_target(identity):
    """
    Returns the opposite-category target and its last known coordinates.
    """
    return jsonify(_services().verifier.lookup_target(identity)), 200


@game.route('/scan', methods=['POST'])
def confirm_scan():
    """
    Confirms a token scan and grants a point for the current target.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput('request body must be a JSON object', code='invalid_body')
    scanner = data.get('scanner') or data.get('scanner_id')
    scanned_token = data.get('scanned_token')
    if not scanner or not scanned_token:
        raise InvalidInput(
            'scanner and scanned_token are required',
            code='missing_field',
            received={'scanner': scanner, 'scanned_token': scanned_token},
        )
    outcome = _services().verifier.confirm_scan(str(scanner), str(scanned_token))
    if outcome.success:
        return jsonify(outcome.to_dict()), 200
    return jsonify(outcome.to_dict()), SCAN_REJECTION_STATUS.get(outcome.reason, 400)


@game.route('/points/<string:participant_id>', methods=['GET'])
def get_points(participant_id):
    svc = _services()
    record = svc.ledger.get(participant_id)
    data = record.to_dict()
    profile = svc.profiles.get(participant_id)
    data['name'] = profile.name if profile else None
    return jsonify(data), 200


@game.route('/leaderboard', methods=['GET'])
def leaderboard():
    svc = _services()
    names = {p.participant_id: p for p in svc.profiles.all()}
    entries = []
    for rank, record in enumerate(svc.ledger.leaderboard(), start=1):
        entry = record.to_dict(include_targets=False)
        profile = names.get(record.participant_id)
        entry['rank'] = rank
        entry['name'] = profile.name if profile else None
        entry['avatar_url'] = profile.avatar_url if profile else None
        entries.append(entry)
    return jsonify({
        'leaderboard': entries,
        'total_participants': len(entries),
        'generated_at': now_ms(),
    }), 200

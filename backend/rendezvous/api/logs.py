from flask import Blueprint, jsonify, request, current_app

from rendezvous.errors import InvalidInput
from rendezvous.logconfig import level_value, set_level

logs = Blueprint('logs', __name__)


def _buffer():
    return current_app.extensions['rendezvous_logs']


@logs.route('', methods=['GET'])
def recent_logs():
    """
    Returns buffered log records, optionally filtered by tag and minimum level.
    """
    raw_categories = request.args.get('category', '')
    categories = [c.strip() for c in raw_categories.split(',') if c.strip()]
    level = request.args.get('level')
    min_level = level_value(level) if level else None
    try:
        limit = int(request.args.get('limit', 100))
    except ValueError:
        raise InvalidInput('limit must be an integer', code='invalid_field', field='limit')
    if limit < 0:
        raise InvalidInput('limit must not be negative', code='invalid_field', field='limit')

    entries = _buffer().entries(categories=categories, min_level=min_level, limit=limit)
    return jsonify({
        'logs': entries,
        'total': len(entries),
        'filters': {
            'category': categories or 'all',
            'level': level.upper() if level else 'all',
            'limit': limit,
        },
        'stats': _buffer().stats(),
    }), 200


@logs.route('/stats', methods=['GET'])
def log_stats():
    return jsonify(_buffer().stats()), 200


@logs.route('/level', methods=['POST'])
def change_level():
    """
    Switches the server log level without a restart.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput('request body must be a JSON object', code='invalid_body')
    previous, new = set_level(current_app, data.get('level'))
    current_app.logger.warning(f"[api-config] log level changed from {previous} to {new}")
    return jsonify({
        'message': 'Log level updated',
        'previous_level': previous,
        'new_level': new,
    }), 200

from flask import Blueprint, jsonify, request, current_app

from rendezvous.errors import InvalidInput, NotFound

profiles = Blueprint('profiles', __name__)

EDITABLE_FIELDS = ('name', 'category', 'token', 'avatar_url', 'bio')


def _store():
    return current_app.extensions['rendezvous'].profiles


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput('request body must be a JSON object', code='invalid_body')
    return data


@profiles.route('', methods=['GET'])
def list_profiles():
    items = [p.to_dict() for p in _store().all()]
    return jsonify({'count': len(items), 'profiles': items}), 200


@profiles.route('/<string:participant_id>', methods=['GET'])
def get_profile(participant_id):
    profile = _store().get(participant_id)
    if profile is None:
        raise NotFound('profile not found', code='profile_not_found', participant_id=participant_id)
    return jsonify(profile.to_dict()), 200


@profiles.route('/<string:participant_id>', methods=['PUT'])
def save_profile(participant_id):
    """
    Creates or updates a profile. Omitted category/token keep their value.
    """
    data = _json_body()
    fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}
    profile = _store().save(participant_id, **fields)
    return jsonify(profile.to_dict()), 200


@profiles.route('/<string:participant_id>/category', methods=['POST'])
def set_category(participant_id):
    data = _json_body()
    if not data.get('category'):
        raise InvalidInput('category is required', code='missing_field', field='category')
    profile = _store().set_category(participant_id, data['category'], token=data.get('token'))
    return jsonify({
        'message': 'Category set successfully',
        'category': profile.category,
        'token': profile.token,
    }), 200


@profiles.route('/by-token/<path:token>', methods=['GET'])
def get_profile_by_token(token):
    profile = _store().find_by_token(token)
    if profile is None:
        raise NotFound('no participant for the given token', code='profile_not_found', token=token)
    return jsonify(profile.to_dict()), 200

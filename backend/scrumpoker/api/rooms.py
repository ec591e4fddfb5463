from flask import Blueprint, current_app, jsonify, request

from scrumpoker import __version__
from scrumpoker.errors import ValidationError
from scrumpoker.models import normalize_room_code
from scrumpoker.services import catalog

rooms_api = Blueprint('rooms_api', __name__)


def _state():
    return current_app.extensions['scrumpoker']


@rooms_api.route('/health', methods=['GET'])
def health():
    state = _state()
    return jsonify({
        'status': 'healthy',
        'uptime': state.uptime,
        'rooms': len(state.rooms),
        'version': __version__,
    })


@rooms_api.route('/room/<string:room_id>', methods=['GET'])
def get_room(room_id):
    """
    Returns the room snapshot, creating the room if it does not exist yet.
    An optional ?team= key seeds a new room from that team's defaults.
    """
    code = normalize_room_code(room_id)
    if not code:
        return jsonify({'success': False, 'error': 'Room ID is required'}), 400
    state = _state()
    try:
        with state.rooms.lock:
            room = state.rooms.get_or_create(code, request.args.get('team'))
            snapshot = room.to_dict()
    except ValidationError as exc:
        return jsonify({'success': False, 'error': exc.message}), 400
    return jsonify({'success': True, 'room': snapshot})


@rooms_api.route('/cardsets', methods=['GET'])
def list_card_sets():
    return jsonify({'success': True, 'cardSets': catalog.card_sets()})


@rooms_api.route('/templates', methods=['GET'])
def list_templates():
    return jsonify({'success': True, 'templates': catalog.templates()})

from flask import Blueprint, current_app, jsonify, request

from scrumpoker.errors import ValidationError

teams_api = Blueprint('teams_api', __name__)


def _team_defaults():
    return current_app.extensions['scrumpoker'].team_defaults


@teams_api.route('/<string:team_key>/defaults', methods=['GET'])
def get_team_defaults(team_key):
    defaults = _team_defaults().get(team_key)
    if defaults is None:
        return jsonify({'success': False, 'error': 'No defaults stored for this team'}), 404
    return jsonify({'success': True, 'defaults': defaults})


@teams_api.route('/<string:team_key>/defaults', methods=['PUT'])
def put_team_defaults(team_key):
    """
    Stores defaults (name, cardSet, customCards, cardHelp, templates) that
    rooms created with ?team=<key> or teamKey start from. Written to disk
    on the next periodic flush.
    """
    data = request.get_json(silent=True)
    try:
        defaults = _team_defaults().put(team_key, data)
    except ValidationError as exc:
        return jsonify({'success': False, 'error': exc.message}), 400
    current_app.logger.info(f"[team-defaults] updated team={team_key} keys={sorted(defaults)}")
    return jsonify({'success': True, 'defaults': defaults})

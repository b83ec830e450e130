from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from wavelength.errors import WavelengthError
from wavelength.services.games import matchmaking as queue


matchmaking = Blueprint('matchmaking', __name__)


@matchmaking.errorhandler(WavelengthError)
def handle_matchmaking_error(exc):
    return jsonify({'status': 'error', 'message': exc.message}), exc.status_code


@matchmaking.errorhandler(SQLAlchemyError)
def handle_store_error(exc):
    current_app.logger.warning(f"[match-store-error] {exc}")
    return jsonify({'status': 'error', 'message': 'Matchmaking is temporarily unavailable'}), 503


@matchmaking.route('', methods=['POST'])
def matchmake():
    data = request.get_json(silent=True) or {}
    action = data.get('action') or 'match'
    player_id = data.get('playerId')
    if not player_id:
        return jsonify({'status': 'error', 'message': 'Missing playerId'}), 400

    if action == 'cancel':
        queue.cancel(player_id)
        return jsonify({'ok': True})

    if action != 'match':
        return jsonify({'status': 'error', 'message': f'Unknown action {action!r}'}), 400

    player_name = (data.get('playerName') or '').strip()
    if not player_name:
        return jsonify({'status': 'error', 'message': 'Missing playerName'}), 400

    return jsonify(queue.enqueue(player_id, player_name))

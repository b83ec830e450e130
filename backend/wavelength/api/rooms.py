from flask import Blueprint, jsonify, request, current_app
from wavelength.errors import InvalidStateError, NotFoundError
from wavelength.models import PHASE_REVEAL
from wavelength.services.games import rooms as room_store
from wavelength.services.games import rounds as round_machine
from wavelength.services.games.scheduler import schedule_reveal_timer


rooms = Blueprint('rooms', __name__)


def _payload():
    return request.get_json(silent=True) or {}


@rooms.errorhandler(InvalidStateError)
def handle_invalid_state(exc):
    # A repeated click whose effect already landed: answer with the current state
    if exc.benign and request.view_args and request.view_args.get('code'):
        state = room_store.snapshot(request.view_args['code'], _payload().get('player_token'))
        state['message'] = exc.message
        return jsonify(state), 200
    return jsonify({'error': exc.message}), exc.status_code


@rooms.route('', methods=['POST'])
def create_room():
    data = _payload()
    room, host, password = room_store.create_room(
        data.get('player_token'),
        data.get('name'),
        is_private=data.get('is_private', False),
        mode=data.get('mode') or 'two_player',
    )
    return jsonify({
        'message': 'New room created!',
        'code': room.code,
        'room': room.to_dict(),
        'player': host.to_dict(host.player_token, include_token=True),
        'password': password,
    }), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = _payload()
    code = data.get('code')
    if not code:
        return jsonify({'error': 'Room code is required'}), 400
    player, created = room_store.join_room(
        code, data.get('player_token'), data.get('name'), password=data.get('password'),
    )
    return jsonify({
        'message': f'Welcome to room {player.room.code}' if created else 'Welcome back',
        'room': player.room.to_dict(),
        'player': player.to_dict(player.player_token, include_token=True),
    }), 201 if created else 200


@rooms.route('/<string:code>/state', methods=['GET'])
def get_room_state(code):
    return jsonify(room_store.snapshot(code, request.args.get('player_token')))


@rooms.route('/<string:code>/rounds', methods=['GET'])
def get_round_history(code):
    return jsonify({'rounds': room_store.round_history(code, request.args.get('player_token'))})


@rooms.route('/<string:code>/leave', methods=['POST'])
def leave_room(code):
    data = _payload()
    room = room_store.get_room(code)
    player = room_store.find_player(room, room_store.clean_token(data.get('player_token')))
    if not player:
        raise NotFoundError('You are not in this room')
    room_store.leave_room(player.id)
    return jsonify({'message': 'You have left the room.'}), 200


@rooms.route('/<string:code>/kick', methods=['POST'])
def kick_player(code):
    data = _payload()
    room_store.kick_player(code, data.get('player_token'), data.get('target_id'))
    return jsonify(room_store.snapshot(code, data.get('player_token')))


@rooms.route('/<string:code>/finish', methods=['POST'])
def finish_game(code):
    data = _payload()
    room_store.end_game(code, data.get('player_token'))
    return jsonify(room_store.snapshot(code, data.get('player_token')))


@rooms.route('/<string:code>/rounds', methods=['POST'])
def start_round(code):
    data = _payload()
    round_machine.start_round(code, data.get('player_token'))
    return jsonify(room_store.snapshot(code, data.get('player_token')))


@rooms.route('/<string:code>/rounds/<int:round_id>/clue', methods=['POST'])
def submit_clue(code, round_id):
    data = _payload()
    round_machine.submit_clue(round_id, data.get('player_token'), data.get('clue'), code=code)
    return jsonify(room_store.snapshot(code, data.get('player_token')))


@rooms.route('/<string:code>/rounds/<int:round_id>/guess', methods=['POST'])
def submit_guess(code, round_id):
    data = _payload()
    rnd = round_machine.submit_guess(round_id, data.get('player_token'), data.get('guess'), code=code)
    if rnd.phase == PHASE_REVEAL:
        schedule_reveal_timer(current_app._get_current_object(), rnd.id)
    return jsonify(room_store.snapshot(code, data.get('player_token')))


@rooms.route('/<string:code>/rounds/<int:round_id>/predict', methods=['POST'])
def submit_prediction(code, round_id):
    data = _payload()
    rnd = round_machine.submit_prediction(round_id, data.get('player_token'), data.get('side'), code=code)
    schedule_reveal_timer(current_app._get_current_object(), rnd.id)
    return jsonify(room_store.snapshot(code, data.get('player_token')))


@rooms.route('/<string:code>/rounds/<int:round_id>/complete', methods=['POST'])
def complete_round(code, round_id):
    data = _payload()
    round_machine.complete_round(round_id, data.get('player_token') or '', code=code)
    return jsonify(room_store.snapshot(code, data.get('player_token')))

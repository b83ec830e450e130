from flask_socketio import join_room, leave_room, emit
from flask import request
from typing import Dict, Any
from wavelength.errors import WavelengthError
from wavelength.models import PHASE_GUESSING
from wavelength.services.games import rooms as room_store
from wavelength.services.games import rounds as round_machine
from wavelength.services.games.events import NAMESPACE, emit_room_event, room_channel
from wavelength.services.games.scoring import clamp_needle


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    _sid_to_ctx.pop(_get_sid(), None)


def handle_join_room(data):
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    token = (data or {}).get('player_token')
    try:
        room_code = room_store.normalize_code(room_code)
        player = room_store.find_player(room_store.get_room(room_code), room_store.clean_token(token))
    except WavelengthError as exc:
        emit('error', {'message': exc.message})
        return
    if not player:
        emit('error', {'message': 'You are not a player in this room'})
        return
    room = room_channel(room_code)
    join_room(room)
    _sid_to_ctx[_get_sid()] = {
        'room_code': room_code,
        'player_token': player.player_token,
        'player_id': player.id,
    }
    emit('joined', {'room': room, 'player_id': player.id})


def handle_leave_room(data):
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    room = room_channel(room_code)
    leave_room(room)
    _sid_to_ctx.pop(_get_sid(), None)
    emit('left', {'room': room})


def handle_resync(data):
    """Explicit snapshot pull, the backstop for missed state_update events."""
    ctx = _sid_to_ctx.get(_get_sid(), {})
    room_code = (data or {}).get('room_code') or ctx.get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    token = (data or {}).get('player_token') or ctx.get('player_token')
    try:
        emit('state', room_store.snapshot(room_code, token))
    except WavelengthError as exc:
        emit('error', {'message': exc.message})


def handle_needle_move(data):
    """Relay the guesser's needle to the rest of the room while guessing."""
    ctx = _sid_to_ctx.get(_get_sid())
    if not ctx:
        emit('error', {'message': 'join a room first'})
        return
    try:
        angle = clamp_needle((data or {}).get('angle'))
    except (TypeError, ValueError):
        emit('error', {'message': 'angle must be a number'})
        return
    try:
        room = room_store.get_room(ctx['room_code'])
    except WavelengthError as exc:
        emit('error', {'message': exc.message})
        return
    rnd = round_machine.active_round(room.id)
    if not rnd or rnd.phase != PHASE_GUESSING or rnd.guesser_token != ctx['player_token']:
        emit('error', {'message': 'Only the guesser can move the needle'})
        return
    emit_room_event(
        ctx['room_code'],
        'needle_move',
        {'room_code': ctx['room_code'], 'angle': angle, 'player_id': ctx['player_id']},
        skip_sid=_get_sid(),
    )


def handle_ping(data):
    emit('pong', data or {})

# ---- Socket context ----

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}

def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_room': handle_join_room,
        'leave_room': handle_leave_room,
        'resync': handle_resync,
        'needle_move': handle_needle_move,
        'ping': handle_ping,
    }
    from wavelength import socketio
    for name, handler in handlers.items():
        socketio.on_event(name, handler, namespace=NAMESPACE)
        if testing:
            # Test-only mirror on default namespace
            socketio.on_event(name, handler, namespace='/')

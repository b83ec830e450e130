"""Room and player store.

Creates and joins rooms, manages membership and the host flag, and builds
the snapshots clients render from. Player identity is the stable per-device
token passed in by the caller.
"""
import random
import string
from typing import Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from wavelength import bcrypt, db
from wavelength.database import transactional
from wavelength.errors import (
    AuthorizationError,
    CapacityError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from wavelength.locks import with_room_lock
from wavelength.models import (
    MODE_TWO_PLAYER,
    PHASE_COMPLETE,
    PHASE_REVEAL,
    PHASE_WAITING,
    ROLE_SPECTATOR,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
    ROOM_FINISHED,
    ROOM_MODES,
    MatchmakingEntry,
    Player,
    Room,
    Round,
    generate_room_code,
    normalize_phase,
    utcnow,
)
from wavelength.services.games.events import queue_room_event

PASSWORD_LENGTH = 4
CODE_ATTEMPTS = 5


def normalize_code(code) -> str:
    code = (code or '').strip().upper()
    if len(code) != ROOM_CODE_LENGTH or any(c not in ROOM_CODE_ALPHABET for c in code):
        raise ValidationError('Room code must be 4 letters or digits')
    return code


def clean_token(token) -> str:
    token = (token or '').strip() if isinstance(token, str) else ''
    if not token:
        raise ValidationError('Player token is required')
    if len(token) > current_app.config.get('MAX_TOKEN_LENGTH', 64):
        raise ValidationError('Player token is too long')
    return token


def clean_name(name) -> str:
    name = (name or '').strip() if isinstance(name, str) else ''
    if not name:
        raise ValidationError('Name is required')
    max_len = current_app.config.get('MAX_NAME_LENGTH', 32)
    if len(name) > max_len:
        raise ValidationError(f'Name must be at most {max_len} characters')
    return name


def generate_password(length=PASSWORD_LENGTH) -> str:
    return ''.join(random.choices(string.digits, k=length))


def get_room(code) -> Room:
    room = Room.query.filter_by(code=normalize_code(code)).first()
    if not room:
        raise NotFoundError(f'Room {code} not found, check the code')
    return room


def get_locked_room(code) -> Room:
    room = with_room_lock(normalize_code(code)).first()
    if not room:
        raise NotFoundError(f'Room {code} not found, check the code')
    return room


def find_player(room: Room, token: str) -> Optional[Player]:
    return Player.query.filter_by(room_id=room.id, player_token=token).first()


def require_member(room: Room, token) -> Player:
    player = find_player(room, clean_token(token))
    if not player:
        raise AuthorizationError('You are not a player in this room')
    return player


def build_room(host_token, host_name, is_private=False, mode=MODE_TWO_PLAYER,
               password=None, max_players=None) -> Tuple[Room, Player, Optional[str]]:
    """Insert a room with the caller as host, without committing.

    Returns ``(room, host, password)``; the plain password is only ever
    returned here and is None for public rooms.
    """
    host_token = clean_token(host_token)
    host_name = clean_name(host_name)
    if mode not in ROOM_MODES:
        raise ValidationError(f'Unknown room mode {mode!r}')
    if not isinstance(is_private, bool):
        raise ValidationError('is_private must be a boolean')

    if is_private:
        if password is None:
            password = generate_password()
        elif not (isinstance(password, str) and password.isdigit() and len(password) == PASSWORD_LENGTH):
            raise ValidationError(f'Password must be {PASSWORD_LENGTH} digits')
    else:
        password = None

    cap = max_players
    if cap is None:
        # Two-player rooms seat exactly the two players
        if mode == MODE_TWO_PLAYER:
            cap = current_app.config.get('TWO_PLAYER_MAX_PLAYERS', 2)
        else:
            cap = current_app.config.get('ROOM_MAX_PLAYERS', 8)
    if cap < current_app.config.get('MIN_PLAYERS', 2):
        raise ValidationError('Room capacity is below the minimum player count')

    password_hash = bcrypt.generate_password_hash(password).decode('utf-8') if password else None
    room = None
    for _ in range(CODE_ATTEMPTS):
        candidate = Room(
            code=generate_room_code(),
            host_token=host_token,
            is_private=is_private,
            password_hash=password_hash,
            mode=mode,
            max_players=cap,
        )
        try:
            with db.session.begin_nested():
                db.session.add(candidate)
        except IntegrityError:
            current_app.logger.warning(f"[room-create] code collision on {candidate.code}, retrying")
            continue
        room = candidate
        break
    if room is None:
        raise InvalidStateError('Could not allocate a room code, try again')

    host = Player(room_id=room.id, player_token=host_token, name=host_name, role=ROLE_SPECTATOR, is_host=True)
    db.session.add(host)
    db.session.flush()

    current_app.logger.info(f"[room-create] room={room.code} private={is_private} mode={mode} cap={cap}")
    return room, host, password


@transactional
def create_room(host_token, host_name, is_private=False, mode=MODE_TWO_PLAYER,
                password=None, max_players=None) -> Tuple[Room, Player, Optional[str]]:
    return build_room(host_token, host_name, is_private=is_private, mode=mode,
                      password=password, max_players=max_players)


@transactional
def join_room(code, token, name, password=None) -> Tuple[Player, bool]:
    """Join a room as a spectator.

    Returns ``(player, created)``. Rejoining with a token already in the
    room hands back the existing row untouched.
    """
    token = clean_token(token)
    name = clean_name(name)
    room = get_locked_room(code)

    if room.is_private and room.password_hash:
        if not password or not bcrypt.check_password_hash(room.password_hash, str(password)):
            raise AuthorizationError('Wrong room password')

    existing = find_player(room, token)
    if existing:
        return existing, False

    if room.status == ROOM_FINISHED:
        raise InvalidStateError('This game has finished')

    count = Player.query.filter_by(room_id=room.id).count()
    if count >= room.max_players:
        raise CapacityError(f'Room is full ({room.max_players} players)')

    player = Player(room_id=room.id, player_token=token, name=name, role=ROLE_SPECTATOR, is_host=False)
    try:
        with db.session.begin_nested():
            db.session.add(player)
    except IntegrityError:
        # Same token joined concurrently
        existing = find_player(room, token)
        if existing:
            return existing, False
        raise

    queue_room_event(room.code)
    current_app.logger.info(f"[room-join] room={room.code} players={count + 1}")
    return player, True


def _abandon_active_round(room: Room, reason: str) -> Optional[Round]:
    active = room.current_round
    if not active or not active.is_active:
        return None
    active.phase = PHASE_COMPLETE
    active.completed_at = active.completed_at or utcnow()
    current_app.logger.info(f"[round-abandon] room={room.code} round={active.round_number} reason={reason}")
    return active


def _promote_next_host(room: Room, leaving: Player) -> Optional[Player]:
    successor = (
        Player.query.filter(Player.room_id == room.id, Player.id != leaving.id)
        .order_by(Player.joined_at.asc(), Player.id.asc())
        .first()
    )
    if successor:
        successor.is_host = True
        room.host_token = successor.player_token
    return successor


def _remove_player(room: Room, player: Player, reason: str) -> None:
    token = player.player_token
    player_id = player.id
    active = room.current_round
    if active and active.is_active and token in active.participant_tokens():
        _abandon_active_round(room, reason)

    remaining = Player.query.filter(Player.room_id == room.id, Player.id != player.id).count()
    if player.is_host and remaining:
        successor = _promote_next_host(room, player)
        current_app.logger.info(f"[host-promote] room={room.code} new_host={successor.id}")

    code = room.code
    db.session.delete(player)
    queue_room_event(code, 'player_removed', {'player_id': player_id, 'reason': reason})
    queue_room_event(code)

    if not remaining:
        # Last one out closes the room
        MatchmakingEntry.query.filter_by(matched_room_id=room.id).update(
            {'matched_room_id': None}, synchronize_session=False
        )
        db.session.delete(room)
        current_app.logger.info(f"[room-close] room={code}")


@transactional
def leave_room(player_id: int) -> None:
    player = db.session.get(Player, player_id)
    if not player:
        raise NotFoundError('Player not found')
    room = get_locked_room(player.room.code)
    _remove_player(room, player, reason='left')
    current_app.logger.info(f"[room-leave] room={room.code} player={player_id}")


@transactional
def kick_player(code, host_token, target_id) -> None:
    room = get_locked_room(code)
    host = require_member(room, host_token)
    if not host.is_host:
        raise AuthorizationError('Only the host can remove players')
    if isinstance(target_id, bool) or not isinstance(target_id, int):
        raise ValidationError('target_id must be a player id')
    if target_id == host.id:
        raise ValidationError('The host cannot kick themselves')
    target = Player.query.filter_by(room_id=room.id, id=target_id).first()
    if not target:
        raise NotFoundError('Player not found in this room')
    _remove_player(room, target, reason='kicked')
    current_app.logger.info(f"[room-kick] room={room.code} player={target.id}")


@transactional
def end_game(code, host_token) -> Room:
    room = get_locked_room(code)
    host = require_member(room, host_token)
    if not host.is_host:
        raise AuthorizationError('Only the host can end the game')
    if room.status == ROOM_FINISHED:
        return room
    _abandon_active_round(room, reason='finished')
    room.status = ROOM_FINISHED
    queue_room_event(room.code)
    current_app.logger.info(f"[room-finish] room={room.code}")
    return room


def can_see_target(rnd: Round, viewer_token: Optional[str]) -> bool:
    if normalize_phase(rnd.phase) in (PHASE_REVEAL, PHASE_COMPLETE):
        return True
    return bool(viewer_token) and viewer_token == rnd.clue_giver_token


def snapshot(code, viewer_token=None) -> dict:
    """Consistent read of a room for rendering and periodic resync."""
    room = get_room(code)
    players = Player.query.filter_by(room_id=room.id).order_by(Player.joined_at.asc(), Player.id.asc()).all()
    current = room.current_round
    me = next((p for p in players if viewer_token and p.player_token == viewer_token), None)
    cfg = current_app.config
    player_ids = {p.player_token: p.id for p in players}
    return {
        'room': room.to_dict(),
        'players': [p.to_dict(viewer_token) for p in players],
        'my_player': me.to_dict(viewer_token, include_token=True) if me else None,
        'current_round': (
            current.to_dict(include_target=can_see_target(current, viewer_token), player_ids=player_ids)
            if current else None
        ),
        'phase': normalize_phase(current.phase) if current else PHASE_WAITING,
        'timing': {
            'resync_interval_sec': int(cfg.get('RESYNC_INTERVAL_SEC', 3)),
            'reveal_duration_sec': int(cfg.get('REVEAL_DURATION_SEC', 8)),
        },
    }


def round_history(code, viewer_token=None) -> list:
    room = get_room(code)
    player_ids = {p.player_token: p.id for p in Player.query.filter_by(room_id=room.id)}
    rounds = Round.query.filter_by(room_id=room.id).order_by(Round.round_number.asc()).all()
    return [r.to_dict(include_target=can_see_target(r, viewer_token), player_ids=player_ids) for r in rounds]


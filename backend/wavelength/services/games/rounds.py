"""Round state machine.

A round moves ``clue_giving -> guessing -> reveal -> complete``; rounds in
team rooms pass through ``predicting`` between guessing and reveal. Every
transition is a conditional UPDATE on the expected phase, so of two racing
requests exactly one wins and the other sees an ``InvalidStateError``.
"""
import math
import random
from typing import Optional

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from wavelength import db
from wavelength.database import transactional
from wavelength.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from wavelength.locks import with_round_lock
from wavelength.models import (
    ACTIVE_PHASES,
    MODE_TEAM,
    PHASE_CLUE_GIVING,
    PHASE_COMPLETE,
    PHASE_GUESSING,
    PHASE_PREDICTING,
    PHASE_REVEAL,
    ROLE_GUESSER,
    ROLE_PSYCHIC,
    ROLE_SPECTATOR,
    ROOM_FINISHED,
    ROOM_PLAYING,
    Player,
    Round,
    utcnow,
)
from wavelength.services.games import rooms as room_store
from wavelength.services.games.events import queue_room_event
from wavelength.services.games.rotation import next_roles, pick_predictor
from wavelength.services.games.scoring import (
    PREDICTION_BONUS,
    SCALE_MAX,
    SCALE_MIN,
    SIDE_LEFT,
    SIDE_RIGHT,
    generate_target,
    prediction_is_correct,
    score,
)

EXTREME_PAIRS = [
    ('Cold', 'Hot'),
    ('Boring', 'Exciting'),
    ('Common', 'Rare'),
    ('Cheap', 'Expensive'),
    ('Ugly', 'Beautiful'),
    ('Weak', 'Powerful'),
    ('Slow', 'Fast'),
    ('Tiny', 'Huge'),
    ('Ancient', 'Modern'),
    ('Simple', 'Complex'),
    ('Bad', 'Good'),
    ('Quiet', 'Loud'),
    ('Soft', 'Hard'),
    ('Light', 'Heavy'),
    ('Sad', 'Happy'),
]

PHASE_ORDER = (PHASE_CLUE_GIVING, PHASE_GUESSING, PHASE_PREDICTING, PHASE_REVEAL, PHASE_COMPLETE)


def _load_round(round_id, code: Optional[str] = None) -> Round:
    rnd = with_round_lock(round_id).first()
    if not rnd:
        raise NotFoundError(f'Round {round_id} not found')
    if code is not None and rnd.room.code != room_store.normalize_code(code):
        raise NotFoundError(f'Round {round_id} not found in room {code}')
    return rnd


def _check_phase(rnd: Round, required: str, action: str) -> None:
    if rnd.phase == required:
        return
    try:
        already_applied = PHASE_ORDER.index(rnd.phase) > PHASE_ORDER.index(required)
    except ValueError:
        already_applied = False
    raise InvalidStateError(
        f'Cannot {action} during {rnd.phase} (round {rnd.round_number})',
        benign=already_applied,
    )


def _advance(rnd: Round, expected: str, **values) -> None:
    """Move ``rnd`` out of ``expected`` only if no one else did first."""
    result = db.session.execute(
        update(Round)
        .where(Round.id == rnd.id, Round.phase == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError(f'Round {rnd.round_number} already left {expected}', benign=True)
    db.session.refresh(rnd)


def _award(room_id: int, token: str, points: int) -> None:
    if not points:
        return
    db.session.execute(
        update(Player)
        .where(Player.room_id == room_id, Player.player_token == token)
        .values(score=Player.score + points)
        .execution_options(synchronize_session=False)
    )


def active_round(room_id: int) -> Optional[Round]:
    return Round.query.filter(Round.room_id == room_id, Round.phase.in_(ACTIVE_PHASES)).first()


@transactional
def start_round(code, token, rng: Optional[random.Random] = None) -> Round:
    """Start the next round in a room.

    If a round is already active it is returned unchanged, so a second
    "start" racing the first is a silent no-op.
    """
    room = room_store.get_locked_room(code)
    room_store.require_member(room, token)
    if room.status == ROOM_FINISHED:
        raise InvalidStateError('This game has finished')

    existing = active_round(room.id)
    if existing:
        current_app.logger.info(f"[round-start-skip] room={room.code} active={existing.round_number}")
        return existing

    players = Player.query.filter_by(room_id=room.id).all()
    min_players = int(current_app.config.get('MIN_PLAYERS', 2))
    if len(players) < min_players:
        raise InvalidStateError(f'At least {min_players} players are required to start')

    history = [
        (r.clue_giver_token, r.guesser_token)
        for r in Round.query.filter_by(room_id=room.id).order_by(Round.round_number.asc())
    ]
    tokens = [p.player_token for p in players]
    clue_giver, guesser = next_roles(history, tokens)
    predictor = pick_predictor(tokens, clue_giver, guesser) if room.mode == MODE_TEAM else None

    rng = rng or random
    center, width = generate_target(rng)
    left, right = rng.choice(EXTREME_PAIRS)
    last_number = db.session.query(func.max(Round.round_number)).filter(Round.room_id == room.id).scalar() or 0

    rnd = Round(
        room_id=room.id,
        round_number=last_number + 1,
        phase=PHASE_CLUE_GIVING,
        clue_giver_token=clue_giver,
        guesser_token=guesser,
        predictor_token=predictor,
        left_extreme=left,
        right_extreme=right,
        target_center=center,
        target_width=width,
    )
    try:
        with db.session.begin_nested():
            db.session.add(rnd)
    except IntegrityError:
        existing = active_round(room.id)
        if existing:
            current_app.logger.info(f"[round-start-race] room={room.code} active={existing.round_number}")
            return existing
        raise

    for p in players:
        if p.player_token == clue_giver:
            p.role = ROLE_PSYCHIC
        elif p.player_token == guesser:
            p.role = ROLE_GUESSER
        else:
            p.role = ROLE_SPECTATOR
    room.status = ROOM_PLAYING

    queue_room_event(room.code)
    current_app.logger.info(
        f"[round-start] room={room.code} round={rnd.round_number} clue_giver={clue_giver} guesser={guesser}"
    )
    return rnd


@transactional
def submit_clue(round_id, token, clue, code=None) -> Round:
    rnd = _load_round(round_id, code)
    clue = (clue or '').strip() if isinstance(clue, str) else ''
    if not clue:
        raise ValidationError('Clue cannot be empty')
    max_len = current_app.config.get('MAX_CLUE_LENGTH', 100)
    if len(clue) > max_len:
        raise ValidationError(f'Clue must be at most {max_len} characters')
    if token != rnd.clue_giver_token:
        raise AuthorizationError('Only the clue-giver can submit the clue')
    _check_phase(rnd, PHASE_CLUE_GIVING, 'submit a clue')

    _advance(rnd, PHASE_CLUE_GIVING, clue=clue, phase=PHASE_GUESSING)
    queue_room_event(rnd.room.code)
    current_app.logger.info(f"[round-clue] room={rnd.room.code} round={rnd.round_number}")
    return rnd


@transactional
def submit_guess(round_id, token, value, code=None) -> Round:
    rnd = _load_round(round_id, code)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError('Guess must be a number')
    if not SCALE_MIN <= value <= SCALE_MAX:
        raise ValidationError(f'Guess must be between {SCALE_MIN:g} and {SCALE_MAX:g}')
    if token != rnd.guesser_token:
        raise AuthorizationError('Only the guesser can submit the guess')
    _check_phase(rnd, PHASE_GUESSING, 'submit a guess')

    points = score(value, rnd.target_center, rnd.target_width)
    next_phase = PHASE_PREDICTING if rnd.predictor_token else PHASE_REVEAL
    values = {'guess_value': float(value), 'points_awarded': points, 'phase': next_phase}
    if next_phase == PHASE_REVEAL:
        values['completed_at'] = utcnow()
    _advance(rnd, PHASE_GUESSING, **values)
    _award(rnd.room_id, rnd.guesser_token, points)

    queue_room_event(rnd.room.code)
    current_app.logger.info(
        f"[round-guess] room={rnd.room.code} round={rnd.round_number} guess={value} points={points}"
    )
    return rnd


@transactional
def submit_prediction(round_id, token, side, code=None) -> Round:
    rnd = _load_round(round_id, code)
    if side not in (SIDE_LEFT, SIDE_RIGHT):
        raise ValidationError("Prediction must be 'left' or 'right'")
    if not rnd.predictor_token or token != rnd.predictor_token:
        raise AuthorizationError('Only the predictor can submit a prediction')
    _check_phase(rnd, PHASE_PREDICTING, 'submit a prediction')

    correct = prediction_is_correct(side, rnd.guess_value, rnd.target_center)
    _advance(
        rnd, PHASE_PREDICTING,
        predicted_side=side, prediction_correct=correct, phase=PHASE_REVEAL, completed_at=utcnow(),
    )
    _award(rnd.room_id, rnd.predictor_token, PREDICTION_BONUS if correct else 0)

    queue_room_event(rnd.room.code)
    current_app.logger.info(
        f"[round-predict] room={rnd.room.code} round={rnd.round_number} side={side} correct={correct}"
    )
    return rnd


@transactional
def complete_round(round_id, token=None, code=None) -> Round:
    """Close a revealed round. ``token`` is None when the reveal timer fires."""
    rnd = _load_round(round_id, code)
    if token is not None:
        room_store.require_member(rnd.room, token)
    _check_phase(rnd, PHASE_REVEAL, 'complete the round')

    _advance(rnd, PHASE_REVEAL, phase=PHASE_COMPLETE)
    queue_room_event(rnd.room.code)
    current_app.logger.info(f"[round-complete] room={rnd.room.code} round={rnd.round_number}")
    return rnd

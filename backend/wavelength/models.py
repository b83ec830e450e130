from wavelength import db
from wavelength.services.games.scoring import zone_bands
from datetime import datetime, timezone
import random

# Join codes skip easily confused characters (0/O, 1/I)
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 4

ROOM_WAITING = 'waiting'
ROOM_PLAYING = 'playing'
ROOM_FINISHED = 'finished'

MODE_TWO_PLAYER = 'two_player'
MODE_TEAM = 'team'
ROOM_MODES = (MODE_TWO_PLAYER, MODE_TEAM)

ROLE_PSYCHIC = 'psychic'
ROLE_GUESSER = 'guesser'
ROLE_SPECTATOR = 'spectator'

PHASE_WAITING = 'waiting'
PHASE_CLUE_GIVING = 'clue_giving'
PHASE_GUESSING = 'guessing'
PHASE_PREDICTING = 'predicting'
PHASE_REVEAL = 'reveal'
PHASE_COMPLETE = 'complete'
PHASES = (PHASE_WAITING, PHASE_CLUE_GIVING, PHASE_GUESSING, PHASE_PREDICTING, PHASE_REVEAL, PHASE_COMPLETE)
ACTIVE_PHASES = (PHASE_CLUE_GIVING, PHASE_GUESSING, PHASE_PREDICTING, PHASE_REVEAL)

QUEUE_WAITING = 'waiting'
QUEUE_MATCHED = 'matched'
QUEUE_CANCELLED = 'cancelled'

_ACTIVE_PHASES_SQL = "phase IN ('clue_giving', 'guessing', 'predicting', 'reveal')"


def utcnow():
    return datetime.now(timezone.utc)


def normalize_phase(phase):
    """Unrecognised phase values are shown as waiting."""
    return phase if phase in PHASES else PHASE_WAITING


def generate_room_code(length=ROOM_CODE_LENGTH):
    """Generate a unique, short room code."""
    while True:
        code = ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))
        if not Room.query.filter_by(code=code).first():
            return code


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(ROOM_CODE_LENGTH), unique=True, nullable=False, index=True)
    host_token = db.Column(db.String(64), nullable=False)
    is_private = db.Column(db.Boolean, default=False, nullable=False)
    password_hash = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), default=ROOM_WAITING, nullable=False)  # waiting, playing, finished
    mode = db.Column(db.String(16), default=MODE_TWO_PLAYER, nullable=False)  # two_player, team
    max_players = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    players = db.relationship('Player', back_populates='room', order_by='Player.id', cascade='all, delete-orphan')
    rounds = db.relationship('Round', back_populates='room', order_by='Round.round_number', cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        super(Room, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_room_code()

    @property
    def current_round(self):
        return Round.query.filter_by(room_id=self.id).order_by(Round.round_number.desc()).first()

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'is_private': self.is_private,
            'status': self.status,
            'mode': self.mode,
            'max_players': self.max_players,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'player_token', name='uq_player_room_token'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id', ondelete='CASCADE'), nullable=False, index=True)
    player_token = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(16), default=ROLE_SPECTATOR, nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    joined_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    room = db.relationship('Room', back_populates='players')

    def to_dict(self, viewer_token=None, include_token=False):
        """Public view of a player. The token is the player's only credential
        and is only included for the player's own row."""
        payload = {
            'id': self.id,
            'room_id': self.room_id,
            'name': self.name,
            'role': self.role,
            'score': self.score,
            'is_host': self.is_host,
            'joined_at': self.joined_at.isoformat() if self.joined_at else None,
            'is_me': bool(viewer_token) and viewer_token == self.player_token,
        }
        if include_token:
            payload['player_token'] = self.player_token
        return payload


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'round_number', name='uq_round_room_number'),
        # At most one active round per room
        db.Index(
            'uq_round_room_active', 'room_id', unique=True,
            sqlite_where=db.text(_ACTIVE_PHASES_SQL),
            postgresql_where=db.text(_ACTIVE_PHASES_SQL),
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id', ondelete='CASCADE'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    phase = db.Column(db.String(16), default=PHASE_CLUE_GIVING, nullable=False)
    clue_giver_token = db.Column(db.String(64), nullable=False)
    guesser_token = db.Column(db.String(64), nullable=False)
    predictor_token = db.Column(db.String(64), nullable=True)
    left_extreme = db.Column(db.String(64), nullable=False)
    right_extreme = db.Column(db.String(64), nullable=False)
    target_center = db.Column(db.Float, nullable=False)
    target_width = db.Column(db.Float, nullable=False)
    clue = db.Column(db.Text, nullable=True)
    guess_value = db.Column(db.Float, nullable=True)
    points_awarded = db.Column(db.Integer, nullable=True)
    predicted_side = db.Column(db.String(8), nullable=True)
    prediction_correct = db.Column(db.Boolean, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    room = db.relationship('Room', back_populates='rounds')

    @property
    def is_active(self):
        return self.phase in ACTIVE_PHASES

    def participant_tokens(self):
        return {t for t in (self.clue_giver_token, self.guesser_token, self.predictor_token) if t}

    def to_dict(self, include_target=True, player_ids=None):
        # Roles are exposed as player row ids; players who left map to None
        player_ids = player_ids or {}
        phase = normalize_phase(self.phase)
        payload = {
            'id': self.id,
            'room_id': self.room_id,
            'round_number': self.round_number,
            'phase': phase,
            'clue_giver_id': player_ids.get(self.clue_giver_token),
            'guesser_id': player_ids.get(self.guesser_token),
            'predictor_id': player_ids.get(self.predictor_token),
            'left_extreme': self.left_extreme,
            'right_extreme': self.right_extreme,
            'clue': self.clue,
            'guess_value': self.guess_value,
            'points_awarded': self.points_awarded,
            'predicted_side': self.predicted_side,
            'prediction_correct': self.prediction_correct,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'target_center': None,
            'target_width': None,
            'zones': None,
        }
        if include_target:
            payload['target_center'] = self.target_center
            payload['target_width'] = self.target_width
            payload['zones'] = zone_bands(self.target_center, self.target_width)
        return payload


class MatchmakingEntry(db.Model):
    __tablename__ = 'matchmaking_entry'
    id = db.Column(db.Integer, primary_key=True)
    player_token = db.Column(db.String(64), nullable=False, index=True)
    player_name = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), default=QUEUE_WAITING, nullable=False, index=True)  # waiting, matched, cancelled
    matched_room_id = db.Column(db.Integer, db.ForeignKey('room.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    matched_room = db.relationship('Room')

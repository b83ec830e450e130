"""Row-level locking helpers.

On PostgreSQL these issue ``SELECT ... FOR UPDATE`` so concurrent requests
touching the same room or round queue up inside the database. SQLite has no
row locks; there the ``BEGIN IMMEDIATE`` transactions set up in
``wavelength.database`` serialise writers instead.
"""
from sqlalchemy import text

from wavelength import db
from wavelength.models import Room, Round

# Arbitrary application-wide key for pg_advisory_xact_lock
MATCHMAKING_LOCK_KEY = 7_301_842


def with_room_lock(code: str):
    """Lock a room by join code. Call ``.first()`` on the result."""
    return Room.query.filter(Room.code == code).with_for_update(nowait=False)


def with_round_lock(round_id: int):
    """Lock a single round. Call ``.first()`` on the result."""
    return Round.query.filter(Round.id == round_id).with_for_update(nowait=False)


def with_queue_lock() -> None:
    """Serialise matchmaking pairing for the rest of the transaction."""
    if db.session.get_bind().dialect.name == 'postgresql':
        db.session.execute(text('SELECT pg_advisory_xact_lock(:key)'), {'key': MATCHMAKING_LOCK_KEY})

"""Two-player matchmaking queue.

Clients call ``enqueue`` repeatedly (every couple of seconds) until it
reports a match, then join the returned room by code. Pairing runs under a
queue-wide lock so two simultaneous callers can never both create a room,
and a waiting entry can be matched at most once.
"""
from datetime import timedelta

from flask import current_app

from wavelength import db
from wavelength.database import transactional
from wavelength.locks import with_queue_lock
from wavelength.models import (
    MODE_TWO_PLAYER,
    QUEUE_CANCELLED,
    QUEUE_MATCHED,
    QUEUE_WAITING,
    MatchmakingEntry,
    utcnow,
)
from wavelength.services.games.rooms import build_room, clean_name, clean_token

MATCHED_ROOM_CAPACITY = 2


@transactional
def enqueue(player_token, player_name) -> dict:
    token = clean_token(player_token)
    name = clean_name(player_name)
    with_queue_lock()

    cfg = current_app.config
    now = utcnow()
    match_cutoff = now - timedelta(seconds=int(cfg.get('MATCHMAKING_MATCH_TTL_SEC', 120)))
    stale_cutoff = now - timedelta(seconds=int(cfg.get('MATCHMAKING_STALE_SEC', 30)))

    # Someone else already paired with us since our last poll
    matched = (
        MatchmakingEntry.query
        .filter(
            MatchmakingEntry.player_token == token,
            MatchmakingEntry.status == QUEUE_MATCHED,
            MatchmakingEntry.matched_room_id.isnot(None),
            MatchmakingEntry.updated_at >= match_cutoff,
        )
        .order_by(MatchmakingEntry.id.desc())
        .first()
    )
    if matched:
        return {'status': 'matched', 'room_code': matched.matched_room.code}

    MatchmakingEntry.query.filter_by(player_token=token, status=QUEUE_WAITING).update(
        {'status': QUEUE_CANCELLED, 'updated_at': now}, synchronize_session=False
    )

    partner = (
        MatchmakingEntry.query
        .filter(
            MatchmakingEntry.status == QUEUE_WAITING,
            MatchmakingEntry.player_token != token,
            MatchmakingEntry.updated_at >= stale_cutoff,
        )
        .order_by(MatchmakingEntry.created_at.asc(), MatchmakingEntry.id.asc())
        .first()
    )
    if partner is None:
        entry = MatchmakingEntry(player_token=token, player_name=name, status=QUEUE_WAITING)
        db.session.add(entry)
        db.session.flush()
        return {'status': 'waiting', 'queue_id': entry.id}

    room, _, _ = build_room(
        partner.player_token, partner.player_name,
        is_private=False, mode=MODE_TWO_PLAYER, max_players=MATCHED_ROOM_CAPACITY,
    )
    partner.status = QUEUE_MATCHED
    partner.matched_room_id = room.id
    partner.updated_at = now
    db.session.add(MatchmakingEntry(
        player_token=token, player_name=name, status=QUEUE_MATCHED, matched_room_id=room.id,
    ))
    current_app.logger.info(f"[match] room={room.code} waiting_entry={partner.id}")
    return {'status': 'matched', 'room_code': room.code}


@transactional
def cancel(player_token) -> int:
    """Withdraw from the queue and forget any match not yet picked up."""
    token = clean_token(player_token)
    with_queue_lock()
    count = MatchmakingEntry.query.filter(
        MatchmakingEntry.player_token == token,
        MatchmakingEntry.status.in_((QUEUE_WAITING, QUEUE_MATCHED)),
    ).update({'status': QUEUE_CANCELLED, 'updated_at': utcnow()}, synchronize_session=False)
    current_app.logger.info(f"[match-cancel] entries={count}")
    return count


@transactional
def purge_queue() -> int:
    """Delete cancelled entries and entries past their waiting or match window."""
    cfg = current_app.config
    now = utcnow()
    stale_cutoff = now - timedelta(seconds=int(cfg.get('MATCHMAKING_STALE_SEC', 30)))
    match_cutoff = now - timedelta(seconds=int(cfg.get('MATCHMAKING_MATCH_TTL_SEC', 120)))
    removed = MatchmakingEntry.query.filter(
        (MatchmakingEntry.status == QUEUE_CANCELLED)
        | ((MatchmakingEntry.status == QUEUE_WAITING) & (MatchmakingEntry.updated_at < stale_cutoff))
        | ((MatchmakingEntry.status == QUEUE_MATCHED) & (MatchmakingEntry.updated_at < match_cutoff))
    ).delete(synchronize_session=False)
    current_app.logger.info(f"[queue-purge] removed={removed}")
    return removed

"""Room event bus.

Services queue room events on the current database session; they are
emitted over Socket.IO only once the transaction commits, and dropped if it
rolls back, so clients never observe a state that was not persisted.
Delivery is at-least-once and best effort: clients also poll the room
snapshot every ``RESYNC_INTERVAL_SEC`` seconds.
"""
from flask import current_app
from sqlalchemy import event

from wavelength import db, socketio

NAMESPACE = '/ws'
_PENDING_KEY = 'room_events'


def room_channel(code: str) -> str:
    return f"room:{code.upper()}"


def queue_room_event(code: str, name: str = 'state_update', payload: dict = None) -> None:
    data = {'room_code': code}
    data.update(payload or {})
    db.session.info.setdefault(_PENDING_KEY, []).append((code, name, data))


def emit_room_event(code: str, name: str, data: dict, skip_sid=None) -> None:
    try:
        socketio.emit(name, data, to=room_channel(code), namespace=NAMESPACE, skip_sid=skip_sid)
    except Exception as exc:
        current_app.logger.warning(f"[emit-failed] room={code} event={name}: {exc}")


def _flush_room_events(session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    seen = set()
    for code, name, data in pending:
        key = (code, name, tuple(sorted(data.items())))
        if key in seen:
            continue
        seen.add(key)
        emit_room_event(code, name, data)


def _discard_room_events(session) -> None:
    session.info.pop(_PENDING_KEY, None)


def register_event_hooks() -> None:
    if not event.contains(db.session, 'after_commit', _flush_room_events):
        event.listen(db.session, 'after_commit', _flush_room_events)
        event.listen(db.session, 'after_rollback', _discard_room_events)

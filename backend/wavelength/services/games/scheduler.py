import time
from typing import Set

from wavelength import socketio
from wavelength.errors import InvalidStateError, NotFoundError


_scheduled_rounds: Set[int] = set()


def schedule_reveal_timer(app, round_id: int) -> None:
    """Schedule auto-advance reveal -> complete for the given round.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - No-ops when REVEAL_DURATION_SEC is 0
    - Ensures a single timer per round
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    delay = int(app.config.get('REVEAL_DURATION_SEC', 8))
    if delay <= 0:
        return

    if round_id in _scheduled_rounds:
        app.logger.info(f"[timer-skip] round={round_id} already scheduled")
        return
    _scheduled_rounds.add(round_id)
    app.logger.info(f"[timer-set] round={round_id} duration={delay}s")
    socketio.start_background_task(complete_after_reveal, app, round_id, delay)


def complete_after_reveal(app, round_id: int, delay: int) -> bool:
    """Timer body: wait, then complete the round unless a client already did."""
    from wavelength.services.games.rounds import complete_round

    if delay > 0:
        time.sleep(delay)
    with app.app_context():
        _scheduled_rounds.discard(round_id)
        try:
            rnd = complete_round(round_id)
        except (InvalidStateError, NotFoundError) as exc:
            app.logger.info(f"[timer-abort] round={round_id}: {exc.message}")
            return False
        app.logger.info(f"[timer-fire] room={rnd.room.code} round={rnd.round_number} completed")
        return True

import random
import threading

import pytest

from wavelength import db, socketio
from wavelength.errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from wavelength.models import Player, Round
from wavelength.services.games import rooms as room_store
from wavelength.services.games import rounds as round_machine
from wavelength.services.games import scheduler
from wavelength.services.games.scheduler import complete_after_reveal, schedule_reveal_timer
from wavelength.services.games.scoring import score


def scores(code):
    room = room_store.get_room(code)
    return {p.player_token: p.score for p in Player.query.filter_by(room_id=room.id)}


def play_to_reveal(code, starter='p1', guess=None):
    rnd = round_machine.start_round(code, starter)
    round_machine.submit_clue(rnd.id, rnd.clue_giver_token, 'lukewarm tea')
    value = rnd.target_center if guess is None else guess
    return round_machine.submit_guess(rnd.id, rnd.guesser_token, value)


def test_two_player_round_flow(flask_app, make_room):
    code, _ = make_room(2)
    rnd = round_machine.start_round(code, 'p1', rng=random.Random(3))
    assert rnd.round_number == 1
    assert rnd.phase == 'clue_giving'
    assert (rnd.clue_giver_token, rnd.guesser_token) == ('p1', 'p2')
    assert rnd.predictor_token is None
    assert room_store.get_room(code).status == 'playing'

    rnd = round_machine.submit_clue(rnd.id, 'p1', '  lukewarm tea  ')
    assert rnd.phase == 'guessing'
    assert rnd.clue == 'lukewarm tea'

    guess = rnd.target_center + 3
    rnd = round_machine.submit_guess(rnd.id, 'p2', guess)
    assert rnd.phase == 'reveal'
    assert rnd.points_awarded == score(guess, rnd.target_center, rnd.target_width)
    assert rnd.completed_at is not None
    assert scores(code) == {'p1': 0, 'p2': rnd.points_awarded}

    rnd = round_machine.complete_round(rnd.id, 'p1')
    assert rnd.phase == 'complete'


def test_start_round_needs_min_players(flask_app):
    room, _, _ = room_store.create_room('p1', 'Alice')
    with pytest.raises(InvalidStateError):
        round_machine.start_round(room.code, 'p1')
    assert Round.query.count() == 0


def test_start_round_requires_membership(flask_app, make_room):
    code, _ = make_room(2)
    with pytest.raises(AuthorizationError):
        round_machine.start_round(code, 'stranger')


def test_start_round_while_active_returns_existing(flask_app, make_room):
    code, _ = make_room(2)
    first = round_machine.start_round(code, 'p1')
    again = round_machine.start_round(code, 'p2')
    assert again.id == first.id
    assert Round.query.count() == 1


def test_round_numbers_are_sequential(flask_app, make_room):
    code, _ = make_room(3)
    numbers = []
    for _ in range(4):
        rnd = play_to_reveal(code)
        numbers.append(rnd.round_number)
        round_machine.complete_round(rnd.id, 'p1')
    assert numbers == [1, 2, 3, 4]
    history = room_store.round_history(code)
    assert [r['round_number'] for r in history] == [1, 2, 3, 4]
    assert all(r['phase'] == 'complete' for r in history)


def test_roles_rotate_between_rounds(flask_app, make_room):
    code, _ = make_room(2)
    first = play_to_reveal(code)
    round_machine.complete_round(first.id, 'p1')
    second = round_machine.start_round(code, 'p1')
    assert (second.clue_giver_token, second.guesser_token) == ('p2', 'p1')
    roles = {p.player_token: p.role for p in Player.query.all()}
    assert roles == {'p1': 'guesser', 'p2': 'psychic'}


def test_clue_validation(flask_app, make_room):
    code, _ = make_room(2)
    rnd = round_machine.start_round(code, 'p1')
    with pytest.raises(ValidationError):
        round_machine.submit_clue(rnd.id, 'p1', '   ')
    with pytest.raises(ValidationError):
        round_machine.submit_clue(rnd.id, 'p1', 'x' * 101)
    with pytest.raises(AuthorizationError):
        round_machine.submit_clue(rnd.id, 'p2', 'sneaky')
    assert db.session.get(Round, rnd.id).phase == 'clue_giving'


def test_guess_validation(flask_app, make_room):
    code, _ = make_room(2)
    rnd = round_machine.start_round(code, 'p1')
    with pytest.raises(InvalidStateError) as exc:
        round_machine.submit_guess(rnd.id, 'p2', 90)
    assert not exc.value.benign

    round_machine.submit_clue(rnd.id, 'p1', 'tepid')
    for bad in (-1, 180.5, 'ninety', None, True, float('nan')):
        with pytest.raises(ValidationError):
            round_machine.submit_guess(rnd.id, 'p2', bad)
    with pytest.raises(AuthorizationError):
        round_machine.submit_guess(rnd.id, 'p1', 90)
    assert scores(code) == {'p1': 0, 'p2': 0}


def test_scale_ends_are_valid_guesses(flask_app, make_room):
    code, _ = make_room(2)
    rnd = play_to_reveal(code, guess=0)
    assert rnd.guess_value == 0.0
    assert rnd.points_awarded == 0


def test_repeated_guess_is_benign(flask_app, make_room):
    code, _ = make_room(2)
    rnd = play_to_reveal(code)
    with pytest.raises(InvalidStateError) as exc:
        round_machine.submit_guess(rnd.id, 'p2', 10)
    assert exc.value.benign
    assert scores(code)['p2'] == 30


def test_repeated_clue_is_benign(flask_app, make_room):
    code, _ = make_room(2)
    rnd = round_machine.start_round(code, 'p1')
    round_machine.submit_clue(rnd.id, 'p1', 'first')
    with pytest.raises(InvalidStateError) as exc:
        round_machine.submit_clue(rnd.id, 'p1', 'second')
    assert exc.value.benign
    assert db.session.get(Round, rnd.id).clue == 'first'


def test_complete_before_reveal_is_rejected(flask_app, make_room):
    code, _ = make_room(2)
    rnd = round_machine.start_round(code, 'p1')
    with pytest.raises(InvalidStateError) as exc:
        round_machine.complete_round(rnd.id, 'p1')
    assert not exc.value.benign


def test_complete_requires_membership(flask_app, make_room):
    code, _ = make_room(2)
    rnd = play_to_reveal(code)
    with pytest.raises(AuthorizationError):
        round_machine.complete_round(rnd.id, 'stranger')


def test_round_must_belong_to_room(flask_app, make_room):
    code, _ = make_room(2)
    other_room, _, _ = room_store.create_room('q1', 'Quinn')
    other = other_room.code
    rnd = round_machine.start_round(code, 'p1')
    with pytest.raises(NotFoundError):
        round_machine.submit_clue(rnd.id, 'p1', 'hint', code=other)
    with pytest.raises(NotFoundError):
        round_machine.submit_clue(99999, 'p1', 'hint')


def test_team_round_prediction(flask_app, make_room):
    code, _ = make_room(3, mode='team')
    rnd = round_machine.start_round(code, 'p1')
    assert rnd.predictor_token == 'p3'

    round_machine.submit_clue(rnd.id, rnd.clue_giver_token, 'lukewarm')
    guess = min(rnd.target_center + 10, 180)
    rnd = round_machine.submit_guess(rnd.id, rnd.guesser_token, guess)
    assert rnd.phase == 'predicting'
    assert rnd.completed_at is None

    with pytest.raises(ValidationError):
        round_machine.submit_prediction(rnd.id, 'p3', 'up')
    with pytest.raises(AuthorizationError):
        round_machine.submit_prediction(rnd.id, 'p2', 'left')

    # Target is left of a guess placed to its right
    rnd = round_machine.submit_prediction(rnd.id, 'p3', 'left')
    assert rnd.phase == 'reveal'
    assert rnd.prediction_correct is True
    assert rnd.completed_at is not None
    assert scores(code)['p3'] == 1

    with pytest.raises(InvalidStateError) as exc:
        round_machine.submit_prediction(rnd.id, 'p3', 'left')
    assert exc.value.benign
    assert scores(code)['p3'] == 1


def test_wrong_prediction_earns_nothing(flask_app, make_room):
    code, _ = make_room(3, mode='team')
    rnd = round_machine.start_round(code, 'p1')
    round_machine.submit_clue(rnd.id, rnd.clue_giver_token, 'lukewarm')
    rnd = round_machine.submit_guess(rnd.id, rnd.guesser_token, rnd.target_center + 10)
    rnd = round_machine.submit_prediction(rnd.id, 'p3', 'right')
    assert rnd.prediction_correct is False
    assert scores(code)['p3'] == 0


def test_prediction_not_allowed_in_two_player_mode(flask_app, make_room):
    code, _ = make_room(2)
    rnd = play_to_reveal(code)
    with pytest.raises(AuthorizationError):
        round_machine.submit_prediction(rnd.id, 'p1', 'left')


def test_complete_after_reveal_closes_round(flask_app, make_room):
    code, _ = make_room(2)
    round_id = play_to_reveal(code).id
    # The timer runs in its own app context; release this one's transaction
    db.session.remove()

    assert complete_after_reveal(flask_app, round_id, 0) is True
    assert db.session.get(Round, round_id).phase == 'complete'
    db.session.remove()

    # A client got there first: the timer backs off
    assert complete_after_reveal(flask_app, round_id, 0) is False


def test_reveal_timer_is_off_in_tests(flask_app, make_room, monkeypatch):
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda *a, **kw: started.append(a))
    monkeypatch.setattr(scheduler, '_scheduled_rounds', set())
    code, _ = make_room(2)
    rnd = play_to_reveal(code)
    schedule_reveal_timer(flask_app, rnd.id)
    assert started == []

    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    schedule_reveal_timer(flask_app, rnd.id)
    schedule_reveal_timer(flask_app, rnd.id)
    assert len(started) == 1


def _race(app, n, target):
    barrier = threading.Barrier(n)
    results, errors = [], []

    def worker(i):
        with app.app_context():
            barrier.wait()
            try:
                results.append(target(i))
            except Exception as exc:  # collected for assertions
                errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_concurrent_start_creates_one_round(file_app):
    room, _, _ = room_store.create_room('p1', 'Alice')
    code = room.code
    room_store.join_room(code, 'p2', 'Bob')
    db.session.remove()

    results, errors = _race(file_app, 4, lambda i: round_machine.start_round(code, f'p{i % 2 + 1}').id)

    assert errors == []
    assert len(set(results)) == 1
    assert Round.query.count() == 1


def test_concurrent_guess_scores_once(file_app):
    room, _, _ = room_store.create_room('p1', 'Alice')
    code = room.code
    room_store.join_room(code, 'p2', 'Bob')
    rnd = round_machine.start_round(code, 'p1')
    round_id, target = rnd.id, rnd.target_center
    round_machine.submit_clue(round_id, 'p1', 'hint')
    db.session.remove()

    results, errors = _race(file_app, 4, lambda i: round_machine.submit_guess(round_id, 'p2', target).phase)

    assert results == ['reveal']
    assert len(errors) == 3
    assert all(isinstance(e, InvalidStateError) and e.benign for e in errors)
    assert scores(code)['p2'] == 30

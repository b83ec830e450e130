import pytest

from wavelength.services.games.rotation import next_roles, pick_predictor


def play(players, rounds):
    history = []
    for _ in range(rounds):
        history.append(next_roles(history, players))
    return history


def test_first_round_uses_token_order():
    assert next_roles([], ['p2', 'p1', 'p3']) == ('p1', 'p2')


def test_needs_two_players():
    with pytest.raises(ValueError):
        next_roles([], ['p1'])
    with pytest.raises(ValueError):
        next_roles([], ['p1', 'p1'])


def test_two_players_alternate():
    history = play(['p1', 'p2'], 6)
    assert history == [('p1', 'p2'), ('p2', 'p1')] * 3


def test_three_players_second_round_goes_to_last_guesser():
    # After p1 gives and p2 guesses, p2 gives and the clue-giver guesses
    history = [('p1', 'p2')]
    clue_giver, guesser = next_roles(history, ['p1', 'p2', 'p3'])
    assert clue_giver != 'p1'
    assert clue_giver == 'p2'
    assert guesser in ('p1', 'p3')
    assert guesser != clue_giver


@pytest.mark.parametrize('n', [3, 4, 5, 8])
def test_everyone_gets_both_roles(n):
    players = [f'p{i}' for i in range(1, n + 1)]
    history = play(players, 4 * n)
    for clue_giver, guesser in history:
        assert clue_giver != guesser
        assert clue_giver in players and guesser in players
    assert {c for c, _ in history} == set(players)
    assert {g for _, g in history} == set(players)


def test_same_clue_giver_never_twice_in_a_row():
    history = play(['p1', 'p2', 'p3', 'p4'], 20)
    for prev, cur in zip(history, history[1:]):
        assert prev[0] != cur[0]


def test_departed_players_in_history_are_ignored():
    history = [('p1', 'p2'), ('p2', 'gone')]
    clue_giver, guesser = next_roles(history, ['p1', 'p2', 'p3'])
    assert {clue_giver, guesser} <= {'p1', 'p2', 'p3'}
    assert clue_giver != guesser


def test_newcomer_joins_the_rotation():
    history = play(['p1', 'p2'], 4)
    clue_giver, guesser = next_roles(history, ['p1', 'p2', 'p3'])
    assert 'p3' in (clue_giver, guesser)


def test_pick_predictor():
    assert pick_predictor(['p1', 'p2', 'p4', 'p3'], 'p1', 'p2') == 'p3'
    assert pick_predictor(['p1', 'p2'], 'p1', 'p2') == 'p1'

"""Clue-giver / guesser rotation.

Pure functions over a room's round history and its current player tokens.
History entries are ``(clue_giver, guesser)`` pairs in round order.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

Pair = Tuple[str, str]


def _last_seen(history: Sequence[Pair]) -> Tuple[Dict[str, int], Dict[str, int]]:
    last_clue: Dict[str, int] = {}
    last_guess: Dict[str, int] = {}
    for idx, (clue_giver, guesser) in enumerate(history):
        last_clue[clue_giver] = idx
        last_guess[guesser] = idx
    return last_clue, last_guess


def _next_after(players: List[str], current: Optional[str], exclude: Iterable[str] = ()) -> str:
    """Round-robin successor of ``current`` in sorted order."""
    skip = set(exclude)
    candidates = [p for p in players if p not in skip]
    for p in candidates:
        if current is None or p > current:
            return p
    return candidates[0]


def next_roles(history: Sequence[Pair], player_ids: Iterable[str]) -> Pair:
    """Pick the next round's ``(clue_giver, guesser)``.

    Two players swap every round. With three or more, the clue goes to
    someone whose latest turn was guessing (or who has not played yet) and
    the guess goes to someone whose latest turn was giving the clue (or who
    has not played yet). Within a pool the player who waited longest for
    that role wins, ties broken by token. Empty pools fall back to
    round-robin by token.
    """
    players = sorted(set(player_ids))
    if len(players) < 2:
        raise ValueError('need at least two players to assign roles')
    if not history:
        return players[0], players[1]

    prev_clue_giver, prev_guesser = history[-1]
    if len(players) == 2 and {prev_clue_giver, prev_guesser} == set(players):
        return prev_guesser, prev_clue_giver

    last_clue, last_guess = _last_seen(history)

    def never_played(p):
        return p not in last_clue and p not in last_guess

    def latest_was_guess(p):
        return last_guess.get(p, -1) > last_clue.get(p, -1)

    def latest_was_clue(p):
        return last_clue.get(p, -1) > last_guess.get(p, -1)

    clue_pool = [p for p in players if never_played(p) or latest_was_guess(p)]
    if clue_pool:
        clue_giver = min(clue_pool, key=lambda p: (last_clue.get(p, -1), p))
    else:
        clue_giver = _next_after(players, prev_clue_giver)

    guess_pool = [p for p in players if p != clue_giver and (never_played(p) or latest_was_clue(p))]
    if guess_pool:
        guesser = min(guess_pool, key=lambda p: (last_guess.get(p, -1), p))
    else:
        guesser = _next_after(players, clue_giver, exclude=[clue_giver])

    return clue_giver, guesser


def pick_predictor(player_ids: Iterable[str], clue_giver: str, guesser: str) -> str:
    """Lowest-token spectator, or the clue-giver when nobody is spectating."""
    spectators = sorted(p for p in set(player_ids) if p not in (clue_giver, guesser))
    return spectators[0] if spectators else clue_giver

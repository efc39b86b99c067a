"""
Best-of-3 series handling for finals brackets.

A finalist who reached the match through a default (bye) win gives up the
first game: when exactly one side qualified by default, the other side is
awarded game 1 as a default win unless game 1 was already recorded.
"""
import json
from typing import Dict, List, Optional, Tuple

from bracket.errors import ValidationError
from bracket.seeding import to_int

MAX_SETS = 5

_A_KEYS = ('a', 'score_a', 'p1', 'player1')
_B_KEYS = ('b', 'score_b', 'p2', 'player2')


def _pick(raw: Dict, keys):
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _empty_game() -> Dict:
    return {'winner_id': None, 'win_type': 'normal', 'a': None, 'b': None}


def normalize_sets(raw, side_a: str, side_b: str) -> List[Dict]:
    """
    Parse a submitted set list into game dicts.

    Accepts a list (or its JSON string) of {a, b} score pairs, optionally with
    an explicit winner_id / win_type. List position is the game number, so a
    blank entry (null or {}) keeps its place as an empty game; trailing empty
    games are dropped. At most MAX_SETS games are read.
    """
    if raw is None or raw == '':
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError('sets must be a JSON list')
    if not isinstance(raw, list):
        raise ValidationError('sets must be a list')

    games = []
    for item in raw[:MAX_SETS]:
        if not isinstance(item, dict):
            games.append(_empty_game())
            continue
        a = to_int(_pick(item, _A_KEYS))
        b = to_int(_pick(item, _B_KEYS))
        if a is not None and a < 0 or b is not None and b < 0:
            raise ValidationError('set scores must be non-negative')
        win_type = 'def' if item.get('win_type') == 'def' else 'normal'
        winner_id = item.get('winner_id')
        if winner_id is not None:
            winner_id = str(winner_id)
            if winner_id not in (side_a, side_b):
                raise ValidationError('set winner is not on this match card')
        elif a is not None and b is not None and a != b:
            winner_id = side_a if a > b else side_b
        games.append({'winner_id': winner_id, 'win_type': win_type, 'a': a, 'b': b})

    while games and not games[-1]['winner_id'] and games[-1]['a'] is None and games[-1]['b'] is None:
        games.pop()
    return games


def get_advantage(side_a: str, side_b: str, a_by_default: bool, b_by_default: bool) -> Optional[Dict]:
    """The advantage holder when exactly one side qualified by default, else None."""
    if bool(a_by_default) == bool(b_by_default):
        return None
    if a_by_default:
        return {'normal_player_id': side_b, 'default_player_id': side_a}
    return {'normal_player_id': side_a, 'default_player_id': side_b}


def apply_advantage(games: List[Dict], side_a: str, side_b: str,
                    a_by_default: bool, b_by_default: bool) -> Tuple[List[Dict], Optional[Dict]]:
    """
    Shape games into exactly three and fill game 1 with the advantage win.

    Returns (games, advantage). A recorded game 1 is never overwritten.
    """
    games3 = [dict(g) for g in games[:3]]
    while len(games3) < 3:
        games3.append(_empty_game())

    advantage = get_advantage(side_a, side_b, a_by_default, b_by_default)
    if advantage and not games3[0].get('winner_id'):
        games3[0] = {
            'winner_id': advantage['normal_player_id'],
            'win_type': 'def',
            'a': None,
            'b': None,
        }
    return games3, advantage


def series_score(games: List[Dict], side_a: str, side_b: str) -> Dict:
    """
    Count game wins per side.

    recommended_winner_id is set once a side has two wins and leads.
    """
    wins = {side_a: 0, side_b: 0}
    for game in games:
        winner = game.get('winner_id')
        if winner in wins:
            wins[winner] += 1

    a_wins, b_wins = wins[side_a], wins[side_b]
    recommended = None
    if a_wins >= 2 and a_wins > b_wins:
        recommended = side_a
    elif b_wins >= 2 and b_wins > a_wins:
        recommended = side_b

    return {
        'a_wins': a_wins,
        'b_wins': b_wins,
        'score_text': f'{a_wins}-{b_wins}',
        'recommended_winner_id': recommended,
    }


def decided_games(games: List[Dict]) -> int:
    return sum(1 for g in games if g.get('winner_id'))

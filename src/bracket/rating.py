"""
ELO-like ranking updates for singles results.
"""
import math
from typing import Dict

from bracket.seeding import to_int

K_FACTOR = 32
DEFAULT_POINTS = 1000
DEFAULT_HANDICAP = 0
POINTS_RANGE = (0, 99999)
HANDICAP_RANGE = (0, 50)
HANDICAP_MARGIN = 10


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int, bounds) -> int:
    low, high = bounds
    return max(low, min(high, value))


def calculate_delta(winner_points, loser_points, winner_handicap, loser_handicap, score_diff) -> Dict:
    """
    Rating change for a finished singles match.

    Winners gain more for upsets and wide margins; a margin of
    HANDICAP_MARGIN or more moves each handicap one step.
    """
    expected = 1 / (1 + 10 ** ((loser_points - winner_points) / 400))
    diff_mul = 1 + score_diff / 30
    hc_mul = 1 + (winner_handicap - loser_handicap) / 50

    wide = score_diff >= HANDICAP_MARGIN
    return {
        'winner_points_delta': _round_half_up(K_FACTOR * (1 - expected) * diff_mul * hc_mul),
        'loser_points_delta': _round_half_up(-K_FACTOR * expected * diff_mul),
        'winner_handicap_delta': -1 if wide else 0,
        'loser_handicap_delta': 1 if wide else 0,
    }


def apply_result(winner: Dict, loser: Dict, winner_score, loser_score, affects_rating: bool) -> Dict:
    """
    Compute the player updates for a finalized singles match.

    Win/loss counters always move; points and handicap only when
    ``affects_rating`` is true. Returns {'winner': patch, 'loser': patch,
    'delta': dict} where delta is all zeros for a non-rated match.
    """
    w_pts = to_int(winner.get('ranking_points'), DEFAULT_POINTS)
    l_pts = to_int(loser.get('ranking_points'), DEFAULT_POINTS)
    w_hc = to_int(winner.get('handicap'), DEFAULT_HANDICAP)
    l_hc = to_int(loser.get('handicap'), DEFAULT_HANDICAP)

    if affects_rating:
        score_diff = max(1, to_int(winner_score, 0) - to_int(loser_score, 0))
        delta = calculate_delta(w_pts, l_pts, w_hc, l_hc, score_diff)
    else:
        delta = {
            'winner_points_delta': 0,
            'loser_points_delta': 0,
            'winner_handicap_delta': 0,
            'loser_handicap_delta': 0,
        }

    winner_patch = {
        'ranking_points': _clamp(w_pts + delta['winner_points_delta'], POINTS_RANGE),
        'handicap': _clamp(w_hc + delta['winner_handicap_delta'], HANDICAP_RANGE),
        'wins': to_int(winner.get('wins'), 0) + 1,
        'matches_played': to_int(winner.get('matches_played'), 0) + 1,
    }
    loser_patch = {
        'ranking_points': _clamp(l_pts + delta['loser_points_delta'], POINTS_RANGE),
        'handicap': _clamp(l_hc + delta['loser_handicap_delta'], HANDICAP_RANGE),
        'losses': to_int(loser.get('losses'), 0) + 1,
        'matches_played': to_int(loser.get('matches_played'), 0) + 1,
    }
    return {'winner': winner_patch, 'loser': loser_patch, 'delta': delta}

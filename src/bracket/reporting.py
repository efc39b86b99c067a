"""
Result reconciliation: validate a score report against a match card and
decide the finalizing patch.
"""
import math
from typing import Dict, Optional

from bracket.errors import ValidationError, MissingSidesError
from bracket.finals import normalize_sets, apply_advantage, series_score, decided_games

END_REASONS = ('normal', 'time_limit', 'walkover', 'forfeit')
FINALIZED = 'finalized'
DEFAULT_POINT_CAP = 15


def normalize_end_reason(value) -> str:
    """Lower-case end reason, defaulting to 'normal'."""
    if value is None:
        return 'normal'
    reason = str(value).strip().lower() or 'normal'
    if reason not in END_REASONS:
        raise ValidationError(f'unknown end reason: {value}')
    return reason


def resolve_affects_rating(end_reason: str, requested=None) -> bool:
    """
    Whether a finalized match moves ranking points/handicap.

    Any end reason other than 'normal' forces False whatever the caller sent.
    """
    if end_reason != 'normal':
        return False
    if requested is None:
        return True
    return bool(requested)


def parse_score(value, name: str) -> int:
    """Non-negative integer score; numeric strings are accepted."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f'{name} must be a number')
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be a number')
    if math.isnan(number) or math.isinf(number) or number < 0:
        raise ValidationError(f'{name} must be a non-negative number')
    return int(math.floor(number))


def validate_sides(side_a: Optional[str], side_b: Optional[str], winner_id, loser_id):
    """Check winner/loser against the card's side identities."""
    if not side_a or not side_b:
        raise MissingSidesError(detail={'a_id_missing': not side_a, 'b_id_missing': not side_b})
    if not winner_id or not loser_id:
        raise ValidationError('winner_id and loser_id are required')
    winner_id, loser_id = str(winner_id), str(loser_id)
    if winner_id == loser_id:
        raise ValidationError('winner and loser must be different')
    on_card = {str(side_a), str(side_b)}
    if winner_id not in on_card or loser_id not in on_card:
        raise ValidationError(
            'winner/loser not on this match card',
            detail={'a_id': side_a, 'b_id': side_b},
        )
    return winner_id, loser_id


def reconcile_match_report(match: Dict, winner_id, loser_id, loser_score,
                           point_cap=None, end_reason=None, affects_rating=None) -> Dict:
    """
    Decide how a main-bracket (or league/casual) report finalizes a match.

    The winner score is the point cap; the loser score is clamped below it.
    Returns {'already_finalized': bool, 'patch': dict|None}.
    """
    if match.get('status') == FINALIZED:
        return {'already_finalized': True, 'patch': None}

    winner_id, loser_id = validate_sides(match.get('a_id'), match.get('b_id'), winner_id, loser_id)
    cap = parse_score(point_cap, 'point_cap') if point_cap not in (None, '') else DEFAULT_POINT_CAP
    if cap < 1:
        cap = DEFAULT_POINT_CAP
    score = min(parse_score(loser_score, 'loser_score'), cap - 1)
    reason = normalize_end_reason(end_reason)

    return {
        'already_finalized': False,
        'patch': {
            'winner_id': winner_id,
            'loser_id': loser_id,
            'winner_score': cap,
            'loser_score': score,
            'status': FINALIZED,
            'end_reason': reason,
            'affects_rating': resolve_affects_rating(reason, affects_rating),
        },
    }


def reconcile_final_report(final_match: Optional[Dict], side_a: Optional[str], side_b: Optional[str],
                           report: Dict, default_id: Optional[str] = None, best_of: int = 1,
                           a_by_default: bool = False, b_by_default: bool = False,
                           point_cap=None) -> Dict:
    """
    Decide how a finals report finalizes a final match.

    ``report`` carries winner_id, loser_id and optionally winner_score,
    loser_score, end_reason, sets and affects_rating.

    A side held by the default player resolves the match as a walkover for
    the other side. For best-of-3 brackets the games are shaped to three and
    the advantage rule is applied; submitted sets then decide the scores.

    Returns {'already_finalized', 'patch', 'bye', 'advantage'}.
    """
    if final_match and final_match.get('status') == FINALIZED:
        return {'already_finalized': True, 'patch': None, 'bye': False, 'advantage': None}

    if not side_a or not side_b:
        raise MissingSidesError(detail={'a_id_missing': not side_a, 'b_id_missing': not side_b})

    base = {'player_a_id': side_a, 'player_b_id': side_b, 'status': FINALIZED}

    a_is_default = default_id is not None and side_a == default_id
    b_is_default = default_id is not None and side_b == default_id
    if a_is_default and b_is_default:
        raise ValidationError('both sides are the default player')
    if a_is_default or b_is_default:
        patch = dict(base)
        patch.update({
            'winner_id': side_b if a_is_default else side_a,
            'loser_id': default_id,
            'winner_score': 1,
            'loser_score': 0,
            'end_reason': 'walkover',
            'affects_rating': False,
            'sets': None,
        })
        return {'already_finalized': False, 'patch': patch, 'bye': True, 'advantage': None}

    winner_id, loser_id = validate_sides(side_a, side_b, report.get('winner_id'), report.get('loser_id'))
    reason = normalize_end_reason(report.get('end_reason', report.get('finish_reason')))

    submitted = report.get('sets')
    games = normalize_sets(submitted, side_a, side_b)
    advantage = None
    if best_of == 3:
        games, advantage = apply_advantage(games, side_a, side_b, a_by_default, b_by_default)

    if decided_games(games) and submitted not in (None, '', []):
        series = series_score(games, side_a, side_b)
        recommended = series['recommended_winner_id']
        if recommended and recommended != winner_id:
            raise ValidationError('series result does not match winner', detail=series)
        winner_is_a = winner_id == side_a
        winner_score = series['a_wins'] if winner_is_a else series['b_wins']
        loser_score = series['b_wins'] if winner_is_a else series['a_wins']
        # the declared winner must lead the games, including a single best-of-1 game
        if winner_score <= loser_score:
            raise ValidationError('series result does not match winner', detail=series)
    else:
        cap = point_cap if point_cap not in (None, '') else DEFAULT_POINT_CAP
        raw_winner = report.get('winner_score')
        winner_score = parse_score(cap if raw_winner in (None, '') else raw_winner, 'winner_score')
        loser_score = parse_score(report.get('loser_score', 0) or 0, 'loser_score')
        if winner_score <= loser_score:
            raise ValidationError('winner score must be greater than loser score')

    patch = dict(base)
    patch.update({
        'winner_id': winner_id,
        'loser_id': loser_id,
        'winner_score': winner_score,
        'loser_score': loser_score,
        'end_reason': reason,
        'affects_rating': resolve_affects_rating(reason, report.get('affects_rating')),
        'sets': games or None,
    })
    return {'already_finalized': False, 'patch': patch, 'bye': False, 'advantage': advantage}

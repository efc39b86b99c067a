"""
League block standings and the club rankings table.
"""
from typing import List, Dict, Optional


def calculate_block_standings(member_ids: List[str], matches: List[Dict]) -> List[Dict]:
    """
    Calculate standings for one league block from its finalized matches.

    Returns: [{'player_id', 'played', 'wins', 'losses', 'points_for',
               'points_against', 'point_diff', 'rank'}, ...]

    Ranking: wins -> point_differential -> player id
    """
    stats = {}
    for player_id in member_ids:
        stats[player_id] = {
            'player_id': player_id,
            'played': 0,
            'wins': 0,
            'losses': 0,
            'points_for': 0,
            'points_against': 0,
        }

    for match in matches:
        if match.get('status') != 'finalized':
            continue
        winner = match.get('winner_id')
        loser = match.get('loser_id')
        if winner not in stats or loser not in stats:
            continue
        w_score = match.get('winner_score') or 0
        l_score = match.get('loser_score') or 0

        stats[winner]['played'] += 1
        stats[winner]['wins'] += 1
        stats[winner]['points_for'] += w_score
        stats[winner]['points_against'] += l_score

        stats[loser]['played'] += 1
        stats[loser]['losses'] += 1
        stats[loser]['points_for'] += l_score
        stats[loser]['points_against'] += w_score

    rows = []
    for row in stats.values():
        row['point_diff'] = row['points_for'] - row['points_against']
        rows.append(row)

    rows.sort(key=lambda r: (-r['wins'], -r['point_diff'], r['player_id']))
    for i, row in enumerate(rows):
        row['rank'] = i + 1
    return rows


def block_winner(block: Dict, standings: List[Dict]) -> Optional[str]:
    """The override winner if one is set, otherwise the rank-1 player."""
    if block.get('winner_player_id'):
        return block['winner_player_id']
    if standings and standings[0]['played'] > 0:
        return standings[0]['player_id']
    return None


def win_rate(wins: int, losses: int) -> float:
    """Percentage of games won, rounded to one decimal place."""
    total = (wins or 0) + (losses or 0)
    if total == 0:
        return 0.0
    return round(100.0 * (wins or 0) / total, 1)


def build_rankings(players: List[Dict]) -> List[Dict]:
    """Active, non-placeholder players ordered by ranking points then handle."""
    listed = [
        p for p in players
        if p.get('is_active', True) and not is_default_player(p)
    ]
    listed.sort(key=lambda p: (-(p.get('ranking_points') or 0), p.get('handle_name') or ''))

    rows = []
    for position, player in enumerate(listed, start=1):
        wins = player.get('wins') or 0
        losses = player.get('losses') or 0
        rows.append({
            'rank': position,
            'id': player['id'],
            'handle_name': player.get('handle_name'),
            'ranking_points': player.get('ranking_points') or 0,
            'handicap': player.get('handicap') or 0,
            'wins': wins,
            'losses': losses,
            'win_rate': win_rate(wins, losses),
        })
    return rows


def is_default_player(player: Dict) -> bool:
    """The bye placeholder: flagged dummy or the reserved 'def' handle."""
    return bool(player.get('is_dummy')) or player.get('handle_name') == 'def'

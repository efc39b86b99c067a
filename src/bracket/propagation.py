"""
Winner propagation between rounds of a single elimination bracket.

Every function here is pure: callers pass in the rows they have read and get
back the change to apply.
"""
import math
from typing import Dict, List, Optional, Tuple

from bracket.errors import ValidationError
from bracket.seeding import to_int

MAIN_SIDE_FIELDS = ('a_id', 'b_id')
FINAL_SIDE_FIELDS = ('player_a_id', 'player_b_id')


def next_position(round_no, match_no) -> Dict:
    """
    Where the winner of (round_no, match_no) plays next.

    Match m feeds match ceil(m/2) of the next round, on side 'a' when m is
    odd and side 'b' when m is even.
    """
    r = to_int(round_no)
    m = to_int(match_no)
    if not r or not m or r < 1 or m < 1:
        raise ValidationError(f'invalid bracket position: round={round_no} match={match_no}')
    return {
        'round': r + 1,
        'match_no': math.ceil(m / 2),
        'side': 'a' if m % 2 == 1 else 'b',
    }


def plan_winner_write(next_match: Optional[Dict], side: str, winner_id: str,
                      side_fields: Tuple[str, str] = MAIN_SIDE_FIELDS) -> Dict:
    """
    Decide how to put a winner into the next-round match.

    Returns {'action': 'create'|'update'|'skip', 'fields': {...}, 'warning': str|None}.
    Only the determined side is written, so the other side is preserved and
    the two feeder matches can be propagated in either order.
    """
    field = side_fields[0] if side == 'a' else side_fields[1]

    if next_match is None:
        fields = {side_fields[0]: None, side_fields[1]: None}
        fields[field] = winner_id
        return {'action': 'create', 'fields': fields, 'warning': None}

    if next_match.get('status') == 'finalized':
        return {
            'action': 'skip',
            'fields': {},
            'warning': 'next round match is already finalized; winner not propagated',
        }

    if next_match.get(field) == winner_id:
        return {'action': 'skip', 'fields': {}, 'warning': None}

    return {'action': 'update', 'fields': {field: winner_id}, 'warning': None}


def max_round(round_one_matches: int) -> int:
    """Number of rounds in a bracket whose first round has the given match count."""
    if round_one_matches < 1:
        return 0
    return int(math.log2(round_one_matches)) + 1


def is_championship(round_no, match_no, last_round: int) -> bool:
    """True for match 1 of the last round."""
    return to_int(round_no) == last_round and to_int(match_no) == 1 and last_round > 0


def entry_slots(match_no) -> Tuple[int, int]:
    """Round-entry slot numbers that make up a match: (2m-1, 2m)."""
    m = to_int(match_no)
    return 2 * m - 1, 2 * m


def sides_from_entries(entries: List[Dict], round_no, match_no) -> Tuple[Optional[str], Optional[str]]:
    """Resolve side A/B of a finals match from its round entries."""
    r = to_int(round_no)
    slot_a, slot_b = entry_slots(match_no)
    by_slot = {}
    for entry in entries:
        if to_int(entry.get('round_no')) != r:
            continue
        if entry.get('player_id'):
            by_slot[to_int(entry.get('slot_no'))] = str(entry['player_id'])
    return by_slot.get(slot_a), by_slot.get(slot_b)


def winner_entry_position(round_no, match_no) -> Dict:
    """Round entry that receives the winner of (round_no, match_no): slot m of the next round."""
    return {'round_no': to_int(round_no) + 1, 'slot_no': to_int(match_no)}

"""
Single elimination seeding: round-1 pairings and finals slot layout.
"""
import math
from typing import List, Dict, Tuple, Optional

from bracket.errors import ValidationError, ConfigurationError

MODES = ('singles', 'teams')
BRACKET_SIZES = (4, 8, 16, 32)


def to_int(value, default=None):
    """Coerce a round/match/seed number that may arrive as int or string."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def get_round_name(players_in_round: int) -> str:
    """Get the name of a round based on number of players still in it."""
    if players_in_round == 2:
        return "Final"
    elif players_in_round == 4:
        return "Semifinal"
    elif players_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {players_in_round}"


def calculate_bracket_size(num_entries: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_entries <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_entries))


def largest_power_of_two(limit: int) -> int:
    """Largest power of two that is <= limit (0 when limit < 1)."""
    if limit < 1:
        return 0
    return 1 << (limit.bit_length() - 1)


def total_rounds(bracket_size: int) -> int:
    if bracket_size < 2:
        return 0
    return int(math.log2(bracket_size))


def entry_id(entry: Dict, mode: str) -> Optional[str]:
    """The participant id an entry contributes in the given tournament mode."""
    key = 'player_id' if mode == 'singles' else 'team_id'
    value = entry.get(key)
    return str(value) if value else None


def normalize_entries(entries) -> List[Dict]:
    """
    Clean a submitted seed list before it replaces the stored one.

    Rows without a player/team id or with a non-positive seed are dropped.
    Raises ValidationError when nothing usable remains or a seed repeats.
    """
    if not isinstance(entries, list):
        raise ValidationError('entries must be a list')

    cleaned = []
    for raw in entries:
        if not isinstance(raw, dict):
            continue
        seed = to_int(raw.get('seed'), 0)
        player_id = raw.get('player_id') or None
        team_id = raw.get('team_id') or None
        if not (player_id or team_id) or seed <= 0:
            continue
        cleaned.append({
            'seed': seed,
            'player_id': str(player_id) if player_id else None,
            'team_id': str(team_id) if team_id else None,
        })

    if not cleaned:
        raise ValidationError('no valid entries')

    seen = set()
    for entry in cleaned:
        if entry['seed'] in seen:
            raise ValidationError(f"duplicate seed {entry['seed']}")
        seen.add(entry['seed'])

    return sorted(cleaned, key=lambda e: e['seed'])


def seed_round_one(mode: str, size: int, entries: List[Dict]) -> Dict:
    """
    Create first round pairings for a single elimination bracket.

    Entries are ordered by seed; only those carrying the id type that matches
    ``mode`` count. The bracket uses the largest power of two that fits both
    the declared size and the number of valid entries, and pairs the highest
    remaining seed against the lowest (1 vs N, 2 vs N-1, ...).

    Returns dict with:
    - 'pairings': list of {'a_id', 'b_id', 'match_no', 'seeds'}
    - 'bracket_size': number of entries placed
    - 'dropped': entries that did not fit in the bracket
    """
    if mode not in MODES:
        raise ValidationError(f'unknown tournament mode: {mode}')

    ordered = sorted(entries, key=lambda e: to_int(e.get('seed'), 0))
    valid = [e for e in ordered if entry_id(e, mode)]
    if len(valid) < 2:
        raise ValidationError('not enough participants', detail='at least 2 players or teams are required')

    declared = to_int(size, 0) or len(valid)
    n = largest_power_of_two(min(declared, len(valid)))
    seeded = valid[:n]

    pairings = []
    for i in range(n // 2):
        high = seeded[i]
        low = seeded[n - 1 - i]
        pairings.append({
            'a_id': entry_id(high, mode),
            'b_id': entry_id(low, mode),
            'match_no': i + 1,
            'seeds': [to_int(high.get('seed')), to_int(low.get('seed'))],
        })

    return {
        'pairings': pairings,
        'bracket_size': n,
        'dropped': valid[n:],
    }


def pad_with_default(nominees: List[str], default_id: Optional[str]) -> Tuple[List[str], int]:
    """
    Pad a finals nominee list up to the next power of two.

    Returns (seeded_ids, padded_count). Raises ConfigurationError when padding
    is needed but no default placeholder player exists.
    """
    ids = [str(n) for n in nominees if n]
    if len(ids) < 2:
        raise ValidationError('nominees must be 2 or more')
    if len(set(ids)) != len(ids):
        raise ValidationError('nominees must be distinct')
    if default_id and str(default_id) in ids:
        raise ValidationError('the default player cannot be nominated')

    size = calculate_bracket_size(len(ids))
    padded_count = size - len(ids)
    if padded_count > 0:
        if not default_id:
            raise ConfigurationError(
                f'need default player for padding ({padded_count}) but not found'
            )
        ids.extend([str(default_id)] * padded_count)
    return ids, padded_count


def layout_round_one_slots(seeded_ids: List[str]) -> List[str]:
    """
    Order seeded ids into round-1 slots so that match m (slots 2m-1, 2m)
    is seed m against seed N+1-m.

    For 4 ids: [s1, s4, s2, s3]
    """
    n = len(seeded_ids)
    slots = []
    for i in range(n // 2):
        slots.append(seeded_ids[i])
        slots.append(seeded_ids[n - 1 - i])
    return slots


def build_round_entries(seeded_ids: List[str]) -> List[Dict]:
    """
    Create slot rows for every round of a finals bracket.

    Round 1 holds the laid-out seeds; later rounds start empty.
    """
    size = len(seeded_ids)
    slots = layout_round_one_slots(seeded_ids)
    rows = []
    for round_no in range(1, total_rounds(size) + 1):
        slot_count = size // 2 ** (round_no - 1)
        for slot_no in range(1, slot_count + 1):
            rows.append({
                'round_no': round_no,
                'slot_no': slot_no,
                'player_id': slots[slot_no - 1] if round_no == 1 else None,
            })
    return rows


def default_round_labels(bracket_size: int) -> Dict[int, str]:
    """Round number -> display name for a bracket of the given size."""
    labels = {}
    players = bracket_size
    for round_no in range(1, total_rounds(bracket_size) + 1):
        labels[round_no] = get_round_name(players)
        players //= 2
    return labels

# Command line preview of a single elimination bracket

"""
Print the round-1 pairings and round names for a seed list.

Usage:
    python src/main.py seeds.yaml --mode singles --size 8
    python src/main.py nominees.yaml --finals --default-id def

The seeds file is a YAML list of {seed, player_id | team_id} rows, or a
mapping with that list under 'entries'. In --finals mode the file is a list
of nominee ids, padded with the default id up to a power of two.

Exit codes:
    0: Success
    1: Seeds file unreadable or entries invalid
"""
import argparse
import sys

import yaml

from bracket.errors import BracketError
from bracket.seeding import (
    MODES, normalize_entries, seed_round_one, pad_with_default,
    layout_round_one_slots, default_round_labels,
)


def load_seeds(file_path):
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if isinstance(data, dict):
        data = data.get('entries', data.get('nominees'))
    return data


def print_rounds(bracket_size):
    print("\n--- Rounds ---")
    for round_no, name in default_round_labels(bracket_size).items():
        print(f"  Round {round_no}: {name}")


def preview_main(entries, mode, size):
    result = seed_round_one(mode, size, normalize_entries(entries))
    print(f"\n--- Round 1 ({result['bracket_size']} entries) ---")
    for pairing in result['pairings']:
        high, low = pairing['seeds']
        print(f"  Match {pairing['match_no']}: #{high} {pairing['a_id']} vs #{low} {pairing['b_id']}")
    if result['dropped']:
        seeds = ', '.join(str(e['seed']) for e in result['dropped'])
        print(f"\nNot placed (bracket full): seeds {seeds}")
    print_rounds(result['bracket_size'])


def preview_finals(nominees, default_id):
    if not isinstance(nominees, list):
        raise BracketError('nominees file must hold a list of ids')
    seeded, padded = pad_with_default(nominees, default_id)
    slots = layout_round_one_slots(seeded)
    print(f"\n--- Finals round 1 ({len(seeded)} slots, {padded} padded) ---")
    for i in range(0, len(slots), 2):
        print(f"  Match {i // 2 + 1}: {slots[i]} vs {slots[i + 1]}")
    print_rounds(len(seeded))


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Preview single elimination pairings for a seed list'
    )
    parser.add_argument('seeds_file', help='YAML file with the seed list')
    parser.add_argument('--mode', choices=MODES, default='singles', help='Tournament mode')
    parser.add_argument('--size', type=int, default=0, help='Declared bracket size (default: fit entries)')
    parser.add_argument('--finals', action='store_true', help='Treat the file as finals nominees')
    parser.add_argument('--default-id', default=None, help='Default player id used to pad finals')
    args = parser.parse_args(argv)

    try:
        data = load_seeds(args.seeds_file)
    except (OSError, yaml.YAMLError) as e:
        print(f"Error: cannot read {args.seeds_file}: {e}", file=sys.stderr)
        return 1

    try:
        if args.finals:
            preview_finals(data, args.default_id)
        else:
            preview_main(data, args.mode, args.size)
    except BracketError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())

"""
Flask web application for the shuffleboard club server.
"""
import os
import re
from datetime import timedelta
from functools import wraps
from flask import Flask, request, jsonify, session
from werkzeug.security import generate_password_hash, check_password_hash
from bracket.errors import (
    BracketError, ValidationError, AuthorizationError, NotFoundError,
    ConflictError, ConfigurationError, StoreError,
)
from bracket.seeding import (
    MODES, BRACKET_SIZES, to_int, get_round_name, normalize_entries, seed_round_one,
    pad_with_default, layout_round_one_slots, build_round_entries, default_round_labels,
    total_rounds,
)
from bracket.propagation import (
    MAIN_SIDE_FIELDS, FINAL_SIDE_FIELDS, next_position, plan_winner_write, max_round,
    is_championship, sides_from_entries, winner_entry_position,
)
from bracket.reporting import reconcile_match_report, reconcile_final_report, FINALIZED
from bracket.rating import apply_result
from bracket.standings import calculate_block_standings, block_winner, build_rankings, is_default_player
from storage import ClubStore, now_iso

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('CLUB_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=3650)

# Fallback audit identity for bracket generation when the caller has no player row
SYSTEM_REPORTER_ID = os.environ.get('SYSTEM_REPORTER_ID') or None
# Handles that become administrators when they register
CLUB_ADMINS = {h.strip().lower() for h in os.environ.get('CLUB_ADMINS', '').split(',') if h.strip()}
DEFAULT_POINT_CAP = int(os.environ.get('DEFAULT_POINT_CAP', '15'))

HANDLE_PATTERN = r'^[A-Za-z0-9][A-Za-z0-9_-]*$'
PUBLIC_PLAYER_FIELDS = (
    'id', 'handle_name', 'avatar_url', 'ranking_points', 'handicap', 'wins', 'losses',
    'matches_played', 'is_admin', 'is_dummy', 'is_active', 'created_at',
)
DEFAULT_AVATAR = '/default-avatar.png'

store = ClubStore(DATA_DIR)


# ============================================================================
# Errors and request helpers
# ============================================================================

@app.errorhandler(BracketError)
def handle_bracket_error(e):
    """Render every domain error as {'success': False, 'error': ...}."""
    if isinstance(e, StoreError):
        app.logger.error(f'Store failure on {request.path}: {e.message}')
    payload = {'success': False, 'error': e.message}
    if e.detail is not None:
        payload['detail'] = e.detail
    return jsonify(payload), e.status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('No data provided')
    return data


def _optional_json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _public_player(player):
    if player is None:
        return None
    return {k: player.get(k) for k in PUBLIC_PLAYER_FIELDS}


def _is_admin(tx, user_id) -> bool:
    if not user_id:
        return False
    if tx.first('app_admins', user_id=user_id):
        return True
    player = tx.get('players', user_id)
    return bool(player and player.get('is_admin'))


def login_required(f):
    """Reject the request with 401 if no user is logged in."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user' not in session:
            raise AuthorizationError('Login required', status=401)
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Reject the request unless the session user is an administrator."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user' not in session:
            raise AuthorizationError('Login required', status=401)
        if not _is_admin(store.snapshot(), session['user']):
            raise AuthorizationError('Administrator only', status=403)
        return f(*args, **kwargs)
    return decorated_function


def _require(tx, table, row_id, label):
    row = tx.get(table, row_id)
    if row is None:
        raise NotFoundError(f'{label} not found')
    return row


def _resolve_reporter(tx) -> str:
    """Session player if it exists as a player row, else SYSTEM_REPORTER_ID."""
    user_id = session.get('user')
    if user_id and tx.get('players', user_id):
        return user_id
    if SYSTEM_REPORTER_ID:
        return SYSTEM_REPORTER_ID
    raise ConfigurationError('reporter identity could not be resolved')


def _default_player_id(tx):
    for player in tx.rows('players'):
        if is_default_player(player):
            return player['id']
    return None


def _point_cap(tournament) -> int:
    if tournament and to_int(tournament.get('point_cap')):
        return to_int(tournament['point_cap'])
    return DEFAULT_POINT_CAP


# ============================================================================
# Auth routes
# ============================================================================

@app.route('/register', methods=['POST'])
def register():
    """Create a player account and log it in."""
    data = _json_body()
    handle = str(data.get('handle_name', '')).strip()
    password = str(data.get('password', ''))
    if len(handle) < 2 or not re.match(HANDLE_PATTERN, handle):
        raise ValidationError('Handle must be at least 2 characters: letters, numbers, hyphens, underscores.')
    if handle.lower() == 'def':
        raise ValidationError('Handle is reserved.')
    if len(password) < 4:
        raise ValidationError('Password must be at least 4 characters.')

    with store.transaction() as tx:
        if any((p.get('handle_name') or '').lower() == handle.lower() for p in tx.rows('players')):
            raise ConflictError('Handle already taken.')
        player = tx.insert('players', {
            'handle_name': handle,
            'password_hash': generate_password_hash(password),
            'avatar_url': data.get('avatar_url'),
            'ranking_points': 1000,
            'handicap': 0,
            'wins': 0,
            'losses': 0,
            'matches_played': 0,
            'is_admin': handle.lower() in CLUB_ADMINS,
            'is_dummy': False,
            'is_active': True,
        })

    session['user'] = player['id']
    session.permanent = True
    app.logger.info(f'Registered player {handle}')
    return jsonify({'success': True, 'player': _public_player(player)}), 201


@app.route('/login', methods=['POST'])
def login():
    data = _json_body()
    handle = str(data.get('handle_name', '')).strip().lower()
    password = str(data.get('password', ''))
    tx = store.snapshot()
    player = next(
        (p for p in tx.rows('players') if (p.get('handle_name') or '').lower() == handle),
        None,
    )
    if not player or not player.get('password_hash') or not check_password_hash(player['password_hash'], password):
        raise AuthorizationError('Invalid handle or password.', status=401)
    session['user'] = player['id']
    session.permanent = True
    return jsonify({'success': True, 'player': _public_player(player)})


@app.route('/logout', methods=['POST'])
def logout():
    """Clear session."""
    session.pop('user', None)
    return jsonify({'success': True})


@app.route('/whoami')
def whoami():
    user_id = session.get('user')
    tx = store.snapshot()
    return jsonify({
        'success': True,
        'user_id': user_id,
        'player': _public_player(tx.get('players', user_id)),
        'is_admin': _is_admin(tx, user_id),
    })


# ============================================================================
# Players, rankings, teams
# ============================================================================

@app.route('/players')
def list_players():
    tx = store.snapshot()
    players = sorted(tx.rows('players'), key=lambda p: (p.get('handle_name') or '').lower())
    return jsonify({'success': True, 'players': [_public_player(p) for p in players]})


@app.route('/rankings')
def rankings():
    """Active players ordered by ranking points."""
    return jsonify({'success': True, 'rankings': build_rankings(store.snapshot().rows('players'))})


@app.route('/teams', methods=['GET'])
def list_teams():
    return jsonify({'success': True, 'teams': store.snapshot().rows('teams')})


@app.route('/teams', methods=['POST'])
@login_required
def create_team():
    data = _json_body()
    name = str(data.get('name', '')).strip()
    member_ids = data.get('member_ids')
    if not name:
        raise ValidationError('Team name is required')
    if not isinstance(member_ids, list) or not member_ids:
        raise ValidationError('member_ids must be a non-empty list')
    member_ids = [str(m) for m in member_ids]
    if len(set(member_ids)) != len(member_ids):
        raise ValidationError('team members must be distinct')

    with store.transaction() as tx:
        for member_id in member_ids:
            _require(tx, 'players', member_id, 'Player')
        if tx.first('teams', name=name):
            raise ConflictError('Team name already taken')
        team = tx.insert('teams', {'name': name, 'member_ids': member_ids})
    return jsonify({'success': True, 'team': team}), 201


# ============================================================================
# Tournaments and main bracket
# ============================================================================

@app.route('/tournaments', methods=['GET'])
def list_tournaments():
    tournaments = sorted(store.snapshot().rows('tournaments'), key=lambda t: t.get('created_at') or '')
    return jsonify({'success': True, 'tournaments': tournaments})


@app.route('/tournaments', methods=['POST'])
@admin_required
def create_tournament():
    """Create a tournament (administrators only)."""
    data = _json_body()
    name = str(data.get('name', '')).strip()
    mode = data.get('mode', 'singles')
    size = to_int(data.get('size'), 8)
    best_of = to_int(data.get('best_of'), 1)
    point_cap = to_int(data.get('point_cap'), DEFAULT_POINT_CAP)

    if not name:
        raise ValidationError('Tournament name is required')
    if mode not in MODES:
        raise ValidationError(f'mode must be one of {", ".join(MODES)}')
    if size not in BRACKET_SIZES:
        raise ValidationError(f'size must be one of {", ".join(str(s) for s in BRACKET_SIZES)}')
    if best_of not in (1, 3):
        raise ValidationError('best_of must be 1 or 3')
    if point_cap is None or point_cap < 1:
        raise ValidationError('point_cap must be a positive integer')

    with store.transaction() as tx:
        tournament = tx.insert('tournaments', {
            'name': name,
            'mode': mode,
            'size': size,
            'best_of': best_of,
            'point_cap': point_cap,
            'apply_handicap': bool(data.get('apply_handicap', False)),
            'start_date': data.get('start_date'),
            'champion_id': None,
        })
    app.logger.info(f'Created tournament {name} ({mode}, {size})')
    return jsonify({'success': True, 'tournament': tournament}), 201


@app.route('/tournaments/<tournament_id>')
def get_tournament(tournament_id):
    tx = store.snapshot()
    tournament = _require(tx, 'tournaments', tournament_id, 'Tournament')
    participants = sorted(tx.rows('participants', tournament_id=tournament_id), key=lambda p: p['seed'])
    return jsonify({'success': True, 'tournament': tournament, 'participants': participants})


@app.route('/tournaments/<tournament_id>/participants', methods=['POST'])
@admin_required
def replace_participants(tournament_id):
    """Replace the tournament's seed list with the submitted entries."""
    data = _json_body()
    entries = normalize_entries(data.get('entries'))

    with store.transaction() as tx:
        tournament = _require(tx, 'tournaments', tournament_id, 'Tournament')
        key = 'player_id' if tournament['mode'] == 'singles' else 'team_id'
        table = 'players' if key == 'player_id' else 'teams'
        for entry in entries:
            if entry[key] and tx.get(table, entry[key]) is None:
                raise ValidationError(f'unknown {table[:-1]}: {entry[key]}')
        removed = tx.delete('participants', tournament_id=tournament_id)
        participants = [tx.insert('participants', dict(entry, tournament_id=tournament_id)) for entry in entries]

    app.logger.info(f'Replaced {removed} participants with {len(participants)} for tournament {tournament_id}')
    return jsonify({'success': True, 'participants': participants})


@app.route('/tournaments/<tournament_id>/generate-bracket', methods=['POST'])
@admin_required
def generate_bracket(tournament_id):
    """
    (Re)compute round-1 pairings from the seed list.

    Existing round-1 matches are replaced; results recorded on them are lost.
    Unplayed later-round matches lose their sides, finalized ones are
    reported back as stale.
    """
    with store.transaction() as tx:
        tournament = _require(tx, 'tournaments', tournament_id, 'Tournament')
        reporter_id = _resolve_reporter(tx)
        participants = tx.rows('participants', tournament_id=tournament_id)
        result = seed_round_one(tournament['mode'], tournament.get('size'), participants)

        replaced = tx.delete('matches', tournament_id=tournament_id, round=1)
        cleared, stale = [], []
        for later in tx.rows('matches', tournament_id=tournament_id):
            if not later.get('round') or later['round'] < 2:
                continue
            if later.get('status') == FINALIZED:
                stale.append(later['id'])
            elif later.get('a_id') or later.get('b_id'):
                tx.update('matches', later['id'], a_id=None, b_id=None, updated_at=now_iso())
                cleared.append(later['id'])
        matches = []
        for pairing in result['pairings']:
            matches.append(tx.insert('matches', {
                'tournament_id': tournament_id,
                'block_id': None,
                'round': 1,
                'match_no': pairing['match_no'],
                'mode': tournament['mode'],
                'status': 'scheduled',
                'a_id': pairing['a_id'],
                'b_id': pairing['b_id'],
                'winner_id': None,
                'loser_id': None,
                'winner_score': None,
                'loser_score': None,
                'end_reason': None,
                'affects_rating': None,
                'reporter_id': reporter_id,
                'updated_at': now_iso(),
            }))

    response = {
        'success': True,
        'bracket_size': result['bracket_size'],
        'replaced': replaced,
        'cleared': cleared,
        'matches': matches,
    }
    app.logger.info(f'Generated {len(matches)} round-1 matches for tournament {tournament_id}')
    warnings = []
    if result['dropped']:
        seeds = [to_int(e.get('seed')) for e in result['dropped']]
        warnings.append(f'{len(seeds)} entries did not fit in the bracket (seeds {seeds})')
        response['dropped'] = seeds
    if stale:
        warnings.append(f'{len(stale)} later-round matches are finalized and now stale')
        response['stale'] = stale
    if warnings:
        response['warning'] = '; '.join(warnings)
        app.logger.warning(f'Tournament {tournament_id}: {response["warning"]}')
    return jsonify(response)


def _side_label(tx, side_id):
    """Display name and avatar for a player or team id."""
    if not side_id:
        return None
    player = tx.get('players', side_id)
    if player:
        return {'name': player.get('handle_name') or '-', 'avatar': player.get('avatar_url') or DEFAULT_AVATAR,
                'kind': 'player'}
    team = tx.get('teams', side_id)
    if team:
        return {'name': team.get('name') or '-', 'avatar': None, 'kind': 'team'}
    return {'name': '-', 'avatar': None, 'kind': 'unknown'}


def _bracket_card(tx, match):
    score = None
    if match.get('winner_id'):
        score = {
            'winner_id': match['winner_id'],
            'winner_score': match.get('winner_score'),
            'loser_score': match.get('loser_score'),
        }
    return {
        'id': match['id'],
        'match_no': match['match_no'],
        'status': match.get('status'),
        'mode': match.get('mode'),
        'a_id': match.get('a_id'),
        'b_id': match.get('b_id'),
        'a': _side_label(tx, match.get('a_id')),
        'b': _side_label(tx, match.get('b_id')),
        'score': score,
    }


@app.route('/tournaments/<tournament_id>/bracket')
def get_bracket(tournament_id):
    """Match cards keyed by round number, sides resolved to name and avatar."""
    tx = store.snapshot()
    tournament = _require(tx, 'tournaments', tournament_id, 'Tournament')
    matches = [m for m in tx.rows('matches', tournament_id=tournament_id) if m.get('round')]
    round_one = [m for m in matches if m['round'] == 1]
    last_round = max_round(len(round_one))

    round_numbers = set(range(1, last_round + 1)) | {m['round'] for m in matches}
    rounds = {}
    round_names = {}
    for round_no in sorted(round_numbers):
        in_round = sorted((m for m in matches if m['round'] == round_no), key=lambda m: m['match_no'])
        rounds[round_no] = [_bracket_card(tx, m) for m in in_round]
        if round_no <= last_round:
            round_names[round_no] = get_round_name(2 * len(round_one) // 2 ** (round_no - 1))
    return jsonify({
        'success': True,
        'tournament': tournament,
        'rounds': rounds,
        'round_names': round_names,
        'champion_id': tournament.get('champion_id'),
    })


def _apply_rating(tx, match, patch):
    """Move player counters and (when rated) points; record the deltas on the patch."""
    if match.get('mode', 'singles') != 'singles':
        return
    winner = tx.get('players', patch['winner_id'])
    loser = tx.get('players', patch['loser_id'])
    if winner is None or loser is None:
        return
    result = apply_result(winner, loser, patch['winner_score'], patch['loser_score'], patch['affects_rating'])
    tx.update('players', winner['id'], **result['winner'])
    tx.update('players', loser['id'], **result['loser'])
    patch.update(result['delta'])


def _finalize_match(tx, match, data, point_cap):
    """Reconcile a report against a match row and write the outcome."""
    decision = reconcile_match_report(
        match,
        data.get('winner_id'),
        data.get('loser_id'),
        data.get('loser_score'),
        point_cap=point_cap,
        end_reason=data.get('end_reason'),
        affects_rating=data.get('affects_rating'),
    )
    if decision['already_finalized']:
        return True
    patch = decision['patch']
    _apply_rating(tx, match, patch)
    patch.update({
        'reporter_id': session.get('user'),
        'played_at': now_iso(),
        'updated_at': now_iso(),
    })
    tx.update('matches', match['id'], **patch)
    return False


def _propagate_main(tx, tournament, match):
    """
    Carry the winner of a bracket match into the next round.

    Returns (next_match, warning, champion_id).
    """
    round_one = tx.rows('matches', tournament_id=tournament['id'], round=1)
    last_round = max_round(len(round_one))
    if is_championship(match['round'], match['match_no'], last_round):
        tx.update('tournaments', tournament['id'], champion_id=match['winner_id'])
        app.logger.info(f'Tournament {tournament["id"]} champion: {match["winner_id"]}')
        return None, None, match['winner_id']
    if match['round'] >= last_round:
        return None, None, None

    pos = next_position(match['round'], match['match_no'])
    next_match = tx.first('matches', tournament_id=tournament['id'], round=pos['round'], match_no=pos['match_no'])
    plan = plan_winner_write(next_match, pos['side'], match['winner_id'], MAIN_SIDE_FIELDS)

    if plan['action'] == 'create':
        next_match = tx.insert('matches', dict(
            plan['fields'],
            tournament_id=tournament['id'],
            block_id=None,
            round=pos['round'],
            match_no=pos['match_no'],
            mode=tournament['mode'],
            status='scheduled',
            updated_at=now_iso(),
        ))
    elif plan['action'] == 'update':
        next_match = tx.update('matches', next_match['id'], updated_at=now_iso(), **plan['fields'])
    if plan['warning']:
        app.logger.warning(f'Match {match["id"]}: {plan["warning"]}')
    return next_match, plan['warning'], None


@app.route('/matches/<match_id>/report', methods=['POST'])
@login_required
def report_match(match_id):
    """Record the result of a scheduled match and advance the winner."""
    data = _json_body()
    with store.transaction() as tx:
        match = _require(tx, 'matches', match_id, 'Match')
        tournament = tx.get('tournaments', match.get('tournament_id'))
        already = _finalize_match(tx, match, data, _point_cap(tournament))

        response = {'success': True, 'already_finalized': already, 'match': match}
        if not already and tournament and match.get('round'):
            next_match, warning, champion = _propagate_main(tx, tournament, match)
            response['next_match'] = next_match
            if warning:
                response['warning'] = warning
            if champion:
                response['champion_id'] = champion

    if not already:
        app.logger.info(f'Match {match_id} finalized: {match["winner_id"]} beat {match["loser_id"]}')
    return jsonify(response)


@app.route('/matches', methods=['POST'])
@login_required
def record_casual_match():
    """Record a singles match played outside any tournament."""
    data = _json_body()
    winner_id, loser_id = data.get('winner_id'), data.get('loser_id')
    with store.transaction() as tx:
        for player_id in (winner_id, loser_id):
            if player_id:
                _require(tx, 'players', player_id, 'Player')
        match = tx.insert('matches', {
            'tournament_id': None,
            'block_id': None,
            'round': None,
            'match_no': None,
            'mode': 'singles',
            'status': 'scheduled',
            'a_id': str(winner_id) if winner_id else None,
            'b_id': str(loser_id) if loser_id else None,
        })
        _finalize_match(tx, match, data, DEFAULT_POINT_CAP)
    return jsonify({'success': True, 'match': match}), 201


# ============================================================================
# League blocks
# ============================================================================

@app.route('/tournaments/<tournament_id>/league/blocks', methods=['POST'])
@admin_required
def create_league_block(tournament_id):
    data = _json_body()
    label = str(data.get('label', '')).strip()
    member_ids = data.get('member_ids')
    if not label:
        raise ValidationError('Block label is required')
    if not isinstance(member_ids, list) or len(member_ids) < 2:
        raise ValidationError('member_ids must list at least 2 players')
    member_ids = [str(m) for m in member_ids]

    with store.transaction() as tx:
        _require(tx, 'tournaments', tournament_id, 'Tournament')
        for member_id in member_ids:
            _require(tx, 'players', member_id, 'Player')
        existing = tx.rows('league_blocks', tournament_id=tournament_id)
        block = tx.insert('league_blocks', {
            'tournament_id': tournament_id,
            'block_no': to_int(data.get('block_no'), len(existing) + 1),
            'label': label,
            'member_ids': member_ids,
            'winner_player_id': None,
        })
    return jsonify({'success': True, 'block': block}), 201


@app.route('/league/blocks/<block_id>/matches', methods=['POST'])
@login_required
def report_league_match(block_id):
    """Record a round-robin result between two members of a block."""
    data = _json_body()
    winner_id, loser_id = data.get('winner_id'), data.get('loser_id')
    with store.transaction() as tx:
        block = _require(tx, 'league_blocks', block_id, 'League block')
        members = block.get('member_ids') or []
        if winner_id not in members or loser_id not in members:
            raise ValidationError('both players must belong to the block')
        tournament = tx.get('tournaments', block.get('tournament_id'))
        match = tx.insert('matches', {
            'tournament_id': block.get('tournament_id'),
            'block_id': block_id,
            'round': None,
            'match_no': None,
            'mode': 'singles',
            'status': 'scheduled',
            'a_id': winner_id,
            'b_id': loser_id,
        })
        _finalize_match(tx, match, data, _point_cap(tournament))
    return jsonify({'success': True, 'match': match}), 201


@app.route('/league/blocks/set-winner', methods=['POST'])
@admin_required
def set_block_winner():
    """Override (or clear, with player_id null) a block's winner."""
    data = _json_body()
    player_id = data.get('player_id') or None
    with store.transaction() as tx:
        block = _require(tx, 'league_blocks', data.get('block_id'), 'League block')
        if player_id and player_id not in (block.get('member_ids') or []):
            raise ValidationError('winner must be a member of the block')
        tx.update('league_blocks', block['id'], winner_player_id=player_id)
    return jsonify({'success': True, 'block': block})


def _block_candidates(tx, tournament_id):
    blocks = sorted(tx.rows('league_blocks', tournament_id=tournament_id), key=lambda b: b.get('label') or '')
    candidates = []
    for block in blocks:
        standings = calculate_block_standings(block.get('member_ids') or [], tx.rows('matches', block_id=block['id']))
        candidates.append({
            'block': block,
            'standings': standings,
            'winner_id': block_winner(block, standings),
        })
    return candidates


@app.route('/tournaments/<tournament_id>/league/candidates')
def league_candidates(tournament_id):
    """Standings and winner per league block."""
    tx = store.snapshot()
    _require(tx, 'tournaments', tournament_id, 'Tournament')
    return jsonify({'success': True, 'blocks': _block_candidates(tx, tournament_id)})


# ============================================================================
# Finals bracket
# ============================================================================

def _feeder_lost_to(tx, bracket_id, round_no, match_no, loser_id):
    """True when the feeder match at (round_no, match_no) was won against ``loser_id``."""
    if not loser_id or round_no < 1:
        return False
    feeder = tx.first('final_matches', bracket_id=bracket_id, round_no=round_no, match_no=match_no)
    return bool(feeder and feeder.get('status') == FINALIZED and feeder.get('loser_id') == loser_id)


def _apply_final_result(tx, bracket, round_no, match_no, patch, rated=True):
    """
    Upsert the final match and carry its winner forward.

    Byes against the default player pass rated=False so no player row moves.
    Returns (final_match, warning, champion_id).
    """
    if rated:
        _apply_rating(tx, {'mode': 'singles'}, patch)
    final_match = tx.upsert('final_matches', ('bracket_id', 'round_no', 'match_no'), dict(
        patch,
        bracket_id=bracket['id'],
        round_no=round_no,
        match_no=match_no,
        updated_at=now_iso(),
    ))

    last_round = total_rounds(to_int(bracket.get('size'), 0))
    if is_championship(round_no, match_no, last_round):
        tx.update('final_brackets', bracket['id'], champion_player_id=patch['winner_id'])
        app.logger.info(f'Finals {bracket["id"]} champion: {patch["winner_id"]}')
        return final_match, None, patch['winner_id']
    if round_no >= last_round:
        return final_match, None, None

    pos = next_position(round_no, match_no)
    next_match = tx.first('final_matches', bracket_id=bracket['id'], round_no=pos['round'], match_no=pos['match_no'])
    plan = plan_winner_write(next_match, pos['side'], patch['winner_id'], FINAL_SIDE_FIELDS)
    if plan['warning']:
        app.logger.warning(f'Final match {final_match["id"]}: {plan["warning"]}')
        return final_match, plan['warning'], None

    entry = winner_entry_position(round_no, match_no)
    tx.upsert('final_round_entries', ('bracket_id', 'round_no', 'slot_no'), dict(
        entry, bracket_id=bracket['id'], player_id=patch['winner_id'],
    ))
    if plan['action'] == 'create':
        tx.insert('final_matches', dict(
            plan['fields'],
            bracket_id=bracket['id'],
            round_no=pos['round'],
            match_no=pos['match_no'],
            status='scheduled',
            updated_at=now_iso(),
        ))
    elif plan['action'] == 'update':
        tx.update('final_matches', next_match['id'], updated_at=now_iso(), **plan['fields'])
    return final_match, None, None


@app.route('/tournaments/<tournament_id>/league/finals', methods=['POST'])
@admin_required
def create_league_finals(tournament_id):
    """
    Create the finals bracket from nominated players.

    Nominees default to the block winners. The list is padded with the
    default player up to a power of two; matches against the default
    player are resolved immediately.
    """
    data = _optional_json_body()
    with store.transaction() as tx:
        tournament = _require(tx, 'tournaments', tournament_id, 'Tournament')
        if tx.first('final_brackets', tournament_id=tournament_id):
            raise ConflictError('finals bracket already exists for this tournament')

        nominees = data.get('nominees')
        if nominees is None:
            nominees = [c['winner_id'] for c in _block_candidates(tx, tournament_id) if c['winner_id']]
        if not isinstance(nominees, list):
            raise ValidationError('nominees must be a list')
        for nominee in nominees:
            if nominee:
                _require(tx, 'players', nominee, 'Player')

        default_id = _default_player_id(tx)
        seeded, padded = pad_with_default(nominees, default_id)
        size = len(seeded)
        bracket = tx.insert('final_brackets', {
            'tournament_id': tournament_id,
            'title': str(data.get('title') or f'{tournament["name"]} Finals'),
            'size': size,
            'champion_player_id': None,
        })
        for entry in build_round_entries(seeded):
            tx.insert('final_round_entries', dict(entry, bracket_id=bracket['id']))
        for round_no, label in default_round_labels(size).items():
            tx.upsert('final_round_labels', ('bracket_id', 'round_no'),
                      {'bracket_id': bracket['id'], 'round_no': round_no, 'label': label})

        slots = layout_round_one_slots(seeded)
        byes = 0
        for match_no in range(1, size // 2 + 1):
            side_a, side_b = slots[2 * match_no - 2], slots[2 * match_no - 1]
            final_match = tx.insert('final_matches', {
                'bracket_id': bracket['id'],
                'round_no': 1,
                'match_no': match_no,
                'player_a_id': side_a,
                'player_b_id': side_b,
                'status': 'scheduled',
                'updated_at': now_iso(),
            })
            if default_id in (side_a, side_b):
                decision = reconcile_final_report(final_match, side_a, side_b, {}, default_id=default_id)
                _apply_final_result(tx, bracket, 1, match_no, decision['patch'], rated=False)
                byes += 1

    app.logger.info(f'Created finals {bracket["id"]} for tournament {tournament_id}: '
                    f'{size} slots, {padded} padded, {byes} byes')
    return jsonify({'success': True, 'bracket': bracket, 'padded': padded, 'byes': byes}), 201


@app.route('/tournaments/<tournament_id>/league/finals/reset', methods=['POST'])
@admin_required
def reset_league_finals(tournament_id):
    """Delete the tournament's finals bracket with its entries, matches and labels."""
    deleted = {'brackets': 0, 'entries': 0, 'matches': 0, 'labels': 0}
    with store.transaction() as tx:
        _require(tx, 'tournaments', tournament_id, 'Tournament')
        for bracket in tx.rows('final_brackets', tournament_id=tournament_id):
            deleted['entries'] += tx.delete('final_round_entries', bracket_id=bracket['id'])
            deleted['matches'] += tx.delete('final_matches', bracket_id=bracket['id'])
            deleted['labels'] += tx.delete('final_round_labels', bracket_id=bracket['id'])
        deleted['brackets'] = tx.delete('final_brackets', tournament_id=tournament_id)
    app.logger.info(f'Reset finals for tournament {tournament_id}: {deleted}')
    return jsonify({'success': True, 'deleted': deleted})


@app.route('/finals/<bracket_id>')
def get_finals(bracket_id):
    tx = store.snapshot()
    bracket = _require(tx, 'final_brackets', bracket_id, 'Finals bracket')
    entries = sorted(tx.rows('final_round_entries', bracket_id=bracket_id),
                     key=lambda e: (e['round_no'], e['slot_no']))
    matches = sorted(tx.rows('final_matches', bracket_id=bracket_id),
                     key=lambda m: (m['round_no'], m['match_no']))
    labels = {row['round_no']: row['label'] for row in tx.rows('final_round_labels', bracket_id=bracket_id)}
    return jsonify({
        'success': True,
        'bracket': bracket,
        'entries': entries,
        'matches': matches,
        'labels': labels,
        'champion_player_id': bracket.get('champion_player_id'),
    })


@app.route('/finals/slot', methods=['POST'])
@admin_required
def set_finals_slot():
    """Place (or clear) a player in a finals round slot."""
    data = _json_body()
    round_no = to_int(data.get('round_no'), 0)
    slot_no = to_int(data.get('slot_no'), 0)
    player_id = str(data['player_id']).strip() if data.get('player_id') else None
    if not data.get('bracket_id') or round_no <= 0 or slot_no <= 0:
        raise ValidationError('bracket_id, round_no and slot_no are required')

    with store.transaction() as tx:
        bracket = _require(tx, 'final_brackets', data['bracket_id'], 'Finals bracket')
        if player_id:
            _require(tx, 'players', player_id, 'Player')
        entry = tx.upsert('final_round_entries', ('bracket_id', 'round_no', 'slot_no'), {
            'bracket_id': bracket['id'],
            'round_no': round_no,
            'slot_no': slot_no,
            'player_id': player_id,
        })
    return jsonify({'success': True, 'entry': entry})


@app.route('/finals/<bracket_id>/round-labels', methods=['GET'])
def get_round_labels(bracket_id):
    tx = store.snapshot()
    _require(tx, 'final_brackets', bracket_id, 'Finals bracket')
    rows = sorted(tx.rows('final_round_labels', bracket_id=bracket_id), key=lambda r: r['round_no'])
    return jsonify({'success': True, 'labels': rows})


@app.route('/finals/<bracket_id>/round-labels', methods=['POST'])
@admin_required
def save_round_labels(bracket_id):
    """Rename finals rounds: {'labels': {round_no: label}}."""
    data = _json_body()
    labels = data.get('labels')
    if not isinstance(labels, dict) or not labels:
        raise ValidationError('labels must be a mapping of round number to label')

    with store.transaction() as tx:
        bracket = _require(tx, 'final_brackets', bracket_id, 'Finals bracket')
        rounds = total_rounds(to_int(bracket.get('size'), 0))
        saved = []
        for raw_round, label in labels.items():
            round_no = to_int(raw_round)
            if not round_no or round_no < 1 or round_no > rounds:
                raise ValidationError(f'invalid round number: {raw_round}')
            label = str(label or '').strip()
            if not label:
                raise ValidationError(f'label for round {round_no} is empty')
            saved.append(tx.upsert('final_round_labels', ('bracket_id', 'round_no'),
                                   {'bracket_id': bracket_id, 'round_no': round_no, 'label': label}))
    return jsonify({'success': True, 'labels': sorted(saved, key=lambda r: r['round_no'])})


@app.route('/finals/report', methods=['POST'])
@admin_required
def report_final_match():
    """
    Record a finals result and advance the winner.

    Sides come from the stored final match or, when it has none yet, from the
    round entries. Best-of-3 tournaments apply the advantage rule.
    """
    data = _json_body()
    round_no = to_int(data.get('round_no'), 0)
    match_no = to_int(data.get('match_no'), 0)
    if not data.get('bracket_id') or round_no <= 0 or match_no <= 0:
        raise ValidationError('bracket_id, round_no and match_no are required')

    with store.transaction() as tx:
        bracket = _require(tx, 'final_brackets', data['bracket_id'], 'Finals bracket')
        if round_no > total_rounds(to_int(bracket.get('size'), 0)):
            raise ValidationError(f'round {round_no} is beyond the final round')
        tournament = tx.get('tournaments', bracket.get('tournament_id'))
        final_match = tx.first('final_matches', bracket_id=bracket['id'], round_no=round_no, match_no=match_no)

        entry_a, entry_b = sides_from_entries(tx.rows('final_round_entries', bracket_id=bracket['id']),
                                              round_no, match_no)
        side_a = (final_match or {}).get('player_a_id') or entry_a
        side_b = (final_match or {}).get('player_b_id') or entry_b

        default_id = _default_player_id(tx)
        best_of = to_int((tournament or {}).get('best_of'), 1)
        decision = reconcile_final_report(
            final_match, side_a, side_b, data,
            default_id=default_id,
            best_of=best_of,
            a_by_default=_feeder_lost_to(tx, bracket['id'], round_no - 1, 2 * match_no - 1, default_id),
            b_by_default=_feeder_lost_to(tx, bracket['id'], round_no - 1, 2 * match_no, default_id),
            point_cap=_point_cap(tournament),
        )
        if decision['already_finalized']:
            return jsonify({'success': True, 'already_finalized': True, 'match': final_match})

        patch = decision['patch']
        patch['reporter_id'] = session.get('user')
        final_match, warning, champion = _apply_final_result(tx, bracket, round_no, match_no, patch, rated=not decision['bye'])

    response = {
        'success': True,
        'already_finalized': False,
        'match': final_match,
        'bye': decision['bye'],
        'advantage': decision['advantage'],
    }
    if warning:
        response['warning'] = warning
    if champion:
        response['champion_player_id'] = champion
    app.logger.info(f'Final match {final_match["id"]} finalized: {final_match["winner_id"]} won')
    return jsonify(response)


if __name__ == '__main__':
    app.run(debug=True, port=int(os.environ.get('PORT', 5000)))

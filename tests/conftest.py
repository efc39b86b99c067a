"""
Shared pytest fixtures for club server tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
os.environ.setdefault('SECRET_KEY', 'test-secret-key')

from storage import ClubStore


@pytest.fixture
def club_store(tmp_path, monkeypatch):
    """Point the app at an empty data file under tmp_path."""
    import app as app_module

    store = ClubStore(str(tmp_path))
    monkeypatch.setattr(app_module, 'store', store)
    monkeypatch.setattr(app_module, 'SYSTEM_REPORTER_ID', None)
    monkeypatch.setattr(app_module, 'CLUB_ADMINS', set())
    return store


@pytest.fixture
def make_players(club_store):
    """Factory inserting players named player1..playerN; returns their ids."""
    def _make(count, prefix='player', **fields):
        ids = []
        with club_store.transaction() as tx:
            start = len(tx.rows('players')) + 1
            for i in range(start, start + count):
                row = {
                    'handle_name': f'{prefix}{i}',
                    'ranking_points': 1000,
                    'handicap': 0,
                    'wins': 0,
                    'losses': 0,
                    'matches_played': 0,
                    'is_admin': False,
                    'is_dummy': False,
                    'is_active': True,
                }
                row.update(fields)
                ids.append(tx.insert('players', row)['id'])
        return ids
    return _make


@pytest.fixture
def default_player_id(club_store):
    """The 'def' placeholder used to pad finals brackets."""
    with club_store.transaction() as tx:
        player = tx.insert('players', {
            'handle_name': 'def',
            'ranking_points': 1000,
            'handicap': 0,
            'is_dummy': True,
            'is_active': True,
        })
    return player['id']


@pytest.fixture
def make_tournament(club_store):
    """Factory inserting a tournament row directly."""
    def _make(**overrides):
        row = {
            'name': 'Spring Open',
            'mode': 'singles',
            'size': 8,
            'best_of': 1,
            'point_cap': 15,
            'apply_handicap': False,
            'start_date': '2026-04-01',
            'champion_id': None,
        }
        row.update(overrides)
        with club_store.transaction() as tx:
            return tx.insert('tournaments', row)
    return _make


@pytest.fixture
def admin_id(make_players):
    return make_players(1, prefix='admin', is_admin=True)[0]


@pytest.fixture
def member_id(make_players):
    return make_players(1, prefix='member')[0]


@pytest.fixture
def client(club_store):
    """Create a test client (unauthenticated by default)."""
    from app import app
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def admin_client(club_store, admin_id):
    """Create a test client logged in as an administrator."""
    from app import app
    app.config['TESTING'] = True
    c = app.test_client()
    with c.session_transaction() as sess:
        sess['user'] = admin_id
    return c


@pytest.fixture
def member_client(club_store, member_id):
    """Create a test client logged in as a regular member."""
    from app import app
    app.config['TESTING'] = True
    c = app.test_client()
    with c.session_transaction() as sess:
        sess['user'] = member_id
    return c

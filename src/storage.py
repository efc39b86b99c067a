"""
YAML-backed club data store.

The whole club lives in one document, ``club.yaml``, made of named tables
(lists of row dicts). Every change goes through ``ClubStore.transaction()``,
which holds a file lock, loads the document, hands out a ``Transaction`` and
writes the document back only if the block finished without raising.
"""
import os
import uuid
import tempfile
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

import yaml
from filelock import FileLock, Timeout

from bracket.errors import StoreError

SCHEMA_VERSION = 2

TABLES = (
    'players',
    'app_admins',
    'teams',
    'tournaments',
    'participants',
    'matches',
    'final_brackets',
    'final_round_entries',
    'final_matches',
    'final_round_labels',
    'league_blocks',
)

# Columns that carry round/slot/match numbers; always stored as int.
_INT_COLUMNS = ('round', 'round_no', 'match_no', 'slot_no', 'seed', 'block_no', 'size', 'best_of', 'point_cap')


def now_iso() -> str:
    return datetime.now().isoformat()


def _coerce(row: Dict) -> Dict:
    for column in _INT_COLUMNS:
        value = row.get(column)
        if isinstance(value, str) and value.strip().lstrip('-').isdigit():
            row[column] = int(value)
    return row


def migrate(data: Optional[Dict]) -> Dict:
    """
    Bring a loaded document up to SCHEMA_VERSION.

    Version 1 stored match sides in mode-specific columns
    (player_a_id/team_a_id, player_b_id/team_b_id); version 2 keeps one
    pair, a_id/b_id, for both modes.
    """
    data = dict(data or {})
    version = data.get('schema_version') or 1

    for table in TABLES:
        if not isinstance(data.get(table), list):
            data[table] = []

    if version < 2:
        for match in data['matches']:
            if 'a_id' not in match:
                match['a_id'] = match.pop('player_a_id', None) or match.pop('team_a_id', None)
            if 'b_id' not in match:
                match['b_id'] = match.pop('player_b_id', None) or match.pop('team_b_id', None)
            match.pop('player_a_id', None)
            match.pop('team_a_id', None)
            match.pop('player_b_id', None)
            match.pop('team_b_id', None)

    for table in TABLES:
        data[table] = [_coerce(row) for row in data[table] if isinstance(row, dict)]

    data['schema_version'] = SCHEMA_VERSION
    return data


class Transaction:
    """Table access over an in-memory copy of the club document."""

    def __init__(self, data: Dict):
        self.data = data

    def _table(self, table: str) -> List[Dict]:
        if table not in TABLES:
            raise StoreError(f'unknown table: {table}')
        return self.data[table]

    def rows(self, table: str, **filters) -> List[Dict]:
        """All rows of ``table`` whose columns equal the given filter values."""
        return [
            row for row in self._table(table)
            if all(row.get(k) == v for k, v in filters.items())
        ]

    def first(self, table: str, **filters) -> Optional[Dict]:
        matches = self.rows(table, **filters)
        return matches[0] if matches else None

    def get(self, table: str, row_id) -> Optional[Dict]:
        if not row_id:
            return None
        return self.first(table, id=str(row_id))

    def insert(self, table: str, row: Dict) -> Dict:
        row = _coerce(dict(row))
        row.setdefault('id', str(uuid.uuid4()))
        row.setdefault('created_at', now_iso())
        self._table(table).append(row)
        return row

    def update(self, table: str, row_id, **fields) -> Dict:
        row = self.get(table, row_id)
        if row is None:
            raise StoreError(f'{table} row not found: {row_id}')
        row.update(fields)
        _coerce(row)
        return row

    def delete(self, table: str, **filters) -> int:
        """Remove matching rows; returns how many were removed."""
        if not filters:
            raise StoreError('refusing to delete without filters')
        rows = self._table(table)
        keep = [row for row in rows if not all(row.get(k) == v for k, v in filters.items())]
        removed = len(rows) - len(keep)
        rows[:] = keep
        return removed

    def upsert(self, table: str, keys, row: Dict) -> Dict:
        """
        Insert ``row`` or update the existing row with the same natural key.

        ``keys`` names the columns that form the natural key.
        """
        row = _coerce(dict(row))
        existing = self.first(table, **{k: row.get(k) for k in keys})
        if existing is None:
            return self.insert(table, row)
        existing.update({k: v for k, v in row.items() if k != 'id'})
        return existing


class ClubStore:
    """The club data file plus the lock guarding it."""

    FILENAME = 'club.yaml'

    def __init__(self, data_dir: str, timeout: float = 10):
        self.data_dir = data_dir
        self.path = os.path.join(data_dir, self.FILENAME)
        self.lock = FileLock(self.path + '.lock', timeout=timeout)

    def _load(self) -> Dict:
        if not os.path.exists(self.path):
            return migrate({})
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f'failed to read {self.path}: {e}')
        if data is not None and not isinstance(data, dict):
            raise StoreError(f'{self.path} is not a mapping')
        return migrate(data)

    def _save(self, data: Dict):
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix='.club-', suffix='.yaml')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, self.path)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f'failed to write {self.path}: {e}')

    def _acquire(self):
        os.makedirs(self.data_dir, exist_ok=True)
        try:
            self.lock.acquire()
        except Timeout:
            raise StoreError('data file is busy, try again')

    @contextmanager
    def transaction(self):
        """Locked read-modify-write; nothing is written if the block raises."""
        self._acquire()
        try:
            tx = Transaction(self._load())
            yield tx
            self._save(tx.data)
        finally:
            self.lock.release()

    def snapshot(self) -> Transaction:
        """A consistent read-only view (changes to it are never saved)."""
        self._acquire()
        try:
            return Transaction(self._load())
        finally:
            self.lock.release()

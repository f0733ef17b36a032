import uuid
from datetime import datetime
from types import SimpleNamespace

import pytest

from delivery_fees.utils import helpers, store


class FakeStore:
    """In-memory stand-in for delivery_fees.utils.store."""

    def __init__(self):
        self.tables = {table: [] for table in store.TABLES}
        self.ui_settings = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise store.StoreUnavailableError("Database connection error")

    def add(self, table, **row):
        row.setdefault('id', str(uuid.uuid4()))
        row.setdefault('is_active', True)
        row.setdefault('created_at', datetime(2024, 1, 1, 12, 0, 0))
        if table == store.FEE_SETTINGS:
            row.setdefault('restaurant_id', None)
            row.setdefault('updated_at', row['created_at'])
        self.tables[table].append(row)
        return row

    def list_rows(self, table, active_only=False):
        self._check()
        rows = [dict(r) for r in self.tables[table] if r.get('is_active', True) or not active_only]
        if table == store.ZONES:
            rows.sort(key=lambda r: r.get('min_distance') or 0)
        elif table == store.RULES:
            rows.sort(key=lambda r: -(r.get('priority') or 0))
        return rows

    def get_row(self, table, row_id):
        self._check()
        for row in self.tables[table]:
            if row['id'] == row_id:
                return dict(row)
        return None

    def insert_row(self, table, data):
        self._check()
        return dict(self.add(table, **data))

    def update_row(self, table, row_id, data):
        self._check()
        for row in self.tables[table]:
            if row['id'] == row_id:
                row.update(data)
                return dict(row)
        return None

    def delete_row(self, table, row_id):
        self._check()
        rows = self.tables[table]
        for row in rows:
            if row['id'] == row_id:
                rows.remove(row)
                return True
        return False

    def get_fee_settings(self, restaurant_id=None):
        self._check()
        for row in self.tables[store.FEE_SETTINGS]:
            if row.get('is_active', True) and row.get('restaurant_id') == (restaurant_id or None):
                return dict(row)
        return None

    def get_ui_setting(self, key):
        self._check()
        return self.ui_settings.get(key)


class FakeSupabase:
    """Just enough of the Supabase query builder for table().select().eq().execute()."""

    def __init__(self, tables):
        self.tables = tables
        self._rows = []

    def table(self, name):
        self._rows = list(self.tables.get(name, []))
        return self

    def select(self, columns):
        return self

    def eq(self, column, value):
        self._rows = [r for r in self._rows if r.get(column) == value]
        return self

    def execute(self):
        return SimpleNamespace(data=self._rows)


@pytest.fixture
def fake_store(monkeypatch):
    fake = FakeStore()
    for name in ('list_rows', 'get_row', 'insert_row', 'update_row', 'delete_row',
                 'get_fee_settings', 'get_ui_setting'):
        monkeypatch.setattr(store, name, getattr(fake, name))
    monkeypatch.setattr(helpers, 'supabase', None)
    return fake


@pytest.fixture
def fake_supabase(monkeypatch):
    def install(restaurants):
        client = FakeSupabase({'restaurants': restaurants})
        monkeypatch.setattr(helpers, 'supabase', client)
        return client
    return install


@pytest.fixture
def client(fake_store):
    from delivery_fees.main import app
    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client

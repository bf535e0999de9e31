import time

import jwt
import psycopg2
import pytest

from spinwin import auth
from spinwin.config import config
from spinwin.realtime import row_cache

JWT_SECRET = 'test-supabase-jwt-secret-0123456789abcdef'
ADMIN_SECRET = 'test-admin-secret'
WEBHOOK_SECRET = 'test-webhook-secret'
USER_ID = '11111111-1111-1111-1111-111111111111'
OTHER_ID = '22222222-2222-2222-2222-222222222222'


class FakeDB:
    """Scripted stand-in for Postgres.

    Rules map a SQL fragment to rows (list of dicts), a rowcount (int),
    an exception to raise, or a callable taking the params. Rules added
    later take priority over earlier ones.
    """

    def __init__(self):
        self.rules = []
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = 0

    def on(self, fragment, result):
        self.rules.insert(0, (fragment, result))
        return self

    def queries(self, fragment):
        return [(sql, params) for sql, params in self.executed if fragment in sql]

    def ran(self, fragment):
        return bool(self.queries(fragment))


class FakeCursor:
    def __init__(self, db):
        self.db = db
        self._rows = []
        self.rowcount = -1

    def execute(self, sql, params=None):
        query = ' '.join(sql.split())
        self.db.executed.append((query, params))
        result = []
        for fragment, outcome in self.db.rules:
            if fragment in query:
                result = outcome(params) if callable(outcome) else outcome
                break
        if isinstance(result, Exception):
            raise result
        if isinstance(result, int):
            self._rows = []
            self.rowcount = result
        else:
            self._rows = [dict(r) for r in (result or [])]
            self.rowcount = len(self._rows)

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        found, self._rows = self._rows, []
        return found


class FakeConnection:
    def __init__(self, db):
        self.db = db
        self.autocommit = True

    def cursor(self):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1

    def rollback(self):
        self.db.rollbacks += 1

    def close(self):
        self.db.closed += 1


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    monkeypatch.setattr(config, 'SUPABASE_JWT_SECRET', JWT_SECRET)
    monkeypatch.setattr(config, 'ADMIN_SECRET', ADMIN_SECRET)
    monkeypatch.setattr(config, 'REALTIME_WEBHOOK_SECRET', WEBHOOK_SECRET)
    monkeypatch.setattr(config, 'EMAILJS_SERVICE_ID', '')
    monkeypatch.setattr(config, 'EMAILJS_PUBLIC_KEY', '')
    monkeypatch.setattr(config, 'AUTO_APPROVE_WITHDRAWALS', True)
    monkeypatch.setattr(config, 'ESEWA_VERIFY_PAYMENTS', False)
    auth._rate_limits.clear()
    row_cache.clear()
    yield
    auth._rate_limits.clear()
    row_cache.clear()


@pytest.fixture
def db(monkeypatch):
    fake = FakeDB()
    monkeypatch.setattr(psycopg2, 'connect', lambda *args, **kwargs: FakeConnection(fake))
    return fake


@pytest.fixture
def client(db):
    from spinwin.index import app
    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client


def make_token(user_id=USER_ID, expires_in=3600, audience='authenticated', secret=JWT_SECRET):
    claims = {'sub': user_id, 'aud': audience, 'role': 'authenticated', 'exp': int(time.time()) + expires_in}
    return jwt.encode(claims, secret, algorithm='HS256')


def user_headers(user_id=USER_ID):
    return {'Authorization': f'Bearer {make_token(user_id)}'}


def admin_headers():
    return {'X-Admin-Secret': ADMIN_SECRET}


class FixedRng:
    """Deterministic replacement for SystemRandom"""

    def __init__(self, segment=0, roll=0.5):
        self.segment = segment
        self.roll = roll

    def randrange(self, n):
        return self.segment % n

    def random(self):
        return self.roll

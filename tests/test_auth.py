from spinwin import auth
from spinwin.auth import check_rate_limit, decode_access_token
from tests.conftest import USER_ID, ADMIN_SECRET, make_token, user_headers, admin_headers


def test_valid_token_yields_subject():
    assert decode_access_token(make_token()) == USER_ID


def test_expired_token_rejected():
    assert decode_access_token(make_token(expires_in=-60)) is None


def test_wrong_audience_rejected():
    assert decode_access_token(make_token(audience='anon')) is None


def test_wrong_secret_rejected():
    assert decode_access_token(make_token(secret='another-secret-that-is-long-enough-0000')) is None


def test_missing_secret_rejects_everything(monkeypatch):
    monkeypatch.setattr(auth.config, 'SUPABASE_JWT_SECRET', '')
    assert decode_access_token(make_token()) is None


def test_rate_limit_window():
    assert all(check_rate_limit('unit', 3, 60) for _ in range(3))
    assert not check_rate_limit('unit', 3, 60)
    assert check_rate_limit('other', 3, 60)


def test_user_route_requires_token(client):
    response = client.get('/api/spin/status')
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_user_route_rejects_bad_token(client):
    response = client.get('/api/spin/status', headers={'Authorization': 'Bearer not-a-jwt'})
    assert response.status_code == 403


def test_user_route_accepts_valid_token(client, db):
    db.on('SELECT coins, daily_spin_limit, banned FROM users', [{'coins': 10, 'daily_spin_limit': 5, 'banned': False}])
    db.on('FROM spins WHERE user_id', [{'cnt': 2}])
    response = client.get('/api/spin/status', headers=user_headers())
    assert response.status_code == 200
    body = response.get_json()
    assert body['spins_remaining'] == 3
    assert body['can_spin'] is True


def test_admin_route_requires_secret(client):
    assert client.get('/api/admin/stats').status_code == 403
    assert client.get('/api/admin/stats', headers={'X-Admin-Secret': 'wrong'}).status_code == 403


def test_admin_secret_not_configured(client, monkeypatch):
    monkeypatch.setattr(auth.config, 'ADMIN_SECRET', '')
    assert client.get('/api/admin/stats', headers=admin_headers()).status_code == 500


def test_query_secret_only_accepted_on_cron_paths(client):
    assert client.get(f'/api/admin/stats?secret={ADMIN_SECRET}').status_code == 403


def test_cron_accepts_query_secret(client, monkeypatch):
    from spinwin import routes_cron
    monkeypatch.setattr(routes_cron, 'snapshot_leaderboard', lambda: {'success': True, 'skipped': True})
    response = client.get(f'/api/cron/leaderboard-snapshot?secret={ADMIN_SECRET}')
    assert response.status_code == 200


def test_security_headers_applied(client, db):
    db.on('SELECT COUNT(*) AS cnt FROM users', [{'cnt': 4}])
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert 'supabase.co' in response.headers['Content-Security-Policy']

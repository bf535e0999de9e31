import psycopg2
import pytest

from spinwin import rewards
from tests.conftest import USER_ID, FixedRng, user_headers

LOCK_USER = 'daily_spin_limit, banned FROM users WHERE id = %s FOR UPDATE'


@pytest.fixture
def spin_db(db, monkeypatch):
    monkeypatch.setattr(rewards, '_rng', FixedRng(segment=4, roll=0.5))
    db.on(LOCK_USER, [{'id': USER_ID, 'coins': 2500, 'daily_spin_limit': 20, 'banned': False}])
    db.on('FROM spins WHERE user_id', [{'cnt': 3}])
    db.on('SELECT record_spin(', [{'result': True}])
    db.on('SELECT coins FROM users WHERE id = %s', [{'coins': 3000}])
    db.on('SELECT * FROM users WHERE id = %s', [{'id': USER_ID, 'coins': 3000}])
    return db


def spin(client, request_id='req-1', **extra):
    return client.post('/api/spin', json={'request_id': request_id, **extra}, headers=user_headers())


def test_spin_credits_vip_reward(client, spin_db):
    response = spin(client)
    assert response.status_code == 200
    body = response.get_json()
    assert body['segment_index'] == 4
    assert body['base_reward'] == 100
    assert body['reward'] == 500
    assert body['multiplier'] == 5
    assert body['coins'] == 3000
    assert body['replayed'] is False
    assert body['spins_today'] == 4

    (_, params), = spin_db.queries('SELECT record_spin(')
    assert params == (USER_ID, 500)
    assert spin_db.ran("set_config('request.jwt.claims'")
    assert spin_db.ran('INSERT INTO spin_requests')
    assert spin_db.ran('INSERT INTO user_benefits')
    assert spin_db.commits == 1


def test_rotation_matches_segment(client, spin_db):
    body = spin(client, previous_rotation=400).get_json()
    assert rewards.segment_for_rotation(body['rotation']) == body['segment_index']
    assert body['animation_seconds'] == 4


def test_replayed_request_is_not_credited_twice(client, spin_db):
    spin_db.on('FROM spin_requests WHERE user_id', [{
        'segment_index': 1, 'base_reward': 10, 'reward': 50, 'multiplier': 5, 'power_ups': [],
    }])
    response = spin(client)
    assert response.status_code == 200
    body = response.get_json()
    assert body['replayed'] is True
    assert body['reward'] == 50
    assert not spin_db.ran('SELECT record_spin(')
    assert spin_db.commits == 0


def test_daily_limit_blocks_spin(client, spin_db):
    spin_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 100, 'daily_spin_limit': 5, 'banned': False}])
    spin_db.on('FROM spins WHERE user_id', [{'cnt': 5}])
    response = spin(client)
    assert response.status_code == 429
    assert response.get_json()['daily_spin_limit'] == 5
    assert not spin_db.ran('SELECT record_spin(')


def test_extra_spins_power_up_extends_limit(client, spin_db):
    spin_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 100, 'daily_spin_limit': 5, 'banned': False}])
    spin_db.on('FROM spins WHERE user_id', [{'cnt': 5}])
    spin_db.on('FROM power_up_activations', [{'id': 1, 'effect': 'extra_spins', 'amount': 5, 'expires_at': None}])
    assert spin(client).status_code == 200


def test_grand_master_ignores_limit(client, spin_db):
    spin_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 5000, 'daily_spin_limit': 5, 'banned': False}])
    spin_db.on('FROM spins WHERE user_id', [{'cnt': 250}])
    body = spin(client).get_json()
    assert body['success'] is True
    assert body['reward'] == 1000


def test_banned_user_cannot_spin(client, spin_db):
    spin_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 100, 'daily_spin_limit': 5, 'banned': True}])
    assert spin(client).status_code == 403


def test_unknown_user(client, spin_db):
    spin_db.on(LOCK_USER, [])
    assert spin(client).status_code == 404


def test_rejected_record_spin_rolls_back(client, spin_db):
    spin_db.on('SELECT record_spin(', [{'result': False}])
    response = spin(client)
    assert response.status_code == 409
    assert spin_db.commits == 0
    assert not spin_db.ran('INSERT INTO spin_requests')


def test_procedure_error_is_reported(client, spin_db):
    spin_db.on('SELECT record_spin(', psycopg2.Error('daily limit exceeded'))
    response = spin(client)
    assert response.status_code == 400
    assert 'daily limit exceeded' in response.get_json()['error']


def test_maintenance_mode_pauses_spins(client, spin_db):
    spin_db.on('FROM system_settings WHERE setting_key',
               lambda params: [{'setting_value': True}] if params == ('maintenance_mode',) else [])
    assert spin(client).status_code == 503
    assert not spin_db.ran(LOCK_USER)


def configured_default(value):
    return lambda params: [{'setting_value': value}] if params == ('max_daily_spins_default',) else []


def test_user_without_limit_gets_configured_default(client, spin_db):
    spin_db.on('FROM system_settings WHERE setting_key', configured_default(8))
    spin_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 0, 'daily_spin_limit': None, 'banned': False}])
    spin_db.on('FROM spins WHERE user_id', [{'cnt': 6}])
    assert spin(client).status_code == 200
    spin_db.on('FROM spins WHERE user_id', [{'cnt': 8}])
    response = spin(client, request_id='req-2')
    assert response.status_code == 429
    assert response.get_json()['daily_spin_limit'] == 8


def test_status_reports_configured_default(client, db):
    db.on('FROM system_settings WHERE setting_key', configured_default(8))
    db.on('SELECT coins, daily_spin_limit, banned FROM users', [{'coins': 0, 'daily_spin_limit': None, 'banned': False}])
    db.on('FROM spins WHERE user_id', [{'cnt': 6}])
    body = client.get('/api/spin/status', headers=user_headers()).get_json()
    assert body['daily_spin_limit'] == 8
    assert body['spins_remaining'] == 2


def test_request_id_required(client, spin_db):
    response = client.post('/api/spin', json={}, headers=user_headers())
    assert response.status_code == 400
    assert spin(client, request_id='x' * 65).status_code == 400


def test_spin_rate_limit(client, spin_db):
    for i in range(10):
        assert spin(client, request_id=f'r{i}').status_code == 200
    assert spin(client, request_id='r10').status_code == 429


def test_spin_history_totals(client, db):
    db.on('FROM spins WHERE user_id = %s ORDER BY', [
        {'id': 2, 'reward': 50, 'spun_at': None},
        {'id': 1, 'reward': 10, 'spun_at': None},
    ])
    body = client.get('/api/spin/history', headers=user_headers()).get_json()
    assert body['total_coins'] == 60
    assert len(body['spins']) == 2

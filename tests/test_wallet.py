import psycopg2
import pytest

from spinwin import wallet
from spinwin.config import config
from spinwin.wallet import approve_withdrawal, reject_withdrawal
from tests.conftest import USER_ID, user_headers

LOCK_USER = 'FROM users WHERE id = %s FOR UPDATE'
APPROVE_RPC = 'SELECT approve_withdrawal_with_notification('
LOCK_WITHDRAWAL = 'FOR UPDATE OF w'


@pytest.fixture
def wallet_db(db):
    db.on(LOCK_USER, [{'id': USER_ID, 'name': 'Asha', 'email': 'asha@example.com', 'coins': 5000, 'banned': False}])
    db.on('UPDATE users SET coins = coins - %s', [{'coins': 3000}])
    db.on('INSERT INTO withdrawals', [{'id': 'w-1', 'requested_at': None}])
    db.on(APPROVE_RPC, [{'result': True}])
    return db


def withdraw(client, amount=2000, esewa_number='9812345678'):
    return client.post('/api/wallet/withdraw', json={'amount': amount, 'esewa_number': esewa_number},
                       headers=user_headers())


def test_withdrawal_is_deducted_and_auto_approved(client, wallet_db):
    response = withdraw(client)
    assert response.status_code == 200
    body = response.get_json()
    assert body['coins'] == 3000
    assert body['rupee_amount'] == 200.0
    assert body['withdrawal']['status'] == 'completed'
    (_, params), = wallet_db.queries(APPROVE_RPC)
    assert params == ('w-1', 'Automatically approved')
    assert not wallet_db.ran('ROLLBACK TO SAVEPOINT')
    assert wallet_db.commits == 1


def test_failed_auto_approval_leaves_request_pending(client, wallet_db):
    wallet_db.on(APPROVE_RPC, psycopg2.Error('approval failed'))
    body = withdraw(client).get_json()
    assert body['success'] is True
    assert body['withdrawal']['status'] == 'pending'
    assert wallet_db.ran('ROLLBACK TO SAVEPOINT auto_approve')
    assert wallet_db.commits == 1


def test_manual_mode_skips_approval(client, wallet_db, monkeypatch):
    monkeypatch.setattr(config, 'AUTO_APPROVE_WITHDRAWALS', False)
    body = withdraw(client).get_json()
    assert body['withdrawal']['status'] == 'pending'
    assert not wallet_db.ran(APPROVE_RPC)


@pytest.mark.parametrize('amount', [0, -5, 'abc', 12.5, None])
def test_amount_must_be_positive_whole_number(client, wallet_db, amount):
    assert withdraw(client, amount=amount).status_code == 400
    assert not wallet_db.ran(LOCK_USER)


def test_below_minimum_rejected(client, wallet_db):
    response = withdraw(client, amount=500)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Minimum withdrawal is 1000 coins'
    assert not wallet_db.ran('UPDATE users SET coins = coins - %s')
    assert wallet_db.rollbacks == 1


def test_more_than_balance_rejected(client, wallet_db):
    response = withdraw(client, amount=6000)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Insufficient coins'


def test_invalid_esewa_number(client, wallet_db):
    assert withdraw(client, esewa_number='12345').status_code == 400
    assert withdraw(client, esewa_number='9612345678').status_code == 400


def test_withdrawal_rate_limit(client, wallet_db):
    for _ in range(3):
        assert withdraw(client).status_code == 200
    assert withdraw(client).status_code == 429


def test_fee_reduces_rupee_amount(client, wallet_db):
    wallet_db.on('FROM system_settings WHERE setting_key',
                 lambda params: [{'setting_value': 5}] if params == ('withdrawal_fee_percentage',) else [])
    assert withdraw(client).get_json()['rupee_amount'] == 190.0


def test_admin_reject_refunds_coins(db):
    db.on(LOCK_WITHDRAWAL, [{'id': 'w-9', 'user_id': USER_ID, 'coin_amount': 1500, 'esewa_number': '9812345678',
                            'status': 'pending', 'name': 'Asha', 'email': None}])
    db.on('UPDATE users SET coins = coins + %s', [{'coins': 4500}])
    result = reject_withdrawal('w-9', 'Number mismatch')
    assert result == {'success': True, 'withdrawal_id': 'w-9', 'refunded': 1500, 'coins': 4500}
    (_, params), = db.queries('UPDATE users SET coins = coins + %s')
    assert params == (1500, USER_ID)
    assert db.ran('INSERT INTO notifications')
    (_, params), = db.queries('INSERT INTO balance_history')
    assert params[1] == 1500 and params[3] == 'withdrawal_refund'
    assert db.commits == 1


@pytest.mark.parametrize('status', ['completed', 'rejected'])
def test_only_pending_withdrawals_can_be_decided(db, status):
    db.on(LOCK_WITHDRAWAL, [{'id': 'w-9', 'user_id': USER_ID, 'coin_amount': 1500, 'esewa_number': '9812345678',
                            'status': status, 'name': 'Asha', 'email': None}])
    assert reject_withdrawal('w-9')['status'] == 409
    assert approve_withdrawal('w-9')['status'] == 409
    assert not db.ran('UPDATE users')


def test_admin_approve_sends_email(db, monkeypatch):
    sent = []
    monkeypatch.setattr(wallet, 'send_withdrawal_approved_email', lambda *args: sent.append(args) or True)
    db.on(LOCK_WITHDRAWAL, [{'id': 'w-9', 'user_id': USER_ID, 'coin_amount': 2000, 'esewa_number': '9812345678',
                            'status': 'pending', 'name': 'Asha', 'email': 'asha@example.com'}])
    db.on(APPROVE_RPC, [{'result': True}])
    result = approve_withdrawal('w-9')
    assert result['success'] is True
    assert result['email_sent'] is True
    assert sent == [('asha@example.com', 'Asha', 2000, 200.0, '9812345678')]


def test_missing_withdrawal(db):
    assert approve_withdrawal('nope')['status'] == 404

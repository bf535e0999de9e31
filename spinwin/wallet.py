#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Withdrawals

Request = deduct + pending row (+ optional auto-approval) in one transaction.
Rejection refunds the coins in one transaction.
"""

import logging
from .config import config
from .database import get_db, get_setting
from .mailer import send_withdrawal_approved_email
from .realtime import refresh_user
from .rewards import validate_withdrawal, coins_to_rupees
from .rpc import call_rpc, RpcError
from .utils import log_balance_operation, create_notification, serialize

logger = logging.getLogger(__name__)


def _notify_approved(withdrawal, fee_percentage):
    rupees = coins_to_rupees(withdrawal['coin_amount'], fee_percentage)
    sent = send_withdrawal_approved_email(withdrawal.get('email'), withdrawal.get('name'),
                                          withdrawal['coin_amount'], rupees, withdrawal['esewa_number'])
    if not sent:
        logger.info(f"No approval email for withdrawal {withdrawal['id']}")
    return sent


def request_withdrawal(user_id, amount, esewa_number):
    if get_setting('maintenance_mode'):
        return {"success": False, "error": "Withdrawals are paused for maintenance", "status": 503}
    minimum = int(get_setting('min_withdrawal_coins'))
    fee_percentage = float(get_setting('withdrawal_fee_percentage') or 0)

    conn = get_db()
    approved = False
    try:
        cur = conn.cursor()
        cur.execute("SELECT id, name, email, coins, banned FROM users WHERE id = %s FOR UPDATE", (user_id,))
        user = cur.fetchone()
        if not user:
            conn.rollback()
            return {"success": False, "error": "User not found", "status": 404}
        if user.get('banned'):
            conn.rollback()
            return {"success": False, "error": "Account is banned", "status": 403}
        error = validate_withdrawal(user['coins'], amount, minimum)
        if error:
            conn.rollback()
            return {"success": False, "error": error, "status": 400}

        cur.execute("UPDATE users SET coins = coins - %s WHERE id = %s RETURNING coins", (amount, user_id))
        new_balance = cur.fetchone()['coins']
        cur.execute("""
            INSERT INTO withdrawals (user_id, esewa_number, coin_amount, status)
            VALUES (%s, %s, %s, 'pending')
            RETURNING id, requested_at
        """, (user_id, esewa_number, amount))
        withdrawal = dict(cur.fetchone())
        log_balance_operation(user_id, -amount, 'withdrawal',
                              f'Withdrawal to eSewa {esewa_number}', new_balance, conn)

        if config.AUTO_APPROVE_WITHDRAWALS:
            # A failed approval leaves the request pending for manual review
            cur.execute("SAVEPOINT auto_approve")
            try:
                approved = bool(call_rpc(cur, 'approve_withdrawal_with_notification',
                                         withdrawal_id=withdrawal['id'],
                                         admin_notes='Automatically approved'))
            except RpcError as e:
                logger.error(f"Auto-approval failed for {withdrawal['id']}: {e}")
                approved = False
            if not approved:
                cur.execute("ROLLBACK TO SAVEPOINT auto_approve")
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    refresh_user(user_id)
    status = 'completed' if approved else 'pending'
    if approved:
        _notify_approved({"id": withdrawal['id'], "coin_amount": amount, "esewa_number": esewa_number,
                          "email": user.get('email'), "name": user.get('name')}, fee_percentage)
    logger.info(f"Withdrawal {withdrawal['id']} for {user_id}: {amount} coins, {status}")
    return {
        "success": True,
        "withdrawal": serialize({**withdrawal, "coin_amount": amount, "esewa_number": esewa_number, "status": status}),
        "rupee_amount": coins_to_rupees(amount, fee_percentage),
        "coins": new_balance,
    }


def _lock_pending(cur, withdrawal_id):
    cur.execute("""
        SELECT w.id, w.user_id, w.coin_amount, w.esewa_number, w.status, u.name, u.email
        FROM withdrawals w JOIN users u ON u.id = w.user_id
        WHERE w.id = %s FOR UPDATE OF w
    """, (withdrawal_id,))
    withdrawal = cur.fetchone()
    if not withdrawal:
        return None, {"success": False, "error": "Withdrawal not found", "status": 404}
    if withdrawal['status'] != 'pending':
        return None, {"success": False, "error": f"Withdrawal already {withdrawal['status']}", "status": 409}
    return dict(withdrawal), None


def approve_withdrawal(withdrawal_id, admin_notes=None):
    fee_percentage = float(get_setting('withdrawal_fee_percentage') or 0)
    conn = get_db()
    try:
        cur = conn.cursor()
        withdrawal, error = _lock_pending(cur, withdrawal_id)
        if error:
            conn.rollback()
            return error
        if not call_rpc(cur, 'approve_withdrawal_with_notification', withdrawal_id=withdrawal_id,
                        admin_notes=admin_notes or 'Withdrawal approved and processed'):
            conn.rollback()
            return {"success": False, "error": "Approval was not applied", "status": 409}
        conn.commit()
    except RpcError as e:
        conn.rollback()
        return {"success": False, "error": e.message, "status": 400}
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    email_sent = _notify_approved(withdrawal, fee_percentage)
    return {"success": True, "withdrawal_id": withdrawal_id, "email_sent": email_sent,
            "rupee_amount": coins_to_rupees(withdrawal['coin_amount'], fee_percentage)}


def reject_withdrawal(withdrawal_id, admin_notes=None):
    """Reject a pending withdrawal and refund its coins"""
    conn = get_db()
    try:
        cur = conn.cursor()
        withdrawal, error = _lock_pending(cur, withdrawal_id)
        if error:
            conn.rollback()
            return error
        amount = withdrawal['coin_amount']
        cur.execute("UPDATE withdrawals SET status = 'rejected', admin_notes = %s WHERE id = %s",
                    (admin_notes or 'Withdrawal rejected', withdrawal_id))
        cur.execute("UPDATE users SET coins = coins + %s WHERE id = %s RETURNING coins",
                    (amount, withdrawal['user_id']))
        new_balance = cur.fetchone()['coins']
        log_balance_operation(withdrawal['user_id'], amount, 'withdrawal_refund',
                              f'Refund for rejected withdrawal {withdrawal_id}', new_balance, conn)
        create_notification(withdrawal['user_id'], '↩️ Withdrawal Rejected',
                            f'Your withdrawal of {amount:,} coins was rejected and the coins were returned. '
                            f'{admin_notes or ""}'.strip(), 'warning', conn)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    refresh_user(withdrawal['user_id'])
    return {"success": True, "withdrawal_id": withdrawal_id, "refunded": amount, "coins": new_balance}

#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Diamond purchases through the eSewa redirect flow
"""

import logging
from urllib.parse import parse_qs
import requests as http_requests
from .config import config
from .database import get_db
from .realtime import refresh_user
from .utils import log_balance_operation, create_notification, serialize

logger = logging.getLogger(__name__)


def clean_purchase_id(pid):
    """eSewa sometimes appends its own query string to the pid"""
    return (pid or '').split('?')[0].strip()


def echoed_order_id(pid, oid=None):
    """The oid eSewa sends back, either as its own arg or glued onto pid"""
    if oid:
        return clean_purchase_id(oid)
    _, _, tail = (pid or '').partition('?')
    return parse_qs(tail).get('oid', [''])[0].strip()


def esewa_form(purchase_id, amount):
    return {
        "action": config.ESEWA_PAYMENT_URL,
        "fields": {
            "amt": amount,
            "psc": 0,
            "pdc": 0,
            "txAmt": 0,
            "tAmt": amount,
            "pid": purchase_id,
            "scd": config.ESEWA_MERCHANT_CODE,
            "su": f"{config.APP_URL}/diamond-success?pid={purchase_id}",
            "fu": f"{config.APP_URL}/diamond-failure?pid={purchase_id}",
        },
    }


def verify_esewa_payment(purchase_id, amount, ref_id):
    """Ask eSewa whether a transaction really succeeded"""
    try:
        resp = http_requests.post(config.ESEWA_VERIFY_URL, data={
            "amt": amount, "rid": ref_id, "pid": purchase_id, "scd": config.ESEWA_MERCHANT_CODE,
        }, timeout=15)
        return resp.status_code == 200 and 'success' in resp.text.lower()
    except Exception as e:
        logger.error(f"eSewa verification failed for {purchase_id}: {e}")
        return False


def create_purchase(user_id, package_id):
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT * FROM diamond_packages WHERE id = %s AND is_active = TRUE", (package_id,))
        package = cur.fetchone()
        if not package:
            conn.rollback()
            return {"success": False, "error": "Package not found", "status": 404}
        cur.execute("""
            INSERT INTO diamond_purchases (user_id, package_id, diamonds_purchased, price_paid_rs, payment_method, payment_status)
            VALUES (%s, %s, %s, %s, 'esewa', 'pending')
            RETURNING id
        """, (user_id, package_id, package['diamonds'], package['price_rs']))
        purchase_id = str(cur.fetchone()['id'])
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    logger.info(f"Diamond purchase {purchase_id} started by {user_id}")
    return {"success": True, "purchase_id": purchase_id, "package": serialize(dict(package)),
            "esewa": esewa_form(purchase_id, serialize(package['price_rs']))}


def _purchase_state(purchase):
    """Early answer for a purchase that is missing or no longer pending, else None"""
    if not purchase:
        return {"success": False, "error": "Purchase not found", "status": 404}
    if purchase['payment_status'] == 'completed':
        return {"success": True, "already_completed": True, "purchase": serialize(dict(purchase))}
    if purchase['payment_status'] != 'pending':
        return {"success": False, "error": f"Purchase is {purchase['payment_status']}", "status": 409}
    return None


def complete_purchase(pid, oid=None, ref_id=None):
    """Credit diamonds for a successful payment return. Safe to call twice.

    The return URL is public, so a credit needs eSewa's reference id. With
    verification on, eSewa must confirm the transaction; the call happens
    before the row lock is taken. With it off, the echoed order id must
    match the purchase.
    """
    purchase_id = clean_purchase_id(pid)
    if not purchase_id:
        return {"success": False, "error": "Purchase id required", "status": 400}
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT * FROM diamond_purchases WHERE id = %s", (purchase_id,))
        purchase = cur.fetchone()
        conn.rollback()
        early = _purchase_state(purchase)
        if early:
            return early
        ref_id = (ref_id or '').strip()
        if not ref_id:
            return {"success": False, "error": "Payment reference required", "status": 402}
        if config.ESEWA_VERIFY_PAYMENTS:
            if not verify_esewa_payment(purchase_id, serialize(purchase['price_paid_rs']), ref_id):
                logger.warning(f"eSewa did not confirm purchase {purchase_id} (ref {ref_id})")
                return {"success": False, "error": "Payment could not be verified", "status": 402}
        elif echoed_order_id(pid, oid) != purchase_id:
            logger.warning(f"Order id mismatch on purchase {purchase_id}: {oid!r}")
            return {"success": False, "error": "Payment could not be verified", "status": 402}

        # Another return may have completed it while eSewa was being asked
        cur.execute("SELECT * FROM diamond_purchases WHERE id = %s FOR UPDATE", (purchase_id,))
        purchase = cur.fetchone()
        early = _purchase_state(purchase)
        if early:
            conn.rollback()
            return early

        cur.execute("""
            UPDATE diamond_purchases
            SET payment_status = 'completed', esewa_payment_id = %s, completed_at = NOW()
            WHERE id = %s
        """, (ref_id, purchase_id))
        diamonds = purchase['diamonds_purchased']
        cur.execute("UPDATE users SET diamonds = COALESCE(diamonds, 0) + %s WHERE id = %s RETURNING diamonds",
                    (diamonds, purchase['user_id']))
        new_diamonds = cur.fetchone()['diamonds']
        log_balance_operation(purchase['user_id'], diamonds, 'diamond_purchase',
                              f'eSewa payment {ref_id}', new_diamonds, conn, currency='diamonds')
        create_notification(purchase['user_id'], '💎 Diamond Purchase Successful!',
                            f'Congratulations! You have successfully purchased {diamonds} diamonds for '
                            f'Rs. {purchase["price_paid_rs"]}. Your diamonds have been added to your account.',
                            'success', conn)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    refresh_user(purchase['user_id'])
    return {"success": True, "already_completed": False, "diamonds": diamonds, "total_diamonds": new_diamonds}


def fail_purchase(pid):
    purchase_id = clean_purchase_id(pid)
    if not purchase_id:
        return {"success": False, "error": "Purchase id required", "status": 400}
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("""
            UPDATE diamond_purchases SET payment_status = 'failed'
            WHERE id = %s AND payment_status = 'pending'
            RETURNING user_id
        """, (purchase_id,))
        row = cur.fetchone()
        if row:
            create_notification(row['user_id'], '❌ Payment Failed',
                                'Your diamond purchase could not be completed. No money was charged.',
                                'error', conn)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return {"success": True, "updated": bool(row)}

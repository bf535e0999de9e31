#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Account creation and referral bonuses
"""

import logging
import secrets
import string
from .database import get_db, get_setting, get_default_spin_limit
from .utils import log_balance_operation, create_notification, serialize

logger = logging.getLogger(__name__)

REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 20


def generate_referral_code():
    return ''.join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def _unique_referral_code(cur):
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_referral_code()
        cur.execute("SELECT id FROM users WHERE referral_code = %s", (code,))
        if not cur.fetchone():
            return code
    raise RuntimeError("Could not generate a unique referral code")


def create_user(user_id, name, email=None, phone=None, referred_by=None):
    """Create the profile row for a freshly signed-up user.

    A valid referral code gives the new user the referee bonus and credits the
    referrer exactly once, guarded by the unique referred_user_id on referrals.
    """
    referrer_bonus = int(get_setting('referral_bonus_referrer'))
    referee_bonus = int(get_setting('referral_bonus_referee'))
    daily_spin_limit = get_default_spin_limit()
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
        existing = cur.fetchone()
        if existing:
            conn.rollback()
            return {"success": True, "exists": True, "user": serialize(dict(existing))}

        referrer = None
        code = (referred_by or '').strip().upper()
        if code:
            cur.execute("SELECT id, name FROM users WHERE referral_code = %s", (code,))
            referrer = cur.fetchone()
            if referrer and str(referrer['id']) == str(user_id):
                referrer = None
            if not referrer:
                logger.info(f"Ignoring referral code {code} for {user_id}")

        starting_coins = referee_bonus if referrer else 0
        cur.execute("""
            INSERT INTO users (id, name, email, phone, referral_code, referred_by, coins, daily_spin_limit)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO NOTHING
            RETURNING *
        """, (user_id, name, email, phone, _unique_referral_code(cur),
              code if referrer else None, starting_coins, daily_spin_limit))
        user = cur.fetchone()
        if not user:
            # Lost a race with a concurrent init for the same account
            conn.rollback()
            cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
            return {"success": True, "exists": True, "user": serialize(dict(cur.fetchone() or {}))}

        if referrer:
            log_balance_operation(user_id, referee_bonus, 'referral_welcome',
                                  f'Welcome bonus for joining with code {code}', starting_coins, conn)
            cur.execute("""
                INSERT INTO referrals (referrer_id, referred_user_id, bonus_given)
                VALUES (%s, %s, %s)
                ON CONFLICT (referred_user_id) DO NOTHING
                RETURNING id
            """, (referrer['id'], user_id, referrer_bonus))
            if cur.fetchone():
                cur.execute("UPDATE users SET coins = coins + %s WHERE id = %s RETURNING coins",
                            (referrer_bonus, referrer['id']))
                updated = cur.fetchone()
                log_balance_operation(referrer['id'], referrer_bonus, 'referral_bonus',
                                      f'{name or "A friend"} joined with your code',
                                      updated['coins'] if updated else None, conn)
                create_notification(referrer['id'], '🎉 Referral Bonus!',
                                    f'{name or "A friend"} joined with your referral code. You earned {referrer_bonus} coins!',
                                    'success', conn)

        conn.commit()
        logger.info(f"Created user {user_id} (referred: {bool(referrer)})")
        return {"success": True, "exists": False, "user": serialize(dict(user)),
                "referral_applied": bool(referrer)}
    except Exception as e:
        conn.rollback()
        logger.error(f"create_user failed for {user_id}: {e}")
        return {"success": False, "error": "Failed to create user"}
    finally:
        conn.close()

#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Utilities: user lookup, balance log, notifications
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from .database import get_db

logger = logging.getLogger(__name__)


def log_balance_operation(user_id, amount, operation, description, balance_after, conn=None, currency='coins'):
    """Log balance operation to history"""
    should_close = False
    if not conn:
        conn = get_db()
        should_close = True
    try:
        cur = conn.cursor()
        cur.execute("""INSERT INTO balance_history (user_id, amount, currency, operation, description, balance_after)
                       VALUES (%s, %s, %s, %s, %s, %s)""",
                    (user_id, amount, currency, operation, description, balance_after))
        if should_close:
            conn.commit()
    except Exception as e:
        logger.error(f"Balance log error: {e}")
    finally:
        if should_close:
            conn.close()


def create_notification(user_id, title, message, notification_type='info', conn=None):
    """Insert an in-app notification. Joins the caller's transaction when conn is given."""
    should_close = False
    if not conn:
        conn = get_db()
        should_close = True
    try:
        cur = conn.cursor()
        cur.execute("INSERT INTO notifications (user_id, title, message, type) VALUES (%s, %s, %s, %s)",
                    (user_id, title, message, notification_type))
        if should_close:
            conn.commit()
    finally:
        if should_close:
            conn.close()


def get_user(user_id):
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
        row = cur.fetchone()
        conn.close()
        return dict(row) if row else None
    except Exception as e:
        logger.error(f"get_user error: {e}")
        return None


def serialize(value):
    """Make psycopg2 rows JSON-friendly"""
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def rows(cur):
    return [serialize(dict(r)) for r in cur.fetchall()]


def parse_positive_int(value):
    """Whole positive number from JSON input, else None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    return None

#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Stored procedure calls

Balance-mutating procedures live in the database. They are called over the same
psycopg2 connection so they join the caller's transaction.
"""

import json
import logging
import psycopg2

logger = logging.getLogger(__name__)

ALLOWED_PROCEDURES = {
    'record_spin',
    'purchase_item',
    'equip_item',
    'buy_lottery_ticket',
    'conduct_lottery_draw',
    'convert_diamonds_to_coins',
    'send_message',
    'mark_messages_read',
    'send_friend_request',
    'accept_friend_request',
    'reject_friend_request',
    'remove_friend',
    'admin_ban_user',
    'admin_update_spin_limit',
    'approve_withdrawal_with_notification',
    'send_message_to_all_users',
    'refresh_daily_stats',
    'update_leaderboard_rankings',
}


class RpcError(Exception):
    """A stored procedure failed or is unknown"""

    def __init__(self, name, message):
        super().__init__(f"{name}: {message}")
        self.name = name
        self.message = message


def act_as(cur, user_id):
    """Make auth.uid() resolve to user_id for the rest of the transaction"""
    claims = json.dumps({"sub": str(user_id), "role": "authenticated"})
    cur.execute("SELECT set_config('request.jwt.claims', %s, true)", (claims,))


def call_rpc(cur, name, **params):
    """Call a stored procedure with named arguments and return its result"""
    if name not in ALLOWED_PROCEDURES:
        raise RpcError(name, "unknown procedure")
    args = ', '.join(f"{key} => %s" for key in params)
    values = []
    for value in params.values():
        # jsonb / array arguments
        if isinstance(value, dict):
            value = json.dumps(value)
        values.append(value)
    try:
        cur.execute(f"SELECT {name}({args}) AS result", tuple(values))
    except psycopg2.Error as e:
        logger.error(f"RPC {name} failed: {e}")
        raise RpcError(name, str(e).strip() or e.__class__.__name__)
    row = cur.fetchone()
    return row['result'] if row else None

#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Spin routes

The wheel result is decided here. The client only animates it.
"""

import json
import logging
from flask import Blueprint, request, jsonify
from .auth import require_user_auth, check_rate_limit
from .database import get_db, get_setting, get_default_spin_limit
from .realtime import refresh_user
from .rewards import spin_reward, wheel_rotation, animation_seconds, effective_spin_limit, WHEEL_PRIZES
from .rpc import act_as, call_rpc, RpcError
from .utils import log_balance_operation, rows
from .vip import can_spin, spins_remaining, tier_descriptor, resolve_tier

logger = logging.getLogger(__name__)
spin_bp = Blueprint('spin', __name__)

MAX_REQUEST_ID_LENGTH = 64
TODAY_SPINS_SQL = "SELECT COUNT(*) AS cnt FROM spins WHERE user_id = %s AND spun_at >= date_trunc('day', NOW())"
ACTIVE_POWER_UPS_SQL = """
    SELECT id, effect, amount, expires_at FROM power_up_activations
    WHERE user_id = %s AND expires_at > NOW()
"""


def _spin_payload(segment, base_reward, reward, multiplier, power_ups, coins, previous_rotation):
    return {
        "segment_index": segment,
        "base_reward": base_reward,
        "reward": reward,
        "multiplier": multiplier,
        "power_ups": power_ups,
        "rotation": wheel_rotation(segment, previous_rotation, enhanced=resolve_tier(coins).multiplier > 1),
        "animation_seconds": animation_seconds(coins),
        "tier": tier_descriptor(coins),
    }


def execute_spin(user_id, request_id, previous_rotation=0):
    """Run one spin inside a single transaction.

    Replaying a request_id returns the stored outcome without crediting again.
    """
    if get_setting('maintenance_mode'):
        return {"success": False, "error": "Spins are paused for maintenance", "status": 503}
    default_limit = get_default_spin_limit()

    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT id, coins, daily_spin_limit, banned FROM users WHERE id = %s FOR UPDATE", (user_id,))
        user = cur.fetchone()
        if not user:
            conn.rollback()
            return {"success": False, "error": "User not found", "status": 404}
        if user.get('banned'):
            conn.rollback()
            return {"success": False, "error": "Account is banned", "status": 403}

        cur.execute("""
            SELECT segment_index, base_reward, reward, multiplier, power_ups
            FROM spin_requests WHERE user_id = %s AND request_id = %s
        """, (user_id, request_id))
        prior = cur.fetchone()
        if prior:
            conn.rollback()
            payload = _spin_payload(prior['segment_index'], prior['base_reward'], prior['reward'],
                                    prior['multiplier'], prior['power_ups'] or [], user['coins'], previous_rotation)
            payload.update({"success": True, "replayed": True, "coins": user['coins']})
            return payload

        cur.execute(ACTIVE_POWER_UPS_SQL, (user_id,))
        activations = cur.fetchall()
        limit = effective_spin_limit(user['daily_spin_limit'], activations, default_limit)

        cur.execute(TODAY_SPINS_SQL, (user_id,))
        spins_today = cur.fetchone()['cnt']
        if not can_spin(user['coins'], limit, spins_today):
            conn.rollback()
            return {"success": False, "error": "Daily spin limit reached", "status": 429,
                    "spins_today": spins_today, "daily_spin_limit": limit}

        outcome = spin_reward(user['coins'], [a['effect'] for a in activations])

        act_as(cur, user_id)
        if not call_rpc(cur, 'record_spin', user_uuid=user_id, reward_amount=outcome.reward):
            conn.rollback()
            return {"success": False, "error": "Spin was not accepted", "status": 409}

        cur.execute("""
            INSERT INTO spin_requests (user_id, request_id, segment_index, base_reward, reward, multiplier, power_ups)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """, (user_id, request_id, outcome.segment, outcome.base_reward, outcome.reward,
              outcome.multiplier, json.dumps(outcome.applied_power_ups)))

        if outcome.multiplier > 1:
            cur.execute("INSERT INTO user_benefits (user_id, benefit_type, benefit_data) VALUES (%s, %s, %s)",
                        (user_id, 'vip_multiplier', json.dumps({
                            "base_reward": outcome.base_reward,
                            "total_reward": outcome.vip_reward,
                            "multiplier": outcome.multiplier,
                            "tier": resolve_tier(user['coins']).name,
                        })))

        cur.execute("SELECT coins FROM users WHERE id = %s", (user_id,))
        balance = cur.fetchone()
        new_balance = balance['coins'] if balance else user['coins'] + outcome.reward
        log_balance_operation(user_id, outcome.reward, 'spin',
                              f'Wheel segment {outcome.segment} ({outcome.base_reward} x{outcome.multiplier})',
                              new_balance, conn)
        conn.commit()
    except RpcError as e:
        conn.rollback()
        return {"success": False, "error": e.message, "status": 400}
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    refresh_user(user_id)
    payload = _spin_payload(outcome.segment, outcome.base_reward, outcome.reward, outcome.multiplier,
                            outcome.applied_power_ups, user['coins'], previous_rotation)
    payload.update({"success": True, "replayed": False, "coins": new_balance,
                    "spins_today": spins_today + 1})
    return payload


@spin_bp.route('/api/spin', methods=['POST'])
@require_user_auth
def api_spin():
    try:
        data = request.get_json(silent=True) or {}
        request_id = str(data.get('request_id') or '').strip()
        if not request_id or len(request_id) > MAX_REQUEST_ID_LENGTH:
            return jsonify({"success": False, "error": "request_id required"}), 400
        if not check_rate_limit(f'spin:{request.user_id}', 10, 60):
            return jsonify({"success": False, "error": "Too many spins, slow down"}), 429
        try:
            previous_rotation = float(data.get('previous_rotation') or 0)
        except (TypeError, ValueError):
            previous_rotation = 0
        result = execute_spin(request.user_id, request_id, previous_rotation)
        if not result.get('success'):
            status = result.pop('status', 400)
            return jsonify(result), status
        return jsonify(result)
    except Exception as e:
        logger.error(f"Spin failed: {e}")
        return jsonify({"success": False, "error": "Spin failed"}), 500


@spin_bp.route('/api/spin/status', methods=['GET'])
@require_user_auth
def api_spin_status():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT coins, daily_spin_limit, banned FROM users WHERE id = %s", (request.user_id,))
        user = cur.fetchone()
        if not user:
            conn.close()
            return jsonify({"success": False, "error": "User not found"}), 404
        cur.execute(TODAY_SPINS_SQL, (request.user_id,))
        spins_today = cur.fetchone()['cnt']
        cur.execute(ACTIVE_POWER_UPS_SQL, (request.user_id,))
        activations = cur.fetchall()
        conn.close()
        coins = user['coins']
        limit = effective_spin_limit(user['daily_spin_limit'], activations, get_default_spin_limit())
        return jsonify({
            "success": True,
            "coins": coins,
            "spins_today": spins_today,
            "daily_spin_limit": limit,
            "can_spin": not user.get('banned') and can_spin(coins, limit, spins_today),
            "spins_remaining": spins_remaining(coins, limit, spins_today),
            "tier": tier_descriptor(coins),
            "prizes": list(WHEEL_PRIZES),
            "active_power_ups": sorted({a['effect'] for a in activations}),
        })
    except Exception as e:
        logger.error(f"Spin status failed: {e}")
        return jsonify({"success": False, "error": "Failed to load spin status"}), 500


@spin_bp.route('/api/spin/history', methods=['GET'])
@require_user_auth
def api_spin_history():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT id, reward, spun_at FROM spins WHERE user_id = %s ORDER BY spun_at DESC LIMIT 50",
                    (request.user_id,))
        history = rows(cur)
        conn.close()
        return jsonify({"success": True, "spins": history, "total_coins": sum(s['reward'] for s in history)})
    except Exception as e:
        logger.error(f"Spin history failed: {e}")
        return jsonify({"success": False, "error": "Failed to load spin history"}), 500

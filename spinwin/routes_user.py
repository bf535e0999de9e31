#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — User routes: init, profile, referral, balance, notifications, leaderboard
"""

import logging
from datetime import datetime
from flask import Blueprint, request, jsonify
from .accounts import create_user
from .auth import require_user_auth
from .database import get_db
from .realtime import cached_user
from .security import sanitize_user_input
from .utils import get_user, rows, serialize
from .vip import tier_descriptor

logger = logging.getLogger(__name__)
user_bp = Blueprint('user', __name__)

LEADERBOARD_SIZE = 20


@user_bp.route('/api/init', methods=['POST'])
@require_user_auth
def api_init():
    try:
        data = request.get_json(silent=True) or {}
        name = sanitize_user_input(data.get('name'), 80)
        if not name:
            return jsonify({"success": False, "error": "Name required"}), 400
        result = create_user(
            request.user_id, name,
            email=sanitize_user_input(data.get('email'), 254) or None,
            phone=sanitize_user_input(data.get('phone'), 20) or None,
            referred_by=data.get('referred_by'))
        if not result['success']:
            return jsonify(result), 500
        user = result['user']
        return jsonify({**result, "tier": tier_descriptor(user.get('coins'))})
    except Exception as e:
        logger.error(f"API init failed: {e}")
        return jsonify({"success": False, "error": "Initialization failed"}), 500


@user_bp.route('/api/user/profile', methods=['GET'])
@require_user_auth
def api_user_profile():
    try:
        user = get_user(request.user_id)
        if not user:
            return jsonify({"success": False, "error": "User not found"}), 404
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) AS cnt, COALESCE(SUM(reward), 0) AS total FROM spins WHERE user_id = %s",
                    (request.user_id,))
        spins = cur.fetchone()
        cur.execute("SELECT COUNT(*) AS cnt FROM referrals WHERE referrer_id = %s", (request.user_id,))
        referrals = cur.fetchone()['cnt']
        cur.execute("SELECT COUNT(*) AS cnt FROM reports WHERE user_id = %s", (request.user_id,))
        reports = cur.fetchone()['cnt']
        conn.close()
        return jsonify({"success": True, "profile": serialize(user), "tier": tier_descriptor(user['coins']),
                        "stats": {"total_spins": spins['cnt'], "coins_from_spins": serialize(spins['total']),
                                  "total_referrals": referrals, "total_reports": reports}})
    except Exception as e:
        logger.error(f"Profile failed: {e}")
        return jsonify({"success": False, "error": "Failed to load profile"}), 500


@user_bp.route('/api/user/profile', methods=['POST'])
@require_user_auth
def api_update_profile():
    try:
        data = request.get_json(silent=True) or {}
        fields = {}
        if 'name' in data:
            fields['name'] = sanitize_user_input(data.get('name'), 80)
            if not fields['name']:
                return jsonify({"success": False, "error": "Name cannot be empty"}), 400
        if 'phone' in data:
            fields['phone'] = sanitize_user_input(data.get('phone'), 20) or None
        if 'profile_picture_url' in data:
            url = str(data.get('profile_picture_url') or '')
            if url and not url.startswith('https://'):
                return jsonify({"success": False, "error": "Invalid picture URL"}), 400
            fields['profile_picture_url'] = url or None
        if not fields:
            return jsonify({"success": False, "error": "Nothing to update"}), 400
        assignments = ', '.join(f"{key} = %s" for key in fields)
        conn = get_db()
        cur = conn.cursor()
        cur.execute(f"UPDATE users SET {assignments} WHERE id = %s RETURNING *",
                    (*fields.values(), request.user_id))
        user = cur.fetchone()
        conn.commit()
        conn.close()
        if not user:
            return jsonify({"success": False, "error": "User not found"}), 404
        return jsonify({"success": True, "profile": serialize(dict(user))})
    except Exception as e:
        logger.error(f"Profile update failed: {e}")
        return jsonify({"success": False, "error": "Failed to update profile"}), 500


@user_bp.route('/api/user/state', methods=['GET'])
@require_user_auth
def api_user_state():
    try:
        user = cached_user(request.user_id)
        if not user:
            return jsonify({"success": False, "error": "User not found"}), 404
        return jsonify({"success": True, "user": user, "tier": tier_descriptor(user.get('coins'))})
    except Exception as e:
        logger.error(f"User state failed: {e}")
        return jsonify({"success": False, "error": "Failed to load state"}), 500


@user_bp.route('/api/referral/stats', methods=['GET'])
@require_user_auth
def api_referral_stats():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT referral_code FROM users WHERE id = %s", (request.user_id,))
        user = cur.fetchone()
        if not user:
            conn.close()
            return jsonify({"success": False, "error": "User not found"}), 404
        cur.execute("SELECT COUNT(*) AS cnt, COALESCE(SUM(bonus_given), 0) AS total FROM referrals WHERE referrer_id = %s",
                    (request.user_id,))
        totals = cur.fetchone()
        cur.execute("""
            SELECT u.name, r.created_at
            FROM referrals r JOIN users u ON r.referred_user_id = u.id
            WHERE r.referrer_id = %s ORDER BY r.created_at DESC LIMIT 5
        """, (request.user_id,))
        recent = [{"name": r['name'], "date": r['created_at'].strftime('%d.%m.%Y') if r['created_at'] else ''}
                  for r in cur.fetchall()]
        conn.close()
        return jsonify({"success": True, "referral_code": user['referral_code'], "stats": {
            "count": totals['cnt'], "total_earned": serialize(totals['total']), "recent": recent}})
    except Exception as e:
        logger.error(f"Referral stats failed: {e}")
        return jsonify({"success": False, "error": "Failed to load referral stats"}), 500


@user_bp.route('/api/balance/history', methods=['GET'])
@require_user_auth
def api_balance_history():
    try:
        filter_type = request.args.get('filter', 'all')
        query = "SELECT * FROM balance_history WHERE user_id = %s"
        if filter_type == 'income':
            query += " AND amount > 0"
        elif filter_type == 'expense':
            query += " AND amount < 0"
        query += " ORDER BY created_at DESC LIMIT 50"
        conn = get_db()
        cur = conn.cursor()
        cur.execute(query, (request.user_id,))
        history = rows(cur)
        conn.close()
        return jsonify({"success": True, "history": history})
    except Exception as e:
        logger.error(f"Balance history failed: {e}")
        return jsonify({"success": False, "error": "Failed to load history"}), 500


@user_bp.route('/api/user/benefits', methods=['GET'])
@require_user_auth
def api_user_benefits():
    """Today's VIP multiplier bonuses"""
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT id, benefit_type, benefit_data, used_at FROM user_benefits
            WHERE user_id = %s AND used_at >= date_trunc('day', NOW())
            ORDER BY used_at DESC
        """, (request.user_id,))
        benefits = rows(cur)
        conn.close()
        savings = 0
        for b in benefits:
            data = b.get('benefit_data') or {}
            savings += max((data.get('total_reward') or 0) - (data.get('base_reward') or 0), 0)
        return jsonify({"success": True, "benefits": benefits, "total_savings": savings})
    except Exception as e:
        logger.error(f"Benefits failed: {e}")
        return jsonify({"success": False, "error": "Failed to load benefits"}), 500


@user_bp.route('/api/leaderboard', methods=['GET'])
def api_leaderboard():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT id, name, profile_picture_url, coins FROM users
            WHERE COALESCE(banned, FALSE) = FALSE
            ORDER BY coins DESC LIMIT %s
        """, (LEADERBOARD_SIZE,))
        leaders = rows(cur)
        conn.close()
        for rank, entry in enumerate(leaders, start=1):
            entry['rank'] = rank
            entry['tier'] = tier_descriptor(entry['coins'])['name']
        return jsonify({"success": True, "leaderboard": leaders})
    except Exception as e:
        logger.error(f"Leaderboard failed: {e}")
        return jsonify({"success": False, "error": "Failed to load leaderboard"}), 500


@user_bp.route('/api/leaderboard/daily', methods=['GET'])
def api_daily_leaderboard():
    try:
        day = request.args.get('date', '')
        if day:
            try:
                datetime.strptime(day, '%Y-%m-%d')
            except ValueError:
                return jsonify({"success": False, "error": "date must be YYYY-MM-DD"}), 400
        conn = get_db()
        cur = conn.cursor()
        if day:
            cur.execute("SELECT * FROM daily_leaderboard WHERE leaderboard_date = %s ORDER BY rank", (day,))
        else:
            cur.execute("""
                SELECT * FROM daily_leaderboard
                WHERE leaderboard_date = (SELECT MAX(leaderboard_date) FROM daily_leaderboard)
                ORDER BY rank
            """)
        snapshot = rows(cur)
        conn.close()
        return jsonify({"success": True, "leaderboard": snapshot})
    except Exception as e:
        logger.error(f"Daily leaderboard failed: {e}")
        return jsonify({"success": False, "error": "Failed to load leaderboard"}), 500


# ===============================
# NOTIFICATIONS / ADMIN MESSAGES
# ===============================

@user_bp.route('/api/notifications', methods=['GET'])
@require_user_auth
def api_notifications():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM notifications WHERE user_id = %s ORDER BY created_at DESC LIMIT 50",
                    (request.user_id,))
        notifications = rows(cur)
        conn.close()
        return jsonify({"success": True, "notifications": notifications,
                        "unread": sum(1 for n in notifications if not n.get('read'))})
    except Exception as e:
        logger.error(f"Notifications failed: {e}")
        return jsonify({"success": False, "error": "Failed to load notifications"}), 500


def _mark_read(table, item_id):
    conn = get_db()
    cur = conn.cursor()
    if item_id:
        cur.execute(f"UPDATE {table} SET read = TRUE WHERE id = %s AND user_id = %s", (item_id, request.user_id))
    else:
        cur.execute(f"UPDATE {table} SET read = TRUE WHERE user_id = %s AND read = FALSE", (request.user_id,))
    updated = cur.rowcount
    conn.commit()
    conn.close()
    return updated


@user_bp.route('/api/notifications/read', methods=['POST'])
@require_user_auth
def api_notifications_read():
    try:
        data = request.get_json(silent=True) or {}
        return jsonify({"success": True, "updated": _mark_read('notifications', data.get('id'))})
    except Exception as e:
        logger.error(f"Mark notifications failed: {e}")
        return jsonify({"success": False, "error": "Failed to update notifications"}), 500


@user_bp.route('/api/admin-messages', methods=['GET'])
@require_user_auth
def api_admin_messages():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT id, title, message, message_type, image_url, read, sent_at, created_at
            FROM admin_messages WHERE user_id = %s ORDER BY created_at DESC LIMIT 50
        """, (request.user_id,))
        messages = rows(cur)
        conn.close()
        return jsonify({"success": True, "messages": messages,
                        "unread": sum(1 for m in messages if not m.get('read'))})
    except Exception as e:
        logger.error(f"Admin messages failed: {e}")
        return jsonify({"success": False, "error": "Failed to load messages"}), 500


@user_bp.route('/api/admin-messages/read', methods=['POST'])
@require_user_auth
def api_admin_messages_read():
    try:
        data = request.get_json(silent=True) or {}
        return jsonify({"success": True, "updated": _mark_read('admin_messages', data.get('id'))})
    except Exception as e:
        logger.error(f"Mark admin messages failed: {e}")
        return jsonify({"success": False, "error": "Failed to update messages"}), 500

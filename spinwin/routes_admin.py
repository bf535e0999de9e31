#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Admin routes: stats, users, withdrawals, reports, spins, broadcast, settings
"""

import json
import logging
from flask import Blueprint, request, jsonify
from .auth import require_admin_secret
from .database import get_db, get_setting, DEFAULT_SETTINGS
from .realtime import refresh_user
from .rpc import call_rpc, RpcError
from .security import sanitize_user_input
from .utils import parse_positive_int, rows, serialize
from .vip import tier_descriptor
from .wallet import approve_withdrawal, reject_withdrawal

logger = logging.getLogger(__name__)
admin_bp = Blueprint('admin', __name__)

WITHDRAWAL_STATUSES = ('pending', 'completed', 'rejected')
REPORT_STATUSES = ('pending', 'in_progress', 'resolved', 'closed')
SPIN_REQUEST_STATUSES = ('pending', 'approved', 'rejected')
MESSAGE_TYPES = ('info', 'success', 'warning', 'error', 'announcement')


def _admin_rpc(name, **params):
    """Run an admin procedure in its own transaction. Returns (ok, error)."""
    conn = get_db()
    try:
        cur = conn.cursor()
        ok = bool(call_rpc(cur, name, **params))
        if ok:
            conn.commit()
        else:
            conn.rollback()
        return ok, None
    except RpcError as e:
        conn.rollback()
        return False, e.message
    finally:
        conn.close()


def _result_response(result):
    if not result.get('success'):
        status = result.pop('status', 400)
        return jsonify(result), status
    return jsonify(result)


@admin_bp.route('/api/health', methods=['GET'])
def api_health():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) AS cnt FROM users")
        count = cur.fetchone()['cnt']
        conn.close()
        return jsonify({"status": "ok", "users": count, "database": "connected", "version": "2.0"})
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return jsonify({"status": "error", "database": "unavailable"}), 500


@admin_bp.route('/api/admin/stats', methods=['GET'])
@require_admin_secret
def admin_stats():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) AS users, COALESCE(SUM(coins), 0) AS coins FROM users")
        totals = cur.fetchone()
        cur.execute("SELECT COUNT(*) AS cnt FROM withdrawals WHERE status = 'pending'")
        pending_withdrawals = cur.fetchone()['cnt']
        cur.execute("SELECT COUNT(*) AS cnt FROM reports WHERE status = 'pending'")
        pending_reports = cur.fetchone()['cnt']
        cur.execute("SELECT COUNT(*) AS cnt FROM spins WHERE spun_at >= date_trunc('day', NOW())")
        today_spins = cur.fetchone()['cnt']
        conn.close()
        return jsonify({"success": True, "stats": {
            "total_users": totals['users'], "total_coins": serialize(totals['coins']),
            "pending_withdrawals": pending_withdrawals, "pending_reports": pending_reports,
            "today_spins": today_spins}})
    except Exception as e:
        logger.error(f"Admin stats failed: {e}")
        return jsonify({"success": False, "error": "Failed to load stats"}), 500


# ===============================
# USERS
# ===============================

@admin_bp.route('/api/admin/users', methods=['GET'])
@require_admin_secret
def admin_users():
    try:
        q = (request.args.get('q') or '').strip()
        query = "SELECT id, name, email, coins, diamonds, daily_spin_limit, banned, referral_code, created_at FROM users"
        params = []
        if q:
            query += " WHERE name ILIKE %s OR email ILIKE %s"
            params += [f"%{q}%", f"%{q}%"]
        query += " ORDER BY created_at DESC LIMIT 100"
        conn = get_db()
        cur = conn.cursor()
        cur.execute(query, params)
        users = rows(cur)
        conn.close()
        for user in users:
            user['tier'] = tier_descriptor(user['coins'])['name']
        return jsonify({"success": True, "users": users})
    except Exception as e:
        logger.error(f"Admin users failed: {e}")
        return jsonify({"success": False, "error": "Failed to load users"}), 500


@admin_bp.route('/api/admin/users/<user_id>', methods=['GET'])
@require_admin_secret
def admin_user_detail(user_id):
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
        user = cur.fetchone()
        if not user:
            conn.close()
            return jsonify({"success": False, "error": "User not found"}), 404
        cur.execute("SELECT COUNT(*) AS cnt, COALESCE(SUM(reward), 0) AS total FROM spins WHERE user_id = %s", (user_id,))
        spins = cur.fetchone()
        cur.execute("SELECT * FROM withdrawals WHERE user_id = %s ORDER BY requested_at DESC LIMIT 20", (user_id,))
        withdrawals = rows(cur)
        cur.execute("SELECT * FROM reports WHERE user_id = %s ORDER BY created_at DESC LIMIT 20", (user_id,))
        reports = rows(cur)
        cur.execute("SELECT * FROM diamond_purchases WHERE user_id = %s ORDER BY created_at DESC LIMIT 20", (user_id,))
        purchases = rows(cur)
        conn.close()
        return jsonify({"success": True, "user": serialize(dict(user)), "tier": tier_descriptor(user['coins']),
                        "spins": {"count": spins['cnt'], "coins": serialize(spins['total'])},
                        "withdrawals": withdrawals, "reports": reports, "diamond_purchases": purchases})
    except Exception as e:
        logger.error(f"Admin user detail failed: {e}")
        return jsonify({"success": False, "error": "Failed to load user"}), 500


@admin_bp.route('/api/admin/users/<user_id>/ban', methods=['POST'])
@require_admin_secret
def admin_ban(user_id):
    try:
        data = request.get_json(silent=True) or {}
        ban = data.get('ban', True)
        if not isinstance(ban, bool):
            return jsonify({"success": False, "error": "ban must be boolean"}), 400
        ok, error = _admin_rpc('admin_ban_user', target_user_id=user_id, should_ban=ban)
        if not ok:
            return jsonify({"success": False, "error": error or "User not found"}), 400
        refresh_user(user_id)
        logger.info(f"User {user_id} {'banned' if ban else 'unbanned'}")
        return jsonify({"success": True, "banned": ban})
    except Exception as e:
        logger.error(f"Ban failed: {e}")
        return jsonify({"success": False, "error": "Ban failed"}), 500


@admin_bp.route('/api/admin/users/<user_id>/spin-limit', methods=['POST'])
@require_admin_secret
def admin_spin_limit(user_id):
    try:
        data = request.get_json(silent=True) or {}
        limit = parse_positive_int(data.get('limit'))
        max_limit = int(get_setting('max_spin_limit'))
        if limit is None or limit > max_limit:
            return jsonify({"success": False, "error": f"limit must be 1-{max_limit}"}), 400
        ok, error = _admin_rpc('admin_update_spin_limit', target_user_id=user_id, new_limit=limit)
        if not ok:
            return jsonify({"success": False, "error": error or "User not found"}), 400
        refresh_user(user_id)
        return jsonify({"success": True, "daily_spin_limit": limit})
    except Exception as e:
        logger.error(f"Spin limit update failed: {e}")
        return jsonify({"success": False, "error": "Spin limit update failed"}), 500


# ===============================
# WITHDRAWALS
# ===============================

@admin_bp.route('/api/admin/withdrawals', methods=['GET'])
@require_admin_secret
def admin_withdrawals():
    try:
        status = request.args.get('status')
        query = """
            SELECT w.*, u.name, u.email FROM withdrawals w JOIN users u ON u.id = w.user_id
        """
        params = []
        if status:
            if status not in WITHDRAWAL_STATUSES:
                return jsonify({"success": False, "error": "Invalid status"}), 400
            query += " WHERE w.status = %s"
            params.append(status)
        query += " ORDER BY w.requested_at DESC LIMIT 200"
        conn = get_db()
        cur = conn.cursor()
        cur.execute(query, params)
        withdrawals = rows(cur)
        conn.close()
        return jsonify({"success": True, "withdrawals": withdrawals})
    except Exception as e:
        logger.error(f"Admin withdrawals failed: {e}")
        return jsonify({"success": False, "error": "Failed to load withdrawals"}), 500


@admin_bp.route('/api/admin/withdrawals/<withdrawal_id>/approve', methods=['POST'])
@require_admin_secret
def admin_approve_withdrawal(withdrawal_id):
    try:
        data = request.get_json(silent=True) or {}
        return _result_response(approve_withdrawal(withdrawal_id, sanitize_user_input(data.get('admin_notes'), 500)))
    except Exception as e:
        logger.error(f"Withdrawal approval failed: {e}")
        return jsonify({"success": False, "error": "Approval failed"}), 500


@admin_bp.route('/api/admin/withdrawals/<withdrawal_id>/reject', methods=['POST'])
@require_admin_secret
def admin_reject_withdrawal(withdrawal_id):
    try:
        data = request.get_json(silent=True) or {}
        return _result_response(reject_withdrawal(withdrawal_id, sanitize_user_input(data.get('admin_notes'), 500)))
    except Exception as e:
        logger.error(f"Withdrawal rejection failed: {e}")
        return jsonify({"success": False, "error": "Rejection failed"}), 500


# ===============================
# REPORTS / SPIN REQUESTS / DIAMONDS
# ===============================

@admin_bp.route('/api/admin/reports', methods=['GET'])
@require_admin_secret
def admin_reports():
    try:
        status = request.args.get('status')
        query = "SELECT r.*, u.name, u.email FROM reports r JOIN users u ON u.id = r.user_id"
        params = []
        if status:
            if status not in REPORT_STATUSES:
                return jsonify({"success": False, "error": "Invalid status"}), 400
            query += " WHERE r.status = %s"
            params.append(status)
        query += " ORDER BY r.created_at DESC LIMIT 200"
        conn = get_db()
        cur = conn.cursor()
        cur.execute(query, params)
        reports = rows(cur)
        conn.close()
        return jsonify({"success": True, "reports": reports})
    except Exception as e:
        logger.error(f"Admin reports failed: {e}")
        return jsonify({"success": False, "error": "Failed to load reports"}), 500


@admin_bp.route('/api/admin/reports/<report_id>/status', methods=['POST'])
@require_admin_secret
def admin_report_status(report_id):
    try:
        data = request.get_json(silent=True) or {}
        status = data.get('status')
        if status not in REPORT_STATUSES:
            return jsonify({"success": False, "error": "Invalid status"}), 400
        response = sanitize_user_input(data.get('response'), 2000) or None
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            UPDATE reports SET status = %s, admin_response = COALESCE(%s, admin_response), updated_at = NOW()
            WHERE id = %s RETURNING user_id, ticket_id
        """, (status, response, report_id))
        report = cur.fetchone()
        if report:
            cur.execute("INSERT INTO notifications (user_id, title, message, type) VALUES (%s, %s, %s, %s)",
                        (report['user_id'], '📝 Report Updated',
                         f"Your report {report['ticket_id']} is now {status.replace('_', ' ')}.", 'info'))
        conn.commit()
        conn.close()
        if not report:
            return jsonify({"success": False, "error": "Report not found"}), 404
        return jsonify({"success": True, "status": status})
    except Exception as e:
        logger.error(f"Report status update failed: {e}")
        return jsonify({"success": False, "error": "Update failed"}), 500


@admin_bp.route('/api/admin/spin-requests', methods=['GET'])
@require_admin_secret
def admin_spin_requests():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT m.*, u.name FROM spin_management m JOIN users u ON u.id = m.user_id
            ORDER BY m.spin_time DESC LIMIT 200
        """)
        spin_requests = rows(cur)
        conn.close()
        return jsonify({"success": True, "spin_requests": spin_requests})
    except Exception as e:
        logger.error(f"Spin requests failed: {e}")
        return jsonify({"success": False, "error": "Failed to load spin requests"}), 500


@admin_bp.route('/api/admin/spin-requests/<request_id>/status', methods=['POST'])
@require_admin_secret
def admin_spin_request_status(request_id):
    try:
        data = request.get_json(silent=True) or {}
        status = data.get('status')
        if status not in SPIN_REQUEST_STATUSES:
            return jsonify({"success": False, "error": "Invalid status"}), 400
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            UPDATE spin_management SET status = %s, admin_notes = %s, processed_at = NOW()
            WHERE id = %s RETURNING id
        """, (status, sanitize_user_input(data.get('admin_notes'), 500) or None, request_id))
        updated = cur.fetchone()
        conn.commit()
        conn.close()
        if not updated:
            return jsonify({"success": False, "error": "Spin request not found"}), 404
        return jsonify({"success": True, "status": status})
    except Exception as e:
        logger.error(f"Spin request update failed: {e}")
        return jsonify({"success": False, "error": "Update failed"}), 500


@admin_bp.route('/api/admin/diamond-purchases', methods=['GET'])
@require_admin_secret
def admin_diamond_purchases():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT p.*, u.name, u.email FROM diamond_purchases p JOIN users u ON u.id = p.user_id
            ORDER BY p.created_at DESC LIMIT 200
        """)
        purchases = rows(cur)
        conn.close()
        return jsonify({"success": True, "purchases": purchases})
    except Exception as e:
        logger.error(f"Diamond purchases failed: {e}")
        return jsonify({"success": False, "error": "Failed to load purchases"}), 500


# ===============================
# BROADCAST / SETTINGS
# ===============================

@admin_bp.route('/api/admin/broadcast', methods=['POST'])
@require_admin_secret
def admin_broadcast():
    try:
        data = request.get_json(silent=True) or {}
        title = sanitize_user_input(data.get('title'), 200)
        message = sanitize_user_input(data.get('message'), 2000)
        message_type = data.get('type', 'info')
        if not title or not message:
            return jsonify({"success": False, "error": "Title and message required"}), 400
        if message_type not in MESSAGE_TYPES:
            return jsonify({"success": False, "error": "Invalid message type"}), 400
        ok, error = _admin_rpc('send_message_to_all_users', message_title=title,
                               message_content=message, message_type=message_type)
        if not ok:
            return jsonify({"success": False, "error": error or "Broadcast failed"}), 400
        logger.info(f"Broadcast sent: {title}")
        return jsonify({"success": True})
    except Exception as e:
        logger.error(f"Broadcast failed: {e}")
        return jsonify({"success": False, "error": "Broadcast failed"}), 500


def validate_setting(key, value):
    """Return an error message, or None when value fits the setting"""
    default = DEFAULT_SETTINGS[key]
    if isinstance(default, bool):
        return None if isinstance(value, bool) else f"{key} must be true or false"
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return f"{key} must be a non-negative number"
    if key == 'withdrawal_fee_percentage' and value > 100:
        return f"{key} must be at most 100"
    return None


@admin_bp.route('/api/admin/settings', methods=['GET'])
@require_admin_secret
def admin_get_settings():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT setting_key, setting_value FROM system_settings")
        stored = {r['setting_key']: r['setting_value'] for r in cur.fetchall()}
        conn.close()
        return jsonify({"success": True, "settings": {**DEFAULT_SETTINGS, **stored}})
    except Exception as e:
        logger.error(f"Settings read failed: {e}")
        return jsonify({"success": False, "error": "Failed to load settings"}), 500


@admin_bp.route('/api/admin/settings', methods=['POST'])
@require_admin_secret
def admin_update_settings():
    try:
        data = request.get_json(silent=True) or {}
        updates = {k: v for k, v in data.items() if k in DEFAULT_SETTINGS}
        for key, value in updates.items():
            error = validate_setting(key, value)
            if error:
                return jsonify({"success": False, "error": error}), 400
        conn = get_db()
        cur = conn.cursor()
        for key, value in updates.items():
            cur.execute("""
                INSERT INTO system_settings (setting_key, setting_value, updated_at) VALUES (%s, %s, NOW())
                ON CONFLICT (setting_key) DO UPDATE SET setting_value = EXCLUDED.setting_value, updated_at = NOW()
            """, (key, json.dumps(value)))
        conn.commit()
        conn.close()
        return jsonify({"success": True, "updated": sorted(updates)})
    except Exception as e:
        logger.error(f"Settings update failed: {e}")
        return jsonify({"success": False, "error": "Failed to update settings"}), 500

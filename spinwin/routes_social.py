#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Social routes: chat, friends, support reports
"""

import logging
import secrets
import string
from flask import Blueprint, request, jsonify
from .auth import require_user_auth, check_rate_limit
from .database import get_db
from .rpc import act_as, call_rpc, RpcError
from .security import sanitize_user_input
from .utils import rows, serialize

logger = logging.getLogger(__name__)
social_bp = Blueprint('social', __name__)

MAX_MESSAGE_LENGTH = 1000
REPORT_PRIORITIES = ('low', 'medium', 'high', 'urgent')
MAX_REPORT_IMAGES = 5


def _run_user_rpc(name, **params):
    """Call a user-scoped procedure as the current user. Returns (ok, error)."""
    conn = get_db()
    try:
        cur = conn.cursor()
        act_as(cur, request.user_id)
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


# ===============================
# CHAT
# ===============================

@social_bp.route('/api/chat/conversations', methods=['GET'])
@require_user_auth
def api_conversations():
    try:
        me = request.user_id
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT c.id, c.last_message_at,
                   CASE WHEN c.user1_id = %s THEN c.user2_id ELSE c.user1_id END AS other_user_id
            FROM conversations c
            WHERE c.user1_id = %s OR c.user2_id = %s
            ORDER BY c.last_message_at DESC NULLS LAST
        """, (me, me, me))
        conversations = rows(cur)
        for convo in conversations:
            other = convo['other_user_id']
            cur.execute("SELECT id, name, profile_picture_url FROM users WHERE id = %s", (other,))
            user = cur.fetchone()
            convo['other_user'] = serialize(dict(user)) if user else None
            cur.execute("SELECT COUNT(*) AS cnt FROM messages WHERE sender_id = %s AND receiver_id = %s AND read = FALSE",
                        (other, me))
            convo['unread_count'] = cur.fetchone()['cnt']
            cur.execute("""
                SELECT content, sender_id FROM messages
                WHERE (sender_id = %s AND receiver_id = %s) OR (sender_id = %s AND receiver_id = %s)
                ORDER BY created_at DESC LIMIT 1
            """, (me, other, other, me))
            last = cur.fetchone()
            convo['last_message'] = serialize(dict(last)) if last else None
        conn.close()
        return jsonify({"success": True, "conversations": conversations})
    except Exception as e:
        logger.error(f"Conversations failed: {e}")
        return jsonify({"success": False, "error": "Failed to load conversations"}), 500


@social_bp.route('/api/chat/messages/<other_id>', methods=['GET'])
@require_user_auth
def api_messages(other_id):
    try:
        me = request.user_id
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT id, sender_id, receiver_id, content, read, created_at FROM messages
            WHERE (sender_id = %s AND receiver_id = %s) OR (sender_id = %s AND receiver_id = %s)
            ORDER BY created_at ASC LIMIT 200
        """, (me, other_id, other_id, me))
        messages = rows(cur)
        conn.close()
        return jsonify({"success": True, "messages": messages})
    except Exception as e:
        logger.error(f"Messages failed: {e}")
        return jsonify({"success": False, "error": "Failed to load messages"}), 500


@social_bp.route('/api/chat/send', methods=['POST'])
@require_user_auth
def api_send_message():
    try:
        data = request.get_json(silent=True) or {}
        receiver_id = data.get('receiver_id')
        content = sanitize_user_input(data.get('content'), MAX_MESSAGE_LENGTH)
        if not receiver_id or not content:
            return jsonify({"success": False, "error": "receiver_id and content required"}), 400
        if str(receiver_id) == request.user_id:
            return jsonify({"success": False, "error": "Cannot message yourself"}), 400
        if not check_rate_limit(f'chat:{request.user_id}', 30, 60):
            return jsonify({"success": False, "error": "Too many messages"}), 429
        ok, error = _run_user_rpc('send_message', receiver_id=receiver_id, content=content)
        if not ok:
            return jsonify({"success": False, "error": error or "Message not sent"}), 400
        return jsonify({"success": True})
    except Exception as e:
        logger.error(f"Send message failed: {e}")
        return jsonify({"success": False, "error": "Message not sent"}), 500


@social_bp.route('/api/chat/read', methods=['POST'])
@require_user_auth
def api_mark_read():
    try:
        data = request.get_json(silent=True) or {}
        sender_id = data.get('sender_id')
        if not sender_id:
            return jsonify({"success": False, "error": "sender_id required"}), 400
        ok, error = _run_user_rpc('mark_messages_read', sender_id=sender_id)
        if error:
            return jsonify({"success": False, "error": error}), 400
        return jsonify({"success": True, "updated": ok})
    except Exception as e:
        logger.error(f"Mark read failed: {e}")
        return jsonify({"success": False, "error": "Failed to mark messages"}), 500


@social_bp.route('/api/chat/unread', methods=['GET'])
@require_user_auth
def api_unread_count():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) AS cnt FROM messages WHERE receiver_id = %s AND read = FALSE", (request.user_id,))
        count = cur.fetchone()['cnt']
        conn.close()
        return jsonify({"success": True, "unread": count})
    except Exception as e:
        logger.error(f"Unread count failed: {e}")
        return jsonify({"success": False, "error": "Failed to load unread count"}), 500


# ===============================
# FRIENDS
# ===============================

@social_bp.route('/api/friends', methods=['GET'])
@require_user_auth
def api_friends():
    try:
        me = request.user_id
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT u.id, u.name, u.profile_picture_url, u.coins, f.created_at AS friends_since
            FROM friendships f
            JOIN users u ON u.id = CASE WHEN f.user1_id = %s THEN f.user2_id ELSE f.user1_id END
            WHERE f.user1_id = %s OR f.user2_id = %s
            ORDER BY u.name
        """, (me, me, me))
        friends = rows(cur)
        conn.close()
        return jsonify({"success": True, "friends": friends})
    except Exception as e:
        logger.error(f"Friends failed: {e}")
        return jsonify({"success": False, "error": "Failed to load friends"}), 500


@social_bp.route('/api/friends/requests', methods=['GET'])
@require_user_auth
def api_friend_requests():
    try:
        me = request.user_id
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT r.id, r.requester_id, u.name, u.profile_picture_url, r.created_at
            FROM friend_requests r JOIN users u ON u.id = r.requester_id
            WHERE r.requested_id = %s AND r.status = 'pending' ORDER BY r.created_at DESC
        """, (me,))
        incoming = rows(cur)
        cur.execute("""
            SELECT r.id, r.requested_id, u.name, u.profile_picture_url, r.created_at
            FROM friend_requests r JOIN users u ON u.id = r.requested_id
            WHERE r.requester_id = %s AND r.status = 'pending' ORDER BY r.created_at DESC
        """, (me,))
        outgoing = rows(cur)
        conn.close()
        return jsonify({"success": True, "incoming": incoming, "outgoing": outgoing})
    except Exception as e:
        logger.error(f"Friend requests failed: {e}")
        return jsonify({"success": False, "error": "Failed to load requests"}), 500


@social_bp.route('/api/users/search', methods=['GET'])
@require_user_auth
def api_user_search():
    try:
        q = (request.args.get('q') or '').strip()
        if len(q) < 2:
            return jsonify({"success": False, "error": "Query too short"}), 400
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT id, name, profile_picture_url FROM users
            WHERE name ILIKE %s AND id <> %s AND COALESCE(banned, FALSE) = FALSE
            ORDER BY name LIMIT 20
        """, (f"%{q}%", request.user_id))
        users = rows(cur)
        conn.close()
        return jsonify({"success": True, "users": users})
    except Exception as e:
        logger.error(f"User search failed: {e}")
        return jsonify({"success": False, "error": "Search failed"}), 500


@social_bp.route('/api/friends/request', methods=['POST'])
@require_user_auth
def api_send_friend_request():
    try:
        data = request.get_json(silent=True) or {}
        target = data.get('target_user_id')
        if not target or str(target) == request.user_id:
            return jsonify({"success": False, "error": "Valid target_user_id required"}), 400
        ok, error = _run_user_rpc('send_friend_request', target_user_id=target)
        if not ok:
            return jsonify({"success": False, "error": error or "Request already sent or users are friends"}), 400
        return jsonify({"success": True})
    except Exception as e:
        logger.error(f"Friend request failed: {e}")
        return jsonify({"success": False, "error": "Friend request failed"}), 500


@social_bp.route('/api/friends/requests/<request_id>/<action>', methods=['POST'])
@require_user_auth
def api_answer_friend_request(request_id, action):
    try:
        procedures = {'accept': 'accept_friend_request', 'reject': 'reject_friend_request'}
        if action not in procedures:
            return jsonify({"success": False, "error": "Unknown action"}), 404
        ok, error = _run_user_rpc(procedures[action], request_id=request_id)
        if not ok:
            return jsonify({"success": False, "error": error or "Request not found"}), 400
        return jsonify({"success": True, "action": action})
    except Exception as e:
        logger.error(f"Friend request {action} failed: {e}")
        return jsonify({"success": False, "error": "Failed to update request"}), 500


@social_bp.route('/api/friends/<friend_id>', methods=['DELETE'])
@require_user_auth
def api_remove_friend(friend_id):
    try:
        ok, error = _run_user_rpc('remove_friend', friend_user_id=friend_id)
        if not ok:
            return jsonify({"success": False, "error": error or "Not friends"}), 400
        return jsonify({"success": True})
    except Exception as e:
        logger.error(f"Remove friend failed: {e}")
        return jsonify({"success": False, "error": "Failed to remove friend"}), 500


# ===============================
# REPORTS
# ===============================

def generate_ticket_id():
    alphabet = string.ascii_uppercase + string.digits
    return 'RPT-' + ''.join(secrets.choice(alphabet) for _ in range(8))


@social_bp.route('/api/reports', methods=['POST'])
@require_user_auth
def api_create_report():
    try:
        data = request.get_json(silent=True) or {}
        title = sanitize_user_input(data.get('title'), 200)
        description = sanitize_user_input(data.get('description'), 5000)
        priority = data.get('priority', 'medium')
        image_urls = data.get('image_urls') or []
        if not title or not description:
            return jsonify({"success": False, "error": "Title and description required"}), 400
        if priority not in REPORT_PRIORITIES:
            return jsonify({"success": False, "error": "Invalid priority"}), 400
        if not isinstance(image_urls, list) or len(image_urls) > MAX_REPORT_IMAGES:
            return jsonify({"success": False, "error": f"Up to {MAX_REPORT_IMAGES} images allowed"}), 400
        if any(not isinstance(u, str) or not u.startswith('https://') for u in image_urls):
            return jsonify({"success": False, "error": "Invalid image URL"}), 400
        if not check_rate_limit(f'report:{request.user_id}', 5, 3600):
            return jsonify({"success": False, "error": "Too many reports"}), 429
        ticket_id = generate_ticket_id()
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO reports (user_id, ticket_id, title, description, priority, image_urls, status)
            VALUES (%s, %s, %s, %s, %s, %s, 'pending')
            RETURNING id, ticket_id, status, created_at
        """, (request.user_id, ticket_id, title, description, priority, image_urls))
        report = serialize(dict(cur.fetchone()))
        conn.commit()
        conn.close()
        return jsonify({"success": True, "report": report})
    except Exception as e:
        logger.error(f"Report failed: {e}")
        return jsonify({"success": False, "error": "Failed to submit report"}), 500


@social_bp.route('/api/reports', methods=['GET'])
@require_user_auth
def api_my_reports():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM reports WHERE user_id = %s ORDER BY created_at DESC", (request.user_id,))
        reports = rows(cur)
        conn.close()
        return jsonify({"success": True, "reports": reports})
    except Exception as e:
        logger.error(f"Reports failed: {e}")
        return jsonify({"success": False, "error": "Failed to load reports"}), 500


@social_bp.route('/api/reports/<ticket_id>', methods=['GET'])
@require_user_auth
def api_report_by_ticket(ticket_id):
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM reports WHERE ticket_id = %s AND user_id = %s",
                    (ticket_id.strip().upper(), request.user_id))
        report = cur.fetchone()
        conn.close()
        if not report:
            return jsonify({"success": False, "error": "Report not found"}), 404
        return jsonify({"success": True, "report": serialize(dict(report))})
    except Exception as e:
        logger.error(f"Report lookup failed: {e}")
        return jsonify({"success": False, "error": "Failed to load report"}), 500

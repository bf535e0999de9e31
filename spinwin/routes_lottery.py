#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Lottery routes
"""

import logging
from flask import Blueprint, request, jsonify
from .auth import require_user_auth, require_admin_secret
from .database import get_db
from .realtime import refresh_user
from .rpc import act_as, call_rpc, RpcError
from .utils import rows

logger = logging.getLogger(__name__)
lottery_bp = Blueprint('lottery', __name__)

MAX_CHOSEN_NUMBERS = 6
NUMBER_RANGE = (1, 49)


def validate_chosen_numbers(numbers):
    """Return an error message, or None for a valid pick (None or [] is a quick pick)"""
    if numbers is None:
        return None
    if not isinstance(numbers, list):
        return "chosen_numbers must be a list"
    if len(numbers) > MAX_CHOSEN_NUMBERS:
        return f"Choose at most {MAX_CHOSEN_NUMBERS} numbers"
    low, high = NUMBER_RANGE
    for n in numbers:
        if isinstance(n, bool) or not isinstance(n, int) or not low <= n <= high:
            return f"Numbers must be between {low} and {high}"
    if len(set(numbers)) != len(numbers):
        return "Numbers must be distinct"
    return None


@lottery_bp.route('/api/lottery/games', methods=['GET'])
def api_lottery_games():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM lottery_games WHERE status IN ('active', 'drawing') ORDER BY draw_time")
        games = rows(cur)
        prizes = {}
        if games:
            cur.execute("SELECT * FROM lottery_prizes WHERE lottery_game_id = ANY(%s) ORDER BY prize_tier",
                        ([g['id'] for g in games],))
            for prize in rows(cur):
                prizes.setdefault(str(prize['lottery_game_id']), []).append(prize)
        conn.close()
        for game in games:
            game['prizes'] = prizes.get(str(game['id']), [])
        return jsonify({"success": True, "games": games})
    except Exception as e:
        logger.error(f"Lottery games failed: {e}")
        return jsonify({"success": False, "error": "Failed to load lotteries"}), 500


@lottery_bp.route('/api/lottery/tickets', methods=['POST'])
@require_user_auth
def api_buy_ticket():
    try:
        data = request.get_json(silent=True) or {}
        game_id = data.get('lottery_game_id')
        if not game_id:
            return jsonify({"success": False, "error": "lottery_game_id required"}), 400
        numbers = data.get('chosen_numbers')
        error = validate_chosen_numbers(numbers)
        if error:
            return jsonify({"success": False, "error": error}), 400
        conn = get_db()
        try:
            cur = conn.cursor()
            act_as(cur, request.user_id)
            result = call_rpc(cur, 'buy_lottery_ticket', lottery_game_uuid=game_id,
                              chosen_numbers=sorted(numbers) if numbers else None) or {}
            if not result.get('success'):
                conn.rollback()
                return jsonify({"success": False, "error": result.get('error') or "Unable to purchase ticket"}), 400
            conn.commit()
        except RpcError as e:
            conn.rollback()
            return jsonify({"success": False, "error": e.message}), 400
        finally:
            conn.close()
        refresh_user(request.user_id)
        return jsonify({"success": True, "message": result.get('message'), "ticket_number": result.get('ticket_number')})
    except Exception as e:
        logger.error(f"Ticket purchase failed: {e}")
        return jsonify({"success": False, "error": "Ticket purchase failed"}), 500


@lottery_bp.route('/api/lottery/tickets', methods=['GET'])
@require_user_auth
def api_my_tickets():
    try:
        query = "SELECT * FROM lottery_tickets WHERE user_id = %s"
        params = [request.user_id]
        game_id = request.args.get('game_id')
        if game_id:
            query += " AND lottery_game_id = %s"
            params.append(game_id)
        query += " ORDER BY purchased_at DESC"
        conn = get_db()
        cur = conn.cursor()
        cur.execute(query, params)
        tickets = rows(cur)
        conn.close()
        return jsonify({"success": True, "tickets": tickets})
    except Exception as e:
        logger.error(f"Tickets failed: {e}")
        return jsonify({"success": False, "error": "Failed to load tickets"}), 500


@lottery_bp.route('/api/lottery/winnings', methods=['GET'])
@require_user_auth
def api_my_winnings():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT w.*, t.ticket_number, g.name AS game_name
            FROM lottery_winners w
            LEFT JOIN lottery_tickets t ON t.id = w.ticket_id
            LEFT JOIN lottery_games g ON g.id = w.lottery_game_id
            WHERE w.user_id = %s ORDER BY w.created_at DESC
        """, (request.user_id,))
        winnings = rows(cur)
        conn.close()
        return jsonify({"success": True, "winnings": winnings,
                        "total_won": sum(w.get('prize_amount') or 0 for w in winnings)})
    except Exception as e:
        logger.error(f"Winnings failed: {e}")
        return jsonify({"success": False, "error": "Failed to load winnings"}), 500


@lottery_bp.route('/api/admin/lottery/<game_id>/draw', methods=['POST'])
@require_admin_secret
def api_admin_lottery_draw(game_id):
    try:
        conn = get_db()
        try:
            cur = conn.cursor()
            result = call_rpc(cur, 'conduct_lottery_draw', lottery_game_uuid=game_id) or {}
            if not result.get('success'):
                conn.rollback()
                return jsonify({"success": False, "error": result.get('error') or "Unable to conduct draw"}), 400
            conn.commit()
        except RpcError as e:
            conn.rollback()
            return jsonify({"success": False, "error": e.message}), 400
        finally:
            conn.close()
        logger.info(f"Lottery {game_id} drawn: {result.get('winners_count')} winners")
        return jsonify({"success": True, "message": result.get('message'), "winners_count": result.get('winners_count', 0)})
    except Exception as e:
        logger.error(f"Lottery draw failed: {e}")
        return jsonify({"success": False, "error": "Draw failed"}), 500

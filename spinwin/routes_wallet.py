#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Wallet routes: withdrawals, diamonds, eSewa returns
"""

import logging
from flask import Blueprint, request, jsonify
from .auth import require_user_auth, check_rate_limit
from .database import get_db, get_setting
from .payments import create_purchase, complete_purchase, fail_purchase
from .realtime import refresh_user
from .rewards import diamonds_to_coins, coins_to_rupees
from .rpc import act_as, call_rpc, RpcError
from .security import is_valid_esewa_number
from .utils import log_balance_operation, parse_positive_int, rows
from .wallet import request_withdrawal

logger = logging.getLogger(__name__)
wallet_bp = Blueprint('wallet', __name__)


def _result_response(result):
    if not result.get('success'):
        status = result.pop('status', 400)
        return jsonify(result), status
    result.pop('status', None)
    return jsonify(result)


# ===============================
# WITHDRAWALS
# ===============================

@wallet_bp.route('/api/wallet/withdraw', methods=['POST'])
@require_user_auth
def api_withdraw():
    try:
        data = request.get_json(silent=True) or {}
        amount = parse_positive_int(data.get('amount'))
        if amount is None:
            return jsonify({"success": False, "error": "Amount must be a positive whole number"}), 400
        esewa_number = str(data.get('esewa_number') or '').strip()
        if not is_valid_esewa_number(esewa_number):
            return jsonify({"success": False, "error": "Enter a valid 10-digit eSewa number"}), 400
        if not check_rate_limit(f'withdraw:{request.user_id}', 3, 3600):
            return jsonify({"success": False, "error": "Too many withdrawal requests"}), 429
        return _result_response(request_withdrawal(request.user_id, amount, esewa_number))
    except Exception as e:
        logger.error(f"Withdrawal failed: {e}")
        return jsonify({"success": False, "error": "Withdrawal failed"}), 500


@wallet_bp.route('/api/wallet/withdrawals', methods=['GET'])
@require_user_auth
def api_withdrawals():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT id, coin_amount, esewa_number, status, requested_at, admin_notes
            FROM withdrawals WHERE user_id = %s ORDER BY requested_at DESC
        """, (request.user_id,))
        withdrawals = rows(cur)
        conn.close()
        fee_percentage = float(get_setting('withdrawal_fee_percentage') or 0)
        for w in withdrawals:
            w['rupee_amount'] = coins_to_rupees(w['coin_amount'], fee_percentage)
        return jsonify({"success": True, "withdrawals": withdrawals})
    except Exception as e:
        logger.error(f"Withdrawal history failed: {e}")
        return jsonify({"success": False, "error": "Failed to load withdrawals"}), 500


# ===============================
# DIAMONDS
# ===============================

@wallet_bp.route('/api/diamonds/packages', methods=['GET'])
def api_diamond_packages():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM diamond_packages WHERE is_active = TRUE ORDER BY price_rs")
        packages = rows(cur)
        conn.close()
        return jsonify({"success": True, "packages": packages})
    except Exception as e:
        logger.error(f"Diamond packages failed: {e}")
        return jsonify({"success": False, "error": "Failed to load packages"}), 500


@wallet_bp.route('/api/diamonds/purchases', methods=['GET'])
@require_user_auth
def api_diamond_purchases():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT p.id, p.diamonds_purchased, p.price_paid_rs, p.payment_method, p.payment_status,
                   p.esewa_payment_id, p.created_at, p.completed_at, d.name AS package_name
            FROM diamond_purchases p LEFT JOIN diamond_packages d ON d.id = p.package_id
            WHERE p.user_id = %s ORDER BY p.created_at DESC
        """, (request.user_id,))
        purchases = rows(cur)
        conn.close()
        return jsonify({"success": True, "purchases": purchases})
    except Exception as e:
        logger.error(f"Diamond purchases failed: {e}")
        return jsonify({"success": False, "error": "Failed to load purchases"}), 500


@wallet_bp.route('/api/diamonds/purchase', methods=['POST'])
@require_user_auth
def api_diamond_purchase():
    try:
        data = request.get_json(silent=True) or {}
        package_id = data.get('package_id')
        if not package_id:
            return jsonify({"success": False, "error": "package_id required"}), 400
        return _result_response(create_purchase(request.user_id, package_id))
    except Exception as e:
        logger.error(f"Diamond purchase failed: {e}")
        return jsonify({"success": False, "error": "Failed to start purchase"}), 500


@wallet_bp.route('/api/diamonds/payment/success', methods=['GET'])
def api_payment_success():
    try:
        return _result_response(complete_purchase(
            request.args.get('pid', ''), request.args.get('oid'), request.args.get('refId')))
    except Exception as e:
        logger.error(f"Payment success handling failed: {e}")
        return jsonify({"success": False, "error": "Failed to process payment"}), 500


@wallet_bp.route('/api/diamonds/payment/failure', methods=['GET'])
def api_payment_failure():
    try:
        return _result_response(fail_purchase(request.args.get('pid', '')))
    except Exception as e:
        logger.error(f"Payment failure handling failed: {e}")
        return jsonify({"success": False, "error": "Failed to process payment"}), 500


@wallet_bp.route('/api/diamonds/convert', methods=['POST'])
@require_user_auth
def api_convert_diamonds():
    try:
        data = request.get_json(silent=True) or {}
        diamond_amount = parse_positive_int(data.get('diamond_amount'))
        if diamond_amount is None:
            return jsonify({"success": False, "error": "diamond_amount must be a positive whole number"}), 400
        coins = diamonds_to_coins(diamond_amount)
        conn = get_db()
        try:
            cur = conn.cursor()
            cur.execute("SELECT id, banned FROM users WHERE id = %s FOR UPDATE", (request.user_id,))
            user = cur.fetchone()
            if not user:
                conn.rollback()
                return jsonify({"success": False, "error": "User not found"}), 404
            if user.get('banned'):
                conn.rollback()
                return jsonify({"success": False, "error": "Account is banned"}), 403
            act_as(cur, request.user_id)
            if not call_rpc(cur, 'convert_diamonds_to_coins', diamond_amount=diamond_amount):
                conn.rollback()
                return jsonify({"success": False, "error": "Not enough diamonds"}), 400
            cur.execute("SELECT coins FROM users WHERE id = %s", (request.user_id,))
            balance = cur.fetchone()
            log_balance_operation(request.user_id, coins, 'diamond_conversion',
                                  f'Converted {diamond_amount} diamonds', balance['coins'] if balance else None, conn)
            conn.commit()
        except RpcError as e:
            conn.rollback()
            return jsonify({"success": False, "error": e.message}), 400
        finally:
            conn.close()
        refresh_user(request.user_id)
        return jsonify({"success": True, "diamonds_converted": diamond_amount, "coins_credited": coins})
    except Exception as e:
        logger.error(f"Diamond conversion failed: {e}")
        return jsonify({"success": False, "error": "Conversion failed"}), 500

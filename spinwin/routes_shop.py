#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Shop routes: catalogue, purchase, equip, power-ups
"""

import json
import logging
from flask import Blueprint, request, jsonify
from .auth import require_user_auth
from .database import get_db
from .realtime import refresh_user
from .rewards import POWER_UP_EFFECTS, POWER_UP_DEFAULT_DURATIONS, EXTRA_SPINS_DEFAULT
from .rpc import act_as, call_rpc, RpcError
from .utils import parse_positive_int, rows, serialize

logger = logging.getLogger(__name__)
shop_bp = Blueprint('shop', __name__)

MAX_PURCHASE_QUANTITY = 10
EQUIPPABLE_TYPES = ('theme', 'avatar', 'decoration')


def _item_data(item):
    data = item.get('item_data') or {}
    if isinstance(data, str):
        data = json.loads(data)
    return data


@shop_bp.route('/api/shop/categories', methods=['GET'])
def api_shop_categories():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT * FROM item_categories ORDER BY display_order")
        categories = rows(cur)
        conn.close()
        return jsonify({"success": True, "categories": categories})
    except Exception as e:
        logger.error(f"Shop categories failed: {e}")
        return jsonify({"success": False, "error": "Failed to load categories"}), 500


@shop_bp.route('/api/shop/items', methods=['GET'])
def api_shop_items():
    try:
        category = request.args.get('category')
        query = "SELECT * FROM shop_items WHERE is_active = TRUE"
        params = []
        if category:
            query += " AND category_id = %s"
            params.append(category)
        query += " ORDER BY created_at DESC"
        conn = get_db()
        cur = conn.cursor()
        cur.execute(query, params)
        items = rows(cur)
        conn.close()
        for item in items:
            limited = item.get('is_limited') and item.get('limited_quantity') is not None
            item['remaining'] = max(item['limited_quantity'] - (item.get('sold_count') or 0), 0) if limited else None
        return jsonify({"success": True, "items": items})
    except Exception as e:
        logger.error(f"Shop items failed: {e}")
        return jsonify({"success": False, "error": "Failed to load items"}), 500


@shop_bp.route('/api/shop/inventory', methods=['GET'])
@require_user_auth
def api_shop_inventory():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT i.id, i.item_id, i.quantity, i.is_equipped, i.purchased_at,
                   s.name, s.description, s.item_type, s.item_data, s.image_url
            FROM user_inventory i JOIN shop_items s ON s.id = i.item_id
            WHERE i.user_id = %s ORDER BY i.purchased_at DESC
        """, (request.user_id,))
        inventory = rows(cur)
        conn.close()
        return jsonify({"success": True, "inventory": inventory})
    except Exception as e:
        logger.error(f"Inventory failed: {e}")
        return jsonify({"success": False, "error": "Failed to load inventory"}), 500


@shop_bp.route('/api/shop/purchases', methods=['GET'])
@require_user_auth
def api_shop_purchases():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT p.id, p.item_id, p.quantity, p.total_price, p.purchased_at, s.name, s.item_type
            FROM purchase_history p JOIN shop_items s ON p.item_id = s.id
            WHERE p.user_id = %s ORDER BY p.purchased_at DESC LIMIT 50
        """, (request.user_id,))
        purchases = rows(cur)
        conn.close()
        return jsonify({"success": True, "purchases": purchases})
    except Exception as e:
        logger.error(f"Purchase history failed: {e}")
        return jsonify({"success": False, "error": "Failed to load purchases"}), 500


@shop_bp.route('/api/shop/purchase', methods=['POST'])
@require_user_auth
def api_shop_purchase():
    try:
        data = request.get_json(silent=True) or {}
        item_id = data.get('item_id')
        quantity = parse_positive_int(data.get('quantity', 1))
        if not item_id:
            return jsonify({"success": False, "error": "item_id required"}), 400
        if quantity is None or quantity > MAX_PURCHASE_QUANTITY:
            return jsonify({"success": False, "error": f"Quantity must be 1-{MAX_PURCHASE_QUANTITY}"}), 400
        conn = get_db()
        try:
            cur = conn.cursor()
            act_as(cur, request.user_id)
            if not call_rpc(cur, 'purchase_item', item_uuid=item_id, purchase_quantity=quantity):
                conn.rollback()
                return jsonify({"success": False, "error": "Not enough coins or item unavailable"}), 400
            conn.commit()
        except RpcError as e:
            conn.rollback()
            return jsonify({"success": False, "error": e.message}), 400
        finally:
            conn.close()
        refresh_user(request.user_id)
        return jsonify({"success": True, "item_id": item_id, "quantity": quantity})
    except Exception as e:
        logger.error(f"Shop purchase failed: {e}")
        return jsonify({"success": False, "error": "Purchase failed"}), 500


@shop_bp.route('/api/shop/equip', methods=['POST'])
@require_user_auth
def api_shop_equip():
    try:
        data = request.get_json(silent=True) or {}
        item_id = data.get('item_id')
        equip = data.get('equip', True)
        if not item_id or not isinstance(equip, bool):
            return jsonify({"success": False, "error": "item_id and boolean equip required"}), 400
        conn = get_db()
        try:
            cur = conn.cursor()
            act_as(cur, request.user_id)
            if not call_rpc(cur, 'equip_item', item_uuid=item_id, should_equip=equip):
                conn.rollback()
                return jsonify({"success": False, "error": "Item is not in your inventory"}), 400
            conn.commit()
        except RpcError as e:
            conn.rollback()
            return jsonify({"success": False, "error": e.message}), 400
        finally:
            conn.close()
        return jsonify({"success": True, "item_id": item_id, "equipped": equip})
    except Exception as e:
        logger.error(f"Equip failed: {e}")
        return jsonify({"success": False, "error": "Equip failed"}), 500


@shop_bp.route('/api/shop/equipped', methods=['GET'])
@require_user_auth
def api_shop_equipped():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            SELECT s.id, s.name, s.item_type, s.item_data, s.image_url
            FROM user_inventory i JOIN shop_items s ON s.id = i.item_id
            WHERE i.user_id = %s AND i.is_equipped = TRUE
        """, (request.user_id,))
        equipped = {t: None for t in EQUIPPABLE_TYPES}
        for item in rows(cur):
            if item['item_type'] in equipped:
                equipped[item['item_type']] = item
        cur.execute("""
            SELECT effect, amount, activated_at, expires_at FROM power_up_activations
            WHERE user_id = %s AND expires_at > NOW() ORDER BY expires_at
        """, (request.user_id,))
        active = rows(cur)
        conn.close()
        return jsonify({"success": True, "equipped": equipped, "power_ups": active})
    except Exception as e:
        logger.error(f"Equipped items failed: {e}")
        return jsonify({"success": False, "error": "Failed to load equipped items"}), 500


@shop_bp.route('/api/shop/power-ups/activate', methods=['POST'])
@require_user_auth
def api_activate_power_up():
    try:
        data = request.get_json(silent=True) or {}
        item_id = data.get('item_id')
        if not item_id:
            return jsonify({"success": False, "error": "item_id required"}), 400
        conn = get_db()
        try:
            cur = conn.cursor()
            cur.execute("""
                SELECT i.id AS inventory_id, i.quantity, s.item_type, s.item_data, s.name
                FROM user_inventory i JOIN shop_items s ON s.id = i.item_id
                WHERE i.user_id = %s AND i.item_id = %s
                FOR UPDATE OF i
            """, (request.user_id, item_id))
            owned = cur.fetchone()
            if not owned or owned['item_type'] not in ('power_up', 'powerup') or (owned['quantity'] or 0) < 1:
                conn.rollback()
                return jsonify({"success": False, "error": "You do not own this power-up"}), 400
            item_data = _item_data(owned)
            effect = item_data.get('effect')
            if effect not in POWER_UP_EFFECTS:
                conn.rollback()
                return jsonify({"success": False, "error": "Unknown power-up effect"}), 400
            cur.execute("""
                SELECT id FROM power_up_activations
                WHERE user_id = %s AND effect = %s AND expires_at > NOW()
            """, (request.user_id, effect))
            if cur.fetchone():
                conn.rollback()
                return jsonify({"success": False, "error": "This power-up is already in use"}), 409

            if effect == 'extra_spins':
                amount = int(item_data.get('amount') or EXTRA_SPINS_DEFAULT)
                expires_sql = "date_trunc('day', NOW()) + INTERVAL '1 day'"
                params = (request.user_id, item_id, effect, amount)
            else:
                amount = 0
                duration = int(item_data.get('duration') or POWER_UP_DEFAULT_DURATIONS[effect])
                expires_sql = "NOW() + %s * INTERVAL '1 second'"
                params = (request.user_id, item_id, effect, amount, duration)
            cur.execute(f"""
                INSERT INTO power_up_activations (user_id, item_id, effect, amount, expires_at)
                VALUES (%s, %s, %s, %s, {expires_sql})
                RETURNING effect, amount, activated_at, expires_at
            """, params)
            activation = serialize(dict(cur.fetchone()))
            cur.execute("UPDATE user_inventory SET quantity = quantity - 1 WHERE id = %s", (owned['inventory_id'],))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info(f"Power-up {effect} activated by {request.user_id}")
        return jsonify({"success": True, "activation": activation})
    except Exception as e:
        logger.error(f"Power-up activation failed: {e}")
        return jsonify({"success": False, "error": "Activation failed"}), 500

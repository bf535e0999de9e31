#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Authentication and authorization
"""

import hmac
import logging
import time
from collections import defaultdict
from functools import wraps

import jwt
from flask import request, jsonify
from .config import config

logger = logging.getLogger(__name__)

# ===============================
# RATE LIMITING
# ===============================
# NOTE: in-memory, so every serverless instance keeps its own window.
_rate_limits = defaultdict(list)

CRON_PATH_PREFIX = '/api/cron/'


def check_rate_limit(key, max_requests=60, window_seconds=60):
    """Sliding-window rate limit. Default: 60 req/min"""
    now = time.time()
    _rate_limits[key] = [t for t in _rate_limits[key] if now - t < window_seconds]
    if len(_rate_limits[key]) >= max_requests:
        return False
    _rate_limits[key].append(now)
    return True


# ===============================
# SUPABASE ACCESS TOKENS
# ===============================

def decode_access_token(token):
    """Return the user id (sub) of a valid Supabase access token, else None"""
    if not token or not config.SUPABASE_JWT_SECRET:
        return None
    try:
        claims = jwt.decode(
            token, config.SUPABASE_JWT_SECRET,
            algorithms=['HS256'], audience=config.SUPABASE_JWT_AUDIENCE)
    except jwt.ExpiredSignatureError:
        logger.info("Expired access token")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid access token: {e}")
        return None
    return claims.get('sub') or None


def _bearer_token():
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[7:].strip()
    return ''


# ===============================
# AUTH DECORATORS
# ===============================

def require_user_auth(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"success": False, "error": "Authentication required"}), 401
        user_id = decode_access_token(token)
        if not user_id:
            return jsonify({"success": False, "error": "Invalid authentication"}), 403
        request.user_id = user_id
        return f(*args, **kwargs)
    return decorated


def require_admin_secret(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        # Schedulers cannot set headers, so cron endpoints also take ?secret=
        if request.path.startswith(CRON_PATH_PREFIX):
            secret = request.args.get('secret', '') or request.headers.get('X-Admin-Secret', '')
        else:
            secret = request.headers.get('X-Admin-Secret', '')
        admin_secret = config.ADMIN_SECRET
        if not admin_secret:
            return jsonify({"success": False, "error": "Admin secret not configured"}), 500
        if not hmac.compare_digest(secret.encode(), admin_secret.encode()):
            return jsonify({"success": False, "error": "Unauthorized"}), 403
        return f(*args, **kwargs)
    return decorated


def require_webhook_secret(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = request.headers.get('X-Webhook-Secret', '')
        expected = config.REALTIME_WEBHOOK_SECRET
        if not expected:
            return jsonify({"success": False, "error": "Webhook secret not configured"}), 500
        if not hmac.compare_digest(secret.encode(), expected.encode()):
            return jsonify({"success": False, "error": "Unauthorized"}), 403
        return f(*args, **kwargs)
    return decorated

#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Security: headers, global rate limit, input sanitization
"""

import re
import html as html_module
from flask import request, jsonify
from .auth import check_rate_limit

ESEWA_NUMBER_RE = re.compile(r'^9[78]\d{8}$')


def add_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-XSS-Protection'] = '1; mode=block'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Content-Security-Policy'] = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.emailjs.com https://*.highperformanceformat.com; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:; "
        "connect-src 'self' https://*.supabase.co wss://*.supabase.co https://api.emailjs.com; "
        "form-action 'self' https://uat.esewa.com.np https://esewa.com.np; "
        "frame-ancestors 'none';"
    )
    return response


def global_rate_limit_check():
    """Global rate limit: 60 req/min per IP"""
    ip = request.remote_addr
    if not check_rate_limit(f'global:{ip}', 60, 60):
        return jsonify({"success": False, "error": "Rate limit exceeded"}), 429
    return None


# ===============================
# INPUT SANITIZATION (XSS Prevention)
# ===============================

def sanitize_html(text):
    if not text:
        return text
    return html_module.escape(str(text))


def sanitize_user_input(text, max_length=2000):
    """Sanitize and truncate user input"""
    if not text:
        return ''
    text = str(text).strip()
    text = sanitize_html(text)
    return text[:max_length]


def is_valid_esewa_number(number):
    return bool(number) and bool(ESEWA_NUMBER_RE.match(str(number)))

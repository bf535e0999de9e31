#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Configuration
"""

import os


def _env_list(name, default):
    raw = os.environ.get(name, '')
    if not raw:
        return default
    return [item.strip() for item in raw.split(',') if item.strip()]


class Config:
    DATABASE_URL = os.environ.get('DATABASE_URL', '')
    APP_URL = os.environ.get('APP_URL', 'https://spinwin.app')
    ALLOWED_ORIGINS = _env_list('ALLOWED_ORIGINS', [
        'https://spinwin.app',
        'https://admin.spinwin.app',
        'capacitor://localhost',
        'http://localhost:8080',
    ])

    # Supabase Auth signs user access tokens with this secret (HS256)
    SUPABASE_JWT_SECRET = os.environ.get('SUPABASE_JWT_SECRET', '')
    SUPABASE_JWT_AUDIENCE = 'authenticated'
    # Admin secret comes ONLY from env, no hardcoded default
    ADMIN_SECRET = os.environ.get('ADMIN_SECRET', '')
    REALTIME_WEBHOOK_SECRET = os.environ.get('REALTIME_WEBHOOK_SECRET', '')
    # Rows kept per watched table; least recently used rows go first
    REALTIME_CACHE_ROWS = int(os.environ.get('REALTIME_CACHE_ROWS', '1000'))

    EMAILJS_SERVICE_ID = os.environ.get('EMAILJS_SERVICE_ID', '')
    EMAILJS_PUBLIC_KEY = os.environ.get('EMAILJS_PUBLIC_KEY', '')
    EMAILJS_PRIVATE_KEY = os.environ.get('EMAILJS_PRIVATE_KEY', '')
    EMAILJS_WITHDRAWAL_TEMPLATE_ID = os.environ.get('EMAILJS_WITHDRAWAL_TEMPLATE_ID', '')
    EMAILJS_DAILY_REPORT_TEMPLATE_ID = os.environ.get('EMAILJS_DAILY_REPORT_TEMPLATE_ID', '')
    EMAILJS_API_URL = 'https://api.emailjs.com/api/v1.0/email/send'
    COMPANY_NAME = 'SpinWin'
    SUPPORT_EMAIL = os.environ.get('SUPPORT_EMAIL', 'support@spinwin.app')

    ESEWA_PAYMENT_URL = os.environ.get('ESEWA_PAYMENT_URL', 'https://uat.esewa.com.np/epay/main')
    ESEWA_VERIFY_URL = os.environ.get('ESEWA_VERIFY_URL', 'https://uat.esewa.com.np/epay/transrec')
    ESEWA_MERCHANT_CODE = os.environ.get('ESEWA_MERCHANT_CODE', 'EPAYTEST')
    ESEWA_VERIFY_PAYMENTS = os.environ.get('ESEWA_VERIFY_PAYMENTS', 'true').lower() == 'true'

    AUTO_APPROVE_WITHDRAWALS = os.environ.get('AUTO_APPROVE_WITHDRAWALS', 'true').lower() == 'true'
    COINS_PER_RUPEE = 10
    COINS_PER_DIAMOND = 1000


config = Config()

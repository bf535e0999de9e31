#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Database (PostgreSQL/Supabase)

The platform owns the main schema (users, spins, withdrawals, shop, lottery...).
This service only creates the ledgers it writes itself and seeds settings.
"""

import json
import logging
import psycopg2
from psycopg2.extras import RealDictCursor
from .config import config

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    'maintenance_mode': False,
    'min_withdrawal_coins': 1000,
    'withdrawal_fee_percentage': 0,
    'max_daily_spins_default': 5,
    'referral_bonus_referrer': 100,
    'referral_bonus_referee': 50,
    'enable_notifications': True,
    'max_spin_limit': 1000,
}


def get_db():
    """Get PostgreSQL connection"""
    conn = psycopg2.connect(config.DATABASE_URL, cursor_factory=RealDictCursor)
    conn.autocommit = False
    return conn


def get_setting(key, default=None):
    """Get a value from system_settings, falling back to the built-in default"""
    if default is None:
        default = DEFAULT_SETTINGS.get(key)
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT setting_value FROM system_settings WHERE setting_key = %s", (key,))
        row = cur.fetchone()
        conn.close()
        return row['setting_value'] if row else default
    except Exception as e:
        logger.error(f"Setting read failed ({key}): {e}")
        return default


def get_default_spin_limit():
    """Daily spins for users without a limit of their own"""
    fallback = DEFAULT_SETTINGS['max_daily_spins_default']
    try:
        limit = int(get_setting('max_daily_spins_default'))
    except (TypeError, ValueError):
        return fallback
    return limit if limit > 0 else fallback


def init_database():
    """Create service-owned tables and seed default settings"""
    try:
        conn = get_db()
        cur = conn.cursor()

        cur.execute("""
        CREATE TABLE IF NOT EXISTS spin_requests (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL,
            request_id TEXT NOT NULL,
            segment_index INTEGER NOT NULL,
            base_reward INTEGER NOT NULL,
            reward INTEGER NOT NULL,
            multiplier INTEGER NOT NULL,
            power_ups JSONB DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE (user_id, request_id)
        );

        CREATE TABLE IF NOT EXISTS power_up_activations (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL,
            item_id UUID NOT NULL,
            effect TEXT NOT NULL,
            amount INTEGER DEFAULT 0,
            activated_at TIMESTAMPTZ DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL
        );

        CREATE TABLE IF NOT EXISTS balance_history (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL,
            amount INTEGER NOT NULL,
            currency TEXT DEFAULT 'coins',
            operation TEXT NOT NULL,
            description TEXT,
            balance_after INTEGER,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS system_settings (
            setting_key TEXT PRIMARY KEY,
            setting_value JSONB NOT NULL,
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_balance_history_user ON balance_history(user_id, created_at DESC)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_power_ups_user ON power_up_activations(user_id, expires_at)")

        for key, value in DEFAULT_SETTINGS.items():
            cur.execute(
                "INSERT INTO system_settings (setting_key, setting_value) VALUES (%s, %s) ON CONFLICT (setting_key) DO NOTHING",
                (key, json.dumps(value)))

        conn.commit()
        conn.close()
        logger.info("✅ Database initialized")
    except Exception as e:
        logger.error(f"DB init failed: {e}")

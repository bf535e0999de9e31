#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Transactional email via the EmailJS REST API
"""

import logging
from datetime import datetime, timezone
import requests as http_requests
from .config import config

logger = logging.getLogger(__name__)


def emailjs_configured():
    return bool(config.EMAILJS_SERVICE_ID and config.EMAILJS_PUBLIC_KEY)


def send_template_email(template_id, params):
    if not template_id or not emailjs_configured():
        logger.info("EmailJS not configured, skipping email")
        return False
    payload = {
        "service_id": config.EMAILJS_SERVICE_ID,
        "template_id": template_id,
        "user_id": config.EMAILJS_PUBLIC_KEY,
        "template_params": params,
    }
    if config.EMAILJS_PRIVATE_KEY:
        payload["accessToken"] = config.EMAILJS_PRIVATE_KEY
    try:
        resp = http_requests.post(config.EMAILJS_API_URL, json=payload, timeout=10)
        if resp.status_code != 200:
            logger.error(f"EmailJS error {resp.status_code}: {resp.text[:200]}")
            return False
        return True
    except Exception as e:
        logger.error(f"EmailJS send failed: {e}")
        return False


def send_withdrawal_approved_email(email, name, coin_amount, rupee_amount, esewa_number):
    if not email:
        return False
    params = {
        "to_email": email,
        "to_name": name or 'SpinWin user',
        "withdrawal_amount": f"{coin_amount:,}",
        "rupee_amount": f"{rupee_amount:.2f}",
        "esewa_number": esewa_number,
        "date": datetime.now(timezone.utc).strftime('%B %d, %Y'),
        "company_name": config.COMPANY_NAME,
        "support_email": config.SUPPORT_EMAIL,
    }
    return send_template_email(config.EMAILJS_WITHDRAWAL_TEMPLATE_ID, params)


def render_daily_report(stats):
    name = stats.get('name') or 'Spinner'
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto;">
      <h2>🎰 Daily Spin to Earn Report</h2>
      <p>Hi {name},</p>
      <table style="width: 100%; border-collapse: collapse;">
        <tr><td>💰 Total coins</td><td><b>{stats.get('total_coins') or 0}</b></td></tr>
        <tr><td>🎡 Spins today</td><td><b>{stats.get('today_spins') or 0} / {stats.get('daily_spin_limit') or 5}</b></td></tr>
        <tr><td>🪙 Coins earned today</td><td><b>{stats.get('today_coins') or 0}</b></td></tr>
        <tr><td>⏳ Pending withdrawals</td><td><b>{stats.get('pending_requests') or 0}</b></td></tr>
      </table>
      <p>Come back tomorrow for more spins!</p>
      <p style="color: #888; font-size: 12px;">{config.COMPANY_NAME} · {config.SUPPORT_EMAIL}</p>
    </div>
    """


def send_daily_report_email(stats):
    params = {
        "to_email": stats.get('email'),
        "to_name": stats.get('name') or 'Spinner',
        "subject": '🎰 Your Daily Spin to Earn Report',
        "html_content": render_daily_report(stats),
        "company_name": config.COMPANY_NAME,
    }
    return send_template_email(config.EMAILJS_DAILY_REPORT_TEMPLATE_ID, params)

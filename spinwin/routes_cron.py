#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Cron endpoints
"""

import logging
from flask import Blueprint, jsonify
from .auth import require_admin_secret
from .maintenance import run_daily_maintenance, send_daily_reports, snapshot_leaderboard

logger = logging.getLogger(__name__)
cron_bp = Blueprint('cron', __name__)


@cron_bp.route('/api/cron/daily-maintenance', methods=['GET', 'POST'])
@require_admin_secret
def cron_daily_maintenance():
    try:
        report = run_daily_maintenance()
        return jsonify({"success": True, "message": 'Daily maintenance completed', "report": report})
    except Exception as e:
        logger.error(f"Daily maintenance failed: {e}")
        return jsonify({"success": False, "error": "Daily maintenance failed"}), 500


@cron_bp.route('/api/cron/daily-reports', methods=['GET', 'POST'])
@require_admin_secret
def cron_daily_reports():
    try:
        result = send_daily_reports()
        return jsonify(result), (200 if result['success'] else 503)
    except Exception as e:
        logger.error(f"Daily reports failed: {e}")
        return jsonify({"success": False, "error": "Daily reports failed"}), 500


@cron_bp.route('/api/cron/leaderboard-snapshot', methods=['GET', 'POST'])
@require_admin_secret
def cron_leaderboard_snapshot():
    try:
        return jsonify(snapshot_leaderboard())
    except Exception as e:
        logger.error(f"Leaderboard snapshot failed: {e}")
        return jsonify({"success": False, "error": "Leaderboard snapshot failed"}), 500

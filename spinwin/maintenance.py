#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Scheduled jobs: daily maintenance, daily reports, leaderboard snapshot
"""

import logging
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from .database import get_db, get_setting
from .mailer import send_daily_report_email, emailjs_configured
from .rpc import call_rpc, RpcError
from .utils import serialize
from .vip import resolve_tier, TIERS

logger = logging.getLogger(__name__)

MaintenanceTask = namedtuple('MaintenanceTask', ['name', 'description', 'execute'])

NOTIFICATION_RETENTION_DAYS = 30
ADMIN_MESSAGE_RETENTION_DAYS = 60
DAILY_BONUS_TITLE = '🎁 Daily Bonus Available!'
LEADERBOARD_SIZE = 20
JACKPOT_TICKET_PRICE = 100
JACKPOT_MAX_TICKETS = 10
JACKPOT_DRAW_HOUR = 20
VIP_MIN_COINS = min(t.min_coins for t in TIERS if t.multiplier > 1)


def _result(success, message, data=None):
    return {"success": success, "message": message, "data": data}


def notifications_enabled():
    return bool(get_setting('enable_notifications'))


def broadcast(title, message, message_type='info'):
    """Admin message to every user. Failures are logged, never raised."""
    if not notifications_enabled():
        return False
    conn = get_db()
    try:
        cur = conn.cursor()
        ok = bool(call_rpc(cur, 'send_message_to_all_users', message_title=title,
                           message_content=message, message_type=message_type))
        conn.commit()
        logger.info(f"📢 Sent maintenance notification: {title}")
        return ok
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to send maintenance notification: {e}")
        return False
    finally:
        conn.close()


# ===============================
# MAINTENANCE TASKS
# ===============================

def cleanup_old_data():
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute(f"""
            DELETE FROM notifications
            WHERE read = TRUE AND created_at < NOW() - INTERVAL '{NOTIFICATION_RETENTION_DAYS} days'
        """)
        notifications = cur.rowcount
        cur.execute(f"""
            DELETE FROM admin_messages
            WHERE read = TRUE AND created_at < NOW() - INTERVAL '{ADMIN_MESSAGE_RETENTION_DAYS} days'
        """)
        messages = cur.rowcount
        cur.execute("DELETE FROM power_up_activations WHERE expires_at < NOW() - INTERVAL '1 day'")
        power_ups = cur.rowcount
        conn.commit()
        return _result(True, 'Old data cleaned up successfully', {
            "notifications_deleted": notifications, "admin_messages_deleted": messages,
            "power_ups_deleted": power_ups})
    except Exception as e:
        conn.rollback()
        return _result(False, f"Data cleanup failed: {e}")
    finally:
        conn.close()


def optimize_database():
    conn = get_db()
    refreshed = []
    try:
        cur = conn.cursor()
        for procedure in ('refresh_daily_stats', 'update_leaderboard_rankings'):
            cur.execute("SAVEPOINT optimize")
            try:
                call_rpc(cur, procedure)
                refreshed.append(procedure)
            except RpcError as e:
                cur.execute("ROLLBACK TO SAVEPOINT optimize")
                # Optional helpers, not every deployment has them
                if 'does not exist' not in e.message:
                    raise
                logger.info(f"{procedure} not installed, skipping")
        conn.commit()
        return _result(True, 'Database optimization completed', {"procedures": refreshed})
    except Exception as e:
        conn.rollback()
        return _result(False, f"Database optimization failed: {e}")
    finally:
        conn.close()


def apply_system_updates():
    """Sync spin limits with VIP tiers and expire overdue lotteries"""
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT id, coins, daily_spin_limit FROM users WHERE coins >= %s", (VIP_MIN_COINS,))
        upgraded = 0
        send_notes = notifications_enabled()
        for user in cur.fetchall():
            tier = resolve_tier(user['coins'])
            if user['daily_spin_limit'] == tier.spin_limit:
                continue
            cur.execute("UPDATE users SET daily_spin_limit = %s WHERE id = %s", (tier.spin_limit, user['id']))
            if send_notes:
                limit_text = 'unlimited' if tier.unlimited else str(tier.spin_limit)
                cur.execute("INSERT INTO notifications (user_id, title, message, type) VALUES (%s, %s, %s, %s)", (
                    user['id'], f"🏆 {tier.name} Status Updated!",
                    f"Congratulations! Your spin limit has been upgraded to {limit_text} spins per day "
                    f"due to your {tier.name} status.", 'success'))
            upgraded += 1
        cur.execute("UPDATE lottery_games SET status = 'expired' WHERE status = 'active' AND draw_time < NOW()")
        expired = cur.rowcount
        conn.commit()
    except Exception as e:
        conn.rollback()
        return _result(False, f"System updates failed: {e}")
    finally:
        conn.close()

    if upgraded:
        broadcast('⚙️ System Updates Applied',
                  f'Daily maintenance completed! {upgraded} users received VIP status updates. '
                  'Check your profile for any changes to your benefits.')
    return _result(True, 'System updates applied successfully', {"vip_updates": upgraded, "lotteries_expired": expired})


def next_jackpot_draw(now=None):
    now = now or datetime.now(timezone.utc)
    tomorrow = now + timedelta(days=1)
    return tomorrow.replace(hour=JACKPOT_DRAW_HOUR, minute=0, second=0, microsecond=0)


def deploy_daily_features():
    """Daily bonus notification (once per day) and a fresh jackpot when none is running"""
    features = []
    conn = get_db()
    try:
        cur = conn.cursor()
        if notifications_enabled():
            cur.execute("SELECT id FROM notifications WHERE title = %s AND created_at >= date_trunc('day', NOW()) LIMIT 1",
                        (DAILY_BONUS_TITLE,))
            if not cur.fetchone():
                cur.execute("""
                    INSERT INTO notifications (user_id, title, message, type)
                    SELECT id, %s, %s, 'success' FROM users WHERE COALESCE(banned, FALSE) = FALSE
                """, (DAILY_BONUS_TITLE, 'Your daily login bonus is ready! Spin the wheel to claim your rewards.'))
                features.append(f'Daily bonus notifications sent ({cur.rowcount})')

        cur.execute("SELECT id FROM lottery_games WHERE status = 'active' LIMIT 1")
        created_lottery = False
        if not cur.fetchone():
            cur.execute("""
                INSERT INTO lottery_games (name, description, ticket_price, max_tickets_per_user, draw_time, status)
                VALUES (%s, %s, %s, %s, %s, 'active')
            """, ('Daily Jackpot', 'Win big in our daily lottery draw!', JACKPOT_TICKET_PRICE,
                  JACKPOT_MAX_TICKETS, next_jackpot_draw()))
            features.append('Auto-created new daily lottery')
            created_lottery = True
        conn.commit()
    except Exception as e:
        conn.rollback()
        return _result(False, f"Feature deployment failed: {e}")
    finally:
        conn.close()

    if created_lottery:
        broadcast('🎰 New Lottery Available!',
                  'A fresh daily lottery is now live! Get your tickets now for a chance to win big prizes.', 'success')
    return _result(True, 'New features deployed successfully', {"features": features})


def perform_health_check():
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) AS total, COUNT(*) FILTER (WHERE banned) AS banned FROM users")
        users = cur.fetchone()
        cur.execute("SELECT COUNT(*) AS cnt FROM spins WHERE spun_at >= NOW() - INTERVAL '24 hours'")
        daily_spins = cur.fetchone()['cnt']
        issues = []
        if daily_spins == 0:
            issues.append('No spins recorded in last 24 hours')
        return _result(True, 'System health check completed', {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database_status": 'healthy',
            "user_stats": {"total_users": users['total'], "banned_users": users['banned'],
                           "active_users": users['total'] - users['banned']},
            "system_stats": {"daily_spins": daily_spins},
            "issues": issues,
        })
    except Exception as e:
        return _result(False, f"Health check failed: {e}")
    finally:
        conn.close()


MAINTENANCE_TASKS = (
    MaintenanceTask('Data Cleanup', 'Remove old notifications and messages', cleanup_old_data),
    MaintenanceTask('Database Optimization', 'Refresh statistics and rankings', optimize_database),
    MaintenanceTask('System Updates', 'Sync VIP spin limits and expire lotteries', apply_system_updates),
    MaintenanceTask('Feature Deployment', 'Daily bonus and jackpot rollover', deploy_daily_features),
    MaintenanceTask('Health Check', 'User and activity statistics', perform_health_check),
)


def run_daily_maintenance(tasks=MAINTENANCE_TASKS):
    logger.info("🔧 Starting daily maintenance tasks...")
    results = []
    succeeded = 0
    for task in tasks:
        logger.info(f"📋 Executing: {task.name}")
        try:
            outcome = task.execute()
        except Exception as e:
            logger.error(f"💥 {task.name} crashed: {e}")
            outcome = _result(False, f"Task crashed: {e}")
        if outcome['success']:
            succeeded += 1
            logger.info(f"✅ {task.name}: {outcome['message']}")
        else:
            logger.error(f"❌ {task.name}: {outcome['message']}")
        results.append({"task": task.name, **outcome})

    now = datetime.now(timezone.utc)
    report = {
        "timestamp": now.isoformat(),
        "success_rate": f"{succeeded}/{len(tasks)}",
        "overall_status": 'success' if succeeded == len(tasks) else 'partial_success',
        "task_results": serialize(results),
        "next_maintenance": (now + timedelta(days=1)).isoformat(),
    }
    logger.info(f"🎯 Daily maintenance completed: {report['overall_status']}")
    if report['overall_status'] != 'success':
        broadcast('🔧 Maintenance Alert',
                  f"Daily maintenance completed with some issues ({report['success_rate']} tasks successful). "
                  'Our team is monitoring the situation.', 'warning')
    return report


# ===============================
# DAILY REPORTS / LEADERBOARD
# ===============================

def send_daily_reports():
    if not emailjs_configured():
        return {"success": False, "error": "Email service not configured", "sent": 0, "failed": 0}
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT * FROM user_daily_stats WHERE email IS NOT NULL")
        recipients = [dict(r) for r in cur.fetchall()]
    finally:
        conn.close()
    sent = failed = 0
    for stats in recipients:
        if send_daily_report_email(stats):
            sent += 1
        else:
            failed += 1
            logger.error(f"Daily report failed for {stats.get('email')}")
    logger.info(f"Daily reports: {sent} sent, {failed} failed")
    return {"success": True, "total_users": len(recipients), "sent": sent, "failed": failed}


def snapshot_leaderboard(day=None):
    """Store today's top users, at most once per date"""
    day = day or datetime.now(timezone.utc).date()
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute("SELECT id FROM daily_leaderboard WHERE leaderboard_date = %s LIMIT 1", (day,))
        if cur.fetchone():
            conn.rollback()
            return {"success": True, "skipped": True, "date": day.isoformat(), "entries": 0}
        cur.execute("""
            SELECT id, name, profile_picture_url, coins FROM users
            WHERE COALESCE(banned, FALSE) = FALSE
            ORDER BY coins DESC LIMIT %s
        """, (LEADERBOARD_SIZE,))
        leaders = cur.fetchall()
        for rank, user in enumerate(leaders, start=1):
            cur.execute("""
                INSERT INTO daily_leaderboard (leaderboard_date, user_id, name, profile_picture_url, coins, rank)
                VALUES (%s, %s, %s, %s, %s, %s)
            """, (day, user['id'], user['name'], user['profile_picture_url'], user['coins'], rank))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    logger.info(f"Leaderboard snapshot for {day}: {len(leaders)} entries")
    return {"success": True, "skipped": False, "date": day.isoformat(), "entries": len(leaders)}

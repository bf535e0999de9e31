#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Tasks, videos and mini-games
"""

import logging
from flask import Blueprint, request, jsonify
from .auth import require_user_auth, check_rate_limit
from .database import get_db
from .realtime import refresh_user
from .rewards import (TASKS, TASKS_BY_TYPE, VIDEOS, VIDEOS_BY_ID, GAMES, GAMES_BY_TYPE,
                      VIDEOS_REQUIRED, SPINS_REQUIRED, WEEKLY_STREAK_DAYS, game_reward, is_game_win)
from .utils import log_balance_operation
from .vip import apply_multiplier, resolve_tier

logger = logging.getLogger(__name__)
tasks_bp = Blueprint('tasks', __name__)

TODAY = "date_trunc('day', NOW())"
LOCK_USER_SQL = "SELECT id, coins, banned FROM users WHERE id = %s FOR UPDATE"

# Days before a task can be claimed again
TASK_COOLDOWN_DAYS = {'weekly_challenge': WEEKLY_STREAK_DAYS}


def _claimed_recently(cur, user_id, task_type):
    days = TASK_COOLDOWN_DAYS.get(task_type, 1)
    cur.execute(f"""
        SELECT id FROM tasks
        WHERE user_id = %s AND task_type = %s AND status = 'completed'
          AND completed_at >= {TODAY} - (%s - 1) * INTERVAL '1 day'
    """, (user_id, task_type, days))
    return cur.fetchone() is not None


def _task_requirement_met(cur, user_id, task_type):
    """None when the task can be claimed, else the reason it cannot"""
    if task_type == 'watch_videos':
        cur.execute(f"SELECT COUNT(*) AS cnt FROM video_watches WHERE user_id = %s AND watched_at >= {TODAY}", (user_id,))
        if cur.fetchone()['cnt'] < VIDEOS_REQUIRED:
            return f"Watch {VIDEOS_REQUIRED} videos today first"
    elif task_type == 'complete_spins':
        cur.execute(f"SELECT COUNT(*) AS cnt FROM spins WHERE user_id = %s AND spun_at >= {TODAY}", (user_id,))
        if cur.fetchone()['cnt'] < SPINS_REQUIRED:
            return f"Spin {SPINS_REQUIRED} times today first"
    elif task_type == 'invite_friend':
        cur.execute(f"SELECT COUNT(*) AS cnt FROM referrals WHERE referrer_id = %s AND created_at >= {TODAY}", (user_id,))
        if cur.fetchone()['cnt'] < 1:
            return "Invite a friend today first"
    elif task_type == 'win_game':
        cur.execute(f"SELECT game_type, score FROM game_scores WHERE user_id = %s AND achieved_at >= {TODAY}", (user_id,))
        if not any(is_game_win(GAMES_BY_TYPE.get(r['game_type']), r['score']) for r in cur.fetchall()):
            return "Win a mini game today first"
    elif task_type == 'weekly_challenge':
        cur.execute(f"""
            SELECT COUNT(DISTINCT date_trunc('day', completed_at)) AS cnt FROM tasks
            WHERE user_id = %s AND task_type = 'daily_checkin' AND status = 'completed'
              AND completed_at >= {TODAY} - INTERVAL '{WEEKLY_STREAK_DAYS - 1} days'
        """, (user_id,))
        if cur.fetchone()['cnt'] < WEEKLY_STREAK_DAYS:
            return f"Check in {WEEKLY_STREAK_DAYS} days in a row first"
    return None


def complete_task(user_id, task_type):
    task = TASKS_BY_TYPE.get(task_type)
    if not task:
        return {"success": False, "error": "Unknown task", "status": 400}
    conn = get_db()
    try:
        cur = conn.cursor()
        cur.execute(LOCK_USER_SQL, (user_id,))
        user = cur.fetchone()
        if not user:
            conn.rollback()
            return {"success": False, "error": "User not found", "status": 404}
        if user.get('banned'):
            conn.rollback()
            return {"success": False, "error": "Account is banned", "status": 403}
        if _claimed_recently(cur, user_id, task_type):
            conn.rollback()
            return {"success": False, "error": "Task already completed", "status": 409}
        reason = _task_requirement_met(cur, user_id, task_type)
        if reason:
            conn.rollback()
            return {"success": False, "error": reason, "status": 400}

        reward = apply_multiplier(task.reward, user['coins'])
        cur.execute("""
            INSERT INTO tasks (user_id, task_type, task_title, task_description, reward_coins, status, completed_at)
            VALUES (%s, %s, %s, %s, %s, 'completed', NOW())
        """, (user_id, task_type, task.title, task.description, reward))
        cur.execute("UPDATE users SET coins = coins + %s WHERE id = %s RETURNING coins", (reward, user_id))
        new_balance = cur.fetchone()['coins']
        log_balance_operation(user_id, reward, 'task', f'{task.title} ({task.reward} x{resolve_tier(user["coins"]).multiplier})',
                              new_balance, conn)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    refresh_user(user_id)
    return {"success": True, "task_type": task_type, "base_reward": task.reward, "reward": reward, "coins": new_balance}


def _result_response(result):
    if not result.get('success'):
        status = result.pop('status', 400)
        return jsonify(result), status
    return jsonify(result)


@tasks_bp.route('/api/tasks', methods=['GET'])
@require_user_auth
def api_tasks():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT coins FROM users WHERE id = %s", (request.user_id,))
        user = cur.fetchone()
        if not user:
            conn.close()
            return jsonify({"success": False, "error": "User not found"}), 404
        catalogue = []
        for task in TASKS:
            catalogue.append({
                "task_type": task.task_type, "title": task.title, "description": task.description,
                "icon": task.icon, "base_reward": task.reward,
                "reward": apply_multiplier(task.reward, user['coins']),
                "completed": _claimed_recently(cur, request.user_id, task.task_type),
            })
        conn.close()
        return jsonify({"success": True, "tasks": catalogue})
    except Exception as e:
        logger.error(f"Tasks failed: {e}")
        return jsonify({"success": False, "error": "Failed to load tasks"}), 500


@tasks_bp.route('/api/tasks/complete', methods=['POST'])
@require_user_auth
def api_complete_task():
    try:
        data = request.get_json(silent=True) or {}
        task_type = data.get('task_type', '')
        if not task_type:
            return jsonify({"success": False, "error": "task_type required"}), 400
        return _result_response(complete_task(request.user_id, task_type))
    except Exception as e:
        logger.error(f"Task completion failed: {e}")
        return jsonify({"success": False, "error": "Task completion failed"}), 500


# ===============================
# VIDEOS
# ===============================

@tasks_bp.route('/api/videos', methods=['GET'])
@require_user_auth
def api_videos():
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("SELECT video_id FROM video_watches WHERE user_id = %s", (request.user_id,))
        watched = {r['video_id'] for r in cur.fetchall()}
        conn.close()
        videos = [{**v._asdict(), "watched": v.video_id in watched} for v in VIDEOS]
        earned = sum(v.reward for v in VIDEOS if v.video_id in watched)
        return jsonify({"success": True, "videos": videos, "total_earned": earned})
    except Exception as e:
        logger.error(f"Videos failed: {e}")
        return jsonify({"success": False, "error": "Failed to load videos"}), 500


@tasks_bp.route('/api/videos/<video_id>/watch', methods=['POST'])
@require_user_auth
def api_watch_video(video_id):
    try:
        video = VIDEOS_BY_ID.get(video_id)
        if not video:
            return jsonify({"success": False, "error": "Video not found"}), 404
        conn = get_db()
        try:
            cur = conn.cursor()
            cur.execute(LOCK_USER_SQL, (request.user_id,))
            user = cur.fetchone()
            if not user:
                conn.rollback()
                return jsonify({"success": False, "error": "User not found"}), 404
            if user.get('banned'):
                conn.rollback()
                return jsonify({"success": False, "error": "Account is banned"}), 403
            cur.execute("SELECT id FROM video_watches WHERE user_id = %s AND video_id = %s",
                        (request.user_id, video_id))
            if cur.fetchone():
                conn.rollback()
                return jsonify({"success": False, "error": "Already watched"}), 409
            cur.execute("""
                INSERT INTO video_watches (user_id, video_id, video_title, reward_coins)
                VALUES (%s, %s, %s, %s)
            """, (request.user_id, video_id, video.title, video.reward))
            cur.execute("UPDATE users SET coins = coins + %s WHERE id = %s RETURNING coins",
                        (video.reward, request.user_id))
            new_balance = cur.fetchone()['coins']
            log_balance_operation(request.user_id, video.reward, 'video', f'Watched "{video.title}"', new_balance, conn)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        refresh_user(request.user_id)
        return jsonify({"success": True, "reward": video.reward, "coins": new_balance})
    except Exception as e:
        logger.error(f"Video watch failed: {e}")
        return jsonify({"success": False, "error": "Failed to record video"}), 500


# ===============================
# MINI GAMES
# ===============================

@tasks_bp.route('/api/games', methods=['GET'])
def api_games():
    return jsonify({"success": True, "games": [g._asdict() for g in GAMES]})


@tasks_bp.route('/api/games/<game_type>/score', methods=['POST'])
@require_user_auth
def api_game_score(game_type):
    try:
        game = GAMES_BY_TYPE.get(game_type)
        if not game:
            return jsonify({"success": False, "error": "Unknown game"}), 404
        data = request.get_json(silent=True) or {}
        score = data.get('score')
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            return jsonify({"success": False, "error": "score must be a non-negative integer"}), 400
        if not check_rate_limit(f'game:{request.user_id}', 20, 3600):
            return jsonify({"success": False, "error": "Too many games, take a break"}), 429
        reward = game_reward(game, score)
        conn = get_db()
        try:
            cur = conn.cursor()
            cur.execute(LOCK_USER_SQL, (request.user_id,))
            user = cur.fetchone()
            if not user:
                conn.rollback()
                return jsonify({"success": False, "error": "User not found"}), 404
            if user.get('banned'):
                conn.rollback()
                return jsonify({"success": False, "error": "Account is banned"}), 403
            if user['coins'] < game.cost:
                conn.rollback()
                return jsonify({"success": False, "error": f"You need {game.cost} coins to play"}), 400
            cur.execute("INSERT INTO game_scores (user_id, game_type, score, reward_coins) VALUES (%s, %s, %s, %s)",
                        (request.user_id, game_type, score, reward))
            net = reward - game.cost
            cur.execute("UPDATE users SET coins = coins + %s WHERE id = %s RETURNING coins", (net, request.user_id))
            new_balance = cur.fetchone()['coins']
            log_balance_operation(request.user_id, net, 'game',
                                  f'{game.title}: score {score}, cost {game.cost}, won {reward}', new_balance, conn)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        refresh_user(request.user_id)
        return jsonify({"success": True, "score": score, "cost": game.cost, "reward": reward,
                        "net": net, "won": is_game_win(game, score), "coins": new_balance})
    except Exception as e:
        logger.error(f"Game score failed: {e}")
        return jsonify({"success": False, "error": "Failed to record game"}), 500

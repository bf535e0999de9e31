#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Reward rules: wheel, power-ups, tasks, videos, games, wallet math
"""

import math
import random
from collections import namedtuple

from .config import config
from .vip import apply_multiplier, resolve_tier, DEFAULT_SPIN_LIMIT

# ===============================
# WHEEL
# ===============================

WHEEL_PRIZES = (5, 10, 20, 50, 100, 5, 10, 20)
SEGMENT_DEGREES = 360 / len(WHEEL_PRIZES)
BASE_ROTATION = 1440
VIP_EXTRA_ROTATION = 720

_rng = random.SystemRandom()


def pick_segment(rng=None):
    """Authoritative segment choice"""
    rng = rng or _rng
    return rng.randrange(len(WHEEL_PRIZES))


def segment_for_rotation(rotation):
    """Segment under the pointer for a final wheel rotation (degrees)"""
    normalized = (360 - rotation % 360) % 360
    return int(normalized // SEGMENT_DEGREES) % len(WHEEL_PRIZES)


def wheel_rotation(segment, previous_rotation=0, enhanced=False, rng=None):
    """Final rotation that lands the pointer inside `segment`.

    Purely visual: the reward is already decided by the time this runs.
    """
    rng = rng or _rng
    spins = BASE_ROTATION + (VIP_EXTRA_ROTATION if enhanced else 0)
    # keep away from the segment edges
    offset = SEGMENT_DEGREES * (0.2 + 0.6 * rng.random())
    target = (360 - (segment * SEGMENT_DEGREES + offset)) % 360
    base = previous_rotation - previous_rotation % 360
    return base + spins + target


def animation_seconds(coins):
    return 4 if resolve_tier(coins).multiplier > 1 else 3


# ===============================
# POWER-UPS
# ===============================

POWER_UP_EFFECTS = ('extra_spins', 'double_coins', 'lucky_multiplier')
POWER_UP_DEFAULT_DURATIONS = {'double_coins': 3600, 'lucky_multiplier': 1800}
EXTRA_SPINS_DEFAULT = 5

LUCKY_CHANCE = 0.1
LUCKY_FACTOR = 10
DOUBLE_FACTOR = 2


def effective_spin_limit(daily_spin_limit, activations=(), default_limit=DEFAULT_SPIN_LIMIT):
    """Daily limit plus any extra_spins power-ups active today"""
    base = daily_spin_limit if daily_spin_limit is not None else default_limit
    extra = sum((a.get('amount') or 0) for a in activations if a.get('effect') == 'extra_spins')
    return base + extra


SpinOutcome = namedtuple('SpinOutcome', ['segment', 'base_reward', 'vip_reward', 'reward', 'multiplier', 'applied_power_ups'])


def spin_reward(coins, power_ups=(), segment=None, rng=None):
    """Compute the credited reward for one spin.

    power_ups: effects currently active for the user ('double_coins', 'lucky_multiplier').
    """
    rng = rng or _rng
    if segment is None:
        segment = pick_segment(rng)
    base_reward = WHEEL_PRIZES[segment]
    vip_reward = apply_multiplier(base_reward, coins)
    reward = vip_reward
    applied = []
    effects = set(power_ups)
    if 'double_coins' in effects:
        reward *= DOUBLE_FACTOR
        applied.append('double_coins')
    if 'lucky_multiplier' in effects and rng.random() < LUCKY_CHANCE:
        reward *= LUCKY_FACTOR
        applied.append('lucky_multiplier')
    return SpinOutcome(segment, base_reward, vip_reward, reward, resolve_tier(coins).multiplier, applied)


# ===============================
# TASKS / VIDEOS / GAMES
# ===============================

Task = namedtuple('Task', ['task_type', 'title', 'description', 'reward', 'icon'])

TASKS = (
    Task('daily_checkin', 'Daily Check-in', 'Check in every day to earn coins', 10, '📅'),
    Task('watch_videos', 'Watch 3 Videos', 'Watch 3 videos today', 25, '📺'),
    Task('complete_spins', 'Spin 5 Times', 'Complete 5 spins today', 30, '🎰'),
    Task('invite_friend', 'Invite a Friend', 'Get a friend to join with your referral code', 100, '👥'),
    Task('win_game', 'Win a Mini Game', 'Score at least half the maximum in any mini game', 50, '🎮'),
    Task('weekly_challenge', 'Weekly Challenge', 'Check in 7 days in a row', 500, '🏆'),
)
TASKS_BY_TYPE = {t.task_type: t for t in TASKS}

VIDEOS_REQUIRED = 3
SPINS_REQUIRED = 5
WEEKLY_STREAK_DAYS = 7

Video = namedtuple('Video', ['video_id', 'title', 'category', 'reward'])

VIDEOS = (
    Video('tech1', 'Latest Tech Trends 2024', 'Technology', 15),
    Video('game1', 'Gaming Tips & Tricks', 'Gaming', 20),
    Video('edu1', 'Quick Math Tricks', 'Education', 25),
    Video('ent1', 'Funny Moments Compilation', 'Entertainment', 18),
    Video('tech2', 'AI Revolution Explained', 'Technology', 30),
    Video('edu2', 'Science Experiments', 'Education', 22),
)
VIDEOS_BY_ID = {v.video_id: v for v in VIDEOS}

Game = namedtuple('Game', ['game_type', 'title', 'cost', 'min_reward', 'max_reward', 'max_score', 'win_score'])

# Every play earns something; only a score of win_score or more counts as a win
GAMES = (
    Game('memory', 'Memory Match', 10, 20, 50, 1000, 500),
    Game('number_guess', 'Number Puzzle', 20, 50, 100, 1000, 500),
    Game('quick_math', 'Quick Math', 15, 30, 80, 300, 150),
)
GAMES_BY_TYPE = {g.game_type: g for g in GAMES}


def game_reward(game, score):
    """Map a score onto the game's reward band"""
    score = max(0, min(int(score), game.max_score))
    span = game.max_reward - game.min_reward
    return game.min_reward + int(math.floor(span * score / game.max_score))


def is_game_win(game, score):
    return game is not None and score >= game.win_score


# ===============================
# WALLET
# ===============================

def validate_withdrawal(coins, amount, minimum=1000):
    """Return an error message, or None when the withdrawal is allowed"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        return "Amount must be a whole number of coins"
    if amount <= 0:
        return "Amount must be positive"
    if amount < minimum:
        return f"Minimum withdrawal is {minimum} coins"
    if amount > (coins or 0):
        return "Insufficient coins"
    return None


def coins_to_rupees(coin_amount, fee_percentage=0):
    """Payout in rupees after the configured fee, rounded to paisa"""
    gross = coin_amount / config.COINS_PER_RUPEE
    net = gross * (1 - (fee_percentage or 0) / 100)
    return round(net, 2)


def diamonds_to_coins(diamond_amount):
    return diamond_amount * config.COINS_PER_DIAMOND

#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — VIP tiers

The only place the coin thresholds live. Everything that needs a tier, a
multiplier or a spin allowance asks this module.
"""

import math
from collections import namedtuple

VipTier = namedtuple('VipTier', ['name', 'multiplier', 'spin_limit', 'unlimited', 'min_coins'])

DEFAULT_SPIN_LIMIT = 5
UNLIMITED_SPIN_LIMIT = 999

# Highest threshold first
TIERS = (
    VipTier('Grand Master', 10, UNLIMITED_SPIN_LIMIT, True, 3000),
    VipTier('Elite Master', 5, 20, False, 2000),
    VipTier('VIP', 2, 10, False, 1000),
    VipTier('Regular', 1, DEFAULT_SPIN_LIMIT, False, 0),
)

TIER_ICONS = {
    'Grand Master': '👑',
    'Elite Master': '💎',
    'VIP': '⭐',
    'Regular': '🎯',
}


def resolve_tier(coins):
    """Return the VipTier for a coin balance. Total over every input."""
    coins = coins or 0
    for tier in TIERS:
        if coins >= tier.min_coins:
            return tier
    return TIERS[-1]


def apply_multiplier(base_reward, coins):
    return int(math.floor(base_reward * resolve_tier(coins).multiplier))


def can_spin(coins, daily_spin_limit, spins_today, default_limit=DEFAULT_SPIN_LIMIT):
    tier = resolve_tier(coins)
    if tier.unlimited:
        return True
    limit = daily_spin_limit if daily_spin_limit is not None else default_limit
    return spins_today < limit


def spins_remaining(coins, daily_spin_limit, spins_today, default_limit=DEFAULT_SPIN_LIMIT):
    """None means unlimited"""
    tier = resolve_tier(coins)
    if tier.unlimited:
        return None
    limit = daily_spin_limit if daily_spin_limit is not None else default_limit
    return max(limit - spins_today, 0)


def next_tier(coins):
    """(tier, coins_needed) for the next rung up, or None at the top"""
    current = resolve_tier(coins)
    index = TIERS.index(current)
    if index == 0:
        return None
    upcoming = TIERS[index - 1]
    return upcoming, upcoming.min_coins - (coins or 0)


def tier_descriptor(coins):
    tier = resolve_tier(coins)
    descriptor = {
        "name": tier.name,
        "icon": TIER_ICONS[tier.name],
        "multiplier": tier.multiplier,
        "spin_limit": tier.spin_limit,
        "unlimited": tier.unlimited,
    }
    upcoming = next_tier(coins)
    if upcoming:
        descriptor["next_tier"] = {"name": upcoming[0].name, "coins_needed": upcoming[1]}
    else:
        descriptor["next_tier"] = None
    return descriptor

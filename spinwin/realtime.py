#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Realtime change handling

Database webhooks push row changes here. Instead of re-fetching whole tables,
each change is folded into a cache keyed by primary key.
"""

import logging
import threading
from collections import OrderedDict
from flask import Blueprint, request, jsonify
from .auth import require_user_auth, require_webhook_secret
from .config import config
from .utils import get_user, serialize

logger = logging.getLogger(__name__)
realtime_bp = Blueprint('realtime', __name__)

WATCHED_TABLES = (
    'users', 'spins', 'withdrawals', 'referrals', 'messages', 'conversations',
    'lottery_games', 'lottery_tickets', 'user_inventory', 'notifications',
)


class ChannelFilter:
    """A `column=eq.value` subscription filter"""

    def __init__(self, column, value):
        self.column = column
        self.value = value

    @classmethod
    def parse(cls, expression):
        column, sep, rest = (expression or '').partition('=')
        operator, dot, value = rest.partition('.')
        if not sep or not dot or not column:
            raise ValueError(f"Malformed filter: {expression!r}")
        if operator != 'eq':
            raise ValueError(f"Unsupported filter operator: {operator}")
        return cls(column.strip(), value)

    def matches(self, row):
        if not row or self.column not in row:
            return False
        return str(row[self.column]) == self.value

    def __repr__(self):
        return f"{self.column}=eq.{self.value}"


class RowCache:
    """Rows per table keyed by primary key, kept current from change payloads.

    Each table holds at most max_rows rows. Writes and reads mark a row as
    recently used, and the least recently used row is evicted first.
    """

    def __init__(self, tables=WATCHED_TABLES, key='id', max_rows=1000):
        if max_rows < 1:
            raise ValueError("max_rows must be positive")
        self.tables = set(tables)
        self.key = key
        self.max_rows = max_rows
        self._rows = {table: OrderedDict() for table in self.tables}
        self._lock = threading.Lock()

    def apply(self, change):
        """Fold one INSERT/UPDATE/DELETE payload in. Returns True if the cache changed."""
        table = change.get('table')
        if table not in self.tables:
            return False
        event = (change.get('type') or change.get('eventType') or '').upper()
        with self._lock:
            rows = self._rows[table]
            if event in ('INSERT', 'UPDATE'):
                record = change.get('record') or change.get('new') or {}
                pk = record.get(self.key)
                if pk is None:
                    return False
                merged = dict(rows.pop(str(pk), {}))
                merged.update(record)
                rows[str(pk)] = merged
                while len(rows) > self.max_rows:
                    rows.popitem(last=False)
                return True
            if event == 'DELETE':
                old = change.get('old_record') or change.get('old') or {}
                pk = old.get(self.key)
                if pk is None:
                    return False
                return rows.pop(str(pk), None) is not None
        logger.warning(f"Unknown change type for {table}: {event}")
        return False

    def put(self, table, row):
        return self.apply({'type': 'UPDATE', 'table': table, 'record': row})

    def get(self, table, pk):
        with self._lock:
            rows = self._rows.get(table, {})
            row = rows.get(str(pk))
            if not row:
                return None
            rows.move_to_end(str(pk))
            return dict(row)

    def select(self, table, channel_filter=None):
        with self._lock:
            found = [dict(r) for r in self._rows.get(table, {}).values()]
        if channel_filter:
            found = [r for r in found if channel_filter.matches(r)]
        return found

    def size(self, table):
        with self._lock:
            return len(self._rows.get(table, {}))

    def clear(self):
        with self._lock:
            for rows in self._rows.values():
                rows.clear()


row_cache = RowCache(max_rows=config.REALTIME_CACHE_ROWS)


def refresh_user(user_id):
    """Reload a user row after this service changed it"""
    user = get_user(user_id)
    if user:
        row_cache.put('users', serialize(user))
    return user


def cached_user(user_id):
    user = row_cache.get('users', user_id)
    if user:
        return user
    user = get_user(user_id)
    if user:
        user = serialize(user)
        row_cache.put('users', user)
    return user


@realtime_bp.route('/api/realtime/webhook', methods=['POST'])
@require_webhook_secret
def api_realtime_webhook():
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"success": False, "error": "Payload required"}), 400
        changes = data if isinstance(data, list) else [data]
        applied = sum(1 for change in changes if isinstance(change, dict) and row_cache.apply(change))
        return jsonify({"success": True, "applied": applied})
    except Exception as e:
        logger.error(f"Realtime webhook failed: {e}")
        return jsonify({"success": False, "error": "Webhook processing failed"}), 500


@realtime_bp.route('/api/realtime/changes', methods=['GET'])
@require_user_auth
def api_realtime_changes():
    """Cached rows of one watched table visible to the caller"""
    try:
        table = request.args.get('table', '')
        if table not in WATCHED_TABLES:
            return jsonify({"success": False, "error": "Unknown table"}), 400
        try:
            channel_filter = ChannelFilter.parse(request.args.get('filter') or f"user_id=eq.{request.user_id}")
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        # Only the caller's own rows
        if channel_filter.value != request.user_id:
            return jsonify({"success": False, "error": "Forbidden filter"}), 403
        return jsonify({"success": True, "rows": row_cache.select(table, channel_filter)})
    except Exception as e:
        logger.error(f"Realtime changes failed: {e}")
        return jsonify({"success": False, "error": "Failed to load changes"}), 500

from datetime import date, datetime, timezone

import psycopg2
import pytest

from spinwin import maintenance
from spinwin.maintenance import (
    MaintenanceTask, run_daily_maintenance, next_jackpot_draw, apply_system_updates, optimize_database,
    deploy_daily_features, snapshot_leaderboard, send_daily_reports, cleanup_old_data,
)


@pytest.fixture
def broadcasts(monkeypatch):
    sent = []
    monkeypatch.setattr(maintenance, 'broadcast', lambda title, message, message_type='info': sent.append(title) or True)
    return sent


def ok_task():
    return {'success': True, 'message': 'fine', 'data': None}


def failing_task():
    return {'success': False, 'message': 'broken', 'data': None}


def crashing_task():
    raise RuntimeError('boom')


def test_all_tasks_succeeding(broadcasts):
    report = run_daily_maintenance((MaintenanceTask('A', '', ok_task), MaintenanceTask('B', '', ok_task)))
    assert report['success_rate'] == '2/2'
    assert report['overall_status'] == 'success'
    assert [r['task'] for r in report['task_results']] == ['A', 'B']
    assert broadcasts == []


def test_failures_and_crashes_are_counted(broadcasts):
    report = run_daily_maintenance((
        MaintenanceTask('A', '', ok_task),
        MaintenanceTask('B', '', failing_task),
        MaintenanceTask('C', '', crashing_task),
    ))
    assert report['success_rate'] == '1/3'
    assert report['overall_status'] == 'partial_success'
    crashed = report['task_results'][2]
    assert crashed['success'] is False
    assert 'boom' in crashed['message']
    assert broadcasts == ['🔧 Maintenance Alert']


def test_next_jackpot_draw_is_tomorrow_evening():
    draw = next_jackpot_draw(datetime(2026, 3, 31, 22, 15, tzinfo=timezone.utc))
    assert draw == datetime(2026, 4, 1, 20, 0, tzinfo=timezone.utc)


def test_system_updates_sync_vip_limits(db, broadcasts):
    db.on('FROM users WHERE coins >= %s', [
        {'id': 'a', 'coins': 1500, 'daily_spin_limit': 5},
        {'id': 'b', 'coins': 2500, 'daily_spin_limit': 20},
        {'id': 'c', 'coins': 9000, 'daily_spin_limit': 5},
    ])
    db.on('UPDATE lottery_games', 2)
    result = apply_system_updates()
    assert result['success'] is True
    assert result['data'] == {'vip_updates': 2, 'lotteries_expired': 2}
    updates = [params for _, params in db.queries('UPDATE users SET daily_spin_limit')]
    assert updates == [(10, 'a'), (999, 'c')]
    assert len(db.queries('INSERT INTO notifications')) == 2
    assert broadcasts == ['⚙️ System Updates Applied']


def test_missing_optional_procedure_is_skipped(db):
    db.on('SELECT refresh_daily_stats(', psycopg2.Error('function refresh_daily_stats() does not exist'))
    result = optimize_database()
    assert result['success'] is True
    assert result['data'] == {'procedures': ['update_leaderboard_rankings']}
    assert db.ran('ROLLBACK TO SAVEPOINT optimize')


def test_optimize_fails_on_real_errors(db):
    db.on('SELECT update_leaderboard_rankings(', psycopg2.Error('deadlock detected'))
    assert optimize_database()['success'] is False


def test_cleanup_reports_counts(db):
    db.on('DELETE FROM notifications', 4)
    db.on('DELETE FROM admin_messages', 1)
    db.on('DELETE FROM power_up_activations', 0)
    result = cleanup_old_data()
    assert result['data'] == {'notifications_deleted': 4, 'admin_messages_deleted': 1, 'power_ups_deleted': 0}


def test_daily_features_create_jackpot_once(db, broadcasts):
    db.on("FROM lottery_games WHERE status = 'active'", [])
    db.on('SELECT id, %s, %s', 12)
    result = deploy_daily_features()
    assert result['success'] is True
    assert result['data']['features'] == ['Daily bonus notifications sent (12)', 'Auto-created new daily lottery']
    assert broadcasts == ['🎰 New Lottery Available!']


def test_daily_features_skip_existing(db, broadcasts):
    db.on('FROM notifications WHERE title = %s', [{'id': 1}])
    db.on("FROM lottery_games WHERE status = 'active'", [{'id': 7}])
    result = deploy_daily_features()
    assert result['data']['features'] == []
    assert not db.ran('INSERT INTO lottery_games')
    assert broadcasts == []


def test_snapshot_skips_existing_date(db):
    db.on('FROM daily_leaderboard WHERE leaderboard_date', [{'id': 1}])
    result = snapshot_leaderboard(date(2026, 5, 1))
    assert result == {'success': True, 'skipped': True, 'date': '2026-05-01', 'entries': 0}
    assert not db.ran('INSERT INTO daily_leaderboard')


def test_snapshot_ranks_leaders(db):
    db.on('ORDER BY coins DESC LIMIT %s', [
        {'id': 'a', 'name': 'A', 'profile_picture_url': None, 'coins': 900},
        {'id': 'b', 'name': 'B', 'profile_picture_url': None, 'coins': 400},
    ])
    result = snapshot_leaderboard(date(2026, 5, 1))
    assert result['entries'] == 2
    ranks = [params[-1] for _, params in db.queries('INSERT INTO daily_leaderboard')]
    assert ranks == [1, 2]
    assert db.commits == 1


def test_daily_reports_need_email_service():
    result = send_daily_reports()
    assert result['success'] is False


def test_daily_reports_count_outcomes(db, monkeypatch):
    monkeypatch.setattr(maintenance, 'emailjs_configured', lambda: True)
    monkeypatch.setattr(maintenance, 'send_daily_report_email', lambda stats: stats['email'] != 'bad@example.com')
    db.on('FROM user_daily_stats', [{'email': 'a@example.com'}, {'email': 'bad@example.com'}])
    assert send_daily_reports() == {'success': True, 'total_users': 2, 'sent': 1, 'failed': 1}


def test_cron_reports_unavailable_without_email(client):
    from tests.conftest import admin_headers
    assert client.post('/api/cron/daily-reports', headers=admin_headers()).status_code == 503

import pytest

from spinwin.routes_tasks import complete_task
from tests.conftest import USER_ID, user_headers

LOCK_USER = 'SELECT id, coins, banned FROM users WHERE id = %s FOR UPDATE'
CLAIMED = "SELECT id FROM tasks WHERE user_id = %s AND task_type = %s"


@pytest.fixture
def task_db(db):
    db.on(LOCK_USER, [{'id': USER_ID, 'coins': 2500, 'banned': False}])
    db.on('UPDATE users SET coins = coins + %s', lambda params: [{'coins': 2500 + params[0]}])
    return db


def test_checkin_reward_uses_vip_multiplier(task_db):
    result = complete_task(USER_ID, 'daily_checkin')
    assert result == {'success': True, 'task_type': 'daily_checkin', 'base_reward': 10, 'reward': 50, 'coins': 2550}
    (_, params), = task_db.queries('INSERT INTO tasks')
    assert params[1] == 'daily_checkin' and params[4] == 50


def test_task_claimed_once_per_day(task_db):
    task_db.on(CLAIMED, [{'id': 9}])
    result = complete_task(USER_ID, 'daily_checkin')
    assert result['status'] == 409
    assert not task_db.ran('INSERT INTO tasks')


def test_weekly_challenge_cooldown_is_seven_days(task_db):
    task_db.on('COUNT(DISTINCT date_trunc', [{'cnt': 0}])
    complete_task(USER_ID, 'weekly_challenge')
    (_, params), = task_db.queries(CLAIMED)
    assert params == (USER_ID, 'weekly_challenge', 7)


def test_weekly_challenge_needs_streak(task_db):
    task_db.on('COUNT(DISTINCT date_trunc', [{'cnt': 6}])
    assert complete_task(USER_ID, 'weekly_challenge')['status'] == 400
    task_db.on('COUNT(DISTINCT date_trunc', [{'cnt': 7}])
    assert complete_task(USER_ID, 'weekly_challenge')['reward'] == 2500


def test_video_task_needs_three_watches(task_db):
    task_db.on('FROM video_watches WHERE user_id', [{'cnt': 2}])
    result = complete_task(USER_ID, 'watch_videos')
    assert result['status'] == 400
    assert 'Watch 3 videos' in result['error']


def test_win_game_needs_a_winning_score(task_db):
    task_db.on('SELECT game_type, score FROM game_scores', [{'game_type': 'memory', 'score': 120}])
    result = complete_task(USER_ID, 'win_game')
    assert result['status'] == 400
    assert 'Win a mini game' in result['error']
    task_db.on('SELECT game_type, score FROM game_scores', [
        {'game_type': 'memory', 'score': 120},
        {'game_type': 'quick_math', 'score': 200},
    ])
    assert complete_task(USER_ID, 'win_game')['reward'] == 250


def test_unknown_task():
    assert complete_task(USER_ID, 'mine_bitcoin')['status'] == 400


def test_banned_user_cannot_claim(task_db):
    task_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 0, 'banned': True}])
    assert complete_task(USER_ID, 'daily_checkin')['status'] == 403


def test_complete_route(client, task_db):
    response = client.post('/api/tasks/complete', json={'task_type': 'daily_checkin'}, headers=user_headers())
    assert response.status_code == 200
    assert response.get_json()['reward'] == 50


def test_watch_video_once(client, task_db):
    response = client.post('/api/videos/tech1/watch', headers=user_headers())
    assert response.get_json() == {'success': True, 'reward': 15, 'coins': 2515}

    task_db.on('SELECT id FROM video_watches WHERE user_id = %s AND video_id = %s', [{'id': 1}])
    assert client.post('/api/videos/tech1/watch', headers=user_headers()).status_code == 409
    assert client.post('/api/videos/nope/watch', headers=user_headers()).status_code == 404


def test_game_score_charges_cost(client, task_db):
    task_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 100, 'banned': False}])
    body = client.post('/api/games/memory/score', json={'score': 1000}, headers=user_headers()).get_json()
    assert body['reward'] == 50
    assert body['net'] == 40
    assert body['won'] is True
    (_, params), = task_db.queries('UPDATE users SET coins = coins + %s')
    assert params == (40, USER_ID)


def test_game_needs_entry_cost(client, task_db):
    task_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 5, 'banned': False}])
    response = client.post('/api/games/number_guess/score', json={'score': 10}, headers=user_headers())
    assert response.status_code == 400
    assert not task_db.ran('INSERT INTO game_scores')


@pytest.mark.parametrize('score', [-1, 'high', True, None, 2.5])
def test_game_score_validation(client, task_db, score):
    response = client.post('/api/games/memory/score', json={'score': score}, headers=user_headers())
    assert response.status_code == 400


def test_unknown_game(client, task_db):
    assert client.post('/api/games/chess/score', json={'score': 1}, headers=user_headers()).status_code == 404


def test_banned_user_cannot_earn_from_videos_or_games(client, task_db):
    task_db.on(LOCK_USER, [{'id': USER_ID, 'coins': 500, 'banned': True}])
    assert client.post('/api/videos/tech1/watch', headers=user_headers()).status_code == 403
    response = client.post('/api/games/memory/score', json={'score': 1000}, headers=user_headers())
    assert response.status_code == 403
    assert not task_db.ran('INSERT INTO video_watches')
    assert not task_db.ran('INSERT INTO game_scores')
    assert not task_db.ran('UPDATE users SET coins')

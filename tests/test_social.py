import re

import psycopg2

from spinwin.routes_social import generate_ticket_id
from tests.conftest import USER_ID, OTHER_ID, user_headers


def test_send_message_as_user(client, db):
    db.on('SELECT send_message(', [{'result': True}])
    response = client.post('/api/chat/send', json={'receiver_id': OTHER_ID, 'content': '<b>hi</b>'},
                           headers=user_headers())
    assert response.status_code == 200
    (_, params), = db.queries('SELECT send_message(')
    assert params == (OTHER_ID, '&lt;b&gt;hi&lt;/b&gt;')
    assert db.ran("set_config('request.jwt.claims'")


def test_cannot_message_self(client, db):
    response = client.post('/api/chat/send', json={'receiver_id': USER_ID, 'content': 'hi'}, headers=user_headers())
    assert response.status_code == 400
    assert not db.ran('send_message')


def test_message_length_is_capped(client, db):
    db.on('SELECT send_message(', [{'result': True}])
    client.post('/api/chat/send', json={'receiver_id': OTHER_ID, 'content': 'x' * 5000}, headers=user_headers())
    (_, params), = db.queries('SELECT send_message(')
    assert len(params[1]) == 1000


def test_chat_rate_limit(client, db):
    db.on('SELECT send_message(', [{'result': True}])
    for _ in range(30):
        client.post('/api/chat/send', json={'receiver_id': OTHER_ID, 'content': 'hi'}, headers=user_headers())
    response = client.post('/api/chat/send', json={'receiver_id': OTHER_ID, 'content': 'hi'}, headers=user_headers())
    assert response.status_code == 429


def test_friend_request_actions(client, db):
    db.on('SELECT accept_friend_request(', [{'result': True}])
    assert client.post('/api/friends/requests/r1/accept', headers=user_headers()).get_json()['action'] == 'accept'
    assert client.post('/api/friends/requests/r1/ignore', headers=user_headers()).status_code == 404


def test_friend_request_error_relayed(client, db):
    db.on('SELECT send_friend_request(', psycopg2.Error('already friends'))
    response = client.post('/api/friends/request', json={'target_user_id': OTHER_ID}, headers=user_headers())
    assert response.status_code == 400
    assert 'already friends' in response.get_json()['error']
    assert db.rollbacks == 1


def test_user_search_needs_two_characters(client, db):
    assert client.get('/api/users/search?q=a', headers=user_headers()).status_code == 400


def test_ticket_id_format():
    assert re.fullmatch(r'RPT-[A-Z0-9]{8}', generate_ticket_id())


def test_report_submission(client, db):
    db.on('INSERT INTO reports', lambda params: [{'id': 1, 'ticket_id': params[1], 'status': 'pending',
                                                  'created_at': None}])
    response = client.post('/api/reports', json={
        'title': 'Spin stuck', 'description': 'Wheel froze', 'priority': 'high',
        'image_urls': ['https://cdn.example.com/a.png'],
    }, headers=user_headers())
    assert response.status_code == 200
    report = response.get_json()['report']
    assert report['ticket_id'].startswith('RPT-')
    (_, params), = db.queries('INSERT INTO reports')
    assert params[4] == 'high'
    assert params[5] == ['https://cdn.example.com/a.png']


def test_report_validation(client, db):
    base = {'title': 'Spin stuck', 'description': 'Wheel froze'}
    bad = [
        {**base, 'priority': 'critical'},
        {**base, 'image_urls': ['http://insecure.example.com/a.png']},
        {**base, 'image_urls': ['https://x/%d.png' % i for i in range(6)]},
        {'title': '', 'description': 'x'},
    ]
    for payload in bad:
        assert client.post('/api/reports', json=payload, headers=user_headers()).status_code == 400
    assert not db.ran('INSERT INTO reports')

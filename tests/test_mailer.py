import pytest
import requests

from spinwin import mailer
from spinwin.config import config


class FakeResponse:
    def __init__(self, status_code, text='OK'):
        self.status_code = status_code
        self.text = text


@pytest.fixture
def emailjs(monkeypatch):
    monkeypatch.setattr(config, 'EMAILJS_SERVICE_ID', 'service_1')
    monkeypatch.setattr(config, 'EMAILJS_PUBLIC_KEY', 'public_1')
    monkeypatch.setattr(config, 'EMAILJS_PRIVATE_KEY', 'private_1')
    monkeypatch.setattr(config, 'EMAILJS_WITHDRAWAL_TEMPLATE_ID', 'template_w')
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json))
        return FakeResponse(200)

    monkeypatch.setattr(mailer.http_requests, 'post', fake_post)
    return calls


def test_unconfigured_email_is_skipped():
    assert mailer.send_template_email('template_w', {}) is False


def test_withdrawal_email_payload(emailjs):
    assert mailer.send_withdrawal_approved_email('a@example.com', 'Asha', 2000, 200.0, '9812345678')
    (url, payload), = emailjs
    assert url == config.EMAILJS_API_URL
    assert payload['service_id'] == 'service_1'
    assert payload['template_id'] == 'template_w'
    assert payload['accessToken'] == 'private_1'
    assert payload['template_params']['withdrawal_amount'] == '2,000'
    assert payload['template_params']['rupee_amount'] == '200.00'


def test_withdrawal_email_needs_address(emailjs):
    assert mailer.send_withdrawal_approved_email(None, 'Asha', 2000, 200.0, '9812345678') is False
    assert emailjs == []


def test_emailjs_errors_return_false(emailjs, monkeypatch):
    monkeypatch.setattr(mailer.http_requests, 'post', lambda *a, **k: FakeResponse(400, 'bad template'))
    assert mailer.send_template_email('template_w', {}) is False

    def boom(*args, **kwargs):
        raise requests.ConnectionError('down')
    monkeypatch.setattr(mailer.http_requests, 'post', boom)
    assert mailer.send_template_email('template_w', {}) is False


def test_daily_report_rendering():
    html = mailer.render_daily_report({'name': 'Asha', 'total_coins': 1200, 'today_spins': 3,
                                       'daily_spin_limit': 10, 'today_coins': 80})
    assert 'Hi Asha' in html
    assert '3 / 10' in html
    assert '<b>1200</b>' in html

"""Tests for forwarding attendance events to the backend."""

from dataclasses import replace
from datetime import datetime, timezone

import requests

from attendance_kiosk import events
from attendance_kiosk.attendance import AttendanceEvent, AttendanceStatus


class FakeResponse:
    def __init__(self, status_code=201, text=''):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400


def make_event():
    return AttendanceEvent(
        id='1-0-a',
        identity_id='a',
        display_name='Alice',
        occurred_at=datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc),
        status=AttendanceStatus.PRESENT,
    )


def test_send_event_posts_payload(monkeypatch, config):
    config = replace(config, backend_url='http://backend:4000', kiosk_id='lobby')
    calls = []

    def fake_post(url, json, timeout):
        calls.append((url, json, timeout))
        return FakeResponse(201)

    monkeypatch.setattr(events.requests, 'post', fake_post)

    assert events.send_event(make_event(), config) is True
    url, payload, timeout = calls[0]
    assert url == 'http://backend:4000/attendance'
    assert payload == {
        'studentId': 'a',
        'recognitionStatus': 'recognized',
        'timestamp': '2026-10-19T08:00:00+00:00',
        'kioskId': 'lobby',
    }
    assert timeout == 5


def test_send_event_rejected(monkeypatch, config):
    config = replace(config, backend_url='http://backend:4000')
    monkeypatch.setattr(events.requests, 'post', lambda *a, **kw: FakeResponse(500, 'boom'))
    assert events.send_event(make_event(), config) is False


def test_send_event_connection_error(monkeypatch, config):
    config = replace(config, backend_url='http://backend:4000')

    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError('refused')

    monkeypatch.setattr(events.requests, 'post', refuse)
    assert events.send_event(make_event(), config) is False


def test_forwarder_disabled_without_backend(config):
    assert events.make_forwarder(config) is None


def test_forwarder_sends(monkeypatch, config):
    config = replace(config, backend_url='http://backend:4000')
    sent = []
    monkeypatch.setattr(events, 'send_event', lambda event, cfg: sent.append(event) or True)

    forward = events.make_forwarder(config)
    event = make_event()
    assert forward(event) is True
    assert sent == [event]

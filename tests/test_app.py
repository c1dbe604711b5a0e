"""Tests for the kiosk HTTP API."""

import pytest

from attendance_kiosk.app import create_app
from attendance_kiosk.exceptions import ModelInitFailure
from attendance_kiosk.recognition.coordinator import DetectionCoordinator
from attendance_kiosk.streaming import FrameBuffer

from conftest import FakeProvider, enroll, face


@pytest.fixture
def frames():
    return FrameBuffer()


@pytest.fixture
def client(config, store, recorder, coordinator, provider, frames):
    app = create_app(config, store, recorder, coordinator, provider, frames, FrameBuffer())
    app.config['TESTING'] = True
    return app.test_client()


def test_health(client, store):
    enroll(store, 'a', 'Alice', 1.0)
    body = client.get('/health').get_json()
    assert body['status'] == 'ok'
    assert body['kiosk'] == 'idle'
    assert body['identities'] == 1
    assert body['attendance'] == 0


def test_enroll_with_descriptor(client, store):
    response = client.post('/students', json={
        'id': 's1', 'name': ' Alice ', 'email': 'alice@example.com',
        'face_descriptor': [1, 0, 0, 0],
    })
    assert response.status_code == 201
    assert response.get_json()['name'] == 'Alice'
    assert store.get('s1').embedding.tolist() == [1.0, 0.0, 0.0, 0.0]


def test_enroll_with_serialised_float32_array(client, store):
    response = client.post('/students', json={
        'name': 'Bob', 'face_descriptor': {'1': 0.5, '0': 0.25, '2': 0, '3': 0},
    })
    assert response.status_code == 201
    student_id = response.get_json()['id']
    assert store.get(student_id).embedding.tolist() == [0.25, 0.5, 0.0, 0.0]


@pytest.mark.parametrize('body, status', [
    ({'face_descriptor': [1, 0, 0, 0]}, 400),
    ({'name': 'Alice'}, 400),
    ({'name': 'Alice', 'face_descriptor': [1, 0]}, 400),
    ({'name': 'Alice', 'face_descriptor': ['x', 0, 0, 0]}, 400),
])
def test_enroll_rejects_bad_payloads(client, body, status):
    assert client.post('/students', json=body).status_code == status


def test_enroll_duplicate_id(client, store):
    enroll(store, 's1', 'Alice', 1.0)
    response = client.post('/students', json={'id': 's1', 'name': 'Other', 'face_descriptor': [0, 1, 0, 0]})
    assert response.status_code == 409
    assert response.get_json()['kind'] == 'DuplicateIdentity'


def test_list_students_sorted_by_name(client, store):
    enroll(store, 'b', 'bob', 0.0, 1.0)
    enroll(store, 'a', 'Alice', 1.0)
    names = [s['name'] for s in client.get('/students').get_json()]
    assert names == ['Alice', 'bob']


def test_get_update_delete_student(client, store):
    enroll(store, 'a', 'Alice', 1.0)

    assert client.get('/students/a').get_json()['name'] == 'Alice'
    assert client.get('/students/zzz').status_code == 404

    response = client.put('/students/a', json={'name': 'Alicia', 'face_descriptor': [0, 1, 0, 0]})
    assert response.status_code == 200
    assert store.get('a').display_name == 'Alicia'
    assert store.get('a').embedding.tolist() == [0.0, 1.0, 0.0, 0.0]
    assert client.put('/students/a', json={}).status_code == 400

    assert client.delete('/students/a').status_code == 204
    assert client.delete('/students/a').status_code == 404
    assert store.get('a') is None


def test_post_and_list_attendance(client, store):
    enroll(store, 'a', 'Alice', 1.0)
    enroll(store, 'b', 'Bob', 0.0, 1.0)

    assert client.post('/attendance', json={'studentId': 'a'}).status_code == 201
    assert client.post('/attendance', json={'studentId': 'b'}).status_code == 201
    assert client.post('/attendance', json={'studentId': 'nobody'}).status_code == 404
    assert client.post('/attendance', json={}).status_code == 400

    rows = client.get('/attendance').get_json()
    assert [r['studentId'] for r in rows] == ['b', 'a']
    assert rows[0]['name'] == 'Bob'

    rows = client.get('/attendance?studentId=a').get_json()
    assert [r['studentId'] for r in rows] == ['a']

    assert client.get('/attendance?from=2000-01-01T00:00:00Z').status_code == 200
    assert client.get('/attendance?from=2999-01-01T00:00:00Z').get_json() == []
    assert client.get('/attendance?from=yesterday').status_code == 400


def test_kiosk_state(client):
    body = client.get('/kiosk/state').get_json()
    assert body['status'] == 'idle'
    assert body['cooldownActive'] is False


def test_manual_capture(client, store, provider, frames, frame, recorder):
    assert client.post('/kiosk/capture').status_code == 503

    enroll(store, 'a', 'Alice', 1.0)
    provider.faces = [face(1.0)]
    frames.set(frame)

    response = client.post('/kiosk/capture')
    assert response.status_code == 202
    body = response.get_json()
    assert body['accepted'] is True
    assert body['state']['status'] == 'success'
    assert body['state']['message'] == 'Attendance marked for Alice'
    assert len(recorder) == 1


def test_capture_rejected_after_model_failure(config, store, recorder, frames, frame, timers):
    provider = FakeProvider(init_error=ModelInitFailure())
    coordinator = DetectionCoordinator(provider, store, recorder, config, timer_factory=timers)
    coordinator.start()
    client = create_app(config, store, recorder, coordinator, provider, frames).test_client()
    frames.set(frame)

    response = client.post('/kiosk/capture')
    assert response.status_code == 409
    assert response.get_json()['accepted'] is False


def test_toggle_auto_detection(client, coordinator):
    response = client.post('/kiosk/auto', json={'enabled': False})
    assert response.get_json()['autoDetection'] is False
    assert coordinator.accepts_automatic_trigger() is False
    assert client.post('/kiosk/auto', json={'enabled': 'no'}).status_code == 400


def test_retry(client):
    body = client.post('/kiosk/retry').get_json()
    assert body['ready'] is True


def test_api_without_kiosk(config, store, recorder):
    client = create_app(config, store, recorder).test_client()
    assert client.get('/kiosk/state').status_code == 503
    assert client.get('/video_feed').status_code == 404
    assert client.get('/health').get_json()['kiosk'] is None


def test_enroll_from_photo_without_provider(config, store, recorder):
    client = create_app(config, store, recorder).test_client()
    response = client.post('/students', json={'name': 'Alice', 'raw_image_path': '/tmp/alice.png'})
    assert response.status_code == 503

"""Test the QR attendance HTTP endpoints."""
import pytest

from conftest import DHAKA

BASE = '/api/qr-attendance'


@pytest.fixture
def cr_headers(auth_headers):
    return auth_headers('cr-1', 'cr', section_id='S1')


@pytest.fixture
def generated(client, manager, cr_headers):
    """An open session created through the API."""
    response = client.post(f'{BASE}/generate', json={
        'sectionId': 'S1',
        'courseId': 'C1',
        'duration': 15
    }, headers=cr_headers)
    assert response.status_code == 201
    return response.get_json()['data']


def scan(client, auth_headers, token, student_id='stu1', **extra):
    payload = {'qrCodeData': token, 'studentId': student_id}
    payload.update(extra)
    return client.post(f'{BASE}/scan', json=payload, headers=auth_headers(student_id, 'student'))


def test_health(client):
    assert client.get('/health').get_json()['status'] == 'healthy'
    assert client.get(f'{BASE}/health').status_code == 200


def test_generate_session(generated):
    assert generated['qrToken']
    assert generated['expiresIn'] == 15
    assert generated['session']['state'] == 'active'
    assert generated['session']['created_by'] == 'cr-1'
    assert 'token_secret' not in generated['session']


def test_generate_requires_token(client, manager):
    response = client.post(f'{BASE}/generate', json={'sectionId': 'S1', 'courseId': 'C1'})
    assert response.status_code == 401


def test_student_cannot_generate(client, manager, auth_headers):
    response = client.post(f'{BASE}/generate', json={
        'sectionId': 'S1', 'courseId': 'C1'
    }, headers=auth_headers('stu1', 'student'))
    assert response.status_code == 403


def test_cr_limited_to_own_section(client, manager, cr_headers):
    response = client.post(f'{BASE}/generate', json={
        'sectionId': 'S2', 'courseId': 'C1'
    }, headers=cr_headers)
    assert response.status_code == 403


def test_generate_validation_errors(client, manager, cr_headers):
    response = client.post(f'{BASE}/generate', json={'sectionId': 'S1'}, headers=cr_headers)
    assert response.status_code == 400
    assert 'courseId' in response.get_json()['message']

    response = client.post(f'{BASE}/generate', json={
        'sectionId': 'S1', 'courseId': 'C1', 'duration': 500
    }, headers=cr_headers)
    assert response.status_code == 400
    assert response.get_json()['code'] == 'invalid_duration'

    response = client.post(f'{BASE}/generate', json={
        'sectionId': 'S1', 'courseId': 'C1', 'requireLocation': True
    }, headers=cr_headers)
    assert response.get_json()['code'] == 'location_required'


def test_generate_conflict(client, generated, cr_headers):
    response = client.post(f'{BASE}/generate', json={
        'sectionId': 'S1', 'courseId': 'C1'
    }, headers=cr_headers)
    assert response.status_code == 409
    assert response.get_json()['code'] == 'session_conflict'


def test_scan_accepted(client, generated, auth_headers, clock):
    clock.advance(minutes=1)
    response = scan(client, auth_headers, generated['qrToken'])

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['outcome'] == 'accepted'
    assert data['sessionId'] == generated['session']['session_id']


def test_scan_duplicate(client, generated, auth_headers, clock):
    clock.advance(minutes=1)
    scan(client, auth_headers, generated['qrToken'])
    response = scan(client, auth_headers, generated['qrToken'])

    assert response.status_code == 422
    assert response.get_json()['code'] == 'rejected_duplicate'


def test_scan_expired(client, generated, auth_headers, clock):
    clock.advance(minutes=15, seconds=1)
    response = scan(client, auth_headers, generated['qrToken'])

    assert response.status_code == 422
    assert response.get_json()['code'] == 'rejected_expired'


def test_scan_invalid_token(client, manager, auth_headers):
    response = scan(client, auth_headers, 'garbage')
    assert response.status_code == 422
    assert response.get_json()['code'] == 'rejected_invalid_token'


def test_scan_outside_geofence(client, manager, cr_headers, auth_headers, clock):
    response = client.post(f'{BASE}/generate', json={
        'sectionId': 'S1',
        'courseId': 'C1',
        'allowedRadius': 50,
        'location': {'latitude': DHAKA[0], 'longitude': DHAKA[1]}
    }, headers=cr_headers)
    token = response.get_json()['data']['qrToken']
    clock.advance(minutes=1)

    response = scan(client, auth_headers, token, location={'latitude': 23.8121, 'longitude': 90.4125})

    assert response.status_code == 422
    assert response.get_json()['code'] == 'rejected_geofence'


def test_scan_bad_location_payload(client, generated, auth_headers):
    response = scan(client, auth_headers, generated['qrToken'], location={'latitude': 200, 'longitude': 0})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'invalid_location'


def test_student_scans_only_for_self(client, generated, auth_headers):
    response = client.post(f'{BASE}/scan', json={
        'qrCodeData': generated['qrToken'], 'studentId': 'stu2'
    }, headers=auth_headers('stu1', 'student'))
    assert response.status_code == 403


def test_active_session(client, generated, cr_headers):
    response = client.get(f'{BASE}/active/S1/C1', headers=cr_headers)
    assert response.status_code == 200
    assert response.get_json()['data']['session_id'] == generated['session']['session_id']

    assert client.get(f'{BASE}/active/S1/C9', headers=cr_headers).status_code == 404


def test_close_with_record(client, generated, auth_headers, cr_headers, roster, clock):
    roster.rosters['S1'] = ['stu1', 'stu2', 'stu3']
    clock.advance(minutes=1)
    scan(client, auth_headers, generated['qrToken'], 'stu1')
    scan(client, auth_headers, generated['qrToken'], 'stu2')
    clock.advance(minutes=5)

    session_id = generated['session']['session_id']
    response = client.put(f'{BASE}/close/{session_id}', json={}, headers=cr_headers)

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['session']['state'] == 'finalized'
    assert data['attendanceRecord']['present_count'] == 2
    assert data['attendanceRecord']['absent_count'] == 1
    assert data['stats'] == {'totalScanned': 2, 'sessionDuration': 6}

    assert client.get(f'{BASE}/active/S1/C1', headers=cr_headers).status_code == 404


def test_close_without_record_then_again(client, generated, cr_headers):
    session_id = generated['session']['session_id']
    response = client.put(f'{BASE}/close/{session_id}', json={
        'generateAttendanceRecord': False
    }, headers=cr_headers)
    assert response.status_code == 200
    assert response.get_json()['data']['attendanceRecord'] is None

    response = client.put(f'{BASE}/close/{session_id}', json={
        'generateAttendanceRecord': False
    }, headers=cr_headers)
    assert response.status_code == 409
    assert response.get_json()['code'] == 'already_closed'


def test_close_by_other_representative(client, generated, auth_headers):
    session_id = generated['session']['session_id']
    response = client.put(f'{BASE}/close/{session_id}', json={}, headers=auth_headers('cr-2', 'cr', 'S1'))
    assert response.status_code == 403

    response = client.put(f'{BASE}/close/{session_id}', json={}, headers=auth_headers('root', 'admin'))
    assert response.status_code == 200


def test_close_unknown_session(client, manager, cr_headers):
    response = client.put(f'{BASE}/close/missing', json={}, headers=cr_headers)
    assert response.status_code == 404


def test_stats(client, generated, auth_headers, cr_headers, roster, clock):
    roster.rosters['S1'] = ['stu1', 'stu2']
    clock.advance(minutes=1)
    scan(client, auth_headers, generated['qrToken'], 'stu1')

    session_id = generated['session']['session_id']
    response = client.get(f'{BASE}/stats/{session_id}', headers=cr_headers)

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['attendance']['attendedCount'] == 1
    assert data['attendance']['attendanceRate'] == 50.0
    assert data['recentScans'][0]['student_id'] == 'stu1'


def test_history(client, generated, cr_headers, auth_headers, manager):
    manager.generate_session('S2', 'C1')

    response = client.get(f'{BASE}/history?sectionId=S2', headers=cr_headers)
    data = response.get_json()['data']
    # A class representative is pinned to their own section
    assert [s['section_id'] for s in data['sessions']] == ['S1']
    assert data['pagination'] == {'page': 1, 'limit': 10, 'total': 1, 'pages': 1}

    response = client.get(f'{BASE}/history?courseId=C1&limit=1', headers=auth_headers('root', 'admin'))
    data = response.get_json()['data']
    assert data['pagination']['total'] == 2
    assert len(data['sessions']) == 1


def test_history_bad_page(client, manager, cr_headers):
    response = client.get(f'{BASE}/history?page=zero', headers=cr_headers)
    assert response.status_code == 400


def test_swagger_spec(client):
    spec = client.get('/api/swagger.json').get_json()
    assert '/qr-attendance/scan' in spec['paths']


def test_qr_image_rendering():
    from qr_attendance.services.qr_service import QRService

    image = QRService.render('header.payload.signature')
    assert image.startswith('data:image/png;base64,')

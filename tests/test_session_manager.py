"""Test the session lifecycle end to end against an in-memory database."""
import pytest

from qr_attendance.errors import (
    AlreadyClosed, InvalidDuration, InvalidLocation, InvalidRadius,
    LocationRequired, SessionConflict, SessionNotFound, SessionStillActive
)
from qr_attendance.models import AttendanceRecord
from qr_attendance.models.scan_attempt import ScanOutcome
from qr_attendance.services.geo_service import Location
from qr_attendance.services.session_manager import SessionManager
from qr_attendance.services.token_service import TokenCodec, to_timestamp
from conftest import DHAKA, START

CLASSROOM = Location(*DHAKA)
INSIDE = Location(23.8104, 90.4125, accuracy=10)
OUTSIDE = Location(23.8121, 90.4125, accuracy=5)  # ~200m north


def open_session(manager, section_id='S1', course_id='C1', **kwargs):
    kwargs.setdefault('duration', 15)
    return manager.generate_session(section_id, course_id, **kwargs)


# =================== CREATION ===================

def test_generate_session(manager):
    generated = open_session(manager, created_by='cr-1')
    session = generated.session

    assert session.is_active
    assert session.created_at == START
    assert (session.expires_at - session.created_at).total_seconds() == 15 * 60
    assert session.created_by == 'cr-1'
    assert generated.qr_image is None
    assert generated.to_dict()['expiresIn'] == 15
    assert 'token_secret' not in generated.to_dict()['session']


def test_generated_token_expires_with_session(manager):
    generated = open_session(manager)
    claims = manager.token_codec.verify(generated.qr_token)

    assert claims.session_id == generated.session.session_id
    assert to_timestamp(claims.expires_at) == to_timestamp(generated.session.expires_at)


def test_qr_image_rendered_when_configured(app, settings, clock, roster):
    manager = SessionManager(
        settings=settings,
        roster_provider=roster,
        qr_renderer=lambda token: f'data:image/png;base64,{len(token)}',
        clock=clock
    )
    generated = open_session(manager)
    assert generated.qr_image.startswith('data:image/png;base64,')


def test_default_duration_and_radius(manager):
    session = manager.generate_session('S1', 'C1').session
    assert session.max_duration == 15
    assert session.allowed_radius == 100


@pytest.mark.parametrize('duration', [4, 121, 0, -5, 15.5, '15', True])
def test_invalid_duration(manager, duration):
    with pytest.raises(InvalidDuration):
        open_session(manager, duration=duration)
    assert manager.get_active_session('S1', 'C1') is None


@pytest.mark.parametrize('duration', [5, 120, 30.0])
def test_duration_bounds_are_inclusive(manager, duration):
    assert open_session(manager, duration=duration).session.max_duration == int(duration)


@pytest.mark.parametrize('radius', [5, 1001, 'wide'])
def test_invalid_radius(manager, radius):
    with pytest.raises(InvalidRadius):
        open_session(manager, location=CLASSROOM, allowed_radius=radius)


def test_location_required_without_center(manager):
    with pytest.raises(LocationRequired):
        open_session(manager, require_location=True)


def test_invalid_center(manager):
    with pytest.raises(InvalidLocation):
        open_session(manager, location=Location(95, 0))


def test_location_makes_geofence_required_by_default(manager):
    assert open_session(manager, location=CLASSROOM).session.require_location is True
    assert open_session(manager, course_id='C2').session.require_location is False


def test_second_active_session_conflicts(manager):
    open_session(manager)
    with pytest.raises(SessionConflict):
        open_session(manager)


def test_new_session_allowed_after_expiry(manager, clock):
    first = open_session(manager).session
    clock.advance(minutes=16)

    second = open_session(manager).session

    assert second.session_id != first.session_id
    assert manager.get_session(first.session_id).state == 'expired'


# =================== SCANNING ===================

def test_scenario_accepted_scan(manager, clock):
    generated = open_session(manager)
    clock.advance(minutes=3)

    result = manager.submit_scan(generated.qr_token, 'stu1')

    assert result.accepted
    assert result.session_id == generated.session.session_id
    assert result.scan.scanned_at == clock.now
    assert manager.get_stats(generated.session.session_id).attended_count == 1


def test_scenario_duplicate_scan(manager, clock):
    generated = open_session(manager)
    clock.advance(minutes=1)
    manager.submit_scan(generated.qr_token, 'stu1')
    clock.advance(minutes=1)

    result = manager.submit_scan(generated.qr_token, 'stu1')

    assert result.outcome is ScanOutcome.REJECTED_DUPLICATE
    assert manager.get_stats(generated.session.session_id).attended_count == 1


def test_scenario_outside_geofence(manager, clock):
    generated = open_session(manager, location=CLASSROOM, allowed_radius=50)
    clock.advance(minutes=1)

    result = manager.submit_scan(generated.qr_token, 'stu1', location=OUTSIDE)

    assert result.outcome is ScanOutcome.REJECTED_GEOFENCE
    assert 'away from the classroom' in result.message


def test_inside_geofence(manager, clock):
    generated = open_session(manager, location=CLASSROOM, allowed_radius=50)
    clock.advance(minutes=1)

    assert manager.submit_scan(generated.qr_token, 'stu1', location=INSIDE).accepted


def test_missing_location_rejected(manager, clock):
    generated = open_session(manager, location=CLASSROOM, allowed_radius=50)
    clock.advance(minutes=1)

    result = manager.submit_scan(generated.qr_token, 'stu1')
    assert result.outcome is ScanOutcome.REJECTED_INVALID_TOKEN


def test_scenario_scan_one_second_after_expiry(manager, clock):
    generated = open_session(manager)
    clock.now = generated.session.expires_at
    assert manager.submit_scan(generated.qr_token, 'stu1').accepted

    clock.advance(seconds=1)
    result = manager.submit_scan(generated.qr_token, 'stu2')

    assert result.outcome is ScanOutcome.REJECTED_EXPIRED
    assert result.session_id == generated.session.session_id
    # The rejection is kept in the ledger
    ledger = manager.store.list_scans(manager.get_session(generated.session.session_id))
    assert [scan.outcome for scan in ledger] == [ScanOutcome.ACCEPTED, ScanOutcome.REJECTED_EXPIRED]


def test_forged_token_rejected_and_logged_to_ledger(manager, clock):
    generated = open_session(manager)
    session = generated.session
    forged = TokenCodec.issue(session.session_id, TokenCodec.generate_secret(), session.expires_at)
    clock.advance(minutes=1)

    result = manager.submit_scan(forged, 'stu1')

    assert result.outcome is ScanOutcome.REJECTED_INVALID_TOKEN
    ledger = manager.store.list_scans(session)
    assert [scan.outcome for scan in ledger] == [ScanOutcome.REJECTED_INVALID_TOKEN]
    assert manager.get_stats(session.session_id).attended_count == 0


def test_garbage_token_rejected(manager):
    result = manager.submit_scan('definitely-not-a-token', 'stu1')
    assert result.outcome is ScanOutcome.REJECTED_INVALID_TOKEN
    assert result.session_id is None
    assert result.scan is None


def test_previous_session_token_does_not_redeem(manager, clock):
    first = open_session(manager)
    manager.close_session(first.session.session_id)
    second = open_session(manager)
    clock.advance(minutes=1)

    result = manager.submit_scan(first.qr_token, 'stu1')

    assert result.outcome is ScanOutcome.REJECTED_EXPIRED
    assert result.session_id == first.session.session_id
    assert manager.get_stats(second.session.session_id).attended_count == 0


def test_scan_after_close_rejected(manager, clock):
    generated = open_session(manager)
    clock.advance(minutes=2)
    manager.close_session(generated.session.session_id)

    result = manager.submit_scan(generated.qr_token, 'stu1')
    assert result.outcome is ScanOutcome.REJECTED_EXPIRED


def test_shared_device_rejected(manager, clock):
    generated = open_session(manager)
    clock.advance(minutes=1)
    assert manager.submit_scan(generated.qr_token, 'stu1', device_fingerprint='phone-1').accepted

    clock.advance(seconds=30)
    result = manager.submit_scan(generated.qr_token, 'stu2', device_fingerprint='phone-1')
    assert result.outcome is ScanOutcome.REJECTED_SUSPICIOUS


# =================== CLOSING ===================

def test_scenario_attendance_record(manager, clock, roster):
    roster.rosters['S1'] = [f'stu{n:02d}' for n in range(1, 31)]
    generated = open_session(manager)

    for n in range(1, 23):
        clock.advance(seconds=10)
        assert manager.submit_scan(generated.qr_token, f'stu{n:02d}').accepted

    clock.advance(minutes=2)
    closed = manager.close_session(generated.session.session_id, generate_attendance_record=True)

    record = closed.record
    assert record.present_count == 22
    assert record.absent_count == 8
    statuses = {entry.student_id: entry.status for entry in record.entries}
    assert statuses['stu01'] == 'present'
    assert statuses['stu30'] == 'absent'
    assert closed.total_scanned == 22
    assert closed.session.state == 'finalized'
    assert closed.to_dict()['attendanceRecord']['present_count'] == 22


def test_rejected_attempts_do_not_mark_present(manager, clock, roster):
    roster.rosters['S1'] = ['stu1', 'stu2']
    generated = open_session(manager, location=CLASSROOM, allowed_radius=50)
    clock.advance(minutes=1)
    manager.submit_scan(generated.qr_token, 'stu1', location=OUTSIDE)
    manager.submit_scan(generated.qr_token, 'stu2', location=INSIDE)

    record = manager.close_session(generated.session.session_id, generate_attendance_record=True).record

    statuses = {entry.student_id: entry.status for entry in record.entries}
    assert statuses == {'stu1': 'absent', 'stu2': 'present'}


def test_scanned_student_outside_roster_is_present(manager, clock, roster):
    roster.rosters['S1'] = ['stu1']
    generated = open_session(manager)
    clock.advance(minutes=1)
    manager.submit_scan(generated.qr_token, 'visitor')

    record = manager.close_session(generated.session.session_id, generate_attendance_record=True).record

    assert record.present_count == 1
    assert record.absent_count == 1


def test_close_without_record(manager):
    generated = open_session(manager)
    closed = manager.close_session(generated.session.session_id)

    assert closed.record is None
    assert closed.session.state == 'closed'
    assert manager.get_active_session('S1', 'C1') is None


def test_close_twice_without_record_fails(manager):
    generated = open_session(manager)
    manager.close_session(generated.session.session_id)

    with pytest.raises(AlreadyClosed):
        manager.close_session(generated.session.session_id)


def test_finalize_is_idempotent(manager, roster):
    roster.rosters['S1'] = ['stu1']
    session_id = open_session(manager).session.session_id

    first = manager.close_session(session_id, generate_attendance_record=True).record
    second = manager.close_session(session_id, generate_attendance_record=True).record
    third = manager.finalize_session(session_id)

    assert first.id == second.id == third.id
    assert AttendanceRecord.query.filter_by(session_id=session_id).count() == 1


def test_finalize_expired_session(manager, clock, roster):
    roster.rosters['S1'] = ['stu1', 'stu2']
    generated = open_session(manager)
    clock.advance(minutes=1)
    manager.submit_scan(generated.qr_token, 'stu1')
    clock.advance(minutes=20)

    record = manager.finalize_session(generated.session.session_id)

    assert record.present_count == 1
    assert record.absent_count == 1
    assert manager.get_session(generated.session.session_id).state == 'finalized'


def test_finalize_active_session_fails(manager):
    generated = open_session(manager)
    with pytest.raises(SessionStillActive):
        manager.finalize_session(generated.session.session_id)


def test_unknown_session(manager):
    with pytest.raises(SessionNotFound):
        manager.close_session('missing')
    with pytest.raises(SessionNotFound):
        manager.get_stats('missing')


# =================== HISTORY ===================

def test_session_history(manager, clock):
    first = open_session(manager).session
    manager.close_session(first.session_id)
    clock.advance(days=1)
    second = open_session(manager).session
    open_session(manager, section_id='S2')

    history = manager.get_session_history(section_id='S1')
    assert [s.session_id for s in history.items] == [second.session_id, first.session_id]

    history = manager.get_session_history(course_id='C1', page=1, per_page=2)
    assert history.total == 3
    assert history.pages == 2


def test_inflated_accuracy_cannot_bypass_geofence(manager, clock):
    generated = open_session(manager, location=CLASSROOM, allowed_radius=50)
    clock.advance(minutes=1)

    result = manager.submit_scan(generated.qr_token, 'stu1', location=Location(40.7128, -74.0060, accuracy=1e8))

    assert result.outcome is ScanOutcome.REJECTED_SUSPICIOUS
    assert manager.get_stats(generated.session.session_id).attended_count == 0

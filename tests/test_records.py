"""Test roster providers and attendance record persistence."""
from datetime import date

import pytest

from qr_attendance.models import AttendanceRecord, SectionEnrollment
from qr_attendance.services.records import (
    ABSENT, PRESENT, AttendanceLine, EnrollmentRosterProvider,
    FinalizedAttendance, SQLAttendanceRecordRepository, StaticRosterProvider
)


@pytest.fixture
def repository(app):
    return SQLAttendanceRecordRepository()


def make_record(session_id='s-1'):
    return FinalizedAttendance(
        session_id=session_id,
        section_id='S1',
        course_id='C1',
        date=date(2026, 3, 2),
        taken_by='cr-1',
        lines=[
            AttendanceLine('stu1', PRESENT, 'Scanned at 09:01:00'),
            AttendanceLine('stu2', ABSENT),
        ]
    )


def test_save_and_get_record(repository):
    record_id = repository.save_attendance_record(make_record())

    record = repository.get_record(record_id)
    assert record.present_count == 1
    assert record.absent_count == 1
    assert [entry.student_id for entry in record.entries] == ['stu1', 'stu2']
    assert repository.get_record_for_session('s-1').id == record_id


def test_second_save_for_session_returns_existing(repository):
    first = repository.save_attendance_record(make_record())
    second = repository.save_attendance_record(make_record())

    assert first == second
    assert AttendanceRecord.query.filter_by(session_id='s-1').count() == 1


def test_unknown_record(repository):
    assert repository.get_record(999) is None
    assert repository.get_record_for_session('missing') is None


def test_enrollment_roster(app):
    assert SectionEnrollment.enroll('S1', ['stu2', 'stu1']) == 2
    assert SectionEnrollment.enroll('S1', ['stu1', 'stu3']) == 1

    assert EnrollmentRosterProvider().get_roster_for_section('S1') == ['stu1', 'stu2', 'stu3']
    assert EnrollmentRosterProvider().get_roster_for_section('S9') == []


def test_static_roster():
    roster = StaticRosterProvider({'S1': ('stu1', 'stu2')})
    assert roster.get_roster_for_section('S1') == ['stu1', 'stu2']
    assert roster.get_roster_for_section('S2') == []

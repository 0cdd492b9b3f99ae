"""Roster and attendance-record collaborators of the session core."""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from qr_attendance import db
from qr_attendance.models.attendance import AttendanceEntry, AttendanceRecord
from qr_attendance.models.enrollment import SectionEnrollment

logger = logging.getLogger(__name__)

PRESENT = 'present'
ABSENT = 'absent'


@dataclass(frozen=True)
class AttendanceLine:
    student_id: str
    status: str
    note: Optional[str] = None


@dataclass
class FinalizedAttendance:
    """Attendance computed from a closed or expired session."""
    session_id: str
    section_id: str
    course_id: str
    date: date
    taken_by: Optional[str]
    lines: List[AttendanceLine] = field(default_factory=list)

    @property
    def present_count(self) -> int:
        return sum(1 for line in self.lines if line.status == PRESENT)

    @property
    def absent_count(self) -> int:
        return sum(1 for line in self.lines if line.status == ABSENT)


# =================== ROSTERS ===================

class RosterProvider:
    """Source of the students expected in a section."""

    def get_roster_for_section(self, section_id: str) -> List[str]:
        raise NotImplementedError


class EnrollmentRosterProvider(RosterProvider):
    """Roster backed by the section_enrollments table."""

    def get_roster_for_section(self, section_id: str) -> List[str]:
        return SectionEnrollment.student_ids_for(section_id)


class StaticRosterProvider(RosterProvider):
    """In-memory roster, keyed by section id."""

    def __init__(self, rosters: Dict[str, Iterable[str]] = None):
        self.rosters = {key: list(value) for key, value in (rosters or {}).items()}

    def get_roster_for_section(self, section_id: str) -> List[str]:
        return list(self.rosters.get(section_id, []))


# =================== RECORDS ===================

class AttendanceRecordRepository:
    """Durable storage for finalized attendance."""

    def save_attendance_record(self, record: FinalizedAttendance) -> int:
        raise NotImplementedError

    def get_record(self, record_id: int):
        raise NotImplementedError

    def get_record_for_session(self, session_id: str):
        raise NotImplementedError


class SQLAttendanceRecordRepository(AttendanceRecordRepository):
    """Stores records in attendance_records / attendance_entries."""

    def save_attendance_record(self, record: FinalizedAttendance) -> int:
        """Persist a record once per session; a repeat returns the existing id."""
        row = AttendanceRecord(
            session_id=record.session_id,
            section_id=record.section_id,
            course_id=record.course_id,
            date=record.date,
            taken_by=record.taken_by,
            present_count=record.present_count,
            absent_count=record.absent_count
        )
        row.entries = [
            AttendanceEntry(student_id=line.student_id, status=line.status, note=line.note)
            for line in record.lines
        ]

        try:
            row.save()
        except IntegrityError:
            db.session.rollback()
            existing = self.get_record_for_session(record.session_id)
            if existing is None:
                raise
            return existing.id

        logger.info(
            'Saved attendance record %s for session %s (%d present, %d absent)',
            row.id, record.session_id, row.present_count, row.absent_count
        )
        return row.id

    def get_record(self, record_id: int) -> Optional[AttendanceRecord]:
        return AttendanceRecord.get_by_id(record_id)

    def get_record_for_session(self, session_id: str) -> Optional[AttendanceRecord]:
        return AttendanceRecord.query.filter_by(session_id=session_id).first()

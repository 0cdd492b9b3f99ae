"""Models package with all models."""
from .base import BaseModel
from .attendance_session import AttendanceSession, SessionStatus
from .scan_attempt import ScanAttempt, ScanOutcome
from .attendance import AttendanceRecord, AttendanceEntry
from .enrollment import SectionEnrollment

__all__ = [
    'BaseModel', 'AttendanceSession', 'SessionStatus',
    'ScanAttempt', 'ScanOutcome',
    'AttendanceRecord', 'AttendanceEntry',
    'SectionEnrollment'
]

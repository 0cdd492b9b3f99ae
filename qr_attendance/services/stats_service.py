"""Live attendance statistics for a session."""
from dataclasses import dataclass, field
from typing import Iterable, List, Set


@dataclass
class SessionStats:
    """Aggregate view of a session ledger against its roster."""
    session_id: str
    state: str
    total_students: int
    attended_count: int
    absent_count: int
    attendance_rate: float
    recent_scans: List = field(default_factory=list)
    session_info: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'sessionInfo': self.session_info,
            'attendance': {
                'totalStudents': self.total_students,
                'attendedCount': self.attended_count,
                'absentCount': self.absent_count,
                'attendanceRate': self.attendance_rate
            },
            'recentScans': [scan.to_dict() for scan in self.recent_scans]
        }


class StatsService:
    """Computes present/absent counts and the recent scan feed."""

    @staticmethod
    def compute_stats(session, roster: Iterable[str], accepted: Set[str] = None, recent_scans: List = None) -> SessionStats:
        """
        Compute live stats for a session.

        Students with an accepted scan count as part of the class even when
        the roster does not list them, so attended + absent always equals
        total_students.
        """
        if accepted is None:
            accepted = {scan.student_id for scan in session.scans if scan.is_accepted}
        if recent_scans is None:
            recent_scans = sorted(
                session.scans,
                key=lambda scan: (scan.scanned_at, scan.id or 0),
                reverse=True
            )[:10]

        students = set(roster) | set(accepted)
        total_students = len(students)
        attended_count = len(accepted)
        absent_count = total_students - attended_count

        attendance_rate = 0.0
        if total_students > 0:
            attendance_rate = round(attended_count / total_students * 100, 2)

        return SessionStats(
            session_id=session.session_id,
            state=session.state,
            total_students=total_students,
            attended_count=attended_count,
            absent_count=absent_count,
            attendance_rate=attendance_rate,
            recent_scans=list(recent_scans),
            session_info={
                'sessionId': session.session_id,
                'sectionId': session.section_id,
                'courseId': session.course_id,
                'startTime': session.created_at.isoformat(),
                'endTime': session.expires_at.isoformat(),
                'status': session.status.value,
                'state': session.state,
                'isActive': session.is_active
            }
        )

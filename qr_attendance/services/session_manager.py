"""Attendance session orchestration: create, scan, close, finalize."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from qr_attendance.config import SessionSettings
from qr_attendance.errors import (
    AlreadyClosed, InvalidDuration, InvalidLocation, InvalidRadius,
    InvalidToken, LocationRequired, RequestValidationError, SessionNotFound,
    SessionStillActive, TokenExpired
)
from qr_attendance.models.attendance_session import AttendanceSession
from qr_attendance.models.scan_attempt import ScanAttempt, ScanOutcome
from qr_attendance.services.anti_cheat import AntiCheatEvaluator, Evaluation, ScanCandidate
from qr_attendance.services.geo_service import GeoService, Location
from qr_attendance.services.records import (
    ABSENT, PRESENT, AttendanceLine, AttendanceRecordRepository,
    EnrollmentRosterProvider, FinalizedAttendance, RosterProvider,
    SQLAttendanceRecordRepository
)
from qr_attendance.services.session_store import NewSession, SessionStore
from qr_attendance.services.stats_service import SessionStats
from qr_attendance.services.token_service import TokenCodec

logger = logging.getLogger(__name__)

OUTCOME_MESSAGES = {
    ScanOutcome.ACCEPTED: 'Attendance marked successfully',
    ScanOutcome.REJECTED_DUPLICATE: 'You have already marked attendance for this session',
    ScanOutcome.REJECTED_EXPIRED: 'This QR code has expired',
    ScanOutcome.REJECTED_GEOFENCE: 'You are outside the allowed area',
    ScanOutcome.REJECTED_SUSPICIOUS: 'This scan was flagged as suspicious',
    ScanOutcome.REJECTED_INVALID_TOKEN: 'Invalid or corrupted QR code'
}


@dataclass
class GeneratedSession:
    session: AttendanceSession
    qr_token: str
    qr_image: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'session': self.session.to_dict(),
            'qrToken': self.qr_token,
            'qrCode': self.qr_image,
            'expiresIn': self.session.max_duration
        }


@dataclass
class ScanResult:
    outcome: ScanOutcome
    message: str
    scan: Optional[ScanAttempt] = None
    session_id: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is ScanOutcome.ACCEPTED

    def to_dict(self) -> dict:
        return {
            'outcome': self.outcome.value,
            'message': self.message,
            'sessionId': self.session_id,
            'scannedAt': self.scan.scanned_at.isoformat() if self.scan else None
        }


@dataclass
class ClosedSession:
    session: AttendanceSession
    record: Optional[object] = None
    total_scanned: int = 0
    duration_minutes: int = 0

    def to_dict(self) -> dict:
        return {
            'session': self.session.to_dict(),
            'attendanceRecord': self.record.to_dict() if self.record else None,
            'stats': {
                'totalScanned': self.total_scanned,
                'sessionDuration': self.duration_minutes
            }
        }


class SessionManager:
    """
    Public entry point of the QR attendance core.

    State machine per session:

        active --(close | expiry observed)--> closed | expired --(finalize)--> finalized

    Nothing leaves closed, expired or finalized, and finalizing twice returns
    the record created the first time.
    """

    def __init__(
        self,
        settings: SessionSettings = None,
        store: SessionStore = None,
        roster_provider: RosterProvider = None,
        record_repository: AttendanceRecordRepository = None,
        qr_renderer: Callable[[str], str] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.settings = settings or SessionSettings()
        self.store = store or SessionStore()
        self.roster_provider = roster_provider or EnrollmentRosterProvider()
        self.record_repository = record_repository or SQLAttendanceRecordRepository()
        self.qr_renderer = qr_renderer
        self.clock = clock
        self.evaluator = AntiCheatEvaluator(self.settings)
        self.token_codec = TokenCodec(self.store.get_token_material, clock=self._now)

    def _now(self) -> datetime:
        return self.clock()

    # =================== CREATION ===================

    def generate_session(
        self,
        section_id: str,
        course_id: str,
        duration: int = None,
        location: Location = None,
        allowed_radius: float = None,
        anti_cheat_enabled: bool = True,
        require_location: bool = None,
        created_by: str = None
    ) -> GeneratedSession:
        """
        Open an attendance window and issue its QR token.

        Raises InvalidDuration, InvalidRadius, InvalidLocation,
        LocationRequired or SessionConflict. Validation happens before
        anything is written.
        """
        if not section_id or not course_id:
            raise RequestValidationError('Section ID and course ID are required')

        duration = self._validate_duration(duration)
        radius = self._validate_radius(allowed_radius)

        if location is not None and not GeoService.is_valid_coordinates(location):
            raise InvalidLocation()

        if require_location is None:
            require_location = location is not None
        if require_location and location is None:
            raise LocationRequired()

        # Whole seconds, so the token exp claim equals expires_at
        created_at = self._now().replace(microsecond=0)
        expires_at = created_at + timedelta(minutes=duration)

        session = self.store.create_session(NewSession(
            section_id=section_id,
            course_id=course_id,
            max_duration=duration,
            created_at=created_at,
            expires_at=expires_at,
            allowed_radius=radius,
            anti_cheat_enabled=bool(anti_cheat_enabled),
            require_location=bool(require_location),
            location=location,
            created_by=created_by
        ))

        qr_token = TokenCodec.issue(
            session.session_id,
            session.token_secret,
            session.expires_at,
            version=session.token_version,
            issued_at=created_at
        )
        qr_image = self.qr_renderer(qr_token) if self.qr_renderer else None

        logger.info(
            'Opened attendance session %s for section %s course %s (%d min, radius %sm, anti-cheat %s)',
            session.session_id, section_id, course_id, duration, radius,
            'on' if session.anti_cheat_enabled else 'off'
        )
        return GeneratedSession(session=session, qr_token=qr_token, qr_image=qr_image)

    def get_active_session(self, section_id: str, course_id: str) -> Optional[AttendanceSession]:
        return self.store.get_active_session(section_id, course_id, self._now())

    def get_session(self, session_id: str) -> AttendanceSession:
        session = self.store.get_session(session_id, self._now())
        if session is None:
            raise SessionNotFound()
        return session

    # =================== SCANNING ===================

    def submit_scan(
        self,
        token: str,
        student_id: str,
        location: Location = None,
        device_fingerprint: str = None
    ) -> ScanResult:
        """
        Redeem a QR token for a student.

        Rejections are results, not exceptions. Whenever the token names a
        known session the attempt is appended to that session's ledger, but
        only an accepted scan marks the student present.
        """
        if not student_id:
            raise RequestValidationError('Student ID is required')

        now = self._now()
        candidate = ScanCandidate(
            student_id=student_id,
            scanned_at=now,
            location=location,
            device_fingerprint=device_fingerprint
        )

        try:
            claims = self.token_codec.verify(token)
        except TokenExpired as e:
            return self._reject(e.session_id, candidate, ScanOutcome.REJECTED_EXPIRED, e.message, now)
        except InvalidToken as e:
            return self._reject(e.session_id, candidate, ScanOutcome.REJECTED_INVALID_TOKEN, e.message, now)

        session = self.store.get_session(claims.session_id, now)
        if session is None:
            return self._reject(None, candidate, ScanOutcome.REJECTED_INVALID_TOKEN,
                                'Attendance session not found', now)

        evaluation = self.evaluator.evaluate(session, candidate, self.store.list_scans(session))
        attempt = self.store.append_scan(session.session_id, candidate, evaluation, now)

        if attempt.is_accepted:
            logger.info('Student %s marked present in session %s', student_id, session.session_id)
        else:
            logger.warning(
                'Rejected scan by student %s in session %s: %s (%s)',
                student_id, session.session_id, attempt.outcome.value, attempt.reason
            )

        return ScanResult(
            outcome=attempt.outcome,
            message=attempt.reason or OUTCOME_MESSAGES[attempt.outcome],
            scan=attempt,
            session_id=session.session_id
        )

    def _reject(
        self,
        session_id: Optional[str],
        candidate: ScanCandidate,
        outcome: ScanOutcome,
        reason: str,
        now: datetime
    ) -> ScanResult:
        """Record a token-level rejection in the ledger when the session is known."""
        logger.warning(
            'Rejected scan by student %s (session %s): %s (%s)',
            candidate.student_id, session_id or 'unknown', outcome.value, reason
        )

        attempt = None
        if session_id is not None and self.store.get_session(session_id, now) is not None:
            attempt = self.store.append_scan(session_id, candidate, Evaluation(outcome, reason), now)

        return ScanResult(
            outcome=outcome,
            message=reason or OUTCOME_MESSAGES[outcome],
            scan=attempt,
            session_id=session_id
        )

    # =================== CLOSING ===================

    def close_session(self, session_id: str, generate_attendance_record: bool = False) -> ClosedSession:
        """
        Close a session and optionally finalize it into an attendance record.

        Raises SessionNotFound, or AlreadyClosed when the session is no
        longer active and no record was requested. Requesting a record on a
        closed or expired session finalizes it, or returns the existing
        record if that already happened.
        """
        now = self._now()

        try:
            session = self.store.close_session(session_id, now)
        except AlreadyClosed:
            if not generate_attendance_record:
                raise
            session = self.get_session(session_id)

        record = None
        if generate_attendance_record:
            record = self.finalize_session(session_id)
            session = self.get_session(session_id)

        return ClosedSession(
            session=session,
            record=record,
            total_scanned=len(self.store.accepted_student_ids(session)),
            duration_minutes=round((now - session.created_at).total_seconds() / 60)
        )

    def finalize_session(self, session_id: str):
        """Create the attendance record for a closed or expired session. Idempotent."""
        session = self.get_session(session_id)

        if session.is_active:
            raise SessionStillActive()

        if session.attendance_record_id is not None:
            record = self.record_repository.get_record(session.attendance_record_id)
            if record is not None:
                return record

        record = self.record_repository.get_record_for_session(session_id)
        if record is None:
            record_id = self.record_repository.save_attendance_record(self._build_record(session))
            record = self.record_repository.get_record(record_id)

        self.store.mark_finalized(session_id, record.id, self._now())
        logger.info('Finalized attendance session %s into record %s', session_id, record.id)
        return record

    def _build_record(self, session: AttendanceSession) -> FinalizedAttendance:
        """Roster members without an accepted scan are absent."""
        scanned_at = {}
        for scan in self.store.list_scans(session):
            if scan.is_accepted and scan.student_id not in scanned_at:
                scanned_at[scan.student_id] = scan.scanned_at

        roster = self.roster_provider.get_roster_for_section(session.section_id)
        students = sorted(set(roster) | set(scanned_at))

        lines = []
        for student_id in students:
            if student_id in scanned_at:
                lines.append(AttendanceLine(
                    student_id, PRESENT, f'Scanned at {scanned_at[student_id]:%H:%M:%S}'
                ))
            else:
                lines.append(AttendanceLine(student_id, ABSENT))

        return FinalizedAttendance(
            session_id=session.session_id,
            section_id=session.section_id,
            course_id=session.course_id,
            date=session.created_at.date(),
            taken_by=session.created_by,
            lines=lines
        )

    # =================== STATS & HISTORY ===================

    def get_stats(self, session_id: str) -> SessionStats:
        """Live counts and recent scans for a session."""
        session = self.get_session(session_id)
        roster = self.roster_provider.get_roster_for_section(session.section_id)
        return self.store.get_stats(
            session_id,
            roster,
            recent_limit=self.settings.recent_scans_limit,
            now=self._now()
        )

    def get_session_history(
        self,
        section_id: str = None,
        course_id: str = None,
        date_from: datetime = None,
        date_to: datetime = None,
        page: int = 1,
        per_page: int = 10
    ):
        return self.store.list_sessions(
            section_id=section_id,
            course_id=course_id,
            date_from=date_from,
            date_to=date_to,
            page=page,
            per_page=per_page
        )

    # =================== VALIDATION ===================

    def _validate_duration(self, duration) -> int:
        if duration is None:
            return self.settings.default_duration

        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            raise InvalidDuration('Duration must be a number of minutes')
        if isinstance(duration, float) and not duration.is_integer():
            raise InvalidDuration('Duration must be a whole number of minutes')

        if duration < self.settings.min_duration or duration > self.settings.max_duration:
            raise InvalidDuration(
                f'Duration must be between {self.settings.min_duration} '
                f'and {self.settings.max_duration} minutes'
            )
        return int(duration)

    def _validate_radius(self, radius) -> float:
        if radius is None:
            return self.settings.default_radius

        if isinstance(radius, bool) or not isinstance(radius, (int, float)):
            raise InvalidRadius('Allowed radius must be a number of meters')

        if radius < self.settings.min_radius or radius > self.settings.max_radius:
            raise InvalidRadius(
                f'Allowed radius must be between {self.settings.min_radius} '
                f'and {self.settings.max_radius} meters'
            )
        return radius

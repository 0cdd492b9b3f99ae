"""Persistence of attendance sessions and their scan ledgers."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError

from qr_attendance import db
from qr_attendance.errors import AlreadyClosed, SessionConflict, SessionNotFound
from qr_attendance.models.attendance_session import AttendanceSession, SessionStatus
from qr_attendance.models.scan_attempt import ScanAttempt, ScanOutcome
from qr_attendance.services.anti_cheat import Evaluation, ScanCandidate
from qr_attendance.services.geo_service import Location
from qr_attendance.services.stats_service import SessionStats, StatsService
from qr_attendance.services.token_service import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewSession:
    """Validated parameters for a session about to be persisted."""
    section_id: str
    course_id: str
    max_duration: int
    created_at: datetime
    expires_at: datetime
    allowed_radius: float
    anti_cheat_enabled: bool = True
    require_location: bool = False
    location: Optional[Location] = None
    created_by: Optional[str] = None


class SessionStore:
    """
    Owns AttendanceSession rows and their scan ledgers.

    Invariants are enforced by the database: a partial unique index allows a
    single active session per (section, course), and another allows a single
    accepted scan per (session, student). Integrity errors from those indexes
    are translated here and never leave the store.
    """

    # =================== SESSIONS ===================

    def create_session(self, params: NewSession) -> AttendanceSession:
        """Persist a new active session. Raises SessionConflict."""
        # Overdue sessions must not keep holding the active slot
        self._expire_overdue(
            params.created_at,
            AttendanceSession.section_id == params.section_id,
            AttendanceSession.course_id == params.course_id
        )

        location = params.location
        session = AttendanceSession(
            session_id=uuid.uuid4().hex,
            section_id=params.section_id,
            course_id=params.course_id,
            created_by=params.created_by,
            status=SessionStatus.ACTIVE,
            max_duration=params.max_duration,
            created_at=params.created_at,
            expires_at=params.expires_at,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            accuracy=location.accuracy if location else None,
            require_location=params.require_location,
            allowed_radius=params.allowed_radius,
            anti_cheat_enabled=params.anti_cheat_enabled,
            token_secret=TokenCodec.generate_secret(),
            token_version=1
        )
        db.session.add(session)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise SessionConflict()

        return session

    def get_session(self, session_id: str, now: datetime = None) -> Optional[AttendanceSession]:
        """Get a session by its public id, promoting it to expired if overdue."""
        session = AttendanceSession.query.filter_by(session_id=session_id).first()
        if session is None:
            return None
        return self._refresh(session, now or datetime.utcnow())

    def get_active_session(
        self,
        section_id: str,
        course_id: str,
        now: datetime = None
    ) -> Optional[AttendanceSession]:
        """Get the active session for a section and course, if any."""
        session = AttendanceSession.query.filter_by(
            section_id=section_id,
            course_id=course_id,
            status=SessionStatus.ACTIVE
        ).first()

        if session is None:
            return None

        session = self._refresh(session, now or datetime.utcnow())
        return session if session.is_active else None

    def get_token_material(self, session_id: str) -> Optional[Tuple[str, int]]:
        """Signing secret and version for a session."""
        row = db.session.query(
            AttendanceSession.token_secret,
            AttendanceSession.token_version
        ).filter(AttendanceSession.session_id == session_id).first()

        if row is None:
            return None
        return row.token_secret, row.token_version

    def close_session(self, session_id: str, now: datetime = None) -> AttendanceSession:
        """Close an active session. Raises SessionNotFound or AlreadyClosed."""
        now = now or datetime.utcnow()
        self._expire_overdue(now, AttendanceSession.session_id == session_id)

        updated = AttendanceSession.query.filter(
            AttendanceSession.session_id == session_id,
            AttendanceSession.status == SessionStatus.ACTIVE
        ).update(
            {'status': SessionStatus.CLOSED, 'closed_at': now},
            synchronize_session=False
        )
        db.session.commit()

        session = AttendanceSession.query.filter_by(session_id=session_id).first()
        if session is None:
            raise SessionNotFound()
        if not updated:
            raise AlreadyClosed(f'Session is already {session.status.value}')

        logger.info('Closed attendance session %s', session_id)
        return session

    def mark_finalized(self, session_id: str, record_id: int, now: datetime = None) -> bool:
        """Link a session to its attendance record. Write-once."""
        updated = AttendanceSession.query.filter(
            AttendanceSession.session_id == session_id,
            AttendanceSession.finalized_at.is_(None)
        ).update(
            {'finalized_at': now or datetime.utcnow(), 'attendance_record_id': record_id},
            synchronize_session=False
        )
        db.session.commit()
        return bool(updated)

    def expire_overdue_sessions(self, now: datetime = None) -> int:
        """Sweep every overdue active session to expired."""
        return self._expire_overdue(now or datetime.utcnow())

    def list_sessions(
        self,
        section_id: str = None,
        course_id: str = None,
        date_from: datetime = None,
        date_to: datetime = None,
        page: int = 1,
        per_page: int = 10
    ):
        """Session history, newest first, paginated."""
        query = AttendanceSession.query

        if section_id:
            query = query.filter(AttendanceSession.section_id == section_id)
        if course_id:
            query = query.filter(AttendanceSession.course_id == course_id)
        if date_from:
            query = query.filter(AttendanceSession.created_at >= date_from)
        if date_to:
            query = query.filter(AttendanceSession.created_at <= date_to)

        return query.order_by(
            AttendanceSession.created_at.desc(),
            AttendanceSession.id.desc()
        ).paginate(page=page, per_page=per_page, error_out=False)

    # =================== LEDGER ===================

    def append_scan(
        self,
        session_id: str,
        candidate: ScanCandidate,
        evaluation: Evaluation,
        now: datetime = None
    ) -> ScanAttempt:
        """
        Append one attempt to a session ledger.

        The session is re-read here, so an accepted verdict reached before a
        close or expiry is stored as rejected_expired, and a verdict that
        loses the race against another accepted scan for the same student is
        stored as rejected_duplicate.
        """
        now = now or datetime.utcnow()
        session = AttendanceSession.query.filter_by(
            session_id=session_id
        ).with_for_update().first()
        if session is None:
            raise SessionNotFound()

        outcome, reason = evaluation.outcome, evaluation.reason

        if outcome is ScanOutcome.ACCEPTED and session.is_active and session.is_expired(now):
            session.status = SessionStatus.EXPIRED
        if outcome is ScanOutcome.ACCEPTED and not session.is_active:
            outcome, reason = ScanOutcome.REJECTED_EXPIRED, 'This session has been closed'

        session_pk = session.id
        attempt = self._build_attempt(session_pk, candidate, outcome, reason)
        db.session.add(attempt)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if outcome is not ScanOutcome.ACCEPTED:
                raise
            attempt = self._build_attempt(
                session_pk, candidate,
                ScanOutcome.REJECTED_DUPLICATE,
                'You have already marked attendance for this session'
            )
            db.session.add(attempt)
            db.session.commit()

        return attempt

    def list_scans(self, session: AttendanceSession) -> List[ScanAttempt]:
        """Full ledger in append order."""
        return ScanAttempt.query.filter_by(session_pk=session.id).order_by(ScanAttempt.id).all()

    def recent_scans(self, session: AttendanceSession, limit: int = 10) -> List[ScanAttempt]:
        """Latest ledger entries, newest first, any outcome."""
        return ScanAttempt.query.filter_by(session_pk=session.id).order_by(
            ScanAttempt.scanned_at.desc(),
            ScanAttempt.id.desc()
        ).limit(limit).all()

    def accepted_student_ids(self, session: AttendanceSession) -> Set[str]:
        rows = db.session.query(ScanAttempt.student_id).filter(
            ScanAttempt.session_pk == session.id,
            ScanAttempt.outcome == ScanOutcome.ACCEPTED
        ).distinct().all()
        return {row.student_id for row in rows}

    def get_stats(
        self,
        session_id: str,
        roster: Iterable[str],
        recent_limit: int = 10,
        now: datetime = None
    ) -> SessionStats:
        """Live aggregate for a session. Raises SessionNotFound."""
        session = self.get_session(session_id, now)
        if session is None:
            raise SessionNotFound()

        return StatsService.compute_stats(
            session,
            roster,
            accepted=self.accepted_student_ids(session),
            recent_scans=self.recent_scans(session, recent_limit)
        )

    # =================== INTERNALS ===================

    @staticmethod
    def _build_attempt(session_pk: int, candidate: ScanCandidate, outcome: ScanOutcome, reason: str) -> ScanAttempt:
        location = candidate.location
        return ScanAttempt(
            session_pk=session_pk,
            student_id=candidate.student_id,
            scanned_at=candidate.scanned_at,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            accuracy=location.accuracy if location else None,
            device_fingerprint=candidate.device_fingerprint,
            outcome=outcome,
            reason=reason[:255] if reason else None
        )

    def _refresh(self, session: AttendanceSession, now: datetime) -> AttendanceSession:
        """Read-time expiry promotion."""
        if session.is_active and session.is_expired(now):
            self._expire_overdue(now, AttendanceSession.id == session.id)
        return session

    @staticmethod
    def _expire_overdue(now: datetime, *criteria) -> int:
        expired = AttendanceSession.query.filter(
            AttendanceSession.status == SessionStatus.ACTIVE,
            AttendanceSession.expires_at < now,
            *criteria
        ).update({'status': SessionStatus.EXPIRED}, synchronize_session=False)
        db.session.commit()

        if expired:
            logger.info('Expired %d overdue attendance session(s)', expired)
        return expired

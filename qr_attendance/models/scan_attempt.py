"""Scan ledger entry: one row per scan attempt, accepted or not."""
from datetime import datetime
from enum import Enum
from typing import Optional
from qr_attendance import db
from qr_attendance.models.base import BaseModel, enum_column
from qr_attendance.services.geo_service import Location


class ScanOutcome(Enum):
    """Outcome of a scan attempt."""
    ACCEPTED = 'accepted'
    REJECTED_DUPLICATE = 'rejected_duplicate'
    REJECTED_EXPIRED = 'rejected_expired'
    REJECTED_GEOFENCE = 'rejected_geofence'
    REJECTED_SUSPICIOUS = 'rejected_suspicious'
    REJECTED_INVALID_TOKEN = 'rejected_invalid_token'

    @property
    def is_accepted(self) -> bool:
        return self is ScanOutcome.ACCEPTED


class ScanAttempt(BaseModel):
    """Immutable scan attempt appended to a session ledger."""

    __tablename__ = 'scan_attempts'
    __table_args__ = (
        # At most one accepted scan per student per session
        db.Index(
            'uq_accepted_scan_per_student',
            'session_pk', 'student_id',
            unique=True,
            sqlite_where=db.text("outcome = 'accepted'"),
            postgresql_where=db.text("outcome = 'accepted'")
        ),
        db.Index('ix_scans_session_fingerprint', 'session_pk', 'device_fingerprint'),
    )

    session_pk = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    student_id = db.Column(db.String(64), nullable=False, index=True)
    scanned_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    accuracy = db.Column(db.Float, nullable=True)
    device_fingerprint = db.Column(db.String(255), nullable=True)

    outcome = enum_column(ScanOutcome, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    @property
    def location(self) -> Optional[Location]:
        if self.latitude is None or self.longitude is None:
            return None
        return Location(self.latitude, self.longitude, self.accuracy)

    @property
    def is_accepted(self) -> bool:
        return self.outcome == ScanOutcome.ACCEPTED

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        location = self.location
        return {
            'id': self.id,
            'student_id': self.student_id,
            'scanned_at': self.scanned_at.isoformat() if self.scanned_at else None,
            'location': location.to_dict() if location else None,
            'device_fingerprint': self.device_fingerprint,
            'outcome': self.outcome.value,
            'reason': self.reason
        }

    def __repr__(self) -> str:
        return f'<ScanAttempt {self.student_id} {self.outcome.value}>'

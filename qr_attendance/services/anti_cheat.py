"""Anti-cheat evaluation of scan attempts."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from qr_attendance.config import SessionSettings
from qr_attendance.models.scan_attempt import ScanOutcome
from qr_attendance.services.geo_service import GeoService, Location

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanCandidate:
    """A scan attempt that has not been judged or stored yet."""
    student_id: str
    scanned_at: datetime
    location: Optional[Location] = None
    device_fingerprint: Optional[str] = None


@dataclass(frozen=True)
class Evaluation:
    """Anti-cheat verdict for one scan attempt."""
    outcome: ScanOutcome
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is ScanOutcome.ACCEPTED


ACCEPTED = Evaluation(ScanOutcome.ACCEPTED, 'Attendance marked successfully')


class AntiCheatEvaluator:
    """
    Scores a scan attempt against a session and its ledger.

    Rules are applied in order and the first match wins:

    1. session not active, or scan after expiry   -> rejected_expired
    2. student already has an accepted scan       -> rejected_duplicate
    3. anti-cheat on, location required, missing  -> rejected_invalid_token
    4. location required and outside the geofence -> rejected_geofence
    5. anti-cheat on and a suspicious pattern     -> rejected_suspicious
    6. otherwise                                  -> accepted

    The evaluator never writes; the duplicate rule here is a fast path and
    the store's unique index is what actually enforces it.
    """

    def __init__(self, settings: SessionSettings = None):
        self.settings = settings or SessionSettings()

    def evaluate(self, session, candidate: ScanCandidate, ledger: Iterable = None) -> Evaluation:
        """Judge a candidate scan. `ledger` defaults to the session's scans."""
        ledger = list(session.scans if ledger is None else ledger)

        # 1. Expired or closed
        if not session.is_active:
            return Evaluation(ScanOutcome.REJECTED_EXPIRED, 'This session has been closed')
        if candidate.scanned_at > session.expires_at:
            return Evaluation(ScanOutcome.REJECTED_EXPIRED, 'This QR code has expired')

        # 2. Duplicate
        if any(scan.is_accepted and scan.student_id == candidate.student_id for scan in ledger):
            return Evaluation(
                ScanOutcome.REJECTED_DUPLICATE,
                'You have already marked attendance for this session'
            )

        location_required = session.require_location and session.location is not None

        # 3. Missing or malformed location
        if session.anti_cheat_enabled and location_required:
            if candidate.location is None:
                return Evaluation(
                    ScanOutcome.REJECTED_INVALID_TOKEN,
                    'Location is required to mark attendance for this session'
                )
            if not GeoService.is_valid_coordinates(candidate.location):
                return Evaluation(ScanOutcome.REJECTED_INVALID_TOKEN, 'Invalid coordinates provided')

        # 4. Geofence
        if location_required and candidate.location is not None:
            verification = GeoService.verify_location(
                session.location, candidate.location, session.allowed_radius
            )
            if not verification['is_inside']:
                return Evaluation(ScanOutcome.REJECTED_GEOFENCE, verification['reason'])

        # 5. Suspicious patterns
        if session.anti_cheat_enabled:
            reason = self._suspicious_reason(session, candidate, ledger)
            if reason:
                return Evaluation(ScanOutcome.REJECTED_SUSPICIOUS, reason)

        return ACCEPTED

    def _suspicious_reason(self, session, candidate: ScanCandidate, ledger: list) -> Optional[str]:
        if candidate.scanned_at < session.created_at:
            return 'Scan time is earlier than the session start'

        if candidate.device_fingerprint and self._device_shared(candidate, ledger):
            return 'This device has already been used by another student'

        if candidate.location is not None and self._too_imprecise(candidate.location):
            return 'Reported location accuracy is too low to verify attendance'

        if candidate.location is not None:
            previous = self._previous_fix(candidate, ledger)
            is_suspicious, reason = GeoService.detect_location_spoofing(
                candidate.location,
                previous.location if previous else None,
                (candidate.scanned_at - previous.scanned_at).total_seconds() if previous else None
            )
            if is_suspicious:
                if self.settings.block_spoofed_locations:
                    return reason
                logger.warning(
                    'Suspicious location for student %s in session %s: %s',
                    candidate.student_id, session.session_id, reason
                )

        return None

    def _too_imprecise(self, location: Location) -> bool:
        """Accuracy is geofence slack, so it is capped. A ceiling of 0 or less disables the cap."""
        ceiling = self.settings.max_location_accuracy
        if ceiling is None or ceiling <= 0 or location.accuracy is None:
            return False
        return location.accuracy > ceiling

    def _device_shared(self, candidate: ScanCandidate, ledger: list) -> bool:
        """Other students that redeemed with the same device inside the window."""
        limit = self.settings.max_students_per_device
        if limit <= 0:
            return False

        window_start = candidate.scanned_at - timedelta(seconds=self.settings.device_window_seconds)
        other_students = {
            scan.student_id
            for scan in ledger
            if scan.is_accepted
            and scan.device_fingerprint == candidate.device_fingerprint
            and scan.student_id != candidate.student_id
            and scan.scanned_at >= window_start
        }
        return len(other_students) >= limit

    @staticmethod
    def _previous_fix(candidate: ScanCandidate, ledger: list):
        fixes = [
            scan for scan in ledger
            if scan.student_id == candidate.student_id
            and scan.location is not None
            and scan.scanned_at < candidate.scanned_at
        ]
        return fixes[-1] if fixes else None

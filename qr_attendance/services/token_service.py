"""Signed, session-bound QR token codec."""
import calendar
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

import jwt

from qr_attendance.errors import InvalidToken, TokenExpired

EPOCH = datetime(1970, 1, 1)

SecretLookup = Callable[[str], Optional[Tuple[str, int]]]


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a QR token."""
    session_id: str
    expires_at: datetime
    version: int


def to_timestamp(value: datetime) -> int:
    """Naive UTC datetime to a unix timestamp."""
    return calendar.timegm(value.utctimetuple())


def from_timestamp(value: int) -> datetime:
    """Unix timestamp to a naive UTC datetime."""
    return EPOCH + timedelta(seconds=value)


class TokenCodec:
    """
    Issues and verifies the token encoded into a session's QR image.

    Tokens are HS256 JWTs carrying the session id (`sid`), the secret
    version (`ver`) and the session expiry (`exp`). Each session signs with
    its own secret, so verification first reads the claimed session id and
    then checks the signature with that session's secret only.
    """

    ALGORITHM = 'HS256'
    REQUIRED_CLAIMS = ['sid', 'ver', 'exp']

    def __init__(self, secret_lookup: SecretLookup, clock: Callable[[], datetime] = datetime.utcnow):
        self.secret_lookup = secret_lookup
        self.clock = clock

    @staticmethod
    def generate_secret() -> str:
        """Fresh signing secret for a new session."""
        return secrets.token_urlsafe(32)

    @classmethod
    def issue(
        cls,
        session_id: str,
        token_secret: str,
        expires_at: datetime,
        version: int = 1,
        issued_at: datetime = None
    ) -> str:
        """Create a signed token for a session."""
        payload = {
            'sid': session_id,
            'ver': version,
            'iat': to_timestamp(issued_at or datetime.utcnow()),
            'exp': to_timestamp(expires_at)
        }
        return jwt.encode(payload, token_secret, algorithm=cls.ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """
        Verify a token against the secret of the session it names.
        Raises InvalidToken or TokenExpired.
        """
        if not isinstance(token, str) or not token.strip():
            raise InvalidToken('QR code data is required')

        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.decode(token, options={'verify_signature': False})
        except jwt.InvalidTokenError:
            raise InvalidToken('Invalid or corrupted QR code')

        if header.get('alg') != self.ALGORITHM:
            raise InvalidToken('Unsupported QR code signature')

        session_id = unverified.get('sid')
        if not isinstance(session_id, str) or not session_id:
            raise InvalidToken('Invalid or corrupted QR code')

        material = self.secret_lookup(session_id)
        if material is None:
            raise InvalidToken('Attendance session not found')
        secret, version = material

        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.ALGORITHM],
                options={
                    'require': self.REQUIRED_CLAIMS,
                    'verify_exp': False,
                    'verify_iat': False,
                    'verify_nbf': False
                }
            )
        except jwt.InvalidTokenError:
            raise InvalidToken('Invalid QR code signature', session_id=session_id)

        if payload['ver'] != version:
            raise InvalidToken('QR code has been superseded', session_id=session_id)

        if isinstance(payload['exp'], bool) or not isinstance(payload['exp'], int):
            raise InvalidToken('Invalid or corrupted QR code', session_id=session_id)

        claims = TokenClaims(
            session_id=session_id,
            expires_at=from_timestamp(payload['exp']),
            version=payload['ver']
        )

        # Expiry is checked against our own clock, after the signature
        if self.clock() > claims.expires_at:
            raise TokenExpired(claims=claims)

        return claims
